from __future__ import annotations

from typing import Optional

from sqlalchemy import Integer, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .mixins import Base, TimestampMixin

# Parent id of top-level terms
ROOT = 0
# Largest value an SQLite INTEGER column holds
MAX_ID = 2**63 - 1


class Term(TimestampMixin, Base):
    """ A node in a vocabulary's hierarchy.
    parent_id is a plain integer rather than a foreign key: 0 marks a top-level term, and deleting a parent can leave
    its children pointing at an id that no longer exists (see OrphanPolicy).
    """
    __tablename__ = "term"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vocabulary_id: Mapped[str] = mapped_column(
        ForeignKey("vocabulary.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_id: Mapped[int] = mapped_column(Integer, default=ROOT, nullable=False)
    weight: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    vocabulary: Mapped["Vocabulary"] = relationship(back_populates="terms")

    __table_args__ = (
        CheckConstraint("length(trim(name)) > 0", name="name_not_blank"),
        Index("idx_term_vocabulary", "vocabulary_id"),
        Index("idx_term_parent_weight", "vocabulary_id", "parent_id", "weight"),
    )

    @property
    def vid(self) -> str:
        return self.vocabulary_id

    def __repr__(self) -> str:
        return f"<Term id={self.id} name='{self.name}' parent={self.parent_id} weight={self.weight}>"
