from __future__ import annotations

from typing import List

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .mixins import Base, TimestampMixin


class Vocabulary(TimestampMixin, Base):
    """ A named collection of terms forming one independent tree.
    Addressed by an external string id such as 'event' or 'directory'.
    """
    __tablename__ = "vocabulary"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)

    terms: Mapped[List["Term"]] = relationship(
        back_populates="vocabulary",
        cascade="all, delete-orphan",
        order_by="Term.id",
    )

    def __repr__(self) -> str:
        return f"<Vocabulary id={self.id!r} label={self.label!r}>"
