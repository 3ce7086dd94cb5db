from __future__ import annotations

from sqlalchemy import MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Deterministic constraint names so Alembic batch migrations can address them on SQLite
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_N_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """ created_at / updated_at maintained by SQLite. Both are server-side, so read them inside a session only. """
    created_at: Mapped[str] = mapped_column(String, server_default=func.current_timestamp(), nullable=False)
    updated_at: Mapped[str] = mapped_column(
        String, server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False
    )
