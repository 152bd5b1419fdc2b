"""User database model."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.base import BaseModel, SoftDeleteMixin

NAME_COLUMN_LENGTH = 100
EMAIL_COLUMN_LENGTH = 100


class User(SoftDeleteMixin, BaseModel):
    """A user account.

    E-mail addresses are unique across all rows, including soft-deleted ones,
    since the unique index covers the whole table.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(
        String(NAME_COLUMN_LENGTH),
        nullable=False,
        doc="Display name",
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_COLUMN_LENGTH),
        nullable=False,
        unique=True,
        index=True,
        doc="Unique e-mail address",
    )
    age: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Age in years",
    )

    def __repr__(self) -> str:
        """Return a string representation including the e-mail address."""
        return f"<User(id={self.id}, email={self.email!r})>"
