"""Validation rules for users.

``UserPayload`` describes what a valid user looks like; ``validate_user`` is
the pre-persistence transform that enforces it before a user is inserted or
updated, so invalid data never reaches the database.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic import ValidationError as PydanticValidationError

from src.core.exceptions import ValidationError

MAX_NAME_LENGTH = 20
MIN_AGE = 1
MAX_AGE = 120


class UserPayload(BaseModel):
    """The user fields supplied by callers."""

    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH, examples=["john_doe"])
    email: EmailStr = Field(examples=["john@example.com"])
    age: int = Field(ge=MIN_AGE, le=MAX_AGE, examples=[30])


def validate_user(user: Any, _now: datetime) -> None:
    """Reject users whose fields break the payload rules.

    Valid users get the normalized field values written back, so a name is
    stored without the whitespace the length check ignored.

    Args:
        user: The user entity about to be persisted.
        _now: Timestamp of the current operation (unused).

    Raises:
        ValidationError: Listing every offending field.
    """
    try:
        payload = UserPayload.model_validate(user)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        msg = f"invalid user: {', '.join(fields)}"
        raise ValidationError(
            msg,
            context={"entity": "User", "fields": fields},
            cause=e,
        ) from e

    for field, value in payload.model_dump().items():
        if getattr(user, field) != value:
            setattr(user, field, value)
