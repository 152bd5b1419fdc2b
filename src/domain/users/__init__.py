"""User entity, validation and repository."""

from src.domain.users.models import User
from src.domain.users.repository import UserRepository
from src.domain.users.schemas import UserPayload, validate_user

__all__ = ["User", "UserPayload", "UserRepository", "validate_user"]
