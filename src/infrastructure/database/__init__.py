"""Database infrastructure with async SQLAlchemy and the repository pattern.

Core components:
- **base**: Declarative base, timestamp columns and soft-delete marker
- **hooks**: Pre-persistence transforms (timestamp stamping)
- **session**: Engine construction and the explicitly owned ``Database`` handle
- **repository**: Generic repository with CRUD operations
"""

from src.infrastructure.database.base import Base, BaseModel, SoftDeleteMixin
from src.infrastructure.database.repository import BaseRepository
from src.infrastructure.database.session import (
    Database,
    build_database_url,
    connect_database,
    create_database_engine,
)

__all__ = [
    "Base",
    "BaseModel",
    "BaseRepository",
    "Database",
    "SoftDeleteMixin",
    "build_database_url",
    "connect_database",
    "create_database_engine",
]
