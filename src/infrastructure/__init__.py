"""Infrastructure layer: data persistence.

- **Database access**: Async SQLAlchemy 2.0+ (asyncpg for PostgreSQL,
  aiosqlite for local use)
- **Repository pattern**: Generic CRUD operations for all entities
- **Connection management**: Pooling, liveness checks and lifecycle
"""
