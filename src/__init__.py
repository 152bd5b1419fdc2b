"""Repokit - generic async repositories over SQLAlchemy.

Architecture Overview:
- **Core Layer**: Configuration, logging, errors and shared utilities
- **Domain Layer**: Entities and their repositories (``User``)
- **Infrastructure Layer**: Database handle, base models and the generic
  repository

``main.py`` at the project root runs a create/read/update/delete walkthrough
against the configured database.
"""
