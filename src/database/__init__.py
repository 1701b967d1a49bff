"""
Database package initialization.

The package follows a modular structure:
- base: Declarative base and model mixins
- connection: Async engine, session factory and the FastAPI session dependency
- models: SQLAlchemy ORM models for orders and the catalog they reference
"""

# Import submodules explicitly when needed to avoid circular dependencies

__all__ = []
