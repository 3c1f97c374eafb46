"""
CRUD operations (Create, Read, Update, Delete) for database models.

Keeps query code out of the API routes (Repository pattern).
"""

from codex.crud import user

__all__ = ["user"]
