"""Database plumbing: declarative base and async session factory."""

from shared.database.base_model import Base, as_utc
from shared.database.session import DatabaseSessionFactory

__all__ = ["Base", "DatabaseSessionFactory", "as_utc"]
