"""SQLAlchemy-backed game catalog queried by batch resolution."""

from .db import Base, build_engine, create_all, make_session_factory
from .store import CatalogStore

__all__ = ["Base", "CatalogStore", "build_engine", "create_all", "make_session_factory"]
