"""Infrastructure adapters for the sources bounded context."""

from .sqlalchemy_store import SqlAlchemyStore

__all__ = ["SqlAlchemyStore"]
