from .interface import ScoreStore
from .memory import InMemoryStore
from .sql import SQLStore


def open_store(database_url: str | None) -> ScoreStore:
    """SQLStore for a database URL, InMemoryStore when none is configured."""
    if database_url:
        return SQLStore(database_url)
    return InMemoryStore()


__all__ = ["InMemoryStore", "SQLStore", "ScoreStore", "open_store"]
