"""Persistence of computed S/R results"""

from .level_store import InMemoryLevelStore, LevelStore, SQLiteLevelStore

__all__ = ["LevelStore", "InMemoryLevelStore", "SQLiteLevelStore"]
