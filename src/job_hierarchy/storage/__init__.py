"""
Storage backends for the job hierarchy.

- TreeStore: Persistence interface
- InMemoryTreeStore: Single-process store for tests and local runs
- RedisTreeStore: Shared store for multi-process deployments
"""

from .base import TreeStore
from .memory import InMemoryTreeStore
from .redis import RedisTreeStore, INCREMENT_PATH_LUA

__all__ = [
    "TreeStore",
    "InMemoryTreeStore",
    "RedisTreeStore",
    "INCREMENT_PATH_LUA",
]
