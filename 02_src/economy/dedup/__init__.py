"""Deduplication module."""

from .dedup import IDedupStore, InMemoryDedupStore, MessageDeduplicator, SqliteDedupStore

__all__ = [
    "IDedupStore",
    "InMemoryDedupStore",
    "MessageDeduplicator",
    "SqliteDedupStore",
]
