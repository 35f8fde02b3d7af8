"""Persistence boundary: store protocol, implementations and row mappers."""

from governance.repositories.base import GovernanceStore, Row
from governance.repositories.memory_store import InMemoryGovernanceStore
from governance.repositories.postgres_store import PostgresGovernanceStore

__all__ = [
    "GovernanceStore",
    "InMemoryGovernanceStore",
    "PostgresGovernanceStore",
    "Row",
]
