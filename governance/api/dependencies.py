"""FastAPI dependencies: store selection, actor identity and the engine."""

from typing import Optional

from fastapi import Depends, Header

from governance.config import get_settings
from governance.database import get_pool
from governance.engine import GovernanceEngine
from governance.errors import ValidationError
from governance.repositories import (
    GovernanceStore,
    InMemoryGovernanceStore,
    PostgresGovernanceStore,
)

# Process-wide store for the in-memory backend
_memory_store: Optional[InMemoryGovernanceStore] = None


async def get_store() -> GovernanceStore:
    """Return the store selected by ``store_backend``.

    Raises:
        RuntimeError: If the Postgres backend is selected before the pool exists
    """
    global _memory_store
    settings = get_settings()
    if settings.store_backend == "memory":
        if _memory_store is None:
            _memory_store = InMemoryGovernanceStore()
        return _memory_store
    return PostgresGovernanceStore(await get_pool())


async def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> str:
    """Actor identity supplied by the upstream authentication layer.

    The value is trusted as given; it is recorded, not verified.
    """
    if not x_actor_id or not x_actor_id.strip():
        raise ValidationError("X-Actor-Id header is required")
    return x_actor_id.strip()


async def get_engine(store: GovernanceStore = Depends(get_store)) -> GovernanceEngine:
    return GovernanceEngine(store, get_settings())
