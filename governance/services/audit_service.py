"""Append-only governance audit trail."""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from pydantic_core import to_jsonable_python

from governance.errors import AuditWriteFailure
from governance.models import ActionCategory, AuditEntry
from governance.repositories.base import GovernanceStore
from governance.repositories.mappers import map_audit_entry

logger = structlog.get_logger(__name__)


class AuditTrail:
    """Records every governance action.

    A failed audit write never fails the operation that produced it: the
    failure is logged, counted and handed to ``on_failure`` if one is set.
    """

    def __init__(
        self,
        store: GovernanceStore,
        on_failure: Optional[Callable[[AuditWriteFailure], None]] = None,
    ):
        self._store = store
        self._on_failure = on_failure
        self.failure_count = 0

    async def record(
        self,
        project_id: Optional[UUID],
        actor_id: str,
        action: str,
        category: ActionCategory,
        resource_type: str,
        resource_id: Optional[UUID] = None,
        before: Optional[dict[str, Any]] = None,
        after: Optional[dict[str, Any]] = None,
        justification: Optional[str] = None,
    ) -> Optional[AuditEntry]:
        """Append one audit entry.

        Returns:
            The stored entry, or None if the write failed
        """
        row = {
            "id": uuid4(),
            "project_id": project_id,
            "actor_id": actor_id,
            "action": action,
            "action_category": category.value,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "before_state": to_jsonable_python(before) if before is not None else None,
            "after_state": to_jsonable_python(after) if after is not None else None,
            "justification": justification,
            "created_at": datetime.now(timezone.utc),
        }

        try:
            stored = await self._store.insert_audit_entry(row)
        except Exception as e:
            failure = AuditWriteFailure(action, resource_id, e)
            self.failure_count += 1
            logger.error(
                "governance_audit_write_failed",
                project_id=str(project_id) if project_id else None,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id else None,
                error=str(e),
            )
            if self._on_failure is not None:
                self._on_failure(failure)
            return None

        return map_audit_entry(stored)

    async def list_entries(
        self,
        project_id: UUID,
        limit: int = 50,
        resource_type: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Return the project's audit entries, newest first."""
        rows = await self._store.list_audit_entries(project_id, limit=limit, resource_type=resource_type)
        return [map_audit_entry(r) for r in rows]
