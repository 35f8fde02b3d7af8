"""Audit trail and governance summary endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from governance.api.dependencies import get_engine
from governance.engine import GovernanceEngine
from governance.models import AuditEntry

router = APIRouter(prefix="/projects/{project_id}/governance", tags=["Audit"])


@router.get("/audit")
async def list_audit_entries(
    project_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    resource_type: Optional[str] = Query(default=None),
    engine: GovernanceEngine = Depends(get_engine),
) -> list[AuditEntry]:
    """Newest-first audit entries, optionally narrowed to one resource type."""
    return await engine.audit.list_entries(project_id, limit=limit, resource_type=resource_type)


@router.get("/summary")
async def governance_summary(
    project_id: UUID,
    engine: GovernanceEngine = Depends(get_engine),
) -> dict:
    summary = await engine.governance_summary(project_id)
    result = summary.model_dump()
    result["has_baselines"] = summary.has_baselines
    return result
