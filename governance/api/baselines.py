"""Quality baseline and regression alert endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from governance.api.dependencies import get_actor_id, get_engine
from governance.engine import GovernanceEngine
from governance.errors import NotFoundError
from governance.models import BaselineType, QualityBaseline, RegressionAlert
from governance.models.requests import (
    DetectRegressionsRequest,
    EstablishBaselineRequest,
    ResolveAlertRequest,
)

router = APIRouter(prefix="/projects/{project_id}/governance", tags=["Baselines"])


@router.post("/baselines", status_code=status.HTTP_201_CREATED)
async def establish_baseline(
    project_id: UUID,
    request: EstablishBaselineRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> QualityBaseline:
    """Record a new current baseline, superseding the previous one of the same type."""
    return await engine.baselines.establish_baseline(
        project_id,
        request.baseline_type,
        request.metrics,
        request.config,
        actor_id,
    )


@router.get("/baselines")
async def list_baselines(
    project_id: UUID,
    baseline_type: Optional[BaselineType] = Query(default=None),
    engine: GovernanceEngine = Depends(get_engine),
) -> list[QualityBaseline]:
    return await engine.baselines.list_baselines(project_id, baseline_type)


@router.get("/baselines/{baseline_type}/current")
async def get_current_baseline(
    project_id: UUID,
    baseline_type: BaselineType,
    engine: GovernanceEngine = Depends(get_engine),
) -> QualityBaseline:
    baseline = await engine.baselines.get_current_baseline(project_id, baseline_type)
    if baseline is None:
        raise NotFoundError("baseline", baseline_type.value)
    return baseline


@router.post("/regressions/detect")
async def detect_regressions(
    project_id: UUID,
    request: DetectRegressionsRequest,
    engine: GovernanceEngine = Depends(get_engine),
) -> list[RegressionAlert]:
    """Compare live metrics with the current baseline. Returns the alerts raised."""
    return await engine.regressions.detect_regressions(
        project_id,
        request.current_metrics,
        baseline_type=request.baseline_type,
        related_change_id=request.related_change_id,
    )


@router.get("/alerts")
async def list_alerts(
    project_id: UUID,
    unresolved_only: bool = Query(default=True),
    limit: int = Query(default=50, ge=1, le=200),
    engine: GovernanceEngine = Depends(get_engine),
) -> list[RegressionAlert]:
    return await engine.regressions.list_alerts(
        project_id, unresolved_only=unresolved_only, limit=limit
    )


@router.post("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(
    project_id: UUID,
    alert_id: UUID,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> RegressionAlert:
    return await engine.regressions.acknowledge_alert(project_id, alert_id, actor_id)


@router.post("/alerts/{alert_id}/resolve")
async def resolve_alert(
    project_id: UUID,
    alert_id: UUID,
    request: ResolveAlertRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> RegressionAlert:
    return await engine.regressions.resolve_alert(
        project_id, alert_id, request.resolution_notes, actor_id
    )
