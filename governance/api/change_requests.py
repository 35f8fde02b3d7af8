"""Change request endpoints: create, evaluate, approve, deploy, roll back."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from governance.api.dependencies import get_actor_id, get_engine
from governance.engine import GovernanceEngine
from governance.models import ChangeRequest, ChangeStatus, DeploymentDecision, EvaluationGate
from governance.models.requests import (
    ApproveChangeRequest,
    CreateChangeRequest,
    EvaluateChangeRequest,
    RollbackChangeRequest,
)

router = APIRouter(
    prefix="/projects/{project_id}/governance/change-requests", tags=["Change Requests"]
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_change_request(
    project_id: UUID,
    request: CreateChangeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ChangeRequest:
    """Propose a configuration change. It starts in ``pending``."""
    return await engine.change_requests.create_change_request(
        project_id,
        change_type=request.change_type,
        proposed_by=actor_id,
        title=request.title,
        description=request.description,
        current_config=request.current_config,
        proposed_config=request.proposed_config,
        is_breaking_change=request.is_breaking_change,
    )


@router.get("")
async def list_change_requests(
    project_id: UUID,
    status_filter: Optional[ChangeStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    engine: GovernanceEngine = Depends(get_engine),
) -> dict:
    items = await engine.change_requests.list_change_requests(
        project_id, status=status_filter, limit=limit, offset=offset
    )
    return {
        "items": [c.model_dump(mode="json") for c in items],
        "limit": limit,
        "offset": offset,
    }


@router.get("/{change_id}")
async def get_change_request(
    project_id: UUID,
    change_id: UUID,
    engine: GovernanceEngine = Depends(get_engine),
) -> ChangeRequest:
    return await engine.change_requests.get_change_request(project_id, change_id)


@router.post("/{change_id}/evaluate")
async def evaluate_change_request(
    project_id: UUID,
    change_id: UUID,
    request: EvaluateChangeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> EvaluationGate:
    """Run the evaluation gate; the change moves to approved or rejected."""
    return await engine.change_requests.evaluate_change_request(
        project_id,
        change_id,
        baseline_metrics=request.baseline_metrics,
        proposed_metrics=request.proposed_metrics,
        thresholds=request.thresholds,
        evaluated_by=actor_id,
    )


@router.get("/{change_id}/evaluations")
async def list_evaluation_gates(
    project_id: UUID,
    change_id: UUID,
    engine: GovernanceEngine = Depends(get_engine),
) -> list[EvaluationGate]:
    return await engine.change_requests.list_evaluation_gates(project_id, change_id)


@router.get("/{change_id}/deployment-check")
async def check_deployment(
    project_id: UUID,
    change_id: UUID,
    engine: GovernanceEngine = Depends(get_engine),
) -> DeploymentDecision:
    """Ask the deployment policy without deploying."""
    return await engine.change_requests.check_deployment(project_id, change_id)


@router.post("/{change_id}/approve")
async def approve_change_request(
    project_id: UUID,
    change_id: UUID,
    request: ApproveChangeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ChangeRequest:
    return await engine.change_requests.approve_change_request(
        project_id, change_id, approved_by=actor_id, justification=request.justification
    )


@router.post("/{change_id}/deploy")
async def deploy_change(
    project_id: UUID,
    change_id: UUID,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> dict:
    """Deploy a change. Blocked deployments return 409 with the policy reason."""
    deployed = await engine.change_requests.deploy_change(project_id, change_id, actor_id)
    return {"deployed": deployed, "change_id": str(change_id)}


@router.post("/{change_id}/rollback")
async def rollback_change(
    project_id: UUID,
    change_id: UUID,
    request: RollbackChangeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> dict:
    rolled_back = await engine.change_requests.rollback_change(
        project_id, change_id, reason=request.reason, rolled_back_by=actor_id
    )
    return {"rolled_back": rolled_back, "change_id": str(change_id)}
