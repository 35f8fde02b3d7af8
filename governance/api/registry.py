"""Model registry endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from governance.api.dependencies import get_actor_id, get_engine
from governance.engine import GovernanceEngine
from governance.models import ModelRegistryEntry, ModelType
from governance.models.requests import (
    DeploymentPercentageRequest,
    ModelPerformanceRequest,
    RegisterModelRequest,
)

router = APIRouter(prefix="/projects/{project_id}/governance/models", tags=["Model Registry"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_model(
    project_id: UUID,
    request: RegisterModelRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ModelRegistryEntry:
    """Register a model version. New entries start inactive at 0%."""
    return await engine.models.register_model(
        project_id,
        request.model_type,
        request.model_name,
        request.model_version,
        request.config,
        actor_id,
    )


@router.get("")
async def list_models(
    project_id: UUID,
    model_type: Optional[ModelType] = Query(default=None),
    active_only: bool = Query(default=False),
    engine: GovernanceEngine = Depends(get_engine),
) -> list[ModelRegistryEntry]:
    return await engine.models.list_models(project_id, model_type=model_type, active_only=active_only)


@router.get("/{model_id}")
async def get_model(
    project_id: UUID,
    model_id: UUID,
    engine: GovernanceEngine = Depends(get_engine),
) -> ModelRegistryEntry:
    return await engine.models.get_model(project_id, model_id)


@router.put("/{model_id}/deployment-percentage")
async def set_deployment_percentage(
    project_id: UUID,
    model_id: UUID,
    request: DeploymentPercentageRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ModelRegistryEntry:
    return await engine.models.set_model_deployment_percentage(
        project_id, model_id, request.percentage, actor_id
    )


@router.put("/{model_id}/performance")
async def record_model_performance(
    project_id: UUID,
    model_id: UUID,
    request: ModelPerformanceRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ModelRegistryEntry:
    return await engine.models.record_model_performance(
        project_id, model_id, request.metrics, actor_id
    )


@router.post("/{model_id}/baseline")
async def mark_baseline_model(
    project_id: UUID,
    model_id: UUID,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ModelRegistryEntry:
    return await engine.models.mark_baseline_model(project_id, model_id, actor_id)


@router.post("/{model_id}/deprecate")
async def deprecate_model(
    project_id: UUID,
    model_id: UUID,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ModelRegistryEntry:
    return await engine.models.deprecate_model(project_id, model_id, actor_id)
