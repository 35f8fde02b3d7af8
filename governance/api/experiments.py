"""A/B experiment endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from governance.api.dependencies import get_actor_id, get_engine
from governance.engine import GovernanceEngine
from governance.models import ABExperiment, ExperimentStatus
from governance.models.requests import (
    CompleteExperimentRequest,
    CreateExperimentRequest,
    ExperimentSampleRequest,
)

router = APIRouter(
    prefix="/projects/{project_id}/governance/experiments", tags=["Experiments"]
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_experiment(
    project_id: UUID,
    request: CreateExperimentRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ABExperiment:
    return await engine.experiments.create_experiment(
        project_id,
        experiment_name=request.experiment_name,
        control_model_id=request.control_model_id,
        treatment_model_id=request.treatment_model_id,
        created_by=actor_id,
        description=request.description,
        control_percentage=request.control_percentage,
        min_sample_size=request.min_sample_size,
    )


@router.get("")
async def list_experiments(
    project_id: UUID,
    status_filter: Optional[ExperimentStatus] = Query(default=None, alias="status"),
    engine: GovernanceEngine = Depends(get_engine),
) -> list[ABExperiment]:
    return await engine.experiments.list_experiments(project_id, status_filter)


@router.get("/{experiment_id}")
async def get_experiment(
    project_id: UUID,
    experiment_id: UUID,
    engine: GovernanceEngine = Depends(get_engine),
) -> ABExperiment:
    return await engine.experiments.get_experiment(project_id, experiment_id)


@router.post("/{experiment_id}/start")
async def start_experiment(
    project_id: UUID,
    experiment_id: UUID,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ABExperiment:
    return await engine.experiments.start_experiment(project_id, experiment_id, actor_id)


@router.post("/{experiment_id}/pause")
async def pause_experiment(
    project_id: UUID,
    experiment_id: UUID,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ABExperiment:
    return await engine.experiments.pause_experiment(project_id, experiment_id, actor_id)


@router.post("/{experiment_id}/complete")
async def complete_experiment(
    project_id: UUID,
    experiment_id: UUID,
    request: CompleteExperimentRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ABExperiment:
    """Close the experiment with the outcome computed by the external analysis."""
    return await engine.experiments.complete_experiment(
        project_id,
        experiment_id,
        completed_by=actor_id,
        winner=request.winner,
        statistical_significance=request.statistical_significance,
    )


@router.post("/{experiment_id}/cancel")
async def cancel_experiment(
    project_id: UUID,
    experiment_id: UUID,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ABExperiment:
    return await engine.experiments.cancel_experiment(project_id, experiment_id, actor_id)


@router.post("/{experiment_id}/samples")
async def record_experiment_sample(
    project_id: UUID,
    experiment_id: UUID,
    request: ExperimentSampleRequest,
    actor_id: str = Depends(get_actor_id),
    engine: GovernanceEngine = Depends(get_engine),
) -> ABExperiment:
    """Fold one sample into the control or treatment arm's running average."""
    return await engine.experiments.record_sample(
        project_id, experiment_id, request.is_control, request.metrics, actor_id
    )
