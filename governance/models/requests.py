"""Request bodies for the governance HTTP API."""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from governance.models.baseline import BaselineType
from governance.models.change_request import ChangeType
from governance.models.experiment import ExperimentWinner
from governance.models.metrics import EvaluationThresholds, MetricsSnapshot
from governance.models.registry import ModelType


class CreateChangeRequest(BaseModel):
    change_type: ChangeType
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    current_config: dict[str, Any] = Field(default_factory=dict)
    proposed_config: dict[str, Any] = Field(default_factory=dict)
    is_breaking_change: bool = False


class EvaluateChangeRequest(BaseModel):
    baseline_metrics: MetricsSnapshot
    proposed_metrics: MetricsSnapshot
    thresholds: Optional[EvaluationThresholds] = None


class ApproveChangeRequest(BaseModel):
    justification: Optional[str] = None


class RollbackChangeRequest(BaseModel):
    reason: str = Field(min_length=1)


class EstablishBaselineRequest(BaseModel):
    baseline_type: BaselineType
    metrics: MetricsSnapshot
    config: dict[str, Any] = Field(default_factory=dict)  # model configuration behind the metrics


class DetectRegressionsRequest(BaseModel):
    current_metrics: MetricsSnapshot
    baseline_type: BaselineType = BaselineType.RETRIEVAL
    related_change_id: Optional[UUID] = None


class ResolveAlertRequest(BaseModel):
    resolution_notes: str = Field(min_length=1)


class RegisterModelRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_type: ModelType
    model_name: str = Field(min_length=1)
    model_version: str = Field(min_length=1)
    config: dict[str, Any] = Field(default_factory=dict)


class DeploymentPercentageRequest(BaseModel):
    # Bounds are enforced by the registry so the error kind stays consistent.
    percentage: int


class ModelPerformanceRequest(BaseModel):
    metrics: MetricsSnapshot


class CreateExperimentRequest(BaseModel):
    experiment_name: str = Field(min_length=1)
    description: Optional[str] = None
    control_model_id: UUID
    treatment_model_id: UUID
    control_percentage: int = 50
    min_sample_size: int = 100


class ExperimentSampleRequest(BaseModel):
    is_control: bool
    metrics: MetricsSnapshot


class CompleteExperimentRequest(BaseModel):
    winner: Optional[ExperimentWinner] = None
    statistical_significance: Optional[float] = None
