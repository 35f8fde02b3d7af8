"""A/B experiment models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from governance.models.metrics import MetricsSnapshot


class ExperimentStatus(str, Enum):
    """A/B experiment lifecycle state."""

    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExperimentWinner(str, Enum):
    """Outcome declared by the external analysis step."""

    CONTROL = "control"
    TREATMENT = "treatment"
    NO_DIFFERENCE = "no_difference"


class ABExperiment(BaseModel):
    """Two configurations compared at a traffic split."""

    id: UUID
    project_id: UUID
    experiment_name: str
    description: Optional[str] = None
    control_model_id: Optional[UUID] = None
    treatment_model_id: Optional[UUID] = None
    control_percentage: int = Field(default=50, ge=0, le=100)
    status: ExperimentStatus = ExperimentStatus.DRAFT
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_sample_size: int = 100
    current_sample_size: int = 0
    control_metrics: Optional[MetricsSnapshot] = None
    treatment_metrics: Optional[MetricsSnapshot] = None
    winner: Optional[ExperimentWinner] = None
    statistical_significance: Optional[float] = None
    created_at: datetime
    created_by: Optional[str] = None
