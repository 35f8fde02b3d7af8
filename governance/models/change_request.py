"""Change request, evaluation gate and deployment decision models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from governance.models.metrics import EvaluationThresholds, MetricsSnapshot


class ChangeType(str, Enum):
    """Category of AI-facing configuration being changed."""

    CHUNKING_STRATEGY = "chunking_strategy"
    EMBEDDING_MODEL = "embedding_model"
    RETRIEVAL_CONFIG = "retrieval_config"
    PROMPT_TEMPLATE = "prompt_template"
    THRESHOLD_ADJUSTMENT = "threshold_adjustment"


class ChangeStatus(str, Enum):
    """Change request lifecycle state."""

    PENDING = "pending"
    EVALUATING = "evaluating"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEPLOYED = "deployed"
    ROLLED_BACK = "rolled_back"


class ChangeRequest(BaseModel):
    """A proposed change to AI-facing configuration."""

    id: UUID
    project_id: UUID
    change_type: ChangeType
    proposed_by: str
    title: str
    description: Optional[str] = None
    current_config: dict[str, Any] = Field(default_factory=dict)
    proposed_config: dict[str, Any] = Field(default_factory=dict)
    status: ChangeStatus = ChangeStatus.PENDING
    is_breaking_change: bool = False
    requires_approval: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None
    evaluated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    deployed_at: Optional[datetime] = None
    rolled_back_at: Optional[datetime] = None
    rollback_reason: Optional[str] = None


class EvaluationGate(BaseModel):
    """Immutable record of one evaluation attempt for a change request."""

    id: UUID
    change_request_id: UUID
    baseline_metrics: MetricsSnapshot
    proposed_metrics: MetricsSnapshot
    passed: bool
    failure_reasons: list[str] = Field(default_factory=list)
    precision_delta: float
    recall_delta: float
    ndcg_delta: float
    latency_delta_ms: float
    cost_delta_usd: float
    threshold_config: EvaluationThresholds
    evaluated_at: datetime
    evaluated_by: Optional[str] = None


class DeploymentDecision(BaseModel):
    """Outcome of a deployment policy check."""

    can_deploy: bool
    reason: str
    details: dict[str, Any] = Field(default_factory=dict)
