"""Governance audit trail models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ActionCategory(str, Enum):
    """Category of a governance action."""

    CHANGE_REQUEST = "change_request"
    EVALUATION = "evaluation"
    APPROVAL = "approval"
    DEPLOYMENT = "deployment"
    ROLLBACK = "rollback"
    BASELINE_UPDATE = "baseline_update"
    MODEL_REGISTRATION = "model_registration"
    ALERT_HANDLING = "alert_handling"
    EXPERIMENT = "experiment"


class AuditEntry(BaseModel):
    """One append-only governance audit record."""

    id: UUID
    project_id: Optional[UUID] = None
    actor_id: str
    action: str
    action_category: ActionCategory
    resource_type: str
    resource_id: Optional[UUID] = None
    before_state: Optional[dict[str, Any]] = None
    after_state: Optional[dict[str, Any]] = None
    justification: Optional[str] = None
    created_at: datetime


class GovernanceSummary(BaseModel):
    """Headline counts for a project's governance state."""

    pending_changes: int = 0
    unresolved_alerts: int = 0
    active_models: int = 0
    baseline_types: list[str] = Field(default_factory=list)

    @property
    def has_baselines(self) -> bool:
        return len(self.baseline_types) > 0
