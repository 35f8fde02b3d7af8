"""Regression alert models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AlertType(str, Enum):
    """Kind of live regression detected."""

    PRECISION_DROP = "precision_drop"
    RECALL_DROP = "recall_drop"
    LATENCY_SPIKE = "latency_spike"
    COST_ANOMALY = "cost_anomaly"
    QUALITY_DRIFT = "quality_drift"
    ERROR_RATE_SPIKE = "error_rate_spike"


class AlertSeverity(str, Enum):
    """Alert severity tier."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RegressionAlert(BaseModel):
    """A live metric that crossed a regression threshold against the current baseline."""

    id: UUID
    project_id: UUID
    alert_type: AlertType
    severity: AlertSeverity
    metric_name: str
    baseline_value: float
    current_value: float
    delta_percent: float
    threshold_exceeded: Optional[float] = None
    is_acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_notes: Optional[str] = None
    related_change_id: Optional[UUID] = None
    detected_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
