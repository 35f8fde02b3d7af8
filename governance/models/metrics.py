"""Metric snapshots and threshold configuration."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

NUMERIC_METRIC_FIELDS = ("precision", "recall", "ndcg", "avg_latency_ms", "avg_cost_usd")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricsSnapshot(BaseModel):
    """Externally produced quality/performance measurement of one configuration."""

    model_config = ConfigDict(frozen=True)

    precision: float = Field(ge=0)
    recall: float = Field(ge=0)
    ndcg: float = Field(ge=0)
    avg_latency_ms: float = Field(ge=0)
    avg_cost_usd: float = Field(ge=0)
    sample_size: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=_utcnow)


class EvaluationThresholds(BaseModel):
    """Pass/fail thresholds applied by the evaluation gate.

    min_precision and min_recall are the minimum allowed additive deltas
    (0 means no drop is tolerated).
    """

    model_config = ConfigDict(frozen=True)

    min_precision: float = 0.0
    min_recall: float = 0.0
    max_latency_increase_ms: float = 500.0
    max_cost_increase_percent: float = 20.0


class RegressionThresholds(BaseModel):
    """Warning/critical tiers for live regression detection."""

    model_config = ConfigDict(frozen=True)

    drop_warning: float = -0.05
    drop_critical: float = -0.10
    latency_warning: float = 1.5
    latency_critical: float = 2.0
    cost_warning: float = 1.2
    cost_critical: float = 1.5
