"""Regression detection: compare live metrics against the current baseline and raise alerts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from governance.errors import NotFoundError, coerce_enum
from governance.models import (
    ActionCategory,
    AlertSeverity,
    AlertType,
    BaselineType,
    MetricsSnapshot,
    RegressionAlert,
    RegressionThresholds,
)
from governance.repositories.base import GovernanceStore
from governance.repositories.mappers import map_alert
from governance.services.audit_service import AuditTrail
from governance.services.baseline_service import BaselineService

logger = structlog.get_logger(__name__)


@dataclass
class RegressionFinding:
    """One metric that crossed a regression tier."""

    alert_type: AlertType
    severity: AlertSeverity
    metric_name: str
    baseline_value: float
    current_value: float
    delta_percent: float
    threshold_exceeded: float


def _drop_finding(
    alert_type: AlertType,
    metric_name: str,
    baseline_value: float,
    current_value: float,
    thresholds: RegressionThresholds,
) -> Optional[RegressionFinding]:
    if baseline_value <= 0:
        return None
    ratio_drop = (current_value - baseline_value) / baseline_value
    if ratio_drop <= thresholds.drop_critical:
        severity, tier = AlertSeverity.CRITICAL, thresholds.drop_critical
    elif ratio_drop <= thresholds.drop_warning:
        severity, tier = AlertSeverity.MEDIUM, thresholds.drop_warning
    else:
        return None
    return RegressionFinding(
        alert_type=alert_type,
        severity=severity,
        metric_name=metric_name,
        baseline_value=baseline_value,
        current_value=current_value,
        delta_percent=ratio_drop * 100,
        threshold_exceeded=tier * 100,
    )


def _ratio_finding(
    alert_type: AlertType,
    metric_name: str,
    baseline_value: float,
    current_value: float,
    warning: float,
    critical: float,
    critical_severity: AlertSeverity,
) -> Optional[RegressionFinding]:
    if baseline_value <= 0:
        return None
    ratio = current_value / baseline_value
    if ratio >= critical:
        severity, tier = critical_severity, critical
    elif ratio >= warning:
        severity, tier = AlertSeverity.MEDIUM, warning
    else:
        return None
    return RegressionFinding(
        alert_type=alert_type,
        severity=severity,
        metric_name=metric_name,
        baseline_value=baseline_value,
        current_value=current_value,
        delta_percent=(ratio - 1) * 100,
        threshold_exceeded=(tier - 1) * 100,
    )


def classify_regressions(
    baseline: MetricsSnapshot,
    current: MetricsSnapshot,
    thresholds: RegressionThresholds,
) -> list[RegressionFinding]:
    """Classify every metric of a live snapshot against its baseline.

    Quality metrics use the ratio drop (current - baseline) / baseline;
    latency and cost use current / baseline. A metric whose baseline value
    is 0 is skipped. Cost spikes top out at ``high``, never ``critical``.

    Args:
        baseline: Metrics of the current baseline
        current: Live metrics being checked
        thresholds: Warning/critical tiers

    Returns:
        One finding per metric that crossed a tier
    """
    candidates = [
        _drop_finding(
            AlertType.PRECISION_DROP, "precision", baseline.precision, current.precision, thresholds
        ),
        _drop_finding(AlertType.RECALL_DROP, "recall", baseline.recall, current.recall, thresholds),
        _drop_finding(AlertType.QUALITY_DRIFT, "ndcg", baseline.ndcg, current.ndcg, thresholds),
        _ratio_finding(
            AlertType.LATENCY_SPIKE,
            "latency_ms",
            baseline.avg_latency_ms,
            current.avg_latency_ms,
            thresholds.latency_warning,
            thresholds.latency_critical,
            AlertSeverity.CRITICAL,
        ),
        _ratio_finding(
            AlertType.COST_ANOMALY,
            "cost_usd",
            baseline.avg_cost_usd,
            current.avg_cost_usd,
            thresholds.cost_warning,
            thresholds.cost_critical,
            AlertSeverity.HIGH,
        ),
    ]
    return [c for c in candidates if c is not None]


class RegressionDetector:
    """Observe-and-record regression detection. Never blocks or rolls back."""

    def __init__(
        self,
        store: GovernanceStore,
        audit: AuditTrail,
        baselines: BaselineService,
        thresholds: Optional[RegressionThresholds] = None,
    ):
        self._store = store
        self._audit = audit
        self._baselines = baselines
        self._thresholds = thresholds or RegressionThresholds()

    async def detect_regressions(
        self,
        project_id: UUID,
        current_metrics: MetricsSnapshot,
        baseline_type: BaselineType = BaselineType.RETRIEVAL,
        related_change_id: Optional[UUID] = None,
    ) -> list[RegressionAlert]:
        """Compare live metrics with the current baseline and persist an alert per finding.

        Returns an empty list when no current baseline exists for the type.
        """
        baseline_type = coerce_enum(BaselineType, baseline_type, "baseline_type")
        baseline = await self._baselines.get_current_baseline(project_id, baseline_type)
        if baseline is None:
            logger.info(
                "regression_check_skipped",
                project_id=str(project_id),
                baseline_type=baseline_type.value,
                reason="no_baseline",
            )
            return []

        findings = classify_regressions(baseline.metrics, current_metrics, self._thresholds)
        alerts: list[RegressionAlert] = []

        for finding in findings:
            row = await self._store.insert_alert(
                {
                    "id": uuid4(),
                    "project_id": project_id,
                    "alert_type": finding.alert_type.value,
                    "severity": finding.severity.value,
                    "metric_name": finding.metric_name,
                    "baseline_value": finding.baseline_value,
                    "current_value": finding.current_value,
                    "delta_percent": finding.delta_percent,
                    "threshold_exceeded": finding.threshold_exceeded,
                    "is_acknowledged": False,
                    "is_resolved": False,
                    "related_change_id": related_change_id,
                    "detected_at": datetime.now(timezone.utc),
                    "metadata": {
                        "baseline_id": str(baseline.id),
                        "baseline_type": baseline.baseline_type.value,
                        "sample_size": current_metrics.sample_size,
                    },
                }
            )
            alert = map_alert(row)
            alerts.append(alert)

            logger.warning(
                "regression_detected",
                project_id=str(project_id),
                alert_id=str(alert.id),
                alert_type=alert.alert_type.value,
                severity=alert.severity.value,
                metric=alert.metric_name,
                delta_percent=round(alert.delta_percent, 2),
            )

            await self._audit.record(
                project_id=project_id,
                actor_id="system",
                action="regression_detected",
                category=ActionCategory.ALERT_HANDLING,
                resource_type="ai_regression_alert",
                resource_id=alert.id,
                after={
                    "alert_type": alert.alert_type.value,
                    "severity": alert.severity.value,
                    "metric_name": alert.metric_name,
                    "delta_percent": alert.delta_percent,
                },
            )

        return alerts

    async def _update_alert(self, project_id: UUID, alert_id: UUID, updates: dict) -> RegressionAlert:
        row = await self._store.update_alert(project_id, alert_id, updates)
        if row is None:
            raise NotFoundError("regression_alert", alert_id)
        return map_alert(row)

    async def acknowledge_alert(
        self, project_id: UUID, alert_id: UUID, acknowledged_by: str
    ) -> RegressionAlert:
        now = datetime.now(timezone.utc)
        alert = await self._update_alert(
            project_id,
            alert_id,
            {"is_acknowledged": True, "acknowledged_at": now, "acknowledged_by": acknowledged_by},
        )

        logger.info(
            "regression_alert_acknowledged",
            project_id=str(project_id),
            alert_id=str(alert_id),
            acknowledged_by=acknowledged_by,
        )
        await self._audit.record(
            project_id=project_id,
            actor_id=acknowledged_by,
            action="acknowledge_alert",
            category=ActionCategory.ALERT_HANDLING,
            resource_type="ai_regression_alert",
            resource_id=alert_id,
            after={"is_acknowledged": True},
        )
        return alert

    async def resolve_alert(
        self,
        project_id: UUID,
        alert_id: UUID,
        resolution_notes: str,
        resolved_by: str,
    ) -> RegressionAlert:
        now = datetime.now(timezone.utc)
        alert = await self._update_alert(
            project_id,
            alert_id,
            {
                "is_resolved": True,
                "resolved_at": now,
                "resolved_by": resolved_by,
                "resolution_notes": resolution_notes,
            },
        )

        logger.info(
            "regression_alert_resolved",
            project_id=str(project_id),
            alert_id=str(alert_id),
            resolved_by=resolved_by,
        )
        await self._audit.record(
            project_id=project_id,
            actor_id=resolved_by,
            action="resolve_alert",
            category=ActionCategory.ALERT_HANDLING,
            resource_type="ai_regression_alert",
            resource_id=alert_id,
            after={"is_resolved": True, "resolution_notes": resolution_notes},
            justification=resolution_notes,
        )
        return alert

    async def list_alerts(
        self, project_id: UUID, unresolved_only: bool = True, limit: int = 50
    ) -> list[RegressionAlert]:
        rows = await self._store.list_alerts(project_id, unresolved_only=unresolved_only, limit=limit)
        return [map_alert(r) for r in rows]
