"""Row to entity mapping.

Stores hand back loosely typed rows (asyncpg records or dicts); these
functions turn them into the typed governance entities.
"""

import json
from collections.abc import Mapping
from typing import Any, Optional

from governance.models import (
    ABExperiment,
    AuditEntry,
    ChangeRequest,
    EvaluationGate,
    EvaluationThresholds,
    MetricsSnapshot,
    ModelRegistryEntry,
    QualityBaseline,
    RegressionAlert,
)


def _json(value: Any, default: Any = None) -> Any:
    """Decode a json column that may arrive as text or already decoded."""
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def dump_metrics(metrics: Optional[MetricsSnapshot]) -> Optional[dict[str, Any]]:
    """Serialize a snapshot for a json column."""
    if metrics is None:
        return None
    return metrics.model_dump(mode="json")


def load_metrics(value: Any) -> Optional[MetricsSnapshot]:
    """Parse a json metrics column; empty objects mean no metrics recorded yet."""
    data = _json(value)
    if not data:
        return None
    return MetricsSnapshot.model_validate(data)


def map_change_request(row: Mapping[str, Any]) -> ChangeRequest:
    return ChangeRequest(
        id=row["id"],
        project_id=row["project_id"],
        change_type=row["change_type"],
        proposed_by=row["proposed_by"],
        title=row["title"],
        description=row.get("description"),
        current_config=_json(row.get("current_config"), {}),
        proposed_config=_json(row.get("proposed_config"), {}),
        status=row["status"],
        is_breaking_change=row.get("is_breaking_change", False),
        requires_approval=row.get("requires_approval", False),
        created_at=row["created_at"],
        updated_at=row.get("updated_at"),
        evaluated_at=row.get("evaluated_at"),
        approved_at=row.get("approved_at"),
        approved_by=row.get("approved_by"),
        deployed_at=row.get("deployed_at"),
        rolled_back_at=row.get("rolled_back_at"),
        rollback_reason=row.get("rollback_reason"),
    )


def map_evaluation_gate(row: Mapping[str, Any]) -> EvaluationGate:
    return EvaluationGate(
        id=row["id"],
        change_request_id=row["change_request_id"],
        baseline_metrics=load_metrics(row["baseline_metrics"]),
        proposed_metrics=load_metrics(row["proposed_metrics"]),
        passed=row["passed"],
        failure_reasons=list(row.get("failure_reasons") or []),
        precision_delta=row["precision_delta"],
        recall_delta=row["recall_delta"],
        ndcg_delta=row["ndcg_delta"],
        latency_delta_ms=row["latency_delta_ms"],
        cost_delta_usd=row["cost_delta_usd"],
        threshold_config=EvaluationThresholds.model_validate(_json(row["threshold_config"], {})),
        evaluated_at=row["evaluated_at"],
        evaluated_by=row.get("evaluated_by"),
    )


def map_baseline(row: Mapping[str, Any]) -> QualityBaseline:
    return QualityBaseline(
        id=row["id"],
        project_id=row["project_id"],
        baseline_type=row["baseline_type"],
        metrics=load_metrics(row["metrics"]),
        sample_size=row.get("sample_size") or 0,
        config=_json(row.get("model_config"), {}),
        is_current=row["is_current"],
        established_at=row["established_at"],
        established_by=row.get("established_by"),
        superseded_at=row.get("superseded_at"),
        superseded_by=row.get("superseded_by"),
    )


def map_alert(row: Mapping[str, Any]) -> RegressionAlert:
    return RegressionAlert(
        id=row["id"],
        project_id=row["project_id"],
        alert_type=row["alert_type"],
        severity=row["severity"],
        metric_name=row["metric_name"],
        baseline_value=row["baseline_value"],
        current_value=row["current_value"],
        delta_percent=row["delta_percent"],
        threshold_exceeded=row.get("threshold_exceeded"),
        is_acknowledged=row.get("is_acknowledged", False),
        acknowledged_at=row.get("acknowledged_at"),
        acknowledged_by=row.get("acknowledged_by"),
        is_resolved=row.get("is_resolved", False),
        resolved_at=row.get("resolved_at"),
        resolved_by=row.get("resolved_by"),
        resolution_notes=row.get("resolution_notes"),
        related_change_id=row.get("related_change_id"),
        detected_at=row["detected_at"],
        metadata=_json(row.get("metadata"), {}),
    )


def map_model_entry(row: Mapping[str, Any]) -> ModelRegistryEntry:
    return ModelRegistryEntry(
        id=row["id"],
        project_id=row["project_id"],
        model_type=row["model_type"],
        model_name=row["model_name"],
        model_version=row["model_version"],
        is_active=row.get("is_active", False),
        is_baseline=row.get("is_baseline", False),
        config=_json(row.get("config"), {}),
        performance_metrics=load_metrics(row.get("performance_metrics")),
        deployment_percentage=row.get("deployment_percentage") or 0,
        deployed_at=row.get("deployed_at"),
        deprecated_at=row.get("deprecated_at"),
        created_at=row["created_at"],
        created_by=row.get("created_by"),
    )


def map_experiment(row: Mapping[str, Any]) -> ABExperiment:
    return ABExperiment(
        id=row["id"],
        project_id=row["project_id"],
        experiment_name=row["experiment_name"],
        description=row.get("description"),
        control_model_id=row.get("control_model_id"),
        treatment_model_id=row.get("treatment_model_id"),
        control_percentage=row.get("control_percentage", 50),
        status=row["status"],
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        min_sample_size=row.get("min_sample_size", 100),
        current_sample_size=row.get("current_sample_size") or 0,
        control_metrics=load_metrics(row.get("control_metrics")),
        treatment_metrics=load_metrics(row.get("treatment_metrics")),
        winner=row.get("winner"),
        statistical_significance=row.get("statistical_significance"),
        created_at=row["created_at"],
        created_by=row.get("created_by"),
    )


def map_audit_entry(row: Mapping[str, Any]) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        project_id=row.get("project_id"),
        actor_id=row["actor_id"],
        action=row["action"],
        action_category=row["action_category"],
        resource_type=row["resource_type"],
        resource_id=row.get("resource_id"),
        before_state=_json(row.get("before_state")),
        after_state=_json(row.get("after_state")),
        justification=row.get("justification"),
        created_at=row["created_at"],
    )
