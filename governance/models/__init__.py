"""Models package exports."""

from governance.models.alert import AlertSeverity, AlertType, RegressionAlert
from governance.models.audit import ActionCategory, AuditEntry, GovernanceSummary
from governance.models.baseline import BaselineType, QualityBaseline
from governance.models.change_request import (
    ChangeRequest,
    ChangeStatus,
    ChangeType,
    DeploymentDecision,
    EvaluationGate,
)
from governance.models.experiment import ABExperiment, ExperimentStatus, ExperimentWinner
from governance.models.metrics import (
    EvaluationThresholds,
    MetricsSnapshot,
    RegressionThresholds,
)
from governance.models.registry import ModelRegistryEntry, ModelType

__all__ = [
    "ABExperiment",
    "ActionCategory",
    "AlertSeverity",
    "AlertType",
    "AuditEntry",
    "BaselineType",
    "ChangeRequest",
    "ChangeStatus",
    "ChangeType",
    "DeploymentDecision",
    "EvaluationGate",
    "EvaluationThresholds",
    "ExperimentStatus",
    "ExperimentWinner",
    "GovernanceSummary",
    "MetricsSnapshot",
    "ModelRegistryEntry",
    "ModelType",
    "QualityBaseline",
    "RegressionAlert",
    "RegressionThresholds",
]
