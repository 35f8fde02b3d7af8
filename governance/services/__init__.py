"""Services package exports."""

from governance.services.audit_service import AuditTrail
from governance.services.baseline_service import BaselineService
from governance.services.change_request_service import ChangeRequestService
from governance.services.deployment_policy import AllGatesPolicy, DeploymentPolicy, LatestGatePolicy
from governance.services.experiment_service import ExperimentService
from governance.services.logging_service import configure_logging, get_logger
from governance.services.model_registry_service import ModelRegistryService
from governance.services.regression_service import RegressionDetector

__all__ = [
    "AllGatesPolicy",
    "AuditTrail",
    "BaselineService",
    "ChangeRequestService",
    "DeploymentPolicy",
    "ExperimentService",
    "LatestGatePolicy",
    "ModelRegistryService",
    "RegressionDetector",
    "configure_logging",
    "get_logger",
]
