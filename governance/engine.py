"""Governance engine: one object wiring every service over a shared store."""

from typing import Optional
from uuid import UUID

from governance.config import Settings, get_settings
from governance.models import EvaluationThresholds, GovernanceSummary, RegressionThresholds
from governance.repositories.base import GovernanceStore
from governance.services.audit_service import AuditTrail
from governance.services.baseline_service import BaselineService
from governance.services.change_request_service import ChangeRequestService
from governance.services.deployment_policy import DeploymentPolicy
from governance.services.experiment_service import ExperimentService
from governance.services.model_registry_service import ModelRegistryService
from governance.services.regression_service import RegressionDetector


def evaluation_thresholds(settings: Settings) -> EvaluationThresholds:
    return EvaluationThresholds(
        min_precision=settings.min_precision_delta,
        min_recall=settings.min_recall_delta,
        max_latency_increase_ms=settings.max_latency_increase_ms,
        max_cost_increase_percent=settings.max_cost_increase_percent,
    )


def regression_thresholds(settings: Settings) -> RegressionThresholds:
    return RegressionThresholds(
        drop_warning=settings.regression_drop_warning,
        drop_critical=settings.regression_drop_critical,
        latency_warning=settings.latency_ratio_warning,
        latency_critical=settings.latency_ratio_critical,
        cost_warning=settings.cost_ratio_warning,
        cost_critical=settings.cost_ratio_critical,
    )


class GovernanceEngine:
    """Stateless across projects: every operation takes ``project_id`` explicitly."""

    def __init__(
        self,
        store: GovernanceStore,
        settings: Optional[Settings] = None,
        deployment_policy: Optional[DeploymentPolicy] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.audit = AuditTrail(store)
        self.baselines = BaselineService(store, self.audit)
        self.change_requests = ChangeRequestService(
            store,
            self.audit,
            policy=deployment_policy,
            baselines=self.baselines,
            default_thresholds=evaluation_thresholds(settings),
            refresh_baseline_on_deploy=settings.refresh_baseline_on_deploy,
        )
        self.regressions = RegressionDetector(
            store, self.audit, self.baselines, regression_thresholds(settings)
        )
        self.models = ModelRegistryService(store, self.audit)
        self.experiments = ExperimentService(store, self.audit)

    async def governance_summary(self, project_id: UUID) -> GovernanceSummary:
        """Headline counts: pending changes, open alerts, active models, baselines."""
        counts = await self.store.governance_counts(project_id)
        return GovernanceSummary(
            pending_changes=counts["pending_changes"],
            unresolved_alerts=counts["unresolved_alerts"],
            active_models=counts["active_models"],
            baseline_types=list(counts["baseline_types"] or []),
        )
