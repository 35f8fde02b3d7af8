"""Change request lifecycle: create, evaluate, approve, deploy, roll back."""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from governance.errors import (
    NotFoundError,
    PersistenceFailure,
    PolicyViolation,
    ValidationError,
    coerce_enum,
)
from governance.models import (
    ActionCategory,
    BaselineType,
    ChangeRequest,
    ChangeStatus,
    ChangeType,
    DeploymentDecision,
    EvaluationGate,
    EvaluationThresholds,
    MetricsSnapshot,
)
from governance.repositories.base import GovernanceStore
from governance.repositories.mappers import (
    dump_metrics,
    map_change_request,
    map_evaluation_gate,
)
from governance.services.audit_service import AuditTrail
from governance.services.baseline_service import BaselineService
from governance.services.deployment_policy import DeploymentPolicy, LatestGatePolicy
from governance.services.evaluation_gate import score_change

logger = structlog.get_logger(__name__)

# Statuses from which a (re-)evaluation may move a change
EVALUABLE_STATUSES = (
    ChangeStatus.PENDING.value,
    ChangeStatus.EVALUATING.value,
    ChangeStatus.APPROVED.value,
    ChangeStatus.REJECTED.value,
)

# Baseline refreshed when a change of each type is deployed
BASELINE_FOR_CHANGE: dict[ChangeType, BaselineType] = {
    ChangeType.CHUNKING_STRATEGY: BaselineType.CHUNKING,
    ChangeType.EMBEDDING_MODEL: BaselineType.EMBEDDING,
    ChangeType.RETRIEVAL_CONFIG: BaselineType.RETRIEVAL,
    ChangeType.THRESHOLD_ADJUSTMENT: BaselineType.RETRIEVAL,
    ChangeType.PROMPT_TEMPLATE: BaselineType.OVERALL,
}


class ChangeRequestService:
    """Orchestrates the lifecycle of proposed AI configuration changes."""

    def __init__(
        self,
        store: GovernanceStore,
        audit: AuditTrail,
        policy: Optional[DeploymentPolicy] = None,
        baselines: Optional[BaselineService] = None,
        default_thresholds: Optional[EvaluationThresholds] = None,
        refresh_baseline_on_deploy: bool = True,
    ):
        self._store = store
        self._audit = audit
        self._policy = policy or LatestGatePolicy(store)
        self._baselines = baselines
        self._default_thresholds = default_thresholds or EvaluationThresholds()
        self._refresh_baseline_on_deploy = refresh_baseline_on_deploy

    async def _require(self, project_id: UUID, change_id: UUID) -> ChangeRequest:
        row = await self._store.get_change_request(project_id, change_id)
        if row is None:
            raise NotFoundError("change_request", change_id)
        return map_change_request(row)

    async def create_change_request(
        self,
        project_id: UUID,
        change_type: ChangeType,
        proposed_by: str,
        title: str,
        current_config: dict[str, Any],
        proposed_config: dict[str, Any],
        description: Optional[str] = None,
        is_breaking_change: bool = False,
    ) -> ChangeRequest:
        """Persist a new change request in ``pending``.

        Config payloads are opaque here and stored as given. Breaking changes
        require an explicit approval before they can be deployed.
        """
        if not title or not title.strip():
            raise ValidationError("Change request title is required")

        now = datetime.now(timezone.utc)
        row = await self._store.insert_change_request(
            {
                "id": uuid4(),
                "project_id": project_id,
                "change_type": coerce_enum(ChangeType, change_type, "change_type").value,
                "proposed_by": proposed_by,
                "title": title,
                "description": description,
                "current_config": current_config or {},
                "proposed_config": proposed_config or {},
                "status": ChangeStatus.PENDING.value,
                "is_breaking_change": is_breaking_change,
                "requires_approval": is_breaking_change,
                "created_at": now,
                "updated_at": now,
            }
        )
        change = map_change_request(row)

        logger.info(
            "change_request_created",
            project_id=str(project_id),
            change_id=str(change.id),
            change_type=change.change_type.value,
            is_breaking_change=is_breaking_change,
        )

        await self._audit.record(
            project_id=project_id,
            actor_id=proposed_by,
            action="create_change_request",
            category=ActionCategory.CHANGE_REQUEST,
            resource_type="ai_change_request",
            resource_id=change.id,
            after=change.model_dump(mode="json"),
        )

        return change

    async def get_change_request(self, project_id: UUID, change_id: UUID) -> ChangeRequest:
        return await self._require(project_id, change_id)

    async def list_change_requests(
        self,
        project_id: UUID,
        status: Optional[ChangeStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ChangeRequest]:
        rows = await self._store.list_change_requests(
            project_id,
            status=coerce_enum(ChangeStatus, status, "status").value if status else None,
            limit=limit,
            offset=offset,
        )
        return [map_change_request(r) for r in rows]

    async def list_evaluation_gates(self, project_id: UUID, change_id: UUID) -> list[EvaluationGate]:
        await self._require(project_id, change_id)
        rows = await self._store.list_evaluation_gates(change_id)
        return [map_evaluation_gate(r) for r in rows]

    async def evaluate_change_request(
        self,
        project_id: UUID,
        change_id: UUID,
        baseline_metrics: MetricsSnapshot,
        proposed_metrics: MetricsSnapshot,
        thresholds: Optional[EvaluationThresholds] = None,
        evaluated_by: Optional[str] = None,
    ) -> EvaluationGate:
        """Score a change against its baseline and move it to approved or rejected.

        Every attempt writes a new gate record carrying the thresholds used.

        Raises:
            NotFoundError: If the change request does not exist
            PolicyViolation: If the change is already deployed or rolled back
        """
        change = await self._require(project_id, change_id)
        if change.status.value not in EVALUABLE_STATUSES:
            raise PolicyViolation(
                f"Cannot evaluate a change in status '{change.status.value}'",
                {"current_status": change.status.value},
            )

        thresholds = thresholds or self._default_thresholds
        score = score_change(baseline_metrics, proposed_metrics, thresholds)
        new_status = ChangeStatus.APPROVED if score.passed else ChangeStatus.REJECTED
        now = datetime.now(timezone.utc)

        gate_row = await self._store.insert_evaluation_gate(
            project_id,
            {
                "id": uuid4(),
                "change_request_id": change_id,
                "baseline_metrics": dump_metrics(baseline_metrics),
                "proposed_metrics": dump_metrics(proposed_metrics),
                "passed": score.passed,
                "failure_reasons": score.failure_reasons,
                "precision_delta": score.precision_delta,
                "recall_delta": score.recall_delta,
                "ndcg_delta": score.ndcg_delta,
                "latency_delta_ms": score.latency_delta_ms,
                "cost_delta_usd": score.cost_delta_usd,
                "threshold_config": thresholds.model_dump(mode="json"),
                "evaluated_at": now,
                "evaluated_by": evaluated_by,
            },
            from_statuses=EVALUABLE_STATUSES,
            # A new gate invalidates any approval given for an earlier one
            change_updates={
                "status": new_status.value,
                "evaluated_at": now,
                "updated_at": now,
                "approved_at": None,
                "approved_by": None,
            },
        )
        if gate_row is None:
            current = await self._require(project_id, change_id)
            raise PolicyViolation(
                f"Cannot evaluate a change in status '{current.status.value}'",
                {"current_status": current.status.value},
            )
        gate = map_evaluation_gate(gate_row)

        logger.info(
            "change_request_evaluated",
            project_id=str(project_id),
            change_id=str(change_id),
            gate_id=str(gate.id),
            passed=gate.passed,
            failure_count=len(gate.failure_reasons),
        )

        await self._audit.record(
            project_id=project_id,
            actor_id=evaluated_by or "system",
            action="evaluation_passed" if gate.passed else "evaluation_failed",
            category=ActionCategory.EVALUATION,
            resource_type="ai_evaluation_gate",
            resource_id=gate.id,
            before={"status": change.status.value},
            after={
                "status": new_status.value,
                "passed": gate.passed,
                "failure_reasons": gate.failure_reasons,
                "precision_delta": gate.precision_delta,
                "recall_delta": gate.recall_delta,
            },
        )

        return gate

    async def check_deployment(self, project_id: UUID, change_id: UUID) -> DeploymentDecision:
        """Ask the deployment policy without mutating anything."""
        await self._require(project_id, change_id)
        return await self._policy.check(project_id, change_id)

    async def approve_change_request(
        self,
        project_id: UUID,
        change_id: UUID,
        approved_by: str,
        justification: Optional[str] = None,
    ) -> ChangeRequest:
        """Record explicit human approval of a change whose evaluation passed."""
        change = await self._require(project_id, change_id)
        now = datetime.now(timezone.utc)

        row = await self._store.transition_change_request(
            project_id,
            change_id,
            from_statuses=(ChangeStatus.APPROVED.value,),
            updates={"approved_by": approved_by, "approved_at": now, "updated_at": now},
        )
        if row is None:
            raise PolicyViolation(
                "Only changes with a passing evaluation can be approved",
                {"current_status": change.status.value},
            )
        approved = map_change_request(row)

        logger.info(
            "change_request_approved",
            project_id=str(project_id),
            change_id=str(change_id),
            approved_by=approved_by,
        )

        await self._audit.record(
            project_id=project_id,
            actor_id=approved_by,
            action="approve_change_request",
            category=ActionCategory.APPROVAL,
            resource_type="ai_change_request",
            resource_id=change_id,
            before={"approved_at": change.approved_at},
            after={"approved_at": now, "approved_by": approved_by},
            justification=justification,
        )

        return approved

    async def deploy_change(self, project_id: UUID, change_id: UUID, deployed_by: str) -> bool:
        """Deploy a change once the deployment policy allows it.

        The status flips with a compare-and-swap from ``approved``, so two
        concurrent deploys cannot both succeed.
        A baseline refresh that fails after the flip is logged, not raised.

        Raises:
            NotFoundError: If the change request does not exist
            PolicyViolation: If the policy blocks deployment; nothing is mutated
        """
        change = await self._require(project_id, change_id)

        decision = await self._policy.check(project_id, change_id)
        if not decision.can_deploy:
            logger.warning(
                "change_deploy_blocked",
                project_id=str(project_id),
                change_id=str(change_id),
                reason=decision.reason,
            )
            raise PolicyViolation(f"Deployment blocked: {decision.reason}", decision.details)

        now = datetime.now(timezone.utc)
        updates: dict[str, Any] = {
            "status": ChangeStatus.DEPLOYED.value,
            "deployed_at": now,
            "updated_at": now,
        }
        if change.approved_at is None:
            updates["approved_by"] = deployed_by
            updates["approved_at"] = now

        row = await self._store.transition_change_request(
            project_id,
            change_id,
            from_statuses=(ChangeStatus.APPROVED.value,),
            updates=updates,
        )
        if row is None:
            raise PolicyViolation(
                "Deployment blocked: change request status changed concurrently",
                {"expected_status": ChangeStatus.APPROVED.value},
            )
        deployed = map_change_request(row)

        logger.info(
            "change_request_deployed",
            project_id=str(project_id),
            change_id=str(change_id),
            deployed_by=deployed_by,
        )

        await self._audit.record(
            project_id=project_id,
            actor_id=deployed_by,
            action="deploy_change",
            category=ActionCategory.DEPLOYMENT,
            resource_type="ai_change_request",
            resource_id=change_id,
            before={"status": change.status.value},
            after={"status": ChangeStatus.DEPLOYED.value, "deployed_at": now},
        )

        if self._refresh_baseline_on_deploy and self._baselines is not None:
            try:
                await self._refresh_baseline(project_id, deployed, deployed_by)
            except PersistenceFailure as e:
                # Deploy already committed; a failed refresh leaves the previous baseline current
                logger.error(
                    "baseline_refresh_failed",
                    project_id=str(project_id),
                    change_id=str(change_id),
                    error=str(e),
                )

        return True

    async def _refresh_baseline(
        self, project_id: UUID, change: ChangeRequest, deployed_by: str
    ) -> None:
        """Promote the deployed change's evaluated metrics to the current baseline."""
        gate_row = await self._store.get_latest_evaluation_gate(change.id)
        if gate_row is None:
            return
        gate = map_evaluation_gate(gate_row)
        await self._baselines.establish_baseline(
            project_id,
            BASELINE_FOR_CHANGE[change.change_type],
            gate.proposed_metrics,
            change.proposed_config,
            deployed_by,
        )

    async def rollback_change(
        self,
        project_id: UUID,
        change_id: UUID,
        reason: str,
        rolled_back_by: str,
    ) -> bool:
        """Roll back a deployed change.

        Raises:
            ValidationError: If no reason is given
            NotFoundError: If the change request does not exist
            PolicyViolation: If the change is not currently deployed
        """
        if not reason or not reason.strip():
            raise ValidationError("A rollback reason is required")

        change = await self._require(project_id, change_id)
        now = datetime.now(timezone.utc)

        row = await self._store.transition_change_request(
            project_id,
            change_id,
            from_statuses=(ChangeStatus.DEPLOYED.value,),
            updates={
                "status": ChangeStatus.ROLLED_BACK.value,
                "rolled_back_at": now,
                "rollback_reason": reason,
                "updated_at": now,
            },
        )
        if row is None:
            raise PolicyViolation(
                "Only deployed changes can be rolled back",
                {"current_status": change.status.value},
            )

        logger.info(
            "change_request_rolled_back",
            project_id=str(project_id),
            change_id=str(change_id),
            rolled_back_by=rolled_back_by,
        )

        await self._audit.record(
            project_id=project_id,
            actor_id=rolled_back_by,
            action="rollback_change",
            category=ActionCategory.ROLLBACK,
            resource_type="ai_change_request",
            resource_id=change_id,
            before={"status": change.status.value},
            after={"status": ChangeStatus.ROLLED_BACK.value, "reason": reason},
            justification=reason,
        )

        return True
