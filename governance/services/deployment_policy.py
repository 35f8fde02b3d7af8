"""Deployment policies: decide whether an evaluated change may be deployed."""

from __future__ import annotations

from typing import Optional, Protocol
from uuid import UUID

from governance.models import ChangeRequest, ChangeStatus, DeploymentDecision, EvaluationGate
from governance.repositories.base import GovernanceStore
from governance.repositories.mappers import map_change_request, map_evaluation_gate


class DeploymentPolicy(Protocol):
    """Predicate consulted by ``deploy_change`` before any mutation."""

    async def check(self, project_id: UUID, change_id: UUID) -> DeploymentDecision:
        """Return whether the change may be deployed, and why."""


def _gate_metrics(gate: EvaluationGate) -> dict[str, float]:
    return {
        "precision_delta": gate.precision_delta,
        "recall_delta": gate.recall_delta,
        "ndcg_delta": gate.ndcg_delta,
        "latency_delta_ms": gate.latency_delta_ms,
    }


class LatestGatePolicy:
    """Deployable when the change is approved and its latest evaluation passed.

    Breaking changes additionally need an explicit approval stamp.
    """

    def __init__(self, store: GovernanceStore):
        self._store = store

    async def _gates(self, change_id: UUID) -> list[EvaluationGate]:
        row = await self._store.get_latest_evaluation_gate(change_id)
        return [map_evaluation_gate(row)] if row else []

    def _failing_gate(self, gates: list[EvaluationGate]) -> Optional[EvaluationGate]:
        return gates[-1] if not gates[-1].passed else None

    async def check(self, project_id: UUID, change_id: UUID) -> DeploymentDecision:
        row = await self._store.get_change_request(project_id, change_id)
        if row is None:
            return DeploymentDecision(can_deploy=False, reason="Change request not found")
        change: ChangeRequest = map_change_request(row)

        if change.status != ChangeStatus.APPROVED:
            return DeploymentDecision(
                can_deploy=False,
                reason="Change must be approved before deployment",
                details={"current_status": change.status.value},
            )

        gates = await self._gates(change_id)
        if not gates:
            return DeploymentDecision(
                can_deploy=False,
                reason="No evaluation found - evaluation is mandatory",
            )

        failing = self._failing_gate(gates)
        if failing is not None:
            return DeploymentDecision(
                can_deploy=False,
                reason="Evaluation failed",
                details={
                    "gate_id": str(failing.id),
                    "failure_reasons": failing.failure_reasons,
                    "metrics": _gate_metrics(failing),
                },
            )

        if change.requires_approval and change.approved_at is None:
            return DeploymentDecision(
                can_deploy=False,
                reason="Breaking change requires explicit approval",
            )

        latest = gates[-1]
        return DeploymentDecision(
            can_deploy=True,
            reason="Evaluation passed",
            details={
                "gate_id": str(latest.id),
                "evaluated_at": latest.evaluated_at.isoformat(),
                "metrics": _gate_metrics(latest),
            },
        )


class AllGatesPolicy(LatestGatePolicy):
    """Stricter variant: every recorded evaluation must have passed."""

    async def _gates(self, change_id: UUID) -> list[EvaluationGate]:
        rows = await self._store.list_evaluation_gates(change_id)
        return [map_evaluation_gate(r) for r in rows]

    def _failing_gate(self, gates: list[EvaluationGate]) -> Optional[EvaluationGate]:
        return next((g for g in gates if not g.passed), None)
