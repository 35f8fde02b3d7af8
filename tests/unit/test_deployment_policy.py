"""Unit tests for deployment policies."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from governance.services.deployment_policy import AllGatesPolicy, LatestGatePolicy


def _change_row(project_id, change_id, status="approved", requires_approval=False, approved_at=None):
    return {
        "id": change_id,
        "project_id": project_id,
        "change_type": "retrieval_config",
        "proposed_by": "alice",
        "title": "t",
        "current_config": {},
        "proposed_config": {},
        "status": status,
        "is_breaking_change": requires_approval,
        "requires_approval": requires_approval,
        "created_at": datetime.now(timezone.utc),
        "approved_at": approved_at,
    }


def _gate_row(change_id, passed, minutes=0, metrics=None):
    return {
        "id": uuid4(),
        "change_request_id": change_id,
        "baseline_metrics": metrics,
        "proposed_metrics": metrics,
        "passed": passed,
        "failure_reasons": [] if passed else ["Precision dropped by 2.00%"],
        "precision_delta": 0.0 if passed else -0.02,
        "recall_delta": 0.0,
        "ndcg_delta": 0.0,
        "latency_delta_ms": 0.0,
        "cost_delta_usd": 0.0,
        "threshold_config": {},
        "evaluated_at": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }


@pytest.fixture
def seed(store, project_id, baseline_metrics):
    metrics = baseline_metrics.model_dump(mode="json")

    def _seed(status="approved", gates=(), requires_approval=False, approved_at=None):
        change_id = uuid4()
        store.change_requests[change_id] = _change_row(
            project_id, change_id, status, requires_approval, approved_at
        )
        for i, passed in enumerate(gates):
            gate = _gate_row(change_id, passed, minutes=i, metrics=metrics)
            store.evaluation_gates[gate["id"]] = gate
        return change_id

    return _seed


class TestLatestGatePolicy:
    @pytest.mark.asyncio
    async def test_missing_change(self, store, project_id):
        decision = await LatestGatePolicy(store).check(project_id, uuid4())

        assert decision.can_deploy is False
        assert decision.reason == "Change request not found"

    @pytest.mark.asyncio
    async def test_not_approved(self, store, project_id, seed):
        change_id = seed(status="rejected", gates=[False])

        decision = await LatestGatePolicy(store).check(project_id, change_id)

        assert decision.can_deploy is False
        assert decision.reason == "Change must be approved before deployment"
        assert decision.details == {"current_status": "rejected"}

    @pytest.mark.asyncio
    async def test_no_evaluation(self, store, project_id, seed):
        change_id = seed(gates=[])

        decision = await LatestGatePolicy(store).check(project_id, change_id)

        assert decision.reason == "No evaluation found - evaluation is mandatory"

    @pytest.mark.asyncio
    async def test_latest_failed(self, store, project_id, seed):
        change_id = seed(gates=[True, False])

        decision = await LatestGatePolicy(store).check(project_id, change_id)

        assert decision.can_deploy is False
        assert decision.reason == "Evaluation failed"
        assert decision.details["failure_reasons"] == ["Precision dropped by 2.00%"]
        assert decision.details["metrics"]["precision_delta"] == pytest.approx(-0.02)

    @pytest.mark.asyncio
    async def test_latest_passed_after_earlier_failure(self, store, project_id, seed):
        change_id = seed(gates=[False, True])

        decision = await LatestGatePolicy(store).check(project_id, change_id)

        assert decision.can_deploy is True
        assert decision.reason == "Evaluation passed"
        assert "gate_id" in decision.details

    @pytest.mark.asyncio
    async def test_breaking_change_without_approval(self, store, project_id, seed):
        change_id = seed(gates=[True], requires_approval=True)

        decision = await LatestGatePolicy(store).check(project_id, change_id)

        assert decision.can_deploy is False
        assert decision.reason == "Breaking change requires explicit approval"

    @pytest.mark.asyncio
    async def test_breaking_change_with_approval(self, store, project_id, seed):
        change_id = seed(
            gates=[True], requires_approval=True, approved_at=datetime.now(timezone.utc)
        )

        decision = await LatestGatePolicy(store).check(project_id, change_id)

        assert decision.can_deploy is True


class TestAllGatesPolicy:
    @pytest.mark.asyncio
    async def test_any_failed_gate_blocks(self, store, project_id, seed):
        change_id = seed(gates=[False, True])

        decision = await AllGatesPolicy(store).check(project_id, change_id)

        assert decision.can_deploy is False
        assert decision.reason == "Evaluation failed"

    @pytest.mark.asyncio
    async def test_all_passed(self, store, project_id, seed):
        change_id = seed(gates=[True, True])

        decision = await AllGatesPolicy(store).check(project_id, change_id)

        assert decision.can_deploy is True
