"""Unit tests for the change request lifecycle."""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from governance.errors import NotFoundError, PersistenceFailure, PolicyViolation, ValidationError
from governance.models import (
    ActionCategory,
    BaselineType,
    ChangeStatus,
    ChangeType,
    DeploymentDecision,
    EvaluationThresholds,
)


async def _create(engine, project_id, breaking=False, change_type=ChangeType.RETRIEVAL_CONFIG):
    return await engine.change_requests.create_change_request(
        project_id,
        change_type=change_type,
        proposed_by="alice",
        title="Raise top_k to 8",
        current_config={"top_k": 5},
        proposed_config={"top_k": 8},
        is_breaking_change=breaking,
    )


@pytest.fixture
def passing_metrics(metrics_factory):
    return metrics_factory(
        precision=0.82, recall=0.77, ndcg=0.71, avg_latency_ms=250, avg_cost_usd=0.011
    )


class TestCreateChangeRequest:
    @pytest.mark.asyncio
    async def test_starts_pending(self, engine, project_id, store):
        change = await _create(engine, project_id)

        assert change.status == ChangeStatus.PENDING
        assert change.requires_approval is False
        assert change.proposed_config == {"top_k": 8}
        assert store.audit_entries[-1]["action"] == "create_change_request"
        assert store.audit_entries[-1]["action_category"] == ActionCategory.CHANGE_REQUEST.value

    @pytest.mark.asyncio
    async def test_breaking_change_requires_approval(self, engine, project_id):
        change = await _create(engine, project_id, breaking=True)
        assert change.requires_approval is True

    @pytest.mark.asyncio
    async def test_empty_title_rejected(self, engine, project_id, store):
        with pytest.raises(ValidationError):
            await engine.change_requests.create_change_request(
                project_id,
                change_type=ChangeType.PROMPT_TEMPLATE,
                proposed_by="alice",
                title="  ",
                current_config={},
                proposed_config={},
            )
        assert store.change_requests == {}

    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self, engine, project_id):
        with pytest.raises(NotFoundError):
            await engine.change_requests.get_change_request(project_id, uuid4())

    @pytest.mark.asyncio
    async def test_scoped_to_project(self, engine, project_id):
        change = await _create(engine, project_id)
        with pytest.raises(NotFoundError):
            await engine.change_requests.get_change_request(uuid4(), change.id)

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, engine, project_id, baseline_metrics, passing_metrics):
        first = await _create(engine, project_id)
        await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, first.id, baseline_metrics, passing_metrics
        )

        pending = await engine.change_requests.list_change_requests(project_id, ChangeStatus.PENDING)
        everything = await engine.change_requests.list_change_requests(project_id)

        assert len(pending) == 1
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_unknown_change_type_rejected(self, engine, project_id, store):
        with pytest.raises(ValidationError, match="change_type"):
            await _create(engine, project_id, change_type="model_swap")

        assert store.change_requests == {}


class TestEvaluateChangeRequest:
    @pytest.mark.asyncio
    async def test_failing_gate_rejects(self, engine, project_id, baseline_metrics, metrics_factory):
        change = await _create(engine, project_id)

        gate = await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, metrics_factory(precision=0.78)
        )

        assert gate.passed is False
        assert gate.failure_reasons == ["Precision dropped by 2.00%"]
        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.REJECTED
        assert updated.evaluated_at is not None

    @pytest.mark.asyncio
    async def test_passing_gate_approves(self, engine, project_id, baseline_metrics, passing_metrics, store):
        change = await _create(engine, project_id)

        gate = await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics, evaluated_by="ci"
        )

        assert gate.passed is True
        assert gate.failure_reasons == []
        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.APPROVED
        entry = store.audit_entries[-1]
        assert entry["action"] == "evaluation_passed"
        assert entry["actor_id"] == "ci"
        assert entry["resource_type"] == "ai_evaluation_gate"

    @pytest.mark.asyncio
    async def test_gate_records_thresholds_used(self, engine, project_id, baseline_metrics, passing_metrics):
        change = await _create(engine, project_id)
        custom = EvaluationThresholds(max_latency_increase_ms=10)

        gate = await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics, thresholds=custom
        )

        assert gate.passed is False
        assert gate.threshold_config == custom

    @pytest.mark.asyncio
    async def test_re_evaluation_keeps_history(self, engine, project_id, baseline_metrics, passing_metrics, metrics_factory):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, metrics_factory(precision=0.5)
        )
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )

        gates = await engine.change_requests.list_evaluation_gates(project_id, change.id)

        assert [g.passed for g in gates] == [False, True]
        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.APPROVED

    @pytest.mark.asyncio
    async def test_cannot_evaluate_deployed_change(self, engine, project_id, baseline_metrics, passing_metrics):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )
        await engine.change_requests.deploy_change(project_id, change.id, "bob")

        with pytest.raises(PolicyViolation):
            await engine.change_requests.evaluate_change_request(
                project_id, change.id, baseline_metrics, passing_metrics
            )


class TestDeployChange:
    @pytest.mark.asyncio
    async def test_deploy_after_failed_gate_blocked(self, engine, project_id, baseline_metrics, metrics_factory):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, metrics_factory(precision=0.78)
        )

        with pytest.raises(PolicyViolation) as exc_info:
            await engine.change_requests.deploy_change(project_id, change.id, "bob")

        assert "approved" in exc_info.value.reason
        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.REJECTED

    @pytest.mark.asyncio
    async def test_deploy_pending_blocked(self, engine, project_id):
        change = await _create(engine, project_id)

        with pytest.raises(PolicyViolation):
            await engine.change_requests.deploy_change(project_id, change.id, "bob")

        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.PENDING

    @pytest.mark.asyncio
    async def test_deploy_missing_raises_not_found(self, engine, project_id):
        with pytest.raises(NotFoundError):
            await engine.change_requests.deploy_change(project_id, uuid4(), "bob")

    @pytest.mark.asyncio
    async def test_deploy_approved_change(self, engine, project_id, baseline_metrics, passing_metrics, store):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )

        assert await engine.change_requests.deploy_change(project_id, change.id, "bob") is True

        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.DEPLOYED
        assert updated.deployed_at is not None
        assert updated.approved_by == "bob"
        deploy_entries = [e for e in store.audit_entries if e["action"] == "deploy_change"]
        assert deploy_entries[0]["before_state"] == {"status": "approved"}

    @pytest.mark.asyncio
    async def test_deploy_refreshes_baseline(self, engine, project_id, baseline_metrics, passing_metrics):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )
        await engine.change_requests.deploy_change(project_id, change.id, "bob")

        baseline = await engine.baselines.get_current_baseline(project_id, BaselineType.RETRIEVAL)

        assert baseline is not None
        assert baseline.metrics.precision == pytest.approx(0.82)
        assert baseline.config == {"top_k": 8}
        assert baseline.established_by == "bob"

    @pytest.mark.asyncio
    async def test_prompt_change_refreshes_overall_baseline(self, engine, project_id, baseline_metrics, passing_metrics):
        change = await _create(engine, project_id, change_type=ChangeType.PROMPT_TEMPLATE)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )
        await engine.change_requests.deploy_change(project_id, change.id, "bob")

        assert await engine.baselines.get_current_baseline(project_id, BaselineType.OVERALL) is not None
        assert await engine.baselines.get_current_baseline(project_id, BaselineType.RETRIEVAL) is None

    @pytest.mark.asyncio
    async def test_refresh_disabled(self, store, settings, project_id, baseline_metrics, passing_metrics):
        from governance.engine import GovernanceEngine

        engine = GovernanceEngine(store, settings.model_copy(update={"refresh_baseline_on_deploy": False}))
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )
        await engine.change_requests.deploy_change(project_id, change.id, "bob")

        assert store.baselines == {}

    @pytest.mark.asyncio
    async def test_breaking_change_needs_explicit_approval(self, engine, project_id, baseline_metrics, passing_metrics):
        change = await _create(engine, project_id, breaking=True)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )

        with pytest.raises(PolicyViolation) as exc_info:
            await engine.change_requests.deploy_change(project_id, change.id, "bob")
        assert exc_info.value.reason == "Deployment blocked: Breaking change requires explicit approval"

        await engine.change_requests.approve_change_request(
            project_id, change.id, "carol", justification="Reviewed recall impact"
        )
        assert await engine.change_requests.deploy_change(project_id, change.id, "bob") is True

        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.approved_by == "carol"

    @pytest.mark.asyncio
    async def test_concurrent_deploys_only_one_succeeds(self, engine, project_id, baseline_metrics, passing_metrics):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )

        results = await asyncio.gather(
            engine.change_requests.deploy_change(project_id, change.id, "bob"),
            engine.change_requests.deploy_change(project_id, change.id, "dave"),
            return_exceptions=True,
        )

        assert results.count(True) == 1
        assert sum(isinstance(r, PolicyViolation) for r in results) == 1

    @pytest.mark.asyncio
    async def test_custom_policy_is_consulted(self, store, settings, project_id):
        from governance.engine import GovernanceEngine

        policy = AsyncMock()
        policy.check.return_value = DeploymentDecision(can_deploy=False, reason="Change freeze")
        engine = GovernanceEngine(store, settings, deployment_policy=policy)
        change = await _create(engine, project_id)

        with pytest.raises(PolicyViolation, match="Change freeze"):
            await engine.change_requests.deploy_change(project_id, change.id, "bob")
        policy.check.assert_awaited_once_with(project_id, change.id)

    @pytest.mark.asyncio
    async def test_baseline_refresh_failure_keeps_deploy(
        self, engine, project_id, baseline_metrics, passing_metrics, monkeypatch
    ):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )
        monkeypatch.setattr(
            engine.baselines,
            "establish_baseline",
            AsyncMock(side_effect=PersistenceFailure("Governance store unavailable")),
        )

        assert await engine.change_requests.deploy_change(project_id, change.id, "bob") is True

        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.DEPLOYED
        assert await engine.baselines.get_current_baseline(project_id, BaselineType.RETRIEVAL) is None


class TestApproveChangeRequest:
    @pytest.mark.asyncio
    async def test_cannot_approve_pending(self, engine, project_id):
        change = await _create(engine, project_id)

        with pytest.raises(PolicyViolation):
            await engine.change_requests.approve_change_request(project_id, change.id, "carol")

    @pytest.mark.asyncio
    async def test_approval_is_audited(self, engine, project_id, baseline_metrics, passing_metrics, store):
        change = await _create(engine, project_id, breaking=True)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )

        approved = await engine.change_requests.approve_change_request(
            project_id, change.id, "carol", justification="ok"
        )

        assert approved.approved_by == "carol"
        entry = store.audit_entries[-1]
        assert entry["action_category"] == ActionCategory.APPROVAL.value
        assert entry["justification"] == "ok"

    @pytest.mark.asyncio
    async def test_reevaluation_clears_earlier_approval(
        self, engine, project_id, baseline_metrics, passing_metrics, metrics_factory
    ):
        change = await _create(engine, project_id, breaking=True)
        requests = engine.change_requests
        await requests.evaluate_change_request(project_id, change.id, baseline_metrics, passing_metrics)
        await requests.approve_change_request(project_id, change.id, "carol")

        await requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, metrics_factory(precision=0.5)
        )
        await requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, metrics_factory(precision=0.81)
        )

        reevaluated = await requests.get_change_request(project_id, change.id)
        assert reevaluated.status == ChangeStatus.APPROVED
        assert reevaluated.approved_at is None
        assert reevaluated.approved_by is None

        decision = await requests.check_deployment(project_id, change.id)
        assert decision.can_deploy is False
        assert decision.reason == "Breaking change requires explicit approval"
        with pytest.raises(PolicyViolation):
            await requests.deploy_change(project_id, change.id, "bob")


class TestRollbackChange:
    @pytest.mark.asyncio
    async def test_rollback_deployed_change(self, engine, project_id, baseline_metrics, passing_metrics, store):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )
        await engine.change_requests.deploy_change(project_id, change.id, "bob")

        assert await engine.change_requests.rollback_change(
            project_id, change.id, "Recall dropped in prod", "bob"
        ) is True

        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.ROLLED_BACK
        assert updated.rollback_reason == "Recall dropped in prod"
        assert updated.rolled_back_at is not None
        assert store.audit_entries[-1]["justification"] == "Recall dropped in prod"

    @pytest.mark.asyncio
    async def test_rollback_twice_rejected(self, engine, project_id, baseline_metrics, passing_metrics):
        change = await _create(engine, project_id)
        await engine.change_requests.evaluate_change_request(
            project_id, change.id, baseline_metrics, passing_metrics
        )
        await engine.change_requests.deploy_change(project_id, change.id, "bob")
        await engine.change_requests.rollback_change(project_id, change.id, "bad", "bob")

        with pytest.raises(PolicyViolation):
            await engine.change_requests.rollback_change(project_id, change.id, "again", "bob")

    @pytest.mark.asyncio
    async def test_rollback_pending_rejected(self, engine, project_id):
        change = await _create(engine, project_id)

        with pytest.raises(PolicyViolation):
            await engine.change_requests.rollback_change(project_id, change.id, "why", "bob")

        updated = await engine.change_requests.get_change_request(project_id, change.id)
        assert updated.status == ChangeStatus.PENDING

    @pytest.mark.asyncio
    async def test_rollback_requires_reason(self, engine, project_id):
        change = await _create(engine, project_id)

        with pytest.raises(ValidationError):
            await engine.change_requests.rollback_change(project_id, change.id, "", "bob")


class TestAuditFailure:
    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_operation(self, engine, project_id, store):
        store.insert_audit_entry = AsyncMock(side_effect=RuntimeError("audit table locked"))

        change = await _create(engine, project_id)

        assert change.status == ChangeStatus.PENDING
        assert change.id in store.change_requests
        assert engine.audit.failure_count == 1
