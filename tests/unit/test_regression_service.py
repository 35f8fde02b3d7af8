"""Unit tests for regression detection and alert handling."""

from uuid import uuid4

import pytest

from governance.errors import NotFoundError
from governance.models import AlertSeverity, AlertType, BaselineType


@pytest.fixture
async def with_baseline(engine, project_id, baseline_metrics):
    return await engine.baselines.establish_baseline(
        project_id, BaselineType.RETRIEVAL, baseline_metrics, {}, "alice"
    )


class TestDetectRegressions:
    @pytest.mark.asyncio
    async def test_no_baseline_is_noop(self, engine, project_id, metrics_factory, store):
        alerts = await engine.regressions.detect_regressions(
            project_id, metrics_factory(avg_latency_ms=10_000)
        )

        assert alerts == []
        assert store.alerts == {}

    @pytest.mark.asyncio
    async def test_latency_spike_raises_critical_alert(self, engine, project_id, metrics_factory, with_baseline, store):
        alerts = await engine.regressions.detect_regressions(
            project_id, metrics_factory(avg_latency_ms=410)
        )

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == AlertType.LATENCY_SPIKE
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.delta_percent == pytest.approx(105)
        assert alert.baseline_value == 200
        assert alert.current_value == 410
        assert alert.is_acknowledged is False
        assert alert.metadata["baseline_id"] == str(with_baseline.id)
        assert alert.id in store.alerts

        entry = store.audit_entries[-1]
        assert entry["action"] == "regression_detected"
        assert entry["actor_id"] == "system"

    @pytest.mark.asyncio
    async def test_healthy_metrics_raise_nothing(self, engine, project_id, baseline_metrics, with_baseline):
        assert await engine.regressions.detect_regressions(project_id, baseline_metrics) == []

    @pytest.mark.asyncio
    async def test_other_baseline_type_not_used(self, engine, project_id, metrics_factory, with_baseline):
        alerts = await engine.regressions.detect_regressions(
            project_id, metrics_factory(avg_latency_ms=410), baseline_type=BaselineType.CHUNKING
        )
        assert alerts == []

    @pytest.mark.asyncio
    async def test_related_change_is_linked(self, engine, project_id, metrics_factory, with_baseline):
        change_id = uuid4()

        alerts = await engine.regressions.detect_regressions(
            project_id, metrics_factory(recall=0.5), related_change_id=change_id
        )

        assert alerts[0].related_change_id == change_id


class TestAlertHandling:
    @pytest.mark.asyncio
    async def test_acknowledge_then_resolve(self, engine, project_id, metrics_factory, with_baseline):
        [alert] = await engine.regressions.detect_regressions(
            project_id, metrics_factory(avg_latency_ms=410)
        )

        acked = await engine.regressions.acknowledge_alert(project_id, alert.id, "oncall")
        assert acked.is_acknowledged is True
        assert acked.acknowledged_by == "oncall"
        assert acked.is_resolved is False

        resolved = await engine.regressions.resolve_alert(
            project_id, alert.id, "Index rebuilt", "oncall"
        )
        assert resolved.is_resolved is True
        assert resolved.resolution_notes == "Index rebuilt"
        assert resolved.resolved_at is not None

    @pytest.mark.asyncio
    async def test_list_alerts_hides_resolved_by_default(self, engine, project_id, metrics_factory, with_baseline):
        alerts = await engine.regressions.detect_regressions(
            project_id, metrics_factory(avg_latency_ms=410, precision=0.5)
        )
        await engine.regressions.resolve_alert(project_id, alerts[0].id, "fixed", "oncall")

        unresolved = await engine.regressions.list_alerts(project_id)
        everything = await engine.regressions.list_alerts(project_id, unresolved_only=False)

        assert len(unresolved) == 1
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_unknown_alert_not_found(self, engine, project_id):
        with pytest.raises(NotFoundError):
            await engine.regressions.acknowledge_alert(project_id, uuid4(), "oncall")
