"""Unit tests for regression severity classification."""

import pytest

from governance.models import AlertSeverity, AlertType, RegressionThresholds
from governance.services.regression_service import classify_regressions


@pytest.fixture
def thresholds():
    return RegressionThresholds()


def _by_type(findings):
    return {f.alert_type: f for f in findings}


class TestClassifyRegressions:
    def test_no_change_no_findings(self, baseline_metrics, thresholds):
        assert classify_regressions(baseline_metrics, baseline_metrics, thresholds) == []

    def test_latency_spike_critical(self, baseline_metrics, metrics_factory, thresholds):
        findings = classify_regressions(
            baseline_metrics, metrics_factory(avg_latency_ms=410), thresholds
        )

        assert len(findings) == 1
        finding = findings[0]
        assert finding.alert_type == AlertType.LATENCY_SPIKE
        assert finding.severity == AlertSeverity.CRITICAL
        assert finding.metric_name == "latency_ms"
        assert finding.delta_percent == pytest.approx(105)
        assert finding.threshold_exceeded == pytest.approx(100)

    def test_latency_warning_is_medium(self, baseline_metrics, metrics_factory, thresholds):
        findings = classify_regressions(
            baseline_metrics, metrics_factory(avg_latency_ms=300), thresholds
        )

        assert findings[0].severity == AlertSeverity.MEDIUM
        assert findings[0].threshold_exceeded == pytest.approx(50)

    def test_latency_below_warning_ignored(self, baseline_metrics, metrics_factory, thresholds):
        assert classify_regressions(
            baseline_metrics, metrics_factory(avg_latency_ms=290), thresholds
        ) == []

    def test_precision_drop_tiers(self, baseline_metrics, metrics_factory, thresholds):
        medium = classify_regressions(baseline_metrics, metrics_factory(precision=0.75), thresholds)
        critical = classify_regressions(baseline_metrics, metrics_factory(precision=0.70), thresholds)

        assert medium[0].alert_type == AlertType.PRECISION_DROP
        assert medium[0].severity == AlertSeverity.MEDIUM
        assert critical[0].severity == AlertSeverity.CRITICAL
        assert critical[0].delta_percent == pytest.approx(-12.5)
        assert critical[0].threshold_exceeded == pytest.approx(-10)

    def test_recall_drop(self, baseline_metrics, metrics_factory, thresholds):
        findings = classify_regressions(baseline_metrics, metrics_factory(recall=0.60), thresholds)

        assert findings[0].alert_type == AlertType.RECALL_DROP
        assert findings[0].severity == AlertSeverity.CRITICAL

    def test_ndcg_drop_is_quality_drift(self, baseline_metrics, metrics_factory, thresholds):
        findings = classify_regressions(baseline_metrics, metrics_factory(ndcg=0.65), thresholds)

        assert findings[0].alert_type == AlertType.QUALITY_DRIFT
        assert findings[0].metric_name == "ndcg"
        assert findings[0].severity == AlertSeverity.MEDIUM

    def test_cost_tiers_top_out_at_high(self, baseline_metrics, metrics_factory, thresholds):
        medium = classify_regressions(baseline_metrics, metrics_factory(avg_cost_usd=0.0125), thresholds)
        high = classify_regressions(baseline_metrics, metrics_factory(avg_cost_usd=0.05), thresholds)

        assert medium[0].alert_type == AlertType.COST_ANOMALY
        assert medium[0].severity == AlertSeverity.MEDIUM
        assert high[0].severity == AlertSeverity.HIGH

    def test_zero_baseline_skips_metric(self, metrics_factory, thresholds):
        baseline = metrics_factory(avg_cost_usd=0, avg_latency_ms=0, precision=0)
        current = metrics_factory(avg_cost_usd=1, avg_latency_ms=1000, precision=0)

        assert classify_regressions(baseline, current, thresholds) == []

    def test_independent_metrics_each_produce_finding(self, baseline_metrics, metrics_factory, thresholds):
        current = metrics_factory(precision=0.60, avg_latency_ms=500, avg_cost_usd=0.02)

        findings = _by_type(classify_regressions(baseline_metrics, current, thresholds))

        assert set(findings) == {
            AlertType.PRECISION_DROP,
            AlertType.LATENCY_SPIKE,
            AlertType.COST_ANOMALY,
        }

    def test_custom_thresholds(self, baseline_metrics, metrics_factory):
        strict = RegressionThresholds(latency_warning=1.1, latency_critical=1.2)

        findings = classify_regressions(baseline_metrics, metrics_factory(avg_latency_ms=250), strict)

        assert findings[0].severity == AlertSeverity.CRITICAL
