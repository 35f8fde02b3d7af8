"""Evaluation gate scoring: compare proposed metrics against a baseline."""

from __future__ import annotations

from dataclasses import dataclass, field

from governance.models import EvaluationThresholds, MetricsSnapshot


@dataclass
class GateScore:
    """Deltas and verdict for one evaluation attempt."""

    precision_delta: float
    recall_delta: float
    ndcg_delta: float
    latency_delta_ms: float
    cost_delta_usd: float
    cost_increase_percent: float
    failure_reasons: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failure_reasons


def _drop_reason(label: str, delta: float, minimum: float) -> str:
    if delta < 0:
        return f"{label} dropped by {abs(delta) * 100:.2f}%"
    return f"{label} improved by {delta * 100:.2f}% (min: {minimum * 100:.2f}%)"


def score_change(
    baseline: MetricsSnapshot,
    proposed: MetricsSnapshot,
    thresholds: EvaluationThresholds,
) -> GateScore:
    """Score a proposed configuration against a baseline.

    Deltas are additive (proposed - baseline). Failure reasons accumulate:
    a change can fail on several metrics at once.
    """
    precision_delta = proposed.precision - baseline.precision
    recall_delta = proposed.recall - baseline.recall
    ndcg_delta = proposed.ndcg - baseline.ndcg
    latency_delta_ms = proposed.avg_latency_ms - baseline.avg_latency_ms
    cost_delta_usd = proposed.avg_cost_usd - baseline.avg_cost_usd
    cost_increase_percent = (
        cost_delta_usd / baseline.avg_cost_usd * 100 if baseline.avg_cost_usd > 0 else 0.0
    )

    failure_reasons: list[str] = []

    if precision_delta < thresholds.min_precision:
        failure_reasons.append(_drop_reason("Precision", precision_delta, thresholds.min_precision))
    if recall_delta < thresholds.min_recall:
        failure_reasons.append(_drop_reason("Recall", recall_delta, thresholds.min_recall))
    if latency_delta_ms > thresholds.max_latency_increase_ms:
        failure_reasons.append(
            f"Latency increased by {latency_delta_ms:g}ms "
            f"(max: {thresholds.max_latency_increase_ms:g}ms)"
        )
    if cost_increase_percent > thresholds.max_cost_increase_percent:
        failure_reasons.append(
            f"Cost increased by {cost_increase_percent:.2f}% "
            f"(max: {thresholds.max_cost_increase_percent:g}%)"
        )

    return GateScore(
        precision_delta=precision_delta,
        recall_delta=recall_delta,
        ndcg_delta=ndcg_delta,
        latency_delta_ms=latency_delta_ms,
        cost_delta_usd=cost_delta_usd,
        cost_increase_percent=cost_increase_percent,
        failure_reasons=failure_reasons,
    )
