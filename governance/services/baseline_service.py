"""Quality baseline management."""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from governance.errors import coerce_enum
from governance.models import ActionCategory, BaselineType, MetricsSnapshot, QualityBaseline
from governance.repositories.base import GovernanceStore
from governance.repositories.mappers import dump_metrics, map_baseline
from governance.services.audit_service import AuditTrail

logger = structlog.get_logger(__name__)


class BaselineService:
    """Holds the single current baseline per (project, baseline type) plus history."""

    def __init__(self, store: GovernanceStore, audit: AuditTrail):
        self._store = store
        self._audit = audit

    async def establish_baseline(
        self,
        project_id: UUID,
        baseline_type: BaselineType,
        metrics: MetricsSnapshot,
        model_config: dict[str, Any],
        established_by: str,
    ) -> QualityBaseline:
        """Record a new current baseline, demoting the previous one atomically.

        Args:
            project_id: Owning project
            baseline_type: Category the baseline covers
            metrics: Reference metrics
            model_config: Configuration that produced the metrics
            established_by: Actor identity

        Returns:
            The new current baseline
        """
        baseline_type = coerce_enum(BaselineType, baseline_type, "baseline_type")
        previous = await self._store.get_current_baseline(project_id, baseline_type.value)

        row = await self._store.insert_current_baseline(
            {
                "id": uuid4(),
                "project_id": project_id,
                "baseline_type": baseline_type.value,
                "metrics": dump_metrics(metrics),
                "sample_size": metrics.sample_size,
                "model_config": model_config or {},
                "is_current": True,
                "established_at": datetime.now(timezone.utc),
                "established_by": established_by,
            }
        )
        baseline = map_baseline(row)

        logger.info(
            "baseline_established",
            project_id=str(project_id),
            baseline_id=str(baseline.id),
            baseline_type=baseline_type.value,
            sample_size=metrics.sample_size,
        )

        await self._audit.record(
            project_id=project_id,
            actor_id=established_by,
            action="establish_baseline",
            category=ActionCategory.BASELINE_UPDATE,
            resource_type="ai_quality_baseline",
            resource_id=baseline.id,
            before={"baseline_id": previous["id"]} if previous else None,
            after={"baseline_type": baseline_type.value, "metrics": dump_metrics(metrics)},
        )

        return baseline

    async def get_current_baseline(
        self, project_id: UUID, baseline_type: BaselineType
    ) -> Optional[QualityBaseline]:
        """Return the current baseline, or None when nothing has been established."""
        baseline_type = coerce_enum(BaselineType, baseline_type, "baseline_type")
        row = await self._store.get_current_baseline(project_id, baseline_type.value)
        return map_baseline(row) if row else None

    async def list_baselines(
        self, project_id: UUID, baseline_type: Optional[BaselineType] = None
    ) -> list[QualityBaseline]:
        type_value = (
            coerce_enum(BaselineType, baseline_type, "baseline_type").value if baseline_type else None
        )
        rows = await self._store.list_baselines(project_id, type_value)
        return [map_baseline(r) for r in rows]
