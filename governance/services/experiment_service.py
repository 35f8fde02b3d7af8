"""A/B experiment coordination: lifecycle and per-arm running averages."""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from governance.errors import NotFoundError, PolicyViolation, ValidationError, coerce_enum
from governance.models import (
    ABExperiment,
    ActionCategory,
    ExperimentStatus,
    ExperimentWinner,
    MetricsSnapshot,
)
from governance.models.metrics import NUMERIC_METRIC_FIELDS
from governance.repositories.base import GovernanceStore, Row
from governance.repositories.mappers import dump_metrics, load_metrics, map_experiment
from governance.services.audit_service import AuditTrail

logger = structlog.get_logger(__name__)

RESOURCE_TYPE = "ai_ab_experiment"


def update_running_average(
    current: Optional[MetricsSnapshot], sample: MetricsSnapshot
) -> MetricsSnapshot:
    """Fold one sample into an arm's running mean.

    ``sample_size`` on the returned snapshot is the number of samples folded
    in so far.
    """
    if current is None or current.sample_size == 0:
        values = {f: getattr(sample, f) for f in NUMERIC_METRIC_FIELDS}
        return MetricsSnapshot(**values, sample_size=1, timestamp=sample.timestamp)

    n = current.sample_size
    values = {
        f: (getattr(current, f) * n + getattr(sample, f)) / (n + 1) for f in NUMERIC_METRIC_FIELDS
    }
    return MetricsSnapshot(**values, sample_size=n + 1, timestamp=sample.timestamp)


class ExperimentService:
    """Runs the A/B experiment state machine.

    Winner and significance are never computed here; the external analysis
    step supplies them on completion.
    """

    def __init__(self, store: GovernanceStore, audit: AuditTrail):
        self._store = store
        self._audit = audit

    async def get_experiment(self, project_id: UUID, experiment_id: UUID) -> ABExperiment:
        row = await self._store.get_experiment(project_id, experiment_id)
        if row is None:
            raise NotFoundError("experiment", experiment_id)
        return map_experiment(row)

    async def list_experiments(
        self, project_id: UUID, status: Optional[ExperimentStatus] = None
    ) -> list[ABExperiment]:
        rows = await self._store.list_experiments(
            project_id, coerce_enum(ExperimentStatus, status, "status").value if status else None
        )
        return [map_experiment(r) for r in rows]

    async def create_experiment(
        self,
        project_id: UUID,
        experiment_name: str,
        control_model_id: UUID,
        treatment_model_id: UUID,
        created_by: str,
        description: Optional[str] = None,
        control_percentage: int = 50,
        min_sample_size: int = 100,
    ) -> ABExperiment:
        """Create an experiment in ``draft``.

        Raises:
            ValidationError: On empty name, bad split or sample size, or identical arms
            NotFoundError: If either model is not registered in the project
        """
        if not experiment_name or not experiment_name.strip():
            raise ValidationError("Experiment name is required")
        if control_percentage < 0 or control_percentage > 100:
            raise ValidationError("Control percentage must be between 0 and 100")
        if min_sample_size < 1:
            raise ValidationError("Minimum sample size must be at least 1")
        if control_model_id == treatment_model_id:
            raise ValidationError("Control and treatment must be different models")

        for model_id in (control_model_id, treatment_model_id):
            if await self._store.get_model(project_id, model_id) is None:
                raise NotFoundError("model", model_id)

        row = await self._store.insert_experiment(
            {
                "id": uuid4(),
                "project_id": project_id,
                "experiment_name": experiment_name,
                "description": description,
                "control_model_id": control_model_id,
                "treatment_model_id": treatment_model_id,
                "control_percentage": control_percentage,
                "status": ExperimentStatus.DRAFT.value,
                "min_sample_size": min_sample_size,
                "current_sample_size": 0,
                "control_metrics": None,
                "treatment_metrics": None,
                "created_at": datetime.now(timezone.utc),
                "created_by": created_by,
            }
        )
        experiment = map_experiment(row)

        logger.info(
            "experiment_created",
            project_id=str(project_id),
            experiment_id=str(experiment.id),
            control_percentage=control_percentage,
        )
        await self._audit.record(
            project_id=project_id,
            actor_id=created_by,
            action="create_experiment",
            category=ActionCategory.EXPERIMENT,
            resource_type=RESOURCE_TYPE,
            resource_id=experiment.id,
            after={
                "experiment_name": experiment_name,
                "control_model_id": control_model_id,
                "treatment_model_id": treatment_model_id,
                "control_percentage": control_percentage,
            },
        )
        return experiment

    async def _transition(
        self,
        project_id: UUID,
        experiment_id: UUID,
        action: str,
        from_statuses: Collection[ExperimentStatus],
        to_status: ExperimentStatus,
        actor_id: str,
        extra: Optional[Row] = None,
        stamp_start: bool = False,
    ) -> ABExperiment:
        allowed = {s.value for s in from_statuses}

        def mutation(row: Row) -> Row:
            if row["status"] not in allowed:
                raise PolicyViolation(
                    f"Cannot {action} an experiment in status '{row['status']}'",
                    {"current_status": row["status"]},
                )
            updates: Row = {"status": to_status.value, **(extra or {})}
            if stamp_start and row.get("start_date") is None:
                updates["start_date"] = datetime.now(timezone.utc)
            return updates

        result = await self._store.mutate_experiment(project_id, experiment_id, mutation)
        if result is None:
            raise NotFoundError("experiment", experiment_id)
        before, after = result
        experiment = map_experiment(after)

        logger.info(
            f"experiment_{to_status.value}",
            project_id=str(project_id),
            experiment_id=str(experiment_id),
            previous_status=before["status"],
        )
        audit_after: dict[str, Any] = {"status": to_status.value}
        audit_after.update(extra or {})
        await self._audit.record(
            project_id=project_id,
            actor_id=actor_id,
            action=f"{action}_experiment",
            category=ActionCategory.EXPERIMENT,
            resource_type=RESOURCE_TYPE,
            resource_id=experiment_id,
            before={"status": before["status"]},
            after=audit_after,
        )
        return experiment

    async def start_experiment(
        self, project_id: UUID, experiment_id: UUID, started_by: str = "system"
    ) -> ABExperiment:
        """Move a draft or paused experiment to running; start_date is kept on resume."""
        return await self._transition(
            project_id,
            experiment_id,
            "start",
            (ExperimentStatus.DRAFT, ExperimentStatus.PAUSED),
            ExperimentStatus.RUNNING,
            started_by,
            stamp_start=True,
        )

    async def pause_experiment(
        self, project_id: UUID, experiment_id: UUID, paused_by: str = "system"
    ) -> ABExperiment:
        return await self._transition(
            project_id,
            experiment_id,
            "pause",
            (ExperimentStatus.RUNNING,),
            ExperimentStatus.PAUSED,
            paused_by,
        )

    async def complete_experiment(
        self,
        project_id: UUID,
        experiment_id: UUID,
        completed_by: str = "system",
        winner: Optional[ExperimentWinner] = None,
        statistical_significance: Optional[float] = None,
    ) -> ABExperiment:
        """Close a running or paused experiment with the externally computed outcome."""
        if statistical_significance is not None and not 0 <= statistical_significance <= 1:
            raise ValidationError("Statistical significance must be between 0 and 1")

        return await self._transition(
            project_id,
            experiment_id,
            "complete",
            (ExperimentStatus.RUNNING, ExperimentStatus.PAUSED),
            ExperimentStatus.COMPLETED,
            completed_by,
            extra={
                "end_date": datetime.now(timezone.utc),
                "winner": ExperimentWinner(winner).value if winner else None,
                "statistical_significance": statistical_significance,
            },
        )

    async def cancel_experiment(
        self, project_id: UUID, experiment_id: UUID, cancelled_by: str = "system"
    ) -> ABExperiment:
        return await self._transition(
            project_id,
            experiment_id,
            "cancel",
            (ExperimentStatus.DRAFT, ExperimentStatus.RUNNING, ExperimentStatus.PAUSED),
            ExperimentStatus.CANCELLED,
            cancelled_by,
            extra={"end_date": datetime.now(timezone.utc)},
        )

    async def record_sample(
        self,
        project_id: UUID,
        experiment_id: UUID,
        is_control: bool,
        metrics: MetricsSnapshot,
        recorded_by: str = "system",
    ) -> ABExperiment:
        """Fold one sample into the control or treatment arm.

        The read-modify-write runs under the store's per-experiment lock, so
        concurrent samples never lose updates.

        Raises:
            NotFoundError: If the experiment does not exist
            PolicyViolation: If the experiment is not running
        """
        column = "control_metrics" if is_control else "treatment_metrics"

        def mutation(row: Row) -> Row:
            if row["status"] != ExperimentStatus.RUNNING.value:
                raise PolicyViolation(
                    "Samples are only accepted while the experiment is running",
                    {"current_status": row["status"]},
                )
            arm = update_running_average(load_metrics(row.get(column)), metrics)
            return {
                column: dump_metrics(arm),
                "current_sample_size": (row.get("current_sample_size") or 0) + 1,
            }

        result = await self._store.mutate_experiment(project_id, experiment_id, mutation)
        if result is None:
            raise NotFoundError("experiment", experiment_id)
        before, after = result
        experiment = map_experiment(after)

        logger.debug(
            "experiment_sample_recorded",
            project_id=str(project_id),
            experiment_id=str(experiment_id),
            arm="control" if is_control else "treatment",
            current_sample_size=experiment.current_sample_size,
        )
        await self._audit.record(
            project_id=project_id,
            actor_id=recorded_by,
            action="record_experiment_sample",
            category=ActionCategory.EXPERIMENT,
            resource_type=RESOURCE_TYPE,
            resource_id=experiment_id,
            before={"current_sample_size": before.get("current_sample_size") or 0},
            after={
                "arm": "control" if is_control else "treatment",
                "current_sample_size": experiment.current_sample_size,
            },
        )
        return experiment
