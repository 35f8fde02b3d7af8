"""Model registry: declared versions of AI models/configs and their rollout percentages."""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from governance.errors import NotFoundError, PolicyViolation, ValidationError, coerce_enum
from governance.models import ActionCategory, MetricsSnapshot, ModelRegistryEntry, ModelType
from governance.repositories.base import GovernanceStore
from governance.repositories.mappers import dump_metrics, map_model_entry
from governance.services.audit_service import AuditTrail

logger = structlog.get_logger(__name__)

RESOURCE_TYPE = "ai_model_registry"


class ModelRegistryService:
    """Declarative record of model versions.

    The registry does not route traffic; an external router is expected to
    honor ``deployment_percentage``.
    """

    def __init__(self, store: GovernanceStore, audit: AuditTrail):
        self._store = store
        self._audit = audit

    async def get_model(self, project_id: UUID, model_id: UUID) -> ModelRegistryEntry:
        row = await self._store.get_model(project_id, model_id)
        if row is None:
            raise NotFoundError("model", model_id)
        return map_model_entry(row)

    async def list_models(
        self,
        project_id: UUID,
        model_type: Optional[ModelType] = None,
        active_only: bool = False,
    ) -> list[ModelRegistryEntry]:
        rows = await self._store.list_models(
            project_id,
            model_type=(
                coerce_enum(ModelType, model_type, "model_type").value if model_type else None
            ),
            active_only=active_only,
        )
        return [map_model_entry(r) for r in rows]

    async def register_model(
        self,
        project_id: UUID,
        model_type: ModelType,
        model_name: str,
        model_version: str,
        config: dict[str, Any],
        created_by: str,
    ) -> ModelRegistryEntry:
        """Register a new model version, inactive and at 0% rollout.

        Raises:
            ValidationError: If name/version are empty or the version is already registered
        """
        if not model_name or not model_version:
            raise ValidationError("Model name and version are required")

        row = await self._store.insert_model(
            {
                "id": uuid4(),
                "project_id": project_id,
                "model_type": coerce_enum(ModelType, model_type, "model_type").value,
                "model_name": model_name,
                "model_version": model_version,
                "is_active": False,
                "is_baseline": False,
                "config": config or {},
                "performance_metrics": None,
                "deployment_percentage": 0,
                "created_at": datetime.now(timezone.utc),
                "created_by": created_by,
            }
        )
        entry = map_model_entry(row)

        logger.info(
            "model_registered",
            project_id=str(project_id),
            model_id=str(entry.id),
            model_type=entry.model_type.value,
            model_version=model_version,
        )
        await self._audit.record(
            project_id=project_id,
            actor_id=created_by,
            action="register_model",
            category=ActionCategory.MODEL_REGISTRATION,
            resource_type=RESOURCE_TYPE,
            resource_id=entry.id,
            after={
                "model_type": entry.model_type.value,
                "model_name": model_name,
                "model_version": model_version,
            },
        )
        return entry

    async def set_model_deployment_percentage(
        self,
        project_id: UUID,
        model_id: UUID,
        percentage: int,
        updated_by: str,
    ) -> ModelRegistryEntry:
        """Set the declared rollout percentage of a model.

        ``is_active`` follows ``percentage > 0``; ``deployed_at`` is stamped
        only when the model moves from inactive to active. The deprecation
        check and the stamping decision run against the locked row.

        Raises:
            ValidationError: If percentage is outside [0, 100]
            NotFoundError: If the model does not exist
            PolicyViolation: If a deprecated model is given a non-zero percentage
        """
        if isinstance(percentage, bool) or not isinstance(percentage, int):
            raise ValidationError("Deployment percentage must be an integer")
        if percentage < 0 or percentage > 100:
            raise ValidationError("Deployment percentage must be between 0 and 100")

        def _apply(row: dict[str, Any]) -> dict[str, Any]:
            if row.get("deprecated_at") is not None and percentage > 0:
                raise PolicyViolation(
                    "Deprecated models cannot receive traffic",
                    {"deprecated_at": str(row["deprecated_at"])},
                )
            updates: dict[str, Any] = {
                "deployment_percentage": percentage,
                "is_active": percentage > 0,
            }
            if percentage > 0 and not row.get("is_active"):
                updates["deployed_at"] = datetime.now(timezone.utc)
            return updates

        result = await self._store.mutate_model(project_id, model_id, _apply)
        if result is None:
            raise NotFoundError("model", model_id)
        before, after = result
        updated = map_model_entry(after)
        previous = before.get("deployment_percentage") or 0

        logger.info(
            "model_deployment_percentage_set",
            project_id=str(project_id),
            model_id=str(model_id),
            previous_percentage=previous,
            percentage=percentage,
        )
        await self._audit.record(
            project_id=project_id,
            actor_id=updated_by,
            action="update_deployment_percentage",
            category=ActionCategory.DEPLOYMENT,
            resource_type=RESOURCE_TYPE,
            resource_id=model_id,
            before={"deployment_percentage": previous},
            after={"deployment_percentage": percentage},
        )
        return updated

    async def record_model_performance(
        self,
        project_id: UUID,
        model_id: UUID,
        metrics: MetricsSnapshot,
        updated_by: str,
    ) -> ModelRegistryEntry:
        result = await self._store.mutate_model(
            project_id, model_id, lambda row: {"performance_metrics": dump_metrics(metrics)}
        )
        if result is None:
            raise NotFoundError("model", model_id)
        before, after = result
        previous = map_model_entry(before).performance_metrics

        logger.info("model_performance_recorded", project_id=str(project_id), model_id=str(model_id))
        await self._audit.record(
            project_id=project_id,
            actor_id=updated_by,
            action="record_model_performance",
            category=ActionCategory.MODEL_REGISTRATION,
            resource_type=RESOURCE_TYPE,
            resource_id=model_id,
            before={"performance_metrics": dump_metrics(previous)},
            after={"performance_metrics": dump_metrics(metrics)},
        )
        return map_model_entry(after)

    async def mark_baseline_model(
        self, project_id: UUID, model_id: UUID, updated_by: str
    ) -> ModelRegistryEntry:
        """Make this model the single baseline for its model type."""
        row = await self._store.set_baseline_model(project_id, model_id)
        if row is None:
            raise NotFoundError("model", model_id)
        entry = map_model_entry(row)

        logger.info(
            "model_marked_baseline",
            project_id=str(project_id),
            model_id=str(model_id),
            model_type=entry.model_type.value,
        )
        await self._audit.record(
            project_id=project_id,
            actor_id=updated_by,
            action="mark_baseline_model",
            category=ActionCategory.MODEL_REGISTRATION,
            resource_type=RESOURCE_TYPE,
            resource_id=model_id,
            after={"is_baseline": True, "model_type": entry.model_type.value},
        )
        return entry

    async def deprecate_model(
        self, project_id: UUID, model_id: UUID, deprecated_by: str
    ) -> ModelRegistryEntry:
        """Withdraw a model: 0% rollout, inactive, stamped deprecated."""
        now = datetime.now(timezone.utc)
        result = await self._store.mutate_model(
            project_id,
            model_id,
            lambda row: {"deployment_percentage": 0, "is_active": False, "deprecated_at": now},
        )
        if result is None:
            raise NotFoundError("model", model_id)
        before, after = result

        logger.info("model_deprecated", project_id=str(project_id), model_id=str(model_id))
        await self._audit.record(
            project_id=project_id,
            actor_id=deprecated_by,
            action="deprecate_model",
            category=ActionCategory.MODEL_REGISTRATION,
            resource_type=RESOURCE_TYPE,
            resource_id=model_id,
            before={
                "deployment_percentage": before.get("deployment_percentage") or 0,
                "is_active": bool(before.get("is_active")),
            },
            after={"deployment_percentage": 0, "is_active": False, "deprecated_at": now},
        )
        return map_model_entry(after)
