"""In-memory GovernanceStore for local runs and tests.

Not durable across restarts, but honors the same atomicity contract as the
Postgres store: every write runs under one asyncio lock, so demote/insert
pairs, compare-and-swap transitions and model/experiment read-modify-writes
never interleave.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Collection
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from governance.errors import ValidationError
from governance.repositories.base import Row, RowMutation


def _copy(row: Row) -> Row:
    return copy.deepcopy(row)


def _newest_first(rows: list[Row], key: str) -> list[Row]:
    return sorted(rows, key=lambda r: r[key], reverse=True)


class InMemoryGovernanceStore:
    """Dict-backed store guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.change_requests: dict[UUID, Row] = {}
        self.evaluation_gates: dict[UUID, Row] = {}
        self.baselines: dict[UUID, Row] = {}
        self.alerts: dict[UUID, Row] = {}
        self.models: dict[UUID, Row] = {}
        self.experiments: dict[UUID, Row] = {}
        self.audit_entries: list[Row] = []

    @staticmethod
    def _scoped(table: dict[UUID, Row], project_id: UUID, row_id: UUID) -> Optional[Row]:
        row = table.get(row_id)
        if row is None or row["project_id"] != project_id:
            return None
        return row

    async def _mutate(
        self, table: dict[UUID, Row], project_id: UUID, row_id: UUID, mutation: RowMutation
    ) -> Optional[tuple[Row, Row]]:
        async with self._lock:
            row = self._scoped(table, project_id, row_id)
            if row is None:
                return None
            before = _copy(row)
            updates = mutation(_copy(row))
            row.update(_copy(updates))
            return before, _copy(row)

    # Change requests

    async def insert_change_request(self, row: Row) -> Row:
        async with self._lock:
            self.change_requests[row["id"]] = _copy(row)
            return _copy(row)

    async def get_change_request(self, project_id: UUID, change_id: UUID) -> Optional[Row]:
        row = self._scoped(self.change_requests, project_id, change_id)
        return _copy(row) if row else None

    async def list_change_requests(
        self,
        project_id: UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Row]:
        rows = [
            r
            for r in self.change_requests.values()
            if r["project_id"] == project_id and (status is None or r["status"] == status)
        ]
        return [_copy(r) for r in _newest_first(rows, "created_at")[offset : offset + limit]]

    async def transition_change_request(
        self,
        project_id: UUID,
        change_id: UUID,
        from_statuses: Collection[str],
        updates: Row,
    ) -> Optional[Row]:
        async with self._lock:
            row = self._scoped(self.change_requests, project_id, change_id)
            if row is None or row["status"] not in from_statuses:
                return None
            row.update(_copy(updates))
            return _copy(row)

    # Evaluation gates

    async def insert_evaluation_gate(
        self,
        project_id: UUID,
        gate: Row,
        from_statuses: Collection[str],
        change_updates: Row,
    ) -> Optional[Row]:
        async with self._lock:
            change = self._scoped(self.change_requests, project_id, gate["change_request_id"])
            if change is None or change["status"] not in from_statuses:
                return None
            self.evaluation_gates[gate["id"]] = _copy(gate)
            change.update(_copy(change_updates))
            return _copy(gate)

    async def list_evaluation_gates(self, change_id: UUID) -> list[Row]:
        rows = [g for g in self.evaluation_gates.values() if g["change_request_id"] == change_id]
        return [_copy(g) for g in sorted(rows, key=lambda g: g["evaluated_at"])]

    async def get_latest_evaluation_gate(self, change_id: UUID) -> Optional[Row]:
        gates = await self.list_evaluation_gates(change_id)
        return gates[-1] if gates else None

    # Baselines

    async def insert_current_baseline(self, row: Row) -> Row:
        async with self._lock:
            now = datetime.now(timezone.utc)
            for existing in self.baselines.values():
                if (
                    existing["project_id"] == row["project_id"]
                    and existing["baseline_type"] == row["baseline_type"]
                    and existing["is_current"]
                ):
                    existing["is_current"] = False
                    existing["superseded_at"] = now
                    existing["superseded_by"] = row["id"]
            stored = _copy(row)
            stored["is_current"] = True
            self.baselines[row["id"]] = stored
            return _copy(stored)

    async def get_current_baseline(self, project_id: UUID, baseline_type: str) -> Optional[Row]:
        for row in self.baselines.values():
            if (
                row["project_id"] == project_id
                and row["baseline_type"] == baseline_type
                and row["is_current"]
            ):
                return _copy(row)
        return None

    async def list_baselines(
        self, project_id: UUID, baseline_type: Optional[str] = None
    ) -> list[Row]:
        rows = [
            r
            for r in self.baselines.values()
            if r["project_id"] == project_id
            and (baseline_type is None or r["baseline_type"] == baseline_type)
        ]
        return [_copy(r) for r in _newest_first(rows, "established_at")]

    # Regression alerts

    async def insert_alert(self, row: Row) -> Row:
        async with self._lock:
            self.alerts[row["id"]] = _copy(row)
            return _copy(row)

    async def get_alert(self, project_id: UUID, alert_id: UUID) -> Optional[Row]:
        row = self._scoped(self.alerts, project_id, alert_id)
        return _copy(row) if row else None

    async def update_alert(self, project_id: UUID, alert_id: UUID, updates: Row) -> Optional[Row]:
        async with self._lock:
            row = self._scoped(self.alerts, project_id, alert_id)
            if row is None:
                return None
            row.update(_copy(updates))
            return _copy(row)

    async def list_alerts(
        self, project_id: UUID, unresolved_only: bool = True, limit: int = 50
    ) -> list[Row]:
        rows = [
            r
            for r in self.alerts.values()
            if r["project_id"] == project_id and not (unresolved_only and r["is_resolved"])
        ]
        return [_copy(r) for r in _newest_first(rows, "detected_at")[:limit]]

    # Model registry

    async def insert_model(self, row: Row) -> Row:
        async with self._lock:
            for existing in self.models.values():
                if (
                    existing["project_id"] == row["project_id"]
                    and existing["model_type"] == row["model_type"]
                    and existing["model_version"] == row["model_version"]
                ):
                    raise ValidationError(
                        f"{row['model_type']} version {row['model_version']} is already registered"
                    )
            self.models[row["id"]] = _copy(row)
            return _copy(row)

    async def get_model(self, project_id: UUID, model_id: UUID) -> Optional[Row]:
        row = self._scoped(self.models, project_id, model_id)
        return _copy(row) if row else None

    async def mutate_model(
        self,
        project_id: UUID,
        model_id: UUID,
        mutation: RowMutation,
    ) -> Optional[tuple[Row, Row]]:
        return await self._mutate(self.models, project_id, model_id, mutation)

    async def set_baseline_model(self, project_id: UUID, model_id: UUID) -> Optional[Row]:
        async with self._lock:
            target = self._scoped(self.models, project_id, model_id)
            if target is None:
                return None
            for row in self.models.values():
                if row["project_id"] == project_id and row["model_type"] == target["model_type"]:
                    row["is_baseline"] = row["id"] == model_id
            return _copy(target)

    async def list_models(
        self,
        project_id: UUID,
        model_type: Optional[str] = None,
        active_only: bool = False,
    ) -> list[Row]:
        rows = [
            r
            for r in self.models.values()
            if r["project_id"] == project_id
            and (model_type is None or r["model_type"] == model_type)
            and (not active_only or r["is_active"])
        ]
        return [_copy(r) for r in _newest_first(rows, "created_at")]

    # A/B experiments

    async def insert_experiment(self, row: Row) -> Row:
        async with self._lock:
            self.experiments[row["id"]] = _copy(row)
            return _copy(row)

    async def get_experiment(self, project_id: UUID, experiment_id: UUID) -> Optional[Row]:
        row = self._scoped(self.experiments, project_id, experiment_id)
        return _copy(row) if row else None

    async def list_experiments(
        self, project_id: UUID, status: Optional[str] = None
    ) -> list[Row]:
        rows = [
            r
            for r in self.experiments.values()
            if r["project_id"] == project_id and (status is None or r["status"] == status)
        ]
        return [_copy(r) for r in _newest_first(rows, "created_at")]

    async def mutate_experiment(
        self,
        project_id: UUID,
        experiment_id: UUID,
        mutation: RowMutation,
    ) -> Optional[tuple[Row, Row]]:
        return await self._mutate(self.experiments, project_id, experiment_id, mutation)

    # Audit trail

    async def insert_audit_entry(self, row: Row) -> Row:
        async with self._lock:
            self.audit_entries.append(_copy(row))
            return _copy(row)

    async def list_audit_entries(
        self,
        project_id: UUID,
        limit: int = 50,
        resource_type: Optional[str] = None,
    ) -> list[Row]:
        rows = [
            r
            for r in self.audit_entries
            if r["project_id"] == project_id
            and (resource_type is None or r["resource_type"] == resource_type)
        ]
        return [_copy(r) for r in list(reversed(rows))[:limit]]

    # Summary

    async def governance_counts(self, project_id: UUID) -> Row:
        return {
            "pending_changes": sum(
                1
                for r in self.change_requests.values()
                if r["project_id"] == project_id and r["status"] == "pending"
            ),
            "unresolved_alerts": sum(
                1
                for r in self.alerts.values()
                if r["project_id"] == project_id and not r["is_resolved"]
            ),
            "active_models": sum(
                1 for r in self.models.values() if r["project_id"] == project_id and r["is_active"]
            ),
            "baseline_types": sorted(
                r["baseline_type"]
                for r in self.baselines.values()
                if r["project_id"] == project_id and r["is_current"]
            ),
        }
