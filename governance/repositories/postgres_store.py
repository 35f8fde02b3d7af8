"""Postgres-backed GovernanceStore using an asyncpg pool."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Collection
from contextlib import asynccontextmanager
from typing import Any, Optional
from uuid import UUID

import asyncpg
import structlog

from governance.errors import GovernanceError, PersistenceFailure, ValidationError
from governance.repositories.base import Row, RowMutation

logger = structlog.get_logger(__name__)

CHANGE_REQUESTS = "ai_change_requests"
EVALUATION_GATES = "ai_evaluation_gates"
BASELINES = "ai_quality_baselines"
ALERTS = "ai_regression_alerts"
MODELS = "ai_model_registry"
EXPERIMENTS = "ai_ab_experiments"
AUDIT = "ai_governance_audit"


def _insert_sql(table: str, row: Row) -> tuple[str, list[Any]]:
    columns = list(row.keys())
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *"
    return sql, [row[c] for c in columns]


def _set_clause(updates: Row, start: int) -> tuple[str, list[Any]]:
    """Build ``col = $n`` assignments numbered from ``start``."""
    columns = list(updates.keys())
    clause = ", ".join(f"{col} = ${start + i}" for i, col in enumerate(columns))
    return clause, [updates[c] for c in columns]


def _rows(records: list[asyncpg.Record]) -> list[Row]:
    return [dict(r) for r in records]


def _row(record: Optional[asyncpg.Record]) -> Optional[Row]:
    return dict(record) if record is not None else None


class PostgresGovernanceStore:
    """GovernanceStore over asyncpg with transactional guarantees."""

    def __init__(self, pool: asyncpg.Pool, acquire_timeout: float = 10.0):
        self._pool = pool
        self._acquire_timeout = acquire_timeout

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a pooled connection, translating driver failures into PersistenceFailure."""
        try:
            async with self._pool.acquire(timeout=self._acquire_timeout) as conn:
                yield conn
        except GovernanceError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.error("governance_store_error", error=str(e), error_type=type(e).__name__)
            raise PersistenceFailure(f"Governance store unavailable: {e}") from e

    async def _insert(self, table: str, row: Row) -> Row:
        sql, values = _insert_sql(table, row)
        async with self._connection() as conn:
            record = await conn.fetchrow(sql, *values)
        return dict(record)

    async def _update(self, table: str, project_id: UUID, row_id: UUID, updates: Row) -> Optional[Row]:
        clause, values = _set_clause(updates, start=3)
        async with self._connection() as conn:
            record = await conn.fetchrow(
                f"UPDATE {table} SET {clause} WHERE project_id = $1 AND id = $2 RETURNING *",
                project_id,
                row_id,
                *values,
            )
        return _row(record)

    async def _mutate(
        self, table: str, project_id: UUID, row_id: UUID, mutation: RowMutation
    ) -> Optional[tuple[Row, Row]]:
        """SELECT ... FOR UPDATE, apply ``mutation``, write back, all in one transaction."""
        async with self._connection() as conn:
            async with conn.transaction():
                record = await conn.fetchrow(
                    f"SELECT * FROM {table} WHERE project_id = $1 AND id = $2 FOR UPDATE",
                    project_id,
                    row_id,
                )
                if record is None:
                    return None
                before = dict(record)
                updates = mutation(dict(before))
                clause, values = _set_clause(updates, start=3)
                after = await conn.fetchrow(
                    f"UPDATE {table} SET {clause} WHERE project_id = $1 AND id = $2 RETURNING *",
                    project_id,
                    row_id,
                    *values,
                )
        return before, dict(after)

    async def _get(self, table: str, project_id: UUID, row_id: UUID) -> Optional[Row]:
        async with self._connection() as conn:
            record = await conn.fetchrow(
                f"SELECT * FROM {table} WHERE project_id = $1 AND id = $2",
                project_id,
                row_id,
            )
        return _row(record)

    # Change requests

    async def insert_change_request(self, row: Row) -> Row:
        return await self._insert(CHANGE_REQUESTS, row)

    async def get_change_request(self, project_id: UUID, change_id: UUID) -> Optional[Row]:
        return await self._get(CHANGE_REQUESTS, project_id, change_id)

    async def list_change_requests(
        self,
        project_id: UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Row]:
        async with self._connection() as conn:
            if status:
                records = await conn.fetch(
                    f"""
                    SELECT * FROM {CHANGE_REQUESTS}
                    WHERE project_id = $1 AND status = $2
                    ORDER BY created_at DESC
                    LIMIT $3 OFFSET $4
                    """,
                    project_id,
                    status,
                    limit,
                    offset,
                )
            else:
                records = await conn.fetch(
                    f"""
                    SELECT * FROM {CHANGE_REQUESTS}
                    WHERE project_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2 OFFSET $3
                    """,
                    project_id,
                    limit,
                    offset,
                )
        return _rows(records)

    async def transition_change_request(
        self,
        project_id: UUID,
        change_id: UUID,
        from_statuses: Collection[str],
        updates: Row,
    ) -> Optional[Row]:
        clause, values = _set_clause(updates, start=4)
        async with self._connection() as conn:
            record = await conn.fetchrow(
                f"""
                UPDATE {CHANGE_REQUESTS} SET {clause}
                WHERE project_id = $1 AND id = $2 AND status = ANY($3::text[])
                RETURNING *
                """,
                project_id,
                change_id,
                list(from_statuses),
                *values,
            )
        return _row(record)

    # Evaluation gates

    async def insert_evaluation_gate(
        self,
        project_id: UUID,
        gate: Row,
        from_statuses: Collection[str],
        change_updates: Row,
    ) -> Optional[Row]:
        clause, values = _set_clause(change_updates, start=4)
        insert_sql, insert_values = _insert_sql(EVALUATION_GATES, gate)
        async with self._connection() as conn:
            async with conn.transaction():
                updated = await conn.fetchval(
                    f"""
                    UPDATE {CHANGE_REQUESTS} SET {clause}
                    WHERE project_id = $1 AND id = $2 AND status = ANY($3::text[])
                    RETURNING id
                    """,
                    project_id,
                    gate["change_request_id"],
                    list(from_statuses),
                    *values,
                )
                if updated is None:
                    return None
                record = await conn.fetchrow(insert_sql, *insert_values)
        return dict(record)

    async def list_evaluation_gates(self, change_id: UUID) -> list[Row]:
        async with self._connection() as conn:
            records = await conn.fetch(
                f"SELECT * FROM {EVALUATION_GATES} WHERE change_request_id = $1 ORDER BY evaluated_at ASC",
                change_id,
            )
        return _rows(records)

    async def get_latest_evaluation_gate(self, change_id: UUID) -> Optional[Row]:
        async with self._connection() as conn:
            record = await conn.fetchrow(
                f"""
                SELECT * FROM {EVALUATION_GATES}
                WHERE change_request_id = $1
                ORDER BY evaluated_at DESC
                LIMIT 1
                """,
                change_id,
            )
        return _row(record)

    # Baselines

    async def insert_current_baseline(self, row: Row) -> Row:
        row = {**row, "is_current": True}
        insert_sql, insert_values = _insert_sql(BASELINES, row)
        async with self._connection() as conn:
            async with conn.transaction():
                # Serialize writers on the same (project, type) key for this transaction
                await conn.execute(
                    "SELECT pg_advisory_xact_lock(hashtext($1))",
                    f"{row['project_id']}:{row['baseline_type']}",
                )
                await conn.execute(
                    f"""
                    UPDATE {BASELINES}
                    SET is_current = false, superseded_at = now(), superseded_by = $3
                    WHERE project_id = $1 AND baseline_type = $2 AND is_current
                    """,
                    row["project_id"],
                    row["baseline_type"],
                    row["id"],
                )
                record = await conn.fetchrow(insert_sql, *insert_values)
        return dict(record)

    async def get_current_baseline(self, project_id: UUID, baseline_type: str) -> Optional[Row]:
        async with self._connection() as conn:
            record = await conn.fetchrow(
                f"""
                SELECT * FROM {BASELINES}
                WHERE project_id = $1 AND baseline_type = $2 AND is_current
                """,
                project_id,
                baseline_type,
            )
        return _row(record)

    async def list_baselines(
        self, project_id: UUID, baseline_type: Optional[str] = None
    ) -> list[Row]:
        async with self._connection() as conn:
            if baseline_type:
                records = await conn.fetch(
                    f"""
                    SELECT * FROM {BASELINES}
                    WHERE project_id = $1 AND baseline_type = $2
                    ORDER BY established_at DESC
                    """,
                    project_id,
                    baseline_type,
                )
            else:
                records = await conn.fetch(
                    f"SELECT * FROM {BASELINES} WHERE project_id = $1 ORDER BY established_at DESC",
                    project_id,
                )
        return _rows(records)

    # Regression alerts

    async def insert_alert(self, row: Row) -> Row:
        return await self._insert(ALERTS, row)

    async def get_alert(self, project_id: UUID, alert_id: UUID) -> Optional[Row]:
        return await self._get(ALERTS, project_id, alert_id)

    async def update_alert(self, project_id: UUID, alert_id: UUID, updates: Row) -> Optional[Row]:
        return await self._update(ALERTS, project_id, alert_id, updates)

    async def list_alerts(
        self, project_id: UUID, unresolved_only: bool = True, limit: int = 50
    ) -> list[Row]:
        condition = "AND NOT is_resolved" if unresolved_only else ""
        async with self._connection() as conn:
            records = await conn.fetch(
                f"""
                SELECT * FROM {ALERTS}
                WHERE project_id = $1 {condition}
                ORDER BY detected_at DESC
                LIMIT $2
                """,
                project_id,
                limit,
            )
        return _rows(records)

    # Model registry

    async def insert_model(self, row: Row) -> Row:
        sql, values = _insert_sql(MODELS, row)
        async with self._connection() as conn:
            try:
                record = await conn.fetchrow(sql, *values)
            except asyncpg.UniqueViolationError as e:
                raise ValidationError(
                    f"{row['model_type']} version {row['model_version']} is already registered"
                ) from e
        return dict(record)

    async def get_model(self, project_id: UUID, model_id: UUID) -> Optional[Row]:
        return await self._get(MODELS, project_id, model_id)

    async def mutate_model(
        self,
        project_id: UUID,
        model_id: UUID,
        mutation: RowMutation,
    ) -> Optional[tuple[Row, Row]]:
        return await self._mutate(MODELS, project_id, model_id, mutation)

    async def set_baseline_model(self, project_id: UUID, model_id: UUID) -> Optional[Row]:
        async with self._connection() as conn:
            async with conn.transaction():
                model_type = await conn.fetchval(
                    f"SELECT model_type FROM {MODELS} WHERE project_id = $1 AND id = $2 FOR UPDATE",
                    project_id,
                    model_id,
                )
                if model_type is None:
                    return None
                await conn.execute(
                    f"""
                    UPDATE {MODELS} SET is_baseline = (id = $2)
                    WHERE project_id = $1 AND model_type = $3
                    """,
                    project_id,
                    model_id,
                    model_type,
                )
                record = await conn.fetchrow(
                    f"SELECT * FROM {MODELS} WHERE id = $1",
                    model_id,
                )
        return _row(record)

    async def list_models(
        self,
        project_id: UUID,
        model_type: Optional[str] = None,
        active_only: bool = False,
    ) -> list[Row]:
        conditions = ["project_id = $1"]
        params: list[Any] = [project_id]
        if model_type:
            params.append(model_type)
            conditions.append(f"model_type = ${len(params)}")
        if active_only:
            conditions.append("is_active")
        async with self._connection() as conn:
            records = await conn.fetch(
                f"SELECT * FROM {MODELS} WHERE {' AND '.join(conditions)} ORDER BY created_at DESC",
                *params,
            )
        return _rows(records)

    # A/B experiments

    async def insert_experiment(self, row: Row) -> Row:
        return await self._insert(EXPERIMENTS, row)

    async def get_experiment(self, project_id: UUID, experiment_id: UUID) -> Optional[Row]:
        return await self._get(EXPERIMENTS, project_id, experiment_id)

    async def list_experiments(
        self, project_id: UUID, status: Optional[str] = None
    ) -> list[Row]:
        async with self._connection() as conn:
            if status:
                records = await conn.fetch(
                    f"""
                    SELECT * FROM {EXPERIMENTS}
                    WHERE project_id = $1 AND status = $2
                    ORDER BY created_at DESC
                    """,
                    project_id,
                    status,
                )
            else:
                records = await conn.fetch(
                    f"SELECT * FROM {EXPERIMENTS} WHERE project_id = $1 ORDER BY created_at DESC",
                    project_id,
                )
        return _rows(records)

    async def mutate_experiment(
        self,
        project_id: UUID,
        experiment_id: UUID,
        mutation: RowMutation,
    ) -> Optional[tuple[Row, Row]]:
        return await self._mutate(EXPERIMENTS, project_id, experiment_id, mutation)

    # Audit trail

    async def insert_audit_entry(self, row: Row) -> Row:
        return await self._insert(AUDIT, row)

    async def list_audit_entries(
        self,
        project_id: UUID,
        limit: int = 50,
        resource_type: Optional[str] = None,
    ) -> list[Row]:
        async with self._connection() as conn:
            if resource_type:
                records = await conn.fetch(
                    f"""
                    SELECT * FROM {AUDIT}
                    WHERE project_id = $1 AND resource_type = $2
                    ORDER BY created_at DESC
                    LIMIT $3
                    """,
                    project_id,
                    resource_type,
                    limit,
                )
            else:
                records = await conn.fetch(
                    f"""
                    SELECT * FROM {AUDIT}
                    WHERE project_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    project_id,
                    limit,
                )
        return _rows(records)

    # Summary

    async def governance_counts(self, project_id: UUID) -> Row:
        async with self._connection() as conn:
            record = await conn.fetchrow(
                f"""
                SELECT
                    (SELECT COUNT(*) FROM {CHANGE_REQUESTS}
                     WHERE project_id = $1 AND status = 'pending') AS pending_changes,
                    (SELECT COUNT(*) FROM {ALERTS}
                     WHERE project_id = $1 AND NOT is_resolved) AS unresolved_alerts,
                    (SELECT COUNT(*) FROM {MODELS}
                     WHERE project_id = $1 AND is_active) AS active_models,
                    (SELECT COALESCE(array_agg(baseline_type ORDER BY baseline_type), '{{}}')
                     FROM {BASELINES}
                     WHERE project_id = $1 AND is_current) AS baseline_types
                """,
                project_id,
            )
        counts = dict(record)
        counts["baseline_types"] = list(counts["baseline_types"] or [])
        return counts
