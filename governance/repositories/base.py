"""Storage protocol for governance state.

Stores work in plain ``dict`` rows keyed by column name. They own the
atomicity guarantees the engine depends on (single current baseline,
compare-and-swap status transitions, serialized model and experiment
updates); mapping rows to domain entities happens in ``governance.repositories.mappers``.
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from typing import Any, Optional, Protocol
from uuid import UUID

Row = dict[str, Any]

# Receives the locked row and returns the column updates to apply.
RowMutation = Callable[[Row], Row]


class GovernanceStore(Protocol):
    """Abstract transactional storage for the governance engine."""

    # Change requests

    async def insert_change_request(self, row: Row) -> Row:
        """Insert a new change request and return the stored row."""

    async def get_change_request(self, project_id: UUID, change_id: UUID) -> Optional[Row]:
        """Return the change request, or None if it is not in the project."""

    async def list_change_requests(
        self,
        project_id: UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Row]:
        """Return change requests, newest first."""

    async def transition_change_request(
        self,
        project_id: UUID,
        change_id: UUID,
        from_statuses: Collection[str],
        updates: Row,
    ) -> Optional[Row]:
        """Apply ``updates`` only if the current status is in ``from_statuses``.

        Returns the updated row, or None when the row is missing or its
        status did not match.
        """

    # Evaluation gates

    async def insert_evaluation_gate(
        self,
        project_id: UUID,
        gate: Row,
        from_statuses: Collection[str],
        change_updates: Row,
    ) -> Optional[Row]:
        """Insert a gate and update its change request in one transaction.

        Nothing is written (and None is returned) unless the change request's
        status is in ``from_statuses``.
        """

    async def list_evaluation_gates(self, change_id: UUID) -> list[Row]:
        """Return every gate for a change request, oldest first."""

    async def get_latest_evaluation_gate(self, change_id: UUID) -> Optional[Row]:
        """Return the most recent gate for a change request."""

    # Baselines

    async def insert_current_baseline(self, row: Row) -> Row:
        """Demote the current baseline for the row's key and insert ``row`` as current."""

    async def get_current_baseline(self, project_id: UUID, baseline_type: str) -> Optional[Row]:
        """Return the current baseline for ``(project_id, baseline_type)``."""

    async def list_baselines(
        self, project_id: UUID, baseline_type: Optional[str] = None
    ) -> list[Row]:
        """Return current and historical baselines, newest first."""

    # Regression alerts

    async def insert_alert(self, row: Row) -> Row:
        """Insert a regression alert."""

    async def get_alert(self, project_id: UUID, alert_id: UUID) -> Optional[Row]:
        """Return the alert, or None."""

    async def update_alert(self, project_id: UUID, alert_id: UUID, updates: Row) -> Optional[Row]:
        """Apply column updates to an alert, returning the updated row or None."""

    async def list_alerts(
        self, project_id: UUID, unresolved_only: bool = True, limit: int = 50
    ) -> list[Row]:
        """Return alerts, most recently detected first."""

    # Model registry

    async def insert_model(self, row: Row) -> Row:
        """Insert a registry entry.

        Raises:
            ValidationError: If the (project, model_type, model_version) key exists
        """

    async def get_model(self, project_id: UUID, model_id: UUID) -> Optional[Row]:
        """Return the registry entry, or None."""

    async def mutate_model(
        self,
        project_id: UUID,
        model_id: UUID,
        mutation: RowMutation,
    ) -> Optional[tuple[Row, Row]]:
        """Run a locked read-modify-write on one registry entry.

        Guards that depend on the entry's current state (deprecation,
        inactive-to-active stamping) must run inside ``mutation`` so they
        see the row that is actually written.

        Returns:
            ``(before, after)`` rows, or None if the entry does not exist
        """

    async def set_baseline_model(self, project_id: UUID, model_id: UUID) -> Optional[Row]:
        """Mark one entry as the baseline for its model type, clearing the others."""

    async def list_models(
        self,
        project_id: UUID,
        model_type: Optional[str] = None,
        active_only: bool = False,
    ) -> list[Row]:
        """Return registry entries, newest first."""

    # A/B experiments

    async def insert_experiment(self, row: Row) -> Row:
        """Insert an experiment."""

    async def get_experiment(self, project_id: UUID, experiment_id: UUID) -> Optional[Row]:
        """Return the experiment, or None."""

    async def list_experiments(
        self, project_id: UUID, status: Optional[str] = None
    ) -> list[Row]:
        """Return experiments, newest first."""

    async def mutate_experiment(
        self,
        project_id: UUID,
        experiment_id: UUID,
        mutation: RowMutation,
    ) -> Optional[tuple[Row, Row]]:
        """Run a locked read-modify-write on one experiment.

        Concurrent mutations of the same experiment are serialized. Exceptions
        raised by ``mutation`` abort the write and propagate.

        Returns:
            ``(before, after)`` rows, or None if the experiment does not exist
        """

    # Audit trail

    async def insert_audit_entry(self, row: Row) -> Row:
        """Append an audit entry."""

    async def list_audit_entries(
        self,
        project_id: UUID,
        limit: int = 50,
        resource_type: Optional[str] = None,
    ) -> list[Row]:
        """Return audit entries, newest first."""

    # Summary

    async def governance_counts(self, project_id: UUID) -> Row:
        """Return pending_changes, unresolved_alerts, active_models and baseline_types."""
