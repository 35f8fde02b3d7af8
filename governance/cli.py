"""Click CLI commands for the governance engine."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import UUID

import click
import pydantic

from governance.config import get_settings
from governance.database import close_database, init_database
from governance.engine import GovernanceEngine
from governance.errors import GovernanceError
from governance.models import AlertSeverity, BaselineType, MetricsSnapshot
from governance.repositories import (
    GovernanceStore,
    InMemoryGovernanceStore,
    PostgresGovernanceStore,
)
from governance.services.logging_service import configure_logging

FORMAT_OPTION = click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format.",
)


@asynccontextmanager
async def _open_store(backend: str) -> AsyncIterator[GovernanceStore]:
    """Yield a store for one CLI invocation, owning the pool lifecycle."""
    if backend == "memory":
        yield InMemoryGovernanceStore()
        return

    pool = await init_database()
    try:
        yield PostgresGovernanceStore(pool)
    finally:
        await close_database()


def _run(backend: str, operation):
    """Run ``operation(engine)`` on a fresh event loop and return its result."""

    async def _main():
        async with _open_store(backend) as store:
            return await operation(GovernanceEngine(store, get_settings()))

    try:
        return asyncio.run(_main())
    except GovernanceError as e:
        click.echo(f"ERROR ({e.kind}): {e.message}", err=True)
        sys.exit(2)


def _echo_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option(
    "--store",
    "backend",
    default=None,
    type=click.Choice(["postgres", "memory"]),
    help="Store backend (default: STORE_BACKEND setting).",
)
@click.pass_context
def cli(ctx: click.Context, backend: str | None) -> None:
    """AI configuration governance: regression checks, deploy checks and audit."""
    settings = get_settings()
    configure_logging(settings.log_level, stream=sys.stderr)
    ctx.obj = {"backend": backend or settings.store_backend}


# ---------------------------------------------------------------------------
# detect command
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("project_id", type=click.UUID)
@click.argument("metrics_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--baseline-type",
    default=BaselineType.RETRIEVAL.value,
    type=click.Choice([t.value for t in BaselineType]),
    help="Baseline to compare against.",
)
@click.option("--change-id", default=None, type=click.UUID, help="Related change request.")
@FORMAT_OPTION
@click.pass_context
def detect(
    ctx: click.Context,
    project_id: UUID,
    metrics_file: Path,
    baseline_type: str,
    change_id: UUID | None,
    output_format: str,
) -> None:
    """Run regression detection for a live metrics snapshot (JSON file)."""
    try:
        metrics = MetricsSnapshot.model_validate_json(metrics_file.read_text())
    except pydantic.ValidationError as e:
        click.echo(f"Invalid metrics file: {e.error_count()} error(s)", err=True)
        sys.exit(2)

    alerts = _run(
        ctx.obj["backend"],
        lambda engine: engine.regressions.detect_regressions(
            project_id, metrics, BaselineType(baseline_type), related_change_id=change_id
        ),
    )

    if output_format == "json":
        _echo_json([a.model_dump(mode="json") for a in alerts])
    elif not alerts:
        click.echo("No regressions detected.")
    else:
        click.echo()
        click.echo("Regression Alerts")
        click.echo("=" * 60)
        click.echo()
        click.echo(f"  {'Type':<18} {'Severity':<10} {'Metric':<12} {'Baseline':<12} {'Current':<12} {'Delta'}")
        for a in alerts:
            click.echo(
                f"  {a.alert_type.value:<18} {a.severity.value:<10} {a.metric_name:<12} "
                f"{a.baseline_value:<12g} {a.current_value:<12g} {a.delta_percent:+.1f}%"
            )
        click.echo()

    # Exit code 1 if any critical regression
    if any(a.severity == AlertSeverity.CRITICAL for a in alerts):
        sys.exit(1)


# ---------------------------------------------------------------------------
# check-deploy command
# ---------------------------------------------------------------------------


@cli.command("check-deploy")
@click.argument("project_id", type=click.UUID)
@click.argument("change_id", type=click.UUID)
@FORMAT_OPTION
@click.pass_context
def check_deploy(ctx: click.Context, project_id: UUID, change_id: UUID, output_format: str) -> None:
    """Ask the deployment policy whether a change may be deployed."""
    decision = _run(
        ctx.obj["backend"],
        lambda engine: engine.change_requests.check_deployment(project_id, change_id),
    )

    if output_format == "json":
        _echo_json(decision.model_dump(mode="json"))
    else:
        status = "ALLOWED" if decision.can_deploy else "BLOCKED"
        click.echo(f"{status}: {decision.reason}")
        for reason in decision.details.get("failure_reasons", []):
            click.echo(f"  - {reason}")

    if not decision.can_deploy:
        sys.exit(1)


# ---------------------------------------------------------------------------
# summary command
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("project_id", type=click.UUID)
@FORMAT_OPTION
@click.pass_context
def summary(ctx: click.Context, project_id: UUID, output_format: str) -> None:
    """Show pending changes, open alerts, active models and baselines."""
    result = _run(ctx.obj["backend"], lambda engine: engine.governance_summary(project_id))

    if output_format == "json":
        data = result.model_dump()
        data["has_baselines"] = result.has_baselines
        _echo_json(data)
        return

    click.echo()
    click.echo("Governance Summary")
    click.echo("=" * 60)
    click.echo(f"  Pending changes:   {result.pending_changes}")
    click.echo(f"  Unresolved alerts: {result.unresolved_alerts}")
    click.echo(f"  Active models:     {result.active_models}")
    baselines = ", ".join(result.baseline_types) if result.has_baselines else "none"
    click.echo(f"  Baselines:         {baselines}")
    click.echo()


# ---------------------------------------------------------------------------
# audit command
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("project_id", type=click.UUID)
@click.option("--limit", default=50, help="Max entries to display.")
@click.option("--resource-type", default=None, help="Filter to one resource type.")
@FORMAT_OPTION
@click.pass_context
def audit(
    ctx: click.Context,
    project_id: UUID,
    limit: int,
    resource_type: str | None,
    output_format: str,
) -> None:
    """List recent governance audit entries, newest first."""
    entries = _run(
        ctx.obj["backend"],
        lambda engine: engine.audit.list_entries(project_id, limit=limit, resource_type=resource_type),
    )

    if output_format == "json":
        _echo_json([e.model_dump(mode="json") for e in entries])
        return

    if not entries:
        click.echo("No audit entries found.")
        return

    click.echo(f"  {'When':<22} {'Actor':<20} {'Category':<18} {'Action'}")
    for e in entries:
        when = e.created_at.strftime("%Y-%m-%d %H:%M:%S")
        click.echo(f"  {when:<22} {e.actor_id[:20]:<20} {e.action_category.value:<18} {e.action}")
