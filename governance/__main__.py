"""CLI entry point for the governance engine.

Usage:
    python -m governance [--store postgres|memory] <command> [OPTIONS]

Commands:
    detect        Run regression detection for a metrics snapshot
    check-deploy  Ask the deployment policy about a change request
    summary       Show a project's governance summary
    audit         List recent audit entries
"""

from governance.cli import cli


def main() -> None:
    """Entry point for ``python -m governance``."""
    cli()


if __name__ == "__main__":
    main()
