"""
CLI command for the audit ledger — past runs, newest last.

Usage::

    converge history
    converge history -n 5 --json
"""

from __future__ import annotations

import json

import click


@click.command()
@click.option("-n", "limit", default=10, type=int, help="Number of runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def history(limit: int, as_json: bool) -> None:
    """Show recent runs from the audit ledger."""
    from converge.core.config.loader import default_state_dir
    from converge.core.persistence.audit import AuditWriter

    entries = AuditWriter(default_state_dir()).read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No runs recorded yet.")
        return

    status_color = {"ok": "green", "partial": "yellow", "failed": "red", "cancelled": "yellow"}
    for entry in entries:
        click.echo(f"   {entry.timestamp[:19]}  {entry.run_id}  ", nl=False)
        click.secho(entry.status, fg=status_color.get(entry.status, "white"), nl=False)
        counts = ", ".join(f"{k}={v}" for k, v in entry.counts.items() if v)
        click.echo(f"  {counts}")
        if entry.failed_units:
            click.echo(f"      failed: {', '.join(entry.failed_units)}")
