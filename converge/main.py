"""
converge — CLI entrypoint.

Usage:
    converge --help
    converge run
    converge run --only ripgrep --dry-run
    converge status
    converge catalog check
"""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path
from typing import NoReturn

import click

from converge import __version__
from converge.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="converge")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--catalog",
    "-c",
    "catalog_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Catalog YAML (default: $CONVERGE_CATALOG, then the built-in one).",
)
@click.option(
    "--platform",
    default=None,
    help="Built-in catalog to use (macos, ubuntu). Default: detected.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    catalog_path: Path | None,
    platform: str | None,
) -> None:
    """converge — bring this machine to its declared tool set."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["catalog_path"] = catalog_path
    ctx.obj["platform"] = platform

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(level=resolve_level(debug=debug, verbose=verbose, quiet=quiet))


def _fail(message: str, code: int) -> NoReturn:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--only", "only", multiple=True, help="Converge only this unit (and its dependencies).")
@click.option("--dry-run", is_flag=True, help="Detect only; show what would be installed.")
@click.option("--mock", is_flag=True, help="Use the in-memory mock backend (no real installs).")
@click.option("--no-render", is_flag=True, help="Don't regenerate configuration files.")
@click.pass_context
def run(
    ctx: click.Context,
    as_json: bool,
    only: tuple[str, ...],
    dry_run: bool,
    mock: bool,
    no_render: bool,
) -> None:
    """Converge the machine: install what is missing, upgrade what is stale.

    Examples:

        converge run

        converge run --only ripgrep --only fzf

        converge run --dry-run
    """
    from converge.core.reporting.reporter import format_outcome, summarize, summarize_renders
    from converge.core.use_cases.converge import converge_machine

    quiet = ctx.obj.get("quiet", False)
    cancel = threading.Event()

    def _on_sigint(signum, frame) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        click.secho(
            "\n⏹  Stopping after the current unit (Ctrl-C again to interrupt it)",
            fg="yellow", err=True,
        )

    def _progress(unit, outcome) -> None:
        if not as_json and not quiet:
            click.echo(format_outcome(unit, outcome), err=True)

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        result = converge_machine(
            catalog_path=ctx.obj.get("catalog_path"),
            platform=ctx.obj.get("platform"),
            only=list(only) if only else None,
            dry_run=dry_run,
            mock_mode=mock,
            render=not no_render,
            cancel=cancel,
            on_outcome=_progress,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        _fail(result.error, result.exit_code)

    report = result.report
    if report is None:
        _fail("Run finished without a report", result.exit_code or 1)

    click.echo()
    click.echo(summarize(report, verbose=ctx.obj.get("verbose", False)))

    if result.renders:
        click.echo()
        click.secho("Configuration:", bold=True)
        click.echo(summarize_renders(result.renders))
    elif result.render_skipped and not quiet:
        click.secho(f"Configuration not rendered: {result.render_skipped}", fg="yellow")

    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(
        report.status, "yellow"
    )
    click.secho(f"Result: {report.status}", fg=status_color, bold=True)
    sys.exit(result.exit_code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--only", "only", multiple=True, help="Plan only this unit (and its dependencies).")
@click.pass_context
def plan(ctx: click.Context, as_json: bool, only: tuple[str, ...]) -> None:
    """Show the dependency stages in execution order."""
    from converge.core.config.loader import load_catalog
    from converge.core.engine.planner import plan as plan_catalog
    from converge.core.errors import ConfigurationError
    from converge.core.use_cases.converge import EXIT_CONFIG_ERROR

    try:
        catalog = load_catalog(ctx.obj.get("catalog_path"), ctx.obj.get("platform"))
        if only:
            catalog = catalog.select(list(only))
        execution_plan = plan_catalog(catalog)
    except ConfigurationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)
        return

    if as_json:
        click.echo(json.dumps(execution_plan.to_dict(), indent=2))
        return

    click.secho(
        f"\n📋 {execution_plan.platform or 'catalog'}: "
        f"{execution_plan.total_units} units in {len(execution_plan.stages)} stages",
        fg="cyan", bold=True,
    )
    for stage in execution_plan.stages:
        click.secho(f"\n   Stage {stage.index}", bold=True)
        for unit in stage.units:
            deps = f"  ← {', '.join(unit.depends_on)}" if unit.depends_on else ""
            click.echo(f"     • {unit.id} [{unit.kind}]{deps}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--only", "only", multiple=True, help="Check only this unit (and its dependencies).")
@click.option("--mock", is_flag=True, help="Use the in-memory mock backend.")
@click.pass_context
def status(ctx: click.Context, as_json: bool, only: tuple[str, ...], mock: bool) -> None:
    """Detect every unit without installing anything."""
    from converge.core.reporting.reporter import summarize_status
    from converge.core.use_cases.converge import survey_machine

    result = survey_machine(
        catalog_path=ctx.obj.get("catalog_path"),
        platform=ctx.obj.get("platform"),
        only=list(only) if only else None,
        mock_mode=mock,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        _fail(result.error, result.exit_code)

    present = sum(1 for _, d in result.detections if d.present)
    click.secho(
        f"\n🔍 {present}/{len(result.detections)} units present", fg="cyan", bold=True,
    )
    click.echo(summarize_status(result.detections))
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def render(ctx: click.Context, as_json: bool) -> None:
    """Regenerate configuration files from what is installed now."""
    from converge.core.reporting.reporter import summarize_renders
    from converge.core.use_cases.converge import render_machine

    result = render_machine(
        catalog_path=ctx.obj.get("catalog_path"),
        platform=ctx.obj.get("platform"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        _fail(result.error, result.exit_code)

    if not result.renders:
        click.echo("No configuration artifacts declared.")
        return
    click.echo(summarize_renders(result.renders))
    sys.exit(result.exit_code)


# ── Register sub-command groups from converge/ui/cli/ ─────────────

from converge.ui.cli.catalog import catalog
from converge.ui.cli.history import history

cli.add_command(catalog)
cli.add_command(history)


if __name__ == "__main__":
    cli()
