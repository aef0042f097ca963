"""
CLI commands for catalogs — validation and discovery.

Usage::

    converge catalog check
    converge --catalog my.yml catalog check --json
    converge catalog list
"""

from __future__ import annotations

import json
import sys

import click


@click.group()
def catalog() -> None:
    """Catalog commands — validate and list unit catalogs."""


@catalog.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def catalog_check(ctx: click.Context, as_json: bool) -> None:
    """Validate a catalog: duplicates, unknown deps, cycles, generators, backends."""
    from converge.core.errors import ConfigurationError
    from converge.core.use_cases.converge import EXIT_CONFIG_ERROR, open_session

    try:
        session = open_session(
            catalog_path=ctx.obj.get("catalog_path"),
            platform=ctx.obj.get("platform"),
        )
    except ConfigurationError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "error": str(e), "units": e.units}, indent=2))
        else:
            click.secho("❌ Catalog errors:", fg="red", bold=True)
            click.echo(f"   • {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    unavailable = sorted({
        session.registry.resolve(u).name
        for u in session.catalog.units
        if not session.registry.resolve(u).is_available()
    })

    if as_json:
        click.echo(json.dumps({
            "valid": True,
            "platform": session.catalog.platform,
            "units": len(session.catalog.units),
            "stages": len(session.plan.stages),
            "artifacts": [a.name for a in session.artifacts],
            "unavailable_backends": unavailable,
        }, indent=2))
        return

    click.secho("✅ Catalog is valid", fg="green", bold=True)
    click.echo(f"   Platform:  {session.catalog.platform or '(unspecified)'}")
    click.echo(f"   Units:     {len(session.catalog.units)}")
    click.echo(f"   Stages:    {len(session.plan.stages)}")
    click.echo(f"   Artifacts: {len(session.artifacts)}")

    if unavailable:
        click.echo()
        click.secho("⚠️  Backends not available on this machine yet:", fg="yellow")
        for name in unavailable:
            click.echo(f"   • {name}")
    click.echo()


@catalog.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def catalog_list(as_json: bool) -> None:
    """List the built-in catalogs."""
    from converge.core.config.loader import builtin_catalog_path, list_builtin_catalogs

    names = list_builtin_catalogs()
    if as_json:
        click.echo(json.dumps(
            [{"name": n, "path": str(builtin_catalog_path(n))} for n in names], indent=2,
        ))
        return
    for name in names:
        click.echo(f"   • {name}  → {builtin_catalog_path(name)}")
