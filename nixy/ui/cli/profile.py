"""
CLI commands for profiles.

Thin wrappers over ``nixy.core.use_cases.profile``.

Usage::

    nixy profile                 show the active profile
    nixy profile switch work     activate an existing profile
    nixy profile switch -c work  create it first if needed
    nixy profile list
    nixy profile delete work --force
"""

from __future__ import annotations

import json

import click

from nixy.core.errors import NixyError
from nixy.ui.cli.helpers import fail, get_builder, get_settings, get_store, report_error


@click.group(invoke_without_command=True)
@click.pass_context
def profile(ctx: click.Context) -> None:
    """Profiles — independent package sets, one active at a time."""
    if ctx.obj.get("flake_dir") is not None:
        fail("Profiles are not available with --flake")
    if ctx.invoked_subcommand is None:
        try:
            active = get_store(ctx).active_profile_name()
        except NixyError as e:
            report_error(e)
        click.echo(f"Active profile: {active}")


@profile.command()
@click.argument("name")
@click.option("--create", "-c", is_flag=True, help="Create the profile if it does not exist.")
@click.pass_context
def switch(ctx: click.Context, name: str, create: bool) -> None:
    """Switch to profile NAME."""
    from nixy.core.use_cases.profile import switch_profile

    settings = get_settings(ctx)
    try:
        result = switch_profile(
            get_store(ctx), name, get_builder(ctx), settings.env_link, create=create
        )
    except NixyError as e:
        report_error(e)

    if not result.changed:
        click.secho(f"✅ Already on profile '{name}'", fg="green")
        return
    if result.created:
        click.secho(f"✨ Created profile '{name}'", fg="cyan")
    click.secho(f"✅ Switched to profile '{name}'", fg="green", bold=True)


@profile.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List profiles."""
    from nixy.core.use_cases.profile import list_profiles

    try:
        result = list_profiles(get_store(ctx))
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    for entry in result.profiles:
        if entry["active"]:
            click.secho(f"* {entry['name']} (active)", fg="green", bold=True)
        else:
            click.echo(f"  {entry['name']}")


@profile.command()
@click.argument("name")
@click.option("--force", is_flag=True, help="Confirm deletion.")
@click.pass_context
def delete(ctx: click.Context, name: str, force: bool) -> None:
    """Delete profile NAME and its flake."""
    from nixy.core.use_cases.profile import delete_profile

    try:
        delete_profile(get_store(ctx), name, force=force)
    except NixyError as e:
        report_error(e)

    click.secho(f"🗑️  Deleted profile '{name}'", fg="green")
