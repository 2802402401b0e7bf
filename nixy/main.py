"""
nixy — CLI entrypoint.

Usage:
    nixy install ripgrep
    nixy install nodejs@20 --platform linux
    nixy install github:nix-community/neovim-nightly-overlay#neovim
    nixy uninstall ripgrep
    nixy list
    nixy file ripgrep
    nixy gc
    nixy profile switch -c work
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import click

from nixy import __version__
from nixy.core.errors import NixyError
from nixy.core.observability.logging_config import resolve_level, setup_logging
from nixy.ui.cli.helpers import (
    get_builder,
    get_registry,
    get_settings,
    get_workspace,
    report_error,
)

# Commands that never touch the store, so never trigger a migration
_NO_MIGRATION = {"config", "gc", "search"}


@click.group()
@click.version_option(version=__version__, prog_name="nixy")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--flake",
    "flake_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Manage a standalone flake directory (with its own packages.json) instead of a profile.",
)
@click.option("--mock", is_flag=True, help="Use the mock builder (no real nix calls).")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    flake_dir: Path | None,
    mock: bool,
) -> None:
    """nixy — declarative package management on top of Nix flakes."""
    from nixy.core.config.settings import Settings

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["mock"] = mock
    ctx.obj["flake_dir"] = flake_dir.resolve() if flake_dir else None
    ctx.obj.setdefault("settings", Settings.from_env())

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("NIXY_LOG_FILE"),
        log_file_level=os.environ.get("NIXY_LOG_FILE_LEVEL"),
    )

    if flake_dir is None and ctx.invoked_subcommand not in _NO_MIGRATION:
        from nixy.core.services.migration import run_migration_if_needed

        try:
            migrated = run_migration_if_needed(get_settings(ctx))
        except NixyError as e:
            report_error(e)
        if migrated is not None and not quiet:
            click.secho(
                f"📦 Migrated {len(migrated.profiles)} legacy profile(s) to nixy.json",
                fg="cyan",
            )
            for warning in migrated.warnings:
                click.secho(f"⚠️  {warning}", fg="yellow", err=True)


# ── Install / uninstall ─────────────────────────────────────────


@cli.command()
@click.argument("package", required=False)
@click.option("--file", "file_path", type=click.Path(exists=True, path_type=Path),
              help="Install a local .nix file or flake directory.")
@click.option("--platform", "-p", "platforms", multiple=True,
              help="Restrict to a platform (x86_64-linux, darwin, linux, ...). Repeatable.")
@click.option("--name", "alias", default=None, help="Install a flake package under another name.")
@click.option("--no-resolve", is_flag=True,
              help="Use the flake's own nixpkgs instead of pinning a version.")
@click.option("--force", is_flag=True, help="Overwrite a flake.nix nixy did not generate.")
@click.option("--keep-edits", is_flag=True, help="Keep manual edits to flake.nix (edit in place).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    package: str | None,
    file_path: Path | None,
    platforms: tuple[str, ...],
    alias: str | None,
    no_resolve: bool,
    force: bool,
    keep_edits: bool,
    as_json: bool,
) -> None:
    """Install PACKAGE (name, name@version, or flake reference)."""
    from nixy.core.use_cases.install import install_local_file, install_package

    if bool(package) == bool(file_path):
        raise click.UsageError("Give either a PACKAGE or --file, not both")

    settings = get_settings(ctx)
    try:
        workspace = get_workspace(ctx)
        if file_path is not None:
            result = install_local_file(
                workspace, file_path, get_builder(ctx), settings.env_link, force=force
            )
        else:
            result = install_package(
                workspace,
                package or "",
                get_builder(ctx),
                settings.env_link,
                registry=None if no_resolve else get_registry(ctx),
                platforms=list(platforms) or None,
                alias=alias,
                no_resolve=no_resolve,
                force=force,
                keep_edits=keep_edits,
            )
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.already_installed:
        click.secho(f"✅ {result.package} is already installed", fg="green")
        return

    version = f" {result.version}" if result.version else ""
    click.secho(f"✅ Installed {result.package}{version}", fg="green", bold=True)
    if not ctx.obj.get("quiet"):
        click.echo(f"   Source: {result.source}")
        click.echo(f"   Into:   {result.workspace}")


@cli.command()
@click.argument("package")
@click.option("--force", is_flag=True, help="Overwrite a flake.nix nixy did not generate.")
@click.option("--keep-edits", is_flag=True, help="Keep manual edits to flake.nix (edit in place).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(
    ctx: click.Context, package: str, force: bool, keep_edits: bool, as_json: bool
) -> None:
    """Uninstall PACKAGE."""
    from nixy.core.use_cases.uninstall import uninstall_package

    settings = get_settings(ctx)
    try:
        result = uninstall_package(
            get_workspace(ctx), package, get_builder(ctx), settings.env_link,
            force=force, keep_edits=keep_edits,
        )
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"✅ Uninstalled {result.package}", fg="green", bold=True)
    for path in result.removed_files:
        click.echo(f"   Removed {path}")


# ── Inspect ─────────────────────────────────────────────────────


@cli.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List installed packages."""
    from nixy.core.use_cases.listing import list_packages

    try:
        result = list_packages(get_workspace(ctx))
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"📦 Packages in {result.workspace}:", fg="cyan", bold=True)
    if not result.packages:
        click.echo("   (none)")
        return
    for entry in result.packages:
        version = f" {entry.version}" if entry.version else ""
        platforms = f" [{', '.join(entry.platforms)}]" if entry.platforms else ""
        click.echo(f"   • {entry.name}{version} ({entry.kind}){platforms}")


@cli.command("file")
@click.argument("package")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def file_cmd(ctx: click.Context, package: str, as_json: bool) -> None:
    """Print the path of the file that defines PACKAGE."""
    from nixy.core.use_cases.source import package_source_path

    try:
        result = package_source_path(get_workspace(ctx), package, get_builder(ctx))
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(str(result.path))


@cli.command()
@click.argument("query")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def search(ctx: click.Context, query: str, as_json: bool) -> None:
    """Search the package registry for QUERY."""
    try:
        hits = get_registry(ctx).search(query)
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps([hit.__dict__ for hit in hits], indent=2))
        return

    if not hits:
        click.secho(f"⚠️  No packages found for '{query}'", fg="yellow")
        return
    for hit in hits:
        click.secho(f"   {hit.name}", fg="white", bold=True, nl=False)
        click.echo(f"  {hit.summary}" if hit.summary else "")


# ── Build ───────────────────────────────────────────────────────


@cli.command()
@click.option("--force", is_flag=True, help="Regenerate flake.nix even if nixy did not write it.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def sync(ctx: click.Context, force: bool, as_json: bool) -> None:
    """Rebuild the environment from the recorded packages."""
    from nixy.core.use_cases.sync import sync_environment

    settings = get_settings(ctx)
    try:
        result = sync_environment(get_workspace(ctx), get_builder(ctx), settings.env_link, force=force)
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.regenerated:
        click.echo(f"   Regenerated {result.flake_dir / 'flake.nix'}")
    click.secho(f"✅ Environment synced ({result.packages} packages)", fg="green", bold=True)


@cli.command()
@click.argument("inputs", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def upgrade(ctx: click.Context, inputs: tuple[str, ...], as_json: bool) -> None:
    """Update flake inputs (all, or the named INPUTS) and rebuild."""
    from nixy.core.use_cases.upgrade import upgrade_inputs

    settings = get_settings(ctx)
    try:
        result = upgrade_inputs(get_workspace(ctx), get_builder(ctx), settings.env_link, list(inputs))
    except NixyError as e:
        report_error(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    which = ", ".join(result.inputs) if result.inputs else "all inputs"
    click.secho(f"✅ Upgraded {which}", fg="green", bold=True)


@cli.command()
@click.pass_context
def gc(ctx: click.Context) -> None:
    """Collect garbage in the Nix store."""
    from nixy.core.use_cases.gc import collect_garbage

    if not ctx.obj.get("quiet"):
        click.secho("🧹 Running garbage collection...", fg="cyan")
    try:
        collect_garbage(get_builder(ctx))
    except NixyError as e:
        report_error(e)

    click.secho("✅ Garbage collection complete", fg="green", bold=True)


@cli.command()
@click.argument("shell", type=click.Choice(["bash", "zsh", "fish"]))
@click.pass_context
def config(ctx: click.Context, shell: str) -> None:
    """Print shell configuration that puts the environment on PATH."""
    bin_dir = get_settings(ctx).env_link / "bin"
    if shell == "fish":
        click.echo(f'fish_add_path --prepend "{bin_dir}"')
    else:
        click.echo(f'export PATH="{bin_dir}:$PATH"')


# ── Register sub-command groups from nixy/ui/cli/ ────────────────

from nixy.ui.cli.profile import profile  # noqa: E402

cli.add_command(profile)


def main() -> None:
    """Console-script entrypoint: arm the interrupt handler, then run the CLI."""
    from nixy.core.services.rollback import install_interrupt_handler

    install_interrupt_handler(lambda message: click.secho(message, fg="yellow", err=True))
    cli()


if __name__ == "__main__":
    main()
