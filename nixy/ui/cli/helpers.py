"""
Shared CLI plumbing — context lookups and error reporting.

Every command pulls its settings, adapters and workspace from
``ctx.obj`` (populated by the top-level group) and reports domain
errors through ``fail`` so the exit codes stay consistent.
"""

from __future__ import annotations

import sys
from typing import NoReturn

import click

from nixy.adapters.base import Builder, Registry
from nixy.core.config.settings import Settings
from nixy.core.errors import ConsistencyError, NixyError, ProfileNotFoundError
from nixy.core.services.profiles import ProfileStore
from nixy.core.services.workspace import LegacyWorkspace, ProfileWorkspace, Workspace


def get_settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def get_builder(ctx: click.Context) -> Builder:
    builder = ctx.obj.get("builder")
    if builder is None:
        if ctx.obj.get("mock"):
            from nixy.adapters.mock import MockBuilder

            builder = MockBuilder()
        else:
            from nixy.adapters.nix import NixBuilder

            builder = NixBuilder()
        ctx.obj["builder"] = builder
    return builder


def get_registry(ctx: click.Context) -> Registry:
    registry = ctx.obj.get("registry")
    if registry is None:
        from nixy.adapters.nixhub import NixhubClient

        registry = NixhubClient()
        ctx.obj["registry"] = registry
    return registry


def get_store(ctx: click.Context) -> ProfileStore:
    return ProfileStore(get_settings(ctx))


def get_workspace(ctx: click.Context) -> Workspace:
    """The standalone ``--flake`` directory if given, else the active profile."""
    flake_dir = ctx.obj.get("flake_dir")
    if flake_dir is not None:
        return LegacyWorkspace(flake_dir)
    return ProfileWorkspace(get_store(ctx))


def fail(message: str) -> NoReturn:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(1)


def report_error(error: NixyError) -> NoReturn:
    """Print a domain error (and whether it was rolled back), then exit 1."""
    click.secho(f"❌ {error}", fg="red", err=True)
    if error.rolled_back:
        click.secho("↩️  Changes rolled back", fg="yellow", err=True)
    if isinstance(error, ProfileNotFoundError):
        click.echo(f"   Use 'nixy profile switch -c {error.name}' to create it.", err=True)
    elif isinstance(error, ConsistencyError):
        click.echo("   Nothing was changed.", err=True)
    sys.exit(1)
