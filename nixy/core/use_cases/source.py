"""
Source use case — where the definition of an installed package lives.

    custom     flake.nix of the input, fetched into the Nix store
    resolved   meta.position of the attribute at the pinned nixpkgs commit
    nixpkgs    meta.position of the attribute on the flake's own nixpkgs
    local      the .nix file (or the flake.nix of the directory) in packages/

Read-only: nothing is written, so there is nothing to roll back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from nixy.adapters.base import Builder
from nixy.core.errors import BuildError, NixNotInstalledError, UsageError
from nixy.core.models.receipt import Receipt
from nixy.core.services.flake.generator import DEFAULT_NIXPKGS_URL
from nixy.core.services.workspace import Workspace
from nixy.core.use_cases.uninstall import find_local_paths

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    package: str
    kind: str                               # custom | resolved | nixpkgs | local
    path: Path

    def to_dict(self) -> dict:
        return {"package": self.package, "kind": self.kind, "path": str(self.path)}


def package_source_path(workspace: Workspace, name: str, builder: Builder) -> SourceResult:
    """Locate the file that defines ``name`` in ``workspace``."""
    state = workspace.load_state()

    custom = state.get_custom_package(name)
    if custom is not None:
        store_path = _output(builder, builder.prefetch_flake, custom.input_url)
        return SourceResult(name, "custom", Path(store_path) / "flake.nix")

    resolved = state.get_resolved_package(name)
    if resolved is not None:
        position = _output(
            builder, builder.package_position,
            resolved.input_url, resolved.attribute_path, builder.current_system(),
        )
        return SourceResult(name, "resolved", strip_line_number(position))

    if state.is_legacy_package(name):
        position = _output(
            builder, builder.package_position,
            DEFAULT_NIXPKGS_URL, name, builder.current_system(),
        )
        return SourceResult(name, "nixpkgs", strip_line_number(position))

    local_paths = find_local_paths(workspace.packages_dir, name)
    if local_paths:
        path = local_paths[0]
        return SourceResult(name, "local", path / "flake.nix" if path.is_dir() else path)

    raise UsageError(f"Package '{name}' is not installed in {workspace.label}")


def strip_line_number(position: str) -> Path:
    """``/nix/store/...-source/pkgs/foo.nix:42`` → the path without ``:42``."""
    path, sep, line = position.strip().rpartition(":")
    if sep and line.isdigit():
        return Path(path)
    return Path(position.strip())


def _output(builder: Builder, call, *args) -> str:
    if not builder.is_available():
        raise NixNotInstalledError()
    receipt: Receipt = call(*args)
    if receipt.failed:
        raise BuildError(f"nix {receipt.action} failed: {receipt.error}")
    logger.debug("nix %s → %s", receipt.action, receipt.output)
    return receipt.output
