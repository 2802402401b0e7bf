"""
Install use case — add a package to the active workspace and rebuild.

Accepted forms:

    ripgrep                   latest version, pinned via the registry
    nodejs@20                 a specific version, pinned via the registry
    ripgrep  (no_resolve)     unpinned, from the flake's own nixpkgs
    github:owner/repo#pkg     a package exported by an external flake
    --file ./hello.nix        a local package definition (or flake directory)

Everything that can fail without side effects (validation, registry
lookups, flake probing, consistency checks) happens first. Then the
state is snapshotted, mutated, saved, the flake is rewritten and the
environment built inside a Transaction: any failure from that point on
restores the snapshot before the error reaches the caller.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from nixy.adapters.base import Builder, Registry
from nixy.adapters.nixhub import parse_package_spec
from nixy.core.errors import ConsistencyError, NoPackageNameError, UsageError
from nixy.core.models.package import CustomPackage, ResolvedPackage, normalize_platforms
from nixy.core.models.state import PackageState
from nixy.core.services.flake.editor import is_valid_nix_identifier
from nixy.core.services.flake.files import (
    EditMode,
    apply_edit,
    choose_edit_mode,
    read_flake,
    text_to_restore,
)
from nixy.core.services.flake.local_packages import parse_local_package_file
from nixy.core.services.rollback import RollbackContext, Transaction
from nixy.core.services.workspace import Workspace
from nixy.core.use_cases.sync import build_environment

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    package: str
    kind: str                               # nixpkgs | resolved | custom | local
    workspace: str
    version: str | None = None
    source: str | None = None
    already_installed: bool = False
    edit_mode: str | None = None

    def to_dict(self) -> dict:
        return {
            "package": self.package,
            "kind": self.kind,
            "workspace": self.workspace,
            "version": self.version,
            "source": self.source,
            "already_installed": self.already_installed,
            "edit_mode": self.edit_mode,
        }


# ── Flake reference helpers ─────────────────────────────────────


def is_flake_reference(spec: str) -> bool:
    return ":" in spec


def sanitize_input_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9-]", "-", value).strip("-")


def derive_package_name_from_url(url: str) -> str:
    """``github:user/repo`` → ``repo``; ``path:./foo/bar`` → ``bar``."""
    _, _, path = url.partition(":")
    last = (path or url).rstrip("/").rsplit("/", 1)[-1]
    if last.endswith(".git"):
        last = last[: -len(".git")]
    return sanitize_input_name(last) or "default"


def derive_input_name_from_url(url: str) -> str:
    """``github:NixOS/nixpkgs`` → ``github-NixOS-nixpkgs``."""
    parts = url.split("/")
    if len(parts) < 2:
        return "custom-flake"
    repo = parts[-1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return sanitize_input_name(f"{parts[-2]}-{repo}") or "custom-flake"


# ── Use case ────────────────────────────────────────────────────


def install_package(
    workspace: Workspace,
    spec: str,
    builder: Builder,
    env_link: Path,
    registry: Registry | None = None,
    platforms: list[str] | None = None,
    alias: str | None = None,
    no_resolve: bool = False,
    force: bool = False,
    keep_edits: bool = False,
) -> InstallResult:
    """Install ``spec`` into ``workspace``. See the module docstring for forms."""
    systems = normalize_platforms(platforms) if platforms else None

    if is_flake_reference(spec):
        target = _custom_package(spec, builder, alias, systems)
        kind, version, source = "custom", None, target.input_url
    elif no_resolve:
        name, version = parse_package_spec(spec)
        if version:
            raise UsageError("A version needs registry resolution; drop --no-resolve")
        if systems:
            raise UsageError("--platform needs registry resolution; drop --no-resolve")
        _check_identifier(name)
        target, kind, source = name, "nixpkgs", "nixpkgs"
    else:
        if registry is None:
            raise UsageError("No package registry available; use --no-resolve")
        target = _resolved_package(spec, builder, registry, systems)
        kind, version, source = "resolved", target.resolved_version, target.input_url

    name = target if isinstance(target, str) else target.name
    state = workspace.load_state()

    if _already_installed(state, target):
        logger.info("%s is already installed in %s", name, workspace.label)
        return InstallResult(
            package=name, kind=kind, workspace=workspace.label, version=version,
            source=source, already_installed=True,
        )

    content = read_flake(workspace.flake_dir)
    mode = choose_edit_mode(content, state, workspace.packages_dir, force, keep_edits)

    context = RollbackContext(
        flake_dir=workspace.flake_dir,
        packages_dir=workspace.packages_dir,
        original=workspace.snapshot(),
        original_flake=text_to_restore(content, state, workspace.packages_dir),
    )

    with Transaction(context):
        if isinstance(target, str):
            state.add_legacy_package(target)
        elif isinstance(target, ResolvedPackage):
            state.add_resolved_package(target)
        else:
            state.add_custom_package(target)
        workspace.save_state(state)
        apply_edit(workspace.flake_dir, mode, state, workspace.packages_dir, install=target)
        build_environment(builder, workspace.flake_dir, env_link)

    return InstallResult(
        package=name, kind=kind, workspace=workspace.label, version=version,
        source=source, edit_mode=mode.value,
    )


def install_local_file(
    workspace: Workspace,
    path: Path,
    builder: Builder,
    env_link: Path,
    force: bool = False,
) -> InstallResult:
    """Copy a local ``.nix`` file (or flake directory) into the packages directory."""
    if path.is_dir():
        if not (path / "flake.nix").is_file():
            raise UsageError(f"{path} is a directory without a flake.nix")
        name = path.name
    elif path.is_file():
        local = parse_local_package_file(path)
        if local is None:
            raise NoPackageNameError(str(path))
        name = local.name
    else:
        raise UsageError(f"File not found: {path}")

    _check_identifier(name)
    dest = workspace.packages_dir / path.name
    if dest.exists():
        raise UsageError(f"{dest} already exists; remove it first with 'nixy uninstall {name}'")

    state = workspace.load_state()
    content = read_flake(workspace.flake_dir)
    mode = choose_edit_mode(content, state, workspace.packages_dir, force)
    if mode is not EditMode.REGENERATE:
        raise ConsistencyError(
            "Local packages need a generated flake.nix; rerun with --force to regenerate it"
        )

    context = RollbackContext(
        flake_dir=workspace.flake_dir,
        packages_dir=workspace.packages_dir,
        original=workspace.snapshot(),
        original_flake=text_to_restore(content, state, workspace.packages_dir),
        copied_file=dest,
    )

    with Transaction(context):
        dest.parent.mkdir(parents=True, exist_ok=True)
        if path.is_dir():
            shutil.copytree(path, dest)
        else:
            shutil.copy2(path, dest)
        apply_edit(workspace.flake_dir, mode, state, workspace.packages_dir)
        build_environment(builder, workspace.flake_dir, env_link)

    return InstallResult(
        package=name, kind="local", workspace=workspace.label, source=str(dest),
        edit_mode=mode.value,
    )


# ── Internals ───────────────────────────────────────────────────


def _check_identifier(name: str) -> None:
    if not is_valid_nix_identifier(name):
        raise UsageError(f"'{name}' is not a valid Nix attribute name")


def _custom_package(
    spec: str, builder: Builder, alias: str | None, systems: list[str] | None
) -> CustomPackage:
    url, sep, attr = spec.partition("#")
    if not sep or not attr:
        attr = derive_package_name_from_url(url)
    name = alias or attr
    _check_identifier(name)

    output = builder.find_package_output(url, attr)
    if output is None:
        raise UsageError(f"Package '{attr}' not found in flake {url}")

    return CustomPackage(
        name=name,
        input_name=derive_input_name_from_url(url),
        input_url=url,
        package_output=output,
        source_name=attr if attr != name else None,
        platforms=systems,
    )


def _resolved_package(
    spec: str, builder: Builder, registry: Registry, systems: list[str] | None
) -> ResolvedPackage:
    name, version = parse_package_spec(spec)
    _check_identifier(name)
    info = registry.resolve(name, version, builder.current_system())
    return ResolvedPackage(
        name=name,
        version_spec=version,
        resolved_version=info.version,
        attribute_path=info.attribute_path,
        commit_hash=info.commit_hash,
        platforms=systems,
    )


def _already_installed(state: PackageState, target: str | ResolvedPackage | CustomPackage) -> bool:
    if isinstance(target, str):
        return state.is_legacy_package(target)
    if isinstance(target, ResolvedPackage):
        return state.get_resolved_package(target.name) == target
    return state.get_custom_package(target.name) == target
