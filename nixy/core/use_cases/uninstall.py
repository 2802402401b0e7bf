"""
Uninstall use case — remove a package from the active workspace and rebuild.

A local package's definition file (or flake directory) is moved aside
rather than deleted, so a failed rebuild can put it back; the backup
is dropped once the operation commits.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from nixy.adapters.base import Builder
from nixy.core.errors import UsageError
from nixy.core.services.flake.files import apply_edit, choose_edit_mode, read_flake, text_to_restore
from nixy.core.services.flake.local_packages import collect_local_packages
from nixy.core.services.rollback import BACKUP_PREFIX, RollbackContext, Transaction
from nixy.core.services.workspace import Workspace
from nixy.core.use_cases.sync import build_environment

logger = logging.getLogger(__name__)


@dataclass
class UninstallResult:
    package: str
    workspace: str
    removed_files: list[str] = field(default_factory=list)
    edit_mode: str | None = None

    def to_dict(self) -> dict:
        return {
            "package": self.package,
            "workspace": self.workspace,
            "removed_files": self.removed_files,
            "edit_mode": self.edit_mode,
        }


def find_local_paths(packages_dir: Path, name: str) -> list[Path]:
    """Files or flake directories in ``packages_dir`` that define ``name``."""
    local_packages, local_flakes = collect_local_packages(packages_dir)
    paths = [
        packages_dir / (pkg.file_name or f"{pkg.name}.nix")
        for pkg in local_packages
        if pkg.name == name
    ]
    paths += [flake.directory for flake in local_flakes if flake.name == name]
    return paths


def uninstall_package(
    workspace: Workspace,
    name: str,
    builder: Builder,
    env_link: Path,
    force: bool = False,
    keep_edits: bool = False,
) -> UninstallResult:
    state = workspace.load_state()
    local_paths = find_local_paths(workspace.packages_dir, name)

    if not state.has_package(name) and not local_paths:
        raise UsageError(f"Package '{name}' is not installed in {workspace.label}")

    content = read_flake(workspace.flake_dir)
    mode = choose_edit_mode(content, state, workspace.packages_dir, force, keep_edits)

    context = RollbackContext(
        flake_dir=workspace.flake_dir,
        packages_dir=workspace.packages_dir,
        original=workspace.snapshot(),
        original_flake=text_to_restore(content, state, workspace.packages_dir),
    )
    result = UninstallResult(package=name, workspace=workspace.label, edit_mode=mode.value)

    with Transaction(context):
        if local_paths:
            backup_dir = Path(
                tempfile.mkdtemp(prefix=BACKUP_PREFIX, dir=workspace.packages_dir.parent)
            )
            for path in local_paths:
                backup = backup_dir / path.name
                shutil.move(str(path), str(backup))
                context.moved_aside.append((path, backup))
                result.removed_files.append(str(path))
                logger.info("Moved %s aside to %s", path, backup)

        state.remove_package(name)
        workspace.save_state(state)
        apply_edit(workspace.flake_dir, mode, state, workspace.packages_dir, uninstall=name)
        build_environment(builder, workspace.flake_dir, env_link)

    return result
