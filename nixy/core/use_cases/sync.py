"""
Sync use case — rebuild the environment from the recorded state.

Regenerates flake.nix (when it is missing, or generated and untouched)
and builds ``#default`` into the environment link. A marker-based file
is built as-is; a foreign or hand-edited one is refused without
``force``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from nixy.adapters.base import Builder
from nixy.core.errors import BuildError, NixNotInstalledError
from nixy.core.services.flake.files import (
    EditMode,
    choose_edit_mode,
    read_flake,
    regenerate_flake,
)
from nixy.core.services.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    workspace: str
    flake_dir: Path
    regenerated: bool = False
    packages: int = 0

    def to_dict(self) -> dict:
        return {
            "workspace": self.workspace,
            "flake_dir": str(self.flake_dir),
            "regenerated": self.regenerated,
            "packages": self.packages,
        }


def build_environment(builder: Builder, flake_dir: Path, env_link: Path) -> None:
    """Build ``flake_dir#default`` into ``env_link``; raise BuildError on failure."""
    if not builder.is_available():
        raise NixNotInstalledError()
    logger.info("Building %s#default → %s", flake_dir, env_link)
    receipt = builder.build(flake_dir, "default", env_link)
    if receipt.failed:
        raise BuildError(f"Failed to build environment: {receipt.error}")
    logger.debug("Build finished in %d ms", receipt.duration_ms)


def sync_environment(
    workspace: Workspace,
    builder: Builder,
    env_link: Path,
    force: bool = False,
) -> SyncResult:
    state = workspace.load_state()
    content = read_flake(workspace.flake_dir)
    mode = choose_edit_mode(content, state, workspace.packages_dir, force=force)

    result = SyncResult(
        workspace=workspace.label,
        flake_dir=workspace.flake_dir,
        packages=len(state.all_package_names()),
    )

    if mode is EditMode.REGENERATE:
        new_content = regenerate_flake(workspace.flake_dir, state, workspace.packages_dir)
        result.regenerated = new_content != content
    else:
        logger.info("Leaving marker-based flake.nix as it is")

    build_environment(builder, workspace.flake_dir, env_link)
    return result
