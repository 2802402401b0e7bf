"""
Upgrade use case — refresh flake.lock and rebuild.

With no arguments every input is updated; otherwise only the named
ones, which must be declared by the current flake.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from nixy.adapters.base import Builder
from nixy.core.errors import BuildError, UsageError
from nixy.core.services.flake.files import read_flake, regenerate_flake
from nixy.core.services.workspace import Workspace
from nixy.core.use_cases.sync import build_environment

logger = logging.getLogger(__name__)

_INPUT_DECL = re.compile(r'^\s*([A-Za-z_][A-Za-z0-9_-]*)\.url\s*=', re.MULTILINE)


@dataclass
class UpgradeResult:
    workspace: str
    inputs: list[str] = field(default_factory=list)     # empty = all

    def to_dict(self) -> dict:
        return {"workspace": self.workspace, "inputs": self.inputs or "all"}


def declared_inputs(content: str) -> list[str]:
    return sorted(set(_INPUT_DECL.findall(content)))


def upgrade_inputs(
    workspace: Workspace,
    builder: Builder,
    env_link: Path,
    inputs: list[str] | None = None,
) -> UpgradeResult:
    content = read_flake(workspace.flake_dir)
    if content is None:
        content = regenerate_flake(workspace.flake_dir, workspace.load_state(), workspace.packages_dir)

    wanted = list(inputs or [])
    if wanted:
        known = declared_inputs(content)
        unknown = [name for name in wanted if name not in known]
        if unknown:
            raise UsageError(
                f"Unknown input(s): {', '.join(unknown)}. Available: {', '.join(known)}"
            )

    receipt = builder.update(workspace.flake_dir, wanted)
    if receipt.failed:
        raise BuildError(f"Failed to update flake inputs: {receipt.error}")

    build_environment(builder, workspace.flake_dir, env_link)
    return UpgradeResult(workspace=workspace.label, inputs=wanted)
