"""
Flake files — decide how a mutation may touch the flake.nix on disk.

    MISSING    nothing there yet                → regenerate
    GENERATED  written by render(), no markers  → regenerate, unless edited by hand
    MARKED     older marker-based layout        → incremental marker edit
    FOREIGN    not nixy's                       → refuse unless forced

A GENERATED file is untouched when its checksum header still matches
its body. Files written before the header existed are compared with
``render(state)`` instead. Anything else has been edited outside any
managed region and is refused, unless the user asks to overwrite
(``force``) or to keep the edits (``keep_edits``), in which case
markers are retrofitted and the change is applied in place.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from nixy.core.errors import ConsistencyError
from nixy.core.models.state import PackageState
from nixy.core.persistence.state_file import atomic_write_text
from nixy.core.services.flake import editor, legacy
from nixy.core.services.flake.generator import (
    MANAGED_DESCRIPTION,
    is_unmodified,
    render,
    split_checksum,
)

logger = logging.getLogger(__name__)

FLAKE_FILE = "flake.nix"
LOCK_FILE = "flake.lock"


class FlakeKind(str, Enum):
    MISSING = "missing"
    GENERATED = "generated"
    MARKED = "marked"
    FOREIGN = "foreign"


class EditMode(str, Enum):
    REGENERATE = "regenerate"
    INCREMENTAL = "incremental"
    RETROFIT = "retrofit"


def flake_path(flake_dir: Path) -> Path:
    return flake_dir / FLAKE_FILE


def read_flake(flake_dir: Path) -> str | None:
    path = flake_path(flake_dir)
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def classify_flake(content: str | None) -> FlakeKind:
    if content is None:
        return FlakeKind.MISSING
    if editor.has_any_marker(content):
        return FlakeKind.MARKED
    if MANAGED_DESCRIPTION in content:
        return FlakeKind.GENERATED
    return FlakeKind.FOREIGN


def choose_edit_mode(
    content: str | None,
    state: PackageState,
    packages_dir: Path | None,
    force: bool = False,
    keep_edits: bool = False,
) -> EditMode:
    """Pick how to apply a mutation, or raise ConsistencyError.

    ``state`` is the state *before* the mutation. It only matters for a
    generated file without a checksum header, which is untouched when it
    still equals ``render(state)``.
    """
    kind = classify_flake(content)

    if kind is FlakeKind.MISSING:
        return EditMode.REGENERATE

    if kind is FlakeKind.MARKED:
        return EditMode.REGENERATE if force else EditMode.INCREMENTAL

    if kind is FlakeKind.FOREIGN:
        if force:
            logger.warning("Overwriting flake.nix that was not generated by nixy")
            return EditMode.REGENERATE
        raise ConsistencyError(
            "flake.nix was not generated by nixy; rerun with --force to overwrite it"
        )

    if is_generated_untouched(content, state, packages_dir):
        return EditMode.REGENERATE
    if keep_edits:
        return EditMode.RETROFIT
    if force:
        logger.warning("Discarding manual edits to flake.nix")
        return EditMode.REGENERATE
    raise ConsistencyError(
        "flake.nix has edits outside managed markers; rerun with --force to "
        "overwrite them or --keep-edits to preserve them"
    )


def is_generated_untouched(content: str, state: PackageState, packages_dir: Path | None) -> bool:
    if is_unmodified(content):
        return True
    recorded, body = split_checksum(content)
    return recorded is None and body == split_checksum(render(state, packages_dir))[1]


def write_flake(flake_dir: Path, content: str) -> None:
    atomic_write_text(flake_path(flake_dir), content)


def regenerate_flake(flake_dir: Path, state: PackageState, packages_dir: Path | None) -> str:
    """Render ``state`` and write it as the flake.nix of ``flake_dir``."""
    content = render(state, packages_dir)
    write_flake(flake_dir, content)
    logger.info("Regenerated %s", flake_path(flake_dir))
    return content


def apply_edit(
    flake_dir: Path,
    mode: EditMode,
    state: PackageState,
    packages_dir: Path | None,
    install: legacy.InstallTarget | None = None,
    uninstall: str | None = None,
) -> None:
    """Bring flake.nix in line with the (already mutated) ``state``."""
    if mode is EditMode.REGENERATE:
        regenerate_flake(flake_dir, state, packages_dir)
        return

    content = read_flake(flake_dir) or ""
    if mode is EditMode.RETROFIT:
        content = legacy.add_markers(content)
    if uninstall is not None:
        content = legacy.apply_uninstall_edit(content, uninstall)
    if install is not None:
        content = legacy.apply_install_edit(content, install)
    write_flake(flake_dir, content)
    logger.info("Edited %s in place (%s)", flake_path(flake_dir), mode.value)


def text_to_restore(content: str | None, state: PackageState, packages_dir: Path | None) -> str | None:
    """The flake text a rollback must write back verbatim, if any.

    None when regenerating from ``state`` reproduces the file exactly
    (or there was no file), so the rollback can simply re-render.
    """
    if content is None or content == render(state, packages_dir):
        return None
    return content
