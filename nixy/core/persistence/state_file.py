"""
State file persistence — atomic read/write for packages.json and nixy.json.

Writes go to a temporary file in the target directory and are renamed
over the target, so a crash mid-write leaves either the old file or the
new one, never a torn one.

Unlike a cache, these files are the source of truth: a file that exists
but cannot be parsed is an error, not a reason to start fresh.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from nixy.core.errors import StateFileError
from nixy.core.models.state import NixyConfig, PackageState

logger = logging.getLogger(__name__)

STATE_FILE = "packages.json"

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def state_path(flake_dir: Path) -> Path:
    """The packages.json that sits next to a standalone flake."""
    return flake_dir / STATE_FILE


# ── packages.json ───────────────────────────────────────────────


def load_package_state(path: Path) -> PackageState:
    """Load a package state, or a fresh one if the file does not exist."""
    state = _load_model(path, PackageState)
    if state is None:
        logger.info("No state file at %s — starting fresh", path)
        return PackageState()
    if state.migrate():
        logger.info("Upgraded state from %s to version %d", path, state.version)
    return state


def save_package_state(state: PackageState, path: Path) -> None:
    _atomic_write_model(state, path)


# ── nixy.json ───────────────────────────────────────────────────


def load_nixy_config(path: Path) -> NixyConfig | None:
    """Load the multi-profile store. Returns None if it does not exist yet."""
    config = _load_model(path, NixyConfig)
    if config is None:
        return None
    if config.normalize():
        logger.info("Normalized %s (version %d)", path, config.version)
    return config


def save_nixy_config(config: NixyConfig, path: Path) -> None:
    _atomic_write_model(config, path)


# ── Internals ───────────────────────────────────────────────────


def _load_model(path: Path, model: type[_ModelT]) -> _ModelT | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        loaded = model.model_validate(data)
    except json.JSONDecodeError as e:
        raise StateFileError(f"Corrupt state file {path}: {e}") from e
    except ValidationError as e:
        raise StateFileError(f"Invalid state file {path}: {e}") from e
    except OSError as e:
        raise StateFileError(f"Cannot read state file {path}: {e}") from e
    logger.debug("Loaded %s from %s", model.__name__, path)
    return loaded


def _atomic_write_model(model: BaseModel, path: Path) -> None:
    content = json.dumps(model.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"
    atomic_write_text(path, content)


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a sibling temp file and a rename."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp, path)
        logger.debug("Wrote %s", path)
    except Exception as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to write %s: %s", path, e)
        raise
