"""
Migration — move the pre-nixy.json layout into the central store.

Older versions kept one directory per profile under the config dir:

    ~/.config/nixy/active                      name of the active profile
    ~/.config/nixy/profiles/<name>/flake.nix   hand-editable, marker-based
    ~/.config/nixy/profiles/<name>/packages.json
    ~/.config/nixy/profiles/<name>/packages/   local package definitions
    ~/.config/nixy/flake.nix                   the very first, single-profile layout

Migration builds nixy.json from those files (recovering state from the
flake markers where no packages.json exists), copies each flake and
lock into the state directory, and merges local packages into the
shared packages directory without overwriting anything. The legacy
files are left in place.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from nixy.core.config.settings import DEFAULT_PROFILE, PACKAGES_DIR, Settings
from nixy.core.errors import InvalidProfileNameError
from nixy.core.models.state import NixyConfig, PackageState
from nixy.core.persistence.state_file import load_package_state, save_nixy_config, state_path
from nixy.core.services.flake import editor
from nixy.core.services.flake.files import FLAKE_FILE, LOCK_FILE
from nixy.core.services.flake.legacy import recover_state_from_markers
from nixy.core.services.profiles import validate_profile_name

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    config: NixyConfig
    profiles: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def needs_migration(settings: Settings) -> bool:
    """True when there is legacy data and no nixy.json yet."""
    if settings.nixy_json.exists():
        return False
    return (
        settings.legacy_profiles_dir.is_dir()
        or settings.legacy_active_file.is_file()
        or settings.legacy_flake.is_file()
    )


def migrate_to_nixy_json(settings: Settings) -> MigrationResult:
    """Build a NixyConfig from the legacy layout. Writes flakes, not nixy.json."""
    result = MigrationResult(config=NixyConfig(profiles={}))

    if settings.legacy_active_file.is_file():
        active = settings.legacy_active_file.read_text(encoding="utf-8").strip()
        if active:
            result.config.active_profile = active

    sources: list[tuple[str, Path]] = []
    if settings.legacy_profiles_dir.is_dir():
        for entry in sorted(settings.legacy_profiles_dir.iterdir()):
            if entry.is_dir():
                sources.append((entry.name, entry))
    if not sources and settings.legacy_flake.is_file():
        sources.append((DEFAULT_PROFILE, settings.config_dir))

    for name, directory in sources:
        try:
            validate_profile_name(name)
        except InvalidProfileNameError as e:
            _warn(result, f"Skipping legacy profile directory {directory}: {e}")
            continue
        result.config.profiles[name] = _migrate_profile(settings, name, directory, result)
        result.profiles.append(name)

    result.config.normalize()
    return result


def run_migration_if_needed(settings: Settings) -> MigrationResult | None:
    """Migrate and save nixy.json if the legacy layout is present."""
    if not needs_migration(settings):
        return None
    logger.info("Migrating legacy profiles from %s", settings.config_dir)
    result = migrate_to_nixy_json(settings)
    save_nixy_config(result.config, settings.nixy_json)
    return result


# ── Internals ───────────────────────────────────────────────────


def _migrate_profile(
    settings: Settings, name: str, directory: Path, result: MigrationResult
) -> PackageState:
    legacy_state = state_path(directory)
    flake = directory / FLAKE_FILE

    if legacy_state.is_file():
        state = load_package_state(legacy_state)
    elif flake.is_file() and editor.has_any_marker(flake.read_text(encoding="utf-8")):
        recovered = recover_state_from_markers(flake.read_text(encoding="utf-8"))
        state = recovered.state
        result.warnings.extend(f"{name}: {w}" for w in recovered.warnings)
    else:
        state = PackageState()

    target = settings.profile_state_dir(name)
    target.mkdir(parents=True, exist_ok=True)
    for file_name in (FLAKE_FILE, LOCK_FILE):
        source = directory / file_name
        if source.is_file() and not (target / file_name).exists():
            shutil.copy2(source, target / file_name)

    _merge_local_packages(directory / PACKAGES_DIR, settings.global_packages_dir, result)
    return state


def _merge_local_packages(source: Path, target: Path, result: MigrationResult) -> None:
    if not source.is_dir() or source.resolve() == target.resolve():
        return
    target.mkdir(parents=True, exist_ok=True)
    for entry in sorted(source.iterdir()):
        dest = target / entry.name
        if dest.exists():
            _warn(result, f"Local package {entry.name} already exists in {target}; keeping it")
            continue
        if entry.is_dir():
            shutil.copytree(entry, dest)
        else:
            shutil.copy2(entry, dest)


def _warn(result: MigrationResult, message: str) -> None:
    logger.warning(message)
    result.warnings.append(message)
