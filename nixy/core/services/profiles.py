"""
Profile store — named package sets kept in a single nixy.json.

Each profile has its own generated flake under the state directory;
local package definitions are shared by all profiles. Exactly one
profile is active, and the ``default`` profile always exists.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from nixy.core.config.settings import Settings
from nixy.core.errors import InvalidProfileNameError
from nixy.core.models.state import NixyConfig
from nixy.core.persistence.state_file import load_nixy_config, save_nixy_config
from nixy.core.services.flake.files import FLAKE_FILE

logger = logging.getLogger(__name__)

_PROFILE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_profile_name(name: str) -> None:
    if not _PROFILE_NAME.match(name):
        raise InvalidProfileNameError(name)


@dataclass(frozen=True)
class Profile:
    name: str
    directory: Path         # holds flake.nix / flake.lock
    packages_dir: Path      # local package definitions (shared)

    @property
    def flake_path(self) -> Path:
        return self.directory / FLAKE_FILE


class ProfileStore:
    """Load, query and persist the multi-profile store."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def path(self) -> Path:
        return self.settings.nixy_json

    def load(self) -> NixyConfig:
        """The store on disk, or a fresh one holding only ``default``."""
        config = load_nixy_config(self.path)
        if config is None:
            config = NixyConfig()
            config.normalize()
        return config

    def save(self, config: NixyConfig) -> None:
        config.normalize()
        save_nixy_config(config, self.path)
        logger.debug("Saved %s (active=%s)", self.path, config.active_profile)

    def profile(self, name: str) -> Profile:
        validate_profile_name(name)
        return Profile(
            name=name,
            directory=self.settings.profile_state_dir(name),
            packages_dir=self.settings.global_packages_dir,
        )

    def active_profile_name(self) -> str:
        return self.load().active_profile

    def list_profiles(self, config: NixyConfig | None = None) -> list[tuple[str, bool]]:
        """``(name, is_active)`` for every profile, sorted by name."""
        config = config or self.load()
        return [(name, name == config.active_profile) for name in config.list_profiles()]

    def create_profile(self, name: str) -> bool:
        """Add an empty profile and save. Returns False if it already existed."""
        validate_profile_name(name)
        config = self.load()
        if not config.create_profile(name):
            return False
        self.save(config)
        logger.info("Created profile '%s'", name)
        return True

    def set_active_profile(self, name: str) -> None:
        """Point the store at ``name``; raises ProfileNotFoundError if it is missing."""
        config = self.load()
        config.set_active_profile(name)
        self.save(config)

    def delete_profile(self, name: str) -> None:
        """Drop ``name`` from the store. The active profile cannot be deleted."""
        validate_profile_name(name)
        config = self.load()
        config.delete_profile(name)
        self.save(config)
