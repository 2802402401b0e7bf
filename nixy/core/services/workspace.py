"""
Workspaces — where a command reads its package state and writes its flake.

    ProfileWorkspace   a profile inside nixy.json (the normal case)
    LegacyWorkspace    a standalone directory with packages.json next to
                       flake.nix, selected with ``nixy --flake DIR``

Both hand out a snapshot of their persisted state for the rollback
controller before anything is mutated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from nixy.core.config.settings import PACKAGES_DIR
from nixy.core.models.state import NixyConfig, PackageState
from nixy.core.persistence.state_file import (
    load_package_state,
    save_package_state,
    state_path,
)
from nixy.core.services.profiles import ProfileStore
from nixy.core.services.rollback import LegacySnapshot, OriginalState, ProfileSnapshot


class Workspace(ABC):
    flake_dir: Path
    packages_dir: Path

    @property
    @abstractmethod
    def label(self) -> str:
        """Human-readable name, for messages."""

    @abstractmethod
    def load_state(self) -> PackageState:
        ...

    @abstractmethod
    def save_state(self, state: PackageState) -> None:
        ...

    @abstractmethod
    def snapshot(self) -> OriginalState:
        """A deep copy of the persisted state, taken before mutation."""


class LegacyWorkspace(Workspace):
    def __init__(self, flake_dir: Path):
        self.flake_dir = flake_dir
        self.packages_dir = flake_dir / PACKAGES_DIR
        self.state_path = state_path(flake_dir)

    @property
    def label(self) -> str:
        return str(self.flake_dir)

    def load_state(self) -> PackageState:
        return load_package_state(self.state_path)

    def save_state(self, state: PackageState) -> None:
        save_package_state(state, self.state_path)

    def snapshot(self) -> LegacySnapshot:
        return LegacySnapshot(state_path=self.state_path, state=self.load_state())


class ProfileWorkspace(Workspace):
    def __init__(self, store: ProfileStore, profile_name: str | None = None):
        self.store = store
        self.config: NixyConfig = store.load()
        profile = store.profile(profile_name or self.config.active_profile)
        self.profile_name = profile.name
        self.flake_dir = profile.directory
        self.packages_dir = profile.packages_dir

    @property
    def label(self) -> str:
        return f"profile '{self.profile_name}'"

    def load_state(self) -> PackageState:
        # Re-read: a rollback may have rewritten nixy.json since the last load
        self.config = self.store.load()
        return self.config.profiles.get(self.profile_name, PackageState()).model_copy(deep=True)

    def save_state(self, state: PackageState) -> None:
        self.config.profiles[self.profile_name] = state
        self.store.save(self.config)

    def snapshot(self) -> ProfileSnapshot:
        return ProfileSnapshot(
            config_path=self.store.path,
            config=self.store.load(),
            profile_name=self.profile_name,
        )
