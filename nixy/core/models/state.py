"""
State models — what nixy persists between runs.

PackageState is the package record of a single profile. It is stored
standalone as ``packages.json`` (one flake directory, legacy layout) or
embedded per profile inside ``nixy.json`` (NixyConfig, current layout).

A package name lives in exactly one of the three categories; every
``add_*`` method evicts it from the other two and re-sorts.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from nixy.core.config.settings import DEFAULT_PROFILE
from nixy.core.errors import ActiveProfileDeletionError, ProfileNotFoundError
from nixy.core.models.package import CustomPackage, ResolvedPackage

PACKAGE_STATE_VERSION = 2
NIXY_CONFIG_VERSION = 3


class PackageState(BaseModel):
    """Packages requested for one profile."""

    version: int = PACKAGE_STATE_VERSION

    # ── Categories (mutually exclusive by name) ─────────────────
    packages: list[str] = Field(default_factory=list)                    # plain nixpkgs names
    resolved_packages: list[ResolvedPackage] = Field(default_factory=list)
    custom_packages: list[CustomPackage] = Field(default_factory=list)

    def migrate(self) -> bool:
        """Bring an older record up to the current version, in memory.

        Version 1 had no resolved packages; its plain names stay plain.
        Returns True if anything changed.
        """
        if self.version >= PACKAGE_STATE_VERSION:
            return False
        self.version = PACKAGE_STATE_VERSION
        return True

    # ── Mutation ────────────────────────────────────────────────

    def add_legacy_package(self, name: str) -> None:
        """Add a plain, unversioned package taken from the default nixpkgs."""
        self._evict(name, keep="packages")
        if name not in self.packages:
            self.packages.append(name)
        self.packages.sort()

    def add_resolved_package(self, package: ResolvedPackage) -> None:
        self._evict(package.name, keep="resolved_packages")
        self.resolved_packages = [p for p in self.resolved_packages if p.name != package.name]
        self.resolved_packages.append(package)
        self.resolved_packages.sort(key=lambda p: p.name)

    def add_custom_package(self, package: CustomPackage) -> None:
        self._evict(package.name, keep="custom_packages")
        self.custom_packages = [p for p in self.custom_packages if p.name != package.name]
        self.custom_packages.append(package)
        self.custom_packages.sort(key=lambda p: p.name)

    def remove_package(self, name: str) -> bool:
        """Remove ``name`` from whichever category holds it."""
        return self._evict(name, keep=None)

    def _evict(self, name: str, keep: str | None) -> bool:
        removed = False
        if keep != "packages" and name in self.packages:
            self.packages = [p for p in self.packages if p != name]
            removed = True
        if keep != "resolved_packages" and self.get_resolved_package(name):
            self.resolved_packages = [p for p in self.resolved_packages if p.name != name]
            removed = True
        if keep != "custom_packages" and self.get_custom_package(name):
            self.custom_packages = [p for p in self.custom_packages if p.name != name]
            removed = True
        return removed

    # ── Queries ─────────────────────────────────────────────────

    def has_package(self, name: str) -> bool:
        return (
            name in self.packages
            or self.get_resolved_package(name) is not None
            or self.get_custom_package(name) is not None
        )

    def is_legacy_package(self, name: str) -> bool:
        return name in self.packages

    def get_resolved_package(self, name: str) -> ResolvedPackage | None:
        return next((p for p in self.resolved_packages if p.name == name), None)

    def get_custom_package(self, name: str) -> CustomPackage | None:
        return next((p for p in self.custom_packages if p.name == name), None)

    def all_package_names(self) -> list[str]:
        names = set(self.packages)
        names.update(p.name for p in self.resolved_packages)
        names.update(p.name for p in self.custom_packages)
        return sorted(names)


# A profile's entry in nixy.json has exactly the same shape.
ProfileConfig = PackageState


class NixyConfig(BaseModel):
    """The central multi-profile store (``nixy.json``)."""

    version: int = NIXY_CONFIG_VERSION
    active_profile: str = DEFAULT_PROFILE
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)

    def normalize(self) -> bool:
        """Re-establish the store invariants after a load.

        - the version is current
        - a ``default`` profile exists
        - the active pointer names an existing profile

        Returns True if anything changed.
        """
        changed = False
        if self.version < NIXY_CONFIG_VERSION:
            self.version = NIXY_CONFIG_VERSION
            changed = True
        for profile in self.profiles.values():
            changed = profile.migrate() or changed
        if DEFAULT_PROFILE not in self.profiles:
            self.profiles[DEFAULT_PROFILE] = ProfileConfig()
            changed = True
        if self.active_profile not in self.profiles:
            self.active_profile = DEFAULT_PROFILE
            changed = True
        self.profiles = dict(sorted(self.profiles.items()))
        return changed

    def get_active_profile(self) -> ProfileConfig:
        return self.profiles[self.active_profile]

    def profile_exists(self, name: str) -> bool:
        return name in self.profiles

    def list_profiles(self) -> list[str]:
        return sorted(self.profiles)

    def create_profile(self, name: str) -> bool:
        """Add an empty profile. Returns False if it already existed."""
        if name in self.profiles:
            return False
        self.profiles[name] = ProfileConfig()
        self.profiles = dict(sorted(self.profiles.items()))
        return True

    def set_active_profile(self, name: str) -> None:
        if name not in self.profiles:
            raise ProfileNotFoundError(name)
        self.active_profile = name

    def delete_profile(self, name: str) -> None:
        if name == self.active_profile:
            raise ActiveProfileDeletionError(name)
        if name not in self.profiles:
            raise ProfileNotFoundError(name)
        del self.profiles[name]
