"""
Package models — the kinds of package a profile can hold.

Persisted:
    ResolvedPackage  pinned to a nixpkgs commit via the registry
    CustomPackage    taken from an arbitrary external flake

Derived (scanned from the packages directory on every render):
    LocalPackage     a ``*.nix`` file declaring pname/name
    LocalFlake       a subdirectory holding its own flake.nix
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel

from nixy.core.errors import InvalidPlatformError

# ── Platforms ───────────────────────────────────────────────────

SUPPORTED_SYSTEMS = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "aarch64-darwin",
)

PLATFORM_ALIASES: dict[str, tuple[str, ...]] = {
    "darwin": ("aarch64-darwin", "x86_64-darwin"),
    "macos": ("aarch64-darwin", "x86_64-darwin"),
    "linux": ("aarch64-linux", "x86_64-linux"),
}


def normalize_platforms(platforms: list[str]) -> list[str]:
    """Expand aliases and return a sorted, de-duplicated list of systems.

    Matching is case-insensitive. Unknown names raise InvalidPlatformError.
    """
    systems: set[str] = set()
    for raw in platforms:
        key = raw.strip().lower()
        if key in PLATFORM_ALIASES:
            systems.update(PLATFORM_ALIASES[key])
        elif key in SUPPORTED_SYSTEMS:
            systems.add(key)
        else:
            raise InvalidPlatformError(raw)
    return sorted(systems)


# ── Persisted packages ──────────────────────────────────────────


class ResolvedPackage(BaseModel):
    """A package pinned to the nixpkgs commit that carries a given version."""

    name: str
    version_spec: str | None = None     # what the user asked for ("20", "1.2.x")
    resolved_version: str               # what the registry answered
    attribute_path: str                 # attribute inside legacyPackages.<system>
    commit_hash: str                    # nixpkgs revision
    platforms: list[str] | None = None  # None = every system

    @property
    def input_name(self) -> str:
        return f"nixpkgs-{self.commit_hash[:8]}"

    @property
    def input_url(self) -> str:
        return f"github:NixOS/nixpkgs/{self.commit_hash}"


class CustomPackage(BaseModel):
    """A package exported by an external flake."""

    name: str
    input_name: str
    input_url: str
    package_output: Literal["packages", "legacyPackages"] = "packages"
    source_name: str | None = None      # attribute in the flake, if not ``name``
    platforms: list[str] | None = None

    @property
    def source_package_name(self) -> str:
        return self.source_name or self.name


# ── Derived packages ────────────────────────────────────────────


@dataclass(frozen=True)
class LocalPackage:
    name: str
    package_expr: str | None = None     # None = callPackage on the file itself
    input_name: str | None = None
    input_url: str | None = None
    overlay: str | None = None
    file_name: str | None = None        # basename inside the packages directory


@dataclass(frozen=True)
class LocalFlake:
    name: str
    directory: Path                     # the flake directory inside packages/
