"""
Error taxonomy — every failure nixy reports to the user.

Four families, handled differently by the mutating commands:

    validation   → raised before any mutation, nothing to roll back
    consistency  → the flake on disk is not ours to rewrite, refused up front
    external     → build / registry failures, trigger a rollback and re-raise
    state file   → unreadable persisted state, fatal (never silently reset)
"""

from __future__ import annotations


class NixyError(Exception):
    """Base class for all nixy errors."""

    # set when a transaction restored the pre-operation state before re-raising
    rolled_back: bool = False


# ── Validation ──────────────────────────────────────────────────


class UsageError(NixyError):
    """Invalid input from the user."""


class InvalidPlatformError(UsageError):
    """A platform name that is neither a known system nor an alias."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(
            f"Unknown platform '{platform}'. Expected one of: "
            "x86_64-linux, aarch64-linux, x86_64-darwin, aarch64-darwin, "
            "linux, darwin, macos"
        )


class InvalidProfileNameError(UsageError):
    """Profile names are restricted to letters, digits, '-' and '_'."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid profile name '{name}': "
            "use only letters, numbers, hyphens, and underscores"
        )


class ProfileNotFoundError(UsageError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Profile '{name}' not found")


class ActiveProfileDeletionError(UsageError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Cannot delete active profile '{name}'. Switch to another profile first."
        )


class NoPackageNameError(UsageError):
    """A local .nix file without a pname/name attribute."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Could not find a 'pname' or 'name' attribute in {path}")


# ── Consistency ─────────────────────────────────────────────────


class ConsistencyError(NixyError):
    """The flake on disk was not produced by nixy, or was edited by hand."""


# ── External ────────────────────────────────────────────────────


class BuildError(NixyError):
    """The nix build (or another nix invocation) failed."""


class NixNotInstalledError(BuildError):
    def __init__(self) -> None:
        super().__init__("Nix is not installed. Install it from https://nixos.org/download/")


class RegistryError(NixyError):
    """The package registry could not be reached or returned garbage."""


class PackageNotFoundError(RegistryError):
    def __init__(self, name: str, version: str | None = None):
        self.name = name
        self.version = version
        if version:
            msg = f"Version '{version}' of package '{name}' not found"
        else:
            msg = f"Package '{name}' not found"
        super().__init__(msg)


# ── State files ─────────────────────────────────────────────────


class StateFileError(NixyError):
    """A state or store file exists but cannot be read."""
