"""
Adapter contracts — the only way the core reaches external tools.

    Builder   builds and updates flakes (the nix CLI)
    Registry  finds and version-resolves packages (Nixhub)

A Builder never raises: every outcome comes back as a Receipt and the
caller decides whether a failure means rolling back. A Registry raises
RegistryError / PackageNotFoundError, because it is only consulted
before anything has been changed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from nixy.core.models.receipt import Receipt

PackageOutput = Literal["packages", "legacyPackages"]


class Builder(ABC):
    """Abstract interface to the Nix build tool."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter identifier used in receipts."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tool is installed. Fast, never raises."""

    @abstractmethod
    def current_system(self) -> str:
        """The Nix system double of this machine, e.g. ``x86_64-linux``."""

    @abstractmethod
    def build(self, flake_dir: Path, output: str, out_link: Path) -> Receipt:
        """Build ``flake_dir#output`` and point ``out_link`` at the result."""

    @abstractmethod
    def update(self, flake_dir: Path, inputs: list[str] | None = None) -> Receipt:
        """Refresh flake.lock, for all inputs or just the named ones."""

    @abstractmethod
    def find_package_output(self, flake_url: str, package: str) -> PackageOutput | None:
        """Which output set of ``flake_url`` exports ``package``, if any."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


@dataclass(frozen=True)
class SearchHit:
    name: str
    version: str = ""
    summary: str = ""


@dataclass(frozen=True)
class ResolvedPackageInfo:
    """What the registry says about ``name@version`` on one system."""

    name: str
    version: str
    attribute_path: str
    commit_hash: str


class Registry(ABC):
    """Abstract interface to a package search / version registry."""

    @abstractmethod
    def search(self, query: str) -> list[SearchHit]:
        ...

    @abstractmethod
    def resolve(self, name: str, version: str | None, system: str) -> ResolvedPackageInfo:
        """Pin ``name`` (at ``version``, or latest) to a nixpkgs commit."""
