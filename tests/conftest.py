"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from nixy.adapters.base import Registry, ResolvedPackageInfo, SearchHit
from nixy.adapters.mock import MockBuilder
from nixy.core.config.settings import Settings
from nixy.core.errors import PackageNotFoundError
from nixy.core.services import rollback
from nixy.core.services.profiles import ProfileStore


class FakeRegistry(Registry):
    """In-memory registry keyed by package name."""

    def __init__(self, packages: dict[str, ResolvedPackageInfo] | None = None):
        self.packages = packages or {}
        self.calls: list[tuple[str, str | None, str]] = []

    def search(self, query: str) -> list[SearchHit]:
        return [
            SearchHit(name=info.name, version=info.version)
            for info in self.packages.values()
            if query in info.name
        ]

    def resolve(self, name: str, version: str | None, system: str) -> ResolvedPackageInfo:
        self.calls.append((name, version, system))
        if name not in self.packages:
            raise PackageNotFoundError(name, version)
        return self.packages[name]


@pytest.fixture(autouse=True)
def _reset_rollback():
    """No rollback context leaks between tests."""
    rollback.reset()
    yield
    rollback.reset()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """The CLI reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    state_dir = tmp_path / "state"
    return Settings(
        config_dir=tmp_path / "config",
        state_dir=state_dir,
        env_link=state_dir / "env",
    )


@pytest.fixture
def store(settings: Settings) -> ProfileStore:
    return ProfileStore(settings)


@pytest.fixture
def builder() -> MockBuilder:
    return MockBuilder()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry({
        "nodejs": ResolvedPackageInfo(
            name="nodejs",
            version="20.11.1",
            attribute_path="nodejs_20",
            commit_hash="abcdef1234567890abcdef1234567890abcdef12",
        ),
        "ripgrep": ResolvedPackageInfo(
            name="ripgrep",
            version="14.1.0",
            attribute_path="ripgrep",
            commit_hash="0123456789abcdef0123456789abcdef01234567",
        ),
    })


@pytest.fixture
def packages_dir(tmp_path: Path) -> Path:
    """An empty local packages directory."""
    path = tmp_path / "packages"
    path.mkdir()
    return path
