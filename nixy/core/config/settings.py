"""
Settings — every filesystem location nixy reads or writes.

Resolved once per CLI invocation from the environment:

    NIXY_CONFIG_DIR   → nixy.json, local packages    (default: XDG config/nixy)
    NIXY_STATE_DIR    → per-profile flakes            (default: XDG state/nixy)
    NIXY_ENV          → the built environment symlink (default: <state>/env)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_PROFILE = "default"

NIXY_JSON = "nixy.json"
PACKAGES_DIR = "packages"

# Experimental features required by every nix invocation
NIX_FLAGS = (
    "--extra-experimental-features",
    "nix-command",
    "--extra-experimental-features",
    "flakes",
)


@dataclass(frozen=True)
class Settings:
    """Resolved paths for one nixy invocation."""

    config_dir: Path
    state_dir: Path
    env_link: Path

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        home = Path(env.get("HOME") or Path.home())

        config_dir = _dir_from_env(env, "NIXY_CONFIG_DIR")
        if config_dir is None:
            base = _dir_from_env(env, "XDG_CONFIG_HOME") or home / ".config"
            config_dir = base / "nixy"

        state_dir = _dir_from_env(env, "NIXY_STATE_DIR")
        if state_dir is None:
            base = _dir_from_env(env, "XDG_STATE_HOME") or home / ".local" / "state"
            state_dir = base / "nixy"

        env_link = _dir_from_env(env, "NIXY_ENV") or state_dir / "env"
        return cls(config_dir=config_dir, state_dir=state_dir, env_link=env_link)

    # ── Current layout ──────────────────────────────────────────

    @property
    def nixy_json(self) -> Path:
        return self.config_dir / NIXY_JSON

    @property
    def global_packages_dir(self) -> Path:
        """Local package definitions shared by every profile."""
        return self.config_dir / PACKAGES_DIR

    @property
    def profiles_state_dir(self) -> Path:
        return self.state_dir / "profiles"

    def profile_state_dir(self, name: str) -> Path:
        """Where a profile's generated flake.nix and flake.lock live."""
        return self.profiles_state_dir / name

    # ── Legacy layout (migrated on first run) ───────────────────

    @property
    def legacy_profiles_dir(self) -> Path:
        return self.config_dir / "profiles"

    @property
    def legacy_active_file(self) -> Path:
        return self.config_dir / "active"

    @property
    def legacy_flake(self) -> Path:
        return self.config_dir / "flake.nix"


def _dir_from_env(env: Mapping[str, str], key: str) -> Path | None:
    value = env.get(key, "").strip()
    return Path(value).expanduser() if value else None
