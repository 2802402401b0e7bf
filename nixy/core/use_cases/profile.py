"""
Profile use cases — switch, list and delete profiles.

Switching (optionally creating) a profile is a mutation of nixy.json
and is rolled back like an install if the new profile's environment
fails to build. Deleting needs an explicit force and never touches the
active profile.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from nixy.adapters.base import Builder
from nixy.core.errors import ProfileNotFoundError, UsageError
from nixy.core.services.flake.files import read_flake, regenerate_flake
from nixy.core.services.profiles import ProfileStore, validate_profile_name
from nixy.core.services.rollback import ProfileSnapshot, RollbackContext, Transaction
from nixy.core.use_cases.sync import build_environment

logger = logging.getLogger(__name__)


@dataclass
class ProfileSwitchResult:
    profile: str
    previous: str
    created: bool = False
    changed: bool = True

    def to_dict(self) -> dict:
        return {
            "profile": self.profile,
            "previous": self.previous,
            "created": self.created,
            "changed": self.changed,
        }


@dataclass
class ProfileListResult:
    active: str
    profiles: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"active": self.active, "profiles": self.profiles}


def switch_profile(
    store: ProfileStore,
    name: str,
    builder: Builder,
    env_link: Path,
    create: bool = False,
) -> ProfileSwitchResult:
    validate_profile_name(name)
    config = store.load()
    previous = config.active_profile
    exists = config.profile_exists(name)

    if not exists and not create:
        raise ProfileNotFoundError(name)
    if exists and name == previous:
        return ProfileSwitchResult(profile=name, previous=previous, changed=False)

    profile = store.profile(name)
    content = read_flake(profile.directory)

    context = RollbackContext(
        flake_dir=profile.directory,
        packages_dir=profile.packages_dir,
        original=ProfileSnapshot(config_path=store.path, config=store.load(), profile_name=name),
        original_flake=content,
        created_dir=None if profile.directory.exists() else profile.directory,
    )

    with Transaction(context):
        created = store.create_profile(name)
        store.set_active_profile(name)
        if content is None:
            state = store.load().profiles[name]
            regenerate_flake(profile.directory, state, profile.packages_dir)
        build_environment(builder, profile.directory, env_link)

    logger.info("Switched from profile '%s' to '%s'", previous, name)
    return ProfileSwitchResult(profile=name, previous=previous, created=created)


def list_profiles(store: ProfileStore) -> ProfileListResult:
    config = store.load()
    result = ProfileListResult(active=config.active_profile)
    for name, active in store.list_profiles(config):
        result.profiles.append({
            "name": name,
            "active": active,
            "packages": len(config.profiles[name].all_package_names()),
        })
    return result


def delete_profile(store: ProfileStore, name: str, force: bool = False) -> Path:
    """Remove ``name`` from nixy.json and delete its flake directory."""
    validate_profile_name(name)
    config = store.load()
    if not config.profile_exists(name):
        raise ProfileNotFoundError(name)
    if not force:
        raise UsageError(f"Refusing to delete profile '{name}' without --force")

    store.delete_profile(name)

    directory = store.profile(name).directory
    if directory.exists():
        shutil.rmtree(directory)
    logger.info("Deleted profile '%s' (%s)", name, directory)
    return directory
