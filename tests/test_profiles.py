"""
Tests for the profile store and the profile use cases.
"""

import pytest

from nixy.core.errors import (
    ActiveProfileDeletionError,
    BuildError,
    InvalidProfileNameError,
    ProfileNotFoundError,
    UsageError,
)
from nixy.core.services.flake.files import read_flake
from nixy.core.services.profiles import validate_profile_name
from nixy.core.services.workspace import ProfileWorkspace
from nixy.core.use_cases.install import install_package
from nixy.core.use_cases.profile import delete_profile, list_profiles, switch_profile


@pytest.fixture
def env_link(settings):
    return settings.env_link


# ── Store ───────────────────────────────────────────────────────


class TestProfileStore:
    def test_fresh_store(self, store):
        config = store.load()
        assert config.active_profile == "default"
        assert config.list_profiles() == ["default"]
        assert store.active_profile_name() == "default"
        assert not store.path.is_file()

    def test_save_and_reload(self, store):
        config = store.load()
        config.create_profile("work")
        store.save(config)
        assert store.path.is_file()
        assert store.list_profiles() == [("default", True), ("work", False)]

    def test_create_profile_idempotent(self, store):
        assert store.create_profile("work") is True
        assert store.create_profile("work") is False
        assert store.load().list_profiles() == ["default", "work"]

    def test_create_profile_invalid_name(self, store):
        with pytest.raises(InvalidProfileNameError):
            store.create_profile("a b")
        assert not store.path.is_file()

    def test_set_active_profile(self, store):
        store.create_profile("work")
        store.set_active_profile("work")
        assert store.active_profile_name() == "work"
        assert store.list_profiles() == [("default", False), ("work", True)]

    def test_set_active_profile_missing(self, store):
        with pytest.raises(ProfileNotFoundError):
            store.set_active_profile("work")
        assert store.active_profile_name() == "default"

    def test_delete_profile(self, store):
        store.create_profile("work")
        store.delete_profile("work")
        assert store.load().list_profiles() == ["default"]

    def test_delete_active_profile_refused(self, store):
        store.create_profile("work")
        store.set_active_profile("work")
        with pytest.raises(ActiveProfileDeletionError):
            store.delete_profile("work")
        assert store.load().profile_exists("work")

    def test_delete_unknown_profile(self, store):
        with pytest.raises(ProfileNotFoundError):
            store.delete_profile("ghost")

    def test_profile_locations(self, store, settings):
        profile = store.profile("work")
        assert profile.directory == settings.state_dir / "profiles" / "work"
        assert profile.packages_dir == settings.config_dir / "packages"
        assert profile.flake_path == profile.directory / "flake.nix"

    @pytest.mark.parametrize("name", ["work", "my_profile", "dev-2"])
    def test_valid_names(self, name):
        validate_profile_name(name)

    @pytest.mark.parametrize("name", ["", "a b", "../etc", "work!"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidProfileNameError):
            validate_profile_name(name)


# ── Switch ──────────────────────────────────────────────────────


class TestSwitchProfile:
    def test_create_and_switch(self, store, builder, env_link):
        result = switch_profile(store, "work", builder, env_link, create=True)
        assert result.created
        assert result.changed
        assert result.previous == "default"
        assert store.load().active_profile == "work"
        assert read_flake(store.profile("work").directory) is not None
        assert builder.build_count == 1

    def test_missing_without_create(self, store, builder, env_link):
        with pytest.raises(ProfileNotFoundError):
            switch_profile(store, "work", builder, env_link)
        assert builder.build_count == 0

    def test_already_active(self, store, builder, env_link):
        result = switch_profile(store, "default", builder, env_link)
        assert not result.changed
        assert builder.build_count == 0

    def test_invalid_name(self, store, builder, env_link):
        with pytest.raises(InvalidProfileNameError):
            switch_profile(store, "bad name", builder, env_link, create=True)

    def test_profiles_are_isolated(self, store, builder, env_link):
        install_package(ProfileWorkspace(store), "ripgrep", builder, env_link, no_resolve=True)
        switch_profile(store, "work", builder, env_link, create=True)
        install_package(ProfileWorkspace(store), "fd", builder, env_link, no_resolve=True)

        config = store.load()
        assert config.profiles["default"].packages == ["ripgrep"]
        assert config.profiles["work"].packages == ["fd"]
        assert "ripgrep" not in read_flake(store.profile("work").directory)

    def test_switch_back_keeps_flake(self, store, builder, env_link):
        install_package(ProfileWorkspace(store), "ripgrep", builder, env_link, no_resolve=True)
        before = read_flake(store.profile("default").directory)
        switch_profile(store, "work", builder, env_link, create=True)
        switch_profile(store, "default", builder, env_link)
        assert read_flake(store.profile("default").directory) == before

    def test_build_failure_rolls_back_creation(self, store, builder, env_link):
        store.save(store.load())
        before = store.path.read_bytes()
        builder.set_failure("build")

        with pytest.raises(BuildError) as exc_info:
            switch_profile(store, "work", builder, env_link, create=True)

        assert exc_info.value.rolled_back
        assert store.path.read_bytes() == before
        assert not store.profile("work").directory.exists()

    def test_build_failure_keeps_existing_flake(self, store, builder, env_link):
        switch_profile(store, "work", builder, env_link, create=True)
        switch_profile(store, "default", builder, env_link)
        work_flake = read_flake(store.profile("work").directory)
        builder.set_failure("build")

        with pytest.raises(BuildError):
            switch_profile(store, "work", builder, env_link)

        assert store.load().active_profile == "default"
        assert read_flake(store.profile("work").directory) == work_flake


# ── List / delete ───────────────────────────────────────────────


class TestListProfiles:
    def test_lists_with_counts(self, store, builder, env_link):
        install_package(ProfileWorkspace(store), "ripgrep", builder, env_link, no_resolve=True)
        switch_profile(store, "work", builder, env_link, create=True)

        result = list_profiles(store)
        assert result.active == "work"
        assert result.to_dict()["profiles"] == [
            {"name": "default", "active": False, "packages": 1},
            {"name": "work", "active": True, "packages": 0},
        ]


class TestDeleteProfile:
    def test_requires_force(self, store, builder, env_link):
        switch_profile(store, "work", builder, env_link, create=True)
        switch_profile(store, "default", builder, env_link)
        with pytest.raises(UsageError):
            delete_profile(store, "work")
        assert store.load().profile_exists("work")

    def test_deletes_entry_and_directory(self, store, builder, env_link):
        switch_profile(store, "work", builder, env_link, create=True)
        switch_profile(store, "default", builder, env_link)

        directory = delete_profile(store, "work", force=True)
        assert not directory.exists()
        assert store.load().list_profiles() == ["default"]

    def test_active_refused(self, store):
        with pytest.raises(ActiveProfileDeletionError):
            delete_profile(store, "default", force=True)

    def test_unknown(self, store):
        with pytest.raises(ProfileNotFoundError):
            delete_profile(store, "ghost", force=True)
