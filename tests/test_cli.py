"""
Tests for CLI commands — install, list, profiles, and global options.
"""

import json

from click.testing import CliRunner

from nixy.adapters.mock import MockBuilder
from nixy.core.persistence.state_file import load_package_state
from nixy.main import cli


def _invoke(settings, *args, **obj):
    runner = CliRunner()
    return runner.invoke(cli, list(args), obj={"settings": settings, **obj})


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Nix flakes" in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_config_bash(self, settings):
        result = _invoke(settings, "config", "bash")
        assert result.exit_code == 0
        assert f'export PATH="{settings.env_link / "bin"}:$PATH"' in result.output

    def test_config_fish(self, settings):
        result = _invoke(settings, "config", "fish")
        assert "fish_add_path" in result.output


class TestInstallCommand:
    def test_no_resolve(self, settings):
        result = _invoke(settings, "--mock", "install", "ripgrep", "--no-resolve")
        assert result.exit_code == 0, result.output
        assert "Installed ripgrep" in result.output
        assert (settings.profile_state_dir("default") / "flake.nix").is_file()

    def test_resolved(self, settings, registry):
        result = _invoke(settings, "--mock", "install", "nodejs@20", registry=registry)
        assert result.exit_code == 0, result.output
        assert "Installed nodejs 20.11.1" in result.output

    def test_json(self, settings, registry):
        result = _invoke(settings, "--mock", "install", "ripgrep", "--json", registry=registry)
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["package"] == "ripgrep"
        assert data["kind"] == "resolved"

    def test_needs_package_or_file(self, settings):
        result = _invoke(settings, "--mock", "install")
        assert result.exit_code == 2

    def test_package_and_file_refused(self, settings, tmp_path):
        source = tmp_path / "hello.nix"
        source.write_text('{\n  pname = "hello";\n}\n')
        result = _invoke(settings, "--mock", "install", "ripgrep", "--file", str(source))
        assert result.exit_code == 2
        assert not (settings.global_packages_dir / "hello.nix").exists()

    def test_invalid_platform(self, settings, registry):
        result = _invoke(
            settings, "--mock", "install", "ripgrep", "-p", "windows", registry=registry
        )
        assert result.exit_code == 1
        assert "Unknown platform 'windows'" in result.output

    def test_build_failure_reports_rollback(self, settings):
        builder = MockBuilder()
        builder.set_failure("build", "derivation failed")
        result = _invoke(settings, "install", "ripgrep", "--no-resolve", builder=builder)
        assert result.exit_code == 1
        assert "derivation failed" in result.output
        assert "Changes rolled back" in result.output

    def test_foreign_flake(self, settings):
        flake_dir = settings.profile_state_dir("default")
        flake_dir.mkdir(parents=True)
        (flake_dir / "flake.nix").write_text("{ }\n")
        result = _invoke(settings, "--mock", "install", "ripgrep", "--no-resolve")
        assert result.exit_code == 1
        assert "--force" in result.output
        assert "Nothing was changed" in result.output

    def test_standalone_flake_dir(self, settings, tmp_path):
        flake_dir = tmp_path / "myflake"
        result = _invoke(
            settings, "--mock", "--flake", str(flake_dir), "install", "ripgrep", "--no-resolve"
        )
        assert result.exit_code == 0, result.output
        assert load_package_state(flake_dir / "packages.json").packages == ["ripgrep"]
        assert not settings.nixy_json.exists()

    def test_local_file(self, settings, tmp_path):
        source = tmp_path / "hello.nix"
        source.write_text('{\n  pname = "hello";\n}\n')
        result = _invoke(settings, "--mock", "install", "--file", str(source))
        assert result.exit_code == 0, result.output
        assert (settings.global_packages_dir / "hello.nix").is_file()


class TestUninstallCommand:
    def test_uninstall(self, settings):
        _invoke(settings, "--mock", "install", "ripgrep", "--no-resolve")
        result = _invoke(settings, "--mock", "uninstall", "ripgrep")
        assert result.exit_code == 0, result.output
        assert "Uninstalled ripgrep" in result.output

    def test_not_installed(self, settings):
        result = _invoke(settings, "--mock", "uninstall", "ripgrep")
        assert result.exit_code == 1
        assert "not installed" in result.output


class TestListCommand:
    def test_empty(self, settings):
        result = _invoke(settings, "--mock", "list")
        assert result.exit_code == 0
        assert "(none)" in result.output

    def test_json(self, settings):
        _invoke(settings, "--mock", "install", "ripgrep", "--no-resolve")
        result = _invoke(settings, "--mock", "list", "--json")
        data = json.loads(result.output)
        assert data["packages"] == [
            {"name": "ripgrep", "kind": "nixpkgs", "version": None, "source": None, "platforms": None},
        ]


class TestSearchCommand:
    def test_hits(self, settings, registry):
        result = _invoke(settings, "search", "rip", registry=registry)
        assert result.exit_code == 0
        assert "ripgrep" in result.output

    def test_no_hits(self, settings, registry):
        result = _invoke(settings, "search", "zzz", registry=registry)
        assert "No packages found" in result.output


class TestSyncUpgradeCommands:
    def test_sync(self, settings):
        result = _invoke(settings, "--mock", "sync")
        assert result.exit_code == 0, result.output
        assert "Environment synced" in result.output

    def test_upgrade_unknown_input(self, settings):
        result = _invoke(settings, "--mock", "upgrade", "nope")
        assert result.exit_code == 1
        assert "Unknown input" in result.output

    def test_upgrade_all(self, settings):
        result = _invoke(settings, "--mock", "upgrade")
        assert result.exit_code == 0, result.output
        assert "Upgraded all inputs" in result.output


class TestFileCommand:
    def test_plain_package(self, settings):
        _invoke(settings, "--mock", "install", "ripgrep", "--no-resolve")
        result = _invoke(settings, "--mock", "file", "ripgrep")
        assert result.exit_code == 0, result.output
        assert "/nix/store/mock-nixpkgs/pkgs/ripgrep/default.nix" in result.output

    def test_json(self, settings):
        _invoke(settings, "--mock", "install", "ripgrep", "--no-resolve")
        result = _invoke(settings, "--mock", "file", "ripgrep", "--json")
        assert json.loads(result.output)["kind"] == "nixpkgs"

    def test_not_installed(self, settings):
        result = _invoke(settings, "--mock", "file", "ripgrep")
        assert result.exit_code == 1
        assert "not installed" in result.output


class TestGcCommand:
    def test_gc(self, settings):
        result = _invoke(settings, "--mock", "gc")
        assert result.exit_code == 0, result.output
        assert "Garbage collection complete" in result.output

    def test_gc_failure(self, settings):
        builder = MockBuilder()
        builder.set_failure("gc", "store locked")
        result = _invoke(settings, "gc", builder=builder)
        assert result.exit_code == 1
        assert "store locked" in result.output
        assert "Garbage collection complete" not in result.output



class TestProfileCommands:
    def test_show_active(self, settings):
        result = _invoke(settings, "--mock", "profile")
        assert result.exit_code == 0
        assert "Active profile: default" in result.output

    def test_switch_create(self, settings):
        result = _invoke(settings, "--mock", "profile", "switch", "-c", "work")
        assert result.exit_code == 0, result.output
        assert "Created profile 'work'" in result.output
        assert "Switched to profile 'work'" in result.output

    def test_switch_missing(self, settings):
        result = _invoke(settings, "--mock", "profile", "switch", "work")
        assert result.exit_code == 1
        assert "Profile 'work' not found" in result.output
        assert "profile switch -c work" in result.output

    def test_list(self, settings):
        _invoke(settings, "--mock", "profile", "switch", "-c", "work")
        result = _invoke(settings, "--mock", "profile", "list")
        assert "* work (active)" in result.output
        assert "  default" in result.output

    def test_list_json(self, settings):
        result = _invoke(settings, "--mock", "profile", "list", "--json")
        data = json.loads(result.output)
        assert data["active"] == "default"

    def test_delete_active_refused(self, settings):
        result = _invoke(settings, "--mock", "profile", "delete", "default", "--force")
        assert result.exit_code == 1
        assert "Cannot delete active profile 'default'" in result.output

    def test_delete(self, settings):
        _invoke(settings, "--mock", "profile", "switch", "-c", "work")
        _invoke(settings, "--mock", "profile", "switch", "default")
        result = _invoke(settings, "--mock", "profile", "delete", "work", "--force")
        assert result.exit_code == 0, result.output
        assert "Deleted profile 'work'" in result.output

    def test_not_available_with_flake(self, settings, tmp_path):
        result = _invoke(settings, "--flake", str(tmp_path), "profile")
        assert result.exit_code == 1
        assert "not available with --flake" in result.output


class TestMigrationOnStartup:
    def test_legacy_layout_migrated(self, settings):
        legacy = settings.legacy_profiles_dir / "default"
        legacy.mkdir(parents=True)
        (legacy / "packages.json").write_text(json.dumps({"version": 1, "packages": ["jq"]}))

        result = _invoke(settings, "--mock", "list")
        assert result.exit_code == 0, result.output
        assert "Migrated 1 legacy profile" in result.output
        assert "jq" in result.output
        assert settings.nixy_json.is_file()
