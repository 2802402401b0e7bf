"""
Tests for the flake generator.
"""

from nixy.core.models import CustomPackage, PackageState, ResolvedPackage
from nixy.core.services.flake.editor import has_any_marker
from nixy.core.services.flake.generator import (
    CHECKSUM_PREFIX,
    checksum,
    default_package_expr,
    is_default_nixpkgs,
    is_unmodified,
    local_flake_url,
    render,
    split_checksum,
)

EMPTY_FLAKE = """\
{
  description = "nixy managed packages";

  inputs = {
    nixpkgs.url = "github:NixOS/nixpkgs/nixos-unstable";
  };

  outputs = { self, nixpkgs }@inputs:
    let
      systems = [ "x86_64-linux" "aarch64-linux" "x86_64-darwin" "aarch64-darwin" ];
      forAllSystems = nixpkgs.lib.genAttrs systems;
    in {
      packages = forAllSystems (system:
        let pkgs = nixpkgs.legacyPackages.${system};
        in rec {
          default = pkgs.buildEnv {
            name = "nixy-env";
            paths = [
            ];
            extraOutputsToInstall = [ "man" "doc" "info" ];
          };
        });
    };
}
"""


def _paths(content: str) -> list[str]:
    """Lines of the buildEnv paths list, stripped."""
    lines = content.splitlines()
    start = next(i for i, line in enumerate(lines) if line.strip() == "paths = [")
    end = next(i for i in range(start, len(lines)) if lines[i].strip() == "];")
    return [line.strip() for line in lines[start + 1:end]]


def _neovim(**kwargs) -> CustomPackage:
    defaults = {
        "name": "neovim",
        "input_name": "neovim-nightly",
        "input_url": "github:nix-community/neovim-nightly-overlay",
    }
    defaults.update(kwargs)
    return CustomPackage(**defaults)


def _nodejs(**kwargs) -> ResolvedPackage:
    defaults = {
        "name": "nodejs",
        "version_spec": "20",
        "resolved_version": "20.11.1",
        "attribute_path": "nodejs_20",
        "commit_hash": "abcdef1234567890",
    }
    defaults.update(kwargs)
    return ResolvedPackage(**defaults)


# ── Structure ───────────────────────────────────────────────────


class TestRenderStructure:
    def test_empty_state(self):
        assert render(PackageState()) == f"{CHECKSUM_PREFIX}{checksum(EMPTY_FLAKE)}\n{EMPTY_FLAKE}"

    def test_deterministic(self):
        state = PackageState(packages=["bat", "ripgrep"])
        state.add_custom_package(_neovim())
        assert render(state) == render(state)

    def test_never_contains_markers(self):
        state = PackageState(packages=["ripgrep"])
        state.add_resolved_package(_nodejs())
        state.add_custom_package(_neovim())
        assert not has_any_marker(render(state))

    def test_plain_package(self):
        content = render(PackageState(packages=["ripgrep"]))
        assert "          ripgrep = pkgs.ripgrep;\n" in content
        assert _paths(content) == ["ripgrep"]

    def test_entry_order(self):
        state = PackageState(packages=["zsh"])
        state.add_resolved_package(_nodejs())
        state.add_custom_package(_neovim())
        content = render(state)
        assert content.index("zsh =") < content.index("nodejs =") < content.index("neovim =")
        assert _paths(content) == ["zsh", "nodejs", "neovim"]


# ── Inputs ──────────────────────────────────────────────────────


class TestRenderInputs:
    def test_resolved_pins_commit(self):
        state = PackageState()
        state.add_resolved_package(_nodejs())
        content = render(state)
        assert '    nixpkgs-abcdef12.url = "github:NixOS/nixpkgs/abcdef1234567890";\n' in content
        assert "nodejs = inputs.nixpkgs-abcdef12.legacyPackages.${system}.nodejs_20;" in content
        assert "outputs = { self, nixpkgs, nixpkgs-abcdef12 }@inputs:" in content

    def test_shared_input_declared_once(self):
        state = PackageState()
        state.add_custom_package(_neovim())
        state.add_custom_package(_neovim(name="nvim-qt", source_name="neovim-qt"))
        content = render(state)
        assert content.count("neovim-nightly.url") == 1
        assert "nvim-qt = inputs.neovim-nightly.packages.${system}.neovim-qt;" in content

    def test_inputs_sorted_in_signature(self):
        state = PackageState()
        state.add_custom_package(_neovim())
        state.add_resolved_package(_nodejs())
        content = render(state)
        assert "outputs = { self, nixpkgs, neovim-nightly, nixpkgs-abcdef12 }@inputs:" in content

    def test_default_nixpkgs_custom_declares_no_input(self):
        state = PackageState()
        state.add_custom_package(CustomPackage(
            name="hello", input_name="github-NixOS-nixpkgs", input_url="github:NixOS/nixpkgs",
            package_output="legacyPackages",
        ))
        content = render(state)
        assert "github-NixOS-nixpkgs" not in content
        assert "hello = nixpkgs.legacyPackages.${system}.hello;" in content
        assert "outputs = { self, nixpkgs }@inputs:" in content

    def test_is_default_nixpkgs(self):
        assert is_default_nixpkgs("nixpkgs")
        assert is_default_nixpkgs("flake:nixpkgs")
        assert is_default_nixpkgs("github:NixOS/nixpkgs")
        assert is_default_nixpkgs("GITHUB:nixos/nixpkgs/nixos-unstable")
        assert not is_default_nixpkgs("github:NixOS/nixpkgs/nixos-23.11")
        assert not is_default_nixpkgs("github:me/nixpkgs")


# ── Platforms ───────────────────────────────────────────────────


class TestRenderPlatforms:
    def test_restricted_group(self):
        state = PackageState(packages=["ripgrep"])
        state.add_resolved_package(_nodejs(platforms=["aarch64-darwin", "x86_64-darwin"]))
        content = render(state)
        assert _paths(content) == [
            "ripgrep",
            '] ++ pkgs.lib.optionals (builtins.elem system [ "aarch64-darwin" "x86_64-darwin" ]) [',
            "nodejs",
        ]
        # The attribute itself is still defined for every system
        assert "nodejs = inputs.nixpkgs-abcdef12" in content

    def test_packages_share_a_group(self):
        state = PackageState()
        state.add_custom_package(_neovim(platforms=["x86_64-linux"]))
        state.add_resolved_package(_nodejs(platforms=["x86_64-linux"]))
        content = render(state)
        assert content.count("pkgs.lib.optionals") == 1
        assert _paths(content)[-2:] == ["nodejs", "neovim"]


# ── Local packages ──────────────────────────────────────────────


class TestRenderLocal:
    def test_local_file(self, packages_dir):
        (packages_dir / "hello.nix").write_text('{\n  pname = "hello";\n}\n')
        content = render(PackageState(), packages_dir)
        path = (packages_dir / "hello.nix").absolute()
        assert f"hello = pkgs.callPackage {path} {{}};" in content
        assert _paths(content) == ["hello"]

    def test_local_overrides_tracked_name(self, packages_dir):
        (packages_dir / "ripgrep.nix").write_text('{\n  pname = "ripgrep";\n}\n')
        content = render(PackageState(packages=["ripgrep"]), packages_dir)
        assert "ripgrep = pkgs.ripgrep;" not in content
        assert _paths(content) == ["ripgrep"]

    def test_local_flake(self, packages_dir):
        (packages_dir / "my-tool").mkdir()
        (packages_dir / "my-tool" / "flake.nix").write_text("{ }\n")
        content = render(PackageState(), packages_dir)
        assert f'my-tool.url = "{local_flake_url(packages_dir / "my-tool")}";' in content
        assert "my-tool = inputs.my-tool.packages.${system}.default;" in content

    def test_overlay_switches_pkgs(self, packages_dir):
        (packages_dir / "patched.nix").write_text(
            '{\n  pname = "patched";\n  overlay = myOverlay;\n}\n'
        )
        content = render(PackageState(), packages_dir)
        assert "pkgsFor = system: import nixpkgs {" in content
        assert "          myOverlay\n" in content
        assert "let pkgs = pkgsFor system;" in content

    def test_local_input(self, packages_dir):
        (packages_dir / "tool.nix").write_text(
            '{\n  pname = "tool";\n  tool-src.url = "github:me/tool";\n}\n'
        )
        content = render(PackageState(), packages_dir)
        assert '    tool-src.url = "github:me/tool";\n' in content
        assert "outputs = { self, nixpkgs, tool-src }@inputs:" in content

    def test_path_with_spaces(self, tmp_path):
        directory = tmp_path / "my packages"
        assert default_package_expr(directory, "a.nix") == (
            f'pkgs.callPackage (/. + "{directory.absolute() / "a.nix"}") {{}}'
        )
        assert local_flake_url(directory) == "path:" + str(directory.absolute()).replace(" ", "%20")


# ── Scenario ────────────────────────────────────────────────────


class TestRenderScenario:
    def test_incremental_growth(self):
        state = PackageState()
        assert _paths(render(state)) == []

        state.add_legacy_package("ripgrep")
        assert _paths(render(state)) == ["ripgrep"]

        state.add_custom_package(_neovim())
        content = render(state)
        assert content.count('neovim-nightly.url = "github:nix-community/neovim-nightly-overlay";') == 1

        state.add_custom_package(_neovim(name="neovim-qt", source_name="neovim-qt"))
        content = render(state)
        assert content.count("neovim-nightly.url") == 1
        assert _paths(content) == ["ripgrep", "neovim", "neovim-qt"]

    def test_mixed_profile(self, packages_dir):
        (packages_dir / "hello.nix").write_text('{\n  pname = "hello";\n}\n')
        state = PackageState(packages=["bat", "ripgrep"])
        state.add_resolved_package(_nodejs(platforms=["x86_64-linux"]))
        state.add_custom_package(_neovim())

        content = render(state, packages_dir)
        assert _paths(content) == [
            "bat",
            "ripgrep",
            "hello",
            "neovim",
            '] ++ pkgs.lib.optionals (builtins.elem system [ "x86_64-linux" ]) [',
            "nodejs",
        ]
        assert "outputs = { self, nixpkgs, neovim-nightly, nixpkgs-abcdef12 }@inputs:" in content
        assert content == render(state, packages_dir)


# ── Checksum header ─────────────────────────────────────────────


class TestChecksum:
    def test_rendered_file_is_unmodified(self, packages_dir):
        (packages_dir / "hello.nix").write_text('{\n  pname = "hello";\n}\n')
        assert is_unmodified(render(PackageState(packages=["ripgrep"]), packages_dir))

    def test_header_is_not_a_marker(self):
        first_line = render(PackageState()).splitlines()[0]
        assert first_line.startswith(CHECKSUM_PREFIX)
        assert not has_any_marker(first_line)

    def test_edit_in_body_detected(self):
        content = render(PackageState(packages=["ripgrep"]))
        assert not is_unmodified(content.replace("ripgrep = pkgs.ripgrep;", "ripgrep = pkgs.rg;"))
        assert not is_unmodified(content + "# mine\n")

    def test_edited_header_detected(self):
        recorded, body = split_checksum(render(PackageState()))
        assert not is_unmodified(f"{CHECKSUM_PREFIX}{'0' * len(recorded)}\n{body}")

    def test_no_header(self):
        assert split_checksum(EMPTY_FLAKE) == (None, EMPTY_FLAKE)
        assert not is_unmodified(EMPTY_FLAKE)

    def test_stays_valid_when_packages_dir_changes(self, packages_dir):
        content = render(PackageState(packages=["ripgrep"]), packages_dir)
        (packages_dir / "hello.nix").write_text('{\n  pname = "hello";\n}\n')
        assert content != render(PackageState(packages=["ripgrep"]), packages_dir)
        assert is_unmodified(content)
