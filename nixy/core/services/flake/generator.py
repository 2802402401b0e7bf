"""
Flake generator — render a PackageState into a complete flake.nix.

The output is a pure function of the state and the contents of the
packages directory: rendering twice gives byte-identical text, and the
file carries no markers. Every package ends up as an attribute of
``packages.<system>`` and as an entry of the ``default`` buildEnv, which
is what ``nix build .#default`` links into the user's environment.

The first line is a checksum of the rest of the file. The packages
directory is shared between profiles and may change at any time, so
"is this file still exactly what nixy wrote?" is answered from the
file itself rather than by rendering again:

    # nixy-checksum: 3f1c9a0d52e7b8a4
    {
      description = "nixy managed packages";
      ...

Entries are emitted in a fixed order: plain nixpkgs names, resolved
(commit-pinned) packages, local packages, local flakes, custom flakes.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

from nixy.core.models.package import SUPPORTED_SYSTEMS
from nixy.core.models.state import PackageState
from nixy.core.services.flake.local_packages import collect_local_packages

logger = logging.getLogger(__name__)

# Identifies a file written by render(); see files.classify_flake
MANAGED_DESCRIPTION = 'description = "nixy managed packages";'

# First line of every rendered file; the digest covers everything after it
CHECKSUM_PREFIX = "# nixy-checksum: "

DEFAULT_NIXPKGS_URL = "github:NixOS/nixpkgs/nixos-unstable"

_ENTRY_INDENT = " " * 10
_PATH_INDENT = " " * 14
_INPUT_INDENT = " " * 4


# ── Builder ─────────────────────────────────────────────────────


@dataclass
class _FlakeBuilder:
    """Accumulates the parts of the flake while walking the state."""

    inputs: dict[str, str] = field(default_factory=dict)       # name → url, insertion-ordered
    entries: list[str] = field(default_factory=list)
    overlays: list[str] = field(default_factory=list)
    universal: list[str] = field(default_factory=list)
    restricted: dict[tuple[str, ...], list[str]] = field(default_factory=dict)

    def add_input(self, name: str, url: str) -> None:
        existing = self.inputs.get(name)
        if existing is None:
            self.inputs[name] = url
        elif existing != url:
            logger.warning(
                "Input '%s' declared with two URLs (%s, %s); keeping the first",
                name, existing, url,
            )

    def add_entry(self, name: str, expr: str, platforms: list[str] | None = None) -> None:
        self.entries.append(f"{_ENTRY_INDENT}{name} = {expr};\n")
        if platforms:
            self.restricted.setdefault(tuple(sorted(platforms)), []).append(name)
        else:
            self.universal.append(name)

    def add_overlay(self, overlay: str) -> None:
        if overlay not in self.overlays:
            self.overlays.append(overlay)

    # ── Rendering ───────────────────────────────────────────────

    def render(self) -> str:
        params = ", ".join(["self", "nixpkgs", *sorted(self.inputs)])
        input_lines = "".join(
            f'{_INPUT_INDENT}{name}.url = "{url}";\n' for name, url in self.inputs.items()
        )

        if self.overlays:
            overlay_lines = "".join(f"          {o}\n" for o in self.overlays)
            pkgs_for = (
                "      pkgsFor = system: import nixpkgs {\n"
                "        inherit system;\n"
                "        overlays = [\n"
                f"{overlay_lines}"
                "        ];\n"
                "      };\n"
            )
            pkgs_let = "pkgs = pkgsFor system;"
        else:
            pkgs_for = ""
            pkgs_let = "pkgs = nixpkgs.legacyPackages.${system};"

        systems = " ".join(f'"{s}"' for s in SUPPORTED_SYSTEMS)

        return (
            "{\n"
            f"  {MANAGED_DESCRIPTION}\n"
            "\n"
            "  inputs = {\n"
            f'    nixpkgs.url = "{DEFAULT_NIXPKGS_URL}";\n'
            f"{input_lines}"
            "  };\n"
            "\n"
            f"  outputs = {{ {params} }}@inputs:\n"
            "    let\n"
            f"      systems = [ {systems} ];\n"
            "      forAllSystems = nixpkgs.lib.genAttrs systems;\n"
            f"{pkgs_for}"
            "    in {\n"
            "      packages = forAllSystems (system:\n"
            f"        let {pkgs_let}\n"
            "        in rec {\n"
            f"{''.join(self.entries)}"
            "          default = pkgs.buildEnv {\n"
            '            name = "nixy-env";\n'
            "            paths = [\n"
            f"{self._render_paths()}"
            "            ];\n"
            '            extraOutputsToInstall = [ "man" "doc" "info" ];\n'
            "          };\n"
            "        });\n"
            "    };\n"
            "}\n"
        )

    def _render_paths(self) -> str:
        lines = [f"{_PATH_INDENT}{name}\n" for name in self.universal]
        for platforms, names in sorted(self.restricted.items()):
            systems = " ".join(f'"{p}"' for p in platforms)
            lines.append(
                f"            ] ++ pkgs.lib.optionals (builtins.elem system [ {systems} ]) [\n"
            )
            lines.extend(f"{_PATH_INDENT}{name}\n" for name in names)
        return "".join(lines)


# ── Public API ──────────────────────────────────────────────────


def render(state: PackageState, packages_dir: Path | None = None) -> str:
    """Render ``state`` (plus whatever lives in ``packages_dir``) as flake.nix text."""
    local_packages, local_flakes = collect_local_packages(packages_dir)
    local_names = {p.name for p in local_packages} | {f.name for f in local_flakes}

    builder = _FlakeBuilder()

    for name in state.packages:
        if name in local_names:
            continue
        builder.add_entry(name, f"pkgs.{name}")

    for pkg in state.resolved_packages:
        if pkg.name in local_names:
            continue
        builder.add_input(pkg.input_name, pkg.input_url)
        builder.add_entry(
            pkg.name,
            f"inputs.{pkg.input_name}.legacyPackages.${{system}}.{pkg.attribute_path}",
            pkg.platforms,
        )

    for local in local_packages:
        if local.input_name and local.input_url:
            builder.add_input(local.input_name, local.input_url)
        if local.overlay:
            builder.add_overlay(local.overlay)
        expr = local.package_expr or default_package_expr(
            packages_dir, local.file_name or f"{local.name}.nix"
        )
        builder.add_entry(local.name, expr)

    for flake in local_flakes:
        builder.add_input(flake.name, local_flake_url(flake.directory))
        builder.add_entry(flake.name, f"inputs.{flake.name}.packages.${{system}}.default")

    for custom in state.custom_packages:
        source = custom.source_package_name
        if is_default_nixpkgs(custom.input_url):
            ref = "nixpkgs"
        else:
            builder.add_input(custom.input_name, custom.input_url)
            ref = f"inputs.{custom.input_name}"
        builder.add_entry(
            custom.name,
            f"{ref}.{custom.package_output}.${{system}}.{source}",
            custom.platforms,
        )

    body = builder.render()
    return f"{CHECKSUM_PREFIX}{checksum(body)}\n{body}"


def checksum(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()[:16]


def split_checksum(content: str) -> tuple[str | None, str]:
    """``(recorded checksum, body)``; the checksum is None if there is no header."""
    first, sep, rest = content.partition("\n")
    if sep and first.startswith(CHECKSUM_PREFIX):
        return first[len(CHECKSUM_PREFIX):].strip(), rest
    return None, content


def is_unmodified(content: str) -> bool:
    """Whether ``content`` still carries a checksum matching its own body."""
    recorded, body = split_checksum(content)
    return recorded is not None and recorded == checksum(body)


def default_package_expr(packages_dir: Path | None, file_name: str) -> str:
    """``pkgs.callPackage <file> {}`` for a local package without packageExpr."""
    if packages_dir is None:
        return f"pkgs.callPackage ./packages/{file_name} {{}}"
    path = (packages_dir / file_name).absolute()
    if " " in str(path):
        return f'pkgs.callPackage (/. + "{path}") {{}}'
    return f"pkgs.callPackage {path} {{}}"


def local_flake_url(directory: Path) -> str:
    return "path:" + str(directory.absolute()).replace(" ", "%20")


def is_default_nixpkgs(url: str) -> bool:
    """Whether ``url`` points at the nixpkgs the generated flake already imports.

    Accepts the registry alias and github:NixOS/nixpkgs with no ref or
    with the default branch, compared case-insensitively.
    """
    normalized = url.strip().rstrip("/").lower()
    return normalized in {
        "nixpkgs",
        "flake:nixpkgs",
        "github:nixos/nixpkgs",
        DEFAULT_NIXPKGS_URL.lower(),
    }
