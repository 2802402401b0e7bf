"""
Legacy flake support — marker-based files from older nixy versions.

Three jobs:

    recover_state_from_markers   rebuild a PackageState from a marked
                                 flake.nix that has no state file
    add_markers                  retrofit marker regions into a generated
                                 file so it can be edited in place
    apply_install_edit /         one-off incremental edits against a
    apply_uninstall_edit         marked file, leaving user content alone
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from nixy.core.errors import ConsistencyError, UsageError
from nixy.core.models.package import CustomPackage, ResolvedPackage
from nixy.core.models.state import PackageState
from nixy.core.services.flake import editor
from nixy.core.services.flake.generator import (
    DEFAULT_NIXPKGS_URL,
    is_default_nixpkgs,
    split_checksum,
)

logger = logging.getLogger(__name__)

_NAME = r"[A-Za-z_][A-Za-z0-9_'-]*"

_PLAIN_ENTRY = re.compile(rf"^\s*(?P<name>{_NAME})\s*=\s*pkgs\.(?P<attr>{_NAME})\s*;\s*$")
_FLAKE_ENTRY = re.compile(
    rf"^\s*(?P<name>{_NAME})\s*=\s*(?:inputs\.)?(?P<input>[A-Za-z_][A-Za-z0-9_-]*)"
    rf"\.(?P<output>packages|legacyPackages)\.\$\{{system\}}\.(?P<source>[A-Za-z_][A-Za-z0-9_'.-]*)\s*;\s*$"
)
_INPUT_URL = re.compile(r'^\s*(?P<input>[A-Za-z_][A-Za-z0-9_-]*)\.url\s*=\s*"(?P<url>[^"]*)"\s*;')
_OUTPUTS = re.compile(r"^(?P<head>\s*outputs\s*=\s*\{)(?P<params>[^}]*)(?P<tail>\}.*)$")


# ── Recovery ────────────────────────────────────────────────────


@dataclass
class RecoveryResult:
    state: PackageState
    warnings: list[str] = field(default_factory=list)


def recover_state_from_markers(content: str) -> RecoveryResult:
    """Rebuild the package state recorded in the marker regions of ``content``.

    Plain entries are read from ``nixy:packages`` (only ``name = pkgs.name;``),
    flake entries from ``nixy:custom-packages``, and their URLs from the
    input regions. Non-canonical plain lines are skipped silently; a custom
    entry that cannot be recovered is reported as a warning and skipped.
    """
    result = RecoveryResult(state=PackageState())

    for line in editor.extract_section_lines(content, editor.PACKAGES):
        match = _PLAIN_ENTRY.match(line)
        if match and match.group("name") == match.group("attr"):
            result.state.add_legacy_package(match.group("name"))
        elif line.strip():
            logger.debug("Skipping non-canonical package line: %s", line.strip())

    urls = collect_input_urls(content)

    for line in editor.extract_section_lines(content, editor.CUSTOM_PACKAGES):
        match = _FLAKE_ENTRY.match(line)
        if not match:
            if line.strip():
                _warn(result, f"Skipping unrecognised custom package line: {line.strip()}")
            continue

        name, input_name = match.group("name"), match.group("input")
        source = match.group("source")

        if input_name == "nixpkgs":
            url = DEFAULT_NIXPKGS_URL
        else:
            url = urls.get(input_name)
        if url is None:
            _warn(result, f"Skipping custom package '{name}': no URL found for input '{input_name}'")
            continue

        if source != name:
            _warn(result, f"Custom package '{name}' refers to '{source}'; keeping it as an alias")

        result.state.add_custom_package(
            CustomPackage(
                name=name,
                input_name=input_name,
                input_url=url,
                package_output=match.group("output"),
                source_name=source if source != name else None,
            )
        )

    return result


def collect_input_urls(content: str) -> dict[str, str]:
    """Input name → URL, from the custom and local input regions."""
    urls: dict[str, str] = {}
    for marker in (editor.CUSTOM_INPUTS, editor.LOCAL_INPUTS):
        for line in editor.extract_section_lines(content, marker):
            match = _INPUT_URL.match(line)
            if match:
                urls.setdefault(match.group("input"), match.group("url"))
    return urls


def _warn(result: RecoveryResult, message: str) -> None:
    logger.warning(message)
    result.warnings.append(message)


# ── Retrofit ────────────────────────────────────────────────────


def add_markers(content: str) -> str:
    """Wrap the managed regions of a generated flake.nix in marker comments.

    Inputs, package entries and buildEnv paths are each fenced so that
    later edits touch only those regions. The checksum header is dropped,
    since the result is no longer a verbatim render. Already-marked content
    is returned unchanged.
    """
    if editor.has_any_marker(content):
        return content
    _, content = split_checksum(content)

    lines = content.splitlines()
    out: list[str] = []
    i = 0
    fenced = set()

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        out.append(line)
        i += 1

        if "inputs" not in fenced and stripped.startswith("nixpkgs.url"):
            block, i = _take_until(lines, i, lambda s: s == "};")
            custom, local = [], []
            for entry in block:
                match = _INPUT_URL.match(entry)
                (local if match and match.group("url").startswith("path:") else custom).append(entry)
            out += _fence(editor.CUSTOM_INPUTS, custom, "    ")
            out += _fence(editor.LOCAL_INPUTS, local, "    ")
            fenced.add("inputs")

        elif "entries" not in fenced and stripped.startswith("in rec {"):
            block, i = _take_until(lines, i, lambda s: s.startswith("default = pkgs.buildEnv"))
            local_inputs = {
                name for name, url in collect_input_urls("\n".join(out)).items()
                if url.startswith("path:")
            }
            plain, local, custom = [], [], []
            for entry in block:
                plain_match = _PLAIN_ENTRY.match(entry)
                flake_match = _FLAKE_ENTRY.match(entry)
                if plain_match and plain_match.group("name") == plain_match.group("attr"):
                    plain.append(entry)
                elif flake_match and flake_match.group("input") not in local_inputs:
                    custom.append(entry)
                else:
                    local.append(entry)
            indent = " " * 10
            out += _fence(editor.PACKAGES, plain, indent)
            out += _fence(editor.LOCAL_PACKAGES, local, indent)
            out += _fence(editor.CUSTOM_PACKAGES, custom, indent)
            fenced.add("entries")

        elif "paths" not in fenced and stripped == "paths = [":
            block, i = _take_until(lines, i, lambda s: s == "];")
            out += _fence(editor.ENV_PATHS, block, " " * 14)
            fenced.add("paths")

    if fenced != {"inputs", "entries", "paths"}:
        raise ConsistencyError("flake.nix does not have the layout nixy generates; cannot add markers")

    text = "\n".join(out)
    return text + "\n" if content.endswith("\n") else text


def _take_until(lines: list[str], start: int, is_end) -> tuple[list[str], int]:
    end = start
    while end < len(lines) and not is_end(lines[end].strip()):
        end += 1
    return [line for line in lines[start:end] if line.strip()], end


def _fence(marker: str, body: list[str], indent: str) -> list[str]:
    return [f"{indent}{editor.open_token(marker)}", *body, f"{indent}{editor.close_token(marker)}"]


def widen_output_params(content: str, input_name: str) -> str:
    """Add ``input_name`` to the ``outputs = { ... }`` argument set if missing."""
    lines = content.splitlines()
    for idx, line in enumerate(lines):
        match = _OUTPUTS.match(line)
        if not match:
            continue
        params = [p.strip() for p in match.group("params").split(",") if p.strip()]
        if input_name in params or "..." in params:
            return content
        fixed = [p for p in ("self", "nixpkgs") if p in params]
        rest = sorted([p for p in params if p not in fixed] + [input_name])
        lines[idx] = f"{match.group('head')} {', '.join(fixed + rest)} {match.group('tail')}"
        text = "\n".join(lines)
        return text + "\n" if content.endswith("\n") else text
    raise ConsistencyError("flake.nix has no 'outputs = { ... }' line to extend")


# ── Incremental edits ───────────────────────────────────────────


InstallTarget = str | ResolvedPackage | CustomPackage


def apply_install_edit(content: str, package: InstallTarget) -> str:
    """Add one package to a marked flake.nix without touching anything else.

    A plain name goes into ``nixy:packages``; resolved and custom packages
    go into ``nixy:custom-packages`` with their input declared once in
    ``nixy:custom-inputs``. An existing entry of the same name is replaced.
    """
    if not isinstance(package, str) and package.platforms:
        raise UsageError(
            "Platform-restricted packages need a generated flake.nix; "
            "rerun with --force to regenerate it"
        )

    name = package if isinstance(package, str) else package.name
    content = apply_uninstall_edit(content, name)

    if isinstance(package, str):
        section, expr = editor.PACKAGES, f"pkgs.{name}"
    else:
        if isinstance(package, ResolvedPackage):
            input_name, url = package.input_name, package.input_url
            output, source = "legacyPackages", package.attribute_path
        else:
            input_name, url = package.input_name, package.input_url
            output, source = package.package_output, package.source_package_name

        if is_default_nixpkgs(url):
            ref = "nixpkgs"
        else:
            ref = f"inputs.{input_name}"
            if input_name not in _declared_inputs(content):
                _require(content, editor.CUSTOM_INPUTS)
                content = editor.insert_after_marker(
                    content, editor.CUSTOM_INPUTS, f'    {input_name}.url = "{url}";'
                )
            content = widen_output_params(content, input_name)
        section, expr = editor.CUSTOM_PACKAGES, f"{ref}.{output}.${{system}}.{source}"

    _require(content, section)
    _require(content, editor.ENV_PATHS)
    content = editor.insert_after_marker(content, section, f"          {name} = {expr};")
    return editor.insert_after_marker(content, editor.ENV_PATHS, f"              {name}")


def apply_uninstall_edit(content: str, name: str) -> str:
    """Remove ``name`` from the package and path regions of a marked flake.nix."""
    entry = rf"^\s*{re.escape(name)}\s*="
    for section in editor.PACKAGE_SECTIONS:
        content = editor.remove_from_marker(content, section, entry)
    return editor.remove_from_marker(content, editor.ENV_PATHS, rf"^\s*{re.escape(name)}\s*$")


def _declared_inputs(content: str) -> set[str]:
    return {m.group("input") for m in map(_INPUT_URL.match, content.splitlines()) if m}


def _require(content: str, marker: str) -> None:
    if not editor.has_marker(content, marker):
        raise ConsistencyError(
            f"flake.nix has no '{editor.open_token(marker)}' section to edit; "
            "rerun with --force to regenerate it"
        )
