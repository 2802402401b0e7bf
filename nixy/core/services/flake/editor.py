"""
Marker editor — line-oriented edits inside ``# [nixy:*]`` regions.

Older nixy versions kept flake.nix as a hand-editable file and wrote
packages into regions delimited by marker comments:

    # [nixy:packages]
              ripgrep = pkgs.ripgrep;
    # [/nixy:packages]

Everything outside the markers belongs to the user. These helpers never
parse Nix; a marker is recognised by substring containment, so indented
or trailing markers work, and unbalanced markers yield an empty or
partial region rather than an error.
"""

from __future__ import annotations

import re

# Sections written by older versions and by the marker retrofit
PACKAGES = "nixy:packages"
LOCAL_PACKAGES = "nixy:local-packages"
CUSTOM_PACKAGES = "nixy:custom-packages"
CUSTOM_INPUTS = "nixy:custom-inputs"
LOCAL_INPUTS = "nixy:local-inputs"
ENV_PATHS = "nixy:env-paths"

PACKAGE_SECTIONS = (PACKAGES, LOCAL_PACKAGES, CUSTOM_PACKAGES)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_'-]*$")


def open_token(marker: str) -> str:
    return f"# [{marker}]"


def close_token(marker: str) -> str:
    return f"# [/{marker}]"


def has_marker(content: str, marker: str) -> bool:
    return open_token(marker) in content


def has_any_marker(content: str) -> bool:
    return "# [nixy:" in content


def is_valid_nix_identifier(name: str) -> bool:
    return bool(_IDENTIFIER.match(name))


def insert_after_marker(content: str, marker: str, line: str) -> str:
    """Insert ``line`` after every line containing the opening token of ``marker``.

    All other lines are kept verbatim, and the file keeps (or lacks) its
    trailing newline.
    """
    token = open_token(marker)
    result: list[str] = []
    for existing in content.splitlines():
        result.append(existing)
        if token in existing:
            result.append(line)
    return _join(result, content)


def remove_from_section(content: str, start_token: str, end_token: str, pattern: str) -> str:
    """Drop lines matching ``pattern`` between ``start_token`` and ``end_token``.

    Only lines inside the section are candidates; the marker lines
    themselves and everything outside are kept. Without a closing token
    the section runs to the end of the file.
    """
    regex = re.compile(pattern)
    inside = False
    result: list[str] = []
    for line in content.splitlines():
        if start_token in line:
            inside = True
        elif end_token in line:
            inside = False
        elif inside and regex.search(line):
            continue
        result.append(line)
    return _join(result, content)


def remove_from_marker(content: str, marker: str, pattern: str) -> str:
    return remove_from_section(content, open_token(marker), close_token(marker), pattern)


def extract_section_content(content: str, marker: str) -> str:
    """The lines strictly between the markers, each newline-terminated.

    Returns "" if the opening marker is missing; a missing closing marker
    extends the section to the end of the file.
    """
    start, end = open_token(marker), close_token(marker)
    inside = False
    lines: list[str] = []
    for line in content.splitlines():
        if start in line:
            inside = True
            continue
        if end in line:
            if inside:
                break
            continue
        if inside:
            lines.append(line + "\n")
    return "".join(lines)


def extract_section_lines(content: str, marker: str) -> list[str]:
    return extract_section_content(content, marker).splitlines()


def _join(lines: list[str], original: str) -> str:
    text = "\n".join(lines)
    if lines and original.endswith("\n"):
        text += "\n"
    return text
