"""
Local package discovery — scan the packages directory.

    packages/
      hello.nix          → LocalPackage (pname = "hello")
      my-tool/flake.nix  → LocalFlake "my-tool"

A ``.nix`` file counts as a package only if it declares a ``pname`` or
``name`` attribute with a literal value. An attribute is recognised at
the start of a line or right after ``{`` or ``;``, so one-line
derivations work too, and ``/* */`` comments are ignored. A few
optional attributes are picked up the same way:

    packageExpr = "...";       expression placed in the packages set
    overlay = "...";           overlay added to the nixpkgs import
    <input>.url = "...";       extra flake input the file depends on

The scan runs on every render and is never cached.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path

from nixy.core.models.package import LocalFlake, LocalPackage

logger = logging.getLogger(__name__)

# attr = "literal";  or  attr = identifier;  at line start or after { or ;
_LITERAL = r"""(?:"(?P<str>[^"$\\]*)"|(?P<ident>[A-Za-z_][A-Za-z0-9_.'-]*))"""


def _attr_regex(attr: str) -> re.Pattern[str]:
    return re.compile(rf"(?:^|[{{;])\s*{re.escape(attr)}\s*=\s*{_LITERAL}\s*;", re.MULTILINE)


_PNAME = _attr_regex("pname")
_NAME = _attr_regex("name")
_OVERLAY = _attr_regex("overlay")
_PACKAGE_EXPR = _attr_regex("packageExpr")
_INPUT_URL = re.compile(
    r'(?:^|[{;])\s*(?P<input>[A-Za-z_][A-Za-z0-9_-]*)\.url\s*=\s*"(?P<url>[^"]+)"\s*;',
    re.MULTILINE,
)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)


def collect_local_packages(packages_dir: Path | None) -> tuple[list[LocalPackage], list[LocalFlake]]:
    """Scan ``packages_dir``. A missing directory yields nothing."""
    if packages_dir is None or not packages_dir.is_dir():
        return [], []

    packages: list[LocalPackage] = []
    flakes: list[LocalFlake] = []

    for entry in sorted(packages_dir.iterdir()):
        if entry.is_dir():
            if (entry / "flake.nix").is_file():
                flakes.append(LocalFlake(name=entry.name, directory=entry))
        elif entry.suffix == ".nix" and entry.is_file():
            pkg = parse_local_package_file(entry)
            if pkg is None:
                logger.debug("Skipping %s: no pname/name attribute", entry)
                continue
            packages.append(pkg)

    packages.sort(key=lambda p: p.name)
    flakes.sort(key=lambda f: f.name)
    return packages, flakes


def parse_local_package_file(path: Path) -> LocalPackage | None:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read local package %s: %s", path, e)
        return None
    pkg = parse_local_package(content)
    if pkg is None:
        return None
    return replace(pkg, file_name=path.name)


def parse_local_package(content: str) -> LocalPackage | None:
    """Extract the package metadata from a local ``.nix`` file."""
    content = _BLOCK_COMMENT.sub(" ", content)
    name = _first_value(_PNAME, content) or _first_value(_NAME, content)
    if not name:
        return None

    input_name = input_url = None
    match = _INPUT_URL.search(content)
    if match:
        input_name, input_url = match.group("input"), match.group("url")

    return LocalPackage(
        name=name,
        package_expr=_first_value(_PACKAGE_EXPR, content),
        input_name=input_name,
        input_url=input_url,
        overlay=_first_value(_OVERLAY, content),
    )


def _first_value(regex: re.Pattern[str], content: str) -> str | None:
    match = regex.search(content)
    if not match:
        return None
    value = match.group("str")
    if value is None:
        value = match.group("ident")
    return value or None
