"""
Nixhub registry client — package search and version resolution.

Resolution maps ``name@version`` to the nixpkgs commit and attribute
path that provide that version on a given system; the generated flake
then pins a ``nixpkgs-<commit>`` input for it.

    GET /v2/search?q=<query>
    GET /v2/resolve?name=<name>&version=<version|latest>
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request

from nixy import __version__
from nixy.adapters.base import Registry, ResolvedPackageInfo, SearchHit
from nixy.core.errors import PackageNotFoundError, RegistryError, UsageError

logger = logging.getLogger(__name__)

SEARCH_API_ENDPOINT = "https://search.devbox.sh"


def parse_package_spec(spec: str) -> tuple[str, str | None]:
    """Split ``nodejs@20`` into ``("nodejs", "20")``; no ``@`` means no version."""
    name, sep, version = spec.partition("@")
    if not sep:
        return spec, None
    return name, version or None


class NixhubClient(Registry):
    """HTTP client for the Nixhub search API."""

    def __init__(self, host: str = SEARCH_API_ENDPOINT, timeout: float = 15):
        self._host = host.rstrip("/")
        self._timeout = timeout

    def search(self, query: str) -> list[SearchHit]:
        if not query:
            raise UsageError("Search query cannot be empty")
        data = self._get("/v2/search", {"q": query}, not_found=PackageNotFoundError(query))
        return [
            SearchHit(
                name=item.get("name", ""),
                version=item.get("version", ""),
                summary=item.get("summary", ""),
            )
            for item in data.get("results") or []
        ]

    def resolve(self, name: str, version: str | None, system: str) -> ResolvedPackageInfo:
        wanted = version or "latest"
        data = self._get(
            "/v2/resolve",
            {"name": name, "version": wanted},
            not_found=PackageNotFoundError(name, version),
        )

        systems = data.get("systems") or {}
        info = systems.get(system)
        if not info:
            raise PackageNotFoundError(name, f"{wanted} (not available for {system})")

        try:
            installable = info["flake_installable"]
            return ResolvedPackageInfo(
                name=data.get("name", name),
                version=data.get("version", wanted),
                attribute_path=installable["attr_path"],
                commit_hash=installable["ref"]["rev"],
            )
        except (KeyError, TypeError) as e:
            raise RegistryError(f"Unexpected resolve response for {name}: missing {e}") from e

    # ── Internals ───────────────────────────────────────────────

    def _get(self, path: str, params: dict[str, str], not_found: Exception) -> dict:
        url = f"{self._host}{path}?{urllib.parse.urlencode(params)}"
        req = urllib.request.Request(
            url,
            headers={"Accept": "application/json", "User-Agent": f"nixy/{__version__}"},
        )
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                payload = json.loads(resp.read().decode())
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise not_found from e
            raise RegistryError(f"Nixhub API error: HTTP {e.code}") from e
        except urllib.error.URLError as e:
            raise RegistryError(f"Cannot reach Nixhub ({self._host}): {e.reason}") from e
        except OSError as e:
            raise RegistryError(f"Cannot reach Nixhub ({self._host}): {e}") from e
        except json.JSONDecodeError as e:
            raise RegistryError(f"Failed to parse Nixhub response: {e}") from e

        if not isinstance(payload, dict):
            raise RegistryError("Failed to parse Nixhub response: expected an object")
        return payload
