"""
List use case — every package in a workspace, tracked or local.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from nixy.core.services.flake.local_packages import collect_local_packages
from nixy.core.services.workspace import Workspace


@dataclass
class PackageEntry:
    name: str
    kind: str                       # nixpkgs | resolved | custom | local | local-flake
    version: str | None = None
    source: str | None = None
    platforms: list[str] | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind,
            "version": self.version,
            "source": self.source,
            "platforms": self.platforms,
        }


@dataclass
class ListResult:
    workspace: str
    packages: list[PackageEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "workspace": self.workspace,
            "packages": [p.to_dict() for p in self.packages],
        }


def list_packages(workspace: Workspace) -> ListResult:
    state = workspace.load_state()
    local_packages, local_flakes = collect_local_packages(workspace.packages_dir)
    local_names = {p.name for p in local_packages} | {f.name for f in local_flakes}

    entries = [PackageEntry(name, "nixpkgs") for name in state.packages if name not in local_names]
    entries += [
        PackageEntry(p.name, "resolved", p.resolved_version, p.attribute_path, p.platforms)
        for p in state.resolved_packages
        if p.name not in local_names
    ]
    entries += [
        PackageEntry(p.name, "custom", None, f"{p.input_url}#{p.source_package_name}", p.platforms)
        for p in state.custom_packages
    ]
    entries += [
        PackageEntry(p.name, "local", None, p.file_name) for p in local_packages
    ]
    entries += [PackageEntry(f.name, "local-flake", None, f.name) for f in local_flakes]

    entries.sort(key=lambda e: e.name)
    return ListResult(workspace=workspace.label, packages=entries)
