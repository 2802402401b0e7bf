"""
Mock builder — test double for the nix CLI.

Used by the test-suite and by ``nixy --mock`` to exercise every command
without touching Nix. Succeeds by default; individual actions can be
told to fail. Successful builds create the out-link as an empty
directory so callers can see something happened.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from nixy.adapters.base import Builder, PackageOutput
from nixy.core.models.receipt import Receipt

MOCK_STORE = "/nix/store"


@dataclass
class BuilderCall:
    action: str
    flake_dir: Path | None = None
    args: dict = field(default_factory=dict)


class MockBuilder(Builder):
    """Builder that records calls and returns canned receipts."""

    def __init__(
        self,
        system: str = "x86_64-linux",
        available: bool = True,
        package_outputs: dict[str, PackageOutput] | None = None,
    ):
        self._system = system
        self._available = available
        self._package_outputs = package_outputs or {}
        self._failures: dict[str, str] = {}
        self._call_log: list[BuilderCall] = []
        # Hook run during build(), e.g. to simulate an interrupt mid-build
        self.on_build = None

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[BuilderCall]:
        return self._call_log

    @property
    def build_count(self) -> int:
        return sum(1 for call in self._call_log if call.action == "build")

    def is_available(self) -> bool:
        return self._available

    def current_system(self) -> str:
        return self._system

    def set_failure(self, action: str, error: str = "Mock failure") -> None:
        """Make every later call of ``action`` fail."""
        self._failures[action] = error

    def build(self, flake_dir: Path, output: str, out_link: Path) -> Receipt:
        self._call_log.append(
            BuilderCall("build", flake_dir, {"output": output, "out_link": out_link})
        )
        if self.on_build is not None:
            self.on_build()
        if "build" in self._failures:
            return Receipt.failure(self.name, "build", self._failures["build"])
        if not out_link.exists():
            out_link.mkdir(parents=True)
        return Receipt.success(self.name, "build", output="[mock] built", metadata={"mock": True})

    def update(self, flake_dir: Path, inputs: list[str] | None = None) -> Receipt:
        self._call_log.append(BuilderCall("update", flake_dir, {"inputs": inputs or []}))
        if "update" in self._failures:
            return Receipt.failure(self.name, "update", self._failures["update"])
        return Receipt.success(self.name, "update", output="[mock] updated")

    def find_package_output(self, flake_url: str, package: str) -> PackageOutput | None:
        self._call_log.append(BuilderCall("eval", None, {"url": flake_url, "package": package}))
        return self._package_outputs.get(package, "packages")

    def prefetch_flake(self, flake_url: str) -> Receipt:
        self._call_log.append(BuilderCall("prefetch", None, {"url": flake_url}))
        if "prefetch" in self._failures:
            return Receipt.failure(self.name, "prefetch", self._failures["prefetch"])
        return Receipt.success(self.name, "prefetch", output=f"{MOCK_STORE}/mock-source")

    def package_position(self, nixpkgs_url: str, attribute_path: str, system: str) -> Receipt:
        self._call_log.append(BuilderCall(
            "eval", None, {"url": nixpkgs_url, "attribute": attribute_path, "system": system}
        ))
        if "eval" in self._failures:
            return Receipt.failure(self.name, "eval", self._failures["eval"])
        return Receipt.success(
            self.name, "eval", output=f"{MOCK_STORE}/mock-nixpkgs/pkgs/{attribute_path}/default.nix:1"
        )

    def collect_garbage(self) -> Receipt:
        self._call_log.append(BuilderCall("gc"))
        if "gc" in self._failures:
            return Receipt.failure(self.name, "gc", self._failures["gc"])
        return Receipt.success(self.name, "gc", output="[mock] collected garbage")

    def reset(self) -> None:
        self._call_log.clear()
        self._failures.clear()
