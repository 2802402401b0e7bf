"""
Nix builder adapter — run the ``nix`` CLI and capture the outcome.

Every invocation enables the flakes and nix-command experimental
features, so nixy works on installations that have not turned them on
globally. Builds run with NIXPKGS_ALLOW_UNFREE=1 and ``--impure`` so
unfree packages the user asked for are not rejected.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import shutil
import subprocess
import time
from pathlib import Path

from nixy.adapters.base import Builder, PackageOutput
from nixy.core.config.settings import NIX_FLAGS
from nixy.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

_MACHINE_ARCH = {"x86_64": "x86_64", "amd64": "x86_64", "arm64": "aarch64", "aarch64": "aarch64"}


class NixBuilder(Builder):
    """Builder backed by the real nix executable."""

    def __init__(self, executable: str = "nix"):
        self._executable = executable

    @property
    def name(self) -> str:
        return "nix"

    def is_available(self) -> bool:
        return shutil.which(self._executable) is not None

    def current_system(self) -> str:
        receipt = self._run(
            "system",
            ["eval", "--impure", "--raw", "--expr", "builtins.currentSystem"],
            capture=True,
        )
        if receipt.ok and receipt.output:
            return receipt.output
        return _guess_system()

    def build(self, flake_dir: Path, output: str, out_link: Path) -> Receipt:
        out_link.parent.mkdir(parents=True, exist_ok=True)
        return self._run(
            "build",
            ["build", f"{flake_dir}#{output}", "--out-link", str(out_link), "--impure"],
            extra_env={"NIXPKGS_ALLOW_UNFREE": "1"},
        )

    def update(self, flake_dir: Path, inputs: list[str] | None = None) -> Receipt:
        args = ["flake", "update", "--flake", str(flake_dir)]
        args.extend(inputs or [])
        return self._run("update", args)

    def find_package_output(self, flake_url: str, package: str) -> PackageOutput | None:
        system = self.current_system()
        for output in ("packages", "legacyPackages"):
            receipt = self._run(
                "eval",
                ["eval", f"{flake_url}#{output}.{system}.{package}.type", "--raw"],
                capture=True,
            )
            if receipt.ok:
                return output  # type: ignore[return-value]
        return None

    def prefetch_flake(self, flake_url: str) -> Receipt:
        receipt = self._run("prefetch", ["flake", "prefetch", "--json", flake_url], capture=True)
        if receipt.failed:
            return receipt
        try:
            store_path = json.loads(receipt.output)["storePath"]
        except (ValueError, KeyError, TypeError):
            return Receipt.failure(
                adapter=self.name,
                action="prefetch",
                error=f"Missing storePath in the prefetch output for {flake_url}",
            )
        return Receipt.success(
            adapter=self.name, action="prefetch", output=store_path,
            duration_ms=receipt.duration_ms,
        )

    def package_position(self, nixpkgs_url: str, attribute_path: str, system: str) -> Receipt:
        ref = f"{nixpkgs_url}#legacyPackages.{system}.{attribute_path}.meta.position"
        return self._run("eval", ["eval", "--raw", ref], capture=True)

    def collect_garbage(self) -> Receipt:
        return self._run("gc", ["store", "gc"])

    # ── Internals ───────────────────────────────────────────────

    def _run(
        self,
        action: str,
        args: list[str],
        capture: bool = False,
        extra_env: dict[str, str] | None = None,
    ) -> Receipt:
        """Run nix with the feature flags.

        Uncaptured commands (build, update, gc) stream their progress straight
        to the terminal, so their receipt only carries the exit code.
        """
        command = [self._executable, *NIX_FLAGS, *args]
        env = {**os.environ, **(extra_env or {})}
        logger.debug("Executing: %s", " ".join(command))
        start = time.monotonic()

        try:
            result = subprocess.run(
                command,
                env=env,
                capture_output=capture,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action=action,
                error=f"{self._executable} not found. Install Nix from https://nixos.org/download/",
            )
        except OSError as e:
            return Receipt.failure(adapter=self.name, action=action, error=str(e))

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name, action=action, output=stdout, duration_ms=elapsed_ms
            )

        logger.debug("nix %s failed (exit %d): %s", action, result.returncode, stderr)
        return Receipt.failure(
            adapter=self.name,
            action=action,
            error=stderr or f"nix {action} exited with code {result.returncode}",
            duration_ms=elapsed_ms,
            metadata={"returncode": result.returncode},
        )


def _guess_system() -> str:
    arch = _MACHINE_ARCH.get(platform.machine().lower(), platform.machine().lower())
    kernel = "darwin" if platform.system() == "Darwin" else "linux"
    return f"{arch}-{kernel}"
