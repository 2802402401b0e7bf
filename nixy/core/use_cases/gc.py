"""
Garbage collection — free store paths no environment refers to any more.

Old generations of the environment link keep their closure alive only
until this runs; the current one is a GC root and always survives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from nixy.adapters.base import Builder
from nixy.core.errors import BuildError, NixNotInstalledError

logger = logging.getLogger(__name__)


@dataclass
class GcResult:
    duration_ms: int = 0
    output: str = ""

    def to_dict(self) -> dict:
        return {"duration_ms": self.duration_ms, "output": self.output}


def collect_garbage(builder: Builder) -> GcResult:
    if not builder.is_available():
        raise NixNotInstalledError()
    logger.info("Collecting garbage in the Nix store")
    receipt = builder.collect_garbage()
    if receipt.failed:
        raise BuildError(f"Garbage collection failed: {receipt.error}")
    return GcResult(duration_ms=receipt.duration_ms, output=receipt.output)
