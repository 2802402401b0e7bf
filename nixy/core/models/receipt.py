"""
Receipt model — what an adapter hands back instead of raising.

The builder adapter runs nix and reports the outcome here; the core
only looks at ``ok`` and turns a failed receipt into a BuildError at
the point where it can roll back.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class Receipt(BaseModel):
    """Outcome of one external command."""

    adapter: str
    action: str                             # "build", "update", "eval", ...
    status: Literal["ok", "failed"] = "ok"
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, adapter: str, action: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action=action, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action=action, status="failed", error=error, **kwargs)
