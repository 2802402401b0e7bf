"""
Domain models — Pydantic types shared across nixy.

    from nixy.core.models import PackageState, NixyConfig, CustomPackage, Receipt
"""

from nixy.core.models.package import (
    CustomPackage,
    LocalFlake,
    LocalPackage,
    ResolvedPackage,
    normalize_platforms,
)
from nixy.core.models.receipt import Receipt
from nixy.core.models.state import NixyConfig, PackageState, ProfileConfig

__all__ = [
    # package.py
    "CustomPackage",
    "LocalFlake",
    "LocalPackage",
    # state.py
    "NixyConfig",
    "PackageState",
    "ProfileConfig",
    # receipt.py
    "Receipt",
    "ResolvedPackage",
    "normalize_platforms",
]
