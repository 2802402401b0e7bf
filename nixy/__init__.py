"""nixy — declarative package management on top of Nix flakes."""

__version__ = "0.1.0"
