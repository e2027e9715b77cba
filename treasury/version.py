from __future__ import annotations

"""
treasury.version - semantic version string.

BASE_VERSION is the released semver; TREASURY_VERSION in the environment wins
(useful for packaging/CI builds that stamp a local suffix).
"""

import os

# Bump this on intentional releases.
BASE_VERSION = "0.1.0"


def build_version() -> str:
    v = os.getenv("TREASURY_VERSION")
    if v:
        return v
    return BASE_VERSION


__version__ = build_version()


def get_version() -> str:
    """Public helper returning the resolved version string."""
    return __version__


__all__ = ["__version__", "get_version", "BASE_VERSION"]
