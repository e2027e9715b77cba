from __future__ import annotations
"""
treasury - pooled fund custody & distribution engine.

Receives value, partitions it into spending categories under fixed basis-point
splits, and releases it only through a threshold-approval workflow with
size-tiered timelocks. Also runs bounded token-award programs, tops up
dependent external accounts, and offers an emergency controller.

Public surface (lazily loaded):
- config, errors, metrics, events, roles
- ledger, timelock, approvals, distribution, programs, funding, emergency
- service (the `Treasury` aggregate), reports, adapters, rpc, cli
"""


from typing import List

from .version import __version__

__all__: List[str] = [
    "__version__",
    # lazily importable subpackages/modules
    "config",
    "errors",
    "metrics",
    "events",
    "roles",
    "ledger",
    "timelock",
    "approvals",
    "distribution",
    "programs",
    "funding",
    "emergency",
    "service",
    "reports",
    "adapters",
    "rpc",
    "cli",
]

# --- Lazy module loader (PEP 562) -------------------------------------------------
import importlib


_lazy_modules = set(__all__) - {"__version__"}


def __getattr__(name: str):
    if name in _lazy_modules:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals().keys()) | _lazy_modules)


def get_version() -> str:
    """Return the treasury package version string."""
    return __version__
