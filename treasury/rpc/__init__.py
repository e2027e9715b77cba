from __future__ import annotations

"""
treasury.rpc
------------

Read-only query surface of the treasury, as a transport-agnostic JSON-RPC
method table (`methods.make_methods`) and a FastAPI router
(`methods.build_rest_router`, `mount.mount_treasury`).
"""

from typing import Dict, Final

# Base path under which treasury endpoints are mounted into a host API.
RPC_PREFIX: Final[str] = "/treasury"

TREASURY_OPENAPI_TAG: Final[Dict[str, str]] = {
    "name": "treasury",
    "description": "Treasury balances, allocations, proposals, history and programs (read-only).",
}

__all__ = [
    "RPC_PREFIX",
    "TREASURY_OPENAPI_TAG",
]
