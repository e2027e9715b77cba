from __future__ import annotations

"""
treasury.rpc.mount
------------------

Helpers to mount the treasury query surface into an existing FastAPI app
and/or to register the JSON-RPC methods with a dispatcher.

Typical usage (REST):
    from fastapi import FastAPI
    from treasury.rpc.mount import mount_treasury
    app = FastAPI()
    mount_treasury(app, treasury, prefix="/treasury")

Typical usage (JSON-RPC):
    from treasury.rpc.mount import register_jsonrpc
    register_jsonrpc(dispatcher, treasury)
"""

from typing import Any, Protocol

from ..service import Treasury
from . import RPC_PREFIX, TREASURY_OPENAPI_TAG
from .methods import build_rest_router, make_methods


class _JsonRpcDispatcherLike(Protocol):
    def add(self, method: str, func: Any) -> None: ...
    def register(self, method: str, func: Any) -> None: ...


def mount_treasury(app: Any, treasury: Treasury, *, prefix: str = RPC_PREFIX) -> None:
    """Mount the treasury REST endpoints under `prefix` on a FastAPI app."""
    router = build_rest_router(treasury)
    app.include_router(router, prefix=prefix, tags=[TREASURY_OPENAPI_TAG["name"]])


def register_jsonrpc(dispatcher: _JsonRpcDispatcherLike, treasury: Treasury) -> None:
    """Register methods via `.add(name, fn)`, falling back to `.register(name, fn)`."""
    for name, fn in make_methods(treasury).items():
        try:
            dispatcher.add(name, fn)  # type: ignore[attr-defined]
        except AttributeError:
            dispatcher.register(name, fn)  # type: ignore[attr-defined]


__all__ = ["mount_treasury", "register_jsonrpc"]
