from __future__ import annotations

"""
JSON-RPC methods and REST routes for the treasury query surface.

Usage:
    from treasury.rpc.methods import make_methods
    methods = make_methods(treasury)
    methods["treasury.getBalance"]()

Every callable takes keyword arguments only and returns plain JSON-friendly
structures. Errors surface as `TreasuryError` subclasses; the REST adapter
maps them to HTTP status codes via `http_status`.
"""

from typing import Any, Callable, Dict, Optional

from .. import reports
from ..domain import ProgramType, TxType
from ..errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    StateError,
    TreasuryError,
    ValidationError,
)
from ..service import Treasury


def _coerce_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an integer", details={name: repr(value)}) from e


def _coerce_optional_int(value: Any, name: str) -> Optional[int]:
    return None if value is None else _coerce_int(value, name)


def _coerce_enum(value: Optional[str], enum_cls, name: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"unknown {name}", details={name: value}) from e


def http_status(err: TreasuryError) -> int:
    """HTTP status for a treasury error kind."""
    if isinstance(err, NotFoundError):
        return 404
    if isinstance(err, ValidationError):
        return 400
    if isinstance(err, AuthorizationError):
        return 403
    if isinstance(err, StateError):
        return 409
    if isinstance(err, InsufficientFundsError):
        return 422
    return 500


# ---- JSON-RPC method factory ----------------------------------------------

def make_methods(treasury: Treasury) -> Dict[str, Callable[..., Any]]:
    """Build a mapping of JSON-RPC method name -> callable."""

    def get_balance() -> Dict[str, Any]:
        return {
            "balance": treasury.get_balance(),
            "reserved": treasury.ledger.total_reserved(),
            "available": treasury.ledger.total_available(),
            "paused": treasury.paused,
        }

    def get_allocation(*, category: str) -> Dict[str, Any]:
        if not category:
            raise ValidationError("category is required")
        return treasury.get_allocation(category).snapshot()

    def get_proposal(*, proposalId: Any) -> Dict[str, Any]:
        return treasury.get_proposal(_coerce_int(proposalId, "proposalId")).to_dict()

    def get_batch(*, batchId: Any) -> Dict[str, Any]:
        return treasury.get_batch(_coerce_int(batchId, "batchId")).to_dict()

    def get_historical_transactions(
        *,
        fromTs: Optional[int] = None,
        toTs: Optional[int] = None,
        txType: Optional[str] = None,
        offset: Optional[int] = 0,
        limit: Optional[int] = 100,
    ) -> Dict[str, Any]:
        off = _coerce_int(offset or 0, "offset")
        lim = _coerce_int(100 if limit is None else limit, "limit")
        items = treasury.get_historical_transactions(
            _coerce_optional_int(fromTs, "fromTs"),
            _coerce_optional_int(toTs, "toTs"),
            tx_type=_coerce_enum(txType, TxType, "txType"),
            offset=off,
            limit=lim,
        )
        return {"items": [e.to_dict() for e in items], "nextOffset": off + len(items)}

    def get_program_status(*, programType: str) -> Dict[str, Any]:
        ptype = _coerce_enum(programType, ProgramType, "programType")
        if ptype is None:
            raise ValidationError("programType is required")
        return treasury.get_program_status(ptype)

    def get_external_funding_config(*, target: str) -> Dict[str, Any]:
        if not target:
            raise ValidationError("target is required")
        return treasury.get_external_funding_config(target).to_dict()

    def get_dashboard() -> Dict[str, Any]:
        return reports.dashboard(treasury)

    return {
        "treasury.getBalance": get_balance,
        "treasury.getAllocation": get_allocation,
        "treasury.getProposal": get_proposal,
        "treasury.getBatch": get_batch,
        "treasury.getHistoricalTransactions": get_historical_transactions,
        "treasury.getProgramStatus": get_program_status,
        "treasury.getExternalFundingConfig": get_external_funding_config,
        "treasury.getDashboard": get_dashboard,
    }


# ---- REST adapter (FastAPI) -------------------------------------------------

def build_rest_router(treasury: Treasury):
    """
    Return a FastAPI APIRouter exposing the query surface.
    Mount path suggestion: f"{RPC_PREFIX}" (import from treasury.rpc).
    """
    try:
        from fastapi import APIRouter, HTTPException, Query
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("FastAPI is required to build the REST router") from exc

    methods = make_methods(treasury)
    router = APIRouter()

    def _call(name: str, **kwargs: Any) -> Any:
        try:
            return methods[name](**kwargs)
        except TreasuryError as e:
            raise HTTPException(status_code=http_status(e), detail=e.to_dict()) from e

    @router.get("/balance")
    def http_get_balance():
        return _call("treasury.getBalance")

    @router.get("/allocations/{category}")
    def http_get_allocation(category: str):
        return _call("treasury.getAllocation", category=category)

    @router.get("/proposals/{proposal_id}")
    def http_get_proposal(proposal_id: int):
        return _call("treasury.getProposal", proposalId=proposal_id)

    @router.get("/batches/{batch_id}")
    def http_get_batch(batch_id: int):
        return _call("treasury.getBatch", batchId=batch_id)

    @router.get("/history")
    def http_get_history(
        fromTs: Optional[int] = None,
        toTs: Optional[int] = None,
        txType: Optional[str] = None,
        offset: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=500),
    ):
        return _call(
            "treasury.getHistoricalTransactions",
            fromTs=fromTs, toTs=toTs, txType=txType, offset=offset, limit=limit,
        )

    @router.get("/programs/{program_type}")
    def http_get_program(program_type: str):
        return _call("treasury.getProgramStatus", programType=program_type)

    @router.get("/funding/{target}")
    def http_get_funding(target: str):
        return _call("treasury.getExternalFundingConfig", target=target)

    @router.get("/dashboard")
    def http_get_dashboard():
        return _call("treasury.getDashboard")

    return router


__all__ = ["make_methods", "build_rest_router", "http_status"]
