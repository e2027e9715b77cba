from __future__ import annotations
# treasury/errors.py
"""
Error types for the treasury engine. Every rejection raised by a public
operation is one of these kinds so calling layers (CLI, governance, RPC/UI) can
map it to an actionable message. They are lightweight, serializable, and safe
to surface over RPC/logs.

Exports:
- TreasuryError (base)
- ValidationError
- NotFoundError
- AuthorizationError
- StateError
- InsufficientFundsError
- TransferError
"""


from typing import Any, Dict, Iterable, Mapping, Optional
import json


class TreasuryError(Exception):
    """Base class for treasury domain errors."""

    code: str = "TREASURY_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            # Keep this compact and stable for logs
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"))
            except (TypeError, ValueError):
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


class ValidationError(TreasuryError):
    """
    Malformed input: zero/negative amount, unknown category, allocation split
    not summing to 100%, recipient/amount list length mismatch, empty title.
    """
    code = "TREASURY_VALIDATION"


class NotFoundError(ValidationError):
    """Reference to an unknown proposal, batch, program, target or request."""
    code = "TREASURY_NOT_FOUND"

    def __init__(
        self,
        kind: str,
        ident: Any,
        *,
        message: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d.update({"kind": kind, "id": str(ident)})
        super().__init__(message or f"unknown {kind}", details=d)


class AuthorizationError(TreasuryError):
    """Caller lacks the capability required for the operation."""
    code = "TREASURY_UNAUTHORIZED"

    def __init__(
        self,
        *,
        caller: str,
        operation: str,
        required: Iterable[str] = (),
        message: str = "caller lacks required role",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d.update({"caller": caller, "operation": operation, "required": sorted(required)})
        super().__init__(message, details=d)


class StateError(TreasuryError):
    """
    Operation not legal in the current state: system paused, proposal not
    PENDING/APPROVED, timelock not expired, duplicate approval.
    """
    code = "TREASURY_STATE"


class InsufficientFundsError(TreasuryError):
    """Requested amount exceeds category `available` or a program's remaining cap."""
    code = "TREASURY_INSUFFICIENT_FUNDS"

    def __init__(
        self,
        message: str = "insufficient funds",
        *,
        requested: int,
        available: int,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d.update({"requested": int(requested), "available": int(available)})
        super().__init__(message, details=d)


class TransferError(TreasuryError):
    """The value-transfer primitive failed; nothing moved."""
    code = "TREASURY_TRANSFER_FAILED"


__all__ = [
    "TreasuryError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "StateError",
    "InsufficientFundsError",
    "TransferError",
]
