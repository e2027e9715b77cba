from __future__ import annotations

"""
Protocols (dependency injection seams) for the treasury's external collaborators.

The transport is assumed synchronous and all-or-nothing: a call either moves
every unit it was asked to move or raises `TransferError` having moved none.
"""

from typing import Protocol, Sequence, Tuple, runtime_checkable

TransferItem = Tuple[str, int]  # (recipient, amount)


@runtime_checkable
class ValueTransport(Protocol):
    """Settlement-layer transfer primitive."""

    def transfer(self, recipient: str, amount: int, *, asset: str, memo: str = "") -> str:
        """Move `amount` of `asset` to `recipient`. Returns a transfer reference."""

    def transfer_batch(self, items: Sequence[TransferItem], *, asset: str, memo: str = "") -> str:
        """Move every (recipient, amount) pair as one unit, or none of them."""


@runtime_checkable
class BalanceReader(Protocol):
    """Read-only view of dependent accounts (paymaster, buyback, DAO, staking)."""

    def balance_of(self, address: str) -> int:
        """Current native balance of `address` in base units."""


@runtime_checkable
class VestingDelegate(Protocol):
    """External vesting calculator; the treasury stores but never interprets schedule ids."""

    def create_schedule(
        self,
        beneficiary: str,
        amount: int,
        start_time: int,
        cliff_duration: int,
        vesting_duration: int,
        tag: str,
    ) -> str:
        """Register a schedule and return its identifier."""


__all__ = ["TransferItem", "ValueTransport", "BalanceReader", "VestingDelegate"]
