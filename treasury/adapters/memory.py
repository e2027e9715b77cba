from __future__ import annotations

"""
In-process collaborators: a transport that keeps per-asset account balances
in dicts, and a vesting delegate that just records the schedules it is handed.

Both are deterministic and serializable so the CLI can persist them next to
the treasury state. Failure injection (`fail_for`) lets tests exercise the
rollback path of the distribution engine.
"""

import logging
from dataclasses import asdict, dataclass
from threading import RLock
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Set

from ..domain import ASSET_NATIVE
from ..errors import TransferError
from .base import TransferItem

log = logging.getLogger(__name__)


class InMemoryTransport:
    """
    Implements both `ValueTransport` and `BalanceReader`.

    Balances are tracked per (asset, address). Every successful call appends a
    record to `transfers`. Recipients listed in `fail_for` make the whole call
    raise `TransferError` before anything is credited.
    """

    def __init__(self, *, fail_for: Iterable[str] = ()) -> None:
        self._balances: Dict[str, Dict[str, int]] = {}
        self.fail_for: Set[str] = set(fail_for)
        self.transfers: List[Dict[str, Any]] = []
        self._lock = RLock()

    # --- BalanceReader ---

    def balance_of(self, address: str, asset: str = ASSET_NATIVE) -> int:
        with self._lock:
            return self._balances.get(asset, {}).get(address, 0)

    def set_balance(self, address: str, amount: int, asset: str = ASSET_NATIVE) -> None:
        """Seed or overwrite an external account balance."""
        with self._lock:
            self._balances.setdefault(asset, {})[address] = int(amount)

    def debit(self, address: str, amount: int, asset: str = ASSET_NATIVE) -> None:
        """Simulate an external account spending funds."""
        with self._lock:
            have = self.balance_of(address, asset)
            self._balances.setdefault(asset, {})[address] = max(0, have - int(amount))

    # --- ValueTransport ---

    def transfer(self, recipient: str, amount: int, *, asset: str, memo: str = "") -> str:
        return self.transfer_batch([(recipient, amount)], asset=asset, memo=memo)

    def transfer_batch(self, items: Sequence[TransferItem], *, asset: str, memo: str = "") -> str:
        with self._lock:
            for recipient, amount in items:
                if recipient in self.fail_for:
                    raise TransferError(
                        "transfer rejected by settlement layer",
                        details={"recipient": recipient, "asset": asset},
                    )
                if amount <= 0:
                    raise TransferError("transfer amount must be positive", details={"recipient": recipient})
            book = self._balances.setdefault(asset, {})
            for recipient, amount in items:
                book[recipient] = book.get(recipient, 0) + int(amount)
            ref = f"tx-{len(self.transfers) + 1}"
            self.transfers.append(
                {"ref": ref, "asset": asset, "memo": memo, "items": [[r, int(a)] for r, a in items]}
            )
            log.debug("transfer ref=%s asset=%s items=%d", ref, asset, len(items))
            return ref

    # --- persistence ---

    def dump(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "balances": {a: dict(b) for a, b in self._balances.items()},
                "transfers": list(self.transfers),
                "fail_for": sorted(self.fail_for),
            }

    @classmethod
    def load(cls, data: Mapping[str, Any]) -> "InMemoryTransport":
        t = cls(fail_for=data.get("fail_for", ()))
        t._balances = {a: {k: int(v) for k, v in b.items()} for a, b in (data.get("balances") or {}).items()}
        t.transfers = list(data.get("transfers") or [])
        return t


@dataclass(frozen=True)
class VestingSchedule:
    schedule_id: str
    beneficiary: str
    amount: int
    start_time: int
    cliff_duration: int
    vesting_duration: int
    tag: str


class InMemoryVesting:
    """Records schedules and hands out sequential ids (`vest-1`, `vest-2`, ...)."""

    def __init__(self) -> None:
        self.schedules: Dict[str, VestingSchedule] = {}

    def create_schedule(
        self,
        beneficiary: str,
        amount: int,
        start_time: int,
        cliff_duration: int,
        vesting_duration: int,
        tag: str,
    ) -> str:
        sid = f"vest-{len(self.schedules) + 1}"
        self.schedules[sid] = VestingSchedule(
            schedule_id=sid,
            beneficiary=beneficiary,
            amount=amount,
            start_time=start_time,
            cliff_duration=cliff_duration,
            vesting_duration=vesting_duration,
            tag=tag,
        )
        return sid

    def dump(self) -> List[Dict[str, Any]]:
        return [asdict(s) for s in self.schedules.values()]

    @classmethod
    def load(cls, data: Iterable[Mapping[str, Any]]) -> "InMemoryVesting":
        v = cls()
        for d in data:
            s = VestingSchedule(**d)
            v.schedules[s.schedule_id] = s
        return v


__all__ = ["InMemoryTransport", "InMemoryVesting", "VestingSchedule"]
