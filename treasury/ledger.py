from __future__ import annotations

"""
Treasury - categorized allocation ledger
----------------------------------------

This module maintains the *internal*, deterministic ledger for:
  • Total treasury balance
  • Per-category allocation records (allocated / spent / reserved)
  • An append-only historical transaction log, indexed by time

It is deliberately storage-agnostic and uses pure-Python data structures with
explicit serialization helpers. Persistence is delegated to higher layers which
can snapshot `AllocationLedger.dump()` and restore via `AllocationLedger.load()`.

Amounts are expressed as integer *base units* (no floats). All operations check:
  • Positive amounts and known categories
  • Sufficient `available` before reserving, rebalancing or spending
  • Category invariant: available == allocated - spent - reserved >= 0
  • Ledger invariant: balance == sum(allocated - spent) over all categories
  • Split invariant: target percentages sum to exactly 10_000 bps

Concurrency: a coarse `threading.RLock` protects mutating methods. The
`Treasury` aggregate passes its own lock in so ledger, proposals and programs
form a single consistency domain.

Typical flow
~~~~~~~~~~~~
1) Inbound funds arrive via `deposit()`; they are split across categories by bps.
2) A proposal reserves its amount (`reserve()`), moving it out of `available`.
3) Execution converts the reservation into spend (`settle()`), or cancellation
   hands it back (`release()`).
"""

from bisect import bisect_left, bisect_right, insort
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, replace
from threading import RLock
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .domain import BPS_DENOM, TxType, is_positive_amount
from .errors import InsufficientFundsError, NotFoundError, TreasuryError, ValidationError

Amount = int


def _ensure_positive(x: Any, name: str = "amount") -> None:
    if not is_positive_amount(x):
        raise ValidationError(f"{name} must be a positive integer", details={name: repr(x)})


def _safe_sub(have: int, need: int, *, what: str) -> int:
    c = have - need
    if c < 0:
        raise InsufficientFundsError(
            f"insufficient {what}: have {have}, need {need}", requested=need, available=have
        )
    return c


def validate_split(bps: Mapping[str, int]) -> Dict[str, int]:
    """Return a clean copy of `bps` or raise ValidationError."""
    if not bps:
        raise ValidationError("allocation split must name at least one category")
    out: Dict[str, int] = {}
    for name, v in bps.items():
        if not name:
            raise ValidationError("category ids must be non-empty")
        if not isinstance(v, int) or isinstance(v, bool) or not (0 <= v <= BPS_DENOM):
            raise ValidationError(
                f"bps for {name!r} must be an int in [0, {BPS_DENOM}]", details={"category": name}
            )
        out[str(name)] = v
    total = sum(out.values())
    if total != BPS_DENOM:
        raise ValidationError(
            f"allocation percentages must sum to {BPS_DENOM} bps", details={"total_bps": total}
        )
    return out


@dataclass
class CategoryAllocation:
    category: str
    target_bps: int
    total_allocated: Amount = 0
    total_spent: Amount = 0
    reserved: Amount = 0
    last_distribution: Optional[int] = None

    @property
    def available(self) -> Amount:
        return self.total_allocated - self.total_spent - self.reserved

    def snapshot(self) -> Dict[str, Any]:
        d = asdict(self)
        d["available"] = self.available
        return d

    @staticmethod
    def restore(d: Mapping[str, Any]) -> "CategoryAllocation":
        ca = CategoryAllocation(
            category=str(d["category"]),
            target_bps=int(d["target_bps"]),
            total_allocated=int(d.get("total_allocated", 0)),
            total_spent=int(d.get("total_spent", 0)),
            reserved=int(d.get("reserved", 0)),
            last_distribution=d.get("last_distribution"),
        )
        ca._assert_invariant()
        return ca

    def _assert_invariant(self) -> None:
        if min(self.total_allocated, self.total_spent, self.reserved) < 0 or self.available < 0:
            raise TreasuryError(
                f"allocation invariant violated for {self.category}: "
                f"allocated={self.total_allocated} spent={self.total_spent} "
                f"reserved={self.reserved}"
            )


@dataclass(frozen=True)
class HistoricalTransaction:
    seq: int
    ts: int
    tx_type: TxType
    counterparty: str
    amount: Amount
    category: str
    balance_after: Amount
    meta: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["tx_type"] = self.tx_type.value
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "HistoricalTransaction":
        return HistoricalTransaction(
            seq=int(d["seq"]),
            ts=int(d["ts"]),
            tx_type=TxType(d["tx_type"]),
            counterparty=str(d.get("counterparty", "")),
            amount=int(d["amount"]),
            category=str(d.get("category", "")),
            balance_after=int(d["balance_after"]),
            meta={str(k): str(v) for k, v in (d.get("meta") or {}).items()},
        )


class HistoryLog:
    """
    Append-only log with a (ts, seq) index so time-range queries are paginated
    without scanning the whole list. Entries are never mutated; committed
    entries are never removed.
    """

    def __init__(self) -> None:
        self._entries: List[HistoricalTransaction] = []
        self._index: List[Tuple[int, int]] = []  # sorted (ts, seq)

    def __len__(self) -> int:
        return len(self._entries)

    def next_seq(self) -> int:
        return len(self._entries) + 1

    def append(self, entry: HistoricalTransaction) -> None:
        if entry.seq != self.next_seq():
            raise TreasuryError(f"history seq gap: expected {self.next_seq()}, got {entry.seq}")
        self._entries.append(entry)
        insort(self._index, (entry.ts, entry.seq))

    def truncate(self, length: int) -> None:
        """Drop entries past `length`. Only used to undo an uncommitted operation."""
        if length >= len(self._entries):
            return
        self._entries = self._entries[:length]
        self._index = [k for k in self._index if k[1] <= length]

    def get(self, seq: int) -> HistoricalTransaction:
        if not (1 <= seq <= len(self._entries)):
            raise NotFoundError("transaction", seq)
        return self._entries[seq - 1]

    def last(self) -> Optional[HistoricalTransaction]:
        return self._entries[-1] if self._entries else None

    def query(
        self,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        *,
        tx_type: Optional[TxType] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> List[HistoricalTransaction]:
        """Entries with from_ts <= ts <= to_ts (inclusive), oldest first."""
        if offset < 0 or limit < 0:
            raise ValidationError("offset and limit must be >= 0")
        lo = 0 if from_ts is None else bisect_left(self._index, (from_ts, 0))
        hi = len(self._index) if to_ts is None else bisect_right(self._index, (to_ts, len(self._entries) + 1))
        out: List[HistoricalTransaction] = []
        skipped = 0
        for _, seq in self._index[lo:hi]:
            e = self._entries[seq - 1]
            if tx_type is not None and e.tx_type is not tx_type:
                continue
            if skipped < offset:
                skipped += 1
                continue
            if len(out) >= limit:
                break
            out.append(e)
        return out

    def __iter__(self):
        return iter(tuple(self._entries))

    def dump(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    @classmethod
    def load(cls, data: Iterable[Mapping[str, Any]]) -> "HistoryLog":
        h = cls()
        for d in data:
            h.append(HistoricalTransaction.from_dict(d))
        return h


class AllocationLedger:
    """
    In-memory categorized ledger.

    Storage-agnostic: call `dump()` to serialize to a JSON-friendly dict, and
    `load()` to restore.
    """

    def __init__(self, split: Mapping[str, int], *, lock: Optional[RLock] = None) -> None:
        clean = validate_split(split)
        self._categories: Dict[str, CategoryAllocation] = {
            name: CategoryAllocation(category=name, target_bps=bps) for name, bps in clean.items()
        }
        self._balance: Amount = 0
        self._history = HistoryLog()
        self._lock = lock or RLock()

    # --- load/save ---

    def dump(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "balance": self._balance,
                "categories": {k: v.snapshot() for k, v in self._categories.items()},
                "history": self._history.dump(),
            }

    @classmethod
    def load(cls, data: Mapping[str, Any], *, lock: Optional[RLock] = None) -> "AllocationLedger":
        cats = {k: CategoryAllocation.restore(v) for k, v in data["categories"].items()}
        led = cls({k: c.target_bps for k, c in cats.items()}, lock=lock)
        led._categories = cats
        led._balance = int(data.get("balance", 0))
        led._history = HistoryLog.load(data.get("history", []))
        led.assert_consistent()
        return led

    def restore(self, data: Mapping[str, Any]) -> None:
        """Replace state in place with a previous `dump()` (lock object is kept)."""
        other = AllocationLedger.load(data)
        with self._lock:
            self._categories = other._categories
            self._balance = other._balance
            self._history = other._history

    def checkpoint(self) -> Tuple[Dict[str, Dict[str, Any]], int, int]:
        """Cheap snapshot: category records, balance and history length."""
        with self._lock:
            return (
                {k: v.snapshot() for k, v in self._categories.items()},
                self._balance,
                len(self._history),
            )

    def rollback(self, cp: Tuple[Dict[str, Dict[str, Any]], int, int]) -> None:
        cats, balance, length = cp
        with self._lock:
            self._categories = {k: CategoryAllocation.restore(v) for k, v in cats.items()}
            self._balance = balance
            self._history.truncate(length)

    @contextmanager
    def atomic(self) -> Iterator["AllocationLedger"]:
        """Roll the ledger back to its prior state if the block raises."""
        with self._lock:
            cp = self.checkpoint()
            try:
                yield self
            except Exception:
                self.rollback(cp)
                raise

    # --- introspection ---

    @property
    def balance(self) -> Amount:
        return self._balance

    @property
    def history(self) -> HistoryLog:
        return self._history

    def categories(self) -> List[str]:
        return list(self._categories)

    def split(self) -> Dict[str, int]:
        return {k: c.target_bps for k, c in self._categories.items()}

    def get_allocation(self, category: str) -> CategoryAllocation:
        """Return a detached copy of the category record."""
        with self._lock:
            return replace(self._cat(category))

    def available(self, category: str) -> Amount:
        return self._cat(category).available

    def total_available(self) -> Amount:
        return sum(c.available for c in self._categories.values())

    def total_reserved(self) -> Amount:
        return sum(c.reserved for c in self._categories.values())

    def _cat(self, category: str) -> CategoryAllocation:
        c = self._categories.get(category)
        if c is None:
            raise ValidationError("unknown category", details={"category": category})
        return c

    # --- mutations (all locked) ---

    def update_split(
        self, bps: Mapping[str, int], *, ts: int, actor: str = "", referenced: Iterable[str] = ()
    ) -> HistoricalTransaction:
        """
        Replace target percentages. New category ids start empty; a category
        can only be dropped while it holds no allocation and is not named in
        `referenced` (categories other components still pay out of).
        """
        clean = validate_split(bps)
        with self._lock:
            for name in referenced:
                if name in self._categories and name not in clean:
                    raise ValidationError(
                        "cannot drop a category that is still referenced", details={"category": name}
                    )
            for name, cat in self._categories.items():
                if name not in clean and (cat.total_allocated - cat.total_spent) != 0:
                    raise ValidationError(
                        "cannot drop a category that still holds funds", details={"category": name}
                    )
            cats: Dict[str, CategoryAllocation] = {}
            for name, v in clean.items():
                cat = self._categories.get(name) or CategoryAllocation(category=name, target_bps=v)
                cat.target_bps = v
                cats[name] = cat
            self._categories = cats
            meta = {k: str(v) for k, v in clean.items()}
            return self._append(TxType.ALLOCATION_CONFIG, actor, 0, "*", ts, meta)

    def compute_split(self, amount: Amount, remainder_to: str) -> Dict[str, Amount]:
        """Floor-split `amount` by target bps; rounding dust goes to `remainder_to`."""
        self._cat(remainder_to)
        parts = {k: (amount * c.target_bps) // BPS_DENOM for k, c in self._categories.items()}
        parts[remainder_to] += amount - sum(parts.values())
        return parts

    def deposit(
        self,
        category: str,
        amount: Amount,
        description: str = "",
        *,
        ts: int,
        counterparty: str = "",
    ) -> HistoricalTransaction:
        """Increase balance and every category's allocation pro-rata to its bps."""
        _ensure_positive(amount)
        with self._lock:
            parts = self.compute_split(amount, category)
            for name, part in parts.items():
                self._categories[name].total_allocated += part
            self._balance += amount
            meta = {"description": description}
            meta.update({f"split.{k}": str(v) for k, v in parts.items()})
            return self._append(TxType.DEPOSIT, counterparty, amount, category, ts, meta)

    def reserve(
        self, category: str, amount: Amount, *, ts: int, ref: str = "", counterparty: str = ""
    ) -> HistoricalTransaction:
        """Move funds from available → reserved (total unchanged)."""
        _ensure_positive(amount)
        with self._lock:
            cat = self._cat(category)
            _safe_sub(cat.available, amount, what=f"available in {category}")
            cat.reserved += amount
            cat._assert_invariant()
            return self._append(TxType.RESERVE, counterparty, amount, category, ts, {"ref": ref})

    def release(
        self, category: str, amount: Amount, *, ts: int, ref: str = "", counterparty: str = ""
    ) -> HistoricalTransaction:
        """Move funds from reserved → available (total unchanged)."""
        _ensure_positive(amount)
        with self._lock:
            cat = self._cat(category)
            cat.reserved = _safe_sub(cat.reserved, amount, what=f"reserved in {category}")
            return self._append(TxType.RELEASE, counterparty, amount, category, ts, {"ref": ref})

    def rebalance(
        self, from_category: str, to_category: str, amount: Amount, *, ts: int, actor: str = ""
    ) -> HistoricalTransaction:
        """Atomically shift `amount` of allocation from one category's available to another."""
        _ensure_positive(amount)
        with self._lock:
            src = self._cat(from_category)
            dst = self._cat(to_category)
            if src is dst:
                raise ValidationError("cannot rebalance a category into itself")
            _safe_sub(src.available, amount, what=f"available in {from_category}")
            src.total_allocated -= amount
            dst.total_allocated += amount
            return self._append(
                TxType.REBALANCE, actor, amount, from_category, ts, {"to": to_category}
            )

    def settle(
        self,
        category: str,
        amount: Amount,
        *,
        ts: int,
        counterparty: str,
        tx_type: TxType,
        meta: Optional[Mapping[str, str]] = None,
    ) -> HistoricalTransaction:
        """Convert a reservation into spend and debit the balance."""
        _ensure_positive(amount)
        with self._lock:
            cat = self._cat(category)
            cat.reserved = _safe_sub(cat.reserved, amount, what=f"reserved in {category}")
            return self._debit(cat, amount, ts=ts, counterparty=counterparty, tx_type=tx_type, meta=meta)

    def spend(
        self,
        category: str,
        amount: Amount,
        *,
        ts: int,
        counterparty: str,
        tx_type: TxType,
        meta: Optional[Mapping[str, str]] = None,
    ) -> HistoricalTransaction:
        """Debit straight from `available` (no prior reservation)."""
        _ensure_positive(amount)
        with self._lock:
            cat = self._cat(category)
            _safe_sub(cat.available, amount, what=f"available in {category}")
            return self._debit(cat, amount, ts=ts, counterparty=counterparty, tx_type=tx_type, meta=meta)

    def plan_pro_rata(self, amount: Amount) -> Dict[str, Amount]:
        """
        Split `amount` across categories in proportion to their `available`.
        Rounding dust is assigned in category order to whoever still has room.
        """
        _ensure_positive(amount)
        with self._lock:
            total = self.total_available()
            _safe_sub(total, amount, what="available across categories")
            plan = {k: (amount * c.available) // total for k, c in self._categories.items()}
            dust = amount - sum(plan.values())
            for k, c in self._categories.items():
                if dust <= 0:
                    break
                room = c.available - plan[k]
                take = min(room, dust)
                plan[k] += take
                dust -= take
            return {k: v for k, v in plan.items() if v > 0}

    def drain(self, *, ts: int, counterparty: str, reason: str = "") -> HistoricalTransaction:
        """Spend everything, reserved funds included. Returns the single recovery entry."""
        with self._lock:
            amount = self._balance
            for cat in self._categories.values():
                cat.total_spent = cat.total_allocated
                cat.reserved = 0
                if cat.total_allocated:
                    cat.last_distribution = ts
            self._balance = 0
            return self._append(
                TxType.EMERGENCY_RECOVERY, counterparty, amount, "*", ts, {"reason": reason}
            )

    def note(
        self,
        tx_type: TxType,
        *,
        ts: int,
        counterparty: str,
        amount: Amount,
        label: str,
        balance_after: Amount,
        meta: Optional[Mapping[str, str]] = None,
    ) -> HistoricalTransaction:
        """Log a movement of an asset tracked outside the native balance (program tokens)."""
        with self._lock:
            e = HistoricalTransaction(
                seq=self._history.next_seq(),
                ts=ts,
                tx_type=tx_type,
                counterparty=counterparty,
                amount=amount,
                category=label,
                balance_after=balance_after,
                meta=dict(meta or {}),
            )
            self._history.append(e)
            return e

    # --- internals ---

    def _debit(
        self,
        cat: CategoryAllocation,
        amount: Amount,
        *,
        ts: int,
        counterparty: str,
        tx_type: TxType,
        meta: Optional[Mapping[str, str]],
    ) -> HistoricalTransaction:
        self._balance = _safe_sub(self._balance, amount, what="treasury balance")
        cat.total_spent += amount
        cat.last_distribution = ts
        cat._assert_invariant()
        return self._append(tx_type, counterparty, amount, cat.category, ts, dict(meta or {}))

    def _append(
        self, tx_type: TxType, counterparty: str, amount: Amount, category: str, ts: int, meta: Dict[str, str]
    ) -> HistoricalTransaction:
        e = HistoricalTransaction(
            seq=self._history.next_seq(),
            ts=ts,
            tx_type=tx_type,
            counterparty=counterparty,
            amount=amount,
            category=category,
            balance_after=self._balance,
            meta=meta,
        )
        self._history.append(e)
        return e

    # --- utilities ---

    def assert_consistent(self) -> None:
        """Verify invariants across all categories."""
        with self._lock:
            for cat in self._categories.values():
                cat._assert_invariant()
            held = sum(c.total_allocated - c.total_spent for c in self._categories.values())
            if held != self._balance:
                raise TreasuryError(
                    f"ledger invariant violated: balance={self._balance} != sum(allocated-spent)={held}"
                )
            if sum(c.target_bps for c in self._categories.values()) != BPS_DENOM:
                raise TreasuryError("split invariant violated: bps do not sum to 10000")


__all__ = [
    "CategoryAllocation",
    "HistoricalTransaction",
    "HistoryLog",
    "AllocationLedger",
    "validate_split",
]
