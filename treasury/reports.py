from __future__ import annotations

"""
Read-only reporting over a `Treasury`: allocation breakdown, spending rate
and runway, rebalancing recommendations, an operator dashboard and a public
analytics view. All figures are integer base units; percentages are bps.

Nothing here mutates state.
"""

from typing import Any, Dict, Iterator, List, Optional

from .domain import BPS_DENOM, ProposalStatus, TxType
from .ledger import HistoricalTransaction
from .programs import token_distribution_breakdown
from .service import Treasury

SECONDS_PER_DAY = 86_400
SECONDS_PER_MONTH = 2_629_746  # 30.44 days

OUTFLOW_TYPES = frozenset(
    {
        TxType.WITHDRAWAL,
        TxType.BATCH_WITHDRAWAL,
        TxType.EXTERNAL_FUNDING,
        TxType.EMERGENCY,
        TxType.EMERGENCY_RECOVERY,
    }
)

_PAGE = 500


def _bps(part: int, whole: int) -> int:
    return part * BPS_DENOM // whole if whole else 0


def iter_history(t: Treasury, from_ts: Optional[int] = None, to_ts: Optional[int] = None) -> Iterator[HistoricalTransaction]:
    """Walk the history window page by page."""
    offset = 0
    while True:
        page = t.get_historical_transactions(from_ts, to_ts, offset=offset, limit=_PAGE)
        yield from page
        if len(page) < _PAGE:
            return
        offset += _PAGE


def spending_rate(amount_spent: int, elapsed_s: int, period_s: int = SECONDS_PER_MONTH) -> int:
    if elapsed_s <= 0:
        return 0
    return amount_spent * period_s // elapsed_s


def allocation_report(t: Treasury) -> Dict[str, Any]:
    allocs = t.get_allocations()
    total_allocated = sum(a.total_allocated for a in allocs)
    rows = []
    for a in allocs:
        rows.append(
            {
                "category": a.category,
                "target_bps": a.target_bps,
                "allocated": a.total_allocated,
                "spent": a.total_spent,
                "reserved": a.reserved,
                "available": a.available,
                "share_bps": _bps(a.total_allocated, total_allocated),
                "last_distribution": a.last_distribution,
            }
        )
    return {
        "balance": t.get_balance(),
        "total_allocated": total_allocated,
        "total_spent": sum(a.total_spent for a in allocs),
        "total_reserved": sum(a.reserved for a in allocs),
        "categories": rows,
    }


def spending_report(t: Treasury, from_ts: int, to_ts: int) -> Dict[str, Any]:
    """
    Outflows per category in [from_ts, to_ts], the monthly spending rate they
    imply, and the runway (whole months) of the remaining balance at that burn.
    """
    spent: Dict[str, int] = {c: 0 for c in t.ledger.categories()}
    for e in iter_history(t, from_ts, to_ts):
        if e.tx_type in OUTFLOW_TYPES and e.category in spent:
            spent[e.category] += e.amount
        elif e.tx_type is TxType.EMERGENCY_RECOVERY:
            spent.setdefault("*", 0)
            spent["*"] += e.amount

    elapsed = max(0, to_ts - from_ts)
    rates = {c: spending_rate(v, elapsed) for c, v in spent.items()}
    monthly_burn = sum(rates.values())
    remaining = t.get_balance()
    return {
        "from_ts": from_ts,
        "to_ts": to_ts,
        "period_days": elapsed // SECONDS_PER_DAY,
        "spent": spent,
        "total_spent": sum(spent.values()),
        "monthly_rate": rates,
        "monthly_burn": monthly_burn,
        "remaining": remaining,
        "runway_months": (remaining // monthly_burn) if monthly_burn > 0 else None,
    }


def rebalancing_plan(t: Treasury) -> Dict[str, Dict[str, Any]]:
    """Target holding per category (balance * bps) vs. what it currently holds."""
    balance = t.get_balance()
    plan: Dict[str, Dict[str, Any]] = {}
    for a in t.get_allocations():
        current = a.total_allocated - a.total_spent
        target = balance * a.target_bps // BPS_DENOM
        diff = target - current
        plan[a.category] = {
            "current": current,
            "target": target,
            "adjustment": diff,
            "needs_increase": diff > 0,
            "adjustment_bps": _bps(diff, balance),
        }
    return plan


def dashboard(t: Treasury) -> Dict[str, Any]:
    proposals = t.list_proposals()
    pending = [p for p in proposals if p.status in (ProposalStatus.PENDING, ProposalStatus.APPROVED)]
    return {
        "balance": t.get_balance(),
        "paused": t.paused,
        "allocations": {a.category: a.snapshot() for a in t.get_allocations()},
        "pending_withdrawals": len(pending),
        "pending_amount": sum(p.amount for p in pending),
        "pending_batches": len(t.approvals.batches(ProposalStatus.PENDING))
        + len(t.approvals.batches(ProposalStatus.APPROVED)),
        "pending_emergency": len(t.emergency.requests(ProposalStatus.PENDING)),
        "active_programs": [p.program_type.value for p in t.programs.active_programs()],
        "funding_targets": len(t.funding.targets()),
        "history_length": len(t.ledger.history),
    }


def public_analytics(t: Treasury) -> Dict[str, Any]:
    allocs = t.get_allocations()
    balance = t.get_balance()
    programs: List[Dict[str, Any]] = [
        {
            "program": p.program_type.value,
            "cap": p.total_allocation,
            "distributed": p.distributed_amount,
            "progress_bps": _bps(p.distributed_amount, p.total_allocation),
        }
        for p in t.programs.programs()
    ]
    return {
        "total_value": balance,
        "percentages": {a.category: _bps(a.total_allocated - a.total_spent, balance) for a in allocs},
        "target_percentages": {a.category: a.target_bps for a in allocs},
        "tokens_distributed": t.programs.total_distributed(),
        "programs": programs,
    }


__all__ = [
    "SECONDS_PER_DAY",
    "SECONDS_PER_MONTH",
    "OUTFLOW_TYPES",
    "iter_history",
    "spending_rate",
    "allocation_report",
    "spending_report",
    "rebalancing_plan",
    "dashboard",
    "public_analytics",
    "token_distribution_breakdown",
]
