from __future__ import annotations

"""
Treasury - Distribution engine
------------------------------

Executes approved, time-eligible proposals and batches against the ledger:

  1) gate: status must be APPROVED and `now >= execution_eligible_at`
  2) settle the reservation (reserved -> spent, balance debited, history entry)
  3) hand the transfer(s) to the value transport

Steps 2 and 3 run inside `AllocationLedger.atomic()`: if the transport raises,
the ledger is restored and the proposal keeps its APPROVED status, so no
partial debit survives. A batch is a single `transfer_batch` call, so either
every recipient is paid or none is.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .adapters.base import ValueTransport
from .approvals import ApprovalEngine, BatchDistribution, WithdrawalProposal
from .domain import ASSET_NATIVE, ProposalStatus, TxType
from .errors import InsufficientFundsError, StateError
from .ledger import AllocationLedger, HistoricalTransaction
from .timelock import is_time_ready

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionReceipt:
    kind: str  # "proposal" | "batch"
    ref_id: int
    amount: int
    transfer_ref: str
    entry: HistoricalTransaction


def _require_ready(item, now: int, kind: str) -> None:
    if item.status is not ProposalStatus.APPROVED:
        raise StateError(
            f"{kind} is not approved", details={kind: item.id, "status": item.status.value}
        )
    if not is_time_ready(now, item.execution_eligible_at):
        raise StateError(
            "timelock not expired",
            details={kind: item.id, "now": now, "eligible_at": item.execution_eligible_at},
        )


class DistributionEngine:
    def __init__(self, ledger: AllocationLedger, approvals: ApprovalEngine, transport: ValueTransport) -> None:
        self.ledger = ledger
        self.approvals = approvals
        self.transport = transport

    def execute(self, proposal_id: int, *, now: int, executor: str = "") -> ExecutionReceipt:
        p: WithdrawalProposal = self.approvals.get(proposal_id)
        _require_ready(p, now, "proposal")

        with self.ledger.atomic():
            entry = self.ledger.settle(
                p.category,
                p.amount,
                ts=now,
                counterparty=p.recipient,
                tx_type=TxType.WITHDRAWAL,
                meta={"proposal": str(p.id), "provenance": p.provenance.value, "executor": executor},
            )
            ref = self.transport.transfer(p.recipient, p.amount, asset=ASSET_NATIVE, memo=f"proposal:{p.id}")

        p.status = ProposalStatus.EXECUTED
        p.executed_at = now
        log.info("proposal executed id=%d recipient=%s amount=%d ref=%s", p.id, p.recipient, p.amount, ref)
        return ExecutionReceipt("proposal", p.id, p.amount, ref, entry)

    def execute_batch(self, batch_id: int, *, now: int, executor: str = "") -> ExecutionReceipt:
        b: BatchDistribution = self.approvals.get_batch(batch_id)
        _require_ready(b, now, "batch")

        total = b.total_amount
        cat = self.ledger.get_allocation(b.category)
        # reserved at creation; anything missing must still be available now
        if total > cat.reserved + cat.available:
            raise InsufficientFundsError(
                f"batch total exceeds funds in {b.category}",
                requested=total,
                available=cat.reserved + cat.available,
            )

        with self.ledger.atomic():
            if cat.reserved < total:
                self.ledger.reserve(b.category, total - cat.reserved, ts=now, ref=f"batch:{b.id}")
            entry = self.ledger.settle(
                b.category,
                total,
                ts=now,
                counterparty="batch",
                tx_type=TxType.BATCH_WITHDRAWAL,
                meta={"batch": str(b.id), "recipients": str(len(b.recipients)), "executor": executor},
            )
            ref = self.transport.transfer_batch(b.pairs(), asset=ASSET_NATIVE, memo=f"batch:{b.id}")

        b.status = ProposalStatus.EXECUTED
        b.executed_at = now
        log.info("batch executed id=%d recipients=%d total=%d ref=%s", b.id, len(b.recipients), total, ref)
        return ExecutionReceipt("batch", b.id, total, ref, entry)

    def pay_out(
        self,
        category: str,
        recipient: str,
        amount: int,
        *,
        now: int,
        tx_type: TxType,
        memo: str,
        meta: Optional[dict] = None,
    ) -> ExecutionReceipt:
        """Spend straight from `available` and transfer (external funding path)."""
        with self.ledger.atomic():
            entry = self.ledger.spend(category, amount, ts=now, counterparty=recipient, tx_type=tx_type, meta=meta)
            ref = self.transport.transfer(recipient, amount, asset=ASSET_NATIVE, memo=memo)
        return ExecutionReceipt(memo.split(":", 1)[0], 0, amount, ref, entry)


__all__ = ["DistributionEngine", "ExecutionReceipt"]
