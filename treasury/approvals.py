from __future__ import annotations

"""
Treasury - Threshold approvals for outbound transfers
-----------------------------------------------------

Implements the multi-party approval state machine that gates every normal
outflow, for single withdrawals and for batch distributions alike:

    PENDING --approve (count reaches threshold)--> APPROVED --execute--> EXECUTED
    PENDING --cancel--> CANCELLED

Funds requested by a proposal are *reserved* in their category at creation
time, so two proposals can never promise the same funds. Cancelling releases
the reservation; execution (see `treasury.distribution`) converts it into
spend. Size tier and the earliest execution time are computed once, at
creation, from the balance at that moment and are never recomputed.

Records are never deleted; terminal proposals stay in the table for audit.

Design goals
  • Deterministic, integer-only accounting.
  • Storage-agnostic: state is held in compact records with dump()/load().
  • Clear invariants: one vote per approver, status-gated transitions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .domain import ProposalStatus, Provenance, is_positive_amount
from .errors import NotFoundError, StateError, ValidationError
from .ledger import AllocationLedger
from .timelock import Tier, TimelockPolicy, is_time_ready


@dataclass
class WithdrawalProposal:
    id: int
    proposer: str
    recipient: str
    amount: int
    category: str
    description: str
    created_at: int
    execution_eligible_at: int
    is_large_withdrawal: bool
    status: ProposalStatus = ProposalStatus.PENDING
    approvals: List[str] = field(default_factory=list)
    provenance: Provenance = Provenance.MANAGER
    title: str = ""
    voting_period: int = 0
    executed_at: Optional[int] = None
    cancelled_at: Optional[int] = None

    @property
    def approval_count(self) -> int:
        return len(self.approvals)

    @property
    def tier(self) -> Tier:
        return Tier.LARGE if self.is_large_withdrawal else Tier.STANDARD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "proposer": self.proposer,
            "recipient": self.recipient,
            "amount": self.amount,
            "category": self.category,
            "description": self.description,
            "created_at": self.created_at,
            "execution_eligible_at": self.execution_eligible_at,
            "is_large_withdrawal": self.is_large_withdrawal,
            "status": self.status.value,
            "approvals": list(self.approvals),
            "approval_count": self.approval_count,
            "provenance": self.provenance.value,
            "title": self.title,
            "voting_period": self.voting_period,
            "executed_at": self.executed_at,
            "cancelled_at": self.cancelled_at,
        }

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "WithdrawalProposal":
        return WithdrawalProposal(
            id=int(d["id"]),
            proposer=str(d["proposer"]),
            recipient=str(d["recipient"]),
            amount=int(d["amount"]),
            category=str(d["category"]),
            description=str(d.get("description", "")),
            created_at=int(d["created_at"]),
            execution_eligible_at=int(d["execution_eligible_at"]),
            is_large_withdrawal=bool(d["is_large_withdrawal"]),
            status=ProposalStatus(d["status"]),
            approvals=[str(a) for a in d.get("approvals", [])],
            provenance=Provenance(d.get("provenance", Provenance.MANAGER.value)),
            title=str(d.get("title", "")),
            voting_period=int(d.get("voting_period", 0)),
            executed_at=d.get("executed_at"),
            cancelled_at=d.get("cancelled_at"),
        )


@dataclass
class BatchDistribution:
    id: int
    proposer: str
    recipients: List[str]
    amounts: List[int]
    category: str
    description: str
    created_at: int
    execution_eligible_at: int
    is_large_withdrawal: bool
    status: ProposalStatus = ProposalStatus.PENDING
    approvals: List[str] = field(default_factory=list)
    executed_at: Optional[int] = None
    cancelled_at: Optional[int] = None

    @property
    def total_amount(self) -> int:
        return sum(self.amounts)

    @property
    def executed(self) -> bool:
        return self.status is ProposalStatus.EXECUTED

    @property
    def approval_count(self) -> int:
        return len(self.approvals)

    def pairs(self) -> List[tuple]:
        return list(zip(self.recipients, self.amounts))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "proposer": self.proposer,
            "recipients": list(self.recipients),
            "amounts": list(self.amounts),
            "total_amount": self.total_amount,
            "category": self.category,
            "description": self.description,
            "created_at": self.created_at,
            "execution_eligible_at": self.execution_eligible_at,
            "is_large_withdrawal": self.is_large_withdrawal,
            "status": self.status.value,
            "executed": self.executed,
            "approvals": list(self.approvals),
            "approval_count": self.approval_count,
            "executed_at": self.executed_at,
            "cancelled_at": self.cancelled_at,
        }

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "BatchDistribution":
        return BatchDistribution(
            id=int(d["id"]),
            proposer=str(d["proposer"]),
            recipients=[str(r) for r in d["recipients"]],
            amounts=[int(a) for a in d["amounts"]],
            category=str(d["category"]),
            description=str(d.get("description", "")),
            created_at=int(d["created_at"]),
            execution_eligible_at=int(d["execution_eligible_at"]),
            is_large_withdrawal=bool(d["is_large_withdrawal"]),
            status=ProposalStatus(d["status"]),
            approvals=[str(a) for a in d.get("approvals", [])],
            executed_at=d.get("executed_at"),
            cancelled_at=d.get("cancelled_at"),
        )


_OPEN = (ProposalStatus.PENDING, ProposalStatus.APPROVED)


def _require_recipient(recipient: str) -> None:
    if not recipient or not isinstance(recipient, str):
        raise ValidationError("recipient must be a non-empty address")


def _vote(item: Any, approver: str, threshold: int, kind: str) -> bool:
    """Record one approval. Returns True when this vote moved the item to APPROVED."""
    if approver in item.approvals:
        raise StateError(
            "already approved by this approver", details={kind: item.id, "approver": approver}
        )
    if item.status is not ProposalStatus.PENDING:
        raise StateError(
            f"{kind} is not pending", details={kind: item.id, "status": item.status.value}
        )
    item.approvals.append(approver)
    if len(item.approvals) >= threshold:
        item.status = ProposalStatus.APPROVED
        return True
    return False


class ApprovalEngine:
    """
    Proposal table plus the approval state machine.

    Usage:
      engine = ApprovalEngine(ledger, policy, threshold=2)
      p = engine.propose("alice", "0xbob", 5, "marketing", "ads", now=t)
      engine.approve(p.id, "approver1", now=t)
    """

    __slots__ = ("ledger", "policy", "threshold", "_proposals", "_batches", "_next_pid", "_next_bid")

    def __init__(self, ledger: AllocationLedger, policy: TimelockPolicy, *, threshold: int) -> None:
        if threshold < 1:
            raise ValidationError("multisig threshold must be >= 1")
        self.ledger = ledger
        self.policy = policy
        self.threshold = threshold
        self._proposals: Dict[int, WithdrawalProposal] = {}
        self._batches: Dict[int, BatchDistribution] = {}
        self._next_pid = 1
        self._next_bid = 1

    # --- persistence ---

    def dump(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "next_proposal_id": self._next_pid,
            "next_batch_id": self._next_bid,
            "proposals": [p.to_dict() for p in self._proposals.values()],
            "batches": [b.to_dict() for b in self._batches.values()],
        }

    def load(self, data: Mapping[str, Any]) -> None:
        self.threshold = int(data.get("threshold", self.threshold))
        self._next_pid = int(data.get("next_proposal_id", 1))
        self._next_bid = int(data.get("next_batch_id", 1))
        self._proposals = {int(d["id"]): WithdrawalProposal.from_dict(d) for d in data.get("proposals", [])}
        self._batches = {int(d["id"]): BatchDistribution.from_dict(d) for d in data.get("batches", [])}

    # --- queries ---

    def get(self, proposal_id: int) -> WithdrawalProposal:
        p = self._proposals.get(proposal_id)
        if p is None:
            raise NotFoundError("proposal", proposal_id)
        return p

    def get_batch(self, batch_id: int) -> BatchDistribution:
        b = self._batches.get(batch_id)
        if b is None:
            raise NotFoundError("batch", batch_id)
        return b

    def proposals(self, status: Optional[ProposalStatus] = None) -> List[WithdrawalProposal]:
        return [p for p in self._proposals.values() if status is None or p.status is status]

    def batches(self, status: Optional[ProposalStatus] = None) -> List[BatchDistribution]:
        return [b for b in self._batches.values() if status is None or b.status is status]

    def is_ready(self, proposal_id: int, now: int) -> bool:
        p = self.get(proposal_id)
        return p.status is ProposalStatus.APPROVED and is_time_ready(now, p.execution_eligible_at)

    def is_batch_ready(self, batch_id: int, now: int) -> bool:
        b = self.get_batch(batch_id)
        return b.status is ProposalStatus.APPROVED and is_time_ready(now, b.execution_eligible_at)

    # --- core ops ---

    def propose(
        self,
        proposer: str,
        recipient: str,
        amount: int,
        category: str,
        description: str = "",
        *,
        now: int,
        provenance: Provenance = Provenance.MANAGER,
        title: str = "",
        voting_period: int = 0,
    ) -> WithdrawalProposal:
        """
        Create a PENDING withdrawal proposal:
          • Validates recipient/amount/category
          • Fixes the size tier from the current balance
          • Reserves `amount` in the category (InsufficientFundsError if short)
        """
        _require_recipient(recipient)
        if not is_positive_amount(amount):
            raise ValidationError("amount must be a positive integer", details={"amount": repr(amount)})
        if voting_period < 0:
            raise ValidationError("voting_period must be >= 0")

        tier = self.policy.classify(amount, balance=self.ledger.balance)
        pid = self._next_pid
        self.ledger.reserve(category, amount, ts=now, ref=f"proposal:{pid}", counterparty=recipient)
        self._next_pid += 1

        p = WithdrawalProposal(
            id=pid,
            proposer=proposer,
            recipient=recipient,
            amount=amount,
            category=category,
            description=description,
            created_at=now,
            execution_eligible_at=self.policy.eligible_at(created_at=now, tier=tier),
            is_large_withdrawal=tier is Tier.LARGE,
            provenance=provenance,
            title=title,
            voting_period=voting_period,
        )
        self._proposals[pid] = p
        return p

    def approve(self, proposal_id: int, approver: str) -> bool:
        """Record a vote. Returns True when the threshold was reached by this vote."""
        return _vote(self.get(proposal_id), approver, self.threshold, "proposal")

    def cancel(self, proposal_id: int, *, now: int) -> WithdrawalProposal:
        """Cancel a PENDING proposal and release its reservation."""
        p = self.get(proposal_id)
        if p.status is not ProposalStatus.PENDING:
            raise StateError(
                "only pending proposals can be cancelled",
                details={"proposal": p.id, "status": p.status.value},
            )
        self.ledger.release(p.category, p.amount, ts=now, ref=f"proposal:{p.id}", counterparty=p.recipient)
        p.status = ProposalStatus.CANCELLED
        p.cancelled_at = now
        return p

    def create_batch(
        self,
        proposer: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        category: str,
        description: str = "",
        *,
        now: int,
    ) -> BatchDistribution:
        if len(recipients) != len(amounts):
            raise ValidationError(
                "recipients and amounts length mismatch",
                details={"recipients": len(recipients), "amounts": len(amounts)},
            )
        if not recipients:
            raise ValidationError("batch must contain at least one transfer")
        for r, a in zip(recipients, amounts):
            _require_recipient(r)
            if not is_positive_amount(a):
                raise ValidationError("batch amounts must be positive integers", details={"recipient": r})

        total = sum(amounts)
        tier = self.policy.classify(total, balance=self.ledger.balance)
        bid = self._next_bid
        self.ledger.reserve(category, total, ts=now, ref=f"batch:{bid}")
        self._next_bid += 1

        b = BatchDistribution(
            id=bid,
            proposer=proposer,
            recipients=list(recipients),
            amounts=list(amounts),
            category=category,
            description=description,
            created_at=now,
            execution_eligible_at=self.policy.eligible_at(created_at=now, tier=tier),
            is_large_withdrawal=tier is Tier.LARGE,
        )
        self._batches[bid] = b
        return b

    def approve_batch(self, batch_id: int, approver: str) -> bool:
        return _vote(self.get_batch(batch_id), approver, self.threshold, "batch")

    def cancel_batch(self, batch_id: int, *, now: int) -> BatchDistribution:
        b = self.get_batch(batch_id)
        if b.status is not ProposalStatus.PENDING:
            raise StateError(
                "only pending batches can be cancelled",
                details={"batch": b.id, "status": b.status.value},
            )
        self.ledger.release(b.category, b.total_amount, ts=now, ref=f"batch:{b.id}")
        b.status = ProposalStatus.CANCELLED
        b.cancelled_at = now
        return b

    def void_open(self, *, now: int) -> List[str]:
        """
        Cancel every PENDING or APPROVED proposal and batch without touching
        the ledger (used after the ledger has been drained, which removed the
        reservations backing them). Returns the voided refs.
        """
        voided: List[str] = []
        for p in self._proposals.values():
            if p.status in _OPEN:
                p.status = ProposalStatus.CANCELLED
                p.cancelled_at = now
                voided.append(f"proposal:{p.id}")
        for b in self._batches.values():
            if b.status in _OPEN:
                b.status = ProposalStatus.CANCELLED
                b.cancelled_at = now
                voided.append(f"batch:{b.id}")
        return voided


__all__ = [
    "WithdrawalProposal",
    "BatchDistribution",
    "ApprovalEngine",
]
