from __future__ import annotations

"""
Emergency controller.

- pause/unpause: a global flag; while set, every mutating entry point of the
  `Treasury` aggregate is rejected except the calls in this module.
- emergency withdrawal: a single EMERGENCY-role holder requests an outflow that
  bypasses multisig approval. The amount is reserved pro-rata to each
  category's available funds and becomes executable after the emergency
  timelock tier (immediately if that delay is 0). Settlement is logged with
  TxType.EMERGENCY, distinct from normal withdrawals.
- recovery: last-resort drain of the entire balance, reserved funds included,
  to a recovery recipient. Pending proposals, batches and emergency requests
  are cancelled. Irreversible.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .adapters.base import ValueTransport
from .approvals import ApprovalEngine
from .distribution import ExecutionReceipt
from .domain import ASSET_NATIVE, ProposalStatus, TxType, is_positive_amount
from .errors import NotFoundError, StateError, ValidationError
from .ledger import AllocationLedger, HistoricalTransaction
from .timelock import Tier, TimelockPolicy, is_time_ready

log = logging.getLogger(__name__)


@dataclass
class EmergencyRequest:
    id: int
    requester: str
    recipient: str
    amount: int
    reason: str
    created_at: int
    eligible_at: int
    plan: Dict[str, int] = field(default_factory=dict)
    status: ProposalStatus = ProposalStatus.PENDING
    executed_at: Optional[int] = None
    cancelled_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "EmergencyRequest":
        return EmergencyRequest(
            id=int(d["id"]),
            requester=str(d["requester"]),
            recipient=str(d["recipient"]),
            amount=int(d["amount"]),
            reason=str(d.get("reason", "")),
            created_at=int(d["created_at"]),
            eligible_at=int(d["eligible_at"]),
            plan={str(k): int(v) for k, v in (d.get("plan") or {}).items()},
            status=ProposalStatus(d.get("status", ProposalStatus.PENDING.value)),
            executed_at=d.get("executed_at"),
            cancelled_at=d.get("cancelled_at"),
        )


class EmergencyController:
    def __init__(
        self,
        ledger: AllocationLedger,
        approvals: ApprovalEngine,
        policy: TimelockPolicy,
        transport: ValueTransport,
    ) -> None:
        self.ledger = ledger
        self.approvals = approvals
        self.policy = policy
        self.transport = transport
        self.paused = False
        self._requests: Dict[int, EmergencyRequest] = {}
        self._next_id = 1

    def dump(self) -> Dict[str, Any]:
        return {
            "paused": self.paused,
            "next_id": self._next_id,
            "requests": [r.to_dict() for r in self._requests.values()],
        }

    def load(self, data: Mapping[str, Any]) -> None:
        self.paused = bool(data.get("paused", False))
        self._next_id = int(data.get("next_id", 1))
        self._requests = {int(d["id"]): EmergencyRequest.from_dict(d) for d in data.get("requests", [])}

    # --- pause ---

    def pause(self) -> None:
        if self.paused:
            raise StateError("already paused")
        self.paused = True

    def unpause(self) -> None:
        if not self.paused:
            raise StateError("not paused")
        self.paused = False

    def require_not_paused(self, operation: str) -> None:
        if self.paused:
            raise StateError("treasury is paused", details={"operation": operation})

    # --- emergency withdrawal ---

    def get(self, request_id: int) -> EmergencyRequest:
        r = self._requests.get(request_id)
        if r is None:
            raise NotFoundError("emergency request", request_id)
        return r

    def requests(self, status: Optional[ProposalStatus] = None) -> List[EmergencyRequest]:
        return [r for r in self._requests.values() if status is None or r.status is status]

    def request(self, requester: str, recipient: str, amount: int, reason: str, *, now: int) -> EmergencyRequest:
        if not recipient:
            raise ValidationError("recipient must be a non-empty address")
        if not is_positive_amount(amount):
            raise ValidationError("amount must be a positive integer", details={"amount": repr(amount)})
        if not reason:
            raise ValidationError("emergency withdrawals require a reason")

        rid = self._next_id
        plan = self.ledger.plan_pro_rata(amount)
        with self.ledger.atomic():
            for cat, part in plan.items():
                self.ledger.reserve(cat, part, ts=now, ref=f"emergency:{rid}", counterparty=recipient)
        self._next_id += 1
        r = EmergencyRequest(
            id=rid,
            requester=requester,
            recipient=recipient,
            amount=amount,
            reason=reason,
            created_at=now,
            eligible_at=self.policy.eligible_at(created_at=now, tier=Tier.EMERGENCY),
            plan=plan,
        )
        self._requests[rid] = r
        return r

    def execute(self, request_id: int, *, now: int) -> ExecutionReceipt:
        r = self.get(request_id)
        if r.status is not ProposalStatus.PENDING:
            raise StateError(
                "emergency request is not pending", details={"request": r.id, "status": r.status.value}
            )
        if not is_time_ready(now, r.eligible_at):
            raise StateError(
                "timelock not expired", details={"request": r.id, "now": now, "eligible_at": r.eligible_at}
            )

        meta = {"emergency": str(r.id), "reason": r.reason}
        entry: Optional[HistoricalTransaction] = None
        with self.ledger.atomic():
            for cat, part in r.plan.items():
                entry = self.ledger.settle(
                    cat, part, ts=now, counterparty=r.recipient, tx_type=TxType.EMERGENCY, meta=meta
                )
            ref = self.transport.transfer(r.recipient, r.amount, asset=ASSET_NATIVE, memo=f"emergency:{r.id}")

        r.status = ProposalStatus.EXECUTED
        r.executed_at = now
        log.warning("emergency withdrawal executed id=%d recipient=%s amount=%d", r.id, r.recipient, r.amount)
        return ExecutionReceipt("emergency", r.id, r.amount, ref, entry)

    def cancel(self, request_id: int, *, now: int) -> EmergencyRequest:
        r = self.get(request_id)
        if r.status is not ProposalStatus.PENDING:
            raise StateError(
                "emergency request is not pending", details={"request": r.id, "status": r.status.value}
            )
        with self.ledger.atomic():
            for cat, part in r.plan.items():
                self.ledger.release(cat, part, ts=now, ref=f"emergency:{r.id}", counterparty=r.recipient)
        r.status = ProposalStatus.CANCELLED
        r.cancelled_at = now
        return r

    # --- recovery ---

    def recover(self, recipient: str, *, now: int, reason: str = "") -> ExecutionReceipt:
        if not recipient:
            raise ValidationError("recovery recipient must be a non-empty address")
        amount = self.ledger.balance
        if amount <= 0:
            raise StateError("nothing to recover: treasury balance is zero")

        with self.ledger.atomic():
            entry = self.ledger.drain(ts=now, counterparty=recipient, reason=reason)
            ref = self.transport.transfer(recipient, amount, asset=ASSET_NATIVE, memo="recovery")

        voided = self.approvals.void_open(now=now)
        for r in self._requests.values():
            if r.status is ProposalStatus.PENDING:
                r.status = ProposalStatus.CANCELLED
                r.cancelled_at = now
                voided.append(f"emergency:{r.id}")
        log.warning("emergency recovery recipient=%s amount=%d voided=%d", recipient, amount, len(voided))
        return ExecutionReceipt("recovery", 0, amount, ref, entry)


__all__ = ["EmergencyRequest", "EmergencyController"]
