from __future__ import annotations

"""
Treasury notification events.

Every committed state transition (deposit, propose, approve, execute, cancel,
rebalance, program distribution, funding trigger, emergency action, role
change) is published on an in-process `EventBus` so external monitoring and
reporting collaborators can observe it. Delivery is fire-and-forget: a failing
subscriber is logged and skipped, and never affects the transaction outcome.

Events are frozen dataclasses with JSON-serializable fields and small helpers
to (de)serialize. Timestamps are UNIX seconds taken from the treasury clock.
"""


from dataclasses import dataclass, field
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping
import logging

log = logging.getLogger(__name__)


class EventType(str, Enum):
    DEPOSITED = "Deposited"
    ALLOCATION_CONFIG_UPDATED = "AllocationConfigUpdated"
    RESERVED = "Reserved"
    RELEASED = "Released"
    REBALANCED = "Rebalanced"
    PROPOSAL_CREATED = "ProposalCreated"
    PROPOSAL_APPROVED = "ProposalApproved"
    PROPOSAL_EXECUTED = "ProposalExecuted"
    PROPOSAL_CANCELLED = "ProposalCancelled"
    BATCH_CREATED = "BatchCreated"
    BATCH_APPROVED = "BatchApproved"
    BATCH_EXECUTED = "BatchExecuted"
    BATCH_CANCELLED = "BatchCancelled"
    PROGRAM_CONFIGURED = "ProgramConfigured"
    PROGRAM_DISTRIBUTED = "ProgramDistributed"
    VESTING_SCHEDULED = "VestingScheduled"
    EXTERNAL_FUNDING_CONFIGURED = "ExternalFundingConfigured"
    EXTERNAL_FUNDED = "ExternalFunded"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"
    EMERGENCY_REQUESTED = "EmergencyRequested"
    EMERGENCY_EXECUTED = "EmergencyExecuted"
    EMERGENCY_CANCELLED = "EmergencyCancelled"
    EMERGENCY_RECOVERY = "EmergencyRecovery"
    ROLE_GRANTED = "RoleGranted"
    ROLE_REVOKED = "RoleRevoked"


@dataclass(frozen=True)
class TreasuryEvent:
    etype: EventType
    ts: int
    actor: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "etype": self.etype.value,
            "ts": self.ts,
            "actor": self.actor,
            "payload": dict(self.payload),
        }

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "TreasuryEvent":
        return TreasuryEvent(
            etype=EventType(d["etype"]),
            ts=int(d["ts"]),
            actor=str(d.get("actor", "")),
            payload=dict(d.get("payload") or {}),
        )


Subscriber = Callable[[TreasuryEvent], None]


class EventBus:
    """
    Minimal synchronous pub/sub. Subscribers are called in registration order
    after the publishing operation has committed.
    """

    def __init__(self) -> None:
        self._subs: List[Subscriber] = []
        self._lock = RLock()

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Register `fn`; returns a callable that unsubscribes it."""
        with self._lock:
            self._subs.append(fn)

        def _unsubscribe() -> None:
            with self._lock:
                if fn in self._subs:
                    self._subs.remove(fn)

        return _unsubscribe

    def publish(self, event: TreasuryEvent) -> None:
        with self._lock:
            subs = list(self._subs)
        for fn in subs:
            try:
                fn(event)
            except Exception:
                log.exception("event subscriber failed etype=%s", event.etype.value)


class EventRecorder:
    """Subscriber that keeps every event in memory (handy for audits and tests)."""

    def __init__(self) -> None:
        self.events: List[TreasuryEvent] = []

    def __call__(self, event: TreasuryEvent) -> None:
        self.events.append(event)

    def of_type(self, etype: EventType) -> List[TreasuryEvent]:
        return [e for e in self.events if e.etype is etype]


__all__ = [
    "EventType",
    "TreasuryEvent",
    "Subscriber",
    "EventBus",
    "EventRecorder",
]
