from __future__ import annotations

"""
Treasury - aggregate service
----------------------------

`Treasury` owns every piece of mutable state (ledger, proposals, batches,
award programs, funding targets, emergency state, roles) and is the only
entry point callers should use. It forms a single consistency domain:

  • one `threading.RLock` serializes every mutation (the ledger shares it)
  • each public mutating method runs as one atomic unit:
        capability check → pause gate → snapshot → operation
    and any exception restores the snapshot, so nothing partial survives
  • events are published, fire-and-forget, only after the unit commits

Every mutating method takes the caller id first. Time comes from the injected
clock unless the call passes `now=` explicitly.

Example
-------
    t = Treasury(TreasuryConfig(), admins=["root"])
    t.grant_role("root", Role.DEPOSITOR, "sale")
    t.deposit("sale", "marketing", 100, "round 1")
"""

import copy
import logging
import time
from contextlib import contextmanager
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from . import metrics
from .adapters.base import BalanceReader, ValueTransport, VestingDelegate
from .adapters.memory import InMemoryTransport, InMemoryVesting
from .approvals import ApprovalEngine, BatchDistribution, WithdrawalProposal
from .config import TreasuryConfig, from_dict as config_from_dict
from .distribution import DistributionEngine, ExecutionReceipt
from .domain import ProgramType, ProposalStatus, Provenance, TargetKind, TxType
from .emergency import EmergencyController, EmergencyRequest
from .errors import StateError, TreasuryError, ValidationError
from .events import EventBus, EventType, TreasuryEvent
from .funding import ExternalFundingConfig, ExternalFundingMonitor
from .ledger import AllocationLedger, CategoryAllocation, HistoricalTransaction
from .programs import Airdrop, AwardProgram, AwardProgramManager, ProgramDistribution
from .roles import AccessControl, Operation, Role
from .timelock import TimelockPolicy

log = logging.getLogger(__name__)

STATE_VERSION = 1

Clock = Callable[[], float]


class Treasury:
    def __init__(
        self,
        cfg: Optional[TreasuryConfig] = None,
        *,
        admins: Sequence[str] = (),
        transport: Optional[ValueTransport] = None,
        reader: Optional[BalanceReader] = None,
        vesting: Optional[VestingDelegate] = None,
        bus: Optional[EventBus] = None,
        clock: Clock = time.time,
    ) -> None:
        self.cfg = cfg or TreasuryConfig()
        self.cfg.validate()
        self._lock = RLock()
        self.clock = clock
        self.transport = transport if transport is not None else InMemoryTransport()
        if reader is None:
            if not isinstance(self.transport, BalanceReader):
                raise ValidationError("a BalanceReader is required when the transport cannot read balances")
            reader = self.transport
        self.reader = reader
        self.vesting = vesting if vesting is not None else InMemoryVesting()
        self.bus = bus or EventBus()

        self.roles = AccessControl(admins)
        for a in self.cfg.multisig.approvers:
            self.roles.grant(Role.APPROVER, a)

        self.policy = TimelockPolicy.from_config(self.cfg.timelock)
        self.ledger = AllocationLedger(self.cfg.allocation.bps, lock=self._lock)
        self.approvals = ApprovalEngine(self.ledger, self.policy, threshold=self.cfg.multisig.threshold)
        self.distribution = DistributionEngine(self.ledger, self.approvals, self.transport)
        self.programs = AwardProgramManager(self.ledger, self.transport, self.vesting)
        self.funding = ExternalFundingMonitor(self.ledger, self.distribution, self.reader)
        self.emergency = EmergencyController(self.ledger, self.approvals, self.policy, self.transport)
        metrics.set_paused(False)

    # ------------------------------------------------------------------
    # Atomic unit
    # ------------------------------------------------------------------

    def _now(self, now: Optional[int]) -> int:
        return int(now) if now is not None else int(self.clock())

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "ledger": self.ledger.checkpoint(),
            "roles": self.roles.dump(),
            "approvals": copy.deepcopy(self.approvals.dump()),
            "programs": copy.deepcopy(self.programs.dump()),
            "funding": copy.deepcopy(self.funding.dump()),
            "emergency": copy.deepcopy(self.emergency.dump()),
        }

    def _restore(self, snap: Mapping[str, Any]) -> None:
        self.ledger.rollback(snap["ledger"])
        self.roles = AccessControl.load(snap["roles"])
        self.approvals.load(snap["approvals"])
        self.programs.load(snap["programs"])
        self.funding.load(snap["funding"])
        self.emergency.load(snap["emergency"])

    @contextmanager
    def _tx(self, caller: str, op: Operation, *, gated: bool = True) -> Iterator[List[TreasuryEvent]]:
        """
        Run one operation atomically. The body appends events to the yielded
        list; they are published only after the lock is released on success.
        """
        events: List[TreasuryEvent] = []
        with self._lock:
            try:
                self.roles.require(caller, op)
                if gated:
                    self.emergency.require_not_paused(op.value)
            except TreasuryError as e:
                metrics.record_rejection(e.code)
                raise
            snap = self._snapshot()
            try:
                yield events
            except Exception as e:
                self._restore(snap)
                code = e.code if isinstance(e, TreasuryError) else "INTERNAL"
                metrics.record_rejection(code)
                log.info("operation rejected op=%s caller=%s err=%s", op.value, caller, e)
                raise
        for ev in events:
            self.bus.publish(ev)

    @staticmethod
    def _event(events: List[TreasuryEvent], etype: EventType, actor: str, ts: int, **payload: Any) -> None:
        events.append(TreasuryEvent(etype=etype, ts=ts, actor=actor, payload=payload))

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def grant_role(self, caller: str, role: Role, who: str, *, now: Optional[int] = None) -> bool:
        ts = self._now(now)
        with self._tx(caller, Operation.MANAGE_ROLES, gated=False) as ev:
            changed = self.roles.grant(Role(role), who)
            if changed:
                self._event(ev, EventType.ROLE_GRANTED, caller, ts, role=Role(role).value, who=who)
                log.info("role granted role=%s who=%s by=%s", Role(role).value, who, caller)
        return changed

    def revoke_role(self, caller: str, role: Role, who: str, *, now: Optional[int] = None) -> bool:
        ts = self._now(now)
        with self._tx(caller, Operation.MANAGE_ROLES, gated=False) as ev:
            changed = self.roles.revoke(Role(role), who)
            if changed:
                self._event(ev, EventType.ROLE_REVOKED, caller, ts, role=Role(role).value, who=who)
                log.info("role revoked role=%s who=%s by=%s", Role(role).value, who, caller)
        return changed

    # ------------------------------------------------------------------
    # Allocation ledger
    # ------------------------------------------------------------------

    def update_allocation_config(
        self, caller: str, bps: Mapping[str, int], *, now: Optional[int] = None
    ) -> Dict[str, int]:
        ts = self._now(now)
        with self._tx(caller, Operation.UPDATE_ALLOCATION) as ev:
            in_use = {c.category for c in self.funding.targets()}
            self.ledger.update_split(bps, ts=ts, actor=caller, referenced=in_use)
            split = self.ledger.split()
            self.cfg.allocation.bps = dict(split)
            self._event(ev, EventType.ALLOCATION_CONFIG_UPDATED, caller, ts, bps=split)
            log.info("allocation config updated split=%s", split)
        return split

    def deposit(
        self, caller: str, category: str, amount: int, description: str = "", *, now: Optional[int] = None
    ) -> HistoricalTransaction:
        ts = self._now(now)
        with self._tx(caller, Operation.DEPOSIT) as ev:
            entry = self.ledger.deposit(category, amount, description, ts=ts, counterparty=caller)
            self._event(
                ev, EventType.DEPOSITED, caller, ts,
                category=category, amount=amount, balance=entry.balance_after, description=description,
            )
            metrics.record_deposit(category, entry.balance_after)
            log.info("deposit category=%s amount=%d balance=%d", category, amount, entry.balance_after)
        return entry

    def reserve(
        self, caller: str, category: str, amount: int, *, ref: str = "", now: Optional[int] = None
    ) -> CategoryAllocation:
        ts = self._now(now)
        with self._tx(caller, Operation.RESERVE) as ev:
            self.ledger.reserve(category, amount, ts=ts, ref=ref or f"manual:{caller}")
            self._event(ev, EventType.RESERVED, caller, ts, category=category, amount=amount, ref=ref)
            log.info("reserved category=%s amount=%d", category, amount)
        return self.ledger.get_allocation(category)

    def release(
        self, caller: str, category: str, amount: int, *, ref: str = "", now: Optional[int] = None
    ) -> CategoryAllocation:
        ts = self._now(now)
        with self._tx(caller, Operation.RESERVE) as ev:
            self.ledger.release(category, amount, ts=ts, ref=ref or f"manual:{caller}")
            self._event(ev, EventType.RELEASED, caller, ts, category=category, amount=amount, ref=ref)
            log.info("released category=%s amount=%d", category, amount)
        return self.ledger.get_allocation(category)

    def rebalance(
        self, caller: str, from_category: str, to_category: str, amount: int, *, now: Optional[int] = None
    ) -> Tuple[CategoryAllocation, CategoryAllocation]:
        ts = self._now(now)
        with self._tx(caller, Operation.REBALANCE) as ev:
            self.ledger.rebalance(from_category, to_category, amount, ts=ts, actor=caller)
            self._event(ev, EventType.REBALANCED, caller, ts, source=from_category, to=to_category, amount=amount)
            log.info("rebalanced from=%s to=%s amount=%d", from_category, to_category, amount)
        return self.ledger.get_allocation(from_category), self.ledger.get_allocation(to_category)

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    def _created(self, ev: List[TreasuryEvent], caller: str, ts: int, p: WithdrawalProposal) -> None:
        self._event(ev, EventType.PROPOSAL_CREATED, caller, ts, proposal=p.to_dict())
        metrics.record_proposal(p.provenance.value)
        log.info(
            "proposal created id=%d provenance=%s amount=%d category=%s large=%s eligible_at=%d",
            p.id, p.provenance.value, p.amount, p.category, p.is_large_withdrawal, p.execution_eligible_at,
        )

    def propose(
        self,
        caller: str,
        recipient: str,
        amount: int,
        category: str,
        description: str = "",
        *,
        now: Optional[int] = None,
    ) -> WithdrawalProposal:
        ts = self._now(now)
        with self._tx(caller, Operation.PROPOSE) as ev:
            p = self.approvals.propose(caller, recipient, amount, category, description, now=ts)
            self._created(ev, caller, ts, p)
        return p

    def create_governance_proposal(
        self,
        caller: str,
        title: str,
        description: str,
        amount: int,
        category: str,
        recipient: str,
        voting_period: int = 0,
        *,
        now: Optional[int] = None,
    ) -> WithdrawalProposal:
        """Same as `propose` but tagged with governance provenance (DAO layer)."""
        ts = self._now(now)
        with self._tx(caller, Operation.GOVERNANCE_PROPOSE) as ev:
            if not title or not title.strip():
                raise ValidationError("governance proposals need a title")
            p = self.approvals.propose(
                caller, recipient, amount, category, description,
                now=ts, provenance=Provenance.GOVERNANCE, title=title.strip(), voting_period=voting_period,
            )
            self._created(ev, caller, ts, p)
        return p

    def _check_quorum_possible(self) -> None:
        approvers = len(self.roles.holders(Operation.APPROVE))
        if self.approvals.threshold > approvers:
            raise StateError(
                "multisig threshold exceeds approver count",
                details={"threshold": self.approvals.threshold, "approvers": approvers},
            )

    def approve(self, caller: str, proposal_id: int, *, now: Optional[int] = None) -> WithdrawalProposal:
        ts = self._now(now)
        with self._tx(caller, Operation.APPROVE) as ev:
            self._check_quorum_possible()
            reached = self.approvals.approve(proposal_id, caller)
            p = self.approvals.get(proposal_id)
            self._event(
                ev, EventType.PROPOSAL_APPROVED, caller, ts,
                proposal=p.id, approvals=p.approval_count, status=p.status.value,
            )
            metrics.record_approval()
            log.info("proposal approved id=%d by=%s count=%d reached=%s", p.id, caller, p.approval_count, reached)
        return p

    def cancel(self, caller: str, proposal_id: int, *, now: Optional[int] = None) -> WithdrawalProposal:
        ts = self._now(now)
        with self._tx(caller, Operation.CANCEL) as ev:
            p = self.approvals.cancel(proposal_id, now=ts)
            self._event(ev, EventType.PROPOSAL_CANCELLED, caller, ts, proposal=p.id, amount=p.amount)
            metrics.record_cancel()
            log.info("proposal cancelled id=%d by=%s", p.id, caller)
        return p

    def execute(self, caller: str, proposal_id: int, *, now: Optional[int] = None) -> ExecutionReceipt:
        ts = self._now(now)
        with self._tx(caller, Operation.EXECUTE) as ev:
            r = self.distribution.execute(proposal_id, now=ts, executor=caller)
            self._event(
                ev, EventType.PROPOSAL_EXECUTED, caller, ts,
                proposal=proposal_id, amount=r.amount, transfer=r.transfer_ref, balance=self.ledger.balance,
            )
            metrics.record_execution("proposal", r.amount, self.ledger.balance)
        return r

    def is_ready(self, proposal_id: int, *, now: Optional[int] = None) -> bool:
        with self._lock:
            return self.approvals.is_ready(proposal_id, self._now(now))

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def create_batch(
        self,
        caller: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        category: str,
        description: str = "",
        *,
        now: Optional[int] = None,
    ) -> BatchDistribution:
        ts = self._now(now)
        with self._tx(caller, Operation.PROPOSE) as ev:
            b = self.approvals.create_batch(caller, recipients, amounts, category, description, now=ts)
            self._event(ev, EventType.BATCH_CREATED, caller, ts, batch=b.to_dict())
            log.info("batch created id=%d recipients=%d total=%d", b.id, len(b.recipients), b.total_amount)
        return b

    def approve_batch(self, caller: str, batch_id: int, *, now: Optional[int] = None) -> BatchDistribution:
        ts = self._now(now)
        with self._tx(caller, Operation.APPROVE) as ev:
            self._check_quorum_possible()
            self.approvals.approve_batch(batch_id, caller)
            b = self.approvals.get_batch(batch_id)
            self._event(
                ev, EventType.BATCH_APPROVED, caller, ts,
                batch=b.id, approvals=b.approval_count, status=b.status.value,
            )
            metrics.record_approval()
            log.info("batch approved id=%d by=%s count=%d", b.id, caller, b.approval_count)
        return b

    def cancel_batch(self, caller: str, batch_id: int, *, now: Optional[int] = None) -> BatchDistribution:
        ts = self._now(now)
        with self._tx(caller, Operation.CANCEL) as ev:
            b = self.approvals.cancel_batch(batch_id, now=ts)
            self._event(ev, EventType.BATCH_CANCELLED, caller, ts, batch=b.id, total=b.total_amount)
            metrics.record_cancel()
            log.info("batch cancelled id=%d by=%s", b.id, caller)
        return b

    def execute_batch(self, caller: str, batch_id: int, *, now: Optional[int] = None) -> ExecutionReceipt:
        ts = self._now(now)
        with self._tx(caller, Operation.EXECUTE) as ev:
            r = self.distribution.execute_batch(batch_id, now=ts, executor=caller)
            self._event(
                ev, EventType.BATCH_EXECUTED, caller, ts,
                batch=batch_id, total=r.amount, transfer=r.transfer_ref, balance=self.ledger.balance,
            )
            metrics.record_execution("batch", r.amount, self.ledger.balance)
        return r

    # ------------------------------------------------------------------
    # Award programs
    # ------------------------------------------------------------------

    def _configured(self, ev: List[TreasuryEvent], caller: str, ts: int, p: AwardProgram) -> None:
        self._event(ev, EventType.PROGRAM_CONFIGURED, caller, ts, program=p.to_dict())
        log.info("program configured type=%s cap=%d vesting=%d", p.program_type.value, p.total_allocation, p.vesting_duration)

    def _distributed(self, ev: List[TreasuryEvent], caller: str, ts: int, d: ProgramDistribution) -> None:
        etype = EventType.VESTING_SCHEDULED if d.schedule_ids else EventType.PROGRAM_DISTRIBUTED
        self._event(
            ev, etype, caller, ts,
            program=d.program_type.value, total=d.total, recipients=d.recipients,
            transfer=d.transfer_ref, schedules=list(d.schedule_ids),
        )
        metrics.record_program_distribution(d.program_type.value, d.recipients)

    def configure_program(
        self,
        caller: str,
        program_type: ProgramType,
        total_allocation: int,
        vesting_duration: int = 0,
        cliff_duration: int = 0,
        *,
        now: Optional[int] = None,
    ) -> AwardProgram:
        ts = self._now(now)
        with self._tx(caller, Operation.CONFIGURE_PROGRAM) as ev:
            p = self.programs.configure(program_type, total_allocation, vesting_duration, cliff_duration, now=ts)
            self._configured(ev, caller, ts, p)
        return p

    def deactivate_program(self, caller: str, program_type: ProgramType, *, now: Optional[int] = None) -> AwardProgram:
        ts = self._now(now)
        with self._tx(caller, Operation.CONFIGURE_PROGRAM) as ev:
            p = self.programs.deactivate(program_type)
            self._configured(ev, caller, ts, p)
        return p

    def distribute_program(
        self,
        caller: str,
        program_type: ProgramType,
        recipients: Sequence[str],
        amounts: Sequence[int],
        *,
        now: Optional[int] = None,
    ) -> ProgramDistribution:
        ts = self._now(now)
        with self._tx(caller, Operation.DISTRIBUTE_PROGRAM) as ev:
            d = self.programs.distribute(program_type, recipients, amounts, now=ts)
            self._distributed(ev, caller, ts, d)
        return d

    def execute_airdrop(
        self,
        caller: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        merkle_root: str,
        *,
        now: Optional[int] = None,
    ) -> Airdrop:
        ts = self._now(now)
        with self._tx(caller, Operation.DISTRIBUTE_PROGRAM) as ev:
            a = self.programs.execute_airdrop(recipients, amounts, merkle_root, now=ts)
            self._event(
                ev, EventType.PROGRAM_DISTRIBUTED, caller, ts,
                program=ProgramType.AIRDROP.value, airdrop=a.airdrop_id, total=a.total,
                recipients=a.recipients, merkle_root=a.merkle_root,
            )
            metrics.record_program_distribution(ProgramType.AIRDROP.value, a.recipients)
        return a

    def configure_staking_rewards(
        self, caller: str, total: int, period: int, *, now: Optional[int] = None
    ) -> AwardProgram:
        ts = self._now(now)
        with self._tx(caller, Operation.CONFIGURE_PROGRAM) as ev:
            p = self.programs.configure_staking(total, period, now=ts)
            self._configured(ev, caller, ts, p)
        return p

    def distribute_staking_rewards(
        self, caller: str, staking_contract: str, amount: int, *, now: Optional[int] = None
    ) -> ProgramDistribution:
        ts = self._now(now)
        with self._tx(caller, Operation.DISTRIBUTE_PROGRAM) as ev:
            d = self.programs.distribute_staking(staking_contract, amount, now=ts)
            self._distributed(ev, caller, ts, d)
        return d

    def configure_engagement_incentives(
        self, caller: str, total: int, period: int, base_rate: int, *, now: Optional[int] = None
    ) -> AwardProgram:
        ts = self._now(now)
        with self._tx(caller, Operation.CONFIGURE_PROGRAM) as ev:
            p = self.programs.configure_engagement(total, period, base_rate, now=ts)
            self._configured(ev, caller, ts, p)
        return p

    def distribute_engagement_incentives(
        self, caller: str, users: Sequence[str], points: Sequence[int], *, now: Optional[int] = None
    ) -> ProgramDistribution:
        ts = self._now(now)
        with self._tx(caller, Operation.DISTRIBUTE_PROGRAM) as ev:
            d = self.programs.distribute_engagement(users, points, now=ts)
            self._distributed(ev, caller, ts, d)
        return d

    # ------------------------------------------------------------------
    # External funding
    # ------------------------------------------------------------------

    def configure_external_target(
        self,
        caller: str,
        target: str,
        kind: TargetKind,
        amount: int,
        frequency: int,
        minimum_balance: int,
        category: Optional[str] = None,
        *,
        now: Optional[int] = None,
    ) -> ExternalFundingConfig:
        ts = self._now(now)
        with self._tx(caller, Operation.CONFIGURE_FUNDING) as ev:
            c = self.funding.configure(target, kind, amount, frequency, minimum_balance, category)
            self._event(ev, EventType.EXTERNAL_FUNDING_CONFIGURED, caller, ts, config=c.to_dict())
            log.info("funding target configured target=%s kind=%s category=%s", c.target, c.kind.value, c.category)
        return c

    def set_auto_funding(
        self, caller: str, target: str, enabled: bool, *, now: Optional[int] = None
    ) -> ExternalFundingConfig:
        ts = self._now(now)
        with self._tx(caller, Operation.CONFIGURE_FUNDING) as ev:
            c = self.funding.set_auto_funding(target, enabled)
            self._event(ev, EventType.EXTERNAL_FUNDING_CONFIGURED, caller, ts, config=c.to_dict())
        return c

    def _funded(self, ev: List[TreasuryEvent], caller: str, ts: int, c: ExternalFundingConfig, amount: int) -> None:
        self._event(
            ev, EventType.EXTERNAL_FUNDED, caller, ts,
            target=c.target, kind=c.kind.value, category=c.category, amount=amount,
        )
        metrics.record_external_funding(c.kind.value)

    def check_and_fund(
        self, caller: str, target: str, *, now: Optional[int] = None
    ) -> Optional[ExecutionReceipt]:
        ts = self._now(now)
        with self._tx(caller, Operation.FUND_EXTERNAL) as ev:
            r = self.funding.check_and_fund(target, now=ts)
            if r is not None:
                self._funded(ev, caller, ts, self.funding.get(target), r.amount)
        return r

    def trigger_all(self, caller: str, *, now: Optional[int] = None) -> List[str]:
        ts = self._now(now)
        with self._tx(caller, Operation.FUND_EXTERNAL) as ev:
            funded = self.funding.trigger_all(now=ts)
            for target in funded:
                c = self.funding.get(target)
                self._funded(ev, caller, ts, c, c.funding_amount)
        return funded

    def fund_external(
        self, caller: str, target: str, amount: int, *, now: Optional[int] = None
    ) -> ExecutionReceipt:
        ts = self._now(now)
        with self._tx(caller, Operation.FUND_EXTERNAL) as ev:
            r = self.funding.fund(target, amount, now=ts)
            self._funded(ev, caller, ts, self.funding.get(target), amount)
        return r

    def monitor_external_balance(self, target: str) -> Tuple[int, bool]:
        with self._lock:
            return self.funding.monitor(target)

    # ------------------------------------------------------------------
    # Emergency
    # ------------------------------------------------------------------

    @property
    def paused(self) -> bool:
        return self.emergency.paused

    def pause(self, caller: str, *, now: Optional[int] = None) -> None:
        ts = self._now(now)
        with self._tx(caller, Operation.PAUSE, gated=False) as ev:
            self.emergency.pause()
            self._event(ev, EventType.PAUSED, caller, ts)
            metrics.set_paused(True)
            metrics.record_emergency("pause")
            log.warning("treasury paused by=%s", caller)

    def unpause(self, caller: str, *, now: Optional[int] = None) -> None:
        ts = self._now(now)
        with self._tx(caller, Operation.PAUSE, gated=False) as ev:
            self.emergency.unpause()
            self._event(ev, EventType.UNPAUSED, caller, ts)
            metrics.set_paused(False)
            metrics.record_emergency("unpause")
            log.warning("treasury unpaused by=%s", caller)

    def emergency_withdraw(
        self, caller: str, recipient: str, amount: int, reason: str, *, now: Optional[int] = None
    ) -> EmergencyRequest:
        """
        Request a single-authority withdrawal. With a zero emergency delay it
        settles in the same atomic unit; otherwise call `execute_emergency`
        once the delay has elapsed.
        """
        ts = self._now(now)
        with self._tx(caller, Operation.EMERGENCY_WITHDRAW, gated=False) as ev:
            req = self.emergency.request(caller, recipient, amount, reason, now=ts)
            self._event(ev, EventType.EMERGENCY_REQUESTED, caller, ts, request=req.to_dict())
            metrics.record_emergency("withdraw_request")
            log.warning(
                "emergency withdrawal requested id=%d recipient=%s amount=%d eligible_at=%d",
                req.id, recipient, amount, req.eligible_at,
            )
            if ts >= req.eligible_at:
                self._emergency_executed(ev, caller, ts, self.emergency.execute(req.id, now=ts))
        return req

    def _emergency_executed(self, ev: List[TreasuryEvent], caller: str, ts: int, r: ExecutionReceipt) -> None:
        self._event(
            ev, EventType.EMERGENCY_EXECUTED, caller, ts,
            request=r.ref_id, amount=r.amount, transfer=r.transfer_ref, balance=self.ledger.balance,
        )
        metrics.record_execution("emergency", r.amount, self.ledger.balance)
        metrics.record_emergency("withdraw")

    def execute_emergency(self, caller: str, request_id: int, *, now: Optional[int] = None) -> ExecutionReceipt:
        ts = self._now(now)
        with self._tx(caller, Operation.EMERGENCY_WITHDRAW, gated=False) as ev:
            r = self.emergency.execute(request_id, now=ts)
            self._emergency_executed(ev, caller, ts, r)
        return r

    def cancel_emergency(self, caller: str, request_id: int, *, now: Optional[int] = None) -> EmergencyRequest:
        ts = self._now(now)
        with self._tx(caller, Operation.EMERGENCY_WITHDRAW, gated=False) as ev:
            req = self.emergency.cancel(request_id, now=ts)
            self._event(ev, EventType.EMERGENCY_CANCELLED, caller, ts, request=req.id)
            metrics.record_emergency("withdraw_cancel")
        return req

    def emergency_recovery(
        self, caller: str, recipient: str, reason: str = "", *, now: Optional[int] = None
    ) -> ExecutionReceipt:
        ts = self._now(now)
        with self._tx(caller, Operation.EMERGENCY_RECOVERY, gated=False) as ev:
            r = self.emergency.recover(recipient, now=ts, reason=reason)
            self._event(
                ev, EventType.EMERGENCY_RECOVERY, caller, ts,
                recipient=recipient, amount=r.amount, transfer=r.transfer_ref, reason=reason,
            )
            metrics.record_execution("recovery", r.amount, 0)
            metrics.record_emergency("recovery")
        return r

    # ------------------------------------------------------------------
    # Read-only query surface (ungated)
    # ------------------------------------------------------------------

    def get_balance(self) -> int:
        return self.ledger.balance

    def get_allocation(self, category: str) -> CategoryAllocation:
        return self.ledger.get_allocation(category)

    def get_allocations(self) -> List[CategoryAllocation]:
        with self._lock:
            return [self.ledger.get_allocation(c) for c in self.ledger.categories()]

    def get_proposal(self, proposal_id: int) -> WithdrawalProposal:
        with self._lock:
            return copy.deepcopy(self.approvals.get(proposal_id))

    def get_batch(self, batch_id: int) -> BatchDistribution:
        with self._lock:
            return copy.deepcopy(self.approvals.get_batch(batch_id))

    def list_proposals(self, status: Optional[ProposalStatus] = None) -> List[WithdrawalProposal]:
        with self._lock:
            return copy.deepcopy(self.approvals.proposals(status))

    def get_historical_transactions(
        self,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        *,
        tx_type: Optional[TxType] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> List[HistoricalTransaction]:
        with self._lock:
            return self.ledger.history.query(from_ts, to_ts, tx_type=tx_type, offset=offset, limit=limit)

    def get_program_status(self, program_type: ProgramType) -> Dict[str, Any]:
        with self._lock:
            return self.programs.status(program_type)

    def get_external_funding_config(self, target: str) -> ExternalFundingConfig:
        with self._lock:
            return copy.deepcopy(self.funding.get(target))

    def get_emergency_request(self, request_id: int) -> EmergencyRequest:
        with self._lock:
            return copy.deepcopy(self.emergency.get(request_id))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def dump(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "version": STATE_VERSION,
                "config": self.cfg.to_dict(),
                "roles": self.roles.dump(),
                "ledger": self.ledger.dump(),
                "approvals": self.approvals.dump(),
                "programs": self.programs.dump(),
                "funding": self.funding.dump(),
                "emergency": self.emergency.dump(),
            }

    @classmethod
    def load(
        cls,
        data: Mapping[str, Any],
        *,
        transport: Optional[ValueTransport] = None,
        reader: Optional[BalanceReader] = None,
        vesting: Optional[VestingDelegate] = None,
        bus: Optional[EventBus] = None,
        clock: Clock = time.time,
    ) -> "Treasury":
        if int(data.get("version", STATE_VERSION)) != STATE_VERSION:
            raise ValueError(f"unsupported treasury state version: {data.get('version')!r}")
        t = cls(
            config_from_dict(data.get("config") or {}),
            transport=transport, reader=reader, vesting=vesting, bus=bus, clock=clock,
        )
        t.roles = AccessControl.load(data.get("roles") or {})
        t.ledger.restore(data["ledger"])
        t.approvals.load(data.get("approvals") or {})
        t.programs.load(data.get("programs") or {})
        t.funding.load(data.get("funding") or [])
        t.emergency.load(data.get("emergency") or {})
        metrics.set_paused(t.paused)
        return t


__all__ = ["Treasury", "STATE_VERSION"]
