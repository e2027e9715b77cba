from __future__ import annotations

"""
Treasury - Award programs
-------------------------

Bounded token pools for discrete programs (community rewards, airdrop,
staking rewards, engagement incentives). Each program has its own cap,
optional vesting parameters and an active flag. Program tokens are a separate
asset from the treasury's native balance, so pools are tracked here rather
than in the category ledger; every movement is still written into the shared
historical log via `AllocationLedger.note()`.

Invariant: 0 <= distributed_amount <= total_allocation for every program.

Vesting: when a program has a non-zero vesting duration, distribution hands
each (beneficiary, amount) to the `VestingDelegate` and stores the returned
schedule id instead of transferring immediately. Vesting math is never
interpreted here.

Engagement incentives pay `points * base_rate` per user; users above
ENGAGEMENT_BONUS_THRESHOLD points get ENGAGEMENT_BONUS_BPS (1.5x).
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .adapters.base import ValueTransport, VestingDelegate
from .domain import ASSET_TOKEN, BPS_DENOM, ProgramType, TxType, is_positive_amount
from .errors import InsufficientFundsError, NotFoundError, StateError, ValidationError
from .ledger import AllocationLedger

log = logging.getLogger(__name__)

ENGAGEMENT_BONUS_THRESHOLD = 100  # points
ENGAGEMENT_BONUS_BPS = 15_000  # 1.5x

# Share of a combined program budget per program (airdrop / staking / engagement).
DISTRIBUTION_SHARES_BPS: Dict[ProgramType, int] = {
    ProgramType.AIRDROP: 1_000,
    ProgramType.STAKING_REWARDS: 5_000,
    ProgramType.ENGAGEMENT_INCENTIVE: 4_000,
}


@dataclass
class AwardProgram:
    program_type: ProgramType
    total_allocation: int
    distributed_amount: int = 0
    vesting_duration: int = 0
    cliff_duration: int = 0
    is_active: bool = True
    configured_at: int = 0
    last_distribution: Optional[int] = None
    period: int = 0
    rewards_per_second: int = 0
    base_rate: int = 0
    schedule_ids: List[str] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return self.total_allocation - self.distributed_amount

    @property
    def vested(self) -> bool:
        return self.vesting_duration > 0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["program_type"] = self.program_type.value
        d["remaining"] = self.remaining
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "AwardProgram":
        return AwardProgram(
            program_type=ProgramType(d["program_type"]),
            total_allocation=int(d["total_allocation"]),
            distributed_amount=int(d.get("distributed_amount", 0)),
            vesting_duration=int(d.get("vesting_duration", 0)),
            cliff_duration=int(d.get("cliff_duration", 0)),
            is_active=bool(d.get("is_active", True)),
            configured_at=int(d.get("configured_at", 0)),
            last_distribution=d.get("last_distribution"),
            period=int(d.get("period", 0)),
            rewards_per_second=int(d.get("rewards_per_second", 0)),
            base_rate=int(d.get("base_rate", 0)),
            schedule_ids=[str(s) for s in d.get("schedule_ids", [])],
        )


@dataclass(frozen=True)
class Airdrop:
    airdrop_id: int
    merkle_root: str
    total: int
    recipients: int
    ts: int


@dataclass(frozen=True)
class ProgramDistribution:
    program_type: ProgramType
    total: int
    recipients: int
    transfer_ref: Optional[str]
    schedule_ids: Tuple[str, ...]


def engagement_amount(points: int, base_rate: int) -> int:
    amount = points * base_rate
    if points > ENGAGEMENT_BONUS_THRESHOLD:
        amount = amount * ENGAGEMENT_BONUS_BPS // BPS_DENOM
    return amount


def token_distribution_breakdown(total: int) -> Dict[str, int]:
    """Split a combined program budget by DISTRIBUTION_SHARES_BPS."""
    return {p.value: total * bps // BPS_DENOM for p, bps in DISTRIBUTION_SHARES_BPS.items()}


def _check_pairs(recipients: Sequence[str], amounts: Sequence[int]) -> int:
    if len(recipients) != len(amounts):
        raise ValidationError(
            "recipients and amounts length mismatch",
            details={"recipients": len(recipients), "amounts": len(amounts)},
        )
    if not recipients:
        raise ValidationError("distribution must name at least one recipient")
    for r, a in zip(recipients, amounts):
        if not r:
            raise ValidationError("recipient must be a non-empty address")
        if not is_positive_amount(a):
            raise ValidationError("amounts must be positive integers", details={"recipient": r})
    return sum(amounts)


class AwardProgramManager:
    def __init__(self, ledger: AllocationLedger, transport: ValueTransport, vesting: Optional[VestingDelegate]) -> None:
        self.ledger = ledger
        self.transport = transport
        self.vesting = vesting
        self._programs: Dict[ProgramType, AwardProgram] = {}
        self._airdrops: Dict[int, Airdrop] = {}
        self._next_airdrop = 1

    # --- persistence ---

    def dump(self) -> Dict[str, Any]:
        return {
            "programs": [p.to_dict() for p in self._programs.values()],
            "airdrops": [asdict(a) for a in self._airdrops.values()],
            "next_airdrop_id": self._next_airdrop,
        }

    def load(self, data: Mapping[str, Any]) -> None:
        self._programs = {}
        for d in data.get("programs", []):
            p = AwardProgram.from_dict(d)
            self._programs[p.program_type] = p
        self._airdrops = {int(d["airdrop_id"]): Airdrop(**d) for d in data.get("airdrops", [])}
        self._next_airdrop = int(data.get("next_airdrop_id", 1))

    # --- queries ---

    def get(self, program_type: ProgramType) -> AwardProgram:
        p = self._programs.get(ProgramType(program_type))
        if p is None:
            raise NotFoundError("program", ProgramType(program_type).value)
        return p

    def status(self, program_type: ProgramType) -> Dict[str, Any]:
        return self.get(program_type).to_dict()

    def programs(self) -> List[AwardProgram]:
        return list(self._programs.values())

    def active_programs(self) -> List[AwardProgram]:
        return [p for p in self._programs.values() if p.is_active]

    def get_airdrop(self, airdrop_id: int) -> Airdrop:
        a = self._airdrops.get(airdrop_id)
        if a is None:
            raise NotFoundError("airdrop", airdrop_id)
        return a

    def total_distributed(self) -> int:
        return sum(p.distributed_amount for p in self._programs.values())

    # --- configuration ---

    def configure(
        self,
        program_type: ProgramType,
        total_allocation: int,
        vesting_duration: int = 0,
        cliff_duration: int = 0,
        *,
        now: int,
    ) -> AwardProgram:
        """Create or reconfigure a program and (re)activate it."""
        ptype = ProgramType(program_type)
        if not is_positive_amount(total_allocation):
            raise ValidationError("total_allocation must be a positive integer")
        if vesting_duration < 0 or cliff_duration < 0:
            raise ValidationError("vesting and cliff durations must be >= 0")
        if cliff_duration > vesting_duration:
            raise ValidationError("cliff cannot exceed vesting duration")
        if vesting_duration > 0 and self.vesting is None:
            raise ValidationError("vesting requested but no vesting delegate is configured")

        p = self._programs.get(ptype)
        if p is None:
            p = AwardProgram(program_type=ptype, total_allocation=total_allocation)
            self._programs[ptype] = p
        elif total_allocation < p.distributed_amount:
            raise ValidationError(
                "cap below amount already distributed",
                details={"distributed": p.distributed_amount, "total_allocation": total_allocation},
            )
        p.total_allocation = total_allocation
        p.vesting_duration = vesting_duration
        p.cliff_duration = cliff_duration
        p.is_active = True
        p.configured_at = now
        return p

    def configure_staking(self, total: int, period: int, *, now: int) -> AwardProgram:
        if not is_positive_amount(period):
            raise ValidationError("staking period must be a positive number of seconds")
        p = self.configure(ProgramType.STAKING_REWARDS, total, now=now)
        p.period = period
        p.rewards_per_second = total // period
        return p

    def configure_engagement(self, total: int, period: int, base_rate: int, *, now: int) -> AwardProgram:
        if not is_positive_amount(period) or not is_positive_amount(base_rate):
            raise ValidationError("engagement period and base_rate must be positive integers")
        p = self.configure(ProgramType.ENGAGEMENT_INCENTIVE, total, now=now)
        p.period = period
        p.base_rate = base_rate
        return p

    def deactivate(self, program_type: ProgramType) -> AwardProgram:
        p = self.get(program_type)
        if not p.is_active:
            raise StateError("program already inactive", details={"program": p.program_type.value})
        p.is_active = False
        return p

    # --- distribution ---

    def distribute(
        self,
        program_type: ProgramType,
        recipients: Sequence[str],
        amounts: Sequence[int],
        *,
        now: int,
        memo: str = "",
    ) -> ProgramDistribution:
        p = self.get(program_type)
        if not p.is_active:
            raise StateError("program not active", details={"program": p.program_type.value})
        total = _check_pairs(recipients, amounts)
        if total > p.remaining:
            raise InsufficientFundsError("exceeds allocation", requested=total, available=p.remaining)

        tag = memo or p.program_type.value
        schedule_ids: Tuple[str, ...] = ()
        ref: Optional[str] = None
        if p.vested:
            ids = []
            for r, a in zip(recipients, amounts):
                ids.append(self.vesting.create_schedule(r, a, now, p.cliff_duration, p.vesting_duration, tag))
            schedule_ids = tuple(ids)
            p.schedule_ids.extend(ids)
        else:
            ref = self.transport.transfer_batch(list(zip(recipients, amounts)), asset=ASSET_TOKEN, memo=tag)

        p.distributed_amount += total
        p.last_distribution = now
        meta = {"program": p.program_type.value, "recipients": str(len(recipients))}
        if ref:
            meta["transfer"] = ref
        if schedule_ids:
            meta["schedules"] = ",".join(schedule_ids)
        self.ledger.note(
            TxType.VESTING_SCHEDULED if p.vested else TxType.PROGRAM_DISTRIBUTION,
            ts=now,
            counterparty=recipients[0] if len(recipients) == 1 else "batch",
            amount=total,
            label=f"program:{p.program_type.value}",
            balance_after=p.remaining,
            meta=meta,
        )
        log.info(
            "program distribution program=%s recipients=%d total=%d vested=%s",
            p.program_type.value, len(recipients), total, p.vested,
        )
        return ProgramDistribution(p.program_type, total, len(recipients), ref, schedule_ids)

    def execute_airdrop(
        self, recipients: Sequence[str], amounts: Sequence[int], merkle_root: str, *, now: int
    ) -> Airdrop:
        if not merkle_root:
            raise ValidationError("merkle_root must be non-empty")
        aid = self._next_airdrop
        d = self.distribute(ProgramType.AIRDROP, recipients, amounts, now=now, memo=f"airdrop:{aid}")
        self._next_airdrop += 1
        a = Airdrop(airdrop_id=aid, merkle_root=merkle_root, total=d.total, recipients=d.recipients, ts=now)
        self._airdrops[aid] = a
        return a

    def distribute_staking(self, staking_contract: str, amount: int, *, now: int) -> ProgramDistribution:
        return self.distribute(ProgramType.STAKING_REWARDS, [staking_contract], [amount], now=now)

    def distribute_engagement(self, users: Sequence[str], points: Sequence[int], *, now: int) -> ProgramDistribution:
        p = self.get(ProgramType.ENGAGEMENT_INCENTIVE)
        if len(users) != len(points):
            raise ValidationError(
                "users and points length mismatch", details={"users": len(users), "points": len(points)}
            )
        for u, pts in zip(users, points):
            if not is_positive_amount(pts):
                raise ValidationError("engagement points must be positive integers", details={"user": u})
        amounts = [engagement_amount(pts, p.base_rate) for pts in points]
        return self.distribute(ProgramType.ENGAGEMENT_INCENTIVE, users, amounts, now=now)


__all__ = [
    "ENGAGEMENT_BONUS_THRESHOLD",
    "ENGAGEMENT_BONUS_BPS",
    "DISTRIBUTION_SHARES_BPS",
    "AwardProgram",
    "Airdrop",
    "ProgramDistribution",
    "AwardProgramManager",
    "engagement_amount",
    "token_distribution_breakdown",
]
