"""Shared builders for the treasury test-suite."""

from treasury.adapters.memory import InMemoryTransport, InMemoryVesting
from treasury.config import MultisigConfig, TimelockConfig, TreasuryConfig
from treasury.roles import Role
from treasury.service import Treasury

T0 = 1_700_000_000
DAY = 86_400
WEEK = 7 * DAY

ADMIN = "root"
SALE = "sale-engine"
PROPOSER = "alice"
APPROVERS = ("appr-1", "appr-2", "appr-3")
EXECUTOR = "keeper"
PROGRAM_MANAGER = "pm"
FUNDER = "funder"
GUARDIAN = "guardian"
ALLOC_MANAGER = "alloc"
DAO = "dao"


class FakeClock:
    """Manually advanced clock; `Treasury` calls it like `time.time`."""

    def __init__(self, t: int = T0) -> None:
        self.t = t

    def __call__(self) -> int:
        return self.t

    def advance(self, seconds: int) -> int:
        self.t += seconds
        return self.t


def mk_config(*, threshold: int = 2, emergency_delay_s: int = DAY) -> TreasuryConfig:
    return TreasuryConfig(
        multisig=MultisigConfig(threshold=threshold, approvers=list(APPROVERS)),
        timelock=TimelockConfig(emergency_delay_s=emergency_delay_s),
    )


def mk_treasury(clock, transport=None, vesting=None, bus=None, **cfg_kw) -> Treasury:
    t = Treasury(
        mk_config(**cfg_kw),
        admins=[ADMIN],
        transport=transport if transport is not None else InMemoryTransport(),
        vesting=vesting if vesting is not None else InMemoryVesting(),
        bus=bus,
        clock=clock,
    )
    for role, who in (
        (Role.DEPOSITOR, SALE),
        (Role.PROPOSER, PROPOSER),
        (Role.EXECUTOR, EXECUTOR),
        (Role.PROGRAM_MANAGER, PROGRAM_MANAGER),
        (Role.EXTERNAL_FUNDER, FUNDER),
        (Role.EMERGENCY, GUARDIAN),
        (Role.ALLOCATION_MANAGER, ALLOC_MANAGER),
        (Role.GOVERNANCE, DAO),
    ):
        t.grant_role(ADMIN, role, who)
    return t


def approve_all(t: Treasury, proposal_id: int, n: int = 2) -> None:
    for a in APPROVERS[:n]:
        t.approve(a, proposal_id)
