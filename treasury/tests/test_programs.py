import pytest

from treasury.domain import ASSET_TOKEN, ProgramType, TxType
from treasury.errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    StateError,
    TransferError,
    ValidationError,
)
from treasury.programs import engagement_amount, token_distribution_breakdown
from treasury.tests.util import PROGRAM_MANAGER as PM
from treasury.tests.util import PROPOSER, T0


def test_cap_exceeded_is_rejected(treasury, transport):
    treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 200_000_000)
    treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xu1"], [150_000_000])
    with pytest.raises(InsufficientFundsError, match="exceeds allocation"):
        treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xu2"], [60_000_000])

    st = treasury.get_program_status(ProgramType.COMMUNITY_REWARDS)
    assert st["distributed_amount"] == 150_000_000
    assert st["remaining"] == 50_000_000
    assert transport.balance_of("0xu1", ASSET_TOKEN) == 150_000_000
    assert transport.balance_of("0xu2", ASSET_TOKEN) == 0


def test_distribution_logged_in_history_without_touching_native_balance(treasury):
    treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 1_000)
    treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xa", "0xb"], [100, 200])
    e = treasury.get_historical_transactions(tx_type=TxType.PROGRAM_DISTRIBUTION)[-1]
    assert e.amount == 300
    assert e.category == "program:community_rewards"
    assert e.balance_after == 700
    assert treasury.get_balance() == 0


def test_vested_program_delegates_schedules(treasury, vesting, transport):
    treasury.configure_program(PM, ProgramType.AIRDROP, 1_000, vesting_duration=365 * 86_400, cliff_duration=30 * 86_400)
    d = treasury.distribute_program(PM, ProgramType.AIRDROP, ["0xa", "0xb"], [10, 20])
    assert d.transfer_ref is None
    assert len(d.schedule_ids) == 2
    s = vesting.schedules[d.schedule_ids[1]]
    assert (s.beneficiary, s.amount, s.start_time, s.cliff_duration, s.vesting_duration) == (
        "0xb", 20, T0, 30 * 86_400, 365 * 86_400,
    )
    assert s.tag == "airdrop"
    assert transport.balance_of("0xa", ASSET_TOKEN) == 0
    st = treasury.get_program_status(ProgramType.AIRDROP)
    assert st["schedule_ids"] == list(d.schedule_ids)
    assert treasury.get_historical_transactions(tx_type=TxType.VESTING_SCHEDULED)


def test_configure_validation(treasury):
    with pytest.raises(ValidationError):
        treasury.configure_program(PM, ProgramType.AIRDROP, 0)
    with pytest.raises(ValidationError):
        treasury.configure_program(PM, ProgramType.AIRDROP, 100, vesting_duration=10, cliff_duration=11)
    with pytest.raises(AuthorizationError):
        treasury.configure_program(PROPOSER, ProgramType.AIRDROP, 100)
    with pytest.raises(NotFoundError):
        treasury.get_program_status(ProgramType.STAKING_REWARDS)


def test_reconfigure_cannot_drop_below_distributed(treasury):
    treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 100)
    treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xa"], [60])
    with pytest.raises(ValidationError):
        treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 50)
    p = treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 160)
    assert p.remaining == 100


def test_distribute_validation(treasury):
    treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 100)
    with pytest.raises(ValidationError):
        treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xa", "0xb"], [1])
    with pytest.raises(ValidationError):
        treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xa"], [0])
    with pytest.raises(NotFoundError):
        treasury.distribute_program(PM, ProgramType.AIRDROP, ["0xa"], [1])


def test_deactivated_program_rejects_distribution(treasury):
    treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 100)
    treasury.deactivate_program(PM, ProgramType.COMMUNITY_REWARDS)
    with pytest.raises(StateError, match="not active"):
        treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xa"], [1])
    with pytest.raises(StateError):
        treasury.deactivate_program(PM, ProgramType.COMMUNITY_REWARDS)
    treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 100)
    treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xa"], [1])


def test_airdrop_ids_are_monotonic(treasury):
    treasury.configure_program(PM, ProgramType.AIRDROP, 100)
    a1 = treasury.execute_airdrop(PM, ["0xa", "0xb"], [5, 5], "0xroot1")
    a2 = treasury.execute_airdrop(PM, ["0xc"], [1], "0xroot2")
    assert (a1.airdrop_id, a2.airdrop_id) == (1, 2)
    assert a1.total == 10
    assert treasury.programs.get_airdrop(2).merkle_root == "0xroot2"
    with pytest.raises(ValidationError):
        treasury.execute_airdrop(PM, ["0xc"], [1], "")
    with pytest.raises(InsufficientFundsError):
        treasury.execute_airdrop(PM, ["0xc"], [90], "0xroot3")
    # rejected airdrops do not consume ids
    assert treasury.execute_airdrop(PM, ["0xd"], [1], "0xroot4").airdrop_id == 3


def test_staking_rewards(treasury, transport):
    p = treasury.configure_staking_rewards(PM, 1_000_000, 1_000)
    assert p.rewards_per_second == 1_000
    treasury.distribute_staking_rewards(PM, "0xstaking", 250_000)
    assert transport.balance_of("0xstaking", ASSET_TOKEN) == 250_000
    assert treasury.get_program_status(ProgramType.STAKING_REWARDS)["remaining"] == 750_000
    with pytest.raises(ValidationError):
        treasury.configure_staking_rewards(PM, 1_000, 0)


def test_engagement_bonus_above_threshold(treasury, transport):
    treasury.configure_engagement_incentives(PM, 100_000, 30 * 86_400, base_rate=10)
    d = treasury.distribute_engagement_incentives(PM, ["0xlow", "0xedge", "0xhigh"], [50, 100, 101])
    assert transport.balance_of("0xlow", ASSET_TOKEN) == 500
    assert transport.balance_of("0xedge", ASSET_TOKEN) == 1_000
    assert transport.balance_of("0xhigh", ASSET_TOKEN) == 1_515
    assert d.total == 3_015
    with pytest.raises(ValidationError):
        treasury.distribute_engagement_incentives(PM, ["0xa"], [1, 2])
    with pytest.raises(ValidationError):
        treasury.distribute_engagement_incentives(PM, ["0xa"], [0])


def test_engagement_amount_and_breakdown():
    assert engagement_amount(100, 2) == 200
    assert engagement_amount(200, 2) == 600
    assert token_distribution_breakdown(200_000_000) == {
        "airdrop": 20_000_000,
        "staking_rewards": 100_000_000,
        "engagement_incentive": 80_000_000,
    }


def test_failed_distribution_leaves_program_untouched(treasury, transport):
    transport.fail_for.add("0xbad")
    treasury.configure_program(PM, ProgramType.COMMUNITY_REWARDS, 100)
    with pytest.raises(TransferError):
        treasury.distribute_program(PM, ProgramType.COMMUNITY_REWARDS, ["0xok", "0xbad"], [1, 1])
    assert treasury.get_program_status(ProgramType.COMMUNITY_REWARDS)["distributed_amount"] == 0
    assert transport.balance_of("0xok", ASSET_TOKEN) == 0
