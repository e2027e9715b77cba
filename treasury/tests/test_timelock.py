import pytest

from treasury.config import TimelockConfig
from treasury.timelock import Tier, TimelockPolicy, is_time_ready


def _mk_policy(**kw) -> TimelockPolicy:
    return TimelockPolicy.from_config(TimelockConfig(**kw))


def test_defaults():
    p = _mk_policy()
    assert p.delays() == {Tier.STANDARD: 86_400, Tier.LARGE: 604_800, Tier.EMERGENCY: 86_400}
    assert p.large_threshold(100) == 10


@pytest.mark.parametrize(
    "amount,balance,tier",
    [
        (5, 100, Tier.STANDARD),
        (10, 100, Tier.STANDARD),  # equal to the threshold is not large
        (11, 100, Tier.LARGE),
        (15, 100, Tier.LARGE),
        (1, 9, Tier.LARGE),  # 1 > 0.9 even though floor(9 * 10%) == 0
        (1, 0, Tier.LARGE),
    ],
)
def test_classify(amount, balance, tier):
    assert _mk_policy().classify(amount, balance=balance) is tier


def test_eligible_at_per_tier():
    p = _mk_policy(standard_delay_s=10, large_delay_s=100, emergency_delay_s=5)
    assert p.eligible_at(created_at=1_000, tier=Tier.STANDARD) == 1_010
    assert p.eligible_at(created_at=1_000, tier=Tier.LARGE) == 1_100
    assert p.eligible_at(created_at=1_000, tier=Tier.EMERGENCY) == 1_005


def test_is_time_ready_boundary():
    assert not is_time_ready(99, 100)
    assert is_time_ready(100, 100)
    assert is_time_ready(101, 100)


def test_invalid_config_rejected():
    with pytest.raises(ValueError):
        _mk_policy(standard_delay_s=100, large_delay_s=10)
    with pytest.raises(ValueError):
        _mk_policy(large_threshold_bps=10_001)
