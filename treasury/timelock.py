from __future__ import annotations
"""
Timelock tiers: when may an authorized outflow execute?

The earliest legal execution time is a pure function of the outflow's size and
its creation time:

    tier = LARGE     if amount > large_threshold_bps * balance_at_creation / 10_000
           STANDARD  otherwise
    eligible_at = created_at + delay(tier)

Emergency withdrawals use their own fixed delay through the same policy object
(tier EMERGENCY) rather than a separate code path.

No timers are scheduled. Readiness is evaluated lazily, against the caller's
clock, whenever execution is attempted.

Example
-------
>>> policy = TimelockPolicy(standard_delay_s=86_400, large_delay_s=604_800,
...                         large_threshold_bps=1_000, emergency_delay_s=86_400)
>>> policy.classify(15, balance=100)
<Tier.LARGE: 'large'>
>>> policy.eligible_at(created_at=0, tier=Tier.STANDARD)
86400
"""


from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .config import TimelockConfig
from .domain import BPS_DENOM


class Tier(str, Enum):
    STANDARD = "standard"
    LARGE = "large"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class TimelockPolicy:
    standard_delay_s: int
    large_delay_s: int
    large_threshold_bps: int
    emergency_delay_s: int

    @classmethod
    def from_config(cls, cfg: TimelockConfig) -> "TimelockPolicy":
        cfg.validate()
        return cls(
            standard_delay_s=cfg.standard_delay_s,
            large_delay_s=cfg.large_delay_s,
            large_threshold_bps=cfg.large_threshold_bps,
            emergency_delay_s=cfg.emergency_delay_s,
        )

    def delays(self) -> Dict[Tier, int]:
        return {
            Tier.STANDARD: self.standard_delay_s,
            Tier.LARGE: self.large_delay_s,
            Tier.EMERGENCY: self.emergency_delay_s,
        }

    def large_threshold(self, balance: int) -> int:
        """Amount above which a withdrawal counts as large, for a given balance."""
        return (balance * self.large_threshold_bps) // BPS_DENOM

    def is_large(self, amount: int, balance: int) -> bool:
        # cross-multiplied so no precision is lost to floor division
        return amount * BPS_DENOM > balance * self.large_threshold_bps

    def classify(self, amount: int, *, balance: int) -> Tier:
        return Tier.LARGE if self.is_large(amount, balance) else Tier.STANDARD

    def delay(self, tier: Tier) -> int:
        return self.delays()[tier]

    def eligible_at(self, *, created_at: int, tier: Tier) -> int:
        return created_at + self.delay(tier)


def is_time_ready(now: int, eligible_at: int) -> bool:
    return now >= eligible_at


__all__ = ["Tier", "TimelockPolicy", "is_time_ready"]
