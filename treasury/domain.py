from __future__ import annotations

"""
Lightweight shared types for the treasury engine.

These are intentionally minimal so they can be imported from both runtime
code and type-checkers without importing heavier submodules.

Conventions
-----------
- Addresses and caller ids are opaque strings (hex, bech32m, or test labels).
- Monetary values are represented in the smallest unit (base units) as ints.
- Timestamps are UNIX seconds (ints).
- Percentages are basis points (10_000 = 100%).
"""


from enum import Enum
from typing import NewType

# ────────────────────────────────────────────────────────────────────────────────
# Identifiers & primitives
# ────────────────────────────────────────────────────────────────────────────────

Address = NewType("Address", str)
CategoryId = NewType("CategoryId", str)
ProposalId = NewType("ProposalId", int)
BatchId = NewType("BatchId", int)

Amount = int
Timestamp = int

BPS_DENOM = 10_000  # basis points denominator (100.00%)

ASSET_NATIVE = "native"  # treasury currency held in the allocation ledger
ASSET_TOKEN = "token"  # award-program token

# Default categories from the original tokenomics
MARKETING = CategoryId("marketing")
KOL = CategoryId("kol")
DEVELOPMENT = CategoryId("development")
BUYBACK = CategoryId("buyback")

# ────────────────────────────────────────────────────────────────────────────────
# Enums
# ────────────────────────────────────────────────────────────────────────────────


class ProposalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    EXECUTED = "EXECUTED"
    CANCELLED = "CANCELLED"


class Provenance(str, Enum):
    """Who originated a proposal."""
    MANAGER = "manager"
    GOVERNANCE = "governance"


class TxType(str, Enum):
    """Historical transaction type tags."""
    DEPOSIT = "DEPOSIT"
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    REBALANCE = "REBALANCE"
    ALLOCATION_CONFIG = "ALLOCATION_CONFIG"
    WITHDRAWAL = "WITHDRAWAL"
    BATCH_WITHDRAWAL = "BATCH_WITHDRAWAL"
    PROGRAM_DISTRIBUTION = "PROGRAM_DISTRIBUTION"
    VESTING_SCHEDULED = "VESTING_SCHEDULED"
    EXTERNAL_FUNDING = "EXTERNAL_FUNDING"
    EMERGENCY = "EMERGENCY"
    EMERGENCY_RECOVERY = "EMERGENCY_RECOVERY"


class ProgramType(str, Enum):
    COMMUNITY_REWARDS = "community_rewards"
    AIRDROP = "airdrop"
    STAKING_REWARDS = "staking_rewards"
    ENGAGEMENT_INCENTIVE = "engagement_incentive"


class TargetKind(str, Enum):
    """Kinds of dependent external accounts the treasury keeps topped up."""
    PAYMASTER = "paymaster"
    BUYBACK_BURN = "buyback_burn"
    GOVERNANCE_DAO = "governance_dao"
    STAKING_CONTRACT = "staking_contract"


def is_positive_amount(x: object) -> bool:
    """Return True iff `x` is a strictly positive int (bools excluded)."""
    return isinstance(x, int) and not isinstance(x, bool) and x > 0


__all__ = [
    "Address",
    "CategoryId",
    "ProposalId",
    "BatchId",
    "Amount",
    "Timestamp",
    "BPS_DENOM",
    "ASSET_NATIVE",
    "ASSET_TOKEN",
    "MARKETING",
    "KOL",
    "DEVELOPMENT",
    "BUYBACK",
    "ProposalStatus",
    "Provenance",
    "TxType",
    "ProgramType",
    "TargetKind",
    "is_positive_amount",
]
