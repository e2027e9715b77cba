from __future__ import annotations

"""
treasury.adapters
=================

Collaborator interfaces the treasury depends on but does not implement:

- `ValueTransport`  : the settlement-layer "transfer value to address" primitive
- `BalanceReader`   : balance reads of dependent external accounts
- `VestingDelegate` : the external vesting-schedule calculator

`memory` provides in-process implementations used by the CLI and tests.
"""

from typing import Tuple

from .base import BalanceReader, TransferItem, ValueTransport, VestingDelegate
from .memory import InMemoryTransport, InMemoryVesting, VestingSchedule

__all__: Tuple[str, ...] = (
    "BalanceReader",
    "TransferItem",
    "ValueTransport",
    "VestingDelegate",
    "InMemoryTransport",
    "InMemoryVesting",
    "VestingSchedule",
)
