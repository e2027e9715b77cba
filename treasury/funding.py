from __future__ import annotations

"""
External funding monitor: keeps dependent accounts (paymaster, buyback/burn,
governance DAO, staking contract) topped up from treasury categories.

A target is funded by `check_and_fund` when
    balance_of(target) < minimum_balance  and
    (never funded  or  now - last_funding >= frequency)
in which case `funding_amount` is spent from the target's category (subject to
its `available`) and transferred. Nothing runs on a timer; callers (cron, CLI,
keeper bots) invoke `check_and_fund` / `trigger_all` and pass the time.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .adapters.base import BalanceReader
from .distribution import DistributionEngine, ExecutionReceipt
from .domain import BUYBACK, DEVELOPMENT, TargetKind, TxType, is_positive_amount
from .errors import InsufficientFundsError, NotFoundError, TransferError, ValidationError
from .ledger import AllocationLedger

log = logging.getLogger(__name__)

DEFAULT_CATEGORY: Dict[TargetKind, str] = {
    TargetKind.PAYMASTER: DEVELOPMENT,
    TargetKind.BUYBACK_BURN: BUYBACK,
    TargetKind.GOVERNANCE_DAO: DEVELOPMENT,
    TargetKind.STAKING_CONTRACT: DEVELOPMENT,
}


@dataclass
class ExternalFundingConfig:
    target: str
    kind: TargetKind
    category: str
    funding_amount: int
    frequency: int
    minimum_balance: int
    last_funding: Optional[int] = None
    auto_funding_enabled: bool = True
    total_funded: int = 0

    def due(self, now: int) -> bool:
        return self.last_funding is None or now - self.last_funding >= self.frequency

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ExternalFundingConfig":
        return ExternalFundingConfig(
            target=str(d["target"]),
            kind=TargetKind(d["kind"]),
            category=str(d["category"]),
            funding_amount=int(d["funding_amount"]),
            frequency=int(d["frequency"]),
            minimum_balance=int(d["minimum_balance"]),
            last_funding=d.get("last_funding"),
            auto_funding_enabled=bool(d.get("auto_funding_enabled", True)),
            total_funded=int(d.get("total_funded", 0)),
        )


class ExternalFundingMonitor:
    def __init__(self, ledger: AllocationLedger, distribution: DistributionEngine, reader: BalanceReader) -> None:
        self.ledger = ledger
        self.distribution = distribution
        self.reader = reader
        self._targets: Dict[str, ExternalFundingConfig] = {}

    def dump(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self._targets.values()]

    def load(self, data: List[Mapping[str, Any]]) -> None:
        self._targets = {str(d["target"]): ExternalFundingConfig.from_dict(d) for d in data}

    def get(self, target: str) -> ExternalFundingConfig:
        c = self._targets.get(target)
        if c is None:
            raise NotFoundError("funding target", target)
        return c

    def targets(self) -> List[ExternalFundingConfig]:
        return list(self._targets.values())

    def configure(
        self,
        target: str,
        kind: TargetKind,
        amount: int,
        frequency: int,
        minimum_balance: int,
        category: Optional[str] = None,
    ) -> ExternalFundingConfig:
        """Register or replace a target. Funding history (last/total) is kept on replace."""
        kind = TargetKind(kind)
        if not target:
            raise ValidationError("target must be a non-empty address")
        if not is_positive_amount(amount):
            raise ValidationError("funding amount must be a positive integer")
        if frequency < 0 or minimum_balance < 0:
            raise ValidationError("frequency and minimum_balance must be >= 0")
        cat = category or DEFAULT_CATEGORY[kind]
        self.ledger.get_allocation(cat)  # unknown category -> ValidationError

        prev = self._targets.get(target)
        cfg = ExternalFundingConfig(
            target=target,
            kind=kind,
            category=cat,
            funding_amount=amount,
            frequency=frequency,
            minimum_balance=minimum_balance,
        )
        if prev is not None:
            cfg.last_funding = prev.last_funding
            cfg.total_funded = prev.total_funded
            cfg.auto_funding_enabled = prev.auto_funding_enabled
        self._targets[target] = cfg
        return cfg

    def set_auto_funding(self, target: str, enabled: bool) -> ExternalFundingConfig:
        c = self.get(target)
        c.auto_funding_enabled = bool(enabled)
        return c

    def monitor(self, target: str) -> Tuple[int, bool]:
        """Return (current balance, below minimum?)."""
        c = self.get(target)
        bal = int(self.reader.balance_of(target))
        return bal, bal < c.minimum_balance

    def check_and_fund(self, target: str, *, now: int) -> Optional[ExecutionReceipt]:
        """Fund `target` if it is below its minimum and the frequency window has passed."""
        c = self.get(target)
        balance, below = self.monitor(target)
        if not below or not c.due(now):
            log.debug("funding not needed target=%s balance=%d due=%s", target, balance, c.due(now))
            return None
        return self._fund(c, c.funding_amount, now=now, reason="auto")

    def fund(self, target: str, amount: int, *, now: int) -> ExecutionReceipt:
        """On-demand funding; ignores minimum balance and frequency."""
        c = self.get(target)
        if not is_positive_amount(amount):
            raise ValidationError("funding amount must be a positive integer")
        return self._fund(c, amount, now=now, reason="manual")

    def trigger_all(self, *, now: int) -> List[str]:
        """Run `check_and_fund` over every auto-funded target. Returns the funded targets."""
        funded: List[str] = []
        for c in list(self._targets.values()):
            if not c.auto_funding_enabled:
                continue
            try:
                if self.check_and_fund(c.target, now=now) is not None:
                    funded.append(c.target)
            except (InsufficientFundsError, TransferError, ValidationError) as e:
                log.warning("auto funding skipped target=%s category=%s err=%s", c.target, c.category, e)
        return funded

    def _fund(self, c: ExternalFundingConfig, amount: int, *, now: int, reason: str) -> ExecutionReceipt:
        receipt = self.distribution.pay_out(
            c.category,
            c.target,
            amount,
            now=now,
            tx_type=TxType.EXTERNAL_FUNDING,
            memo=f"funding:{c.kind.value}",
            meta={"kind": c.kind.value, "reason": reason},
        )
        c.last_funding = now
        c.total_funded += amount
        log.info("external funded target=%s kind=%s amount=%d reason=%s", c.target, c.kind.value, amount, reason)
        return receipt


__all__ = ["DEFAULT_CATEGORY", "ExternalFundingConfig", "ExternalFundingMonitor"]
