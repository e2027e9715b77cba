from __future__ import annotations
"""
treasury.config - configuration for the treasury engine

Covers:
- Category allocation split (basis points, 10_000 = 100%)
- Multisig threshold and initial approver set
- Timelock tiers (standard / large / emergency delays, large-withdrawal threshold)
- Default award-program caps (from the original tokenomics)

Environment overrides (all optional; sensible defaults provided):

  # Allocation split (basis points; must sum to 10000)
  TREASURY_ALLOCATION_BPS="marketing=3000,kol=2000,development=3000,buyback=2000"

  # Multisig
  TREASURY_MULTISIG_THRESHOLD=2
  TREASURY_APPROVERS="0xaaa,0xbbb,0xccc"

  # Timelocks (seconds; bps)
  TREASURY_STANDARD_DELAY_S=86400
  TREASURY_LARGE_DELAY_S=604800
  TREASURY_LARGE_THRESHOLD_BPS=1000
  TREASURY_EMERGENCY_DELAY_S=86400

  # Award program token
  TREASURY_TOKEN_DECIMALS=18

You can also load from a JSON or YAML file via `TREASURY_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional
import json
import os
from pathlib import Path

import yaml

from .domain import BPS_DENOM, BUYBACK, DEVELOPMENT, KOL, MARKETING


# -------------------------- Data classes --------------------------


def _default_split() -> Dict[str, int]:
    return {MARKETING: 3000, KOL: 2000, DEVELOPMENT: 3000, BUYBACK: 2000}


@dataclass
class AllocationSplit:
    """Category -> basis points. Must sum to 10_000."""
    bps: Dict[str, int] = field(default_factory=_default_split)

    def total_bps(self) -> int:
        return sum(self.bps.values())

    def validate(self) -> None:
        if not self.bps:
            raise ValueError("AllocationSplit needs at least one category.")
        for name, v in self.bps.items():
            if not name:
                raise ValueError("category ids must be non-empty strings.")
            if not isinstance(v, int) or not (0 <= v <= BPS_DENOM):
                raise ValueError(f"{name} must be between 0 and {BPS_DENOM} (got {v!r}).")
        if self.total_bps() != BPS_DENOM:
            raise ValueError(f"AllocationSplit must sum to {BPS_DENOM} bps (got {self.total_bps()}).")


@dataclass
class MultisigConfig:
    """Approval threshold and the initial approver set."""
    threshold: int = 2
    approvers: List[str] = field(default_factory=list)

    def validate(self) -> None:
        if self.threshold < 1:
            raise ValueError("multisig threshold must be >= 1.")
        if len(set(self.approvers)) != len(self.approvers):
            raise ValueError("approvers must be unique.")
        if self.approvers and self.threshold > len(self.approvers):
            raise ValueError(
                f"threshold {self.threshold} exceeds number of approvers ({len(self.approvers)})."
            )


@dataclass
class TimelockConfig:
    """Size-tiered execution delays (seconds)."""
    standard_delay_s: int = 86_400          # 1 day
    large_delay_s: int = 604_800            # 7 days
    large_threshold_bps: int = 1_000        # amount > 10% of balance is "large"
    emergency_delay_s: int = 86_400         # fixed single-authority delay

    def validate(self) -> None:
        for name, v in (("standard_delay_s", self.standard_delay_s),
                        ("large_delay_s", self.large_delay_s),
                        ("emergency_delay_s", self.emergency_delay_s)):
            if v < 0:
                raise ValueError(f"{name} must be >= 0 (got {v}).")
        if self.large_delay_s < self.standard_delay_s:
            raise ValueError("large_delay_s must be >= standard_delay_s.")
        if not (0 <= self.large_threshold_bps <= BPS_DENOM):
            raise ValueError(f"large_threshold_bps must be between 0 and {BPS_DENOM}.")


@dataclass
class ProgramDefaults:
    """Default award-program caps in whole tokens (scaled by token_decimals)."""
    community_rewards_tokens: int = 200_000_000
    airdrop_tokens: int = 20_000_000
    staking_rewards_tokens: int = 100_000_000
    engagement_tokens: int = 80_000_000
    token_decimals: int = 18

    def validate(self) -> None:
        for name, v in (("community_rewards_tokens", self.community_rewards_tokens),
                        ("airdrop_tokens", self.airdrop_tokens),
                        ("staking_rewards_tokens", self.staking_rewards_tokens),
                        ("engagement_tokens", self.engagement_tokens)):
            if v < 0:
                raise ValueError(f"{name} must be non-negative.")
        if self.token_decimals < 0:
            raise ValueError("token_decimals must be non-negative.")

    def base_units(self, tokens: int) -> int:
        return int(tokens) * 10 ** self.token_decimals


@dataclass
class TreasuryConfig:
    """Top-level configuration container."""
    allocation: AllocationSplit = field(default_factory=AllocationSplit)
    multisig: MultisigConfig = field(default_factory=MultisigConfig)
    timelock: TimelockConfig = field(default_factory=TimelockConfig)
    programs: ProgramDefaults = field(default_factory=ProgramDefaults)

    def validate(self) -> None:
        self.allocation.validate()
        self.multisig.validate()
        self.timelock.validate()
        self.programs.validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except ValueError as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_bps(name: str, default: int) -> int:
    bps = _getenv_int(name, default)
    if not (0 <= bps <= BPS_DENOM):
        raise ValueError(f"{name} must be between 0 and {BPS_DENOM} bps (got {bps}).")
    return bps


def _getenv_list(name: str, default: List[str]) -> List[str]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return list(default)
    return [x.strip() for x in v.split(",") if x.strip()]


def parse_split(text: str) -> Dict[str, int]:
    """Parse "marketing=3000,kol=2000" into a category->bps mapping."""
    out: Dict[str, int] = {}
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ValueError(f"Invalid allocation entry {part!r} (expected name=bps).")
        name, raw = part.split("=", 1)
        try:
            out[name.strip()] = int(raw.strip().replace("_", ""))
        except ValueError as e:
            raise ValueError(f"Invalid bps for {name.strip()!r}: {raw!r}") from e
    return out


def from_env(base: Optional[TreasuryConfig] = None, prefix: str = "TREASURY_") -> TreasuryConfig:
    """
    Build a TreasuryConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or TreasuryConfig()

    raw_split = os.getenv(f"{prefix}ALLOCATION_BPS")
    split = parse_split(raw_split) if raw_split else dict(cfg.allocation.bps)

    threshold = _getenv_int(f"{prefix}MULTISIG_THRESHOLD", cfg.multisig.threshold)
    approvers = _getenv_list(f"{prefix}APPROVERS", cfg.multisig.approvers)

    std = _getenv_int(f"{prefix}STANDARD_DELAY_S", cfg.timelock.standard_delay_s)
    large = _getenv_int(f"{prefix}LARGE_DELAY_S", cfg.timelock.large_delay_s)
    large_bps = _getenv_bps(f"{prefix}LARGE_THRESHOLD_BPS", cfg.timelock.large_threshold_bps)
    emergency = _getenv_int(f"{prefix}EMERGENCY_DELAY_S", cfg.timelock.emergency_delay_s)

    decimals = _getenv_int(f"{prefix}TOKEN_DECIMALS", cfg.programs.token_decimals)

    new_cfg = TreasuryConfig(
        allocation=AllocationSplit(bps=split),
        multisig=MultisigConfig(threshold=threshold, approvers=approvers),
        timelock=TimelockConfig(
            standard_delay_s=std,
            large_delay_s=large,
            large_threshold_bps=large_bps,
            emergency_delay_s=emergency,
        ),
        programs=ProgramDefaults(
            community_rewards_tokens=cfg.programs.community_rewards_tokens,
            airdrop_tokens=cfg.programs.airdrop_tokens,
            staking_rewards_tokens=cfg.programs.staking_rewards_tokens,
            engagement_tokens=cfg.programs.engagement_tokens,
            token_decimals=decimals,
        ),
    )
    new_cfg.validate()
    return new_cfg


def from_dict(data: Dict[str, Any]) -> TreasuryConfig:
    """Build a config from a nested mapping; missing keys take defaults."""

    def pick(dct: Dict[str, Any], key: str, default: Any) -> Any:
        return dct.get(key, default)

    allocation = data.get("allocation", {})
    multisig = data.get("multisig", {})
    timelock = data.get("timelock", {})
    programs = data.get("programs", {})

    # accept both {"bps": {...}} and a flat {"marketing": 3000, ...}
    split = allocation.get("bps", allocation) if isinstance(allocation, dict) else {}

    cfg = TreasuryConfig(
        allocation=AllocationSplit(bps={str(k): int(v) for k, v in split.items()} or _default_split()),
        multisig=MultisigConfig(
            threshold=int(pick(multisig, "threshold", MultisigConfig().threshold)),
            approvers=[str(a) for a in pick(multisig, "approvers", [])],
        ),
        timelock=TimelockConfig(
            standard_delay_s=int(pick(timelock, "standard_delay_s", TimelockConfig().standard_delay_s)),
            large_delay_s=int(pick(timelock, "large_delay_s", TimelockConfig().large_delay_s)),
            large_threshold_bps=int(pick(timelock, "large_threshold_bps", TimelockConfig().large_threshold_bps)),
            emergency_delay_s=int(pick(timelock, "emergency_delay_s", TimelockConfig().emergency_delay_s)),
        ),
        programs=ProgramDefaults(
            community_rewards_tokens=int(pick(programs, "community_rewards_tokens", ProgramDefaults().community_rewards_tokens)),
            airdrop_tokens=int(pick(programs, "airdrop_tokens", ProgramDefaults().airdrop_tokens)),
            staking_rewards_tokens=int(pick(programs, "staking_rewards_tokens", ProgramDefaults().staking_rewards_tokens)),
            engagement_tokens=int(pick(programs, "engagement_tokens", ProgramDefaults().engagement_tokens)),
            token_decimals=int(pick(programs, "token_decimals", ProgramDefaults().token_decimals)),
        ),
    )
    cfg.validate()
    return cfg


def from_file(path: str | os.PathLike[str]) -> TreasuryConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    return from_dict(data)


def load() -> TreasuryConfig:
    """
    Load configuration using the following precedence:
      1) File at $TREASURY_CONFIG_FILE (JSON/YAML)
      2) Environment variables (TREASURY_*), applied on top of defaults or file values
    """
    file_path = os.getenv("TREASURY_CONFIG_FILE")
    base = from_file(file_path) if file_path else TreasuryConfig()
    return from_env(base=base)


# -------------------------- Utilities --------------------------


def pretty(cfg: Optional[TreasuryConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


__all__ = [
    "AllocationSplit",
    "MultisigConfig",
    "TimelockConfig",
    "ProgramDefaults",
    "TreasuryConfig",
    "parse_split",
    "from_env",
    "from_dict",
    "from_file",
    "load",
    "pretty",
]
