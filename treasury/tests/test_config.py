import json

import pytest

from treasury import config as cfgmod
from treasury.config import TreasuryConfig, from_dict, from_env, from_file, parse_split


def test_defaults_are_valid():
    cfg = TreasuryConfig()
    cfg.validate()
    assert cfg.allocation.bps == {"marketing": 3000, "kol": 2000, "development": 3000, "buyback": 2000}
    assert cfg.timelock.large_delay_s == 604_800
    assert cfg.programs.base_units(1) == 10**18


def test_parse_split():
    assert parse_split("a=6_000, b=4000,") == {"a": 6000, "b": 4000}
    with pytest.raises(ValueError):
        parse_split("a:1")
    with pytest.raises(ValueError):
        parse_split("a=x")


def test_from_env(monkeypatch):
    monkeypatch.setenv("TREASURY_ALLOCATION_BPS", "ops=7000,grants=3000")
    monkeypatch.setenv("TREASURY_MULTISIG_THRESHOLD", "3")
    monkeypatch.setenv("TREASURY_APPROVERS", "a, b ,c")
    monkeypatch.setenv("TREASURY_LARGE_DELAY_S", "1_209_600")
    cfg = from_env()
    assert cfg.allocation.bps == {"ops": 7000, "grants": 3000}
    assert cfg.multisig.threshold == 3
    assert cfg.multisig.approvers == ["a", "b", "c"]
    assert cfg.timelock.large_delay_s == 1_209_600


def test_from_env_rejects_bad_values(monkeypatch):
    monkeypatch.setenv("TREASURY_ALLOCATION_BPS", "ops=7000,grants=2000")
    with pytest.raises(ValueError):
        from_env()
    monkeypatch.delenv("TREASURY_ALLOCATION_BPS")
    monkeypatch.setenv("TREASURY_LARGE_THRESHOLD_BPS", "20000")
    with pytest.raises(ValueError):
        from_env()


def test_from_file_yaml_and_json(tmp_path):
    y = tmp_path / "t.yaml"
    y.write_text(
        "allocation:\n  bps:\n    ops: 10000\n"
        "multisig:\n  threshold: 1\n  approvers: [x]\n"
        "timelock:\n  emergency_delay_s: 0\n",
        encoding="utf-8",
    )
    cfg = from_file(y)
    assert cfg.allocation.bps == {"ops": 10000}
    assert cfg.timelock.emergency_delay_s == 0
    assert cfg.timelock.standard_delay_s == 86_400

    j = tmp_path / "t.json"
    j.write_text(json.dumps({"allocation": {"ops": 5000, "dev": 5000}}), encoding="utf-8")
    assert from_file(j).allocation.bps == {"ops": 5000, "dev": 5000}

    with pytest.raises(FileNotFoundError):
        from_file(tmp_path / "missing.yaml")


def test_roundtrip_through_dict():
    cfg = from_dict({"multisig": {"threshold": 2, "approvers": ["a", "b"]}})
    assert from_dict(cfg.to_dict()) == cfg


def test_threshold_above_initial_approvers_rejected():
    with pytest.raises(ValueError):
        from_dict({"multisig": {"threshold": 3, "approvers": ["a", "b"]}})


def test_load_layers_env_over_file(tmp_path, monkeypatch):
    p = tmp_path / "c.json"
    p.write_text(json.dumps({"timelock": {"standard_delay_s": 10, "large_delay_s": 20}}), encoding="utf-8")
    monkeypatch.setenv("TREASURY_CONFIG_FILE", str(p))
    monkeypatch.setenv("TREASURY_STANDARD_DELAY_S", "15")
    cfg = cfgmod.load()
    assert (cfg.timelock.standard_delay_s, cfg.timelock.large_delay_s) == (15, 20)
    assert json.loads(cfgmod.pretty(cfg))["timelock"]["standard_delay_s"] == 15
