from __future__ import annotations

import json

import pytest

typer = pytest.importorskip("typer")
from typer.testing import CliRunner

from treasury.cli.main import app
from treasury.tests.util import DAY, T0

runner = CliRunner()


@pytest.fixture
def state(tmp_path, monkeypatch):
    for k in ("TREASURY_CONFIG_FILE", "TREASURY_APPROVERS", "TREASURY_MULTISIG_THRESHOLD", "TREASURY_ALLOCATION_BPS"):
        monkeypatch.delenv(k, raising=False)
    path = tmp_path / "treasury.json"
    r = runner.invoke(
        app, ["--state", str(path), "init", "--admin", "root", "--approver", "a1", "--approver", "a2"]
    )
    assert r.exit_code == 0, r.output
    return path


def _run(state, *args, caller="root", now=T0):
    return runner.invoke(app, ["--state", str(state), "--caller", caller, "--now", str(now), *args])


def test_full_withdrawal_flow(state):
    r = _run(state, "deposit", "marketing", "100", "-d", "seed")
    assert r.exit_code == 0, r.output
    assert "balance 100" in r.output

    r = _run(state, "propose", "0xbob", "5", "marketing")
    assert r.exit_code == 0, r.output
    assert f"proposal 1 created (standard); executable at {T0 + DAY}" in r.output

    assert _run(state, "approve", "1", caller="a1").exit_code == 0
    r = _run(state, "approve", "1", caller="a2")
    assert "status APPROVED" in r.output

    r = _run(state, "execute", "1", now=T0 + DAY - 1)
    assert r.exit_code == 1
    assert "timelock not expired" in r.output

    r = _run(state, "execute", "1", now=T0 + DAY)
    assert r.exit_code == 0, r.output
    assert "balance 95" in r.output

    status = json.loads(_run(state, "status", "--json").output)
    assert status["balance"] == 95
    rows = json.loads(_run(state, "history", "--type", "WITHDRAWAL", "--json").output)
    assert [(e["amount"], e["counterparty"]) for e in rows] == [(5, "0xbob")]

    doc = json.loads(state.read_text(encoding="utf-8"))
    assert doc["transport"]["balances"]["native"]["0xbob"] == 5


def test_errors_exit_nonzero_and_keep_state(state):
    before = state.read_text(encoding="utf-8")
    r = _run(state, "deposit", "marketing", "100", caller="a1")
    assert r.exit_code == 1
    assert "TREASURY_UNAUTHORIZED" in r.output
    assert state.read_text(encoding="utf-8") == before

    r = _run(state, "cancel", "7")
    assert r.exit_code == 1
    assert "TREASURY_NOT_FOUND" in r.output


def test_grant_then_act(state):
    r = _run(state, "grant", "depositor", "sale")
    assert "granted: depositor -> sale" in r.output
    assert _run(state, "deposit", "kol", "10", caller="sale").exit_code == 0


def test_init_refuses_to_overwrite(state):
    r = runner.invoke(app, ["--state", str(state), "init", "--admin", "root"])
    assert r.exit_code == 2
    r = runner.invoke(app, ["--state", str(state), "init", "--admin", "other", "--force"])
    assert r.exit_code == 0


def test_reports(state):
    _run(state, "deposit", "marketing", "100")
    rep = json.loads(_run(state, "report", "allocation", "--json").output)
    assert rep["total_allocated"] == 100
    rep = json.loads(_run(state, "report", "spending", "--from", str(T0), "--json").output)
    assert rep["total_spent"] == 0
    assert _run(state, "report", "nonsense").exit_code == 2


def test_missing_state_file(tmp_path):
    r = runner.invoke(app, ["--state", str(tmp_path / "nope.json"), "status"])
    assert r.exit_code == 2
