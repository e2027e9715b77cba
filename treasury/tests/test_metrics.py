import pytest

from treasury import metrics
from treasury.errors import InsufficientFundsError
from treasury.tests.util import DAY, EXECUTOR, GUARDIAN, PROPOSER, approve_all


def _sample(name, **labels):
    return metrics.REGISTRY.get_sample_value(name, labels) or 0.0


def test_operations_are_counted(funded, clock):
    executed = _sample("treasury_executions_total", kind="proposal")
    rejected = _sample("treasury_rejections_total", code="TREASURY_INSUFFICIENT_FUNDS")

    p = funded.propose(PROPOSER, "0xbob", 5, "marketing")
    approve_all(funded, p.id)
    clock.advance(DAY)
    funded.execute(EXECUTOR, p.id)
    with pytest.raises(InsufficientFundsError):
        funded.propose(PROPOSER, "0xbob", 500, "marketing")

    assert _sample("treasury_executions_total", kind="proposal") == executed + 1
    assert _sample("treasury_rejections_total", code="TREASURY_INSUFFICIENT_FUNDS") == rejected + 1
    assert _sample("treasury_balance_units") == 95


def test_paused_gauge(funded):
    funded.pause(GUARDIAN)
    assert _sample("treasury_paused") == 1
    funded.unpause(GUARDIAN)
    assert _sample("treasury_paused") == 0


def test_mount_fastapi_serves_exposition(funded):
    pytest.importorskip("fastapi")
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    app = FastAPI()
    metrics.mount_fastapi(app)
    r = TestClient(app).get("/metrics")
    assert r.status_code == 200
    assert "treasury_deposits_total" in r.text
