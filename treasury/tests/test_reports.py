from treasury import reports
from treasury.domain import ProgramType
from treasury.tests.util import DAY, EXECUTOR, GUARDIAN, PROGRAM_MANAGER, PROPOSER, SALE, T0, approve_all


def _spend_five(t, clock):
    p = t.propose(PROPOSER, "0xbob", 5, "marketing")
    approve_all(t, p.id)
    clock.advance(DAY)
    t.execute(EXECUTOR, p.id)


def test_allocation_report(funded):
    funded.propose(PROPOSER, "0xbob", 4, "kol")
    r = reports.allocation_report(funded)
    assert (r["balance"], r["total_allocated"], r["total_reserved"]) == (100, 100, 4)
    rows = {row["category"]: row for row in r["categories"]}
    assert rows["marketing"]["share_bps"] == 3000
    assert rows["kol"]["available"] == 16


def test_spending_report_and_runway(funded, clock):
    _spend_five(funded, clock)
    r = reports.spending_report(funded, T0, T0 + 30 * DAY)
    assert r["spent"]["marketing"] == 5
    assert r["total_spent"] == 5
    assert r["period_days"] == 30
    assert r["monthly_rate"]["marketing"] == 5
    assert r["monthly_burn"] == 5
    assert r["remaining"] == 95
    assert r["runway_months"] == 19


def test_spending_report_without_outflows_has_no_runway(funded):
    r = reports.spending_report(funded, T0, T0 + DAY)
    assert r["total_spent"] == 0
    assert r["runway_months"] is None


def test_spending_report_counts_recovery(funded):
    funded.emergency_recovery(GUARDIAN, "0xcold")
    r = reports.spending_report(funded, T0, T0 + DAY)
    assert r["spent"]["*"] == 100
    assert r["remaining"] == 0


def test_spending_rate():
    assert reports.spending_rate(10, 0) == 0
    assert reports.spending_rate(10, reports.SECONDS_PER_MONTH) == 10
    assert reports.spending_rate(7, reports.SECONDS_PER_MONTH // 2) == 14


def test_rebalancing_plan(funded, clock):
    _spend_five(funded, clock)
    plan = reports.rebalancing_plan(funded)
    assert plan["marketing"]["current"] == 25
    assert plan["marketing"]["target"] == 28
    assert plan["marketing"]["needs_increase"]
    assert plan["development"]["adjustment"] == -2
    assert not plan["kol"]["needs_increase"]


def test_dashboard_and_public_analytics(funded):
    funded.propose(PROPOSER, "0xbob", 5, "marketing")
    funded.create_batch(PROPOSER, ["0xa"], [1], "kol")
    funded.configure_program(PROGRAM_MANAGER, ProgramType.AIRDROP, 1_000)
    funded.execute_airdrop(PROGRAM_MANAGER, ["0xa"], [250], "0xroot")

    d = reports.dashboard(funded)
    assert d["balance"] == 100
    assert d["pending_withdrawals"] == 1
    assert d["pending_amount"] == 5
    assert d["pending_batches"] == 1
    assert d["active_programs"] == ["airdrop"]
    assert d["allocations"]["marketing"]["reserved"] == 5

    a = reports.public_analytics(funded)
    assert a["total_value"] == 100
    assert a["percentages"]["marketing"] == 3000
    assert a["tokens_distributed"] == 250
    assert a["programs"] == [{"program": "airdrop", "cap": 1_000, "distributed": 250, "progress_bps": 2500}]


def test_iter_history_pages_through_everything(treasury):
    for i in range(1_201):
        treasury.deposit(SALE, "marketing", 1, now=T0 + i)
    assert sum(1 for _ in reports.iter_history(treasury)) == len(treasury.ledger.history)
