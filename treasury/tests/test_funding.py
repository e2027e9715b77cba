import logging

import pytest

from treasury.domain import TargetKind, TxType
from treasury.errors import AuthorizationError, NotFoundError, ValidationError
from treasury.tests.util import ALLOC_MANAGER, DAY, FUNDER, PROPOSER


def _mk_paymaster(t, amount=5, frequency=DAY, minimum=10, target="0xpaymaster"):
    return t.configure_external_target(FUNDER, target, TargetKind.PAYMASTER, amount, frequency, minimum)


def test_default_category_by_kind(funded):
    assert _mk_paymaster(funded).category == "development"
    c = funded.configure_external_target(FUNDER, "0xburn", TargetKind.BUYBACK_BURN, 1, DAY, 1)
    assert c.category == "buyback"
    c = funded.configure_external_target(FUNDER, "0xdao", TargetKind.GOVERNANCE_DAO, 1, DAY, 1, "marketing")
    assert c.category == "marketing"


def test_check_and_fund_respects_minimum_and_frequency(funded, clock, transport):
    _mk_paymaster(funded)

    r = funded.check_and_fund(FUNDER, "0xpaymaster")
    assert r is not None and r.amount == 5
    assert transport.balance_of("0xpaymaster") == 5
    assert funded.get_allocation("development").available == 25
    e = funded.get_historical_transactions(tx_type=TxType.EXTERNAL_FUNDING)[-1]
    assert (e.counterparty, e.amount, e.meta["reason"]) == ("0xpaymaster", 5, "auto")

    # still below minimum, but the frequency window has not passed
    clock.advance(DAY - 1)
    assert funded.check_and_fund(FUNDER, "0xpaymaster") is None

    clock.advance(1)
    assert funded.check_and_fund(FUNDER, "0xpaymaster") is not None
    assert transport.balance_of("0xpaymaster") == 10

    # at the minimum: nothing to do
    clock.advance(DAY)
    assert funded.check_and_fund(FUNDER, "0xpaymaster") is None
    cfg = funded.get_external_funding_config("0xpaymaster")
    assert cfg.total_funded == 10
    assert cfg.last_funding == clock.t - DAY


def test_trigger_all_skips_disabled_and_underfunded(funded, transport, caplog):
    _mk_paymaster(funded, target="0xp1")
    _mk_paymaster(funded, target="0xp2")
    funded.set_auto_funding(FUNDER, "0xp2", False)
    funded.configure_external_target(FUNDER, "0xburn", TargetKind.BUYBACK_BURN, 50, DAY, 1)

    with caplog.at_level(logging.WARNING, logger="treasury.funding"):
        assert funded.trigger_all(FUNDER) == ["0xp1"]
    assert "0xburn" in caplog.text
    assert transport.balance_of("0xp2") == 0
    assert transport.balance_of("0xburn") == 0
    assert funded.get_allocation("buyback").available == 20
    assert funded.get_external_funding_config("0xburn").last_funding is None


def test_manual_funding_ignores_minimum(funded, transport):
    _mk_paymaster(funded)
    transport.set_balance("0xpaymaster", 1_000)
    assert funded.check_and_fund(FUNDER, "0xpaymaster") is None
    r = funded.fund_external(FUNDER, "0xpaymaster", 3)
    assert r.amount == 3
    assert transport.balance_of("0xpaymaster") == 1_003
    assert funded.get_historical_transactions(tx_type=TxType.EXTERNAL_FUNDING)[-1].meta["reason"] == "manual"


def test_monitor_external_balance(funded, transport):
    _mk_paymaster(funded)
    assert funded.monitor_external_balance("0xpaymaster") == (0, True)
    transport.set_balance("0xpaymaster", 10)
    assert funded.monitor_external_balance("0xpaymaster") == (10, False)
    transport.debit("0xpaymaster", 4)
    assert funded.monitor_external_balance("0xpaymaster") == (6, True)


def test_reconfigure_keeps_funding_history(funded):
    _mk_paymaster(funded)
    funded.check_and_fund(FUNDER, "0xpaymaster")
    c = _mk_paymaster(funded, amount=7)
    assert c.funding_amount == 7
    assert c.total_funded == 5
    assert c.last_funding is not None


def test_configuration_validation(funded):
    with pytest.raises(ValidationError):
        _mk_paymaster(funded, amount=0)
    with pytest.raises(ValidationError):
        funded.configure_external_target(FUNDER, "0xp", TargetKind.PAYMASTER, 1, DAY, 1, "lunch")
    with pytest.raises(ValidationError):
        _mk_paymaster(funded, target="")
    with pytest.raises(NotFoundError):
        funded.check_and_fund(FUNDER, "0xunknown")
    with pytest.raises(AuthorizationError):
        funded.configure_external_target(PROPOSER, "0xp", TargetKind.PAYMASTER, 1, DAY, 1)


_WITH_OPS = {"marketing": 3000, "kol": 2000, "development": 2000, "buyback": 2000, "ops": 1000}
_WITHOUT_OPS = {"marketing": 3000, "kol": 2000, "development": 3000, "buyback": 2000}


def test_category_with_funding_target_cannot_be_dropped(funded):
    funded.update_allocation_config(ALLOC_MANAGER, _WITH_OPS)
    funded.configure_external_target(FUNDER, "0xops", TargetKind.GOVERNANCE_DAO, 1, DAY, 1, "ops")
    with pytest.raises(ValidationError, match="still referenced"):
        funded.update_allocation_config(ALLOC_MANAGER, _WITHOUT_OPS)
    assert funded.cfg.allocation.bps == _WITH_OPS
    assert funded.get_allocation("ops").target_bps == 1000


def test_trigger_all_skips_target_on_unknown_category(funded, transport, caplog):
    funded.update_allocation_config(ALLOC_MANAGER, _WITH_OPS)
    funded.configure_external_target(FUNDER, "0xops", TargetKind.GOVERNANCE_DAO, 1, DAY, 1, "ops")
    _mk_paymaster(funded, target="0xp1")
    # state loaded from a file written before the category was removed
    funded.funding.get("0xops").category = "retired"

    with caplog.at_level(logging.WARNING, logger="treasury.funding"):
        assert funded.trigger_all(FUNDER) == ["0xp1"]
    assert "0xops" in caplog.text
    assert transport.balance_of("0xp1") == 5
    assert transport.balance_of("0xops") == 0
