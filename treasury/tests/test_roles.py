import pytest

from treasury.errors import AuthorizationError, StateError, ValidationError
from treasury.roles import CAPABILITIES, AccessControl, Operation, Role
from treasury.tests.util import ADMIN, APPROVERS, PROPOSER, SALE


def test_every_operation_has_a_capability_row():
    assert set(CAPABILITIES) == set(Operation)


def test_admin_holds_every_capability():
    ac = AccessControl(["root"])
    assert all(ac.can("root", op) for op in Operation)
    assert not ac.can("nobody", Operation.DEPOSIT)


def test_holders_include_admins():
    ac = AccessControl(["root"])
    ac.grant(Role.APPROVER, "a1")
    ac.grant(Role.EXECUTOR, "k")
    assert ac.holders(Operation.APPROVE) == ["a1", "root"]
    assert ac.holders(Operation.EXECUTE) == ["a1", "k", "root"]


def test_require_reports_caller_and_required_roles():
    ac = AccessControl(["root"])
    ac.grant(Role.DEPOSITOR, "sale")
    ac.require("sale", Operation.DEPOSIT)
    with pytest.raises(AuthorizationError) as ei:
        ac.require("sale", Operation.EXECUTE)
    d = ei.value.details
    assert d["caller"] == "sale"
    assert d["operation"] == "execute"
    assert "executor" in d["required"] and "admin" in d["required"]


def test_grant_revoke_are_idempotent_and_last_admin_is_kept():
    ac = AccessControl(["root"])
    assert ac.grant(Role.APPROVER, "a1") is True
    assert ac.grant(Role.APPROVER, "a1") is False
    assert ac.roles_of("a1") == [Role.APPROVER]
    assert ac.revoke(Role.APPROVER, "a1") is True
    assert ac.revoke(Role.APPROVER, "a1") is False
    with pytest.raises(StateError):
        ac.revoke(Role.ADMIN, "root")
    with pytest.raises(ValidationError):
        ac.grant(Role.APPROVER, "")


def test_dump_load_roundtrip():
    ac = AccessControl(["root"])
    ac.grant(Role.EMERGENCY, "g")
    again = AccessControl.load(ac.dump())
    assert again.dump() == ac.dump()
    assert again.has_role("g", Role.EMERGENCY)


def test_role_changes_through_treasury(treasury):
    assert set(treasury.roles.members(Role.APPROVER)) == set(APPROVERS)
    assert treasury.grant_role(ADMIN, Role.DEPOSITOR, "bridge") is True
    treasury.deposit("bridge", "kol", 10)
    with pytest.raises(AuthorizationError):
        treasury.grant_role(SALE, Role.DEPOSITOR, "mallory")
    treasury.revoke_role(ADMIN, Role.PROPOSER, PROPOSER)
    with pytest.raises(AuthorizationError):
        treasury.propose(PROPOSER, "0xbob", 1, "kol")
