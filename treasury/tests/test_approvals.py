import pytest

from treasury.approvals import ApprovalEngine, WithdrawalProposal
from treasury.config import TimelockConfig
from treasury.domain import ProposalStatus, Provenance
from treasury.errors import AuthorizationError, InsufficientFundsError, NotFoundError, StateError, ValidationError
from treasury.ledger import AllocationLedger
from treasury.roles import Role
from treasury.tests.util import ADMIN, APPROVERS, DAO, DAY, PROPOSER, T0, WEEK, FakeClock, SALE, mk_treasury
from treasury.timelock import TimelockPolicy


def _mk_engine(threshold: int = 2) -> ApprovalEngine:
    led = AllocationLedger({"ops": 10_000})
    led.deposit("ops", 100, ts=0)
    return ApprovalEngine(led, TimelockPolicy.from_config(TimelockConfig()), threshold=threshold)


def test_propose_reserves_and_fixes_tier():
    eng = _mk_engine()
    p = eng.propose("alice", "0xbob", 15, "ops", "big", now=10)
    assert p.id == 1
    assert p.status is ProposalStatus.PENDING
    assert p.is_large_withdrawal
    assert p.execution_eligible_at == 10 + WEEK
    assert eng.ledger.get_allocation("ops").reserved == 15

    q = eng.propose("alice", "0xbob", 5, "ops", now=11)
    assert q.id == 2
    assert not q.is_large_withdrawal
    assert q.execution_eligible_at == 11 + DAY


def test_propose_validation():
    eng = _mk_engine()
    with pytest.raises(ValidationError):
        eng.propose("alice", "", 5, "ops", now=1)
    with pytest.raises(ValidationError):
        eng.propose("alice", "0xbob", 0, "ops", now=1)
    with pytest.raises(ValidationError):
        eng.propose("alice", "0xbob", 5, "nope", now=1)
    with pytest.raises(InsufficientFundsError):
        eng.propose("alice", "0xbob", 101, "ops", now=1)
    # failed proposals do not consume ids
    assert eng.propose("alice", "0xbob", 1, "ops", now=1).id == 1


def test_threshold_transition_and_duplicate_vote():
    eng = _mk_engine(threshold=2)
    p = eng.propose("alice", "0xbob", 5, "ops", now=1)
    assert eng.approve(p.id, "a1") is False
    with pytest.raises(StateError, match="already approved by this approver"):
        eng.approve(p.id, "a1")
    assert p.approval_count == 1
    assert eng.approve(p.id, "a2") is True
    assert p.status is ProposalStatus.APPROVED
    with pytest.raises(StateError, match="not pending"):
        eng.approve(p.id, "a3")


def test_cancel_only_pending_and_releases():
    eng = _mk_engine()
    p = eng.propose("alice", "0xbob", 40, "ops", now=1)
    eng.cancel(p.id, now=2)
    assert p.status is ProposalStatus.CANCELLED
    assert p.cancelled_at == 2
    assert eng.ledger.available("ops") == 100
    with pytest.raises(StateError):
        eng.cancel(p.id, now=3)

    q = eng.propose("alice", "0xbob", 5, "ops", now=4)
    eng.approve(q.id, "a1")
    eng.approve(q.id, "a2")
    with pytest.raises(StateError):
        eng.cancel(q.id, now=5)


def test_unknown_ids():
    eng = _mk_engine()
    with pytest.raises(NotFoundError):
        eng.get(42)
    with pytest.raises(NotFoundError):
        eng.approve_batch(7, "a1")


def test_batch_validation_and_reservation():
    eng = _mk_engine()
    with pytest.raises(ValidationError):
        eng.create_batch("alice", ["a", "b"], [1], "ops", now=1)
    with pytest.raises(ValidationError):
        eng.create_batch("alice", [], [], "ops", now=1)
    with pytest.raises(ValidationError):
        eng.create_batch("alice", ["a", "b"], [1, 0], "ops", now=1)
    with pytest.raises(InsufficientFundsError):
        eng.create_batch("alice", ["a", "b"], [60, 41], "ops", now=1)

    b = eng.create_batch("alice", ["a", "b", "c"], [1, 2, 3], "ops", "grants", now=1)
    assert b.total_amount == 6
    assert not b.executed
    assert eng.ledger.get_allocation("ops").reserved == 6
    eng.cancel_batch(b.id, now=2)
    assert eng.ledger.get_allocation("ops").reserved == 0


def test_proposal_serialization_roundtrip():
    eng = _mk_engine()
    p = eng.propose("alice", "0xbob", 5, "ops", "d", now=1, provenance=Provenance.GOVERNANCE, title="t")
    eng.approve(p.id, "a1")
    assert WithdrawalProposal.from_dict(p.to_dict()) == p

    other = _mk_engine()
    other.load(eng.dump())
    assert other.get(1) == p
    assert other.propose("alice", "0xbob", 1, "ops", now=2).id == 2


# --- through the aggregate ---


def test_same_approver_twice_rejected_without_counting(funded):
    p = funded.propose(PROPOSER, "0xbob", 5, "marketing")
    funded.approve(APPROVERS[0], p.id)
    with pytest.raises(StateError, match="already approved by this approver"):
        funded.approve(APPROVERS[0], p.id)
    assert funded.get_proposal(p.id).approval_count == 1
    assert funded.get_proposal(p.id).status is ProposalStatus.PENDING


def test_only_approvers_may_approve(funded):
    p = funded.propose(PROPOSER, "0xbob", 5, "marketing")
    with pytest.raises(AuthorizationError):
        funded.approve(PROPOSER, p.id)
    with pytest.raises(AuthorizationError):
        funded.propose(SALE, "0xbob", 5, "marketing")


def test_threshold_above_approver_count_blocks_approval():
    clock = FakeClock()
    t = mk_treasury(clock, threshold=3)
    t.deposit(SALE, "marketing", 100)
    p = t.propose(PROPOSER, "0xbob", 5, "marketing")
    # the admin still counts, so two approvers must go
    t.revoke_role(ADMIN, Role.APPROVER, APPROVERS[2])
    t.approve(APPROVERS[0], p.id)
    t.revoke_role(ADMIN, Role.APPROVER, APPROVERS[1])
    with pytest.raises(StateError, match="threshold exceeds approver count"):
        t.approve(APPROVERS[0], p.id)


def test_admin_vote_counts_toward_quorum(funded):
    funded.revoke_role(ADMIN, Role.APPROVER, APPROVERS[1])
    funded.revoke_role(ADMIN, Role.APPROVER, APPROVERS[2])
    p = funded.propose(PROPOSER, "0xbob", 5, "marketing")
    funded.approve(APPROVERS[0], p.id)
    funded.approve(ADMIN, p.id)
    assert funded.get_proposal(p.id).status is ProposalStatus.APPROVED


def test_vote_survives_later_revocation(funded):
    p = funded.propose(PROPOSER, "0xbob", 5, "marketing")
    funded.approve(APPROVERS[0], p.id)
    funded.revoke_role(ADMIN, Role.APPROVER, APPROVERS[0])
    funded.approve(APPROVERS[1], p.id)
    assert funded.get_proposal(p.id).approvals == [APPROVERS[0], APPROVERS[1]]
    assert funded.get_proposal(p.id).status is ProposalStatus.APPROVED


def test_cancel_releases_reservation(funded):
    p = funded.propose(PROPOSER, "0xbob", 10, "marketing")
    assert funded.get_allocation("marketing").available == 20
    funded.cancel(PROPOSER, p.id)
    assert funded.get_allocation("marketing").available == 30
    assert funded.get_proposal(p.id).status is ProposalStatus.CANCELLED


def test_governance_proposal(funded, clock):
    p = funded.create_governance_proposal(DAO, "Grant", "fund audit", 5, "development", "0xaudit", voting_period=3 * DAY)
    assert p.provenance is Provenance.GOVERNANCE
    assert p.title == "Grant"
    assert p.voting_period == 3 * DAY
    assert p.created_at == T0
    assert funded.get_allocation("development").reserved == 5

    with pytest.raises(ValidationError):
        funded.create_governance_proposal(DAO, "  ", "x", 5, "development", "0xaudit")
    with pytest.raises(AuthorizationError):
        funded.create_governance_proposal(PROPOSER, "t", "x", 5, "development", "0xaudit")
    assert funded.get_allocation("development").reserved == 5
