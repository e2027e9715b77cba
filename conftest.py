import pytest

from treasury.adapters.memory import InMemoryTransport, InMemoryVesting
from treasury.events import EventBus, EventRecorder
from treasury.tests.util import SALE, FakeClock, mk_treasury


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def vesting():
    return InMemoryVesting()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def bus(recorder):
    b = EventBus()
    b.subscribe(recorder)
    return b


@pytest.fixture
def treasury(clock, transport, vesting, bus):
    return mk_treasury(clock, transport, vesting, bus)


@pytest.fixture
def funded(treasury):
    """Treasury holding 100 units split 30/20/30/20 (marketing/kol/development/buyback)."""
    treasury.deposit(SALE, "marketing", 100, "seed round")
    return treasury
