"""
Tests for SelectionBroker first-claim-wins semantics and lazy expiry.
"""
import pytest

from core.exceptions import ValidationError
from core.selection_broker import SelectionBroker


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broker(clock):
    return SelectionBroker(ttl_seconds=120, clock=clock)


def _owners(broker):
    return {entry["square"]: entry["session_id"] for entry in broker.list_active()}


def test_first_claim_wins(broker):
    broker.apply([5], "select", "session-a")
    broker.apply([5], "select", "session-b")

    assert _owners(broker) == {5: "session-a"}


def test_select_ignores_only_squares_held_by_others(broker):
    broker.apply([1, 2], "select", "session-a")
    total = broker.apply([2, 3], "select", "session-b")

    assert total == 3
    assert _owners(broker) == {1: "session-a", 2: "session-a", 3: "session-b"}


def test_deselect_only_by_owner(broker):
    broker.apply([7], "select", "session-a")

    broker.apply([7], "deselect", "session-b")
    assert _owners(broker) == {7: "session-a"}

    broker.apply([7], "deselect", "session-a")
    assert _owners(broker) == {}


def test_clear_removes_only_own_selections(broker):
    broker.apply([1, 2], "select", "session-a")
    broker.apply([3], "select", "session-b")

    broker.apply([], "clear", "session-a")

    assert _owners(broker) == {3: "session-b"}


def test_selection_expires_after_ttl(broker, clock):
    broker.apply([9], "select", "session-a")

    clock.advance(120)
    assert 9 in _owners(broker)

    clock.advance(1)
    assert broker.list_active() == []


def test_stale_claim_can_be_taken_over(broker, clock):
    broker.apply([4], "select", "session-a")
    clock.advance(121)

    broker.apply([4], "select", "session-b")

    assert _owners(broker) == {4: "session-b"}


def test_reselect_refreshes_timestamp(broker, clock):
    broker.apply([6], "select", "session-a")
    clock.advance(100)
    broker.apply([6], "select", "session-a")
    clock.advance(100)

    assert _owners(broker) == {6: "session-a"}


def test_missing_session_is_anonymous(broker):
    broker.apply([12], "select", None)

    assert _owners(broker) == {12: "anonymous"}


def test_unknown_action_is_rejected(broker):
    with pytest.raises(ValidationError):
        broker.apply([1], "grab", "session-a")


def test_discard_and_reset(broker):
    broker.apply([1, 2, 3], "select", "session-a")

    broker.discard([2])
    assert sorted(_owners(broker)) == [1, 3]

    broker.reset()
    assert broker.list_active() == []


@pytest.mark.parametrize("squares", [[0], [66], [-3, 5]])
def test_out_of_range_squares_are_rejected(broker, squares):
    with pytest.raises(ValidationError):
        broker.apply(squares, "select", "session-a")

    assert broker.list_active() == []
