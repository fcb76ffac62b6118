"""
Tests for ChangeNotifier fan-out and state version.
"""
from core.notifier import ChangeNotifier, EventType


def test_publish_fans_out_and_bumps_version():
    notifier = ChangeNotifier()
    first, second = [], []
    notifier.subscribe(first.append)
    notifier.subscribe(second.append)

    delivered = notifier.publish(EventType.SQUARE_UPDATE, {"squares": [1]})

    assert delivered == 2
    assert notifier.version == 1
    assert first == second == [
        {"type": "SQUARE_UPDATE", "data": {"squares": [1]}, "version": 1}
    ]


def test_unsubscribed_observer_misses_events():
    notifier = ChangeNotifier()
    received = []
    token = notifier.subscribe(received.append)
    notifier.unsubscribe(token)

    assert notifier.publish(EventType.GAME_RESET, {"round_number": 2}) == 0
    assert received == []
    assert notifier.version == 1


def test_failing_observer_is_dropped():
    notifier = ChangeNotifier()
    received = []

    def broken(event):
        raise RuntimeError("connection closed")

    notifier.subscribe(broken)
    notifier.subscribe(received.append)

    assert notifier.publish(EventType.STATS_UPDATE) == 1
    assert notifier.observer_count == 1
    assert notifier.publish(EventType.STATS_UPDATE) == 1
    assert len(received) == 2
