"""
Tests for SquareStore status transitions and expiry cleanup.
"""
from datetime import timedelta

from models import Participant, PaymentStatus, Square, SquareStatus, utcnow
from core.square_store import SquareStore


def _participant(db, round_id, squares):
    participant = Participant(
        name="Bob",
        email="bob@example.com",
        phone="5550000000",
        round_id=round_id,
        squares=squares,
        total_amount=len(squares) * 1000,
        payment_status=PaymentStatus.PENDING,
    )
    db.add(participant)
    db.flush()
    return participant


def test_round_starts_with_65_available_squares(db, active_round):
    squares = SquareStore.list_for_round(db, active_round.id)

    assert [s.number for s in squares] == list(range(1, 66))
    assert all(s.status == SquareStatus.AVAILABLE for s in squares)
    assert all(s.participant_id is None for s in squares)


def test_initialize_twice_is_a_noop(db, active_round):
    again = SquareStore.initialize(db, active_round.id)
    db.commit()

    assert len(again) == 65
    assert db.query(Square).filter(Square.round_id == active_round.id).count() == 65


def test_get_returns_none_for_unknown_square(db, active_round):
    assert SquareStore.get(db, 66, active_round.id) is None
    assert SquareStore.get(db, 1, "missing-round") is None
    assert SquareStore.get(db, 1, active_round.id).number == 1


def test_set_reserved_skips_taken_squares(db, active_round):
    first = _participant(db, active_round.id, [1, 2])
    SquareStore.set_reserved(db, [1, 2], active_round.id, first.id)

    second = _participant(db, active_round.id, [2, 3])
    reserved = SquareStore.set_reserved(db, [2, 3], active_round.id, second.id)

    assert [s.number for s in reserved] == [3]
    assert SquareStore.get(db, 2, active_round.id).participant_id == first.id
    square = SquareStore.get(db, 3, active_round.id)
    assert square.status == SquareStatus.RESERVED
    assert square.reserved_at is not None


def test_set_sold_only_touches_owned_reserved_squares(db, active_round):
    alice = _participant(db, active_round.id, [1, 2])
    bob = _participant(db, active_round.id, [3])
    SquareStore.set_reserved(db, [1, 2], active_round.id, alice.id)
    SquareStore.set_reserved(db, [3], active_round.id, bob.id)

    sold = SquareStore.set_sold(db, alice.id)

    assert [s.number for s in sold] == [1, 2]
    assert all(s.sold_at is not None for s in sold)
    assert SquareStore.get(db, 3, active_round.id).status == SquareStatus.RESERVED


def test_release_clears_owner_and_timestamps(db, active_round):
    alice = _participant(db, active_round.id, [4, 5])
    SquareStore.set_reserved(db, [4, 5], active_round.id, alice.id)
    SquareStore.set_sold(db, alice.id)

    released = SquareStore.release(db, [4, 5, 6], active_round.id)

    assert [s.number for s in released] == [4, 5]
    for number in (4, 5):
        square = SquareStore.get(db, number, active_round.id)
        assert square.status == SquareStatus.AVAILABLE
        assert square.participant_id is None
        assert square.reserved_at is None
        assert square.sold_at is None


def test_cleanup_expired_releases_and_deletes_orphaned_participants(db, active_round):
    alice = _participant(db, active_round.id, [1, 2])
    SquareStore.set_reserved(db, [1, 2], active_round.id, alice.id)
    db.commit()

    later = utcnow() + timedelta(seconds=121)
    released = SquareStore.cleanup_expired(db, active_round.id, now=later)
    db.commit()

    assert [s.number for s in released] == [1, 2]
    assert db.query(Participant).filter(Participant.id == alice.id).first() is None
    assert SquareStore.get(db, 1, active_round.id).status == SquareStatus.AVAILABLE


def test_cleanup_expired_keeps_fresh_and_sold_squares(db, active_round):
    paid = _participant(db, active_round.id, [10])
    SquareStore.set_reserved(db, [10], active_round.id, paid.id)
    SquareStore.set_sold(db, paid.id)
    fresh = _participant(db, active_round.id, [11])
    SquareStore.set_reserved(db, [11], active_round.id, fresh.id)
    db.commit()

    released = SquareStore.cleanup_expired(db, active_round.id, now=utcnow() + timedelta(seconds=60))

    assert released == []
    assert SquareStore.get(db, 10, active_round.id).status == SquareStatus.SOLD
    assert SquareStore.get(db, 11, active_round.id).status == SquareStatus.RESERVED


def test_cleanup_expired_is_idempotent(db, active_round):
    alice = _participant(db, active_round.id, [7])
    SquareStore.set_reserved(db, [7], active_round.id, alice.id)
    db.commit()

    later = utcnow() + timedelta(minutes=5)
    assert len(SquareStore.cleanup_expired(db, active_round.id, now=later)) == 1
    assert SquareStore.cleanup_expired(db, active_round.id, now=later) == []
