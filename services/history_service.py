"""
Round history service.

Builds the historical views (winners, completed rounds, returning
customers, export payload) straight from the authoritative tables so
the reporting layer never has to keep its own copy.
"""
from typing import List, Dict, Any, Optional

from sqlalchemy.orm import Session

from models import Participant, Round, RoundStatus
from core.round_manager import RoundManager


def get_completed_rounds(db: Session) -> List[Round]:
    """Completed rounds, most recently completed first."""
    return (
        db.query(Round)
        .filter(Round.status == RoundStatus.COMPLETED)
        .order_by(Round.completed_at.desc().nullslast(), Round.round_number.desc())
        .all()
    )


def get_winner_info(db: Session, round_obj: Optional[Round]) -> Optional[Dict[str, Any]]:
    """
    Winner summary for a single round, or None when the round has no
    winner yet (still active, or superseded without a draw).
    """
    if not round_obj or round_obj.status != RoundStatus.COMPLETED or round_obj.winner_square is None:
        return None

    winner = RoundManager.resolve_winner(db, round_obj)
    if not winner:
        return None

    return {
        "participant_id": winner.id,
        "name": winner.name,
        "square": round_obj.winner_square,
        "total_pot": round_obj.total_revenue,
        "round_id": round_obj.id,
        "round_number": round_obj.round_number,
        "completed_at": round_obj.completed_at,
    }


def get_winners(db: Session) -> List[Dict[str, Any]]:
    """
    Every completed round that has a winning square.

    Rounds whose winning square no longer resolves to a participant
    are still listed, with winner set to None.
    """
    winners: List[Dict[str, Any]] = []

    for round_obj in get_completed_rounds(db):
        if round_obj.winner_square is None:
            continue
        winners.append({
            "round": round_obj,
            "winner": RoundManager.resolve_winner(db, round_obj),
        })

    return winners


def get_all_participants(db: Session) -> List[Participant]:
    return db.query(Participant).order_by(Participant.created_at.desc()).all()


def find_participants_by_email(db: Session, email: str) -> List[Participant]:
    return (
        db.query(Participant)
        .filter(Participant.email == email)
        .order_by(Participant.created_at.desc())
        .all()
    )


def find_participants_by_phone(db: Session, phone: str) -> List[Participant]:
    return (
        db.query(Participant)
        .filter(Participant.phone == phone)
        .order_by(Participant.created_at.desc())
        .all()
    )


def export_history(db: Session) -> List[Dict[str, Any]]:
    """
    All rounds (oldest first) with their participants and winner.

    Formatting (CSV, currency) is left to the consumer; amounts stay in cents.
    """
    rounds = db.query(Round).order_by(Round.round_number).all()
    history: List[Dict[str, Any]] = []

    for round_obj in rounds:
        participants = (
            db.query(Participant)
            .filter(Participant.round_id == round_obj.id)
            .order_by(Participant.created_at)
            .all()
        )
        history.append({
            "round": round_obj,
            "participants": participants,
            "winner": RoundManager.resolve_winner(db, round_obj),
        })

    return history
