"""
統計服務：從目前回合的方格與參加者即時算出統計數字

純計算邏輯，不存任何衍生欄位
"""
import math
from typing import Any, Dict

from sqlalchemy.orm import Session

from models import BOARD_SIZE, Participant, Square, SquareStatus
from core.round_manager import RoundManager


def percent_filled(squares_sold: int) -> int:
    """四捨五入到整數百分比（.5 進位）"""
    return int(math.floor(squares_sold / BOARD_SIZE * 100 + 0.5))


def get_stats(db: Session) -> Dict[str, Any]:
    """
    取得目前回合的統計

    規則：
    - squares_sold = RESERVED + SOLD 的格數（已預約也算）
    - percent_filled = round(squares_sold / 65 * 100)
    - 完全沒有回合時回傳全 0、available_count = 65、current_round_number = 1

    參數：
        db: SQLAlchemy Session

    返回：
        total_revenue / participant_count / squares_sold /
        percent_filled / available_count / current_round_number
    """
    current_round = RoundManager.get_current_round(db)
    if not current_round:
        return {
            "total_revenue": 0,
            "participant_count": 0,
            "squares_sold": 0,
            "percent_filled": 0,
            "available_count": BOARD_SIZE,
            "current_round_number": 1,
        }

    participant_count = db.query(Participant).filter(
        Participant.round_id == current_round.id
    ).count()

    squares_sold = db.query(Square).filter(
        Square.round_id == current_round.id,
        Square.status.in_([SquareStatus.RESERVED, SquareStatus.SOLD])
    ).count()

    return {
        "total_revenue": current_round.total_revenue,
        "participant_count": participant_count,
        "squares_sold": squares_sold,
        "percent_filled": percent_filled(squares_sold),
        "available_count": BOARD_SIZE - squares_sold,
        "current_round_number": current_round.round_number,
    }


def get_board(db: Session) -> Dict[str, Any]:
    """
    取得目前回合的棋盤快照

    返回：
        {"round": Round | None, "squares": [Square], "participants": [Participant]}
    """
    current_round = RoundManager.get_current_round(db)
    if not current_round:
        return {"round": None, "squares": [], "participants": []}

    squares = db.query(Square).filter(
        Square.round_id == current_round.id
    ).order_by(Square.number).all()
    participants = list_participants(db, current_round.id)

    return {"round": current_round, "squares": squares, "participants": participants}


def list_participants(db: Session, round_id: str):
    return db.query(Participant).filter(
        Participant.round_id == round_id
    ).order_by(Participant.created_at).all()
