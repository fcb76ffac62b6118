"""
Game API Endpoints（唯讀）

職責：
1. 統計、棋盤快照
2. 回合 / 參加者查詢
3. 得獎者查詢
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import Participant
from schemas import (
    BoardResponse,
    CurrentWinnerResponse,
    GameRoundResponse,
    ParticipantResponse,
    RoundWinner,
    StatsResponse,
    WinnersResponse,
)
from core.round_manager import RoundManager
from services.stats_service import get_stats, get_board, list_participants
from services.history_service import get_winner_info, get_winners

router = APIRouter(prefix="/api", tags=["game"])
logger = logging.getLogger(__name__)


@router.get("/stats", response_model=StatsResponse)
def stats(db: Session = Depends(get_db)):
    """
    取得目前回合統計

    返回：
        - total_revenue: 已確認付款的營收（分）
        - squares_sold: 已預約 + 已售出格數
        - percent_filled / available_count / participant_count
        - current_round_number
    """
    try:
        return StatsResponse(**get_stats(db))
    except Exception as e:
        logger.error(f"Failed to fetch stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch stats")


@router.get("/game", response_model=BoardResponse)
def board(db: Session = Depends(get_db)):
    """取得目前回合、65 個方格與參加者"""
    try:
        snapshot = get_board(db)
        if not snapshot["round"]:
            raise HTTPException(status_code=404, detail="No active game round")

        return BoardResponse(
            game_round=snapshot["round"],
            squares=snapshot["squares"],
            participants=snapshot["participants"],
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch game data: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch game data")


@router.get("/game-round/{round_id}", response_model=GameRoundResponse)
def game_round(round_id: str, db: Session = Depends(get_db)):
    round_obj = RoundManager.get_round(db, round_id)
    if not round_obj:
        raise HTTPException(status_code=404, detail="Game round not found")
    return GameRoundResponse(game_round=round_obj)


@router.get("/participants", response_model=list[ParticipantResponse])
def participants(db: Session = Depends(get_db)):
    """目前回合的所有參加者（管理介面使用）"""
    try:
        current_round = RoundManager.get_current_round(db)
        if not current_round:
            raise HTTPException(status_code=404, detail="No active game round")
        return list_participants(db, current_round.id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch participants: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch participants")


@router.get("/participant/{participant_id}", response_model=ParticipantResponse)
def participant(participant_id: str, db: Session = Depends(get_db)):
    found = db.query(Participant).filter(Participant.id == participant_id).first()
    if not found:
        raise HTTPException(status_code=404, detail="Participant not found")
    return found


@router.get("/winner", response_model=CurrentWinnerResponse)
def current_winner(db: Session = Depends(get_db)):
    """
    目前回合的得獎者

    開獎後到開新回合之前會回傳得獎者，新回合開始後回傳 null
    """
    try:
        return CurrentWinnerResponse(winner=get_winner_info(db, RoundManager.get_current_round(db)))
    except Exception as e:
        logger.error(f"Error getting winner: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get winner information")


@router.get("/winner/{round_id}", response_model=CurrentWinnerResponse)
def round_winner(round_id: str, db: Session = Depends(get_db)):
    """指定回合的得獎者（收據頁面使用），沒有得獎者時回傳 null"""
    try:
        return CurrentWinnerResponse(winner=get_winner_info(db, RoundManager.get_round(db, round_id)))
    except Exception as e:
        logger.error(f"Error getting round winner: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get round winner information")


@router.get("/winners", response_model=WinnersResponse)
def winners(db: Session = Depends(get_db)):
    try:
        return WinnersResponse(winners=[
            RoundWinner(game_round=entry["round"], winner=entry["winner"])
            for entry in get_winners(db)
        ])
    except Exception as e:
        logger.error(f"Error getting all winners: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get winners information")
