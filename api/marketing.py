"""
Marketing / History API Endpoints

只提供資料，報表格式（CSV、金額顯示）由前端處理
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    ExportResponse,
    HistoryResponse,
    ParticipantsResponse,
    RoundExport,
    RoundWinner,
    WinnersResponse,
)
from services.history_service import (
    export_history,
    find_participants_by_email,
    find_participants_by_phone,
    get_all_participants,
    get_completed_rounds,
    get_winners,
)

router = APIRouter(prefix="/api", tags=["marketing"])
logger = logging.getLogger(__name__)


@router.get("/marketing/participants", response_model=ParticipantsResponse)
def all_participants(db: Session = Depends(get_db)):
    try:
        return ParticipantsResponse(participants=get_all_participants(db))
    except Exception as e:
        logger.error(f"Error getting all participants: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch participants")


@router.get("/marketing/winners", response_model=WinnersResponse)
def winner_history(db: Session = Depends(get_db)):
    try:
        return WinnersResponse(winners=[
            RoundWinner(game_round=entry["round"], winner=entry["winner"])
            for entry in get_winners(db)
        ])
    except Exception as e:
        logger.error(f"Error getting winners: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch winners")


@router.get("/marketing/history", response_model=HistoryResponse)
def round_history(db: Session = Depends(get_db)):
    try:
        return HistoryResponse(game_rounds=get_completed_rounds(db))
    except Exception as e:
        logger.error(f"Error getting game history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch game history")


@router.get("/marketing/participant/email/{email}", response_model=ParticipantsResponse)
def participants_by_email(email: str, db: Session = Depends(get_db)):
    """回頭客查詢（依 email）"""
    try:
        return ParticipantsResponse(participants=find_participants_by_email(db, email))
    except Exception as e:
        logger.error(f"Error getting participant by email: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch participant")


@router.get("/marketing/participant/phone/{phone}", response_model=ParticipantsResponse)
def participants_by_phone(phone: str, db: Session = Depends(get_db)):
    """回頭客查詢（依電話）"""
    try:
        return ParticipantsResponse(participants=find_participants_by_phone(db, phone))
    except Exception as e:
        logger.error(f"Error getting participant by phone: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch participant")


@router.get("/export", response_model=ExportResponse)
def export(db: Session = Depends(get_db)):
    """所有回合 + 參加者 + 得獎者（給報表用）"""
    try:
        return ExportResponse(
            rounds=[
                RoundExport(
                    game_round=entry["round"],
                    participants=entry["participants"],
                    winner=entry["winner"],
                )
                for entry in export_history(db)
            ],
            export_date=datetime.now(timezone.utc),
        )
    except Exception as e:
        logger.error(f"Failed to export data: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to export data")
