"""
Admin API Endpoints（Host 專用）

職責：
1. 開獎 / 手動指定得獎方格
2. 開新回合、調整單價
3. 系統重置
4. 回收逾時預約

注意：
    逾時預約不會自動回收，必須由管理介面（或任何輪詢者）呼叫 /cleanup-reservations
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import Round
from schemas import (
    CleanupResponse,
    CompleteRoundRequest,
    GameRoundResponse,
    ManualWinnerRequest,
    NewRoundRequest,
    ResetResponse,
    UpdatePriceRequest,
    WinnerResponse,
)
from core.reservation_coordinator import ReservationCoordinator
from core.round_manager import RoundManager
from core.selection_broker import SelectionBroker, get_selection_broker
from core.notifier import ChangeNotifier, EventType, get_notifier
from core.exceptions import InvalidStateError, NotFoundError, ValidationError
from services.stats_service import get_stats

router = APIRouter(prefix="/api", tags=["admin"])
logger = logging.getLogger(__name__)


def _winner_response(db: Session, round_obj: Round) -> WinnerResponse:
    winner = RoundManager.resolve_winner(db, round_obj)
    return WinnerResponse(
        winner_square=round_obj.winner_square,
        winner_id=winner.id if winner else None,
        winner_name=winner.name if winner else "Unknown",
        total_pot=round_obj.total_revenue,
        round_number=round_obj.round_number,
        game_round_id=round_obj.id,
    )


def _current_round_or_404(db: Session) -> Round:
    current_round = RoundManager.get_current_round(db)
    if not current_round:
        raise HTTPException(status_code=404, detail="No active game round")
    return current_round


@router.post("/draw-winner", response_model=WinnerResponse)
def draw_winner(
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    隨機開獎

    前置條件：
    - 目前回合尚未結束（不能重抽）
    - 至少有一格已售出
    """
    try:
        current_round = _current_round_or_404(db)
        round_obj = RoundManager.draw_winner(db, current_round.id)
        result = _winner_response(db, round_obj)

        notifier.publish(EventType.WINNER_DRAWN, result.model_dump(mode="json"))
        return result

    except HTTPException:
        raise
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to draw winner: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to draw winner")


@router.post("/manual-winner", response_model=WinnerResponse)
def manual_winner(
    request: ManualWinnerRequest,
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """手動指定得獎方格（方格必須已售出）"""
    try:
        current_round = _current_round_or_404(db)
        round_obj = RoundManager.set_manual_winner(db, current_round.id, request.square_number)
        result = _winner_response(db, round_obj)

        notifier.publish(EventType.WINNER_DRAWN, result.model_dump(mode="json"))
        return result

    except HTTPException:
        raise
    except (ValidationError, InvalidStateError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to set manual winner: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to set manual winner")


@router.post("/admin/complete-round", response_model=GameRoundResponse)
def complete_round(
    request: CompleteRoundRequest,
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """指定回合 + 指定得獎方格（與 /manual-winner 相同規則，但可指定回合）"""
    try:
        round_obj = RoundManager.set_manual_winner(db, request.game_round_id, request.winner_square)

        notifier.publish(
            EventType.WINNER_DRAWN,
            _winner_response(db, round_obj).model_dump(mode="json")
        )
        return GameRoundResponse(game_round=round_obj)

    except (ValidationError, InvalidStateError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Game round not found")
    except Exception as e:
        logger.error(f"Error completing game round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to complete game round")


@router.post("/new-round", response_model=GameRoundResponse)
def new_round(
    request: Optional[NewRoundRequest] = Body(default=None),
    db: Session = Depends(get_db),
    broker: SelectionBroker = Depends(get_selection_broker),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    開新回合

    - 舊的 ACTIVE 回合會被標記為 COMPLETED（不開獎）
    - 沒指定單價就沿用上一回合
    - commit 成功後清掉所有暫時選取
    """
    try:
        price = request.price_per_square if request else None
        round_obj = RoundManager.start_round(db, price)
        broker.reset()

        notifier.publish(EventType.GAME_RESET, {"round_number": round_obj.round_number})
        return GameRoundResponse(game_round=round_obj)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start new round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to start new round")


@router.post("/update-price", response_model=GameRoundResponse)
def update_price(
    request: UpdatePriceRequest,
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """調整目前回合單價（只限 ACTIVE 回合，必須 > 0）"""
    try:
        current_round = RoundManager.get_active_round(db)
        if not current_round:
            raise HTTPException(status_code=404, detail="No active game round")

        round_obj = RoundManager.update_price(db, current_round.id, request.price_per_square)

        notifier.publish(EventType.STATS_UPDATE, get_stats(db))
        return GameRoundResponse(game_round=round_obj)

    except HTTPException:
        raise
    except (ValidationError, InvalidStateError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update price: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update price")


@router.post("/reset-system", response_model=ResetResponse)
def reset_system(
    db: Session = Depends(get_db),
    broker: SelectionBroker = Depends(get_selection_broker),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    系統重置（無法復原）

    刪除所有回合、參加者、方格，重新建立 Round #1
    （暫時選取也一併清空）
    """
    try:
        round_obj = RoundManager.reset_system(db)
        broker.reset()

        notifier.publish(EventType.GAME_RESET, {"round_number": round_obj.round_number})
        return ResetResponse(game_round=round_obj, message="System reset to Round #1")

    except Exception as e:
        logger.error(f"Failed to reset system: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to reset system")


@router.post("/cleanup-reservations", response_model=CleanupResponse)
def cleanup_reservations(
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    回收逾時（預設 2 分鐘）仍未付款的預約

    冪等：沒有逾時的預約時回傳空列表
    """
    try:
        current_round = RoundManager.get_active_round(db)
        if not current_round:
            raise HTTPException(status_code=404, detail="No active game round found")

        cleaned = ReservationCoordinator.cleanup(db, current_round.id)

        if cleaned:
            notifier.publish(EventType.SQUARE_UPDATE, {
                "squares": cleaned,
                "status": "available",
                "participant_id": None,
                "action": "cleanup",
            })

        return CleanupResponse(
            message=f"Cleaned up {len(cleaned)} expired reservations",
            cleaned_squares=cleaned,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error cleaning up reservations: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to cleanup reservations")
