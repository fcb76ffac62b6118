"""
Reservation API Endpoints

職責：
1. 預約方格（建立參加者）
2. 確認付款
3. 取消預約

所有業務邏輯集中在 ReservationCoordinator，這裡只做：
- 找出目前回合
- 異常轉成 HTTP 狀態碼
- commit 成功後發送通知
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    CancelResponse,
    ParticipantResponse,
    PaymentConfirmResponse,
    ReservationForm,
    ReservationResponse,
    SquareResponse,
)
from core.reservation_coordinator import ReservationCoordinator
from core.round_manager import RoundManager
from core.selection_broker import SelectionBroker, get_selection_broker
from core.notifier import ChangeNotifier, EventType, get_notifier
from core.exceptions import (
    InvalidStateError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)
from services.stats_service import get_stats

router = APIRouter(prefix="/api", tags=["reservations"])
logger = logging.getLogger(__name__)


@router.post("/reserve", response_model=ReservationResponse)
def reserve(
    form: ReservationForm,
    db: Session = Depends(get_db),
    broker: SelectionBroker = Depends(get_selection_broker),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    預約方格並建立參加者

    前置條件：
    - 必須有 ACTIVE 回合
    - 所有方格都必須是 AVAILABLE（全有或全無）

    流程：
    1. 預約（同一個 transaction 內檢查 + 寫入）
    2. 移除這些方格的暫時選取
    3. 通知 SQUARE_UPDATE / STATS_UPDATE

    返回：
        - participant: 新建立的參加者（payment_status = pending）

    錯誤：
        - 409: 有方格無法預約，detail.unavailable_squares 列出衝突的方格
    """
    try:
        current_round = RoundManager.get_active_round(db)
        if not current_round:
            raise HTTPException(status_code=400, detail="No active game round")

        participant = ReservationCoordinator.reserve(db, form, current_round.id)
        payload = ParticipantResponse.model_validate(participant)

        broker.discard(form.squares)
        notifier.publish(EventType.SQUARE_UPDATE, {
            "squares": payload.squares,
            "status": "reserved",
            "participant_id": payload.id,
            "action": "reserve",
        })
        notifier.publish(EventType.STATS_UPDATE, get_stats(db))

        return ReservationResponse(participant=payload)

    except HTTPException:
        raise
    except UnavailableError as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "unavailable_squares": e.numbers}
        )
    except (ValidationError, InvalidStateError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to reserve squares: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to reserve squares")


@router.post("/confirm-payment/{participant_id}", response_model=PaymentConfirmResponse)
def confirm_payment(
    participant_id: str,
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    確認付款（管理者手動確認）

    效果：
    - 參加者 PENDING -> PAID
    - 方格 RESERVED -> SOLD
    - 回合營收 += total_amount
    """
    try:
        participant, squares = ReservationCoordinator.confirm_payment(db, participant_id)
        payload = ParticipantResponse.model_validate(participant)
        sold = [SquareResponse.model_validate(square) for square in squares]

        notifier.publish(EventType.SQUARE_UPDATE, {
            "squares": payload.squares,
            "status": "sold",
            "participant_id": payload.id,
            "action": "confirm",
        })
        notifier.publish(EventType.PARTICIPANT_ADDED, payload.model_dump(mode="json"))
        notifier.publish(EventType.STATS_UPDATE, get_stats(db))

        return PaymentConfirmResponse(participant=payload, squares=sold)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Participant not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to confirm payment: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to confirm payment")


@router.post("/cancel-reservation/{participant_id}", response_model=CancelResponse)
def cancel_reservation(
    participant_id: str,
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    取消預約（只限尚未付款）

    效果：
    - 方格釋放回 AVAILABLE
    - 刪除參加者
    - 暫時選取不受影響
    """
    try:
        released = ReservationCoordinator.cancel(db, participant_id)

        notifier.publish(EventType.SQUARE_UPDATE, {
            "squares": released,
            "status": "available",
            "participant_id": None,
            "action": "cancel",
        })

        return CancelResponse(released_squares=released)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Participant not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to cancel reservation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to cancel reservation")
