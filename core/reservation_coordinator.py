"""
Reservation Coordinator：把「想買」變成「已預約」，再變成「已售出」的唯一路徑

職責：
1. 預約：驗證方格全部可用 -> 建立參加者 -> 預約方格（全有或全無）
2. 確認付款：參加者 PENDING -> PAID，方格 RESERVED -> SOLD，累加回合營收
3. 取消預約：只限 PENDING，釋放方格並刪除參加者
4. 回收逾時預約

並發安全：
- 預約的「檢查 + 寫入」在同一個 transaction 內完成
- 方格先用 SELECT ... FOR UPDATE 鎖住，寫入用條件式 UPDATE
- 實際寫入筆數少於要求的數量，就整筆 rollback 並回報衝突的方格
"""
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from models import (
    BOARD_SIZE,
    Participant,
    PaymentStatus,
    Round,
    RoundStatus,
    Square,
    SquareStatus,
)
from core.locks import with_participant_lock, with_round_lock, with_squares_lock
from core.square_store import SquareStore
from core.exceptions import (
    InvalidStateError,
    ParticipantNotFound,
    RoundNotFound,
    UnavailableError,
    ValidationError,
)
from database import settings, transactional

logger = logging.getLogger(__name__)


def validate_square_numbers(numbers: Iterable[int]) -> List[int]:
    """
    檢查方格編號：至少一格、介於 1-65、不可重複

    返回：
        原順序的編號列表

    異常：
        ValidationError: 任何一項不符合
    """
    numbers = list(numbers or [])
    if not numbers:
        raise ValidationError("At least one square must be selected")

    out_of_range = [n for n in numbers if not 1 <= n <= BOARD_SIZE]
    if out_of_range:
        raise ValidationError(
            f"Invalid square numbers {out_of_range}. Must be between 1-{BOARD_SIZE}."
        )

    if len(set(numbers)) != len(numbers):
        raise ValidationError("Duplicate square numbers in request")

    return numbers


class ReservationCoordinator:
    """預約流程協調器"""

    @staticmethod
    @transactional
    def reserve(db: Session, form, round_id: str) -> Participant:
        """
        預約方格並建立參加者（全有或全無）

        流程：
        1. 驗證方格編號
        2. 確認回合存在且是 ACTIVE
        3. 鎖定方格並檢查全部 AVAILABLE，有任何一格不行就整筆拒絕
        4. 建立參加者（總金額 = 格數 x 單價，付款狀態 PENDING）
        5. 條件式預約方格，寫入筆數不符就 rollback

        參數：
            db: SQLAlchemy Session
            form: 含 name / email / phone / squares 的表單
            round_id: 目標回合

        返回：
            新建立的 Participant

        異常：
            ValidationError: 方格編號不合法
            RoundNotFound: 回合不存在
            InvalidStateError: 回合已結束
            UnavailableError: 有方格無法預約（列出衝突的編號）
        """
        numbers = validate_square_numbers(form.squares)

        round_obj = db.query(Round).filter(Round.id == round_id).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        if round_obj.status != RoundStatus.ACTIVE:
            raise InvalidStateError(
                f"Round {round_obj.round_number} is not accepting reservations"
            )

        # 1. 檢查（持有行級鎖）
        squares = with_squares_lock(numbers, round_id, db).all()
        by_number = {square.number: square for square in squares}
        unavailable = [
            n for n in numbers
            if n not in by_number or by_number[n].status != SquareStatus.AVAILABLE
        ]
        if unavailable:
            logger.warning(
                f"Reservation rejected in round {round_obj.round_number}: "
                f"squares {unavailable} not available"
            )
            raise UnavailableError(unavailable)

        # 2. 建立參加者
        participant = Participant(
            name=form.name,
            email=form.email,
            phone=form.phone,
            round_id=round_id,
            squares=numbers,
            total_amount=len(numbers) * round_obj.price_per_square,
            payment_status=PaymentStatus.PENDING,
        )
        db.add(participant)
        db.flush()

        # 3. 寫入（條件式 UPDATE，被別人搶走的格子不會被寫入）
        reserved = SquareStore.set_reserved(db, numbers, round_id, participant.id)
        if len(reserved) != len(numbers):
            taken = sorted(set(numbers) - {square.number for square in reserved})
            logger.warning(
                f"Reservation lost race in round {round_obj.round_number}: squares {taken}"
            )
            raise UnavailableError(taken)

        logger.info(
            f"Participant {participant.id} reserved squares {numbers} "
            f"in round {round_obj.round_number} for {participant.total_amount} cents"
        )
        return participant

    @staticmethod
    @transactional
    def confirm_payment(db: Session, participant_id: str) -> Tuple[Participant, List[Square]]:
        """
        確認付款

        流程：
        1. 參加者 PENDING -> PAID
        2. 參加者的方格 RESERVED -> SOLD
        3. 參加者所屬回合的營收加上 total_amount

        返回：
            (Participant, 被轉成 SOLD 的方格)

        異常：
            ParticipantNotFound: 參加者不存在（可能已逾時被回收）
            InvalidStateError: 已經付過款（避免營收重複累加）
        """
        participant = with_participant_lock(participant_id, db).first()
        if not participant:
            raise ParticipantNotFound(participant_id)
        if participant.payment_status == PaymentStatus.PAID:
            raise InvalidStateError(f"Participant {participant_id} has already paid")

        participant.payment_status = PaymentStatus.PAID
        squares = SquareStore.set_sold(db, participant_id)

        round_obj = with_round_lock(participant.round_id, db).first()
        if not round_obj:
            raise RoundNotFound(participant.round_id)
        round_obj.total_revenue += participant.total_amount
        db.flush()

        logger.info(
            f"Payment confirmed for participant {participant_id}: "
            f"squares {[s.number for s in squares]} sold, "
            f"round {round_obj.round_number} revenue now {round_obj.total_revenue}"
        )
        return participant, squares

    @staticmethod
    @transactional
    def cancel(db: Session, participant_id: str) -> List[int]:
        """
        取消預約（只限尚未付款）

        返回：
            被釋放的方格編號

        異常：
            ParticipantNotFound: 參加者不存在
            InvalidStateError: 已付款的預約不能取消
        """
        participant = with_participant_lock(participant_id, db).first()
        if not participant:
            raise ParticipantNotFound(participant_id)
        if participant.payment_status != PaymentStatus.PENDING:
            raise InvalidStateError("Cannot cancel paid reservation")

        owned = [s.number for s in SquareStore.list_for_participant(db, participant_id)]
        released = SquareStore.release(db, owned, participant.round_id)
        db.delete(participant)
        db.flush()

        numbers = [square.number for square in released]
        logger.info(f"Reservation {participant_id} cancelled, released squares {numbers}")
        return numbers

    @staticmethod
    @transactional
    def cleanup(db: Session, round_id: str, now: Optional[datetime] = None) -> List[int]:
        """
        回收逾時的預約（冪等：沒有逾時的預約就回傳空列表）

        返回：
            被回收的方格編號（給通知用）
        """
        expired = SquareStore.cleanup_expired(
            db,
            round_id,
            timeout_ms=settings.reservation_timeout_ms,
            now=now
        )
        return [square.number for square in expired]
