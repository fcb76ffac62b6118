"""
Square Store：每個回合 65 個方格的權威狀態

職責：
1. 建立回合的方格（1..65，全部 AVAILABLE）
2. 方格狀態轉換：AVAILABLE -> RESERVED -> SOLD，或 RESERVED/SOLD -> AVAILABLE
3. 回收逾時未付款的預約

注意：
- 這裡的函式只 flush，不 commit，交由外層 @transactional 處理
- 查無資料回傳 None，不拋異常（由呼叫者決定要不要失敗）
"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from models import BOARD_SIZE, Participant, Square, SquareStatus, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RESERVATION_TIMEOUT_MS = 120000


class SquareStore:
    """方格狀態管理器"""

    @staticmethod
    def initialize(db: Session, round_id: str) -> List[Square]:
        """
        建立回合的 65 個方格

        冪等：如果這個回合已經有方格，直接回傳既有的方格，不會重複建立
        （資料表上也有 (round_id, number) 的唯一約束）

        參數：
            db: SQLAlchemy Session
            round_id: Round 的 id

        返回：
            依編號排序的方格列表
        """
        existing = SquareStore.list_for_round(db, round_id)
        if existing:
            logger.warning(
                f"Squares already initialized for round {round_id}, skipping"
            )
            return existing

        squares = [
            Square(number=number, round_id=round_id, status=SquareStatus.AVAILABLE)
            for number in range(1, BOARD_SIZE + 1)
        ]
        db.add_all(squares)
        db.flush()

        logger.info(f"Initialized {len(squares)} squares for round {round_id}")
        return squares

    @staticmethod
    def get(db: Session, number: int, round_id: str) -> Optional[Square]:
        return db.query(Square).filter(
            Square.round_id == round_id,
            Square.number == number
        ).first()

    @staticmethod
    def list_for_round(db: Session, round_id: str) -> List[Square]:
        return db.query(Square).filter(
            Square.round_id == round_id
        ).order_by(Square.number).all()

    @staticmethod
    def list_for_participant(db: Session, participant_id: str) -> List[Square]:
        return db.query(Square).filter(
            Square.participant_id == participant_id
        ).order_by(Square.number).all()

    @staticmethod
    def set_reserved(
        db: Session,
        numbers: Iterable[int],
        round_id: str,
        participant_id: str
    ) -> List[Square]:
        """
        預約方格（逐格盡力而為）

        只有 AVAILABLE 的方格會被轉成 RESERVED，已被占用的方格直接略過
        所以可能只成功一部分，呼叫者必須自己比對回傳結果

        實作上是一條條件式 UPDATE（WHERE status = 'available'），
        檢查與寫入由資料庫一次完成，不會有兩個請求同時搶到同一格

        參數：
            db: SQLAlchemy Session
            numbers: 方格編號
            round_id: Round 的 id
            participant_id: 擁有者

        返回：
            實際被轉成 RESERVED 的方格
        """
        numbers = list(numbers)
        if not numbers:
            return []

        now = utcnow()
        db.query(Square).filter(
            Square.round_id == round_id,
            Square.number.in_(numbers),
            Square.status == SquareStatus.AVAILABLE
        ).update(
            {
                Square.status: SquareStatus.RESERVED,
                Square.participant_id: participant_id,
                Square.reserved_at: now,
                Square.updated_at: now,
            },
            synchronize_session="fetch"
        )
        db.flush()

        return db.query(Square).filter(
            Square.round_id == round_id,
            Square.number.in_(numbers),
            Square.participant_id == participant_id,
            Square.status == SquareStatus.RESERVED
        ).order_by(Square.number).all()

    @staticmethod
    def set_sold(db: Session, participant_id: str) -> List[Square]:
        """
        把參加者所有 RESERVED 的方格轉成 SOLD

        返回：
            被轉成 SOLD 的方格
        """
        now = utcnow()
        squares = db.query(Square).filter(
            Square.participant_id == participant_id,
            Square.status == SquareStatus.RESERVED
        ).order_by(Square.number).all()

        for square in squares:
            square.status = SquareStatus.SOLD
            square.sold_at = now

        db.flush()
        return squares

    @staticmethod
    def release(db: Session, numbers: Iterable[int], round_id: str) -> List[Square]:
        """
        釋放方格：RESERVED 或 SOLD -> AVAILABLE

        不論目前是哪個狀態，都會清掉擁有者和時間戳
        已經是 AVAILABLE 的方格不在回傳結果內

        返回：
            被釋放的方格
        """
        released = []
        for number in numbers:
            square = SquareStore.get(db, number, round_id)
            if square is None or square.status == SquareStatus.AVAILABLE:
                continue
            square.status = SquareStatus.AVAILABLE
            square.participant_id = None
            square.reserved_at = None
            square.sold_at = None
            released.append(square)

        db.flush()
        return released

    @staticmethod
    def cleanup_expired(
        db: Session,
        round_id: str,
        timeout_ms: int = DEFAULT_RESERVATION_TIMEOUT_MS,
        now: Optional[datetime] = None
    ) -> List[Square]:
        """
        回收逾時的預約

        流程：
        1. 找出 reserved_at 早於 (now - timeout) 的 RESERVED 方格
        2. 釋放這些方格
        3. 原本的擁有者如果已經沒有任何方格，刪除該參加者

        參數：
            db: SQLAlchemy Session
            round_id: Round 的 id
            timeout_ms: 預約有效時間（毫秒），預設 2 分鐘
            now: 目前時間（測試用，預設為 UTC now）

        返回：
            被釋放的方格（沒有逾時的預約時回傳空列表）
        """
        cutoff = (now or utcnow()) - timedelta(milliseconds=timeout_ms)

        expired = db.query(Square).filter(
            Square.round_id == round_id,
            Square.status == SquareStatus.RESERVED,
            Square.reserved_at < cutoff
        ).order_by(Square.number).all()

        if not expired:
            return []

        owner_ids = {square.participant_id for square in expired if square.participant_id}

        for square in expired:
            square.status = SquareStatus.AVAILABLE
            square.participant_id = None
            square.reserved_at = None
        db.flush()

        removed = 0
        for participant_id in owner_ids:
            participant = db.query(Participant).filter(
                Participant.id == participant_id
            ).first()
            if participant is None:
                continue
            remaining = SquareStore.list_for_participant(db, participant_id)
            if remaining:
                # 只剩部分方格：讓 participant.squares 跟實際擁有的方格一致
                participant.squares = [square.number for square in remaining]
                continue
            db.delete(participant)
            removed += 1
        db.flush()

        logger.info(
            f"Cleaned up {len(expired)} expired reservations and "
            f"{removed} participants in round {round_id}"
        )
        return expired
