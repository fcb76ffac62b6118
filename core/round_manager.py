"""
Round Manager：管理 Round 的完整生命週期

職責：
1. 開新回合（舊的 ACTIVE 回合直接標記 COMPLETED，不強制開獎）
2. 調整單價（只限 ACTIVE 回合）
3. 結束回合：隨機開獎 / 手動指定得獎方格
4. 系統重置：刪除所有歷史資料，從 Round #1 重新開始

狀態機：
    ACTIVE --(draw_winner | set_manual_winner)--> COMPLETED
    ACTIVE --(start_round)--> COMPLETED（無得獎者）+ 新的 ACTIVE 回合
    reset_system：清空一切後重新進入 Round #1
"""
import enum
import random
from typing import Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import (
    BOARD_SIZE,
    Participant,
    Round,
    RoundStatus,
    Square,
    SquareStatus,
    utcnow,
)
from core.locks import with_active_round_lock, with_round_lock
from core.square_store import SquareStore
from core.exceptions import (
    InvalidStateError,
    RoundNotFound,
    ValidationError,
)
from database import settings, transactional

logger = logging.getLogger(__name__)


class CompletionSource(str, enum.Enum):
    DRAW = "draw"
    MANUAL = "manual"


def _validate_price(price_cents: int) -> int:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents <= 0:
        raise ValidationError("Price per square must be a positive number")
    return price_cents


class RoundManager:
    """Round 生命週期管理器"""

    @staticmethod
    def get_round(db: Session, round_id: str) -> Optional[Round]:
        return db.query(Round).filter(Round.id == round_id).first()

    @staticmethod
    def get_active_round(db: Session) -> Optional[Round]:
        return db.query(Round).filter(
            Round.status == RoundStatus.ACTIVE
        ).order_by(Round.round_number.desc()).first()

    @staticmethod
    def get_current_round(db: Session) -> Optional[Round]:
        """
        取得目前回合

        優先回傳 ACTIVE 回合；沒有的話回傳最近一個回合
        （開獎後、開新回合前，前端仍然要看得到得獎結果）
        """
        active = RoundManager.get_active_round(db)
        if active:
            return active
        return db.query(Round).order_by(Round.round_number.desc()).first()

    @staticmethod
    def _start_round(db: Session, price_cents: Optional[int] = None) -> Round:
        # 1. 下一個回合編號
        max_number = db.query(func.max(Round.round_number)).scalar()
        round_number = (max_number or 0) + 1

        # 2. 舊的 ACTIVE 回合只翻狀態，不開獎
        previous = None
        for active in with_active_round_lock(db).all():
            active.status = RoundStatus.COMPLETED
            previous = active
            logger.info(f"Round {active.round_number} superseded without a winner")

        # 3. 價格：指定 > 上一回合 > 預設
        if price_cents is not None:
            price = _validate_price(price_cents)
        else:
            latest = previous or db.query(Round).order_by(Round.round_number.desc()).first()
            price = latest.price_per_square if latest else settings.default_price_per_square

        # 4. 建立回合與方格
        round_obj = Round(
            round_number=round_number,
            status=RoundStatus.ACTIVE,
            price_per_square=price,
            total_revenue=0,
        )
        db.add(round_obj)
        db.flush()

        SquareStore.initialize(db, round_obj.id)

        logger.info(
            f"Started round {round_number} ({round_obj.id}) at {price} cents per square"
        )
        return round_obj

    @staticmethod
    @transactional
    def start_round(db: Session, price_cents: Optional[int] = None) -> Round:
        """
        開新回合

        流程：
        1. 回合編號 = 目前最大編號 + 1（沒有任何回合時為 1）
        2. 舊的 ACTIVE 回合標記為 COMPLETED（不指定得獎者）
        3. 建立新的 ACTIVE 回合並初始化 65 格

        暫時選取不在這裡清，由呼叫端在 commit 成功後處理

        參數：
            db: SQLAlchemy Session
            price_cents: 單價（分），沒給就沿用上一回合，再沒有就用預設值

        返回：
            新的 Round

        異常：
            ValidationError: 價格 <= 0
        """
        return RoundManager._start_round(db, price_cents)

    @staticmethod
    @transactional
    def ensure_active_round(db: Session) -> Round:
        """
        啟動時呼叫：完全沒有回合時建立 Round #1

        已經有回合（不論是否 ACTIVE）就回傳目前回合，不做任何事
        """
        current = RoundManager.get_current_round(db)
        if current:
            return current
        logger.info("No rounds found, seeding round 1")
        return RoundManager._start_round(db)

    @staticmethod
    @transactional
    def update_price(db: Session, round_id: str, price_cents: int) -> Round:
        """
        調整單價（只限 ACTIVE 回合）

        異常：
            ValidationError: 價格 <= 0
            RoundNotFound: 回合不存在
            InvalidStateError: 回合已結束
        """
        price = _validate_price(price_cents)

        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        if round_obj.status != RoundStatus.ACTIVE:
            raise InvalidStateError(
                f"Cannot change price of completed round {round_obj.round_number}"
            )

        round_obj.price_per_square = price
        db.flush()

        logger.info(f"Round {round_obj.round_number} price updated to {price} cents")
        return round_obj

    @staticmethod
    def _complete_round(
        db: Session,
        round_obj: Round,
        square_number: int,
        source: CompletionSource
    ) -> Round:
        """
        兩種結束方式共用的狀態轉換：ACTIVE -> COMPLETED 並記錄得獎方格

        呼叫前必須已確認回合是 ACTIVE、方格是 SOLD
        """
        round_obj.status = RoundStatus.COMPLETED
        round_obj.winner_square = square_number
        round_obj.completed_at = utcnow()
        db.flush()

        logger.info(
            f"Round {round_obj.round_number} completed by {source.value}: "
            f"winning square {square_number}"
        )
        return round_obj

    @staticmethod
    def _lock_active_round(db: Session, round_id: str) -> Round:
        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        if round_obj.status == RoundStatus.COMPLETED:
            raise InvalidStateError(
                "Round is already completed. Start a new round to draw another winner."
            )
        return round_obj

    @staticmethod
    @transactional
    def draw_winner(db: Session, round_id: str) -> Round:
        """
        隨機開獎：在所有 SOLD 的方格中均勻抽一格

        異常：
            RoundNotFound: 回合不存在
            InvalidStateError: 回合已結束（不能重抽）或沒有已售出的方格
        """
        round_obj = RoundManager._lock_active_round(db, round_id)

        sold = db.query(Square).filter(
            Square.round_id == round_id,
            Square.status == SquareStatus.SOLD
        ).order_by(Square.number).all()
        if not sold:
            raise InvalidStateError("No sold squares to draw from")

        winner = random.choice(sold)
        return RoundManager._complete_round(db, round_obj, winner.number, CompletionSource.DRAW)

    @staticmethod
    @transactional
    def set_manual_winner(db: Session, round_id: str, square_number: int) -> Round:
        """
        手動指定得獎方格（例如現場由雞決定）

        異常：
            ValidationError: 方格編號不在 1-65
            RoundNotFound: 回合不存在
            InvalidStateError: 回合已結束或該方格尚未售出
        """
        if isinstance(square_number, bool) or not isinstance(square_number, int) \
                or not 1 <= square_number <= BOARD_SIZE:
            raise ValidationError(
                f"Invalid square number. Must be between 1-{BOARD_SIZE}."
            )

        round_obj = RoundManager._lock_active_round(db, round_id)

        square = SquareStore.get(db, square_number, round_id)
        if not square or square.status != SquareStatus.SOLD:
            raise InvalidStateError("Square must be sold to be selected as winner")

        return RoundManager._complete_round(db, round_obj, square_number, CompletionSource.MANUAL)

    @staticmethod
    def resolve_winner(db: Session, round_obj: Round) -> Optional[Participant]:
        """回傳目前擁有得獎方格的參加者（沒有得獎者時回傳 None）"""
        if round_obj.winner_square is None:
            return None
        square = SquareStore.get(db, round_obj.winner_square, round_obj.id)
        if not square or not square.participant_id:
            return None
        return db.query(Participant).filter(
            Participant.id == square.participant_id
        ).first()

    @staticmethod
    @transactional
    def reset_system(db: Session) -> Round:
        """
        系統重置（無法復原）

        刪除所有回合、參加者、方格，然後重新建立 Round #1（預設單價）
        """
        squares = db.query(Square).delete(synchronize_session=False)
        participants = db.query(Participant).delete(synchronize_session=False)
        rounds = db.query(Round).delete(synchronize_session=False)
        db.expire_all()

        logger.warning(
            f"System reset: deleted {rounds} rounds, {participants} participants, "
            f"{squares} squares"
        )
        return RoundManager._start_round(db, settings.default_price_per_square)
