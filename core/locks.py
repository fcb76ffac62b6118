"""
並發控制工具

提供 Database-level 的鎖定機制，防止競態條件（Race Condition）

主要使用 PostgreSQL 的 SELECT ... FOR UPDATE 來實現悲觀鎖（Pessimistic Locking）
SQLite 會忽略 FOR UPDATE，但 SQLite 的寫入本身就是序列化的
"""
from typing import Iterable

from sqlalchemy.orm import Session, Query

from models import Round, Square, Participant, RoundStatus


def with_round_lock(round_id: str, db: Session) -> Query:
    """
    鎖定一個 Round（行級鎖）

    使用場景：
    - 開獎、手動指定得獎者時（防止重複開獎）
    - 累加營收時

    範例：
        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        round_obj.total_revenue += amount

    參數：
        round_id: Round 的 id
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）

    注意：
        - nowait=False 表示如果鎖被佔用，會等待（避免 deadlock）
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(Round).filter(
        Round.id == round_id
    ).with_for_update(nowait=False)


def with_active_round_lock(db: Session) -> Query:
    """
    鎖定目前 ACTIVE 的 Round

    使用場景：
    - 開新回合時，把舊的 ACTIVE 回合改成 COMPLETED
    """
    return db.query(Round).filter(
        Round.status == RoundStatus.ACTIVE
    ).with_for_update(nowait=False)


def with_squares_lock(numbers: Iterable[int], round_id: str, db: Session) -> Query:
    """
    鎖定某回合內的多個方格（用於預約）

    使用場景：
    - 預約時「檢查可用 + 寫入」必須在同一個 transaction 內完成
    - 鎖住之後，其他請求必須等這個 transaction 結束才能讀寫同一批方格

    參數：
        numbers: 方格編號
        round_id: Round 的 id
        db: SQLAlchemy Session

    返回：
        Query object（呼叫 .all() 取得所有結果，依編號排序以避免 deadlock）
    """
    return db.query(Square).filter(
        Square.round_id == round_id,
        Square.number.in_(list(numbers))
    ).order_by(Square.number).with_for_update(nowait=False)


def with_participant_lock(participant_id: str, db: Session) -> Query:
    """
    鎖定一個 Participant（行級鎖）

    使用場景：
    - 確認付款、取消預約時（防止同時確認與取消）
    """
    return db.query(Participant).filter(
        Participant.id == participant_id
    ).with_for_update(nowait=False)
