"""
ORM 模型：Round / Square / Participant

金額一律以「分」為單位的整數儲存，格式化交給前端
時間欄位一律存 naive UTC，避免 SQLite 與 PostgreSQL 對時區處理不一致
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base

BOARD_SIZE = 65


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class RoundStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class SquareStatus(str, enum.Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class Round(Base):
    """一次完整的遊戲（同一時間最多只有一個 ACTIVE）"""
    __tablename__ = "rounds"

    id = Column(String(36), primary_key=True, default=new_id)
    round_number = Column(Integer, nullable=False)
    status = Column(
        Enum(RoundStatus, name="round_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RoundStatus.ACTIVE,
    )
    price_per_square = Column(Integer, nullable=False)
    total_revenue = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    winner_square = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    squares = relationship(
        "Square",
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="Square.number",
    )
    participants = relationship(
        "Participant",
        back_populates="round",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_rounds_status", "status"),
    )


class Participant(Base):
    """一筆購買交易（squares 記錄此人預約的方格編號）"""
    __tablename__ = "participants"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    round_id = Column(String(36), ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False)
    squares = Column(JSON, nullable=False)
    total_amount = Column(Integer, nullable=False)
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    round = relationship("Round", back_populates="participants")

    __table_args__ = (
        Index("idx_participants_round", "round_id"),
        Index("idx_participants_email", "email"),
        Index("idx_participants_phone", "phone"),
    )


class Square(Base):
    """棋盤上的一格（每個回合固定 65 格）"""
    __tablename__ = "squares"

    id = Column(String(36), primary_key=True, default=new_id)
    number = Column(Integer, nullable=False)
    round_id = Column(String(36), ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False)
    # 不設 FK：參加者被刪除前方格一定已經先釋放
    participant_id = Column(String(36), nullable=True)
    status = Column(
        Enum(SquareStatus, name="square_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=SquareStatus.AVAILABLE,
    )
    reserved_at = Column(DateTime, nullable=True)
    sold_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    round = relationship("Round", back_populates="squares")

    __table_args__ = (
        UniqueConstraint("round_id", "number", name="uq_squares_round_number"),
        Index("idx_squares_status", "round_id", "status"),
        Index("idx_squares_participant", "participant_id"),
    )
