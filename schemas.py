"""
API 請求 / 回應模型（Pydantic）

金額欄位一律是「分」為單位的整數
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import BOARD_SIZE, PaymentStatus, RoundStatus, SquareStatus
from core.selection_broker import SelectionAction


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ============ 資料模型 ============

class RoundResponse(ORMModel):
    id: str
    round_number: int
    status: RoundStatus
    price_per_square: int
    total_revenue: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    winner_square: Optional[int] = None


class SquareResponse(ORMModel):
    number: int
    status: SquareStatus
    participant_id: Optional[str] = None
    reserved_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None


class ParticipantResponse(ORMModel):
    id: str
    name: str
    email: str
    phone: str
    round_id: str
    squares: List[int]
    total_amount: int
    payment_status: PaymentStatus
    created_at: datetime


# ============ 預約 ============

class ReservationForm(BaseModel):
    """賣家送出的預約表單"""
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=10)
    squares: List[int] = Field(..., min_length=1)
    session_id: Optional[str] = None

    @field_validator("name", "phone")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field is required")
        return value

    @field_validator("squares")
    @classmethod
    def check_squares(cls, value: List[int]) -> List[int]:
        invalid = [n for n in value if not 1 <= n <= BOARD_SIZE]
        if invalid:
            raise ValueError(f"Square numbers must be between 1-{BOARD_SIZE}: {invalid}")
        if len(set(value)) != len(value):
            raise ValueError("Duplicate square numbers")
        return value


class ReservationResponse(BaseModel):
    participant: ParticipantResponse


class PaymentConfirmResponse(BaseModel):
    participant: ParticipantResponse
    squares: List[SquareResponse]


class CancelResponse(BaseModel):
    success: bool = True
    released_squares: List[int]


# ============ 棋盤 / 統計 ============

class StatsResponse(BaseModel):
    total_revenue: int
    participant_count: int
    squares_sold: int
    percent_filled: int
    available_count: int
    current_round_number: int


class BoardResponse(BaseModel):
    game_round: RoundResponse
    squares: List[SquareResponse]
    participants: List[ParticipantResponse]


class GameRoundResponse(BaseModel):
    game_round: RoundResponse


# ============ 暫時選取 ============

class SelectionEntry(BaseModel):
    square: int
    session_id: str
    timestamp: float


class SelectionsResponse(BaseModel):
    selections: List[SelectionEntry]


class SelectionRequest(BaseModel):
    squares: List[int] = Field(default_factory=list)
    action: SelectionAction
    session_id: Optional[str] = None


class SelectionUpdateResponse(BaseModel):
    success: bool = True
    total_selections: int


# ============ 管理 ============

class NewRoundRequest(BaseModel):
    price_per_square: Optional[int] = Field(default=None, gt=0)


class UpdatePriceRequest(BaseModel):
    price_per_square: int


class ManualWinnerRequest(BaseModel):
    square_number: int


class CompleteRoundRequest(BaseModel):
    game_round_id: str
    winner_square: int


class WinnerResponse(BaseModel):
    winner_square: int
    winner_id: Optional[str] = None
    winner_name: str
    total_pot: int
    round_number: int
    game_round_id: str


class ResetResponse(BaseModel):
    success: bool = True
    game_round: RoundResponse
    message: str


class CleanupResponse(BaseModel):
    success: bool = True
    message: str
    cleaned_squares: List[int]


# ============ 歷史 / 行銷 ============

class WinnerInfo(BaseModel):
    participant_id: str
    name: str
    square: int
    total_pot: int
    round_id: str
    round_number: int
    completed_at: Optional[datetime] = None


class CurrentWinnerResponse(BaseModel):
    winner: Optional[WinnerInfo] = None


class RoundWinner(BaseModel):
    game_round: RoundResponse
    winner: Optional[ParticipantResponse] = None


class WinnersResponse(BaseModel):
    winners: List[RoundWinner]


class HistoryResponse(BaseModel):
    game_rounds: List[RoundResponse]


class ParticipantsResponse(BaseModel):
    participants: List[ParticipantResponse]


class RoundExport(BaseModel):
    game_round: RoundResponse
    participants: List[ParticipantResponse]
    winner: Optional[ParticipantResponse] = None


class ExportResponse(BaseModel):
    rounds: List[RoundExport]
    export_date: datetime


class StateResponse(BaseModel):
    version: int
