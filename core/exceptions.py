"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
"""
from typing import Iterable


class SquaresGameException(Exception):
    """所有遊戲異常的基類"""
    pass


# ============ 輸入驗證異常 ============

class ValidationError(SquaresGameException):
    """欄位缺漏或格式錯誤（例如方格編號不在 1-65 之間、價格 <= 0）"""
    pass


# ============ 方格相關異常 ============

class UnavailableError(SquaresGameException):
    """
    要求的方格目前無法預約

    numbers 會列出衝突的方格，讓前端只取消那幾格
    """
    def __init__(self, numbers: Iterable[int]):
        self.numbers = sorted(set(numbers))
        joined = ", ".join(str(n) for n in self.numbers)
        super().__init__(f"Squares {joined} are not available")


# ============ 查無資料異常 ============

class NotFoundError(SquaresGameException):
    """資源不存在"""
    pass


class RoundNotFound(NotFoundError):
    """回合不存在"""
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class ParticipantNotFound(NotFoundError):
    """參加者不存在"""
    def __init__(self, participant_id):
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} not found")


# ============ 狀態轉換異常 ============

class InvalidStateError(SquaresGameException):
    """非法的狀態轉換（例如取消已付款的預約、對已結束的回合重新開獎）"""
    pass


# ============ 儲存層異常 ============

class StorageError(SquaresGameException):
    """底層資料庫操作失敗（不自動重試）"""
    pass
