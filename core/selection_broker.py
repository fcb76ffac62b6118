"""
Selection Broker：尚未送出預約前的「暫時選取」

用途：
- 讓其他賣家看到「這格正在被別人看」
- 預約前先擋掉重複選取（先選先贏，不排隊）

特性：
- 純記憶體、單一 process，重啟就消失（選取只是提示，不是交易）
- 超過 TTL（預設 120 秒）的選取視為失效，查詢時才順便清掉
- FastAPI 的 sync endpoint 跑在 thread pool，所以用 threading.Lock 保護
"""
import enum
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging

from models import BOARD_SIZE
from core.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SELECTION_TTL_SECONDS = 120
ANONYMOUS_SESSION = "anonymous"


class SelectionAction(str, enum.Enum):
    SELECT = "select"
    DESELECT = "deselect"
    CLEAR = "clear"


class SelectionBroker:
    """以方格編號為 key 的暫時選取表：square -> (session_id, timestamp)"""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SELECTION_TTL_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._selections: Dict[int, Tuple[str, float]] = {}

    def _is_stale(self, timestamp: float, now: float) -> bool:
        return now - timestamp > self.ttl_seconds

    def _purge_stale(self, now: float) -> None:
        stale = [
            square for square, (_, timestamp) in self._selections.items()
            if self._is_stale(timestamp, now)
        ]
        for square in stale:
            del self._selections[square]

    def list_active(self) -> List[dict]:
        """
        清掉過期選取後，回傳所有仍有效的選取

        返回：
            [{"square": 5, "session_id": "abc", "timestamp": 1700000000.0}, ...]
        """
        with self._lock:
            self._purge_stale(self._clock())
            return [
                {"square": square, "session_id": session_id, "timestamp": timestamp}
                for square, (session_id, timestamp) in sorted(self._selections.items())
            ]

    def apply(self, squares: Iterable[int], action, session_id: Optional[str]) -> int:
        """
        套用選取動作

        規則：
        - select：別的 session 持有中（且未過期）的方格直接忽略，不報錯
                  自己重選會刷新時間戳
        - deselect：只能取消自己持有的方格
        - clear：清掉這個 session 的所有選取

        參數：
            squares: 方格編號（clear 時忽略）
            action: "select" / "deselect" / "clear"
            session_id: 賣家 session，沒給就當成 "anonymous"

        返回：
            套用後仍有效的選取數量

        異常：
            ValidationError: 未知的 action，或方格編號不在 1-65
        """
        try:
            action = SelectionAction(action)
        except ValueError:
            raise ValidationError(f"Unknown selection action: {action}")

        squares = list(squares or [])
        if action != SelectionAction.CLEAR:
            invalid = [n for n in squares if not 1 <= n <= BOARD_SIZE]
            if invalid:
                raise ValidationError(
                    f"Invalid square numbers {invalid}. Must be between 1-{BOARD_SIZE}."
                )

        session_id = session_id or ANONYMOUS_SESSION

        with self._lock:
            now = self._clock()

            if action == SelectionAction.SELECT:
                for square in squares:
                    entry = self._selections.get(square)
                    if entry and entry[0] != session_id and not self._is_stale(entry[1], now):
                        continue
                    self._selections[square] = (session_id, now)

            elif action == SelectionAction.DESELECT:
                for square in squares:
                    entry = self._selections.get(square)
                    if entry and entry[0] == session_id:
                        del self._selections[square]

            else:
                owned = [
                    square for square, (owner, _) in self._selections.items()
                    if owner == session_id
                ]
                for square in owned:
                    del self._selections[square]

            self._purge_stale(now)
            return len(self._selections)

    def discard(self, squares: Iterable[int]) -> None:
        """不論擁有者，移除指定方格的選取（預約成功後使用）"""
        with self._lock:
            for square in squares:
                self._selections.pop(square, None)

    def reset(self) -> None:
        """清空所有選取（開新回合、系統重置時使用）"""
        with self._lock:
            count = len(self._selections)
            self._selections.clear()
        if count:
            logger.info(f"Discarded {count} selections")


_broker: Optional[SelectionBroker] = None
_broker_lock = threading.Lock()


def get_selection_broker() -> SelectionBroker:
    """取得 process 內共用的 SelectionBroker（第一次呼叫時依設定建立）"""
    global _broker
    with _broker_lock:
        if _broker is None:
            from database import settings
            _broker = SelectionBroker(ttl_seconds=settings.selection_ttl_seconds)
        return _broker
