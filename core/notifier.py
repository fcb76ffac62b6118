"""
Change Notifier：把棋盤狀態變化通知給目前連線中的觀察者

特性：
- fan-out、盡力而為、每個觀察者最多收到一次
- 沒連線的觀察者直接錯過，不補發、不保證順序、沒有 ack
- 每次 publish 都會遞增 state version，前端可以短輪詢 /api/state，
  看到 version 變了就重新讀取權威狀態
"""
import enum
import itertools
import threading
from typing import Any, Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    SQUARE_UPDATE = "SQUARE_UPDATE"
    PARTICIPANT_ADDED = "PARTICIPANT_ADDED"
    GAME_RESET = "GAME_RESET"
    STATS_UPDATE = "STATS_UPDATE"
    CONNECTION_ESTABLISHED = "CONNECTION_ESTABLISHED"
    SQUARE_SELECTION = "SQUARE_SELECTION"
    WINNER_DRAWN = "WINNER_DRAWN"


Observer = Callable[[dict], None]


class ChangeNotifier:
    """觀察者註冊表 + state version 計數器"""

    def __init__(self):
        self._lock = threading.Lock()
        self._observers: Dict[int, Observer] = {}
        self._tokens = itertools.count(1)
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: Observer) -> int:
        """註冊觀察者，回傳取消註冊用的 token"""
        with self._lock:
            token = next(self._tokens)
            self._observers[token] = observer
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._observers.pop(token, None)

    def publish(self, event_type: EventType, data: Any = None) -> int:
        """
        發送事件給所有觀察者

        觀察者拋出異常就直接移除（視為斷線），不重試

        參數：
            event_type: 事件種類
            data: 事件內容（必須可以 JSON 序列化）

        返回：
            成功送達的觀察者數量
        """
        with self._lock:
            self._version += 1
            event = {
                "type": EventType(event_type).value,
                "data": data,
                "version": self._version,
            }
            observers = list(self._observers.items())

        delivered = 0
        for token, observer in observers:
            try:
                observer(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping observer {token} after delivery failure: {e}")
                self.unsubscribe(token)

        logger.debug(
            f"Published {event['type']} (version={event['version']}) "
            f"to {delivered}/{len(observers)} observers"
        )
        return delivered

    def reset(self) -> None:
        with self._lock:
            self._observers.clear()
            self._version = 0


_notifier: Optional[ChangeNotifier] = None
_notifier_lock = threading.Lock()


def get_notifier() -> ChangeNotifier:
    """取得 process 內共用的 ChangeNotifier"""
    global _notifier
    with _notifier_lock:
        if _notifier is None:
            _notifier = ChangeNotifier()
        return _notifier
