"""
Event Endpoints

1. GET /api/state：短輪詢用，只回傳 state version，前端看到 version 變了再重新讀取
2. WS /ws：即時推播（盡力而為，斷線期間的事件不補發）
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from schemas import StateResponse
from core.notifier import ChangeNotifier, EventType, get_notifier

router = APIRouter(tags=["events"])
logger = logging.getLogger(__name__)

OBSERVER_QUEUE_SIZE = 100


@router.get("/api/state", response_model=StateResponse)
def state(notifier: ChangeNotifier = Depends(get_notifier)):
    return StateResponse(version=notifier.version)


def _offer(queue: asyncio.Queue, event: dict) -> None:
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        logger.warning(f"Observer queue full, dropping {event['type']}")


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        event = await queue.get()
        await websocket.send_json(event)


async def _drain(websocket: WebSocket) -> None:
    # 用戶端送來的訊息（例如 ping）一律忽略，斷線時 receive_text 會丟 WebSocketDisconnect
    while True:
        await websocket.receive_text()


@router.websocket("/ws")
async def board_events(websocket: WebSocket):
    """
    推播棋盤事件

    流程：
    1. 註冊觀察者（事件從 thread pool 送進這個連線的 event loop）
    2. 先送 CONNECTION_ESTABLISHED（含目前 version）
    3. 送事件、收訊息各一個 task，任何一邊結束（斷線或送出失敗）就關閉連線
    """
    notifier = get_notifier()
    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=OBSERVER_QUEUE_SIZE)

    def deliver(event: dict) -> None:
        loop.call_soon_threadsafe(_offer, queue, event)

    token = notifier.subscribe(deliver)
    logger.info(f"Observer {token} connected ({notifier.observer_count} total)")

    tasks = []
    try:
        await websocket.send_json({
            "type": EventType.CONNECTION_ESTABLISHED.value,
            "data": {"version": notifier.version},
            "version": notifier.version,
        })
        tasks = [
            asyncio.create_task(_pump(websocket, queue)),
            asyncio.create_task(_drain(websocket)),
        ]
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

    except WebSocketDisconnect:
        logger.info(f"Observer {token} left before the first event")
    finally:
        notifier.unsubscribe(token)
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, (asyncio.CancelledError, WebSocketDisconnect)):
                continue
            if isinstance(result, Exception):
                logger.warning(f"Observer {token} connection failed: {result}")
        logger.info(f"Observer {token} disconnected")
