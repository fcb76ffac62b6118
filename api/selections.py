"""
Selection API Endpoints

暫時選取只存在記憶體裡，不碰資料庫
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from schemas import (
    SelectionEntry,
    SelectionRequest,
    SelectionsResponse,
    SelectionUpdateResponse,
)
from core.selection_broker import SelectionBroker, get_selection_broker
from core.notifier import ChangeNotifier, EventType, get_notifier
from core.exceptions import ValidationError

router = APIRouter(prefix="/api", tags=["selections"])
logger = logging.getLogger(__name__)


@router.get("/selections", response_model=SelectionsResponse)
def list_selections(broker: SelectionBroker = Depends(get_selection_broker)):
    """取得所有有效的暫時選取（過期的會先被清掉）"""
    return SelectionsResponse(
        selections=[SelectionEntry(**entry) for entry in broker.list_active()]
    )


@router.post("/selections", response_model=SelectionUpdateResponse)
def update_selections(
    request: SelectionRequest,
    broker: SelectionBroker = Depends(get_selection_broker),
    notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    更新暫時選取

    - select：別人選走的方格會被忽略（先選先贏）
    - deselect：只能取消自己的選取
    - clear：清掉自己所有選取
    """
    try:
        total = broker.apply(request.squares, request.action, request.session_id)

        notifier.publish(EventType.SQUARE_SELECTION, {
            "selections": broker.list_active(),
        })

        return SelectionUpdateResponse(total_selections=total)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update selections: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update selections")
