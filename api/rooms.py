"""
Room API Endpoints

職責：
1. 建立房間（回傳房間代碼與 admin key）
2. 查詢房間目前的完整快照（手動刷新 / 結算失敗後恢復用）
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
import logging

from schemas import CreateRoomRequest, CreateRoomResponse
from core.runtime import DraftRuntime
from core.exceptions import RoomNotFound, PersistenceFailure
from services.catalog_service import load_cast

router = APIRouter(prefix="/api/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


def get_runtime(request: Request) -> DraftRuntime:
    return request.app.state.runtime


@router.post("", response_model=CreateRoomResponse)
async def create_room(
    request: Request,
    payload: Optional[CreateRoomRequest] = None,
    runtime: DraftRuntime = Depends(get_runtime),
):
    """
    建立房間（Host endpoint）

    - 沒有指定 contestants 時，從設定的 cast 檔載入初始名單
    - admin key 只在這裡回傳一次，之後不會出現在任何廣播中
    """
    payload = payload or CreateRoomRequest()
    contestants = payload.contestants
    if contestants is None:
        contestants = load_cast(request.app.state.settings.cast_file)

    try:
        room = await runtime.rooms.create_room(contestants, payload.settings)
        return CreateRoomResponse(room_id=room.id, host_admin_key=room.admin_key)

    except PersistenceFailure as e:
        logger.error(f"Failed to create room: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Failed to create room")


@router.get("/{room_id}")
async def get_room_state(room_id: str, runtime: DraftRuntime = Depends(get_runtime)):
    """取得房間快照（與 room:state 廣播內容相同）"""
    try:
        room = await runtime.rooms.get_room(room_id.upper())
        return room.snapshot()

    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")
    except PersistenceFailure as e:
        logger.error(f"Failed to load room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Failed to load room")
