"""
WebSocket Endpoint：房間事件的進出口

Client -> Server：{"type": "<event>", "data": {...}}
Server -> Client：room:state（廣播）、auction:tick（廣播）、error（只回發送者）、room:joined

錯誤處理：
- Unauthorized / InvalidState / BidRejected：錯誤訊息只回給發送者
- RoomNotFound：join 時回報，其他事件靜默忽略
- PlayerNotFound / ContestantNotFound：靜默忽略
- PersistenceFailure 與其他非預期錯誤：記 log，回「Failed to ...」，連線不中斷
"""
import json
import uuid
from typing import Awaitable, Callable, Dict, NamedTuple, Optional, Type

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError
import logging

from schemas import (
    JoinRoom,
    UpdateName,
    AdminAction,
    AddContestant,
    EditContestant,
    DeleteContestant,
    UpdateSettings,
    Nominate,
    PlaceBid,
)
from core.runtime import DraftRuntime
from core.connection_manager import Binding, error_message, joined_message, state_message
from core.exceptions import (
    DraftException,
    RoomNotFound,
    PlayerNotFound,
    ContestantNotFound,
    Unauthorized,
    InvalidState,
    BidRejected,
    PersistenceFailure,
)

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


# ============ Event handlers ============

async def _join(runtime: DraftRuntime, connection_id: str, binding: Optional[Binding], payload: JoinRoom):
    room, player = await runtime.rooms.join(
        payload.room_id.upper(), payload.player_name, payload.player_id
    )
    runtime.connections.bind(connection_id, room.id, player.id)

    # 同一條連線改加入別的房間 / 換了身分：舊身分視為斷線
    if binding is not None and (binding.room_id, binding.player_id) != (room.id, player.id):
        await _release(runtime, binding)

    await runtime.connections.send_to_connection(connection_id, joined_message(room.id, player.id))
    await runtime.connections.send_to_connection(connection_id, state_message(room))


async def _update_name(runtime, connection_id, binding: Binding, payload: UpdateName):
    await runtime.rooms.update_name(binding.room_id, binding.player_id, payload.name)


async def _add_contestant(runtime, connection_id, binding: Binding, payload: AddContestant):
    await runtime.rooms.add_contestant(binding.room_id, payload.admin_key, payload.contestant)


async def _edit_contestant(runtime, connection_id, binding: Binding, payload: EditContestant):
    await runtime.rooms.edit_contestant(
        binding.room_id, payload.admin_key, payload.contestant_id, payload.updates
    )


async def _delete_contestant(runtime, connection_id, binding: Binding, payload: DeleteContestant):
    await runtime.rooms.delete_contestant(binding.room_id, payload.admin_key, payload.contestant_id)


async def _update_settings(runtime, connection_id, binding: Binding, payload: UpdateSettings):
    await runtime.rooms.update_settings(binding.room_id, payload.admin_key, payload.settings)


async def _start_draft(runtime, connection_id, binding: Binding, payload: AdminAction):
    await runtime.rooms.start_draft(binding.room_id, payload.admin_key)


async def _nominate(runtime, connection_id, binding: Binding, payload: Nominate):
    await runtime.auctions.nominate(
        binding.room_id,
        payload.contestant_id,
        player_id=binding.player_id,
        admin_key=payload.admin_key,
    )


async def _start_auction(runtime, connection_id, binding: Binding, payload: AdminAction):
    await runtime.auctions.start_auction(binding.room_id, payload.admin_key)


async def _bid(runtime, connection_id, binding: Binding, payload: PlaceBid):
    await runtime.auctions.place_bid(binding.room_id, binding.player_id, payload.amount)


class EventRoute(NamedTuple):
    schema: Type[BaseModel]
    handler: Callable[..., Awaitable[None]]
    action: str
    requires_binding: bool = True


EVENTS: Dict[str, EventRoute] = {
    "room:join": EventRoute(JoinRoom, _join, "join room", requires_binding=False),
    "player:update": EventRoute(UpdateName, _update_name, "update player"),
    "contestant:add": EventRoute(AddContestant, _add_contestant, "add contestant"),
    "contestant:edit": EventRoute(EditContestant, _edit_contestant, "edit contestant"),
    "contestant:delete": EventRoute(DeleteContestant, _delete_contestant, "delete contestant"),
    "settings:update": EventRoute(UpdateSettings, _update_settings, "update settings"),
    "draft:start": EventRoute(AdminAction, _start_draft, "start draft"),
    "auction:nominate": EventRoute(Nominate, _nominate, "nominate contestant"),
    "auction:start": EventRoute(AdminAction, _start_auction, "start auction"),
    "auction:bid": EventRoute(PlaceBid, _bid, "place bid"),
}


# ============ Dispatch ============

async def dispatch(runtime: DraftRuntime, connection_id: str, message) -> None:
    """
    處理一則 client 訊息

    每則訊息的錯誤只影響這一則：不會中斷連線，也不會影響其他房間。
    """
    reply = runtime.connections.send_to_connection

    if not isinstance(message, dict):
        await reply(connection_id, error_message("Invalid payload"))
        return

    event = message.get("type")
    route = EVENTS.get(event)
    if route is None:
        # auction:pause / auction:resume 也會走到這裡
        await reply(connection_id, error_message(f"Unsupported event: {event}"))
        return

    try:
        payload = route.schema.model_validate(message.get("data") or {})
    except ValidationError:
        await reply(connection_id, error_message("Invalid payload"))
        return

    binding = runtime.connections.binding(connection_id)
    if route.requires_binding and binding is None:
        logger.debug(f"Ignoring {event} from unbound connection {connection_id}")
        return

    try:
        await route.handler(runtime, connection_id, binding, payload)

    except RoomNotFound as e:
        if event == "room:join":
            await reply(connection_id, error_message(str(e)))
        else:
            logger.debug(f"{event}: room {e.room_id} not found, ignored")
    except (PlayerNotFound, ContestantNotFound) as e:
        logger.debug(f"{event}: {e}, ignored")
    except (Unauthorized, InvalidState, BidRejected) as e:
        await reply(connection_id, error_message(str(e)))
    except PersistenceFailure as e:
        logger.error(f"Persistence failure during {event}: {e}", exc_info=True)
        await reply(connection_id, error_message(f"Failed to {route.action}"))
    except Exception as e:
        logger.error(f"Error handling {event}: {e}", exc_info=True)
        await reply(connection_id, error_message(f"Failed to {route.action}"))


async def _release(runtime: DraftRuntime, binding: Binding) -> None:
    """玩家最後一條連線關閉時標記為斷線"""
    if runtime.connections.is_player_connected(binding.room_id, binding.player_id):
        return
    try:
        await runtime.rooms.disconnect(binding.room_id, binding.player_id)
    except DraftException as e:
        logger.warning(f"Failed to mark {binding.player_id} disconnected: {e}")


@router.websocket("/ws")
async def room_socket(websocket: WebSocket):
    runtime: DraftRuntime = websocket.app.state.runtime
    await websocket.accept()

    connection_id = uuid.uuid4().hex
    runtime.connections.register(connection_id, websocket)
    logger.info(f"Client connected: {connection_id}")

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                await runtime.connections.send_to_connection(
                    connection_id, error_message("Invalid payload")
                )
                continue
            await dispatch(runtime, connection_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        logger.info(f"Client disconnected: {connection_id}")
        binding = runtime.connections.unregister(connection_id)
        if binding is not None:
            await _release(runtime, binding)
