"""
Connection Manager：連線與房間的對應，以及訊息發送

- publish_to_room：送給房間內所有連線（房間快照、計時 tick）
- send_to_connection：只送給單一連線（錯誤訊息、join 回覆）

訊息格式：{"type": "room:state" | "auction:tick" | "error" | "room:joined", "data": ...}
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Set
import logging

from schemas import RoomState

logger = logging.getLogger(__name__)

ROOM_STATE = "room:state"
AUCTION_TICK = "auction:tick"
ERROR = "error"
ROOM_JOINED = "room:joined"


def state_message(room: RoomState) -> dict:
    return {"type": ROOM_STATE, "data": room.snapshot()}


def tick_message(remaining: int) -> dict:
    return {"type": AUCTION_TICK, "data": remaining}


def error_message(message: str) -> dict:
    return {"type": ERROR, "data": message}


def joined_message(room_id: str, player_id: str) -> dict:
    return {"type": ROOM_JOINED, "data": {"roomId": room_id, "playerId": player_id}}


class Messenger(Protocol):
    """messaging collaborator 介面（RoomManager / AuctionManager / AuctionTimer 只依賴這個）"""

    async def publish_to_room(self, room_id: str, message: dict) -> None: ...

    async def send_to_connection(self, connection_id: str, message: dict) -> None: ...


@dataclass
class Binding:
    room_id: str
    player_id: str


class ConnectionManager:
    """
    WebSocket 連線註冊表

    一條連線在 room:join 成功後綁定 (room_id, player_id)，之後的事件都以這個綁定為身分。
    """

    def __init__(self):
        self._sockets: Dict[str, Any] = {}
        self._bindings: Dict[str, Binding] = {}
        self._room_members: Dict[str, Set[str]] = {}

    def register(self, connection_id: str, websocket) -> None:
        self._sockets[connection_id] = websocket
        logger.debug(f"Connection {connection_id} registered")

    def bind(self, connection_id: str, room_id: str, player_id: str) -> None:
        previous = self._bindings.get(connection_id)
        if previous is not None and previous.room_id != room_id:
            self._room_members.get(previous.room_id, set()).discard(connection_id)
        self._bindings[connection_id] = Binding(room_id=room_id, player_id=player_id)
        self._room_members.setdefault(room_id, set()).add(connection_id)

    def binding(self, connection_id: str) -> Optional[Binding]:
        return self._bindings.get(connection_id)

    def unregister(self, connection_id: str) -> Optional[Binding]:
        """連線關閉；回傳原本的綁定（未 join 過則為 None）"""
        self._sockets.pop(connection_id, None)
        binding = self._bindings.pop(connection_id, None)
        if binding is not None:
            members = self._room_members.get(binding.room_id)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._room_members[binding.room_id]
        logger.debug(f"Connection {connection_id} unregistered")
        return binding

    def connections_in_room(self, room_id: str) -> List[str]:
        return sorted(self._room_members.get(room_id, ()))

    def is_player_connected(self, room_id: str, player_id: str) -> bool:
        """同一位玩家可能開了多個分頁，任一條連線還在就算在線"""
        return any(
            self._bindings[c].player_id == player_id
            for c in self._room_members.get(room_id, ())
        )

    async def send_to_connection(self, connection_id: str, message: dict) -> None:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message)
        except Exception as e:
            # 對方已斷線，disconnect 流程會負責清理
            logger.warning(f"Failed to send to {connection_id}: {e}")

    async def publish_to_room(self, room_id: str, message: dict) -> None:
        for connection_id in self.connections_in_room(room_id):
            await self.send_to_connection(connection_id, message)
