"""
權限檢查

- admin：比對房間的 admin key（常數時間比較）
- nominator：目前有提名權的玩家（上一場拍賣的得標者）

權限失敗不改任何狀態，只回錯誤給呼叫者。
"""
import hmac
from typing import Optional

from schemas import RoomState
from core.exceptions import Unauthorized


def is_admin(room: RoomState, admin_key: Optional[str]) -> bool:
    if not admin_key or not room.admin_key:
        return False
    return hmac.compare_digest(room.admin_key.encode(), admin_key.encode())


def is_nominator(room: RoomState, player_id: Optional[str]) -> bool:
    return player_id is not None and room.nominator_player_id == player_id


def require_admin(room: RoomState, admin_key: Optional[str]) -> None:
    if not is_admin(room, admin_key):
        raise Unauthorized()


def require_nominate_permission(
    room: RoomState, admin_key: Optional[str], player_id: Optional[str]
) -> None:
    """提名：admin 或目前的 nominator 皆可"""
    if not (is_admin(room, admin_key) or is_nominator(room, player_id)):
        raise Unauthorized("It's not your turn to nominate")
