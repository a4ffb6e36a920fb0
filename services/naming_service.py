"""
命名服務：生成 Room Code、Admin Key 與各種 id

純計算邏輯，不涉及狀態轉換。
使用 secrets（而非 random），admin key 是房間唯一的憑證。
"""
import re
import secrets
import string

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_code() -> str:
    """
    生成隨機的 6 位房間代碼（大寫英數）

    範例：K7QX2A

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 36^6 ≈ 21 億種可能，碰撞機率極低
    """
    return ''.join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(6))


def generate_admin_key() -> str:
    """生成房主的 admin key（32 字元 URL-safe token）"""
    return secrets.token_urlsafe(24)


def generate_id() -> str:
    """玩家 / 參賽者 id"""
    return secrets.token_urlsafe(12)


def cast_contestant_id(name: str) -> str:
    """
    匯入 cast 時使用的固定 id，重複匯入同一份名單會覆蓋而不是重複新增

    範例：
        cast_contestant_id("Jane Doe") -> "cast_jane_doe"
    """
    return "cast_" + re.sub(r"\s+", "_", name.strip().lower())
