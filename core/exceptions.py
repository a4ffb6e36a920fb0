"""
自定義異常類別

集中管理所有業務邏輯異常，方便傳輸層（WebSocket / HTTP）統一處理：
- 哪些錯誤只回給發送者
- 哪些錯誤要靜默忽略
- 哪些錯誤需要記錄 log
"""
from typing import Optional


class DraftException(Exception):
    """所有 Draft 異常的基類"""
    pass


# ============ 查無資料（NotFound） ============

class RoomNotFound(DraftException):
    """房間不存在"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__("Room not found")


class PlayerNotFound(DraftException):
    """玩家不存在（或連線尚未綁定玩家）"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class ContestantNotFound(DraftException):
    """參賽者不存在"""
    def __init__(self, contestant_id):
        self.contestant_id = contestant_id
        super().__init__(f"Contestant {contestant_id} not found")


# ============ 權限（Unauthorized） ============

class Unauthorized(DraftException):
    """admin key 錯誤，或非 admin 也非提名者卻嘗試提名"""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


# ============ 狀態錯誤（InvalidState） ============

class InvalidState(DraftException):
    """目前的房間狀態不允許此操作"""
    pass


class InvalidStateTransition(InvalidState):
    """非法的狀態轉換（不在轉換表內）"""
    pass


class AuctionAlreadyRunning(InvalidState):
    def __init__(self):
        super().__init__("Auction already running")


class NoContestantNominated(InvalidState):
    def __init__(self):
        super().__init__("No contestant nominated")


class ContestantNotAvailable(InvalidState):
    def __init__(self):
        super().__init__("Contestant is not available")


class ContestantLocked(InvalidState):
    """已提名或已選走的參賽者不能刪除"""
    def __init__(self):
        super().__init__("Cannot delete a contestant that is nominated or drafted")


class NotEnoughParticipants(InvalidState):
    """開始 draft 至少需要 1 位參賽者與 1 位玩家"""
    def __init__(self):
        super().__init__("Need at least one contestant and one player")


# ============ 出價驗證（ValidationFailure） ============

class BidRejected(DraftException):
    """
    出價被拒絕

    屬性：
        code: 拒絕原因代碼（NO_ACTIVE_AUCTION / BELOW_MINIMUM / ...）
        minimum: BELOW_MINIMUM 時的最低可出價金額
    """
    def __init__(self, code: str, message: str, minimum: Optional[int] = None):
        self.code = code
        self.minimum = minimum
        super().__init__(message)


# ============ 持久化（PersistenceFailure） ============

class PersistenceFailure(DraftException):
    """資料庫讀寫失敗或逾時，操作已中止、不廣播"""
    pass
