"""
Room Manager：管理 Room 的完整生命週期

職責：
1. 建立 Room（含初始參賽者名單）
2. 玩家加入 / 重連 / 改名 / 斷線
3. 參賽者新增、編輯、刪除、批次匯入（host only）
4. 設定變更（host only）
5. 開始 draft（LOBBY -> AUCTION）

所有修改都走同一個流程：
    取房間鎖 -> load 工作副本 -> 驗證 -> 修改 -> save -> 廣播快照
驗證失敗直接拋出異常，工作副本丟掉，什麼都不會寫入也不會廣播。
"""
from typing import Iterable, Optional, Tuple
import logging

from models import RoomPhase, AuctionStatus, ContestantStatus
from schemas import (
    RoomState,
    RoomSettings,
    PlayerState,
    ContestantState,
    ContestantCreate,
    ContestantPatch,
    SettingsPatch,
)
from core.room_store import RoomStore
from core.connection_manager import Messenger, state_message
from core.state_machine import RoomStateMachine
from core.authorization import require_admin
from core.exceptions import (
    RoomNotFound,
    PlayerNotFound,
    ContestantNotFound,
    ContestantLocked,
    InvalidState,
    NotEnoughParticipants,
)
from services.naming_service import (
    generate_room_code,
    generate_admin_key,
    generate_id,
    cast_contestant_id,
)
from services.settings_service import apply_settings_patch, apply_contestant_patch
from services.resolution_service import count_with_status

logger = logging.getLogger(__name__)


class RoomManager:
    """Room 生命週期管理器"""

    def __init__(
        self,
        store: RoomStore,
        messenger: Messenger,
        default_settings: Optional[RoomSettings] = None,
    ):
        self.store = store
        self.messenger = messenger
        self.default_settings = default_settings or RoomSettings()

    async def _commit(self, room: RoomState) -> RoomState:
        """save 成功後才廣播；save 失敗的異常直接往上拋"""
        await self.store.save(room)
        await self.messenger.publish_to_room(room.id, state_message(room))
        return room

    async def _room_exists(self, room_id: str) -> bool:
        try:
            await self.store.get(room_id)
            return True
        except RoomNotFound:
            return False

    # ============ 建立房間 ============

    async def create_room(
        self,
        contestants: Iterable[ContestantCreate] = (),
        settings_patch: Optional[SettingsPatch] = None,
    ) -> RoomState:
        """
        建立新房間

        流程：
        1. 生成唯一的房間代碼與 admin key
        2. 套用預設設定（可被 settings_patch 覆蓋）
        3. 放入初始參賽者（全部 AVAILABLE）
        4. 寫入資料庫並放進快取

        參數：
            contestants: 初始參賽者名單
            settings_patch: 覆蓋預設值的設定

        返回：
            新房間（呼叫者從 room.admin_key 取得 admin key，只回給建立者）
        """
        code = generate_room_code()
        while await self._room_exists(code):
            code = generate_room_code()
            logger.warning(f"Room code collision detected, regenerating: {code}")

        room = RoomState(
            id=code,
            settings=self.default_settings.model_copy(),
            admin_key=generate_admin_key(),
        )
        if settings_patch is not None:
            apply_settings_patch(room, settings_patch)

        for data in contestants:
            contestant = self._new_contestant(generate_id(), data)
            room.contestants[contestant.id] = contestant

        await self.store.create(room)
        logger.info(f"Created room {code} with {len(room.contestants)} contestants")
        return room

    @staticmethod
    def _new_contestant(contestant_id: str, data: ContestantCreate) -> ContestantState:
        return ContestantState(
            id=contestant_id,
            name=data.name,
            bio=data.bio,
            image_url=data.image_url,
            star=data.star,
            status=ContestantStatus.AVAILABLE,
        )

    # ============ 玩家 ============

    async def join(
        self, room_id: str, player_name: str, player_id: Optional[str] = None
    ) -> Tuple[RoomState, PlayerState]:
        """
        加入房間（或重連）

        規則：
        - 帶了 player_id 且房間內已有此玩家：視為重連，connected=True 並更新名稱，
          預算與 roster 不變
        - 否則建立新玩家：budgetRemaining = startingBudget，roster 為空

        異常：
            RoomNotFound: 房間不存在（會回報給呼叫者）
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)

            player = room.players.get(player_id) if player_id else None
            if player is not None:
                player.connected = True
                player.name = player_name
                logger.info(f"Player {player.id} ({player_name}) reconnected to room {room_id}")
            else:
                player = PlayerState(
                    id=generate_id(),
                    name=player_name,
                    budget_remaining=room.settings.starting_budget,
                    connected=True,
                )
                room.players[player.id] = player
                logger.info(f"Player {player.id} ({player_name}) joined room {room_id}")

            await self._commit(room)
            return room, player

    async def update_name(self, room_id: str, player_id: str, name: str) -> RoomState:
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            player = room.players.get(player_id)
            if player is None:
                raise PlayerNotFound(player_id)
            player.name = name
            return await self._commit(room)

    async def disconnect(self, room_id: str, player_id: str) -> RoomState:
        """
        玩家斷線：只把 connected 設為 False

        預算、roster、提名權都保留，玩家之後可以用同一個 player id 重連。
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            player = room.players.get(player_id)
            if player is None:
                raise PlayerNotFound(player_id)
            player.connected = False
            logger.info(f"Player {player_id} disconnected from room {room_id}")
            return await self._commit(room)

    # ============ 參賽者（host only） ============

    async def add_contestant(
        self, room_id: str, admin_key: Optional[str], data: ContestantCreate
    ) -> ContestantState:
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_admin(room, admin_key)
            if room.phase == RoomPhase.COMPLETE:
                raise InvalidState("Draft is already complete")

            contestant = self._new_contestant(generate_id(), data)
            room.contestants[contestant.id] = contestant
            await self._commit(room)
            return contestant

    async def edit_contestant(
        self,
        room_id: str,
        admin_key: Optional[str],
        contestant_id: str,
        patch: ContestantPatch,
    ) -> ContestantState:
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_admin(room, admin_key)
            contestant = room.contestants.get(contestant_id)
            if contestant is None:
                raise ContestantNotFound(contestant_id)

            apply_contestant_patch(contestant, patch)
            await self._commit(room)
            return contestant

    async def delete_contestant(
        self, room_id: str, admin_key: Optional[str], contestant_id: str
    ) -> RoomState:
        """
        刪除參賽者

        - 已提名或已選走的參賽者不能刪除
        - draft 進行中刪掉最後一位可選的參賽者時，房間直接進入 COMPLETE
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_admin(room, admin_key)
            contestant = room.contestants.get(contestant_id)
            if contestant is None:
                raise ContestantNotFound(contestant_id)
            if contestant.status != ContestantStatus.AVAILABLE:
                raise ContestantLocked()

            del room.contestants[contestant_id]

            if (
                room.phase == RoomPhase.AUCTION
                and room.current_auction.contestant_id is None
                and count_with_status(room, ContestantStatus.AVAILABLE) == 0
            ):
                RoomStateMachine.transition(room, RoomPhase.COMPLETE)

            return await self._commit(room)

    async def import_contestants(
        self, room_id: str, admin_key: Optional[str], entries: Iterable[ContestantCreate]
    ) -> int:
        """
        批次匯入參賽者名單（cast 檔）

        id 由名字推導（cast_<name>），重複匯入會更新仍為 AVAILABLE 的參賽者，
        已提名或已選走的保持不動。

        返回：
            實際新增或更新的筆數
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_admin(room, admin_key)
            if room.phase == RoomPhase.COMPLETE:
                raise InvalidState("Draft is already complete")

            imported = 0
            for data in entries:
                contestant_id = cast_contestant_id(data.name)
                existing = room.contestants.get(contestant_id)
                if existing is not None and existing.status != ContestantStatus.AVAILABLE:
                    continue
                room.contestants[contestant_id] = self._new_contestant(contestant_id, data)
                imported += 1

            await self._commit(room)
            logger.info(f"Imported {imported} contestants into room {room_id}")
            return imported

    # ============ 設定與 draft ============

    async def update_settings(
        self, room_id: str, admin_key: Optional[str], patch: SettingsPatch
    ) -> RoomSettings:
        """
        更新設定（逐欄合併）

        startingBudget 改變時，每位玩家的剩餘預算 = 新預算 - 已花費金額。
        拍賣進行中不能改 startingBudget（領先者的剩餘預算可能掉到出價以下）。
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_admin(room, admin_key)
            if (
                patch.starting_budget is not None
                and patch.starting_budget != room.settings.starting_budget
                and room.current_auction.status == AuctionStatus.RUNNING
            ):
                raise InvalidState("Cannot change the starting budget during an auction")
            settings = apply_settings_patch(room, patch)
            await self._commit(room)
            return settings

    async def start_draft(self, room_id: str, admin_key: Optional[str]) -> RoomState:
        """
        開始 draft（LOBBY -> AUCTION）

        前置條件：
        1. admin key 正確
        2. 至少 1 位參賽者、1 位玩家
        3. 房間在 LOBBY

        異常：
            Unauthorized / NotEnoughParticipants / InvalidStateTransition
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_admin(room, admin_key)
            if not room.contestants or not room.players:
                raise NotEnoughParticipants()

            RoomStateMachine.transition(room, RoomPhase.AUCTION)
            logger.info(
                f"Draft started in room {room_id} with {len(room.players)} players "
                f"and {len(room.contestants)} contestants"
            )
            return await self._commit(room)

    async def get_room(self, room_id: str) -> RoomState:
        """目前的正本（唯讀，用於手動刷新）"""
        return await self.store.get(room_id)
