"""
Auction Manager：單一房間內拍賣的生命週期

狀態流：
    IDLE --nominate--> IDLE(有標的) --start--> RUNNING --計時到期--> ENDED --> IDLE

職責：
1. 提名（admin 或目前的 nominator）
2. 開始拍賣（admin）：設定 endTime、啟動計時器
3. 出價：驗證 + 防狙擊延長
4. 結算：計時器到期與外部呼叫走同一條路徑（_resolve_locked）

與 RoomManager 相同，所有修改都在房間鎖內 load -> 修改 -> save -> 廣播，
所以計時器結算與同時到達的出價不可能交錯修改同一場拍賣。
"""
from datetime import datetime, timedelta
from typing import Callable, Optional
import logging

from models import RoomPhase, AuctionStatus, ContestantStatus
from schemas import RoomState, CurrentAuction
from core.room_store import RoomStore
from core.auction_timer import AuctionTimer
from core.connection_manager import Messenger, state_message
from core.state_machine import AuctionStateMachine, ContestantStateMachine
from core.authorization import require_admin, require_nominate_permission
from core.exceptions import (
    RoomNotFound,
    PlayerNotFound,
    ContestantNotFound,
    InvalidState,
    AuctionAlreadyRunning,
    NoContestantNominated,
    ContestantNotAvailable,
    BidRejected,
    PersistenceFailure,
)
from services.bid_service import validate_bid, extend_deadline, seconds_until, utcnow
from services.resolution_service import resolve_auction, ResolutionOutcome

logger = logging.getLogger(__name__)


class AuctionManager:
    """拍賣管理器"""

    def __init__(
        self,
        store: RoomStore,
        messenger: Messenger,
        timer: AuctionTimer,
        clock: Callable[[], datetime] = utcnow,
        anti_snipe_threshold: int = 10,
        anti_snipe_extension: int = 5,
    ):
        self.store = store
        self.messenger = messenger
        self.timer = timer
        self.clock = clock
        self.anti_snipe_threshold = anti_snipe_threshold
        self.anti_snipe_extension = anti_snipe_extension
        timer.set_expiry_callback(self.on_timer_expired)

    async def _commit(self, room: RoomState) -> RoomState:
        await self.store.save(room)
        await self.messenger.publish_to_room(room.id, state_message(room))
        return room

    # ============ 提名 ============

    async def nominate(
        self,
        room_id: str,
        contestant_id: str,
        player_id: Optional[str] = None,
        admin_key: Optional[str] = None,
    ) -> RoomState:
        """
        提名下一位要拍賣的參賽者

        前置條件：
        1. 呼叫者是 admin 或目前的 nominator
        2. 房間在 AUCTION phase
        3. 沒有進行中的拍賣
        4. 參賽者存在且為 AVAILABLE

        效果：
        - 參賽者 AVAILABLE -> NOMINATED
        - 拍賣重設為 {contestantId, IDLE, 0}
        - 若之前提名的參賽者還沒開拍，退回 AVAILABLE（同時最多一位 NOMINATED）

        異常：
            Unauthorized / InvalidState / AuctionAlreadyRunning /
            ContestantNotFound / ContestantNotAvailable
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_nominate_permission(room, admin_key, player_id)

            if room.phase != RoomPhase.AUCTION:
                raise InvalidState("Draft is not in progress")
            if room.current_auction.status == AuctionStatus.RUNNING:
                raise AuctionAlreadyRunning()

            contestant = room.contestants.get(contestant_id)
            if contestant is None:
                raise ContestantNotFound(contestant_id)
            if contestant.status != ContestantStatus.AVAILABLE:
                raise ContestantNotAvailable()

            previous = room.contestants.get(room.current_auction.contestant_id or "")
            if previous is not None and previous.status == ContestantStatus.NOMINATED:
                ContestantStateMachine.transition(previous, ContestantStatus.AVAILABLE)

            ContestantStateMachine.transition(contestant, ContestantStatus.NOMINATED)
            AuctionStateMachine.transition(room, AuctionStatus.IDLE)
            room.current_auction = CurrentAuction(contestant_id=contestant_id)

            logger.info(f"Room {room_id}: {contestant.name} nominated")
            return await self._commit(room)

    # ============ 開始拍賣 ============

    async def start_auction(self, room_id: str, admin_key: Optional[str]) -> RoomState:
        """
        開始拍賣（IDLE -> RUNNING）

        效果：
        - endTime = now + timerSeconds
        - currentBid 歸零、清除 bidder
        - save 成功後啟動計時器

        異常：
            Unauthorized / NoContestantNominated / AuctionAlreadyRunning
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            require_admin(room, admin_key)

            auction = room.current_auction
            if auction.contestant_id is None:
                raise NoContestantNominated()
            if auction.status == AuctionStatus.RUNNING:
                raise AuctionAlreadyRunning()

            duration = room.settings.timer_seconds
            AuctionStateMachine.transition(room, AuctionStatus.RUNNING)
            auction.end_time = self.clock() + timedelta(seconds=duration)
            auction.current_bid = 0
            auction.current_bidder_player_id = None

            await self._commit(room)
            self.timer.start(room_id, duration, auction.contestant_id)
            logger.info(f"Room {room_id}: auction started for {auction.contestant_id} ({duration}s)")
            return room

    # ============ 出價 ============

    async def place_bid(self, room_id: str, player_id: str, amount: int) -> RoomState:
        """
        出價

        流程：
        1. 驗證（見 services.bid_service.validate_bid）
        2. 更新 currentBid / currentBidderPlayerId
        3. 防狙擊：剩餘不到 threshold 秒時 endTime + extension 秒
        4. save；有延長時以「新 endTime - 現在」重啟計時器（不沿用舊的倒數值）

        異常：
            PlayerNotFound: 連線沒有對應的玩家
            BidRejected: 驗證失敗（附原因代碼，低於最低價時附最低金額）
        """
        async with self.store.lock(room_id):
            room = await self.store.load(room_id)
            player = room.players.get(player_id)
            if player is None:
                raise PlayerNotFound(player_id)

            auction = room.current_auction
            now = self.clock()
            decision = validate_bid(auction, player, amount, room.settings.min_increment, now)
            if not decision.accepted:
                raise BidRejected(decision.code, decision.message, minimum=decision.minimum)

            auction.current_bid = amount
            auction.current_bidder_player_id = player_id

            new_end_time = extend_deadline(
                auction.end_time, now, self.anti_snipe_threshold, self.anti_snipe_extension
            )
            if new_end_time is not None:
                auction.end_time = new_end_time

            await self.store.save(room)

            if new_end_time is not None:
                remaining = seconds_until(new_end_time, self.clock())
                self.timer.start(room_id, remaining, auction.contestant_id)
                logger.info(f"Room {room_id}: late bid, deadline extended ({remaining}s left)")

            await self.messenger.publish_to_room(room_id, state_message(room))
            return room

    # ============ 結算 ============

    async def on_timer_expired(self, room_id: str, contestant_id: Optional[str]) -> None:
        """
        計時器到期回呼

        等到房間鎖時，若已經有新的計時器（出價延長），代表這次到期已被取代，不結算。
        持久化失敗只記 log：不廣播，計時器維持清除狀態，需要後續事件（手動刷新）恢復。
        """
        async with self.store.lock(room_id):
            if self.timer.is_running(room_id):
                logger.debug(f"Room {room_id}: expiry superseded by a newer timer")
                return
            try:
                await self._resolve_locked(room_id, contestant_id)
            except RoomNotFound:
                logger.warning(f"Room {room_id} vanished before its auction resolved")
            except PersistenceFailure as e:
                logger.error(f"Failed to resolve auction in room {room_id}: {e}", exc_info=True)

    async def resolve(self, room_id: str) -> Optional[ResolutionOutcome]:
        """立即結算目前的拍賣（取消計時器），與到期走同一條路徑"""
        async with self.store.lock(room_id):
            self.timer.cancel(room_id)
            return await self._resolve_locked(room_id, None)

    async def _resolve_locked(
        self, room_id: str, expected_contestant_id: Optional[str]
    ) -> Optional[ResolutionOutcome]:
        room = await self.store.load(room_id)
        auction = room.current_auction

        if room.phase != RoomPhase.AUCTION or auction.status != AuctionStatus.RUNNING:
            logger.info(f"Room {room_id}: nothing to resolve (phase={room.phase.value}, "
                        f"auction={auction.status.value})")
            return None
        if expected_contestant_id is not None and auction.contestant_id != expected_contestant_id:
            logger.info(f"Room {room_id}: auction for {expected_contestant_id} was superseded")
            return None

        outcome = resolve_auction(room)
        await self._commit(room)

        if outcome.draft_complete:
            logger.info(f"Room {room_id}: draft complete")
        return outcome
