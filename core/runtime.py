"""
DraftRuntime：把 store、連線、計時器與兩個 manager 組起來

FastAPI app 與 CLI 都透過 DraftRuntime.build() 取得同一套元件。
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from database import Settings
from schemas import RoomSettings
from core.room_store import RoomStore, RoomRepository
from core.connection_manager import ConnectionManager
from core.auction_timer import AuctionTimer
from core.room_manager import RoomManager
from core.auction_manager import AuctionManager
from services.bid_service import utcnow


@dataclass
class DraftRuntime:
    store: RoomStore
    connections: ConnectionManager
    timer: AuctionTimer
    rooms: RoomManager
    auctions: AuctionManager

    @classmethod
    def build(
        cls,
        repository: RoomRepository,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
        connections: Optional[ConnectionManager] = None,
    ) -> "DraftRuntime":
        connections = connections or ConnectionManager()
        store = RoomStore(repository, timeout=settings.persistence_timeout_seconds)
        timer = AuctionTimer(connections, tick_interval=settings.tick_interval_seconds)
        rooms = RoomManager(
            store,
            connections,
            default_settings=RoomSettings(
                starting_budget=settings.default_starting_budget,
                min_increment=settings.default_min_increment,
                timer_seconds=settings.default_timer_seconds,
            ),
        )
        auctions = AuctionManager(
            store,
            connections,
            timer,
            clock=clock,
            anti_snipe_threshold=settings.anti_snipe_threshold_seconds,
            anti_snipe_extension=settings.anti_snipe_extension_seconds,
        )
        return cls(store=store, connections=connections, timer=timer, rooms=rooms, auctions=auctions)

    async def shutdown(self) -> None:
        await self.timer.shutdown()
