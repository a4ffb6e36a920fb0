"""
Auction Timer：每個房間最多一個倒數計時器

- start(room_id, duration)：先取消同房間既有的計時器再建立新的（重啟是冪等的）
- cancel(room_id)
- 每個 tick（預設 1 秒）倒數一次並廣播 auction:tick
- 倒數到 0：把自己從註冊表移除，然後呼叫到期回呼（AuctionManager 負責結算）

start / cancel / shutdown 是註冊表唯一的修改入口。
"""
import asyncio
from typing import Awaitable, Callable, Dict, Optional
import logging

from core.connection_manager import Messenger, tick_message

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[str, Optional[str]], Awaitable[None]]


class AuctionTimer:

    def __init__(self, messenger: Messenger, tick_interval: float = 1.0):
        self._messenger = messenger
        self._tick_interval = tick_interval
        self._tasks: Dict[str, asyncio.Task] = {}
        self._on_expire: Optional[ExpiryCallback] = None

    def set_expiry_callback(self, callback: ExpiryCallback) -> None:
        self._on_expire = callback

    def start(
        self, room_id: str, duration_seconds: int, contestant_id: Optional[str] = None
    ) -> asyncio.Task:
        """
        啟動（或重啟）房間的計時器

        參數：
            room_id: 房間代碼
            duration_seconds: 倒數秒數
            contestant_id: 這個計時器對應的拍賣標的，到期時一併交給回呼

        返回：
            計時器的 asyncio.Task
        """
        self.cancel(room_id)
        task = asyncio.create_task(
            self._run(room_id, duration_seconds, contestant_id),
            name=f"auction-timer-{room_id}",
        )
        self._tasks[room_id] = task
        logger.debug(f"Timer started for room {room_id}: {duration_seconds}s")
        return task

    def cancel(self, room_id: str) -> bool:
        task = self._tasks.pop(room_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug(f"Timer cancelled for room {room_id}")
        return True

    def is_running(self, room_id: str) -> bool:
        task = self._tasks.get(room_id)
        return task is not None and not task.done()

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, room_id: str, remaining: int, contestant_id: Optional[str]) -> None:
        while remaining > 0:
            await asyncio.sleep(self._tick_interval)
            remaining -= 1
            await self._messenger.publish_to_room(room_id, tick_message(remaining))

        # 已被新的計時器取代就不結算
        if self._tasks.get(room_id) is not asyncio.current_task():
            return
        del self._tasks[room_id]

        if self._on_expire is None:
            logger.warning(f"Timer for room {room_id} expired with no expiry callback")
            return
        try:
            await self._on_expire(room_id, contestant_id)
        except Exception as e:
            logger.error(f"Auction expiry failed for room {room_id}: {e}", exc_info=True)
