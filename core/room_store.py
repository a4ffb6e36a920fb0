"""
Room State Store：房間狀態的唯一擁有者

職責：
1. 記憶體快取（room id -> RoomState 正本）
2. 快取 miss 時向 persistence 讀取，同一房間同時多個 load 只打一次資料庫
3. save 時 write-through：先寫資料庫，成功後才更新快取
4. 每個房間一把鎖（見 core.locks）

Handler 拿到的是正本的「工作副本」，只有 save 成功時副本才會成為新的正本；
中途拋出異常（驗證失敗、資料庫失敗）時副本直接丟掉，快取不會留下改到一半的狀態。
"""
import asyncio
import time
from typing import Dict, Optional, Protocol
import logging

from schemas import RoomState
from core.locks import RoomLocks
from core.exceptions import RoomNotFound, PersistenceFailure

logger = logging.getLogger(__name__)


class RoomRepository(Protocol):
    """persistence collaborator（同步介面，由 RoomStore 丟到 worker thread）"""

    def load_room(self, room_id: str) -> Optional[RoomState]: ...

    def upsert_room(self, state: RoomState, deadline: Optional[float] = None) -> None:
        """deadline（time.monotonic）已過時必須放棄 commit 並拋出異常"""
        ...


class RoomStore:
    """
    房間狀態存取

    使用方式（所有修改都必須在房間鎖內）：
        async with store.lock(room_id):
            room = await store.load(room_id)
            room.phase = ...
            await store.save(room)
    """

    def __init__(self, repository: RoomRepository, timeout: float = 5.0):
        self._repository = repository
        self._timeout = timeout
        self._cache: Dict[str, RoomState] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        self._locks = RoomLocks()

    def lock(self, room_id: str) -> asyncio.Lock:
        return self._locks.for_room(room_id)

    async def _call(self, func, *args):
        """在 worker thread 執行讀取；逾時或失敗一律轉成 PersistenceFailure（寫入走 _write）"""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(
                f"{func.__name__} timed out after {self._timeout}s"
            ) from e
        except Exception as e:
            raise PersistenceFailure(f"{func.__name__} failed: {e}") from e

    async def _write(self, state: RoomState) -> None:
        """
        寫入資料庫（丟給 worker thread 的是深拷貝）

        逾時不會放掉還在跑的寫入：repository 過了 deadline 就不 commit，
        這裡一直等到 thread 結束才回傳或拋出，所以呼叫者持有的房間鎖涵蓋整個寫入。
        拋出 PersistenceFailure 時保證沒有任何東西寫進資料庫。
        """
        func = self._repository.upsert_room
        deadline = time.monotonic() + self._timeout
        write = asyncio.ensure_future(
            asyncio.to_thread(func, state.model_copy(deep=True), deadline)
        )
        try:
            await asyncio.wait_for(asyncio.shield(write), timeout=self._timeout)
            return
        except asyncio.TimeoutError:
            logger.warning(
                f"{func.__name__} for room {state.id} exceeded {self._timeout}s, waiting for it to settle"
            )
        except Exception as e:
            raise PersistenceFailure(f"{func.__name__} failed: {e}") from e

        # thread 正常結束代表 commit 趕在 deadline 前完成，只是回報得晚
        try:
            await write
        except Exception as e:
            raise PersistenceFailure(
                f"{func.__name__} timed out after {self._timeout}s: {e}"
            ) from e

    async def _fetch(self, room_id: str) -> RoomState:
        room = await self._call(self._repository.load_room, room_id)
        if room is None:
            raise RoomNotFound(room_id)
        # 等待期間可能已經有人 save 了較新的版本
        return self._cache.setdefault(room_id, room)

    async def get(self, room_id: str) -> RoomState:
        """
        取得正本（唯讀）

        同一個 room id 同時有多個呼叫者時共用同一個 in-flight fetch。

        異常：
            RoomNotFound: 房間不存在
            PersistenceFailure: 資料庫失敗或逾時
        """
        cached = self._cache.get(room_id)
        if cached is not None:
            return cached

        inflight = self._inflight.get(room_id)
        if inflight is None:
            inflight = asyncio.ensure_future(self._fetch(room_id))
            self._inflight[room_id] = inflight
            inflight.add_done_callback(lambda _: self._inflight.pop(room_id, None))
            logger.debug(f"Loading room {room_id} from persistence")
        return await asyncio.shield(inflight)

    async def load(self, room_id: str) -> RoomState:
        """取得可修改的工作副本（必須在房間鎖內呼叫）"""
        room = await self.get(room_id)
        return room.model_copy(deep=True)

    async def save(self, room: RoomState) -> RoomState:
        """
        Write-through 儲存

        流程：
        1. version + 1
        2. 寫入資料庫
        3. 成功後取代快取中的正本

        異常：
            PersistenceFailure: 資料庫失敗；快取維持原本的正本
        """
        room.version += 1
        try:
            await self._write(room)
        except PersistenceFailure:
            room.version -= 1
            raise
        self._cache[room.id] = room
        return room

    async def create(self, room: RoomState) -> RoomState:
        """新房間：寫入資料庫並放進快取"""
        await self._write(room)
        self._cache[room.id] = room
        return room

    def evict(self, room_id: Optional[str] = None) -> None:
        """清除快取（不指定 room id 時全部清除）"""
        if room_id is None:
            self._cache.clear()
            self._locks.clear()
            return
        self._cache.pop(room_id, None)
        self._locks.discard(room_id)

    def is_cached(self, room_id: str) -> bool:
        return room_id in self._cache
