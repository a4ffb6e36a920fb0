"""
並發控制工具

每個房間是一個 single-writer 資源：同一房間的 load -> mutate -> save -> broadcast
必須完整序列化，否則兩筆同時到達的出價（或出價 + 設定變更）會讀到同一份舊預算，
其中一筆更新被默默蓋掉（lost update）。

做法：每個 room id 一把 asyncio.Lock，所有 handler 與計時器回呼都在鎖內執行。
不同房間互不影響，可以並行。
"""
import asyncio
from typing import Dict


class RoomLocks:
    """
    room id -> asyncio.Lock 的註冊表

    使用場景：
        async with locks.for_room(room_id):
            room = await store.load(room_id)
            ...
            await store.save(room)

    注意：
        - asyncio.Lock 不可重入，鎖內不要再呼叫會取同一把鎖的函式
        - 只在單一 event loop 內有效
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def for_room(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def discard(self, room_id: str) -> None:
        """房間從快取移除時一併丟掉（鎖正在被持有時保留）"""
        lock = self._locks.get(room_id)
        if lock is not None and not lock.locked():
            del self._locks[room_id]

    def clear(self) -> None:
        """清掉所有沒有被持有的鎖"""
        for room_id in [r for r, lock in self._locks.items() if not lock.locked()]:
            del self._locks[room_id]

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._locks
