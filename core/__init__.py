"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理 room phase / auction status / contestant status 的轉換
- Store：房間狀態的唯一擁有者（快取 + write-through）
- Manager：RoomManager（房間與玩家）、AuctionManager（提名、出價、結算）
- Timer：每房間一個拍賣倒數計時器
- Locks：每房間一把鎖，序列化同一房間的所有修改
"""
