"""
API 層

- rooms：HTTP（建立房間、查詢快照）
- websocket：房間事件（加入、出價、host 操作）
"""
