"""
服務層

這個 package 包含純計算邏輯，不負責讀寫與廣播：
- BidService：出價驗證、防狙擊延長
- ResolutionService：拍賣結算
- SettingsService：設定 / 參賽者 patch、預算重算
- NamingService：房間代碼、admin key、id
- CatalogService：cast 名單載入
"""
