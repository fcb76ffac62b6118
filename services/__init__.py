"""
服務層

這個 package 包含純查詢 / 計算邏輯，不負責狀態轉換：
- StatsService：統計與棋盤快照
- HistoryService：得獎者、歷史回合、回頭客查詢、匯出資料
"""
