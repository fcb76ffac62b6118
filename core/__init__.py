"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- SquareStore：方格狀態轉換
- SelectionBroker：暫時選取（記憶體）
- ReservationCoordinator：預約、付款、取消、逾時回收
- RoundManager：回合生命週期
- ChangeNotifier：狀態變化通知
- Locks：並發控制工具
"""
