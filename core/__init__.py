"""
核心業務邏輯層

這個 package 包含有狀態的元件：
- RoomManager：管理 Room 的生命週期
- SurveyLedger：賽後問卷與待填問卷
- RoomExpirationSweeper：背景關閉閒置房間
- Store：持久化（記憶體 / SQLAlchemy）
- Locks：並發控制工具
"""
