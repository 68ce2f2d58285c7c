"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- GeoService：距離計算與地理圍欄
- TimeSlotService：時間段驗證與重疊
- ReputationService：聲譽聚合與等級計算
- RankingService：候選人計分排序
- NamingService：房間代碼生成
"""
