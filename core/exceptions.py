"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理

四大類別：
- ValidationError：輸入不合法（等級、時間段、評分、房間代碼）
- StateConflictError：狀態衝突（房間已滿、已過期、非房主、重複提交）
- NotFoundError：找不到資源
- UnavailableError：外部協作者不可用（定位、候選人池、儲存）
"""


class MatchEngineException(Exception):
    """所有配對引擎異常的基類"""
    pass


class ValidationError(MatchEngineException):
    """輸入驗證失敗"""
    pass


class StateConflictError(MatchEngineException):
    """目前狀態不允許此操作"""
    pass


class NotFoundError(MatchEngineException):
    """資源不存在"""
    pass


class UnavailableError(MatchEngineException):
    """外部協作者不可用"""
    pass


# ============ 驗證相關異常 ============

class InvalidSkillLevel(ValidationError):
    """自評等級不合法（8-9 級需要驗證）"""
    def __init__(self, level, reason):
        self.level = level
        super().__init__(f"Skill level {level} rejected: {reason}")


class InvalidTimeSlot(ValidationError):
    """時間段不合法（時長或日期範圍錯誤）"""
    def __init__(self, reason):
        self.reason = reason
        super().__init__(reason)


class InvalidRating(ValidationError):
    """問卷評分超出範圍"""
    def __init__(self, field, low, high, value):
        self.field = field
        super().__init__(f"{field} must be between {low} and {high}, got {value}")


class SelfEvaluation(ValidationError):
    """不能評價自己"""
    pass


class InvalidRoomCode(ValidationError):
    """房間代碼格式錯誤（不是 6 位或含非法字元）"""
    def __init__(self, code):
        self.code = code
        super().__init__(f"Room code {code!r} is malformed")


# ============ Room 相關異常 ============

class RoomNotFound(NotFoundError):
    """房間不存在"""
    def __init__(self, room_ref):
        self.room_ref = room_ref
        super().__init__(f"Room {room_ref} not found")


class RoomFull(StateConflictError):
    """房間已滿"""
    pass


class RoomExpired(StateConflictError):
    """房間超過 30 分鐘無活動，已關閉"""
    pass


class RoomNotAcceptingPlayers(StateConflictError):
    """房間不接受新玩家加入（比賽已經開始或已關閉）"""
    pass


class NotRoomOwner(StateConflictError):
    """只有房主可以執行此操作"""
    pass


class AlreadyInRoom(StateConflictError):
    """玩家已經在房間中"""
    pass


class NotInRoom(StateConflictError):
    """玩家不在房間中"""
    pass


class NotEnoughPlayers(StateConflictError):
    """人數不足，無法開始比賽"""
    def __init__(self, required, current):
        self.required = required
        self.current = current
        super().__init__(f"Need {required} players to start, got {current}")


class CannotKickOwner(StateConflictError):
    """房主不能踢出自己（請改用離開或關閉房間）"""
    pass


class MatchAlreadyStarted(StateConflictError):
    """比賽已經開始"""
    pass


class RoomCodeExhausted(StateConflictError):
    """多次重新生成仍然碰撞，放棄建立房間（呼叫者可重試）"""
    pass


# ============ Survey 相關異常 ============

class SurveyAlreadySubmitted(StateConflictError):
    """同一場比賽、同一評價者只能提交一次問卷"""
    def __init__(self, match_id, evaluator_id):
        self.match_id = match_id
        self.evaluator_id = evaluator_id
        super().__init__(
            f"Survey for match {match_id} already submitted by {evaluator_id}"
        )


class SurveyExpired(StateConflictError):
    """問卷已過 48 小時期限"""
    pass


class MatchNotFound(NotFoundError):
    """比賽記錄不存在"""
    def __init__(self, match_id):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


# ============ TimeSlot 相關異常 ============

class RecurringSlotLimitReached(StateConflictError):
    """週期性時間段已達上限（5 個）"""
    def __init__(self, limit):
        self.limit = limit
        super().__init__(f"At most {limit} recurring time slots may be stored")


class RecurringSlotNotFound(NotFoundError):
    """週期性時間段不存在"""
    pass


# ============ User 相關異常 ============

class UserNotFound(NotFoundError):
    """使用者不存在"""
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


# ============ 外部協作者異常 ============

class LocationUnavailable(UnavailableError):
    """定位不可用（未授權或沒有座標）"""
    pass


class CandidatePoolUnavailable(UnavailableError):
    """候選人池無法取得"""
    pass


class PersistenceError(UnavailableError):
    """儲存層讀寫失敗或資料損壞"""
    def __init__(self, key, reason):
        self.key = key
        super().__init__(f"Stored record {key!r} unusable: {reason}")
