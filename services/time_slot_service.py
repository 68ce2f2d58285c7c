"""
時間段服務：驗證、重疊計算、週期性時間段

規則：
- 時長 1-8 小時
- 日期在今天到 14 天後之間（以驗證當下的時間為準，之後不再重新檢查）
- 兩個時間段必須同一天，且重疊至少 30 分鐘才算可配對
- 每位使用者最多保存 5 個週期性時間段（不論是否啟用）
"""
import logging
import threading
from datetime import date, datetime, timedelta
from typing import List, NamedTuple, Optional

from core.clock import Clock, as_utc, utcnow
from core.exceptions import (
    InvalidTimeSlot,
    RecurringSlotLimitReached,
    RecurringSlotNotFound
)
from core.store import PersistenceStore, load_list, save_list
from schemas import RecurringTimeSlot, TimeSlot

logger = logging.getLogger(__name__)

MINIMUM_DURATION = timedelta(hours=1)
MAXIMUM_DURATION = timedelta(hours=8)
MINIMUM_OVERLAP = timedelta(minutes=30)
MAXIMUM_DAYS_AHEAD = 14
MAXIMUM_RECURRING_SLOTS = 5


class TimeSlotValidation(NamedTuple):
    valid: bool
    reason: Optional[str] = None


VALID = TimeSlotValidation(True)


def validate(slot: TimeSlot, now: datetime) -> TimeSlotValidation:
    """
    驗證時間段

    檢查順序：
    1. 結束時間必須晚於開始時間
    2. 時長至少 1 小時
    3. 時長不超過 8 小時
    4. 日期不能是過去
    5. 日期不能超過 14 天後

    參數：
        slot: 要驗證的時間段
        now: 驗證當下的時間（由呼叫者注入）

    返回：
        TimeSlotValidation(valid, reason)
    """
    if slot.end_time <= slot.start_time:
        return TimeSlotValidation(False, "end time must be after start time")

    if slot.duration < MINIMUM_DURATION:
        return TimeSlotValidation(False, "time slot must last at least 1 hour")

    if slot.duration > MAXIMUM_DURATION:
        return TimeSlotValidation(False, "time slot must not exceed 8 hours")

    today = now.date()
    if slot.date < today:
        return TimeSlotValidation(False, "date is in the past")

    if slot.date > today + timedelta(days=MAXIMUM_DAYS_AHEAD):
        return TimeSlotValidation(False, f"date must be within {MAXIMUM_DAYS_AHEAD} days")

    return VALID


def require_valid(slot: TimeSlot, now: datetime) -> TimeSlot:
    """validate 的嚴格版本：不合法時拋出 InvalidTimeSlot"""
    result = validate(slot, now)
    if not result.valid:
        raise InvalidTimeSlot(result.reason)
    return slot


def overlap(a: TimeSlot, b: TimeSlot) -> Optional[TimeSlot]:
    """
    計算兩個時間段的重疊部分

    參數：
        a, b: 兩個時間段

    返回：
        重疊的時間段 [max(start), min(end))；
        不同天、沒有重疊或重疊少於 30 分鐘時返回 None

    範例：
        [9:00, 10:00) 與 [9:45, 11:00) -> 15 分鐘 -> None
        [9:00, 10:30) 與 [10:00, 11:00) -> [10:00, 10:30)
    """
    if a.date != b.date:
        return None

    start = max(a.start_time, b.start_time)
    end = min(a.end_time, b.end_time)

    if end <= start:
        return None

    if end - start < MINIMUM_OVERLAP:
        return None

    return TimeSlot(date=a.date, start_time=start, end_time=end)


def has_overlap(a: TimeSlot, b: TimeSlot) -> bool:
    return overlap(a, b) is not None


# ============ 週期性時間段 ============

def weekday_number(day: date) -> int:
    """date -> 1 (週日) .. 7 (週六)"""
    return (day.weekday() + 1) % 7 + 1


def to_time_slot(slot: RecurringTimeSlot, on_date: date, tzinfo=None) -> TimeSlot:
    """把週期性時間段套到指定日期上（不檢查星期是否相符）"""
    return TimeSlot(
        date=on_date,
        start_time=datetime.combine(on_date, slot.start_time, tzinfo=tzinfo),
        end_time=datetime.combine(on_date, slot.end_time, tzinfo=tzinfo)
    )


def next_occurrence(slot: RecurringTimeSlot, from_: datetime) -> Optional[TimeSlot]:
    """
    找出週期性時間段的下一次具體時間

    邏輯：
    - 從 from_ 當天開始逐日往後找，最多 14 天
    - 星期相符即返回
    - 如果是起始當天且時段已經結束，跳過

    參數：
        slot: 週期性時間段
        from_: 起始時間（時區會沿用到結果上，沒有時區視為 UTC）

    返回：
        TimeSlot，14 天內找不到則返回 None
    """
    from_ = as_utc(from_)
    start_day = from_.date()
    for offset in range(MAXIMUM_DAYS_AHEAD):
        day = start_day + timedelta(days=offset)
        if weekday_number(day) != slot.day_of_week:
            continue

        candidate = to_time_slot(slot, day, tzinfo=from_.tzinfo)
        if offset == 0 and candidate.end_time <= from_:
            continue
        return candidate

    return None


class RecurringSlotStore:
    """
    週期性時間段儲存（每位使用者一個 JSON list）

    上限 5 個，不論 is_active；check-then-insert 在同一個 lock 內完成
    """

    def __init__(self, store: PersistenceStore):
        self._store = store
        self._lock = threading.Lock()

    @staticmethod
    def _key(user_id: str) -> str:
        return f"recurring_slots:{user_id}"

    def list(self, user_id: str) -> List[RecurringTimeSlot]:
        return load_list(self._store, self._key(user_id), RecurringTimeSlot)

    def active(self, user_id: str) -> List[RecurringTimeSlot]:
        return [s for s in self.list(user_id) if s.is_active]

    def remaining(self, user_id: str) -> int:
        return max(0, MAXIMUM_RECURRING_SLOTS - len(self.list(user_id)))

    def add(self, user_id: str, slot: RecurringTimeSlot) -> RecurringTimeSlot:
        """
        新增週期性時間段

        異常：
            InvalidTimeSlot: 時長不在 1-8 小時之間
            RecurringSlotLimitReached: 已經有 5 個
        """
        duration = timedelta(minutes=slot.duration_minutes)
        if not MINIMUM_DURATION <= duration <= MAXIMUM_DURATION:
            raise InvalidTimeSlot("recurring slot must last between 1 and 8 hours")

        with self._lock:
            slots = self.list(user_id)
            if len(slots) >= MAXIMUM_RECURRING_SLOTS:
                logger.warning(f"User {user_id} hit the recurring slot limit")
                raise RecurringSlotLimitReached(MAXIMUM_RECURRING_SLOTS)
            slots.append(slot)
            save_list(self._store, self._key(user_id), slots, RecurringTimeSlot)

        return slot

    def remove(self, user_id: str, slot_id: str) -> None:
        with self._lock:
            slots = self.list(user_id)
            remaining = [s for s in slots if s.id != slot_id]
            if len(remaining) == len(slots):
                raise RecurringSlotNotFound(f"Recurring slot {slot_id} not found")
            save_list(self._store, self._key(user_id), remaining, RecurringTimeSlot)

    def set_active(self, user_id: str, slot_id: str, is_active: bool) -> RecurringTimeSlot:
        with self._lock:
            slots = self.list(user_id)
            for index, existing in enumerate(slots):
                if existing.id == slot_id:
                    updated = existing.model_copy(update={"is_active": is_active})
                    slots[index] = updated
                    save_list(self._store, self._key(user_id), slots, RecurringTimeSlot)
                    return updated
        raise RecurringSlotNotFound(f"Recurring slot {slot_id} not found")

    def upcoming(self, user_id: str, clock: Clock = utcnow) -> List[TimeSlot]:
        """所有啟用中的週期性時間段，各自的下一次具體時間（依開始時間排序）"""
        now = clock()
        slots = [next_occurrence(s, now) for s in self.active(user_id)]
        return sorted((s for s in slots if s is not None), key=lambda s: s.start_time)
