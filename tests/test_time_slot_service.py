"""
Tests for the time slot service - validation, overlap and recurring slots.
"""
from datetime import date, datetime, time, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import START, FrozenClock, make_slot
from core.exceptions import InvalidTimeSlot, RecurringSlotLimitReached, RecurringSlotNotFound
from schemas import RecurringTimeSlot, TimeSlot
from services import time_slot_service
from services.time_slot_service import RecurringSlotStore

TODAY = START.date()


# ============ validate ============

def test_valid_slot():
    slot = make_slot(TODAY + timedelta(days=1), 9, 0, 11, 0)
    assert time_slot_service.validate(slot, START) == time_slot_service.VALID


@pytest.mark.parametrize("end_hour,end_minute,valid", [
    (9, 59, False),   # 59 minutes
    (10, 0, True),    # exactly 1 hour
    (17, 0, True),    # exactly 8 hours
    (17, 1, False),   # 8 hours 1 minute
])
def test_duration_bounds(end_hour, end_minute, valid):
    slot = make_slot(TODAY + timedelta(days=1), 9, 0, end_hour, end_minute)
    assert time_slot_service.validate(slot, START).valid is valid


def test_end_before_start_is_invalid():
    slot = make_slot(TODAY + timedelta(days=1), 11, 0, 9, 0)
    result = time_slot_service.validate(slot, START)
    assert not result.valid
    assert "after start" in result.reason


def test_past_date_is_invalid():
    slot = make_slot(TODAY - timedelta(days=1), 9, 0, 11, 0)
    assert time_slot_service.validate(slot, START).reason == "date is in the past"


def test_today_and_day_fourteen_are_valid():
    assert time_slot_service.validate(make_slot(TODAY, 18, 0, 20, 0), START).valid
    assert time_slot_service.validate(make_slot(TODAY + timedelta(days=14), 9, 0, 10, 0), START).valid


def test_day_fifteen_is_invalid():
    slot = make_slot(TODAY + timedelta(days=15), 9, 0, 10, 0)
    assert not time_slot_service.validate(slot, START).valid


def test_require_valid_raises():
    with pytest.raises(InvalidTimeSlot):
        time_slot_service.require_valid(make_slot(TODAY, 9, 0, 9, 30), START)


# ============ overlap ============

def test_fifteen_minute_overlap_is_not_enough():
    a = make_slot(TODAY, 9, 0, 10, 0)
    b = make_slot(TODAY, 9, 45, 11, 0)
    assert time_slot_service.overlap(a, b) is None
    assert not time_slot_service.has_overlap(a, b)


def test_thirty_minute_overlap_is_returned():
    a = make_slot(TODAY, 9, 0, 10, 30)
    b = make_slot(TODAY, 10, 0, 11, 0)
    shared = time_slot_service.overlap(a, b)
    assert shared == make_slot(TODAY, 10, 0, 10, 30)


def test_overlap_is_symmetric():
    a = make_slot(TODAY, 9, 0, 12, 0)
    b = make_slot(TODAY, 10, 0, 11, 0)
    assert time_slot_service.overlap(a, b) == time_slot_service.overlap(b, a) == b


def test_touching_slots_do_not_overlap():
    a = make_slot(TODAY, 9, 0, 10, 0)
    b = make_slot(TODAY, 10, 0, 11, 0)
    assert time_slot_service.overlap(a, b) is None


def test_different_days_never_overlap():
    a = make_slot(TODAY, 9, 0, 12, 0)
    b = make_slot(TODAY + timedelta(days=1), 9, 0, 12, 0)
    assert time_slot_service.overlap(a, b) is None


def test_naive_times_are_read_as_utc():
    naive = TimeSlot.model_validate({
        "date": "2026-03-02",
        "start_time": "2026-03-02T10:00:00",
        "end_time": "2026-03-02T11:00:00",
    })
    aware = make_slot(TODAY, 9, 0, 12, 0)

    assert naive.start_time.tzinfo is not None
    assert time_slot_service.overlap(aware, naive) == make_slot(TODAY, 10, 0, 11, 0)
    assert time_slot_service.overlap(naive, aware) == make_slot(TODAY, 10, 0, 11, 0)


def test_start_time_must_fall_on_slot_date():
    with pytest.raises(PydanticValidationError):
        TimeSlot(
            date=TODAY,
            start_time=datetime(2026, 3, 3, 9, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 3, 3, 11, 0, tzinfo=timezone.utc)
        )


# ============ recurring ============

def test_weekday_number_starts_on_sunday():
    assert time_slot_service.weekday_number(date(2026, 3, 1)) == 1  # Sunday
    assert time_slot_service.weekday_number(date(2026, 3, 2)) == 2  # Monday
    assert time_slot_service.weekday_number(date(2026, 3, 7)) == 7  # Saturday


def test_next_occurrence_later_this_week():
    # START is Monday 08:00; Wednesday is day 4
    slot = RecurringTimeSlot(day_of_week=4, start_time=time(19, 0), end_time=time(21, 0))
    result = time_slot_service.next_occurrence(slot, START)
    assert result.date == date(2026, 3, 4)
    assert result.start_time == datetime(2026, 3, 4, 19, 0, tzinfo=timezone.utc)


def test_next_occurrence_skips_finished_slot_today():
    slot = RecurringTimeSlot(day_of_week=2, start_time=time(6, 0), end_time=time(7, 0))
    result = time_slot_service.next_occurrence(slot, START)
    assert result.date == date(2026, 3, 9)


def test_next_occurrence_keeps_slot_still_running_today():
    slot = RecurringTimeSlot(day_of_week=2, start_time=time(7, 0), end_time=time(9, 0))
    assert time_slot_service.next_occurrence(slot, START).date == TODAY


def test_next_occurrence_accepts_naive_start():
    slot = RecurringTimeSlot(day_of_week=4, start_time=time(19, 0), end_time=time(21, 0))
    result = time_slot_service.next_occurrence(slot, START.replace(tzinfo=None))
    assert result.start_time == datetime(2026, 3, 4, 19, 0, tzinfo=timezone.utc)



def test_recurring_slot_limit(store):
    slots = RecurringSlotStore(store)
    for day in range(1, 6):
        slots.add("u1", RecurringTimeSlot(day_of_week=day, start_time=time(18, 0), end_time=time(20, 0)))

    assert slots.remaining("u1") == 0
    with pytest.raises(RecurringSlotLimitReached):
        slots.add("u1", RecurringTimeSlot(day_of_week=6, start_time=time(18, 0), end_time=time(20, 0)))

    # Other users are unaffected
    assert slots.remaining("u2") == 5


def test_inactive_slots_count_towards_limit(store):
    slots = RecurringSlotStore(store)
    first = slots.add("u1", RecurringTimeSlot(day_of_week=1, start_time=time(8, 0), end_time=time(10, 0)))
    slots.set_active("u1", first.id, False)

    assert slots.active("u1") == []
    assert len(slots.list("u1")) == 1
    assert slots.remaining("u1") == 4


def test_recurring_slot_duration_is_validated(store):
    slots = RecurringSlotStore(store)
    with pytest.raises(InvalidTimeSlot):
        slots.add("u1", RecurringTimeSlot(day_of_week=1, start_time=time(8, 0), end_time=time(8, 30)))


def test_remove_recurring_slot(store):
    slots = RecurringSlotStore(store)
    slot = slots.add("u1", RecurringTimeSlot(day_of_week=3, start_time=time(8, 0), end_time=time(10, 0)))
    slots.remove("u1", slot.id)
    assert slots.list("u1") == []

    with pytest.raises(RecurringSlotNotFound):
        slots.remove("u1", slot.id)


def test_upcoming_only_uses_active_slots(store):
    slots = RecurringSlotStore(store)
    later = slots.add("u1", RecurringTimeSlot(day_of_week=6, start_time=time(9, 0), end_time=time(11, 0)))
    sooner = slots.add("u1", RecurringTimeSlot(day_of_week=3, start_time=time(9, 0), end_time=time(11, 0)))
    paused = slots.add("u1", RecurringTimeSlot(day_of_week=4, start_time=time(9, 0), end_time=time(11, 0)))
    slots.set_active("u1", paused.id, False)

    upcoming = slots.upcoming("u1", FrozenClock(START))
    assert [s.date for s in upcoming] == [date(2026, 3, 3), date(2026, 3, 6)]
    assert later.is_active and sooner.is_active
