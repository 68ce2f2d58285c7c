"""
Shared fixtures: a controllable clock, an in-memory store and a notifier
that records every event instead of delivering it.
"""
import math
from datetime import date, datetime, timedelta, timezone

import pytest

from core.store import MemoryStore
from schemas import Coordinate, TimeSlot, User
from services.geo_service import EARTH_RADIUS_MILES


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, user_id, event, payload):
        self.events.append((user_id, event, payload))

    def events_for(self, user_id):
        return [event for uid, event, _ in self.events if uid == user_id]


START = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


def make_user(user_id, level=5, location=None, **kwargs):
    return User(
        id=user_id,
        nickname=f"player-{user_id}",
        self_reported_level=level,
        location=location,
        **kwargs
    )


def make_slot(day: date, start_hour, start_minute, end_hour, end_minute):
    return TimeSlot(
        date=day,
        start_time=datetime(day.year, day.month, day.day, start_hour, start_minute, tzinfo=timezone.utc),
        end_time=datetime(day.year, day.month, day.day, end_hour, end_minute, tzinfo=timezone.utc)
    )


def north_of(origin: Coordinate, miles: float) -> Coordinate:
    """Coordinate ``miles`` due north of ``origin`` along the meridian."""
    delta = math.degrees(miles / EARTH_RADIUS_MILES)
    return Coordinate(latitude=origin.latitude + delta, longitude=origin.longitude)
