"""
Tests for RoomExpirationSweeper - interval bounds, single sweeps and the
background thread lifecycle.
"""
import threading

import pytest

from core.expiration import RoomExpirationSweeper
from core.room_manager import RoomManager
from schemas import GameMode


@pytest.fixture
def manager(store, clock, notifier):
    return RoomManager(store, clock=clock, notifier=notifier)


@pytest.mark.parametrize("interval", [0, -1, 61])
def test_interval_must_stay_within_a_minute(manager, interval):
    with pytest.raises(ValueError):
        RoomExpirationSweeper(manager, interval=interval)


def test_run_once_closes_idle_rooms(manager, clock, notifier):
    room = manager.create_room("owner", "Owner", 5, GameMode.SINGLES)
    sweeper = RoomExpirationSweeper(manager)

    assert sweeper.run_once() == []
    clock.advance(minutes=30, seconds=1)
    assert sweeper.run_once() == [room.id]
    assert manager.live_rooms() == []
    assert notifier.events_for("owner") == ["room_closed"]


def test_background_thread_sweeps_and_stops(manager, clock):
    manager.create_room("owner", "Owner", 5, GameMode.SINGLES)
    clock.advance(hours=1)

    swept = threading.Event()

    class WatchingManager:
        def expire_stale_rooms(self):
            closed = manager.expire_stale_rooms()
            swept.set()
            return closed

    sweeper = RoomExpirationSweeper(WatchingManager(), interval=0.05)
    sweeper.start()
    try:
        assert swept.wait(timeout=5)
        assert sweeper.is_running
    finally:
        sweeper.stop(timeout=5)

    assert not sweeper.is_running
    assert manager.live_rooms() == []


def test_errors_do_not_kill_the_thread():
    calls = []
    second_call = threading.Event()

    class FlakyManager:
        def expire_stale_rooms(self):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("store offline")
            second_call.set()
            return []

    sweeper = RoomExpirationSweeper(FlakyManager(), interval=0.01)
    sweeper.start()
    try:
        assert second_call.wait(timeout=5)
    finally:
        sweeper.stop(timeout=5)
