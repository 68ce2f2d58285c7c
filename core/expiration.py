"""
Room expiration sweeper: closes rooms idle for more than 30 minutes.

Background thread that calls RoomManager.expire_stale_rooms() every
``interval`` seconds. The interval must stay at or below 60 seconds so an
idle room is never kept open much past its 30-minute limit.
"""

import logging
import threading
from typing import Optional

from core.room_manager import RoomManager

logger = logging.getLogger(__name__)

# How often the sweeper checks for idle rooms (seconds)
DEFAULT_INTERVAL_SECONDS = 60.0
MAX_INTERVAL_SECONDS = 60.0


class RoomExpirationSweeper:
    """Background worker that expires idle rooms."""

    def __init__(self, room_manager: RoomManager, interval: float = DEFAULT_INTERVAL_SECONDS):
        if not 0 < interval <= MAX_INTERVAL_SECONDS:
            raise ValueError(f"Sweep interval must be in (0, {MAX_INTERVAL_SECONDS}] seconds")
        self._room_manager = room_manager
        self._interval = interval
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background sweep thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name="room-expiration-sweeper", daemon=True
        )
        self._thread.start()
        logger.info(f"Room expiration sweeper started (every {self._interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the thread to stop and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Room expiration sweeper stopped")

    def run_once(self):
        """Single sweep; returns the ids of the rooms that were closed."""
        return self._room_manager.expire_stale_rooms()

    def _poll_loop(self) -> None:
        """Main loop: sweep, then wait for the interval or a stop signal."""
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in room expiration sweeper: {e}", exc_info=True)

            if self._stop_event.wait(self._interval):
                break
