"""
外部協作者介面

引擎不直接做網路 I/O，這些介面由呼叫者注入：
- LocationProvider：目前座標 + 授權狀態
- CandidatePoolProvider：可考慮的候選人（已排除封鎖關係）
- Notifier：通知（被踢出、房間關閉、問卷待填…），實際送達不在引擎範圍內
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from schemas import AuthorizationState, CandidateProfile, Coordinate, SearchRequest

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    def current_location(self) -> Optional[Coordinate]: ...

    def authorization_state(self) -> AuthorizationState: ...


class CandidatePoolProvider(Protocol):
    def fetch_candidates(self, request: SearchRequest) -> List[CandidateProfile]: ...


class Notifier(Protocol):
    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None: ...


class StaticLocationProvider:
    """固定座標（或沒有座標）的 LocationProvider"""

    def __init__(
        self,
        location: Optional[Coordinate] = None,
        state: AuthorizationState = AuthorizationState.AUTHORIZED
    ):
        self._location = location
        self._state = state

    def current_location(self) -> Optional[Coordinate]:
        return self._location

    def authorization_state(self) -> AuthorizationState:
        return self._state


class InMemoryCandidatePool:
    """以記憶體中的 profile 清單作為候選人池"""

    def __init__(self, profiles: Optional[List[CandidateProfile]] = None):
        self._profiles: Dict[str, CandidateProfile] = {}
        self._lock = threading.Lock()
        for profile in profiles or []:
            self.upsert(profile)

    def upsert(self, profile: CandidateProfile) -> None:
        with self._lock:
            self._profiles[profile.user.id] = profile

    def remove(self, user_id: str) -> None:
        with self._lock:
            self._profiles.pop(user_id, None)

    def fetch_candidates(self, request: SearchRequest) -> List[CandidateProfile]:
        with self._lock:
            return list(self._profiles.values())


class LoggingNotifier:
    """只寫 log 的 Notifier（沒有接推播時的預設值）"""

    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notify {user_id}: {event} {payload}")
