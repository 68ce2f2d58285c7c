"""
並發控制工具

提供 per-room 的互斥鎖，防止競態條件（Race Condition）

典型問題：兩個玩家同時加入同一個房間，兩邊都看到 count < required，
結果房間超員。所有 check-then-mutate 都必須在同一個 room lock 內完成，
背景過期檢查也使用同一把鎖。
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from core.exceptions import RoomNotFound


class RoomLockRegistry:
    """
    Room ID -> threading.Lock

    使用場景：
    - join / kick / invite / start / leave / close
    - 過期檢查關閉房間時

    範例：
        with locks.with_room_lock(room_id):
            room = registry.get(room_id)
            if room.is_full:
                raise RoomFull(...)
            room.participants.append(participant)
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        # 建立房間時檢查代碼唯一性用
        self.registry_lock = threading.Lock()

    def register(self, room_id: str) -> threading.Lock:
        """建立房間（或從儲存恢復）時建立該房間的鎖"""
        with self._guard:
            return self._locks.setdefault(room_id, threading.Lock())

    def lock_for(self, room_id: str) -> Optional[threading.Lock]:
        """只返回已註冊房間的鎖；不存在的 room id 不會留下任何紀錄"""
        with self._guard:
            return self._locks.get(room_id)

    @contextmanager
    def with_room_lock(self, room_id: str) -> Iterator[None]:
        """
        鎖定一個 Room

        異常：
            RoomNotFound: room id 沒有註冊過，或房間已經關閉

        注意：
            - 不可重入；同一個 thread 內不要巢狀取得同一把鎖
            - 取得鎖之後仍要確認房間還存活（等待期間可能被關閉）
        """
        lock = self.lock_for(room_id)
        if lock is None:
            raise RoomNotFound(room_id)
        with lock:
            yield

    def discard(self, room_id: str) -> None:
        """房間關閉後移除鎖（持有中的 thread 不受影響）"""
        with self._guard:
            self._locks.pop(room_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
