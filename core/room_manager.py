"""
Room Manager：管理 Room 的完整生命週期

職責：
1. 建立 Room（房主即第一位參與者）
2. 加入 / 踢出 / 邀請 / 離開
3. 開始比賽
4. 關閉 Room（房主離開、主動關閉、30 分鐘無活動）

狀態：
    OPEN ──(房主開始)──> STARTED
      │                   │
      └──(離開/關閉/過期)──┴──> CLOSED

READY 不是儲存的狀態：is_ready 每次都由參與人數推導。

原則：
- 所有 check-then-mutate 都在同一個 room lock 內完成
- 任何變更動作都會更新 last_activity_at
- 關閉的房間從 registry 與儲存中移除，代碼可以重新使用
"""
import json
import logging
from typing import Callable, Dict, List, Optional

from core.clock import Clock, utcnow
from core.exceptions import (
    AlreadyInRoom,
    CannotKickOwner,
    InvalidRoomCode,
    MatchAlreadyStarted,
    MatchNotFound,
    NotEnoughPlayers,
    NotInRoom,
    NotRoomOwner,
    RoomCodeExhausted,
    RoomExpired,
    RoomFull,
    RoomNotAcceptingPlayers,
    RoomNotFound
)
from core.locks import RoomLockRegistry
from core.store import PersistenceStore, load_model, save_model
from schemas import GameMode, Room, RoomParticipant, RoomStatus
from services.naming_service import generate_room_code, is_valid_room_code, normalize_room_code
from services.providers import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)

ROOM_INDEX_KEY = "rooms:live"
MAX_CODE_ATTEMPTS = 20


class RoomManager:
    """Room 生命週期管理器"""

    def __init__(
        self,
        store: PersistenceStore,
        clock: Clock = utcnow,
        notifier: Optional[Notifier] = None,
        code_generator: Callable[[], str] = generate_room_code,
        locks: Optional[RoomLockRegistry] = None
    ):
        self._store = store
        self._clock = clock
        self._notifier = notifier or LoggingNotifier()
        self._generate_code = code_generator
        self._locks = locks or RoomLockRegistry()

        self._rooms: Dict[str, Room] = {}
        self._codes: Dict[str, str] = {}
        self._load()

    # ============ 持久化 ============

    @staticmethod
    def _key(room_id: str) -> str:
        return f"room:{room_id}"

    def _load(self) -> None:
        """從儲存恢復仍然存活的房間"""
        raw = self._store.get(ROOM_INDEX_KEY)
        room_ids = json.loads(raw) if raw else []
        for room_id in room_ids:
            room = load_model(self._store, self._key(room_id), Room)
            if room is None or not room.is_live:
                continue
            self._rooms[room.id] = room
            self._codes[room.code] = room.id
            self._locks.register(room.id)
        if self._rooms:
            logger.info(f"Restored {len(self._rooms)} live rooms")

    def _save_index(self) -> None:
        # 呼叫者必須持有 registry_lock
        self._store.put(ROOM_INDEX_KEY, json.dumps(sorted(self._rooms)).encode("utf-8"))

    def _persist(self, room: Room) -> None:
        save_model(self._store, self._key(room.id), room)

    # ============ 內部工具 ============

    def _generate_unique_code(self) -> str:
        """
        生成目前存活房間中唯一的代碼

        呼叫者必須持有 registry_lock

        異常：
            RoomCodeExhausted: 連續 MAX_CODE_ATTEMPTS 次碰撞
        """
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self._generate_code()
            if code not in self._codes:
                return code
            logger.warning(f"Room code collision detected, regenerating: {code}")
        raise RoomCodeExhausted(f"No free room code after {MAX_CODE_ATTEMPTS} attempts")

    def _require_live(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    @staticmethod
    def _require_owner(room: Room, caller_id: str) -> None:
        if room.owner_id != caller_id:
            raise NotRoomOwner(f"Only the owner of room {room.code} can do this")

    def _touch(self, room: Room) -> None:
        room.last_activity_at = self._clock()

    def _notify(self, user_ids, event: str, room: Room, **extra) -> None:
        payload = {"room_id": room.id, "room_code": room.code, **extra}
        for user_id in user_ids:
            self._notifier.notify(user_id, event, payload)

    def _close_locked(self, room: Room, reason: str, actor_id: Optional[str] = None) -> Room:
        """
        關閉房間（呼叫者必須持有該 room 的 lock）

        流程：
        1. 狀態轉為 CLOSED
        2. 從 registry、代碼索引、儲存中移除
        3. 通知除了 actor 以外的參與者
        """
        room.status = RoomStatus.CLOSED
        with self._locks.registry_lock:
            self._rooms.pop(room.id, None)
            if self._codes.get(room.code) == room.id:
                del self._codes[room.code]
            self._store.delete(self._key(room.id))
            self._save_index()
        self._locks.discard(room.id)

        logger.info(f"Room {room.id} ({room.code}) closed: {reason}")
        self._notify(
            [p.user_id for p in room.participants if p.user_id != actor_id],
            "room_closed",
            room,
            reason=reason
        )
        return room.model_copy(deep=True)

    # ============ 公開操作 ============

    def create_room(self, owner_id: str, nickname: str, skill_level: int, mode: GameMode) -> Room:
        """
        建立新房間（房主為第一位參與者）

        流程：
        1. 生成唯一的房間代碼（碰撞時重新生成）
        2. 建立 Room
        3. 寫入儲存與索引

        參數：
            owner_id: 房主 ID
            nickname: 房主暱稱
            skill_level: 房主顯示等級
            mode: 單打 / 雙打

        返回：
            Room（副本）

        異常：
            RoomCodeExhausted: 代碼連續碰撞，呼叫者可重試
        """
        now = self._clock()
        owner = RoomParticipant(
            user_id=owner_id,
            nickname=nickname,
            skill_level=skill_level,
            joined_at=now
        )

        with self._locks.registry_lock:
            code = self._generate_unique_code()
            room = Room(
                code=code,
                owner_id=owner_id,
                mode=GameMode(mode),
                participants=[owner],
                created_at=now,
                last_activity_at=now
            )
            self._rooms[room.id] = room
            self._codes[code] = room.id
            self._locks.register(room.id)
            self._persist(room)
            self._save_index()

        logger.info(f"Created room {room.id} with code {code} ({room.mode.value})")
        return room.model_copy(deep=True)

    def join_room(self, code: str, user_id: str, nickname: str, skill_level: int) -> Room:
        """
        透過房間代碼加入房間

        前置條件：
        - 代碼格式正確
        - 房間存在且尚未開始
        - 房間沒有過期、沒有滿員、玩家不在房間中

        異常：
            InvalidRoomCode: 代碼格式錯誤
            RoomNotFound: 房間不存在
            RoomNotAcceptingPlayers: 比賽已開始
            RoomExpired: 房間過期（順便關閉）
            AlreadyInRoom: 已經在房間中
            RoomFull: 房間已滿
        """
        normalized = normalize_room_code(code)
        if not is_valid_room_code(normalized):
            raise InvalidRoomCode(code)

        with self._locks.registry_lock:
            room_id = self._codes.get(normalized)
        if room_id is None:
            raise RoomNotFound(f"with code {normalized}")

        with self._locks.with_room_lock(room_id):
            room = self._require_live(room_id)
            now = self._clock()

            if room.status == RoomStatus.STARTED:
                raise RoomNotAcceptingPlayers(f"Room {normalized} has already started")

            if room.is_expired(now):
                self._close_locked(room, reason="expired")
                raise RoomExpired(f"Room {normalized} expired")

            if room.has_participant(user_id):
                raise AlreadyInRoom(f"User {user_id} is already in room {normalized}")

            if room.is_full:
                raise RoomFull(f"Room {normalized} is full ({room.required_players} players)")

            room.participants.append(RoomParticipant(
                user_id=user_id,
                nickname=nickname,
                skill_level=skill_level,
                joined_at=now
            ))
            room.last_activity_at = now
            self._persist(room)

            logger.info(
                f"User {user_id} joined room {room.id} "
                f"({len(room.participants)}/{room.required_players})"
            )
            self._notify([room.owner_id], "player_joined", room, user_id=user_id)
            return room.model_copy(deep=True)

    def kick_player(self, room_id: str, caller_id: str, participant_id: str) -> Room:
        """
        踢出玩家（僅房主可用）

        參與者存在就移除並通知，不存在則不動；兩種情況都會更新 last_activity_at

        異常：
            RoomNotFound: 房間不存在
            NotRoomOwner: 呼叫者不是房主
            CannotKickOwner: 房主踢自己
        """
        with self._locks.with_room_lock(room_id):
            room = self._require_live(room_id)
            self._require_owner(room, caller_id)
            if participant_id == room.owner_id:
                raise CannotKickOwner("The owner cannot kick themselves")

            before = len(room.participants)
            room.participants = [p for p in room.participants if p.user_id != participant_id]
            self._touch(room)
            self._persist(room)

            if len(room.participants) < before:
                logger.info(f"User {participant_id} kicked from room {room.id}")
                self._notify([participant_id], "kicked", room)
            return room.model_copy(deep=True)

    def invite_friend(self, room_id: str, caller_id: str, friend_id: str) -> Room:
        """
        邀請好友加入房間（僅房主可用）

        前置條件：
        - 房間尚未開始且還有空位
        - 好友不在房間中

        注意：
            刻意不要求 is_ready。is_ready 的房間已經滿員，邀請只會失敗，
            所以這裡改成要求還有空位。

        效果：
            通知好友（附上房間代碼），更新 last_activity_at
        """
        with self._locks.with_room_lock(room_id):
            room = self._require_live(room_id)
            self._require_owner(room, caller_id)

            if room.status != RoomStatus.OPEN:
                raise RoomNotAcceptingPlayers(f"Room {room.code} has already started")
            if room.has_participant(friend_id):
                raise AlreadyInRoom(f"User {friend_id} is already in room {room.code}")
            if room.is_full:
                raise RoomFull(f"Room {room.code} is full")

            self._touch(room)
            self._persist(room)

            logger.info(f"Owner {caller_id} invited {friend_id} to room {room.id}")
            self._notify([friend_id], "room_invite", room, mode=room.mode.value, owner_id=room.owner_id)
            return room.model_copy(deep=True)

    def start_match(self, room_id: str, caller_id: str) -> Room:
        """
        開始比賽（狀態轉換 OPEN -> STARTED）

        前置條件：
        1. 呼叫者是房主
        2. 人數剛好等於模式所需（單打 2、雙打 4）

        異常：
            NotRoomOwner: 呼叫者不是房主
            MatchAlreadyStarted: 已經開始
            NotEnoughPlayers: 人數不符
        """
        with self._locks.with_room_lock(room_id):
            room = self._require_live(room_id)
            self._require_owner(room, caller_id)

            if room.status == RoomStatus.STARTED:
                raise MatchAlreadyStarted(f"Room {room.code} has already started")

            if not room.is_ready:
                raise NotEnoughPlayers(room.required_players, len(room.participants))

            room.status = RoomStatus.STARTED
            self._touch(room)
            self._persist(room)

            logger.info(f"Match started in room {room.id} with {len(room.participants)} players")
            self._notify(
                [p.user_id for p in room.participants],
                "match_started",
                room,
                participant_ids=[p.user_id for p in room.participants]
            )
            return room.model_copy(deep=True)

    def leave_room(self, room_id: str, user_id: str) -> Room:
        """
        離開房間

        房主離開時整個房間關閉，其他人離開只移除自己
        """
        with self._locks.with_room_lock(room_id):
            room = self._require_live(room_id)
            if not room.has_participant(user_id):
                raise NotInRoom(f"User {user_id} is not in room {room.code}")

            if user_id == room.owner_id:
                return self._close_locked(room, reason="owner_left", actor_id=user_id)

            room.participants = [p for p in room.participants if p.user_id != user_id]
            self._touch(room)
            self._persist(room)

            logger.info(f"User {user_id} left room {room.id}")
            self._notify([room.owner_id], "player_left", room, user_id=user_id)
            return room.model_copy(deep=True)

    def close_room(self, room_id: str, caller_id: str) -> Room:
        """房主主動關閉房間"""
        with self._locks.with_room_lock(room_id):
            room = self._require_live(room_id)
            self._require_owner(room, caller_id)
            return self._close_locked(room, reason="closed_by_owner", actor_id=caller_id)

    def expire_stale_rooms(self) -> List[str]:
        """
        關閉所有超過 30 分鐘無活動的 OPEN 房間

        由背景的 RoomExpirationSweeper 定期呼叫；
        每個房間都在自己的 room lock 內檢查，不會與進行中的 join/kick 衝突

        返回：
            被關閉的 room id 列表
        """
        with self._locks.registry_lock:
            room_ids = list(self._rooms)

        closed = []
        for room_id in room_ids:
            lock = self._locks.lock_for(room_id)
            if lock is None:
                continue
            with lock:
                room = self._rooms.get(room_id)
                if room is None or room.status != RoomStatus.OPEN:
                    continue
                if room.is_expired(self._clock()):
                    self._close_locked(room, reason="expired")
                    closed.append(room_id)

        if closed:
            logger.info(f"Expired {len(closed)} idle rooms")
        return closed

    # ============ 查詢 ============

    def get_room(self, room_id: str) -> Room:
        """
        透過 ID 取得存活中的 Room

        異常：
            RoomNotFound: Room 不存在或已關閉
        """
        with self._locks.with_room_lock(room_id):
            return self._require_live(room_id).model_copy(deep=True)

    def get_match(self, match_id: str) -> Room:
        """
        取得進行中的比賽（match_id 即開始比賽的 room id）

        異常：
            MatchNotFound: 沒有這個 room，或 room 尚未開始比賽
        """
        try:
            room = self.get_room(match_id)
        except RoomNotFound:
            raise MatchNotFound(match_id)
        if room.status != RoomStatus.STARTED:
            raise MatchNotFound(match_id)
        return room

    def get_room_by_code(self, code: str) -> Room:
        normalized = normalize_room_code(code)
        if not is_valid_room_code(normalized):
            raise InvalidRoomCode(code)
        with self._locks.registry_lock:
            room_id = self._codes.get(normalized)
        if room_id is None:
            raise RoomNotFound(f"with code {normalized}")
        return self.get_room(room_id)

    def live_rooms(self) -> List[Room]:
        with self._locks.registry_lock:
            return [room.model_copy(deep=True) for room in self._rooms.values()]

    def live_codes(self) -> List[str]:
        with self._locks.registry_lock:
            return sorted(self._codes)
