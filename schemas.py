"""
Pydantic 資料模型

領域實體（User、Room、MatchSurvey…）與 API request/response 共用同一組模型，
所有需要持久化的實體都以 JSON 序列化（model_dump_json / model_validate_json）。
"""
import math
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.clock import as_utc


NEW_PLAYER_EVALUATION_THRESHOLD = 5
ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
ROOM_EXPIRATION = timedelta(minutes=30)
SURVEY_VALIDITY = timedelta(hours=48)


def new_id() -> str:
    return uuid4().hex


def round_half_away_from_zero(value: float) -> int:
    """2.5 -> 3, -2.5 -> -3（Python 內建 round 是銀行家捨入，這裡不能用）"""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


# ============ Enums ============

class GameMode(str, Enum):
    SINGLES = "singles"
    DOUBLES = "doubles"

    @property
    def required_players(self) -> int:
        return 2 if self is GameMode.SINGLES else 4


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    REGIONAL_CHAMPION = "regional_champion"  # 8 級所需
    NATIONAL_CHAMPION = "national_champion"  # 9 級所需


class RoomStatus(str, Enum):
    OPEN = "open"
    STARTED = "started"
    CLOSED = "closed"


class AuthorizationState(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"


# ============ 位置 ============

class Coordinate(BaseModel):
    """地理座標；超出範圍的經緯度在建構時就會被拒絕，不做 clamp"""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


# ============ 使用者與聲譽 ============

class ReputationScore(BaseModel):
    """
    聲譽分數

    空的分數是 {0, 100, 3, 0}：沒有任何評價時視為「尚無負面訊號」，
    而不是統計上的平均值。
    """
    average_skill_accuracy: float = Field(default=0.0, ge=0)
    punctuality_percentage: float = Field(default=100.0, ge=0, le=100)
    average_character_rating: float = Field(default=3.0, ge=0, le=5)
    evaluation_count: int = Field(default=0, ge=0)

    @property
    def is_new_player(self) -> bool:
        return self.evaluation_count < NEW_PLAYER_EVALUATION_THRESHOLD

    @classmethod
    def empty(cls) -> "ReputationScore":
        return cls()


class User(BaseModel):
    id: str
    nickname: str
    self_reported_level: int = Field(ge=1, le=9)
    calculated_level: Optional[float] = None
    total_games: int = Field(default=0, ge=0)
    wins: int = Field(default=0, ge=0)
    location: Optional[Coordinate] = None
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    reputation: ReputationScore = Field(default_factory=ReputationScore)

    @model_validator(mode="after")
    def _default_calculated_level(self) -> "User":
        # 剛註冊的使用者：計算等級 = 自評等級
        if self.calculated_level is None:
            self.calculated_level = float(self.self_reported_level)
        return self

    @property
    def display_level(self) -> int:
        if self.reputation.evaluation_count < NEW_PLAYER_EVALUATION_THRESHOLD:
            return self.self_reported_level
        return round_half_away_from_zero(self.calculated_level)

    @property
    def is_new_player(self) -> bool:
        return self.reputation.is_new_player

    @property
    def win_rate(self) -> float:
        if self.total_games <= 0:
            return 0.0
        return self.wins / self.total_games * 100


# ============ 時間段 ============

class TimeSlot(BaseModel):
    """
    具體日期上的可用時間段

    建構時不檢查時長：重疊計算會產生 30 分鐘的時間段，
    1-8 小時與 14 天的限制由 TimeSlotEngine.validate 負責。
    沒有時區的時間一律視為 UTC，開始時間必須落在 date 當天。
    """
    model_config = ConfigDict(frozen=True)

    date: date
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _start_on_date(self) -> "TimeSlot":
        if self.start_time.date() != self.date:
            raise ValueError("start_time must fall on the slot date")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


class RecurringTimeSlot(BaseModel):
    """週期性時間段（day_of_week: 1 = 週日, 2 = 週一, ..., 7 = 週六）"""
    id: str = Field(default_factory=new_id)
    day_of_week: int = Field(ge=1, le=7)
    start_time: time
    end_time: time
    is_active: bool = True

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start


# ============ 配對 ============

class CandidateProfile(BaseModel):
    """候選人池提供的原始資料：使用者 + 可用時間 + 常去球館 + 接受的模式"""
    user: User
    time_slots: List[TimeSlot] = Field(default_factory=list)
    venue_ids: List[str] = Field(default_factory=list)
    modes: List[GameMode] = Field(
        default_factory=lambda: [GameMode.SINGLES, GameMode.DOUBLES]
    )


class MatchCandidate(BaseModel):
    user: User
    distance: Optional[float] = None
    skill_difference: int
    overlapping_time_slot: TimeSlot
    common_venue_count: int = 0
    match_score: float

    @property
    def id(self) -> str:
        return self.user.id


class SearchRequest(BaseModel):
    requester_id: str
    skill_level: int = Field(ge=1, le=9)
    mode: GameMode = GameMode.SINGLES
    time_slot: TimeSlot
    location: Optional[Coordinate] = None
    selected_venue_ids: List[str] = Field(default_factory=list)
    radius_miles: Optional[float] = Field(default=None, gt=0)
    excluded_user_ids: List[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    candidates: List[MatchCandidate]
    best_match: Optional[MatchCandidate] = None


# ============ 房間 ============

class RoomParticipant(BaseModel):
    user_id: str
    nickname: str
    skill_level: int = Field(ge=1, le=9)
    joined_at: datetime


class Room(BaseModel):
    id: str = Field(default_factory=new_id)
    code: str
    owner_id: str
    mode: GameMode
    participants: List[RoomParticipant] = Field(default_factory=list)
    status: RoomStatus = RoomStatus.OPEN
    created_at: datetime
    last_activity_at: datetime

    @property
    def required_players(self) -> int:
        return self.mode.required_players

    @property
    def is_ready(self) -> bool:
        return len(self.participants) == self.required_players

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= self.required_players

    @property
    def is_live(self) -> bool:
        return self.status != RoomStatus.CLOSED

    def has_participant(self, user_id: str) -> bool:
        return any(p.user_id == user_id for p in self.participants)

    def is_expired(self, now: datetime) -> bool:
        return now - self.last_activity_at > ROOM_EXPIRATION


# ============ 問卷 ============

class MatchSurvey(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    match_id: str
    evaluator_id: str
    evaluated_user_id: str
    skill_rating: int
    was_punctual: bool
    character_rating: int
    submitted_at: datetime


class PendingSurvey(BaseModel):
    id: str = Field(default_factory=new_id)
    match_id: str
    evaluator_id: str
    opponent_id: str
    opponent_nickname: str
    match_date: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class MatchParticipant(BaseModel):
    id: str
    nickname: str


# ============ API Request / Response ============

class RoomCreate(BaseModel):
    owner_id: str
    nickname: str
    skill_level: int = Field(ge=1, le=9)
    mode: GameMode = GameMode.SINGLES


class RoomJoin(BaseModel):
    user_id: str
    nickname: str
    skill_level: int = Field(ge=1, le=9)


class RoomAction(BaseModel):
    caller_id: str


class KickRequest(BaseModel):
    caller_id: str
    participant_id: str


class InviteRequest(BaseModel):
    caller_id: str
    friend_id: str


class SurveySubmit(BaseModel):
    match_id: str
    evaluator_id: str
    evaluated_user_id: str
    skill_rating: int
    was_punctual: bool
    character_rating: int


class PendingSurveyCreate(BaseModel):
    match_id: str
    participants: List[MatchParticipant]
    excluding_user_id: str


class SelfLevelUpdate(BaseModel):
    level: int


class StatusResponse(BaseModel):
    status: str
