"""
配對排序服務：從候選人池產生排序好的 MatchCandidate 列表

流程：
1. 排除自己、呼叫者指定的使用者、封鎖名單（predicate）、不接受此模式的人
2. 時間段重疊不足 30 分鐘的排除
3. 依策略過濾：
   - location：超出半徑（或沒有位置）的排除
   - venue：沒有共同球館的排除
4. 計分並排序（分數越低越好）

純計算邏輯：每次呼叫只讀取傳入的候選人快照，可以同時被多個請求呼叫。
空結果不是錯誤，要不要擴大搜尋由呼叫者決定。
"""
import logging
from collections import defaultdict
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from core.exceptions import LocationUnavailable
from schemas import (
    AuthorizationState,
    CandidateProfile,
    Coordinate,
    MatchCandidate,
    SearchRequest,
    TimeSlot,
    User,
)
from services.geo_service import DEFAULT_RADIUS_MILES, distance_miles
from services.providers import CandidatePoolProvider, LocationProvider
from services.time_slot_service import overlap

logger = logging.getLogger(__name__)

SKILL_WEIGHT = 10.0
DISTANCE_WEIGHT = 1.0
VENUE_WEIGHT = 5.0

ExclusionPredicate = Callable[[User], bool]
UserLookup = Callable[[str], Optional[User]]


class ScoringStrategy(str, Enum):
    """
    兩種計分公式

    LOCATION: |技能差| × 10 + 距離 × 1
    VENUE:    |技能差| × 10 - 共同球館數 × 5
    """
    LOCATION = "location"
    VENUE = "venue"

    def score(self, skill_difference: int, distance: Optional[float], common_venue_count: int) -> float:
        skill_part = abs(skill_difference) * SKILL_WEIGHT
        if self is ScoringStrategy.LOCATION:
            return skill_part + (distance or 0.0) * DISTANCE_WEIGHT
        return skill_part - common_venue_count * VENUE_WEIGHT


class LocationPolicy(str, Enum):
    ERROR = "error"  # 拋出 LocationUnavailable
    SKIP = "skip"    # 不做地理圍欄


def _sort_key(candidate: MatchCandidate, by_distance: bool):
    distance = candidate.distance if (by_distance and candidate.distance is not None) else 0.0
    return (candidate.match_score, distance, candidate.id)


def sorted_by_match_score(
    candidates: Iterable[MatchCandidate],
    strategy: ScoringStrategy = ScoringStrategy.LOCATION
) -> List[MatchCandidate]:
    """
    依分數升冪排序

    同分時：location 模式先比距離，最後比 candidate id（保證結果穩定）
    """
    by_distance = strategy is ScoringStrategy.LOCATION
    return sorted(candidates, key=lambda c: _sort_key(c, by_distance))


def best_match(
    candidates: Iterable[MatchCandidate],
    strategy: ScoringStrategy = ScoringStrategy.LOCATION
) -> Optional[MatchCandidate]:
    """與 sorted_by_match_score 的第一名相同（同一套同分規則）"""
    candidates = list(candidates)
    if not candidates:
        return None
    by_distance = strategy is ScoringStrategy.LOCATION
    return min(candidates, key=lambda c: _sort_key(c, by_distance))


def group_by_skill_difference(candidates: Iterable[MatchCandidate]) -> Dict[int, List[MatchCandidate]]:
    groups: Dict[int, List[MatchCandidate]] = defaultdict(list)
    for candidate in candidates:
        groups[abs(candidate.skill_difference)].append(candidate)
    return dict(groups)


def first_overlap(requested: TimeSlot, slots: Iterable[TimeSlot]) -> Optional[TimeSlot]:
    """候選人所有時間段中，與需求重疊 >= 30 分鐘且開始最早的那一段"""
    overlaps = [o for o in (overlap(requested, s) for s in slots) if o is not None]
    if not overlaps:
        return None
    return min(overlaps, key=lambda o: o.start_time)


def rank_candidates(
    request: SearchRequest,
    profiles: Iterable[CandidateProfile],
    strategy: ScoringStrategy = ScoringStrategy.LOCATION,
    origin: Optional[Coordinate] = None,
    radius_miles: float = DEFAULT_RADIUS_MILES,
    exclude: Optional[ExclusionPredicate] = None
) -> List[MatchCandidate]:
    """
    過濾、計分並排序候選人

    參數：
        request: 搜尋請求（技能、模式、時間段、球館…）
        profiles: 候選人池快照
        strategy: 計分策略
        origin: 地理圍欄中心；location 策略下為 None 表示略過地理圍欄
        radius_miles: 地理圍欄半徑
        exclude: 額外的排除條件（例如封鎖名單）

    返回：
        排序好的 MatchCandidate 列表（可能為空）
    """
    excluded_ids = set(request.excluded_user_ids)
    excluded_ids.add(request.requester_id)
    selected_venues = set(request.selected_venue_ids)

    candidates: List[MatchCandidate] = []
    for profile in profiles:
        user = profile.user
        if user.id in excluded_ids:
            continue
        if exclude is not None and exclude(user):
            continue
        if request.mode not in profile.modes:
            continue

        shared_slot = first_overlap(request.time_slot, profile.time_slots)
        if shared_slot is None:
            continue

        distance = None
        if origin is not None and user.location is not None:
            distance = distance_miles(origin, user.location)

        if strategy is ScoringStrategy.LOCATION and origin is not None:
            if distance is None or distance > radius_miles:
                continue

        common_venue_count = len(selected_venues.intersection(profile.venue_ids))
        if strategy is ScoringStrategy.VENUE and common_venue_count == 0:
            continue

        skill_difference = user.display_level - request.skill_level
        candidates.append(MatchCandidate(
            user=user,
            distance=distance,
            skill_difference=skill_difference,
            overlapping_time_slot=shared_slot,
            common_venue_count=common_venue_count,
            match_score=strategy.score(skill_difference, distance, common_venue_count)
        ))

    return sorted_by_match_score(candidates, strategy)


class MatchCandidateRanker:
    """
    配對排序器

    依賴透過建構子注入：候選人池、（選用的）定位來源、計分策略、沒有定位時的處理方式

    user_lookup（選用）：候選人池的 User 可能是舊資料，有登錄紀錄的使用者
    以登錄紀錄的等級與聲譽為準（問卷更新後立刻反映在排序上）
    """

    def __init__(
        self,
        candidate_pool: CandidatePoolProvider,
        strategy: ScoringStrategy = ScoringStrategy.LOCATION,
        location_provider: Optional[LocationProvider] = None,
        location_policy: LocationPolicy = LocationPolicy.ERROR,
        radius_miles: float = DEFAULT_RADIUS_MILES,
        user_lookup: Optional[UserLookup] = None
    ):
        self.candidate_pool = candidate_pool
        self.user_lookup = user_lookup
        self.strategy = ScoringStrategy(strategy)
        self.location_provider = location_provider
        self.location_policy = LocationPolicy(location_policy)
        self.radius_miles = radius_miles

    def resolve_origin(self, request: SearchRequest) -> Optional[Coordinate]:
        """
        決定地理圍欄中心

        順序：請求中的位置 -> LocationProvider（需已授權）-> 依 location_policy 處理

        異常：
            LocationUnavailable: 沒有位置且 policy 為 ERROR
        """
        if request.location is not None:
            return request.location

        provider = self.location_provider
        if provider is not None and provider.authorization_state() == AuthorizationState.AUTHORIZED:
            location = provider.current_location()
            if location is not None:
                return location

        if self.location_policy is LocationPolicy.ERROR:
            raise LocationUnavailable("Cannot geofence without an authorized location")

        logger.warning(f"No location for requester {request.requester_id}, skipping geofence")
        return None

    def with_current_user(self, profile: CandidateProfile) -> CandidateProfile:
        """以登錄紀錄覆蓋 profile 中的等級、驗證狀態與聲譽（位置沿用候選人池）"""
        if self.user_lookup is None:
            return profile
        stored = self.user_lookup(profile.user.id)
        if stored is None:
            return profile
        user = profile.user.model_copy(update={
            "self_reported_level": stored.self_reported_level,
            "calculated_level": stored.calculated_level,
            "verification_status": stored.verification_status,
            "reputation": stored.reputation,
        })
        return profile.model_copy(update={"user": user})

    def rank(
        self,
        request: SearchRequest,
        exclude: Optional[ExclusionPredicate] = None
    ) -> List[MatchCandidate]:
        """
        取得候選人池並排序

        異常：
            LocationUnavailable: location 策略下沒有可用位置（policy=ERROR）
            CandidatePoolUnavailable: 由候選人池拋出，原樣傳遞
        """
        if self.strategy is ScoringStrategy.LOCATION:
            origin = self.resolve_origin(request)
        else:
            origin = request.location

        profiles = [self.with_current_user(p) for p in self.candidate_pool.fetch_candidates(request)]
        radius = request.radius_miles if request.radius_miles is not None else self.radius_miles

        ranked = rank_candidates(
            request,
            profiles,
            strategy=self.strategy,
            origin=origin,
            radius_miles=radius,
            exclude=exclude
        )
        logger.info(
            f"Ranked {len(ranked)} candidates for {request.requester_id} "
            f"(strategy={self.strategy.value}, pool={len(profiles)})"
        )
        return ranked
