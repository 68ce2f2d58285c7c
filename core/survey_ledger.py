"""
Survey Ledger：賽後問卷帳本

職責：
1. 比賽結束後建立待填問卷（48 小時內有效）
2. 接受問卷提交（每場比賽每位評價者只能提交一次）
3. 提交成功後立即重新計算被評價者的聲譽

並發：
    uniqueness 檢查與寫入在同一個 lock 內完成，
    同時送出的重複問卷只有一份會成功
"""
import logging
import threading
from datetime import datetime
from typing import Iterable, List, Optional

from core.clock import Clock, utcnow
from core.exceptions import (
    InvalidRating,
    SelfEvaluation,
    SurveyAlreadySubmitted,
    SurveyExpired
)
from core.store import PersistenceStore, load_list, save_list
from schemas import SURVEY_VALIDITY, MatchParticipant, MatchSurvey, PendingSurvey
from services.providers import LoggingNotifier, Notifier
from services.reputation_service import ReputationService

logger = logging.getLogger(__name__)

COMPLETED_KEY = "surveys:completed"
PENDING_KEY = "surveys:pending"

SKILL_RATING_RANGE = (1, 9)
CHARACTER_RATING_RANGE = (1, 5)


def validate_survey(survey: MatchSurvey) -> None:
    """
    驗證問卷資料

    異常：
        InvalidRating: 技能評分不在 1-9 或人品評分不在 1-5
        SelfEvaluation: 評價者與被評價者相同
    """
    low, high = SKILL_RATING_RANGE
    if not low <= survey.skill_rating <= high:
        raise InvalidRating("skill_rating", low, high, survey.skill_rating)

    low, high = CHARACTER_RATING_RANGE
    if not low <= survey.character_rating <= high:
        raise InvalidRating("character_rating", low, high, survey.character_rating)

    if survey.evaluator_id == survey.evaluated_user_id:
        raise SelfEvaluation(f"User {survey.evaluator_id} cannot evaluate themselves")


class SurveyLedger:
    """問卷帳本"""

    def __init__(
        self,
        store: PersistenceStore,
        reputation: ReputationService,
        clock: Clock = utcnow,
        notifier: Optional[Notifier] = None
    ):
        self._store = store
        self._reputation = reputation
        self._clock = clock
        self._notifier = notifier or LoggingNotifier()
        self._lock = threading.Lock()

        self._completed: List[MatchSurvey] = load_list(store, COMPLETED_KEY, MatchSurvey)
        self._pending: List[PendingSurvey] = load_list(store, PENDING_KEY, PendingSurvey)

    def _save(self) -> None:
        save_list(self._store, COMPLETED_KEY, self._completed, MatchSurvey)
        save_list(self._store, PENDING_KEY, self._pending, PendingSurvey)

    def _has_submitted_locked(self, match_id: str, evaluator_id: str) -> bool:
        return any(
            s.match_id == match_id and s.evaluator_id == evaluator_id
            for s in self._completed
        )

    def submit(self, survey: MatchSurvey) -> MatchSurvey:
        """
        提交問卷

        流程：
        1. 驗證評分範圍
        2. 檢查是否重複提交、是否過期
        3. 寫入帳本，移除該評價者在此比賽的待填問卷
        4. 重新計算被評價者的聲譽（全量重算）

        參數：
            survey: 問卷

        返回：
            已儲存的問卷

        異常：
            InvalidRating / SelfEvaluation: 資料不合法
            SurveyAlreadySubmitted: 同一 (match_id, evaluator_id) 已經提交過
            SurveyExpired: 對應的待填問卷已超過 48 小時
        """
        validate_survey(survey)
        now = self._clock()

        with self._lock:
            if self._has_submitted_locked(survey.match_id, survey.evaluator_id):
                logger.warning(
                    f"Duplicate survey for match {survey.match_id} by {survey.evaluator_id}"
                )
                raise SurveyAlreadySubmitted(survey.match_id, survey.evaluator_id)

            matching = [
                p for p in self._pending
                if p.match_id == survey.match_id
                and p.evaluator_id == survey.evaluator_id
                and p.opponent_id == survey.evaluated_user_id
            ]
            if matching and all(p.is_expired(now) for p in matching):
                raise SurveyExpired(f"Survey for match {survey.match_id} expired")

            self._completed.append(survey)
            self._pending = [
                p for p in self._pending
                if not (p.match_id == survey.match_id and p.evaluator_id == survey.evaluator_id)
            ]
            self._save()

            received = self._surveys_for_locked(survey.evaluated_user_id)
            score = self._reputation.refresh(survey.evaluated_user_id, received)

        logger.info(
            f"Survey {survey.id} recorded: {survey.evaluator_id} -> {survey.evaluated_user_id} "
            f"(match {survey.match_id})"
        )
        self._notifier.notify(
            survey.evaluated_user_id,
            "reputation_updated",
            {"evaluation_count": score.evaluation_count}
        )
        return survey

    def create_pending_surveys(
        self,
        match_id: str,
        participants: Iterable[MatchParticipant],
        excluding_user_id: str,
        match_date: Optional[datetime] = None
    ) -> List[PendingSurvey]:
        """
        為比賽建立待填問卷

        每位「不是 excluding_user_id」的參與者各一份，由 excluding_user_id 填寫；
        已經存在的同一份待填問卷不會重複建立

        參數：
            match_id: 比賽 ID
            participants: 參與者（需要 id 與 nickname）
            excluding_user_id: 填寫問卷的使用者
            match_date: 比賽時間，預設為現在；到期時間 = match_date + 48 小時

        返回：
            新建立的 PendingSurvey 列表
        """
        match_date = match_date or self._clock()
        expires_at = match_date + SURVEY_VALIDITY

        created = []
        with self._lock:
            if self._has_submitted_locked(match_id, excluding_user_id):
                return []

            existing = {
                p.opponent_id for p in self._pending
                if p.match_id == match_id and p.evaluator_id == excluding_user_id
            }
            for participant in participants:
                if participant.id == excluding_user_id or participant.id in existing:
                    continue
                pending = PendingSurvey(
                    match_id=match_id,
                    evaluator_id=excluding_user_id,
                    opponent_id=participant.id,
                    opponent_nickname=participant.nickname,
                    match_date=match_date,
                    expires_at=expires_at
                )
                self._pending.append(pending)
                created.append(pending)
                existing.add(participant.id)

            if created:
                self._save()

        if created:
            logger.info(f"Created {len(created)} pending surveys for match {match_id}")
            self._notifier.notify(
                excluding_user_id,
                "survey_pending",
                {"match_id": match_id, "expires_at": expires_at.isoformat()}
            )
        return created

    def pending(self, as_of: Optional[datetime] = None, evaluator_id: Optional[str] = None) -> List[PendingSurvey]:
        """
        取得待填問卷（排除 expires_at < as_of 的）

        參數：
            as_of: 判斷時間，預設為現在
            evaluator_id: 只看某位使用者的待填問卷
        """
        as_of = as_of or self._clock()
        with self._lock:
            return [
                p for p in self._pending
                if not p.expires_at < as_of
                and (evaluator_id is None or p.evaluator_id == evaluator_id)
            ]

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """移除已過期的待填問卷，返回移除數量"""
        now = now or self._clock()
        with self._lock:
            kept = [p for p in self._pending if not p.is_expired(now)]
            removed = len(self._pending) - len(kept)
            if removed:
                self._pending = kept
                self._save()
        if removed:
            logger.info(f"Removed {removed} expired pending surveys")
        return removed

    def has_submitted(self, match_id: str, evaluator_id: str) -> bool:
        with self._lock:
            return self._has_submitted_locked(match_id, evaluator_id)

    def _surveys_for_locked(self, user_id: str) -> List[MatchSurvey]:
        return [s for s in self._completed if s.evaluated_user_id == user_id]

    def surveys_for(self, user_id: str) -> List[MatchSurvey]:
        """某位使用者收到的所有問卷"""
        with self._lock:
            return self._surveys_for_locked(user_id)
