"""
Reputation service: weighted skill level, self-assignment rules and
survey aggregation.

The calculated level is always recomputed from the full survey history
of a user, never patched incrementally.
"""
import logging
from typing import Iterable, Optional

from core.exceptions import InvalidSkillLevel, UserNotFound
from core.store import PersistenceStore, load_model, save_model
from schemas import (
    MatchSurvey,
    ReputationScore,
    User,
    VerificationStatus,
    round_half_away_from_zero,
)

logger = logging.getLogger(__name__)

SELF_REPORTED_WEIGHT = 0.3
PEER_EVALUATION_WEIGHT = 0.7
MAX_SELF_SELECTABLE_LEVEL = 7

# level -> verification statuses that unlock it
_VERIFIED_LEVELS = {
    8: {VerificationStatus.REGIONAL_CHAMPION, VerificationStatus.NATIONAL_CHAMPION},
    9: {VerificationStatus.NATIONAL_CHAMPION},
}


def compute_calculated_level(self_reported_level: int, peer_average: float) -> float:
    """30% self report + 70% peer evaluation."""
    return SELF_REPORTED_WEIGHT * self_reported_level + PEER_EVALUATION_WEIGHT * peer_average


def display_level(user: User) -> int:
    if user.reputation.is_new_player:
        return user.self_reported_level
    return round_half_away_from_zero(user.calculated_level)


def aggregate(surveys: Iterable[MatchSurvey]) -> ReputationScore:
    """
    Build a ReputationScore from every survey a user has received.

    average_skill_accuracy is the plain mean of the peers' skill ratings,
    not a deviation from the self-reported level.
    """
    surveys = list(surveys)
    if not surveys:
        return ReputationScore.empty()

    count = len(surveys)
    punctual = sum(1 for s in surveys if s.was_punctual)

    return ReputationScore(
        average_skill_accuracy=sum(s.skill_rating for s in surveys) / count,
        punctuality_percentage=punctual / count * 100,
        average_character_rating=sum(s.character_rating for s in surveys) / count,
        evaluation_count=count,
    )


def check_self_assignable(level: int, verification_status: VerificationStatus) -> None:
    """
    Raise InvalidSkillLevel unless the user may pick ``level`` for themselves.

    1-7 are always allowed, 8 needs a regional title, 9 a national one.
    """
    if not 1 <= level <= 9:
        raise InvalidSkillLevel(level, "level must be between 1 and 9")
    if level <= MAX_SELF_SELECTABLE_LEVEL:
        return
    if verification_status not in _VERIFIED_LEVELS[level]:
        raise InvalidSkillLevel(level, "levels 8-9 require verification")


def assign_self_level(user: User, level: int) -> User:
    """Return a copy of ``user`` with a new self-reported level."""
    check_self_assignable(level, user.verification_status)
    updated = user.model_copy(update={"self_reported_level": level})
    if updated.reputation.evaluation_count == 0:
        updated.calculated_level = float(level)
    else:
        updated.calculated_level = compute_calculated_level(
            level, updated.reputation.average_skill_accuracy
        )
    return updated


class UserRepository:
    """User records in the persistence store, one JSON blob per user."""

    def __init__(self, store: PersistenceStore):
        self._store = store

    @staticmethod
    def _key(user_id: str) -> str:
        return f"user:{user_id}"

    def get(self, user_id: str) -> Optional[User]:
        return load_model(self._store, self._key(user_id), User)

    def require(self, user_id: str) -> User:
        user = self.get(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def save(self, user: User) -> User:
        save_model(self._store, self._key(user.id), user)
        return user


class ReputationService:
    """Keeps the per-user ReputationScore cache and User levels in sync with surveys."""

    def __init__(self, store: PersistenceStore, users: UserRepository):
        self._store = store
        self._users = users

    @staticmethod
    def _key(user_id: str) -> str:
        return f"reputation:{user_id}"

    def get_score(self, user_id: str) -> ReputationScore:
        cached = load_model(self._store, self._key(user_id), ReputationScore)
        return cached if cached is not None else ReputationScore.empty()

    def refresh(self, user_id: str, surveys: Iterable[MatchSurvey]) -> ReputationScore:
        """
        Recompute the score of ``user_id`` from its complete survey history.

        The user record, when one exists, gets the new reputation and a
        calculated level based on the peer average.
        """
        received = [s for s in surveys if s.evaluated_user_id == user_id]
        score = aggregate(received)
        save_model(self._store, self._key(user_id), score)

        user = self._users.get(user_id)
        if user is not None:
            updated = user.model_copy(update={"reputation": score})
            if received:
                updated.calculated_level = compute_calculated_level(
                    user.self_reported_level, score.average_skill_accuracy
                )
            self._users.save(updated)
            logger.info(
                f"Reputation refreshed for user {user_id}: "
                f"{score.evaluation_count} evaluations, display level {updated.display_level}"
            )
        else:
            logger.info(f"Reputation cached for unregistered user {user_id}")

        return score

    def set_self_level(self, user_id: str, level: int) -> User:
        user = self._users.require(user_id)
        return self._users.save(assign_self_level(user, level))

    def register(self, user: User) -> User:
        """
        Save a user profile; reputation stays owned by the survey history.

        Reputation and calculated level sent by the client are replaced by
        the cached score, so surveys received before registration count.
        """
        check_self_assignable(user.self_reported_level, user.verification_status)
        score = self.get_score(user.id)
        registered = user.model_copy(update={"reputation": score})
        if score.evaluation_count:
            registered.calculated_level = compute_calculated_level(
                user.self_reported_level, score.average_skill_accuracy
            )
        else:
            registered.calculated_level = float(user.self_reported_level)
        logger.info(f"Registered user {user.id} at display level {registered.display_level}")
        return self._users.save(registered)
