"""
Tests for the reputation service - aggregation, weighted levels and
self-assignment rules.
"""
import pytest

from conftest import START, make_user
from core.exceptions import InvalidSkillLevel, UserNotFound
from schemas import MatchSurvey, ReputationScore, VerificationStatus, round_half_away_from_zero
from services import reputation_service
from services.reputation_service import ReputationService, UserRepository


def survey(evaluated="target", evaluator="peer", skill=5, punctual=True, character=4, match="m1"):
    return MatchSurvey(
        match_id=match,
        evaluator_id=evaluator,
        evaluated_user_id=evaluated,
        skill_rating=skill,
        was_punctual=punctual,
        character_rating=character,
        submitted_at=START
    )


def test_aggregate_empty_is_neutral_default():
    score = reputation_service.aggregate([])
    assert score == ReputationScore(
        average_skill_accuracy=0,
        punctuality_percentage=100,
        average_character_rating=3,
        evaluation_count=0
    )
    assert score.is_new_player


def test_aggregate_means():
    score = reputation_service.aggregate([
        survey(skill=4, punctual=True, character=5, evaluator="a"),
        survey(skill=6, punctual=False, character=3, evaluator="b"),
        survey(skill=8, punctual=True, character=4, evaluator="c"),
        survey(skill=6, punctual=True, character=4, evaluator="d"),
    ])
    assert score.average_skill_accuracy == 6
    assert score.punctuality_percentage == 75
    assert score.average_character_rating == 4
    assert score.evaluation_count == 4


def test_compute_calculated_level():
    assert reputation_service.compute_calculated_level(5, 7) == pytest.approx(0.3 * 5 + 0.7 * 7)


@pytest.mark.parametrize("value,expected", [
    (2.5, 3), (3.5, 4), (2.49, 2), (6.4, 6), (-2.5, -3), (0.0, 0),
])
def test_round_half_away_from_zero(value, expected):
    assert round_half_away_from_zero(value) == expected


def test_display_level_for_new_player_is_self_reported():
    user = make_user("u1", level=4, calculated_level=8.0,
                     reputation=ReputationScore(average_skill_accuracy=9, evaluation_count=4))
    assert reputation_service.display_level(user) == 4


def test_display_level_after_five_evaluations_is_weighted():
    # 0.3 * 4 + 0.7 * 7 = 6.1 -> 6
    level = reputation_service.compute_calculated_level(4, 7)
    user = make_user("u1", level=4, calculated_level=level,
                     reputation=ReputationScore(average_skill_accuracy=7, evaluation_count=5))
    assert reputation_service.display_level(user) == 6
    assert user.display_level == 6


def test_display_level_rounds_half_up():
    user = make_user("u1", level=3, calculated_level=4.5,
                     reputation=ReputationScore(evaluation_count=6))
    assert user.display_level == 5


@pytest.mark.parametrize("level", range(1, 8))
def test_self_assignment_allowed_up_to_seven(level):
    reputation_service.check_self_assignable(level, VerificationStatus.UNVERIFIED)


@pytest.mark.parametrize("level", [8, 9])
def test_self_assignment_of_top_levels_requires_verification(level):
    with pytest.raises(InvalidSkillLevel):
        reputation_service.check_self_assignable(level, VerificationStatus.UNVERIFIED)


def test_regional_champion_unlocks_level_eight_only():
    reputation_service.check_self_assignable(8, VerificationStatus.REGIONAL_CHAMPION)
    with pytest.raises(InvalidSkillLevel):
        reputation_service.check_self_assignable(9, VerificationStatus.REGIONAL_CHAMPION)


def test_national_champion_unlocks_level_nine():
    reputation_service.check_self_assignable(9, VerificationStatus.NATIONAL_CHAMPION)


@pytest.mark.parametrize("level", [0, 10])
def test_out_of_range_levels_rejected(level):
    with pytest.raises(InvalidSkillLevel):
        reputation_service.check_self_assignable(level, VerificationStatus.NATIONAL_CHAMPION)


def test_refresh_recomputes_from_full_history(store):
    users = UserRepository(store)
    users.save(make_user("target", level=4))
    service = ReputationService(store, users)

    history = [survey(evaluator=f"p{i}", skill=7, match=f"m{i}") for i in range(5)]
    score = service.refresh("target", history)

    assert score.evaluation_count == 5
    assert service.get_score("target") == score

    user = users.require("target")
    assert user.reputation == score
    assert user.calculated_level == pytest.approx(0.3 * 4 + 0.7 * 7)
    assert user.display_level == 6


def test_refresh_ignores_surveys_about_other_users(store):
    service = ReputationService(store, UserRepository(store))
    score = service.refresh("target", [survey(), survey(evaluated="someone-else", evaluator="x")])
    assert score.evaluation_count == 1


def test_refresh_for_unknown_user_still_caches_score(store):
    service = ReputationService(store, UserRepository(store))
    service.refresh("ghost", [survey(evaluated="ghost")])
    assert service.get_score("ghost").evaluation_count == 1


def test_get_score_defaults_to_empty(store):
    service = ReputationService(store, UserRepository(store))
    assert service.get_score("nobody") == ReputationScore.empty()


def test_set_self_level(store):
    users = UserRepository(store)
    users.save(make_user("u1", level=3))
    service = ReputationService(store, users)

    updated = service.set_self_level("u1", 7)
    assert updated.self_reported_level == 7
    assert users.require("u1").calculated_level == 7

    with pytest.raises(InvalidSkillLevel):
        service.set_self_level("u1", 8)
    with pytest.raises(UserNotFound):
        service.set_self_level("missing", 5)


def test_register_picks_up_surveys_received_earlier(store):
    users = UserRepository(store)
    service = ReputationService(store, users)
    service.refresh("late", [survey(evaluated="late", evaluator=f"p{i}", skill=9, match=f"m{i}") for i in range(5)])

    registered = service.register(make_user("late", level=5))
    assert registered.reputation.evaluation_count == 5
    assert registered.display_level == 8
    assert users.require("late") == registered


def test_register_ignores_client_reputation(store):
    service = ReputationService(store, UserRepository(store))
    forged = make_user("cheat", level=3, calculated_level=9.0,
                       reputation=ReputationScore(average_skill_accuracy=9, evaluation_count=20))
    registered = service.register(forged)
    assert registered.reputation == ReputationScore.empty()
    assert registered.display_level == 3


def test_register_checks_self_reported_level(store):
    service = ReputationService(store, UserRepository(store))
    with pytest.raises(InvalidSkillLevel):
        service.register(make_user("unverified", level=9))
