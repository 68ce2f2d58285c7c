"""
Tests for MatchEngine wiring - storage backend selection and settings.
"""
from datetime import timedelta

from conftest import START, make_slot, make_user, north_of
from core.engine import MatchEngine
from core.store import MemoryStore, SqlStore
from database import Settings
from schemas import CandidateProfile, Coordinate, GameMode, MatchSurvey, SearchRequest
from services.ranking_service import LocationPolicy, ScoringStrategy


def test_memory_backend():
    engine = MatchEngine.from_settings(Settings(storage_backend="memory"))
    assert isinstance(engine.store, MemoryStore)


def test_sql_backend_creates_tables(tmp_path):
    settings = Settings(storage_backend="sql", database_url=f"sqlite:///{tmp_path / 'engine.db'}")
    engine = MatchEngine.from_settings(settings)
    assert isinstance(engine.store, SqlStore)

    room = engine.rooms.create_room("owner", "Owner", 5, GameMode.SINGLES)

    reopened = MatchEngine.from_settings(settings)
    assert reopened.rooms.get_room(room.id).code == room.code


def test_ranker_follows_settings():
    settings = Settings(storage_backend="memory", scoring_strategy="venue",
                        location_policy="skip", search_radius_miles=10)
    engine = MatchEngine.from_settings(settings)
    assert engine.ranker.strategy is ScoringStrategy.VENUE
    assert engine.ranker.location_policy is LocationPolicy.SKIP
    assert engine.ranker.radius_miles == 10


def test_start_and_stop_sweeper(clock, notifier):
    engine = MatchEngine(MemoryStore(), Settings(storage_backend="memory"), clock=clock, notifier=notifier)
    engine.start()
    assert engine.sweeper.is_running
    engine.stop()
    assert not engine.sweeper.is_running


def test_surveys_change_candidate_ranking(clock, notifier):
    engine = MatchEngine(MemoryStore(), Settings(storage_backend="memory"), clock=clock, notifier=notifier)
    origin = Coordinate(latitude=25.0, longitude=121.5)
    slot = make_slot(START.date() + timedelta(days=1), 9, 0, 11, 0)

    bob = engine.reputation.register(make_user("bob", level=5, location=north_of(origin, 2)))
    engine.candidate_pool.upsert(CandidateProfile(user=bob, time_slots=[slot]))
    search = SearchRequest(requester_id="me", skill_level=5, time_slot=slot, location=origin)

    assert engine.ranker.rank(search)[0].skill_difference == 0

    for i in range(5):
        engine.surveys.submit(MatchSurvey(
            match_id=f"m{i}",
            evaluator_id=f"peer{i}",
            evaluated_user_id="bob",
            skill_rating=9,
            was_punctual=True,
            character_rating=4,
            submitted_at=clock()
        ))

    assert engine.users.require("bob").display_level == 8
    ranked = engine.ranker.rank(search)
    assert ranked[0].user.display_level == 8
    assert ranked[0].skill_difference == 3
    assert ranked[0].user.location == bob.location
