"""
MatchEngine：把所有元件組裝起來

API 層只透過這個物件存取引擎；測試可以直接注入 store / clock / notifier
"""
import logging
from typing import Optional

from core.clock import Clock, utcnow
from core.expiration import RoomExpirationSweeper
from core.room_manager import RoomManager
from core.store import MemoryStore, PersistenceStore, SqlStore
from core.survey_ledger import SurveyLedger
from database import Base, Settings, create_session_factory
from services.providers import (
    CandidatePoolProvider,
    InMemoryCandidatePool,
    LocationProvider,
    LoggingNotifier,
    Notifier
)
from services.ranking_service import LocationPolicy, MatchCandidateRanker, ScoringStrategy
from services.reputation_service import ReputationService, UserRepository
from services.time_slot_service import RecurringSlotStore

logger = logging.getLogger(__name__)


class MatchEngine:
    """配對引擎的所有元件"""

    def __init__(
        self,
        store: PersistenceStore,
        settings: Settings,
        clock: Clock = utcnow,
        notifier: Optional[Notifier] = None,
        candidate_pool: Optional[CandidatePoolProvider] = None,
        location_provider: Optional[LocationProvider] = None
    ):
        self.settings = settings
        self.store = store
        self.clock = clock
        self.notifier = notifier or LoggingNotifier()

        self.users = UserRepository(store)
        self.reputation = ReputationService(store, self.users)
        self.surveys = SurveyLedger(store, self.reputation, clock=clock, notifier=self.notifier)
        self.rooms = RoomManager(store, clock=clock, notifier=self.notifier)
        self.recurring_slots = RecurringSlotStore(store)

        self.candidate_pool = candidate_pool if candidate_pool is not None else InMemoryCandidatePool()
        self.ranker = MatchCandidateRanker(
            self.candidate_pool,
            strategy=ScoringStrategy(settings.scoring_strategy),
            location_provider=location_provider,
            location_policy=LocationPolicy(settings.location_policy),
            radius_miles=settings.search_radius_miles,
            user_lookup=self.users.get
        )
        self.sweeper = RoomExpirationSweeper(
            self.rooms, interval=settings.room_expiration_check_interval
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "MatchEngine":
        """
        依照設定選擇儲存後端並建立引擎

        storage_backend:
            sql    -> SqlStore（SQLAlchemy，database_url）
            memory -> MemoryStore（重啟後資料消失）
        """
        if settings.storage_backend == "memory":
            store = MemoryStore()
        else:
            db_engine, session_factory = create_session_factory(settings.database_url)
            Base.metadata.create_all(bind=db_engine)
            store = SqlStore(session_factory)
        logger.info(
            f"Match engine using {settings.storage_backend} storage, "
            f"{settings.scoring_strategy} scoring"
        )
        return cls(store, settings, **kwargs)

    def start(self) -> None:
        self.sweeper.start()

    def stop(self) -> None:
        self.sweeper.stop(timeout=5)
