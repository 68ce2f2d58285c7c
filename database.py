from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
from typing import Literal
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./match_engine.db"
    storage_backend: Literal["sql", "memory"] = "sql"

    # 配對搜尋
    search_radius_miles: float = Field(default=50.0, gt=0)
    scoring_strategy: Literal["location", "venue"] = "location"
    # 沒有定位時：error -> LocationUnavailable；skip -> 不做地理圍欄
    location_policy: Literal["error", "skip"] = "error"

    # 房間過期檢查間隔（秒），必須 <= 60 才能保證 30 分鐘的關閉時限
    room_expiration_check_interval: float = Field(default=60.0, gt=0, le=60)

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


def create_session_factory(database_url: str):
    """
    依照 database_url 建立 engine 與 sessionmaker

    SQLite 需要特殊設定：connect_args={"check_same_thread": False}
    背景過期檢查 thread 與 API thread 會共用同一個 engine
    """
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
        pool_pre_ping=True
    )
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


Base = declarative_base()


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def write_blob(db: Session, key: str, value: bytes):
            db.merge(StoredBlob(key=key, value=value))
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 第一個參數必須是 db: Session
        - 不要在函式內手動 commit（decorator 會處理）
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
