"""
SQLAlchemy ORM 模型

引擎把持久化視為 key-value store，這裡只有一張表：
每一筆是一個 JSON blob（房間、問卷帳本、聲譽快取…）。
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, LargeBinary, String

from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class StoredBlob(Base):
    __tablename__ = "kv_store"

    key = Column(String(255), primary_key=True)
    value = Column(LargeBinary, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
