"""
時間來源

所有需要「現在」的元件都透過建構子注入 clock（一個回傳 datetime 的 callable），
測試時可以換成固定時間。
"""
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """目前的 UTC 時間（timezone-aware）"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """沒有時區的 datetime 視為 UTC；已有時區的原樣返回"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
