"""
持久化層

引擎只依賴 get / put / delete 三個操作（PersistenceStore），
兩種實作：
- MemoryStore：dict，測試與單機使用
- SqlStore：SQLAlchemy 的 kv_store 表

所有實體都以 pydantic 的 JSON 格式寫入，讀取時驗證失敗會轉成 PersistenceError。
"""
import logging
import threading
from typing import Dict, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from core.exceptions import PersistenceError
from database import transactional
from models import StoredBlob

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PersistenceStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def put(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """以 dict 實作的 key-value store（thread-safe）"""

    def __init__(self):
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


@transactional
def _write_blob(db: Session, key: str, value: bytes) -> None:
    db.merge(StoredBlob(key=key, value=value))


@transactional
def _delete_blob(db: Session, key: str) -> None:
    db.query(StoredBlob).filter(StoredBlob.key == key).delete()


class SqlStore:
    """
    SQLAlchemy 實作的 key-value store

    每個操作開一個 session，寫入透過 @transactional 保證 commit / rollback
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[bytes]:
        db = self._session_factory()
        try:
            row = db.query(StoredBlob).filter(StoredBlob.key == key).first()
            return bytes(row.value) if row else None
        finally:
            db.close()

    def put(self, key: str, value: bytes) -> None:
        db = self._session_factory()
        try:
            _write_blob(db, key, value)
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self._session_factory()
        try:
            _delete_blob(db, key)
        finally:
            db.close()

    def exists(self, key: str) -> bool:
        return self.get(key) is not None


# ============ JSON 編解碼 ============

def save_model(store: PersistenceStore, key: str, model: BaseModel) -> None:
    store.put(key, model.model_dump_json().encode("utf-8"))


def load_model(store: PersistenceStore, key: str, model_type: Type[ModelT]) -> Optional[ModelT]:
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return model_type.model_validate_json(raw)
    except SchemaValidationError as e:
        logger.error(f"Corrupted record at {key}: {e}")
        raise PersistenceError(key, str(e)) from e


def save_list(store: PersistenceStore, key: str, items: List[ModelT], item_type: Type[ModelT]) -> None:
    adapter = TypeAdapter(List[item_type])
    store.put(key, adapter.dump_json(items))


def load_list(store: PersistenceStore, key: str, item_type: Type[ModelT]) -> List[ModelT]:
    raw = store.get(key)
    if raw is None:
        return []
    try:
        return TypeAdapter(List[item_type]).validate_json(raw)
    except SchemaValidationError as e:
        logger.error(f"Corrupted record list at {key}: {e}")
        raise PersistenceError(key, str(e)) from e
