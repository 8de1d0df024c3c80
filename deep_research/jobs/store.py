from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from redis import Redis
from sqlalchemy import Column, DateTime, String, Text, create_engine, delete
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import PersistedJobSnapshot, ResearchJob

logger = logging.getLogger(__name__)

Base = declarative_base()

ACTIVE_JOBS_KEY = "deepresearch_active_jobs"
SURVIVAL_WINDOW_SECONDS = 1800


class KeyValueModel(Base):
    __tablename__ = "kv_entries"
    key = Column(String, primary_key=True)
    value = Column(Text)
    updated_at = Column(DateTime)


class KeyValueStore:
    """
    Durable string key-value boundary used for reload recovery. No
    transactional guarantees are assumed; every caller treats failures as
    best effort.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store for tests and local runs.
    """

    def __init__(self):
        self.values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class SqlAlchemyKeyValueStore(KeyValueStore):
    """
    SQL-backed store using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    def get(self, key: str) -> Optional[str]:
        with self._session() as session:
            model = session.get(KeyValueModel, key)
            return model.value if model else None

    def set(self, key: str, value: str) -> None:
        with self._session() as session:
            session.merge(KeyValueModel(key=key, value=value, updated_at=datetime.now(timezone.utc)))
            session.commit()

    def remove(self, key: str) -> None:
        with self._session() as session:
            session.execute(delete(KeyValueModel).where(KeyValueModel.key == key))
            session.commit()


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store. With `ttl_seconds` every write refreshes the expiry, so
    abandoned state disappears on its own.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        ttl_seconds: Optional[int] = SURVIVAL_WINDOW_SECONDS,
        namespace: str = "deep-research",
        client: Optional[Redis] = None,
    ):
        self.redis = client if client is not None else Redis.from_url(redis_url, decode_responses=True)
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        value = self.redis.get(self._key(key))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        self.redis.set(self._key(key), value, ex=self.ttl_seconds)

    def remove(self, key: str) -> None:
        self.redis.delete(self._key(key))


class JobSnapshotStore:
    """
    Persists the active job queue as a JSON list so tracking can resume after a
    reload. Timer handles are never persisted. Reads and writes are best
    effort: a corrupt or unreadable snapshot is wiped and treated as empty.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = ACTIVE_JOBS_KEY,
        survival_window_seconds: float = SURVIVAL_WINDOW_SECONDS,
    ):
        self.store = store
        self.key = key
        self.survival_window_seconds = survival_window_seconds

    def save(self, jobs: Sequence[ResearchJob]) -> None:
        payload = json.dumps([job.to_snapshot().to_dict() for job in jobs])
        try:
            self.store.set(self.key, payload)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to save jobs state")

    def load(self, now_ms: int) -> List[PersistedJobSnapshot]:
        try:
            raw = self.store.get(self.key)
            if not raw:
                return []
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError("jobs state is not a list")
            snapshots = [PersistedJobSnapshot.from_dict(entry) for entry in entries]
        except Exception:  # noqa: BLE001
            logger.exception("Failed to load jobs state")
            self.clear()
            return []

        window_ms = self.survival_window_seconds * 1000
        surviving = [s for s in snapshots if now_ms - s.start_time <= window_ms]
        if len(surviving) < len(snapshots):
            logger.info("Discarded %d stale job snapshot(s)", len(snapshots) - len(surviving))
        return surviving

    def clear(self) -> None:
        try:
            self.store.remove(self.key)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to clear jobs state")
