from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from fastapi import Request
from sqlalchemy.engine import make_url

from deep_research.chat import ChatSessionManager
from deep_research.client import ClientConfig, HttpWorkflowClient, WorkflowClient
from deep_research.jobs import (
    AsyncioScheduler,
    BadgeState,
    InMemoryKeyValueStore,
    JobOrchestrator,
    JobSnapshotStore,
    KeyValueStore,
    OrchestratorConfig,
    RedisKeyValueStore,
    ResearchHistory,
    Scheduler,
    SqlAlchemyKeyValueStore,
    StatusProjector,
)

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./data/deep_research.db"


@dataclass
class Components:
    """
    Everything the routes need, wired once per application.
    """

    store: KeyValueStore
    client: WorkflowClient
    scheduler: Scheduler
    badge: BadgeState
    projector: StatusProjector
    history: ResearchHistory
    orchestrator: JobOrchestrator
    chat: ChatSessionManager
    notices: List[str] = field(default_factory=list)

    async def aclose(self) -> None:
        self.chat.close()
        await self.orchestrator.aclose()
        await self.client.aclose()


def _ensure_sqlite_dir(db_url: str) -> None:
    url = make_url(db_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_store() -> KeyValueStore:
    backend = os.getenv("JOB_STORE_BACKEND", "sqlite").lower()
    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "redis":
        # History shares the store, so keys must not expire.
        return RedisKeyValueStore(os.getenv("REDIS_URL", "redis://localhost:6379/0"), ttl_seconds=None)
    if backend not in ("sqlite", "sql"):
        raise ValueError(f"Unknown JOB_STORE_BACKEND: {backend}")
    db_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    _ensure_sqlite_dir(db_url)
    return SqlAlchemyKeyValueStore(db_url)


def build_components(
    store: Optional[KeyValueStore] = None,
    client: Optional[WorkflowClient] = None,
    scheduler: Optional[Scheduler] = None,
    config: Optional[OrchestratorConfig] = None,
) -> Components:
    store = store if store is not None else get_store()
    client = client if client is not None else HttpWorkflowClient(ClientConfig.from_env())
    scheduler = scheduler if scheduler is not None else AsyncioScheduler()
    config = config or OrchestratorConfig.from_env()

    badge = BadgeState()
    projector = StatusProjector(
        badge,
        scheduler,
        rotation_seconds=float(os.getenv("STATUS_ROTATION_SECONDS", "2")),
    )
    history = ResearchHistory(store)
    notices: List[str] = []

    def notify(message: str) -> None:
        logger.warning(message)
        notices.append(message)

    orchestrator = JobOrchestrator(
        client=client,
        snapshots=JobSnapshotStore(store, survival_window_seconds=config.survival_window_seconds),
        projector=projector,
        scheduler=scheduler,
        config=config,
        history=history,
        notify=notify,
    )
    return Components(
        store=store,
        client=client,
        scheduler=scheduler,
        badge=badge,
        projector=projector,
        history=history,
        orchestrator=orchestrator,
        chat=ChatSessionManager(client),
        notices=notices,
    )


def get_components(request: Request) -> Components:
    return request.app.state.components
