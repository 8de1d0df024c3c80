"""
Jobs subsystem exports.
"""

from .history import HISTORY_KEY, ResearchHistory, ResearchHistoryEntry
from .models import JobTimers, PersistedJobSnapshot, ResearchJob, ResearchModifiers, ResearchParameters
from .orchestrator import SUBMIT_FAILED_NOTICE, JobOrchestrator, OrchestratorConfig
from .prompts import build_research_prompt
from .status import BadgeState, LoggingStatusView, StatusProjector, StatusView
from .store import (
    ACTIVE_JOBS_KEY,
    InMemoryKeyValueStore,
    JobSnapshotStore,
    KeyValueStore,
    RedisKeyValueStore,
    SqlAlchemyKeyValueStore,
)
from .timers import AsyncioScheduler, ManualScheduler, Scheduler

__all__ = [
    "ACTIVE_JOBS_KEY",
    "AsyncioScheduler",
    "BadgeState",
    "HISTORY_KEY",
    "InMemoryKeyValueStore",
    "JobOrchestrator",
    "JobSnapshotStore",
    "JobTimers",
    "KeyValueStore",
    "LoggingStatusView",
    "ManualScheduler",
    "OrchestratorConfig",
    "PersistedJobSnapshot",
    "RedisKeyValueStore",
    "ResearchHistory",
    "ResearchHistoryEntry",
    "ResearchJob",
    "ResearchModifiers",
    "ResearchParameters",
    "SUBMIT_FAILED_NOTICE",
    "Scheduler",
    "SqlAlchemyKeyValueStore",
    "StatusProjector",
    "StatusView",
    "build_research_prompt",
]
