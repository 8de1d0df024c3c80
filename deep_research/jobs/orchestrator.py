from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Callable, Coroutine, List, Optional, Set, Tuple

from .history import ResearchHistory
from .models import ResearchJob, ResearchParameters
from .status import StatusProjector
from .store import JobSnapshotStore
from .timers import Scheduler

if TYPE_CHECKING:
    from ..client import WorkflowClient

logger = logging.getLogger(__name__)

SUBMIT_FAILED_NOTICE = "Failed to start research generation. Please try again."


@dataclass
class OrchestratorConfig:
    grace_period_seconds: float = 300.0
    poll_interval_seconds: float = 10.0
    survival_window_seconds: float = 1800.0

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        return cls(
            grace_period_seconds=float(os.getenv("JOB_GRACE_SECONDS", "300")),
            poll_interval_seconds=float(os.getenv("JOB_POLL_INTERVAL_SECONDS", "10")),
            survival_window_seconds=float(os.getenv("JOB_SURVIVAL_SECONDS", "1800")),
        )


def _log_notice(message: str) -> None:
    logger.warning(message)


class JobOrchestrator:
    """
    Tracks research jobs from submission until a new document shows up.

    The upstream API cannot tell which document belongs to which job, so
    completion is attributed by arrival order: every unit of growth in the
    document count retires the oldest queued job. Each job also carries a
    grace timer; when it elapses the job gets one reconciliation poll and is
    then expired if still unmatched, so the active indicator can never get
    stuck on a slow or unreliable count. Removal is idempotent from both
    sides, whichever path runs first wins.

    `restore_on_load()` must run once before any other queue mutation.
    """

    def __init__(
        self,
        client: "WorkflowClient",
        snapshots: JobSnapshotStore,
        projector: StatusProjector,
        scheduler: Scheduler,
        config: Optional[OrchestratorConfig] = None,
        history: Optional[ResearchHistory] = None,
        notify: Callable[[str], None] = _log_notice,
    ):
        self.client = client
        self.snapshots = snapshots
        self.projector = projector
        self.scheduler = scheduler
        self.config = config or OrchestratorConfig()
        self.history = history
        self.notify = notify
        self.queue: List[ResearchJob] = []
        self._restored = False
        self._last_document_count: Optional[int] = None
        self._tasks: Set[asyncio.Task] = set()
        self._poll_lock = asyncio.Lock()

    @property
    def active_count(self) -> int:
        return len(self.queue)

    @property
    def jobs(self) -> Tuple[ResearchJob, ...]:
        return tuple(self.queue)

    @property
    def last_document_count(self) -> Optional[int]:
        return self._last_document_count

    async def restore_on_load(self) -> int:
        if self._restored:
            logger.warning("Jobs already restored; ignoring repeated restore")
            return len(self.queue)
        self._restored = True

        now_ms = self.scheduler.now_ms()
        grace = self.config.grace_period_seconds
        for snapshot in self.snapshots.load(now_ms):
            job = ResearchJob(parameters=snapshot.parameters, start_time=snapshot.start_time)
            self.queue.append(job)
            elapsed = max(0.0, job.age_seconds(now_ms))
            if elapsed < grace:
                job.timers.grace = self.scheduler.call_later(grace - elapsed, partial(self._on_grace_elapsed, job))
            else:
                self._start_polling(job)
                self._spawn(self._reconcile_then_expire(job))

        if self.queue:
            logger.info("Restored %d active research job(s)", len(self.queue))
        self._persist()
        self._render()
        await self._prime_document_count()
        return len(self.queue)

    async def submit(self, parameters: ResearchParameters) -> Optional[ResearchJob]:
        self._require_restored()
        if self._last_document_count is None or not self.queue:
            # Documents that arrived while nothing was tracked belong to no job.
            await self._prime_document_count(force=True)
        try:
            handle = await self.client.create_document_job(parameters)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to start research: %s", exc)
            self.notify(SUBMIT_FAILED_NOTICE)
            return None

        if self.history is not None:
            self.history.record(parameters)

        job = ResearchJob(parameters=parameters, start_time=self.scheduler.now_ms())
        self.queue.append(job)
        self._persist()
        self._render()
        job.timers.grace = self.scheduler.call_later(
            self.config.grace_period_seconds, partial(self._on_grace_elapsed, job)
        )
        logger.info(
            "Research job started for workflow %s (%s / %s), %d active",
            handle.workflow_id,
            parameters.capability,
            parameters.framework,
            len(self.queue),
        )
        return job

    def on_grace_expiry(self, job: ResearchJob) -> bool:
        if not self._is_queued(job):
            return False
        job.timers.cancel_all()
        self.queue.remove(job)
        self._persist()
        self._render()
        logger.info("Job auto-expired after grace period, %d active", len(self.queue))
        return True

    def on_poll_tick(self, observed_count: int) -> int:
        self._require_restored()
        previous = self._last_document_count
        self._last_document_count = observed_count
        removed = 0
        if previous is None:
            logger.debug("Document count baseline set to %d", observed_count)
        else:
            logger.debug("Document count %d (previous %d)", observed_count, previous)
            for _ in range(max(0, observed_count - previous)):
                if not self.queue:
                    break
                completed = self.queue.pop(0)
                completed.timers.cancel_all()
                removed += 1
            if removed:
                logger.info("Matched %d new document(s) to queued jobs, %d active", removed, len(self.queue))
        self._persist()
        self._render()
        return removed

    async def check_for_new_documents(self) -> None:
        """
        One count request at a time, applied in the order it was issued, so a
        slow response can never rewind the baseline behind a newer one.
        """
        async with self._poll_lock:
            try:
                count = await self.client.get_document_count()
            except Exception as exc:  # noqa: BLE001
                logger.error("Error checking for documents: %s", exc)
                return
            self.on_poll_tick(count)

    async def settle(self) -> None:
        """Wait for in-flight poll work, including work it spawns."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for job in self.queue:
            job.timers.cancel_all()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.projector.stop()

    def _on_grace_elapsed(self, job: ResearchJob) -> None:
        job.timers.grace = None
        if not self._is_queued(job):
            return
        self._start_polling(job)
        self._spawn(self._reconcile_then_expire(job))

    async def _reconcile_then_expire(self, job: ResearchJob) -> None:
        await self.check_for_new_documents()
        self.on_grace_expiry(job)

    def _start_polling(self, job: ResearchJob) -> None:
        if job.timers.poll is not None:
            job.timers.poll.cancel()
        job.timers.poll = self.scheduler.call_every(self.config.poll_interval_seconds, self._poll_tick)

    def _poll_tick(self) -> None:
        self._spawn(self.check_for_new_documents())

    async def _prime_document_count(self, force: bool = False) -> None:
        async with self._poll_lock:
            try:
                count = await self.client.get_document_count()
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to read initial document count: %s", exc)
                return
            if force or self._last_document_count is None:
                self._last_document_count = count
                logger.debug("Document count baseline set to %d", count)

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_queued(self, job: ResearchJob) -> bool:
        return any(queued is job for queued in self.queue)

    def _require_restored(self) -> None:
        if not self._restored:
            raise RuntimeError("restore_on_load() must run before the job queue is mutated")

    def _persist(self) -> None:
        self.snapshots.save(self.queue)

    def _render(self) -> None:
        self.projector.render(len(self.queue))
