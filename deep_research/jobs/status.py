from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from .timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

ROTATION_SECONDS = 2.0

DEFAULT_PHRASES = (
    "Researching",
    "Gathering sources",
    "Analyzing findings",
    "Cross-checking data",
    "Drafting report",
    "Synthesizing insights",
)


class StatusView(Protocol):
    def show(self, label: str) -> None:
        ...

    def hide(self) -> None:
        ...


class LoggingStatusView:
    """
    Headless view for scripts: reports label changes to the log.
    """

    def __init__(self):
        self.label: Optional[str] = None

    def show(self, label: str) -> None:
        if label != self.label:
            logger.info("Status: %s", label)
        self.label = label

    def hide(self) -> None:
        if self.label is not None:
            logger.info("Status: no active research")
        self.label = None


@dataclass
class BadgeState:
    """
    Last rendered badge, read by the HTTP surface.
    """

    visible: bool = False
    label: str = ""

    def show(self, label: str) -> None:
        self.visible = True
        self.label = label

    def hide(self) -> None:
        self.visible = False
        self.label = ""


class StatusProjector:
    """
    Read-side view of the job queue. While jobs are active it rotates through a
    fixed set of phrases every `rotation_seconds`, always combined with the
    latest queue length. It owns nothing but its rotation timer.
    """

    def __init__(
        self,
        view: StatusView,
        scheduler: Scheduler,
        rotation_seconds: float = ROTATION_SECONDS,
        phrases: Sequence[str] = DEFAULT_PHRASES,
        rng: Optional[random.Random] = None,
    ):
        if not phrases:
            raise ValueError("phrases must not be empty")
        self.view = view
        self.scheduler = scheduler
        self.rotation_seconds = rotation_seconds
        self.phrases = tuple(phrases)
        self.rng = rng or random.Random()
        self.queue_length = 0
        self._timer: Optional[TimerHandle] = None

    @property
    def rotating(self) -> bool:
        return self._timer is not None

    def render(self, queue_length: int) -> None:
        if queue_length <= 0:
            self.queue_length = 0
            self.stop()
            self.view.hide()
            return

        changed = queue_length != self.queue_length
        self.queue_length = queue_length
        if self._timer is None:
            self._timer = self.scheduler.call_every(self.rotation_seconds, self._tick)
            self._show()
        elif changed:
            self._show()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @staticmethod
    def format_label(phrase: str, queue_length: int) -> str:
        return f"{phrase}... ({queue_length}) Active Screens"

    def _tick(self) -> None:
        if self.queue_length <= 0:
            self.stop()
            return
        self._show()

    def _show(self) -> None:
        phrase = self.rng.choice(self.phrases)
        self.view.show(self.format_label(phrase, self.queue_length))
