from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .timers import TimerHandle


@dataclass(frozen=True)
class ResearchModifiers:
    scope: str = ""
    overview_details: str = ""
    analytical_rigor: str = ""
    perspective: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "scope": self.scope,
            "overviewDetails": self.overview_details,
            "analyticalRigor": self.analytical_rigor,
            "perspective": self.perspective,
        }


@dataclass(frozen=True)
class ResearchParameters:
    capability: str
    framework: str
    context: str = ""
    modifiers: ResearchModifiers = field(default_factory=ResearchModifiers)

    def __post_init__(self):
        if not self.capability or not self.capability.strip():
            raise ValueError("capability must not be empty")
        if not self.framework or not self.framework.strip():
            raise ValueError("framework must not be empty")


@dataclass
class JobTimers:
    """
    The two timers a job may own: the one-shot grace timer and the recurring
    poll timer. At most one of each is held at a time.
    """

    grace: Optional[TimerHandle] = None
    poll: Optional[TimerHandle] = None

    def cancel_all(self) -> None:
        for handle in (self.grace, self.poll):
            if handle is not None:
                handle.cancel()
        self.grace = None
        self.poll = None


@dataclass(frozen=True)
class PersistedJobSnapshot:
    parameters: ResearchParameters
    start_time: int

    def to_dict(self) -> Dict[str, Any]:
        modifiers = self.parameters.modifiers
        return {
            "capability": self.parameters.capability,
            "framework": self.parameters.framework,
            "context": self.parameters.context,
            "scope": modifiers.scope,
            "overviewDetails": modifiers.overview_details,
            "analyticalRigor": modifiers.analytical_rigor,
            "perspective": modifiers.perspective,
            "startTime": self.start_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedJobSnapshot":
        """
        Raises KeyError/TypeError/ValueError on malformed entries; callers treat
        any of them as a corrupt snapshot.
        """
        if not isinstance(data, dict):
            raise TypeError(f"snapshot entry must be an object, got {type(data).__name__}")
        start_time = data["startTime"]
        if isinstance(start_time, bool) or not isinstance(start_time, (int, float)):
            raise TypeError("startTime must be a number")
        parameters = ResearchParameters(
            capability=data["capability"],
            framework=data["framework"],
            context=data.get("context") or "",
            modifiers=ResearchModifiers(
                scope=data.get("scope") or "",
                overview_details=data.get("overviewDetails") or "",
                analytical_rigor=data.get("analyticalRigor") or "",
                perspective=data.get("perspective") or "",
            ),
        )
        return cls(parameters=parameters, start_time=int(start_time))


@dataclass(eq=False)
class ResearchJob:
    """
    One in-flight document generation request. Parameters and start time are
    fixed at creation; only the timer handles change. Jobs compare by identity
    so a removed job can never be matched again by an equal-looking one.
    """

    parameters: ResearchParameters
    start_time: int
    timers: JobTimers = field(default_factory=JobTimers, repr=False)

    def age_seconds(self, now_ms: int) -> float:
        return (now_ms - self.start_time) / 1000.0

    def to_snapshot(self) -> PersistedJobSnapshot:
        return PersistedJobSnapshot(parameters=self.parameters, start_time=self.start_time)
