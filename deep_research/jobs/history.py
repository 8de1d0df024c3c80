from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from .models import ResearchParameters
from .store import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "research_history"


@dataclass(frozen=True)
class ResearchHistoryEntry:
    timestamp: str
    capability: str
    framework: str
    context: str
    modifiers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_parameters(cls, parameters: ResearchParameters, when: datetime) -> "ResearchHistoryEntry":
        return cls(
            timestamp=when.isoformat(),
            capability=parameters.capability,
            framework=parameters.framework,
            context=parameters.context,
            modifiers=parameters.modifiers.to_dict(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "capability": self.capability,
            "framework": self.framework,
            "context": self.context,
            "modifiers": dict(self.modifiers),
        }


class ResearchHistory:
    """
    Append-only log of submitted research requests, kept in the key-value
    store for download. Failures never reach the submission path.
    """

    def __init__(self, store: KeyValueStore, key: str = HISTORY_KEY):
        self.store = store
        self.key = key

    def record(self, parameters: ResearchParameters, when: Optional[datetime] = None) -> None:
        entry = ResearchHistoryEntry.from_parameters(parameters, when or datetime.now(timezone.utc))
        try:
            history = self._read()
            history.append(entry.to_dict())
            self.store.set(self.key, json.dumps(history))
        except Exception:  # noqa: BLE001
            logger.exception("Failed to log research history")
            return
        logger.info("Research logged to history, %d total entries", len(history))

    def entries(self) -> List[Dict[str, Any]]:
        try:
            return self._read()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to read research history")
            return []

    def export_json(self, entries: Optional[List[Dict[str, Any]]] = None) -> str:
        return json.dumps(self.entries() if entries is None else entries, indent=2)

    @staticmethod
    def download_filename(today: Optional[date] = None) -> str:
        return f"research-history-{(today or date.today()).isoformat()}.json"

    def _read(self) -> List[Dict[str, Any]]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        history = json.loads(raw)
        if not isinstance(history, list):
            raise ValueError("research history is not a list")
        return history
