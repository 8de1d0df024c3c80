from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatState(str, Enum):
    IDLE = "idle"
    AWAITING_JOB_HANDLE = "awaiting_job_handle"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    thinking: bool = False

    @classmethod
    def placeholder(cls) -> "ChatMessage":
        return cls(role=ChatRole.ASSISTANT, content="", thinking=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "thinking": self.thinking,
        }


def format_transcript(messages: Iterable[ChatMessage]) -> str:
    """Role-prefixed lines, placeholders left out."""
    return "\n".join(
        f"{'User' if msg.role == ChatRole.USER else 'Assistant'}: {msg.content}"
        for msg in messages
        if not msg.thinking
    )


def format_markdown_export(title: str, messages: Iterable[ChatMessage], when: Optional[datetime] = None) -> str:
    when = when or _utcnow()
    parts = [
        f"# Chat with {title}\n\n",
        f"Date: {when.strftime('%B')} {when.day}, {when.year}\n\n",
        "---\n\n",
    ]
    for msg in messages:
        if msg.thinking:
            continue
        role = "**You**" if msg.role == ChatRole.USER else "**Assistant**"
        parts.append(f"{role}: {msg.content}\n\n")
    return "".join(parts)


def export_filename(title: str, when: Optional[datetime] = None) -> str:
    when = when or _utcnow()
    safe_title = re.sub(r"[^a-zA-Z0-9]", "_", title)
    return f"chat_{safe_title}_{int(when.timestamp() * 1000)}.md"
