"""
Chat subsystem exports.
"""

from .models import (
    ChatMessage,
    ChatRole,
    ChatState,
    export_filename,
    format_markdown_export,
    format_transcript,
)
from .session import STREAM_ERROR_MESSAGE, TURN_ERROR_MESSAGE, ChatSession, ChatSessionManager
from .stream import TERMINAL_EVENT_TYPE, CancellationToken, StreamConnection

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "ChatRole",
    "ChatSession",
    "ChatSessionManager",
    "ChatState",
    "STREAM_ERROR_MESSAGE",
    "StreamConnection",
    "TERMINAL_EVENT_TYPE",
    "TURN_ERROR_MESSAGE",
    "export_filename",
    "format_markdown_export",
    "format_transcript",
]
