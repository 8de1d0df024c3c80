from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .models import ChatMessage, ChatRole, ChatState, format_markdown_export, format_transcript
from .stream import CancellationToken, StreamConnection

if TYPE_CHECKING:
    from ..client import WorkflowClient

logger = logging.getLogger(__name__)

TURN_ERROR_MESSAGE = "Sorry, there was an error processing your question."
STREAM_ERROR_MESSAGE = "Sorry, there was an error with the response stream."


@dataclass
class ChatSession:
    """
    Conversation state for the one open document. Messages are append-only
    except for the thinking placeholder, which is always the last element
    while present.
    """

    document_id: str
    title: str = ""
    messages: List[ChatMessage] = field(default_factory=list)
    state: ChatState = ChatState.IDLE
    connection: Optional[CancellationToken] = None
    input_enabled: bool = True
    turn: int = 0
    answered: bool = False

    @property
    def has_placeholder(self) -> bool:
        return bool(self.messages) and self.messages[-1].thinking

    def add_placeholder(self) -> None:
        if not self.has_placeholder:
            self.messages.append(ChatMessage.placeholder())

    def remove_placeholder(self) -> None:
        if self.has_placeholder:
            self.messages.pop()

    def append(self, role: ChatRole, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self.messages.append(message)
        return message


class ChatSessionManager:
    """
    Runs question/answer turns about the open document.

    Per turn: Idle -> AwaitingJobHandle (turn creation in flight) -> Streaming
    (run events arriving) -> Idle. Input comes back as soon as the answer is
    shown; the stream's own completion only clears the connection. Switching
    documents or closing cancels the open stream before anything else, so no
    late callback can land in a different session.
    """

    def __init__(self, client: "WorkflowClient", connection: Optional[StreamConnection] = None):
        self.client = client
        self.connection = connection or StreamConnection(client)
        self.session: Optional[ChatSession] = None
        self._generation = 0

    @property
    def state(self) -> ChatState:
        return self.session.state if self.session else ChatState.CLOSED

    @property
    def document_id(self) -> Optional[str]:
        return self.session.document_id if self.session else None

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self.session.messages) if self.session else []

    @property
    def input_enabled(self) -> bool:
        return bool(self.session and self.session.input_enabled)

    def switch_document(self, document_id: str, title: str = "") -> ChatSession:
        if self.session and self.session.document_id != document_id:
            logger.info("Switching documents, closing existing stream")
        self._teardown()
        self.session = ChatSession(document_id=document_id, title=title)
        return self.session

    def close(self) -> None:
        self._teardown()
        self.session = None

    async def ask(self, text: str) -> bool:
        """
        Start a turn. Returns False (and changes nothing) unless the session is
        idle and the question has content.
        """
        session = self.session
        if session is None or session.state != ChatState.IDLE:
            return False
        question = (text or "").strip()
        if not question:
            return False

        history = format_transcript(session.messages)
        session.append(ChatRole.USER, question)
        session.add_placeholder()
        session.state = ChatState.AWAITING_JOB_HANDLE
        session.input_enabled = False
        session.answered = False
        session.turn += 1
        turn = session.turn
        generation = self._generation

        logger.info("Sending message for document %s", session.document_id)
        try:
            handle = await self.client.create_chat_turn(session.document_id, question, history)
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(session, turn, generation):
                logger.warning("Chat turn for closed session %s failed: %s", session.document_id, exc)
                return True
            logger.error("Chat error for document %s: %s", session.document_id, exc)
            session.remove_placeholder()
            session.append(ChatRole.ASSISTANT, TURN_ERROR_MESSAGE)
            self._reset_input(session)
            return True

        if not self._is_current(session, turn, generation):
            logger.warning("Dropping late run %s for closed session %s", handle.run_id, session.document_id)
            return True

        if session.connection is not None:
            self.connection.cancel(session.connection)
        session.state = ChatState.STREAMING
        session.connection = self.connection.open(
            handle,
            on_message=lambda chunk: self._on_stream_message(session, turn, chunk),
            on_complete=lambda: self._on_stream_complete(session, turn),
            on_error=lambda exc: self._on_stream_error(session, turn, exc),
        )
        return True

    def transcript(self) -> str:
        return format_transcript(self.messages)

    def export_markdown(self, when: Optional[datetime] = None) -> str:
        if self.session is None:
            raise ValueError("No document is open")
        return format_markdown_export(self.session.title or self.session.document_id, self.session.messages, when)

    def _on_stream_message(self, session: ChatSession, turn: int, chunk: Dict[str, Any]) -> None:
        if not self._is_current(session, turn):
            return
        content = chunk.get("message")
        if not isinstance(content, str) or not content:
            return
        if session.answered:
            logger.debug("Ignoring duplicate answer for turn %d", turn)
            return
        session.remove_placeholder()
        session.append(ChatRole.ASSISTANT, content)
        session.answered = True
        self._reset_input(session)

    def _on_stream_complete(self, session: ChatSession, turn: int) -> None:
        if not self._is_current(session, turn):
            return
        logger.info("Stream completed for document %s", session.document_id)
        session.connection = None
        if not session.answered:
            # Stream ended without a displayable answer.
            session.remove_placeholder()
            session.append(ChatRole.ASSISTANT, STREAM_ERROR_MESSAGE)
            self._reset_input(session)

    def _on_stream_error(self, session: ChatSession, turn: int, exc: BaseException) -> None:
        if not self._is_current(session, turn):
            return
        logger.error("Stream error for document %s: %s", session.document_id, exc)
        session.remove_placeholder()
        session.append(ChatRole.ASSISTANT, STREAM_ERROR_MESSAGE)
        session.connection = None
        self._reset_input(session)

    def _reset_input(self, session: ChatSession) -> None:
        session.state = ChatState.IDLE
        session.input_enabled = True

    def _is_current(self, session: ChatSession, turn: int, generation: Optional[int] = None) -> bool:
        if self.session is not session or session.turn != turn:
            return False
        return generation is None or generation == self._generation

    def _teardown(self) -> None:
        self._generation += 1
        session = self.session
        if session is None:
            return
        if session.connection is not None:
            self.connection.cancel(session.connection)
            session.connection = None
        session.messages.clear()
        session.state = ChatState.CLOSED
        session.input_enabled = False
