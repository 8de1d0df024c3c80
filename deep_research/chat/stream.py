from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

if TYPE_CHECKING:
    from ..client import RunHandle, WorkflowClient

logger = logging.getLogger(__name__)

TERMINAL_EVENT_TYPE = "complete"

MessageCallback = Callable[[Dict[str, Any]], None]
CompleteCallback = Callable[[], None]
ErrorCallback = Callable[[BaseException], None]


class CancellationToken:
    """
    Handle for one open stream. Once cancelled or finished, no callback tied
    to it will run again.
    """

    def __init__(self, handle: "RunHandle"):
        self.handle = handle
        self._cancelled = False
        self._finished = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def open(self) -> bool:
        return not (self._cancelled or self._finished)

    def _cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class StreamConnection:
    """
    Consumes the event stream of a workflow run over a cancellable channel.

    Only chunks whose `type` is "complete" reach `on_message`; intermediate
    chunks are dropped. When the stream ends exactly one of `on_complete` or
    `on_error` runs, unless the token was cancelled first. At most one stream
    is open per connection: opening a new one cancels the previous token.
    """

    def __init__(self, client: "WorkflowClient"):
        self.client = client
        self.active: Optional[CancellationToken] = None

    def open(
        self,
        handle: "RunHandle",
        on_message: MessageCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> CancellationToken:
        self.cancel(self.active)
        token = CancellationToken(handle)
        token._task = asyncio.get_running_loop().create_task(
            self._consume(token, on_message, on_complete, on_error)
        )
        self.active = token
        logger.info("Opened stream for workflow %s run %s", handle.workflow_id, handle.run_id)
        return token

    def cancel(self, token: Optional[CancellationToken]) -> None:
        if token is None:
            return
        if token.open:
            logger.info("Aborting stream for workflow %s", token.handle.workflow_id)
        token._cancel()
        if self.active is token:
            self.active = None

    async def _consume(
        self,
        token: CancellationToken,
        on_message: MessageCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        try:
            async with aclosing(self.client.stream_events(token.handle)) as events:
                async for chunk in events:
                    if token.cancelled:
                        return
                    if chunk.get("type") != TERMINAL_EVENT_TYPE:
                        logger.debug("Ignoring %s chunk for run %s", chunk.get("type"), token.handle.run_id)
                        continue
                    self._deliver(token, on_message, chunk)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Stream error for workflow %s: %s", token.handle.workflow_id, exc)
            self._finish(token, on_error, exc)
            return
        self._finish(token, on_complete)

    def _finish(self, token: CancellationToken, callback: Callable[..., None], *args: Any) -> None:
        if not token.open:
            return
        token._finished = True
        if self.active is token:
            self.active = None
        self._deliver(token, callback, *args)

    def _deliver(self, token: CancellationToken, callback: Callable[..., None], *args: Any) -> None:
        if token.cancelled:
            return
        try:
            callback(*args)
        except Exception:  # noqa: BLE001
            logger.exception("Stream callback failed for run %s", token.handle.run_id)
