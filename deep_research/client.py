"""
Upstream workflow API used by the jobs and chat subsystems.

`WorkflowClient` is the collaborator contract: document job creation, chat turn
creation, the per-run event stream and the document count that the job
orchestrator polls. `HttpWorkflowClient` talks to the hosted workflow service
over httpx and reads run events as server-sent events.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .jobs.models import ResearchParameters
from .jobs.prompts import build_research_prompt

logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    """Raised when the workflow service rejects a call or answers with garbage."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class RunHandle:
    workflow_id: str
    run_id: str

    @classmethod
    def from_payload(cls, payload: Any) -> "RunHandle":
        if not isinstance(payload, dict):
            raise UpstreamError("Workflow response is not an object")
        workflow_id = payload.get("workflowId") or payload.get("workflow_id")
        run_id = payload.get("runId") or payload.get("run_id")
        if not workflow_id or not run_id:
            raise UpstreamError("Workflow response is missing workflowId/runId")
        return cls(workflow_id=str(workflow_id), run_id=str(run_id))


@dataclass
class ClientConfig:
    base_url: str = "http://localhost:8080/api/v1"
    api_key: Optional[str] = None
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            base_url=os.getenv("RESEARCH_API_BASE_URL", cls.base_url),
            api_key=os.getenv("RESEARCH_API_KEY") or None,
            timeout=float(os.getenv("RESEARCH_HTTP_TIMEOUT", "30")),
        )


class WorkflowClient:
    """
    Abstract upstream boundary. Every call may fail; callers convert failures
    into state transitions and never retry automatically.
    """

    async def create_document_job(self, parameters: ResearchParameters) -> RunHandle:
        raise NotImplementedError

    async def create_chat_turn(self, document_id: str, question: str, history: str) -> RunHandle:
        raise NotImplementedError

    def stream_events(self, handle: RunHandle) -> AsyncIterator[Dict[str, Any]]:
        """
        Async generator of `{type, message?}` chunks for one run. Ends when the
        run's stream ends; raises on transport failure.
        """
        raise NotImplementedError

    async def get_document_count(self) -> int:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


async def parse_sse_lines(lines: AsyncIterator[str]) -> AsyncIterator[Dict[str, Any]]:
    """
    Turn server-sent event lines into chunk dicts. `data:` lines are joined per
    event; an `event:` name becomes the chunk type when the payload has none.
    """
    data_lines = []
    event_name: Optional[str] = None

    def build():
        payload = "\n".join(data_lines)
        try:
            chunk = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Skipping non-JSON stream event: %.200s", payload)
            return None
        if not isinstance(chunk, dict):
            logger.warning("Skipping non-object stream event: %.200s", payload)
            return None
        if event_name and "type" not in chunk:
            chunk["type"] = event_name
        return chunk

    async for raw_line in lines:
        line = raw_line.rstrip("\r")
        if not line:
            if data_lines:
                chunk = build()
                if chunk is not None:
                    yield chunk
            data_lines = []
            event_name = None
            continue
        if line.startswith(":"):
            continue
        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field_name == "data":
            data_lines.append(value)
        elif field_name == "event":
            event_name = value

    if data_lines:
        chunk = build()
        if chunk is not None:
            yield chunk


class HttpWorkflowClient(WorkflowClient):
    """
    httpx-based client for the hosted workflow service.
    """

    def __init__(self, config: Optional[ClientConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or ClientConfig()
        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers=headers,
            timeout=self.config.timeout,
            transport=transport,
        )

    async def create_document_job(self, parameters: ResearchParameters) -> RunHandle:
        payload = await self._post_json("/execute/async", {"Task": build_research_prompt(parameters)})
        handle = RunHandle.from_payload(payload)
        logger.info("Created research workflow %s (run %s)", handle.workflow_id, handle.run_id)
        return handle

    async def create_chat_turn(self, document_id: str, question: str, history: str) -> RunHandle:
        payload = await self._post_json(
            "/chat/execute/async",
            {"document_id": document_id, "question": question, "conversation_history": history},
        )
        return RunHandle.from_payload(payload)

    async def stream_events(self, handle: RunHandle) -> AsyncIterator[Dict[str, Any]]:
        url = f"/workflows/{handle.workflow_id}/runs/{handle.run_id}/stream"
        try:
            async with self._client.stream("GET", url, headers={"Accept": "text/event-stream"}) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise UpstreamError(
                        f"Stream request failed: {response.status_code} {response.text[:200]}",
                        status_code=response.status_code,
                    )
                async for chunk in parse_sse_lines(response.aiter_lines()):
                    yield chunk
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Stream transport error: {exc}") from exc

    async def get_document_count(self) -> int:
        payload = await self._request_json("GET", "/documents")
        if isinstance(payload, list):
            return len(payload)
        if isinstance(payload, dict):
            for key in ("total", "count"):
                value = payload.get(key)
                if isinstance(value, int) and not isinstance(value, bool):
                    return value
            items = payload.get("items", payload.get("documents"))
            if isinstance(items, list):
                return len(items)
        raise UpstreamError("Unexpected document listing payload")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post_json(self, path: str, body: Dict[str, Any]) -> Any:
        return await self._request_json("POST", path, json=body)

    async def _request_json(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:500] if exc.response is not None else ""
            raise UpstreamError(
                f"{method} {path} failed: {exc.response.status_code} {body}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"{method} {path} returned invalid JSON") from exc
