import json

import httpx
import pytest

from deep_research.client import ClientConfig, HttpWorkflowClient, RunHandle, UpstreamError, parse_sse_lines
from deep_research.jobs import ResearchModifiers, ResearchParameters

BASE_URL = "http://workflows.test/api/v1"


def make_client(handler, api_key=None):
    config = ClientConfig(base_url=BASE_URL, api_key=api_key, timeout=5.0)
    return HttpWorkflowClient(config, transport=httpx.MockTransport(handler))


async def lines(*items):
    for item in items:
        yield item


async def collect(source):
    return [chunk async for chunk in source]


@pytest.mark.asyncio
async def test_create_document_job_posts_research_prompt():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"workflowId": "wf-1", "runId": "run-9"})

    client = make_client(handler, api_key="secret")
    params = ResearchParameters(
        capability="Market Analysis",
        framework="SWOT",
        modifiers=ResearchModifiers(scope="broad"),
    )
    handle = await client.create_document_job(params)
    await client.aclose()

    assert handle == RunHandle(workflow_id="wf-1", run_id="run-9")
    assert seen["path"] == "/api/v1/execute/async"
    assert seen["auth"] == "Bearer secret"
    assert "Analysis Type: Market Analysis" in seen["body"]["Task"]
    assert "- Scope: broad" in seen["body"]["Task"]


@pytest.mark.asyncio
async def test_create_chat_turn_sends_history():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"workflow_id": "wf-2", "run_id": "run-2"})

    client = make_client(handler)
    handle = await client.create_chat_turn("doc-7", "Why?", "User: hi\nAssistant: hello")
    await client.aclose()

    assert handle.workflow_id == "wf-2" and handle.run_id == "run-2"
    assert seen["path"] == "/api/v1/chat/execute/async"
    assert seen["body"] == {
        "document_id": "doc-7",
        "question": "Why?",
        "conversation_history": "User: hi\nAssistant: hello",
    }


@pytest.mark.asyncio
async def test_http_errors_become_upstream_errors():
    client = make_client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(UpstreamError) as excinfo:
        await client.create_chat_turn("doc", "q", "")
    await client.aclose()
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_missing_run_handle_is_rejected():
    client = make_client(lambda request: httpx.Response(200, json={"workflowId": "wf"}))
    with pytest.raises(UpstreamError):
        await client.create_chat_turn("doc", "q", "")
    await client.aclose()


@pytest.mark.parametrize(
    "payload,expected",
    [
        ([{"id": 1}, {"id": 2}], 2),
        ({"total": 7, "items": []}, 7),
        ({"documents": [{}, {}, {}]}, 3),
    ],
)
@pytest.mark.asyncio
async def test_document_count_shapes(payload, expected):
    client = make_client(lambda request: httpx.Response(200, json=payload))
    assert await client.get_document_count() == expected
    await client.aclose()


@pytest.mark.asyncio
async def test_document_count_rejects_unknown_payload():
    client = make_client(lambda request: httpx.Response(200, json={"status": "ok"}))
    with pytest.raises(UpstreamError):
        await client.get_document_count()
    await client.aclose()


@pytest.mark.asyncio
async def test_stream_events_reads_server_sent_events():
    body = (
        ": keep-alive\n\n"
        'data: {"type": "progress", "message": "searching"}\n\n'
        'data: {"type": "complete", "message": "done"}\n\n'
    )

    def handler(request):
        assert request.url.path == "/api/v1/workflows/wf-1/runs/run-1/stream"
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    client = make_client(handler)
    chunks = await collect(client.stream_events(RunHandle("wf-1", "run-1")))
    await client.aclose()

    assert chunks == [
        {"type": "progress", "message": "searching"},
        {"type": "complete", "message": "done"},
    ]


@pytest.mark.asyncio
async def test_stream_events_raises_on_error_status():
    client = make_client(lambda request: httpx.Response(404, text="no such run"))
    with pytest.raises(UpstreamError) as excinfo:
        await collect(client.stream_events(RunHandle("wf-1", "run-1")))
    await client.aclose()
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_parse_sse_lines_handles_event_names_and_multiline_data():
    chunks = await collect(
        parse_sse_lines(
            lines(
                "event: complete",
                'data: {"message":',
                'data: "multi"}',
                "",
                "data: not json",
                "",
                "data: [1, 2]",
                "",
                'data: {"type": "progress"}',
            )
        )
    )

    assert chunks == [{"message": "multi", "type": "complete"}, {"type": "progress"}]
