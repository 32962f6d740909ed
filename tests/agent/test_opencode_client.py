"""Tests for the OpenCode HTTP/SSE client against a mock transport."""
import json
from typing import Callable

import httpx
import pytest

from opencode_bridge.agent.client import OpenCodeClient
from opencode_bridge.agent.events import PartUpdated, PermissionDecision, StatusChanged
from opencode_bridge.errors import (
    AgentClientError,
    NotRunningError,
    StartupError,
    StreamDisconnected,
)

BASE_URL = "http://opencode.test"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> OpenCodeClient:
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return OpenCodeClient(BASE_URL, http_client=http)


def _sse(*payloads: dict) -> bytes:
    chunks = [": keepalive\n\n"]
    for payload in payloads:
        chunks.append(f"data: {json.dumps(payload)}\n\n")
    return "".join(chunks).encode()


class TestStart:

    @pytest.mark.asyncio
    async def test_creates_session_in_directory(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "ses_new"})

        client = _client(handler)
        assert await client.start("/work/alpha") == "ses_new"
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/session"
        assert requests[0].url.params["directory"] == "/work/alpha"

    @pytest.mark.asyncio
    async def test_resumes_existing_session(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET" and request.url.path == "/session/ses_old":
                return httpx.Response(200, json={"id": "ses_old"})
            return httpx.Response(500)

        client = _client(handler)
        assert await client.start("/work/alpha", resume_session_id="ses_old") == "ses_old"

    @pytest.mark.asyncio
    async def test_unknown_resume_creates_new(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(404)
            return httpx.Response(200, json={"id": "ses_fresh"})

        client = _client(handler)
        assert await client.start("/work/alpha", resume_session_id="ses_gone") == "ses_fresh"

    @pytest.mark.asyncio
    async def test_unreachable_server(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StartupError, match="Cannot reach"):
            await _client(handler).start("/work/alpha")

    @pytest.mark.asyncio
    async def test_refused(self) -> None:
        with pytest.raises(StartupError):
            await _client(lambda r: httpx.Response(500, text="boom")).start("/work/alpha")

    @pytest.mark.asyncio
    async def test_malformed_response(self) -> None:
        with pytest.raises(StartupError, match="Unexpected"):
            await _client(lambda r: httpx.Response(200, json={"name": "x"})).start("/work/alpha")


class TestRequests:

    @pytest.mark.asyncio
    async def test_send_message_posts_prompt(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/session":
                return httpx.Response(200, json={"id": "ses_1"})
            return httpx.Response(204)

        client = _client(handler)
        await client.start("/work/alpha")
        await client.send_message("ses_1", "hello")

        prompt = requests[-1]
        assert prompt.url.path == "/session/ses_1/prompt_async"
        assert prompt.url.params["directory"] == "/work/alpha"
        assert json.loads(prompt.content) == {"parts": [{"type": "text", "text": "hello"}]}

    @pytest.mark.asyncio
    async def test_send_message_rejected(self) -> None:
        with pytest.raises(AgentClientError):
            await _client(lambda r: httpx.Response(400, text="bad")).send_message("ses_1", "hi")

    @pytest.mark.asyncio
    async def test_interrupt(self) -> None:
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json=True)

        await _client(handler).interrupt("ses_1")
        assert paths == ["/session/ses_1/abort"]

    @pytest.mark.asyncio
    async def test_interrupt_nothing_running(self) -> None:
        with pytest.raises(NotRunningError):
            await _client(lambda r: httpx.Response(200, json=False)).interrupt("ses_1")

    @pytest.mark.asyncio
    async def test_permission_reply(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=True)

        await _client(handler).respond_to_permission("ses_1", "perm_9", PermissionDecision.ALWAYS)
        assert requests[0].url.path == "/session/ses_1/permissions/perm_9"
        assert json.loads(requests[0].content) == {"response": "always"}


class TestEventStream:

    @pytest.mark.asyncio
    async def test_filters_to_session(self) -> None:
        body = _sse(
            {"type": "server.connected", "properties": {}},
            {"type": "message.part.updated", "properties": {
                "part": {"type": "text", "id": "p1", "messageID": "m1", "sessionID": "ses_other", "text": "no"},
            }},
            {"type": "message.part.updated", "properties": {
                "part": {"type": "text", "id": "p1", "messageID": "m1", "sessionID": "ses_1", "text": "Hi"},
                "delta": "Hi",
            }},
            {"type": "session.idle", "properties": {"sessionID": "ses_1"}},
        ) + b"data: {not json\n\n"

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/event"
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        stream = await _client(handler).subscribe_events("ses_1")
        events = [event async for event in stream]
        await stream.aclose()

        assert len(events) == 2
        assert isinstance(events[0], PartUpdated)
        assert events[0].part.text == "Hi"
        assert isinstance(events[1], StatusChanged)

    @pytest.mark.asyncio
    async def test_multiline_data(self) -> None:
        payload = json.dumps({"type": "session.idle", "properties": {"sessionID": "ses_1"}}, indent=1)
        body = ("\n".join(f"data: {line}" for line in payload.splitlines()) + "\n\n").encode()
        stream = await _client(lambda r: httpx.Response(200, content=body)).subscribe_events("ses_1")
        events = [event async for event in stream]
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_subscription_rejected(self) -> None:
        with pytest.raises(StartupError):
            await _client(lambda r: httpx.Response(503)).subscribe_events("ses_1")

    @pytest.mark.asyncio
    async def test_drop_raises_disconnected(self) -> None:
        class BrokenStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b'data: {"type": "session.idle", "properties": {"sessionID": "ses_1"}}\n\n'
                raise httpx.ReadError("connection reset")

        stream = await _client(lambda r: httpx.Response(200, stream=BrokenStream())).subscribe_events("ses_1")
        received = []
        with pytest.raises(StreamDisconnected):
            async for event in stream:
                received.append(event)
        assert len(received) == 1
