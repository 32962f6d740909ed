"""OpenCode server client over HTTP and Server-Sent Events."""
import json
import logging
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Optional

import httpx

from opencode_bridge.agent.events import (
    AgentEvent,
    PermissionDecision,
    event_session_id,
    parse_event,
)
from opencode_bridge.errors import (
    AgentClientError,
    NotRunningError,
    StartupError,
    StreamDisconnected,
)

logger = logging.getLogger(__name__)


class OpenCodeEventStream:
    """One SSE subscription to ``GET /event`` filtered to a single session."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        agent_session_id: str,
        params: dict[str, str],
        connect_timeout: float,
    ) -> None:
        self._client = client
        self._agent_session_id = agent_session_id
        self._params = params
        self._connect_timeout = connect_timeout
        self._stack = AsyncExitStack()
        self._response: Optional[httpx.Response] = None
        self._closed = False

    async def open(self) -> None:
        """Send the subscription request and wait for the response headers."""
        try:
            self._response = await self._stack.enter_async_context(
                self._client.stream(
                    "GET",
                    "/event",
                    params=self._params,
                    headers={"Accept": "text/event-stream"},
                    # The stream idles between turns; only bound the connect.
                    timeout=httpx.Timeout(self._connect_timeout, read=None),
                )
            )
        except httpx.HTTPError as exc:
            await self._stack.aclose()
            raise StartupError(f"Cannot subscribe to agent events: {exc}") from exc
        if self._response.status_code >= 400:
            status_code = self._response.status_code
            await self._stack.aclose()
            raise StartupError(f"Event subscription rejected with status {status_code}")
        logger.debug("Subscribed to events for agent session %s", self._agent_session_id)

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[AgentEvent]:
        if self._response is None:
            raise StreamDisconnected("Event stream is not open")
        data_lines: list[str] = []
        try:
            async for line in self._response.aiter_lines():
                if line == "":
                    if data_lines:
                        event = self._decode("\n".join(data_lines))
                        data_lines = []
                        if event is not None:
                            yield event
                    continue
                if line.startswith(":"):
                    continue
                name, _, value = line.partition(":")
                if value.startswith(" "):
                    value = value[1:]
                if name == "data":
                    data_lines.append(value)
        except httpx.HTTPError as exc:
            if self._closed:
                return
            raise StreamDisconnected(f"Agent event stream dropped: {exc}") from exc

    def _decode(self, payload: str) -> Optional[AgentEvent]:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed event payload: %.100s", payload)
            return None
        if not isinstance(data, dict):
            return None
        if event_session_id(data) != self._agent_session_id:
            return None
        return parse_event(data)

    async def aclose(self) -> None:
        self._closed = True
        await self._stack.aclose()


class OpenCodeClient:
    """Talks to an ``opencode serve`` instance.

    Sessions are addressed by id; the project directory each session was
    opened in is remembered and passed as the ``directory`` query
    parameter so the server routes requests to the right project.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url, timeout=httpx.Timeout(timeout),
        )
        self._owns_client = http_client is None
        self._directories: dict[str, str] = {}

    @property
    def base_url(self) -> str:
        return self._base_url

    def _params(self, agent_session_id: str) -> dict[str, str]:
        directory = self._directories.get(agent_session_id)
        return {"directory": directory} if directory else {}

    async def start(self, project_path: str, resume_session_id: Optional[str] = None) -> str:
        directory = str(project_path)
        params = {"directory": directory}
        try:
            if resume_session_id:
                response = await self._client.get(f"/session/{resume_session_id}", params=params)
                if response.status_code == 200:
                    self._directories[resume_session_id] = directory
                    logger.info("Resumed agent session %s in %s", resume_session_id, directory)
                    return resume_session_id
                logger.info(
                    "Agent session %s not resumable (status=%d), creating a new one",
                    resume_session_id, response.status_code,
                )
            response = await self._client.post("/session", params=params, json={})
        except httpx.HTTPError as exc:
            raise StartupError(
                f"Cannot reach the OpenCode server at {self._base_url}: {exc}"
            ) from exc

        if response.status_code >= 400:
            raise StartupError(
                f"OpenCode server refused to create a session ({response.status_code})",
                details={"body": response.text[:500]},
            )
        try:
            session_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise StartupError(f"Unexpected session response from OpenCode: {exc}") from exc

        self._directories[session_id] = directory
        logger.info("Created agent session %s in %s", session_id, directory)
        return session_id

    async def send_message(self, agent_session_id: str, text: str) -> None:
        await self._post(
            f"/session/{agent_session_id}/prompt_async",
            agent_session_id,
            {"parts": [{"type": "text", "text": text}]},
        )

    async def interrupt(self, agent_session_id: str) -> None:
        response = await self._post(f"/session/{agent_session_id}/abort", agent_session_id, {})
        if _json_or_none(response) is False:
            raise NotRunningError("The agent has no operation in progress")

    async def respond_to_permission(
        self, agent_session_id: str, permission_id: str, decision: PermissionDecision,
    ) -> None:
        await self._post(
            f"/session/{agent_session_id}/permissions/{permission_id}",
            agent_session_id,
            {"response": decision.value},
        )

    async def subscribe_events(self, agent_session_id: str) -> OpenCodeEventStream:
        stream = OpenCodeEventStream(
            self._client, agent_session_id, self._params(agent_session_id), self._timeout,
        )
        await stream.open()
        return stream

    async def _post(self, path: str, agent_session_id: str, body: dict[str, Any]) -> httpx.Response:
        try:
            response = await self._client.post(path, params=self._params(agent_session_id), json=body)
        except httpx.HTTPError as exc:
            raise AgentClientError(f"Request to the OpenCode server failed: {exc}") from exc
        if response.status_code >= 400:
            raise AgentClientError(
                f"OpenCode server returned {response.status_code} for {path}",
                details={"status": response.status_code, "body": response.text[:500]},
            )
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
