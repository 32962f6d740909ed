"""Session control endpoints."""
import logging
from pathlib import Path as FsPath
from typing import Annotated

from fastapi import APIRouter, Path, status

from opencode_bridge.errors import SessionNotFoundError
from opencode_bridge.projects import resolve_project
from opencode_bridge.server.models.requests import (
    CreateSessionRequest,
    PermissionReplyRequest,
    SendMessageRequest,
    SwitchProjectRequest,
)
from opencode_bridge.server.models.responses import (
    ClearSessionResponse,
    MessageAcceptedResponse,
    SessionListResponse,
    SessionResponse,
)
from opencode_bridge.sessions.manager import SessionManager
from opencode_bridge.sessions.session import Session

logger = logging.getLogger(__name__)

ConversationId = Annotated[str, Path(description="Conversation ID", min_length=1)]


def create_sessions_router(manager: SessionManager, projects_dir: FsPath) -> APIRouter:
    """Create the sessions router with injected dependencies."""
    router = APIRouter(prefix="/sessions", tags=["sessions"])

    async def _require(conversation_id: str) -> Session:
        session = manager.get(conversation_id) or await manager.restore(conversation_id)
        if session is None:
            raise SessionNotFoundError(f"No session for conversation {conversation_id}")
        return session

    @router.post("", response_model=SessionResponse, status_code=status.HTTP_200_OK)
    async def create_session(body: CreateSessionRequest) -> SessionResponse:
        """Get or create the session for a conversation."""
        project_path = None
        if body.project_path:
            project_path = str(resolve_project(projects_dir, body.project_path))
        session = await manager.resolve(body.conversation_id, body.owner_user_id, project_path)
        return SessionResponse.from_session(session)

    @router.get("", response_model=SessionListResponse)
    async def list_sessions() -> SessionListResponse:
        """List live sessions."""
        items = [SessionResponse.from_session(s) for s in manager.list_sessions()]
        return SessionListResponse(count=len(items), sessions=items)

    @router.get("/{conversation_id}", response_model=SessionResponse)
    async def get_session(conversation_id: ConversationId) -> SessionResponse:
        return SessionResponse.from_session(await _require(conversation_id))

    @router.delete("/{conversation_id}", response_model=ClearSessionResponse)
    async def clear_session(conversation_id: ConversationId) -> ClearSessionResponse:
        """Stop the session and delete its stored record."""
        cleared = await manager.clear(conversation_id)
        return ClearSessionResponse(conversation_id=conversation_id, cleared=cleared)

    @router.post("/{conversation_id}/start", response_model=SessionResponse)
    async def start_session(conversation_id: ConversationId) -> SessionResponse:
        session = await _require(conversation_id)
        await session.start()
        return SessionResponse.from_session(session)

    @router.post(
        "/{conversation_id}/messages",
        response_model=MessageAcceptedResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def send_message(conversation_id: ConversationId, body: SendMessageRequest) -> MessageAcceptedResponse:
        """Forward a message; the reply is delivered to session observers."""
        session = await _require(conversation_id)
        await session.send_message(body.text)
        return MessageAcceptedResponse(conversation_id=conversation_id)

    @router.post("/{conversation_id}/interrupt", response_model=SessionResponse)
    async def interrupt_session(conversation_id: ConversationId) -> SessionResponse:
        session = await _require(conversation_id)
        await session.interrupt()
        return SessionResponse.from_session(session)

    @router.post("/{conversation_id}/project", response_model=SessionResponse)
    async def switch_project(conversation_id: ConversationId, body: SwitchProjectRequest) -> SessionResponse:
        """Rebind the session to another project directory."""
        await _require(conversation_id)
        path = resolve_project(projects_dir, body.project_path)
        session = await manager.switch_project(conversation_id, str(path))
        return SessionResponse.from_session(session)

    @router.post("/{conversation_id}/permission", response_model=SessionResponse)
    async def reply_to_permission(conversation_id: ConversationId, body: PermissionReplyRequest) -> SessionResponse:
        """Answer the session's pending permission request."""
        session = await _require(conversation_id)
        await session.reply_to_latest_permission(body.decision)
        return SessionResponse.from_session(session)

    return router
