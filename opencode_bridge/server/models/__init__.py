"""Pydantic models for request/response validation."""
from opencode_bridge.server.models.requests import (
    CreateSessionRequest,
    PermissionReplyRequest,
    SendMessageRequest,
    SwitchProjectRequest,
)
from opencode_bridge.server.models.responses import (
    ClearSessionResponse,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    MessageAcceptedResponse,
    PermissionInfo,
    SessionListResponse,
    SessionResponse,
)

__all__ = [
    "CreateSessionRequest", "SendMessageRequest", "SwitchProjectRequest", "PermissionReplyRequest",
    "SessionResponse", "SessionListResponse", "ClearSessionResponse", "MessageAcceptedResponse",
    "HealthResponse", "PermissionInfo", "ErrorDetail", "ErrorResponse",
]
