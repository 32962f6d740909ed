"""Exception types shared by the bridge core, agent client and HTTP surface."""
from typing import Any, Optional


class BridgeError(Exception):
    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigError(BridgeError):
    """Configuration is missing or invalid."""
    error_code = "CONFIG_ERROR"


class StartupError(BridgeError):
    """The agent server is unreachable or refused to open a session."""
    status_code = 502
    error_code = "AGENT_UNAVAILABLE"


class AgentClientError(BridgeError):
    """A request to the agent server failed after the session was established."""
    status_code = 502
    error_code = "AGENT_ERROR"


class NotRunningError(BridgeError):
    """The operation needs a live agent binding or an in-flight turn."""
    status_code = 409
    error_code = "NOT_RUNNING"


class BusyError(BridgeError):
    """A turn is already in flight for this session."""
    status_code = 409
    error_code = "SESSION_BUSY"

    def __init__(
        self,
        message: str = "The agent is still working on the previous message. Wait for it to finish or /stop it.",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)


class NoPendingPermissionError(BridgeError):
    """There is no permission request waiting for a decision."""
    status_code = 409
    error_code = "NO_PENDING_PERMISSION"

    def __init__(
        self,
        message: str = "There is no pending permission request to answer.",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)


class StreamDisconnected(BridgeError):
    """The agent event stream ended or dropped.

    Never raised to the caller of a session operation; it is turned into a
    ``terminated`` notification by the session that owns the stream.
    """
    status_code = 502
    error_code = "STREAM_DISCONNECTED"


class PersistenceError(BridgeError):
    """Reading or writing a session record failed."""
    error_code = "PERSISTENCE_ERROR"


class CorruptRecordError(PersistenceError):
    """A stored session record could not be decoded."""
    error_code = "CORRUPT_RECORD"


class SessionNotFoundError(BridgeError):
    status_code = 404
    error_code = "SESSION_NOT_FOUND"


class InvalidProjectError(BridgeError):
    """The requested project directory does not exist."""
    status_code = 400
    error_code = "INVALID_PROJECT"


class ChatApiError(BridgeError):
    """The chat platform rejected or failed a Bot API call."""
    status_code = 502
    error_code = "CHAT_API_ERROR"
