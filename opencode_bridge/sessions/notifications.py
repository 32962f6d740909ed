"""Outbound notifications a session delivers to its observers."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Union

from opencode_bridge.agent.events import PermissionRequest
from opencode_bridge.sessions.models import TurnOutput

logger = logging.getLogger(__name__)


class NotificationKind(Enum):
    OUTPUT = "output"
    PERMISSION = "permission"
    ERROR = "error"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class OutputNotification:
    conversation_id: str
    output: TurnOutput

    kind = NotificationKind.OUTPUT

    @property
    def text(self) -> str:
        return self.output.text


@dataclass(frozen=True)
class PermissionNotification:
    conversation_id: str
    request: PermissionRequest

    kind = NotificationKind.PERMISSION


@dataclass(frozen=True)
class ErrorNotification:
    conversation_id: str
    message: str

    kind = NotificationKind.ERROR


@dataclass(frozen=True)
class TerminatedNotification:
    conversation_id: str
    reason: str = ""

    kind = NotificationKind.TERMINATED


Notification = Union[OutputNotification, PermissionNotification, ErrorNotification, TerminatedNotification]

NotificationCallback = Callable[[Notification], Awaitable[None]]


class NotificationHub:
    """Ordered observer list for one session.

    Callbacks are awaited one after another in registration order, so
    observers see notifications in the order the session emitted them.
    A failing callback is logged and skipped.
    """

    def __init__(self) -> None:
        self._callbacks: list[NotificationCallback] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: NotificationCallback) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    async def publish(self, notification: Notification) -> None:
        for callback in list(self._callbacks):
            try:
                await callback(notification)
            except Exception:
                logger.exception(
                    "Notification callback failed for %s (%s)",
                    notification.conversation_id, notification.kind.value,
                )
