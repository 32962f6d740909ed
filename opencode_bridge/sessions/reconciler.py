"""Fold an agent event stream into turn output and lifecycle effects."""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from opencode_bridge.agent.events import (
    AgentEvent,
    AgentStatus,
    FilePart,
    MessageUpdated,
    Part,
    PartUpdated,
    PermissionRequest,
    PermissionRequested,
    ReasoningPart,
    SessionErrored,
    StatusChanged,
    StepFinishPart,
    StepStartPart,
    TextPart,
    ToolPart,
)
from opencode_bridge.sessions.models import TurnOutput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputReady:
    """A step finished; its output should be delivered now."""
    output: TurnOutput


@dataclass(frozen=True)
class TurnStarted:
    pass


@dataclass(frozen=True)
class TurnFinished:
    output: Optional[TurnOutput]
    aborted: bool = False


@dataclass(frozen=True)
class TurnFailed:
    message: str
    output: Optional[TurnOutput]


@dataclass(frozen=True)
class PermissionAsked:
    request: PermissionRequest


Effect = Union[OutputReady, TurnStarted, TurnFinished, TurnFailed, PermissionAsked]


class EventReconciler:
    """Accumulates one session's streaming output between flushes.

    Text parts are keyed by part id and concatenated in first-seen order.
    An update carrying a ``delta`` appends it; an update without one
    replaces the part's text with the snapshot it carries.  Tool parts
    keep their latest state; file and reasoning parts are recorded as
    they arrive.  Parts that belong to user messages, or to messages
    closed by an interrupt, are ignored.
    """

    def __init__(self) -> None:
        self._text: dict[str, str] = {}
        self._tools: dict[str, ToolPart] = {}
        self._files: dict[str, FilePart] = {}
        self._reasoning: dict[str, str] = {}
        self._user_messages: set[str] = set()
        self._closed_messages: set[str] = set()
        self._open_messages: set[str] = set()

    @property
    def has_pending(self) -> bool:
        return bool(self._text or self._tools or self._files or self._reasoning)

    def apply(self, event: AgentEvent) -> list[Effect]:
        """Fold one event and return the effects the session must act on."""
        if isinstance(event, PartUpdated):
            return self._apply_part(event.part, event.delta)
        if isinstance(event, MessageUpdated):
            if event.role == "user":
                self._user_messages.add(event.message_id)
            return []
        if isinstance(event, StatusChanged):
            if event.status is AgentStatus.BUSY:
                return [TurnStarted()]
            if event.status is AgentStatus.IDLE:
                return [TurnFinished(output=self.flush())]
            if event.status is AgentStatus.ERROR:
                return [TurnFailed(message=event.message or "The agent reported an error", output=self.flush())]
            raise TypeError(f"Unhandled agent status: {event.status!r}")
        if isinstance(event, PermissionRequested):
            return [PermissionAsked(request=event.request)]
        if isinstance(event, SessionErrored):
            if event.aborted:
                return [TurnFinished(output=self.flush(), aborted=True)]
            return [TurnFailed(message=event.message, output=self.flush())]
        raise TypeError(f"Unhandled agent event: {type(event).__name__}")

    def _apply_part(self, part: Part, delta: Optional[str]) -> list[Effect]:
        if part.message_id in self._user_messages or part.message_id in self._closed_messages:
            return []
        self._open_messages.add(part.message_id)

        if isinstance(part, TextPart):
            if delta is not None:
                self._text[part.id] = self._text.get(part.id, "") + delta
            else:
                self._text[part.id] = part.text
        elif isinstance(part, ToolPart):
            self._tools[part.id] = part
        elif isinstance(part, FilePart):
            self._files[part.id] = part
        elif isinstance(part, ReasoningPart):
            if delta is not None:
                self._reasoning[part.id] = self._reasoning.get(part.id, "") + delta
            else:
                self._reasoning[part.id] = part.text
        elif isinstance(part, StepStartPart):
            pass
        elif isinstance(part, StepFinishPart):
            output = self.flush()
            return [OutputReady(output=output)] if output is not None else []
        else:
            raise TypeError(f"Unhandled part type: {type(part).__name__}")
        return []

    def flush(self) -> Optional[TurnOutput]:
        """Return the accumulated output and clear the buffer.

        Returns None when nothing has accumulated since the last flush.
        """
        if not self.has_pending:
            return None
        output = TurnOutput(
            text="".join(self._text.values()),
            tools=tuple(self._tools.values()),
            files=tuple(self._files.values()),
            reasoning=tuple(text for text in self._reasoning.values() if text),
        )
        self._text.clear()
        self._tools.clear()
        self._files.clear()
        self._reasoning.clear()
        return output

    def close_open_messages(self) -> None:
        """Ignore any further parts of the messages seen so far.

        Used after an interrupt so late fragments of the cancelled reply
        do not leak into the next turn.
        """
        self._closed_messages.update(self._open_messages)
        self._open_messages.clear()

    def reset(self) -> None:
        self.__init__()
