"""Agent server integration (contract, events, OpenCode client)."""
from opencode_bridge.agent.base import AgentClient, EventStream
from opencode_bridge.agent.client import OpenCodeClient, OpenCodeEventStream
from opencode_bridge.agent.events import (
    AgentEvent,
    AgentStatus,
    FilePart,
    MessageUpdated,
    Part,
    PartUpdated,
    PermissionDecision,
    PermissionRequest,
    PermissionRequested,
    ReasoningPart,
    SessionErrored,
    StatusChanged,
    StepFinishPart,
    StepStartPart,
    TextPart,
    ToolPart,
    ToolState,
    ToolStatus,
    parse_event,
    parse_part,
)

__all__ = [
    "AgentClient", "EventStream", "OpenCodeClient", "OpenCodeEventStream",
    "AgentEvent", "AgentStatus", "PartUpdated", "MessageUpdated", "StatusChanged",
    "PermissionRequested", "SessionErrored", "PermissionDecision", "PermissionRequest",
    "Part", "TextPart", "ToolPart", "ToolState", "ToolStatus", "FilePart", "ReasoningPart",
    "StepStartPart", "StepFinishPart", "parse_event", "parse_part",
]
