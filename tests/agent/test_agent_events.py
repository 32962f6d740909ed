"""Tests for decoding OpenCode server events."""
from opencode_bridge.agent.events import (
    AgentStatus,
    FilePart,
    MessageUpdated,
    PartUpdated,
    PermissionRequested,
    ReasoningPart,
    SessionErrored,
    StatusChanged,
    StepFinishPart,
    TextPart,
    ToolPart,
    ToolStatus,
    event_session_id,
    parse_event,
    parse_part,
)


def _part_event(part: dict, delta=None) -> dict:
    props = {"part": part}
    if delta is not None:
        props["delta"] = delta
    return {"type": "message.part.updated", "properties": props}


class TestParsePart:

    def test_text(self) -> None:
        part = parse_part({"type": "text", "id": "p1", "messageID": "m1", "text": "Hello"})
        assert part == TextPart(id="p1", message_id="m1", text="Hello")

    def test_tool_with_state(self) -> None:
        part = parse_part({
            "type": "tool",
            "id": "p2",
            "messageID": "m1",
            "tool": "bash",
            "state": {"status": "completed", "input": {"command": "ls"}, "output": "a\nb", "title": "ls"},
        })
        assert isinstance(part, ToolPart)
        assert part.tool == "bash"
        assert part.state.status is ToolStatus.COMPLETED
        assert part.state.input == {"command": "ls"}
        assert part.state.output == "a\nb"

    def test_tool_unknown_status_is_pending(self) -> None:
        part = parse_part({"type": "tool", "id": "p", "messageID": "m", "tool": "x", "state": {"status": "weird"}})
        assert part.state.status is ToolStatus.PENDING

    def test_tool_non_string_output_dropped(self) -> None:
        part = parse_part({
            "type": "tool", "id": "p", "messageID": "m", "tool": "x",
            "state": {"status": "completed", "output": {"lines": 3}},
        })
        assert part.state.output is None

    def test_file_reasoning_and_step_finish(self) -> None:
        assert isinstance(parse_part({"type": "file", "id": "f", "messageID": "m", "filename": "a.py"}), FilePart)
        assert isinstance(parse_part({"type": "reasoning", "id": "r", "messageID": "m", "text": "hmm"}), ReasoningPart)
        finish = parse_part({"type": "step-finish", "id": "s", "messageID": "m", "reason": "stop"})
        assert finish == StepFinishPart(id="s", message_id="m", reason="stop")

    def test_unmodelled_kind(self) -> None:
        assert parse_part({"type": "snapshot", "id": "x"}) is None


class TestParseEvent:

    def test_part_updated_with_delta(self) -> None:
        event = parse_event(_part_event(
            {"type": "text", "id": "p1", "messageID": "m1", "sessionID": "ses_1", "text": "Hi"},
            delta="Hi",
        ))
        assert isinstance(event, PartUpdated)
        assert event.session_id == "ses_1"
        assert event.delta == "Hi"

    def test_unmodelled_part_event_dropped(self) -> None:
        assert parse_event(_part_event({"type": "patch", "id": "p", "sessionID": "ses_1"})) is None

    def test_message_updated(self) -> None:
        event = parse_event({
            "type": "message.updated",
            "properties": {"info": {"id": "m1", "role": "user", "sessionID": "ses_1"}},
        })
        assert event == MessageUpdated(session_id="ses_1", message_id="m1", role="user")

    def test_status_variants(self) -> None:
        def status(kind: str):
            return parse_event({
                "type": "session.status",
                "properties": {"sessionID": "ses_1", "status": {"type": kind}},
            })

        assert status("busy").status is AgentStatus.BUSY
        assert status("retry").status is AgentStatus.BUSY
        assert status("idle").status is AgentStatus.IDLE
        assert status("hibernating") is None

    def test_status_not_an_object(self) -> None:
        def status(value):
            return parse_event({
                "type": "session.status",
                "properties": {"sessionID": "ses_1", "status": value},
            })

        assert status("idle").status is AgentStatus.IDLE
        assert status("busy").status is AgentStatus.BUSY
        assert status(None) is None
        assert status(["busy"]) is None

    def test_session_idle(self) -> None:
        event = parse_event({"type": "session.idle", "properties": {"sessionID": "ses_1"}})
        assert event == StatusChanged(session_id="ses_1", status=AgentStatus.IDLE)

    def test_session_error(self) -> None:
        event = parse_event({
            "type": "session.error",
            "properties": {
                "sessionID": "ses_1",
                "error": {"name": "ProviderAuthError", "data": {"message": "Invalid API key"}},
            },
        })
        assert isinstance(event, SessionErrored)
        assert event.message == "Invalid API key"
        assert event.name == "ProviderAuthError"
        assert not event.aborted

    def test_aborted_error(self) -> None:
        event = parse_event({
            "type": "session.error",
            "properties": {"sessionID": "ses_1", "error": {"name": "MessageAbortedError", "data": {}}},
        })
        assert event.aborted
        assert event.message == "MessageAbortedError"

    def test_error_without_detail(self) -> None:
        event = parse_event({"type": "session.error", "properties": {"sessionID": "ses_1"}})
        assert event.message == "Unknown error"

    def test_permission(self) -> None:
        event = parse_event({
            "type": "permission.updated",
            "properties": {
                "id": "perm_1", "sessionID": "ses_1", "type": "bash",
                "title": "Run rm -rf build", "metadata": {"command": "rm -rf build"},
            },
        })
        assert isinstance(event, PermissionRequested)
        assert event.request.id == "perm_1"
        assert event.request.title == "Run rm -rf build"
        assert event.request.metadata == {"command": "rm -rf build"}

    def test_ignored_kinds(self) -> None:
        assert parse_event({"type": "server.connected", "properties": {}}) is None
        assert parse_event({"type": "file.edited", "properties": {"file": "a.py"}}) is None


class TestEventSessionId:

    def test_lookup_locations(self) -> None:
        assert event_session_id({"properties": {"sessionID": "a"}}) == "a"
        assert event_session_id({"properties": {"part": {"sessionID": "b"}}}) == "b"
        assert event_session_id({"properties": {"info": {"sessionID": "c"}}}) == "c"
        assert event_session_id({"type": "server.connected"}) is None
