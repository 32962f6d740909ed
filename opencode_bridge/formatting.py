"""Render agent output as chat text.

Pure functions only; adapters decide how the result is sent.  Markdown
output targets Telegram's legacy Markdown dialect.
"""
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from opencode_bridge.agent.events import (
    FilePart,
    Part,
    PermissionRequest,
    ReasoningPart,
    StepFinishPart,
    StepStartPart,
    TextPart,
    ToolPart,
    ToolState,
    ToolStatus,
)
from opencode_bridge.sessions.models import SessionStatus, TurnOutput

TELEGRAM_MAX_LENGTH = 4096
CODE_BLOCK_MAX_LENGTH = TELEGRAM_MAX_LENGTH - 50

_TOOL_NAMES = {
    "read": "Reading file",
    "write": "Writing file",
    "edit": "Editing file",
    "bash": "Running command",
    "glob": "Finding files",
    "grep": "Searching code",
    "list": "Listing files",
    "webfetch": "Fetching web page",
    "todoread": "Reading tasks",
    "todowrite": "Writing tasks",
}

_MARKDOWN_SPECIALS = re.compile(r"([*_`\[\]])")


@dataclass(frozen=True)
class FormatOptions:
    """What to include when rendering output.

    Reasoning is off by default; it is verbose and rarely useful in chat.
    """

    tools: bool = True
    files: bool = True
    reasoning: bool = False
    steps: bool = True
    markdown: bool = True
    compact: bool = False


DEFAULT_OPTIONS = FormatOptions()


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def escape_markdown(text: str) -> str:
    return _MARKDOWN_SPECIALS.sub(r"\\\1", text)


def format_tool_name(tool: str) -> str:
    return _TOOL_NAMES.get(tool, tool)


def _bold(text: str, opts: FormatOptions) -> str:
    return f"*{text}*" if opts.markdown else text


def _code(text: str, opts: FormatOptions) -> str:
    return f"`{text}`" if opts.markdown else text


def _italic(text: str, opts: FormatOptions) -> str:
    return f"_{text}_" if opts.markdown else text


def _tool_summary(tool: str, state: ToolState, opts: FormatOptions) -> Optional[str]:
    args = state.input or {}
    if tool in ("read", "write", "edit") and args.get("filePath"):
        verb = {"read": "Read", "write": "Wrote", "edit": "Edited"}[tool]
        return f"{verb}: {_code(str(args['filePath']), opts)}"
    if tool == "bash" and args.get("command"):
        return _code(truncate(str(args["command"]), 50), opts)
    if tool == "glob" and args.get("pattern"):
        return f"Pattern: {_code(str(args['pattern']), opts)}"
    if tool == "grep" and args.get("pattern"):
        return f"Search: {_code(str(args['pattern']), opts)}"
    if state.status is ToolStatus.COMPLETED and state.title:
        return state.title
    return None


def _format_tool(part: ToolPart, opts: FormatOptions) -> str:
    state = part.state
    name = format_tool_name(part.tool)

    if opts.compact:
        if state.status is ToolStatus.ERROR:
            return f"{name}: {state.error or 'Error'}"
        if state.status is ToolStatus.RUNNING:
            return f"{name}..."
        return name

    lines = []
    if state.status is ToolStatus.RUNNING:
        lines.append(f"{_bold(name, opts)}...")
        if state.title:
            lines.append(state.title)
    elif state.status is ToolStatus.COMPLETED:
        lines.append(_bold(name, opts))
        summary = _tool_summary(part.tool, state, opts)
        if summary:
            lines.append(summary)
    elif state.status is ToolStatus.ERROR:
        lines.append(f"{_bold(name, opts)} failed")
        if state.error:
            lines.append(f"Error: {state.error}")
    else:
        lines.append(f"{_bold(name, opts)} pending...")
    return "\n".join(lines)


def _format_file(part: FilePart, opts: FormatOptions) -> str:
    filename = _code(part.filename or "unknown file", opts)
    if opts.compact:
        return filename
    return f"{_bold('File:', opts)} {filename}"


def _format_reasoning(text: str, opts: FormatOptions) -> str:
    if opts.compact or not text:
        return _italic("Thinking...", opts)
    return f"{_italic('Thinking:', opts)} {truncate(text, 200)}"


def format_part(part: Part, options: FormatOptions = DEFAULT_OPTIONS) -> Optional[str]:
    """Render one part, or None when the options exclude it."""
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, ToolPart):
        return _format_tool(part, options) if options.tools else None
    if isinstance(part, FilePart):
        return _format_file(part, options) if options.files else None
    if isinstance(part, ReasoningPart):
        return _format_reasoning(part.text, options) if options.reasoning else None
    if isinstance(part, StepStartPart):
        return "Starting step..." if options.steps else None
    if isinstance(part, StepFinishPart):
        return None
    raise TypeError(f"Unhandled part type: {type(part).__name__}")


def format_parts(parts: Iterable[Part], options: FormatOptions = DEFAULT_OPTIONS) -> str:
    rendered = (format_part(part, options) for part in parts)
    return "\n".join(text for text in rendered if text)


def format_turn_output(output: TurnOutput, options: FormatOptions = DEFAULT_OPTIONS) -> str:
    """Render a flushed turn: tool and file activity first, then the reply text."""
    sections = []
    if options.tools:
        sections.extend(_format_tool(tool, options) for tool in output.tools)
    if options.files:
        sections.extend(_format_file(f, options) for f in output.files)
    if options.reasoning:
        sections.extend(_format_reasoning(text, options) for text in output.reasoning)
    if output.text.strip():
        sections.append(output.text.strip())
    return "\n".join(sections)


def format_delta(part: Part, delta: Optional[str]) -> Optional[str]:
    """Streaming text increment for a part; only text parts stream."""
    if not delta or not isinstance(part, TextPart):
        return None
    return delta


def format_permission_request(request: PermissionRequest, markdown: bool = True) -> str:
    heading = "*Permission Required*" if markdown else "Permission Required"
    lines = [heading, ""]
    if request.title:
        lines.append(request.title)
        lines.append("")
    lines.append("Please respond: Allow Once, Always Allow, or Reject")
    return "\n".join(lines)


def format_session_status(status: SessionStatus, error_message: Optional[str] = None) -> str:
    if status is SessionStatus.IDLE:
        return "Ready"
    if status is SessionStatus.BUSY:
        return "Working..."
    if status is SessionStatus.STARTING:
        return "Starting..."
    if status is SessionStatus.ERROR:
        return f"Error: {error_message}" if error_message else "Error"
    if status is SessionStatus.TERMINATED:
        return "Stopped"
    return "Not started"


def format_code(code: str, language: str = "") -> str:
    wrapped = f"```{language}\n{code}\n```"
    if len(wrapped) <= TELEGRAM_MAX_LENGTH:
        return wrapped
    max_code = CODE_BLOCK_MAX_LENGTH - len(language) - 10
    return f"```{language}\n{truncate(code, max_code)}\n```"


def chunk_message(text: str, max_length: int = TELEGRAM_MAX_LENGTH) -> list[str]:
    """Split text into pieces no longer than ``max_length``.

    Breaks at the last newline, else the last sentence end, else the last
    space, as long as that boundary lies past the halfway point of the
    window; otherwise the text is cut hard.
    """
    if not text:
        return []
    if len(text) <= max_length:
        return [text]

    chunks = []
    remaining = text
    half = max_length * 0.5
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        window = remaining[: max_length + 1]
        break_point = max_length
        newline = window.rfind("\n", 0, max_length)
        period = window.rfind(". ", 0, max_length)
        space = window.rfind(" ", 0, max_length)
        if newline > half:
            break_point = newline + 1
        elif period > half:
            break_point = period + 2
        elif space > half:
            break_point = space + 1
        chunk = remaining[:break_point].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[break_point:].strip()
    return chunks
