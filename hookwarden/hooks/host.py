"""
Conversion of host hook payloads into events.

Two input shapes are understood:

- the native shape: ``{"kind": "PromptSubmit", "session_id": ..., "prompt": ...}``
- the assistant host's hook shape, keyed by ``hook_event_name``
  (``UserPromptSubmit``, ``PostToolUse``, ``Stop``, ``SessionEnd``)

``TodoWrite`` tool calls carry no event for the rules; their todo list is
extracted separately with ``todos_from_hook_input`` and stored in the ledger.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..ledger.types import TodoItem
from .types import Event, EventKind, PostToolWrite, PromptSubmit, SessionStop

WRITE_TOOLS = {"Write", "Edit", "MultiEdit", "NotebookEdit"}
TODO_TOOLS = {"TodoWrite"}
TODO_DONE_STATUSES = {"completed"}
TODO_DROPPED_STATUSES = {"cancelled"}

HOST_EVENT_KINDS = {
    "UserPromptSubmit": EventKind.PromptSubmit,
    "PostToolUse": EventKind.PostToolWrite,
    "Stop": EventKind.SessionStop,
    "SessionEnd": EventKind.SessionStop,
}


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp (or epoch seconds) into a naive local datetime."""
    if value is None:
        return datetime.now()
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {value!r}") from e
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def relativize(path: str, project_dir: Optional[str]) -> str:
    """Make an absolute path relative to the project directory when it lies inside it."""
    if not project_dir or not os.path.isabs(path):
        return path
    try:
        return Path(path).resolve().relative_to(Path(project_dir).resolve()).as_posix()
    except ValueError:
        return path


def _write_content(tool_input: Dict[str, Any]) -> str:
    if isinstance(tool_input.get("content"), str):
        return tool_input["content"]
    if isinstance(tool_input.get("new_string"), str):
        return tool_input["new_string"]
    if isinstance(tool_input.get("new_source"), str):
        return tool_input["new_source"]
    edits = tool_input.get("edits")
    if isinstance(edits, list):
        return "\n".join(e["new_string"] for e in edits if isinstance(e, dict) and isinstance(e.get("new_string"), str))
    return ""


def _from_host_shape(data: Dict[str, Any], session_id: str, timestamp: datetime, project_dir: Optional[str]) -> Optional[Event]:
    name = data["hook_event_name"]
    kind = HOST_EVENT_KINDS.get(name)
    if kind is None:
        return None

    if kind is EventKind.PromptSubmit:
        return PromptSubmit(session_id=session_id, prompt=data.get("prompt", ""), timestamp=timestamp)

    if kind is EventKind.PostToolWrite:
        if data.get("tool_name") not in WRITE_TOOLS:
            return None
        tool_input = data.get("tool_input") or {}
        if not isinstance(tool_input, dict):
            raise ValueError("tool_input must be an object")
        file_path = tool_input.get("file_path") or tool_input.get("notebook_path")
        if not isinstance(file_path, str) or not file_path:
            raise ValueError(f"{data.get('tool_name')} payload has no file_path")
        return PostToolWrite(
            session_id=session_id,
            file_path=relativize(file_path, project_dir or data.get("cwd")),
            content=_write_content(tool_input),
            timestamp=timestamp,
        )

    # Stop ends a turn; only SessionEnd ends the session
    return SessionStop(session_id=session_id, timestamp=timestamp, final=name == "SessionEnd")


def event_from_hook_input(data: Any, project_dir: Optional[str] = None) -> Optional[Event]:
    """
    Build an event from a decoded host payload.

    Args:
        data: Decoded JSON object sent by the host
        project_dir: Directory that file paths are made relative to

    Returns:
        The event, or None when the payload is not something rules act on
        (for instance a read-only tool call)

    Raises:
        ValueError: If the payload is malformed
    """
    if not isinstance(data, dict):
        raise ValueError("hook input must be a JSON object")

    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        raise ValueError("hook input has no session_id")
    timestamp = parse_timestamp(data.get("timestamp"))

    if "hook_event_name" in data:
        return _from_host_shape(data, session_id, timestamp, project_dir)

    if "kind" not in data:
        raise ValueError("hook input has neither 'kind' nor 'hook_event_name'")
    kind = EventKind.parse(data["kind"])

    if kind is EventKind.PromptSubmit:
        return PromptSubmit(session_id=session_id, prompt=data.get("prompt", ""), timestamp=timestamp)
    if kind is EventKind.PostToolWrite:
        path = data.get("path") or data.get("file_path")
        if not isinstance(path, str):
            raise ValueError("PostToolWrite input has no path")
        return PostToolWrite(
            session_id=session_id,
            file_path=relativize(path, project_dir),
            content=data.get("content", ""),
            timestamp=timestamp,
        )
    return SessionStop(session_id=session_id, timestamp=timestamp, final=data.get("final", True))


def todos_from_hook_input(data: Any) -> Optional[List[TodoItem]]:
    """
    Todo list snapshot carried by a TodoWrite tool call.

    Completed items are kept as done, cancelled items are dropped.

    Returns:
        The todo items, or None when the payload is not a TodoWrite call

    Raises:
        ValueError: If the todo list is malformed
    """
    if not isinstance(data, dict) or data.get("hook_event_name") != "PostToolUse":
        return None
    if data.get("tool_name") not in TODO_TOOLS:
        return None

    tool_input = data.get("tool_input") or {}
    todos = tool_input.get("todos") if isinstance(tool_input, dict) else None
    if not isinstance(todos, list):
        raise ValueError(f"{data['tool_name']} payload has no todos list")

    items = []
    for entry in todos:
        if not isinstance(entry, dict) or not isinstance(entry.get("content"), str):
            raise ValueError(f"malformed todo entry: {entry!r}")
        status = entry.get("status", "pending")
        if status in TODO_DROPPED_STATUSES:
            continue
        items.append(TodoItem(entry["content"], done=status in TODO_DONE_STATUSES))
    return items
