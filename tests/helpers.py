"""Builders for synthetic session log records."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from cclog.models import RawRecord

SESSION_ID = "0a1b2c3d-1111-4222-8333-444455556666"
OTHER_SESSION_ID = "9f8e7d6c-1111-4222-8333-444455556666"
BASE_TIME = datetime(2025, 3, 14, 9, 30, 0, tzinfo=UTC)


def ts(seconds: int) -> str:
    """ISO timestamp `seconds` after the fixture base time, in log format."""
    moment = BASE_TIME + timedelta(seconds=seconds)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _record(
    uuid: str,
    record_type: str,
    message: Any,
    *,
    parent: str | None,
    at: int,
    sidechain: bool,
    agent: str | None,
    **extra: Any,
) -> dict[str, Any]:
    row: dict[str, Any] = {
        "uuid": uuid,
        "parentUuid": parent,
        "isSidechain": sidechain,
        "type": record_type,
        "message": message,
        "timestamp": ts(at),
        "sessionId": SESSION_ID,
        "cwd": "/Users/dev/demo",
        "gitBranch": "main",
    }
    if agent is not None:
        row["agentId"] = agent
    row.update(extra)
    return row


def user(
    uuid: str,
    content: Any,
    *,
    parent: str | None = None,
    at: int = 0,
    sidechain: bool = False,
    agent: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    return _record(
        uuid,
        "user",
        {"role": "user", "content": content},
        parent=parent,
        at=at,
        sidechain=sidechain,
        agent=agent,
        **extra,
    )


def assistant(
    uuid: str,
    text: str = "",
    *,
    parent: str | None = None,
    at: int = 0,
    tools: list[dict[str, Any]] | None = None,
    usage: dict[str, int] | None = None,
    sidechain: bool = False,
    agent: str | None = None,
) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    content.extend(tools or [])
    message: dict[str, Any] = {"role": "assistant", "content": content, "model": "claude-sonnet"}
    if usage is not None:
        message["usage"] = usage
    return _record(uuid, "assistant", message, parent=parent, at=at, sidechain=sidechain, agent=agent)


def tool_use(call_id: str, name: str, tool_input: Any = None) -> dict[str, Any]:
    return {"type": "tool_use", "id": call_id, "name": name, "input": tool_input or {}}


def tool_result(
    uuid: str,
    call_id: str,
    content: Any = "ok",
    *,
    parent: str | None = None,
    at: int = 0,
    is_error: bool = False,
    sidechain: bool = False,
    agent: str | None = None,
    result_agent: str | None = None,
) -> dict[str, Any]:
    block = {"type": "tool_result", "tool_use_id": call_id, "content": content, "is_error": is_error}
    extra: dict[str, Any] = {}
    if result_agent is not None:
        extra["toolUseResult"] = {"agentId": result_agent, "status": "completed"}
    return _record(
        uuid,
        "user",
        {"role": "user", "content": [block]},
        parent=parent,
        at=at,
        sidechain=sidechain,
        agent=agent,
        **extra,
    )


def usage(input_tokens: int = 0, output_tokens: int = 0, cache_read: int = 0, cache_creation: int = 0) -> dict[str, int]:
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "cache_read_input_tokens": cache_read,
        "cache_creation_input_tokens": cache_creation,
    }


def records(*rows: dict[str, Any]) -> list[RawRecord]:
    return [RawRecord.model_validate(row) for row in rows]


def write_jsonl(path: Path, rows: list[dict[str, Any]] | tuple[dict[str, Any], ...]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        for row in rows:
            handle.write(json.dumps(row) + "\n")
    return path


def task_session_rows() -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """A main session that spawns one sub-agent, plus that sub-agent's log."""
    main = [
        user("u1", "Please review the parser", at=0),
        assistant(
            "a1",
            "Delegating to a reviewer.",
            parent="u1",
            at=5,
            tools=[tool_use("toolu_task", "Task", {
                "prompt": "Review the parser module",
                "description": "Review parser",
                "subagent_type": "code-reviewer",
            })],
            usage=usage(100, 20, 300, 40),
        ),
        tool_result("r1", "toolu_task", "The parser looks fine.", parent="a1", at=60, result_agent="a7f3c1"),
        assistant("a2", "Review finished.", parent="r1", at=65, usage=usage(50, 10)),
    ]
    sidechain = [
        user("s1", "Review the parser module", at=10, sidechain=True, agent="a7f3c1"),
        assistant(
            "s2",
            "",
            parent="s1",
            at=20,
            sidechain=True,
            agent="a7f3c1",
            tools=[tool_use("toolu_read", "Read", {"file_path": "/src/parser.py"})],
            usage=usage(30, 5),
        ),
        tool_result("s3", "toolu_read", "def parse(): ...", parent="s2", at=25, sidechain=True, agent="a7f3c1"),
        assistant("s4", "The parser looks fine.", parent="s3", at=30, sidechain=True, agent="a7f3c1", usage=usage(40, 8)),
    ]
    return main, sidechain
