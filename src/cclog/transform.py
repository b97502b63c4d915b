"""Convert raw session records into processed entries."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, assert_never

from loguru import logger
from pydantic import ValidationError

from .commands import apply_command_info
from .models import (
    Message,
    OtherBlock,
    ProcessedEntry,
    RawRecord,
    TextBlock,
    ToolCall,
    ToolResultBlock,
    ToolUseBlock,
)
from .tokens import estimate_tokens

CAVEAT_PREFIX = "Caveat: The messages below were generated by the user while running local commands"
DISPLAY_TIME_FORMAT = "%H:%M:%S"

_CONVERSATION_ROLES = frozenset({"user", "assistant"})


def parse_message(payload: Any) -> Message | None:
    """Decode a record's message payload.

    A missing payload yields an empty message; anything that is not a valid
    message object yields None.
    """
    if payload is None:
        return Message()
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return None
    if not isinstance(payload, dict):
        return None
    try:
        return Message.model_validate(payload)
    except ValidationError:
        return None


def parse_timestamp(raw: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_timestamp(raw: str) -> str:
    """Render a timestamp as HH:MM:SS, passing unparsable values through."""
    parsed = parse_timestamp(raw)
    if parsed is None:
        return raw
    return parsed.strftime(DISPLAY_TIME_FORMAT)


def render_tool_result_content(content: str | list[Any] | None) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for chunk in content:
            if isinstance(chunk, dict) and chunk.get("type") == "text" and isinstance(chunk.get("text"), str):
                parts.append(chunk["text"])
        return "\n".join(parts)
    return ""


def message_text(message: Message, *, separator: str = "\n") -> str:
    """Join the plain text blocks of a message, ignoring tool blocks."""
    content = message.content
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return separator.join(
        block.text for block in content if isinstance(block, TextBlock) and block.text
    )


def transform_record(record: RawRecord) -> ProcessedEntry:
    """Build one processed entry from one raw record. Never raises for bad payloads."""
    entry = ProcessedEntry(
        uuid=record.uuid,
        parent_uuid=record.parent_uuid or "",
        type=record.type,
        timestamp=format_timestamp(record.timestamp),
        raw_timestamp=record.timestamp,
        agent_id=record.agent_id,
        is_sidechain=record.is_sidechain,
        result_agent_id=_extract_result_agent_id(record.tool_use_result),
    )
    if record.type in _CONVERSATION_ROLES:
        entry.role = record.type

    message = parse_message(record.message)
    if message is None:
        logger.debug(
            "Unparsable message payload in entry {uuid}; estimating tokens from record size",
            uuid=record.uuid or "<no-uuid>",
        )
        entry.parse_failed = True
        entry.token_count = estimate_tokens(record.model_dump_json(by_alias=True))
        return entry

    if message.role:
        entry.role = message.role
    _apply_content(entry, message.content)
    apply_command_info(entry)
    entry.is_caveat = entry.content.startswith(CAVEAT_PREFIX)
    _apply_usage(entry, message)
    return entry


def _apply_content(entry: ProcessedEntry, content: Any) -> None:
    if content is None:
        return
    if isinstance(content, str):
        entry.content = content
        return

    texts: list[str] = []
    for index, block in enumerate(content):
        match block:
            case TextBlock():
                if block.text:
                    texts.append(block.text)
            case ToolUseBlock():
                entry.tool_calls.append(ToolCall(id=block.id, name=block.name, raw_input=block.input))
            case ToolResultBlock():
                # Only a leading tool_result makes the entry a result carrier.
                if index == 0:
                    entry.is_tool_result = True
                    entry.tool_result_id = block.tool_use_id
                if block.is_error:
                    entry.is_error = True
                rendered = render_tool_result_content(block.content)
                if rendered:
                    texts.append(rendered)
            case OtherBlock():
                continue
            case _:
                assert_never(block)
    entry.content = "\n".join(texts)


def _apply_usage(entry: ProcessedEntry, message: Message) -> None:
    usage = message.usage
    if usage is not None:
        entry.input_tokens = usage.input_tokens
        entry.output_tokens = usage.output_tokens
        entry.cache_read_tokens = usage.cache_read_input_tokens
        entry.cache_creation_tokens = usage.cache_creation_input_tokens

    if entry.role == "assistant" and usage is not None:
        entry.token_count = usage.output_tokens
    else:
        entry.token_count = estimate_tokens(entry.content)


def _extract_result_agent_id(tool_use_result: Any) -> str:
    if isinstance(tool_use_result, dict):
        agent_id = tool_use_result.get("agentId")
        if isinstance(agent_id, str):
            return agent_id
    return ""
