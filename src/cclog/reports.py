"""Reports computed from a reconstructed session.

Every report reads the already reconciled top-level entries of a
`LoadedSession`; none of them re-derive hierarchy or tool matching.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from .models import (
    TASK_TOOL_NAME,
    ContextLog,
    ErrorCategories,
    LogsAroundEntry,
    ProcessedEntry,
    SessionError,
    SessionErrors,
    SessionLogEntry,
    SessionLogs,
    SessionSidechains,
    SessionStats,
    SessionSummary,
    SessionTimeline,
    SessionToolCall,
    SidechainDigest,
    SidechainStats,
    TimelineEntry,
    TokenStats,
    ToolCall,
    ToolCallStats,
    ToolPatterns,
    ToolSequenceEntry,
    ToolUsageStat,
    ToolUsageStats,
    walk_entries,
)
from .service import EntryNotFoundError, LoadedSession
from .sidechain import first_user_message, last_assistant_message
from .text import truncate
from .transform import parse_timestamp

ERROR_MESSAGE_LENGTH = 500
CONTEXT_CONTENT_LENGTH = 5000
TIMELINE_SUMMARY_LENGTH = 150
DEFAULT_AROUND_OFFSET = -3
SUMMARY_INPUT_KEYS = ("command", "query", "url", "file_path", "pattern", "prompt")
VALIDATION_ERROR_MARKER = "InputValidationError"
DATE_FORMAT = "%Y-%m-%d"


def _optional_agent(session: LoadedSession) -> str | None:
    return session.agent_id or None


def _sidechain_label(entry: ProcessedEntry) -> str:
    return entry.agent_id if entry.is_sidechain else ""


def _call_failed(call: ToolCall) -> bool:
    return call.result is not None and call.result.is_error


def token_stats(entries: Sequence[ProcessedEntry]) -> TokenStats:
    stats = TokenStats()
    for entry in entries:
        stats.total_input += entry.input_tokens
        stats.total_output += entry.output_tokens
        stats.cache_read += entry.cache_read_tokens
        stats.cache_creation += entry.cache_creation_tokens
    return stats


def session_logs(session: LoadedSession) -> SessionLogs:
    entries = session.entries
    return SessionLogs(
        session_id=session.session_id,
        project=session.project,
        entries=[
            SessionLogEntry(
                uuid=entry.uuid,
                timestamp=entry.timestamp,
                role=entry.role,
                content=entry.content,
                is_sidechain=entry.is_sidechain,
                agent_id=entry.agent_id,
                tool_calls=[
                    SessionToolCall(
                        name=call.name,
                        input=call.raw_input,
                        output=call.result.content if call.result is not None else "",
                    )
                    for call in entry.tool_calls
                ],
            )
            for entry in entries
        ],
        token_stats=token_stats(entries),
    )


def session_summary(session: LoadedSession) -> SessionSummary:
    """Message, token, tool and sidechain counts plus the session's time span."""
    entries = session.entries
    tool_stats = ToolCallStats()
    tool_names: set[str] = set()
    agent_ids: set[str] = set()
    spawned = 0
    user_messages = assistant_messages = error_count = 0
    earliest: datetime | None = None
    latest: datetime | None = None

    for entry in entries:
        if entry.role == "user":
            user_messages += 1
        elif entry.role == "assistant":
            assistant_messages += 1
        if entry.is_error:
            error_count += 1
        if entry.is_sidechain and entry.agent_id:
            agent_ids.add(entry.agent_id)

        for call in entry.tool_calls:
            tool_stats.total += 1
            tool_names.add(call.name)
            if _call_failed(call):
                tool_stats.failed += 1
            else:
                tool_stats.success += 1
            if call.name == TASK_TOOL_NAME and call.task_entries:
                spawned += 1
                agent_ids.update(task.agent_id for task in call.task_entries if task.agent_id)

        moment = parse_timestamp(entry.raw_timestamp)
        if moment is not None:
            earliest = moment if earliest is None or moment < earliest else earliest
            latest = moment if latest is None or moment > latest else latest

    tool_stats.unique_tools = len(tool_names)
    summary = SessionSummary(
        session_id=session.session_id,
        agent_id=_optional_agent(session),
        project=session.project,
        message_count=len(entries),
        user_messages=user_messages,
        assistant_messages=assistant_messages,
        tokens=token_stats(entries),
        tool_calls=tool_stats,
        sidechains=SidechainStats(count=spawned, agent_ids=sorted(agent_ids)),
        has_errors=error_count > 0,
        error_count=error_count,
    )
    if earliest is not None and latest is not None:
        summary.date = earliest.strftime(DATE_FORMAT)
        summary.duration_minutes = int((latest - earliest).total_seconds() // 60)
    return summary


def tool_usage_stats(session: LoadedSession) -> ToolUsageStats:
    counts: dict[str, ToolUsageStat] = {}
    sequence: list[ToolSequenceEntry] = []
    patterns = ToolPatterns()
    max_count = max_failed = 0

    for entry in session.entries:
        for call in entry.tool_calls:
            sequence.append(ToolSequenceEntry(name=call.name, tool_use_id=call.id))
            patterns.first_tool = patterns.first_tool or call.name
            patterns.last_tool = call.name

            stat = counts.setdefault(call.name, ToolUsageStat(name=call.name))
            stat.count += 1
            if _call_failed(call):
                stat.failed += 1
            else:
                stat.success += 1

            if stat.count > max_count:
                max_count = stat.count
                patterns.most_used = call.name
            if stat.failed > max_failed:
                max_failed = stat.failed
                patterns.most_failed = call.name

    return ToolUsageStats(
        session_id=session.session_id,
        agent_id=_optional_agent(session),
        tools=sorted(counts.values(), key=lambda stat: (-stat.count, stat.name)),
        tool_sequence=sequence,
        patterns=patterns,
    )


def session_errors(session: LoadedSession, *, limit: int = 0) -> SessionErrors:
    """Errored entries and failed tool calls; `limit` caps only the returned list."""
    categories = ErrorCategories()
    errors: list[SessionError] = []

    for index, entry in enumerate(session.entries):
        if entry.is_error:
            errors.append(
                SessionError(
                    uuid=entry.uuid,
                    timestamp=entry.timestamp,
                    type="tool_error",
                    message=truncate(entry.content, ERROR_MESSAGE_LENGTH),
                    sidechain=_sidechain_label(entry),
                    entry_index=index,
                )
            )

        for call in entry.tool_calls:
            if not _call_failed(call):
                continue
            errors.append(
                SessionError(
                    uuid=entry.uuid,
                    timestamp=call.result.timestamp,
                    type="tool_error",
                    tool_name=call.name,
                    message=truncate(call.result.content, ERROR_MESSAGE_LENGTH),
                    sidechain=_sidechain_label(entry),
                    entry_index=index,
                )
            )

        if "error" in entry.content.lower() and "console" in entry.content:
            categories.console_error += 1

    for error in errors:
        categories.tool_error += 1
        if VALIDATION_ERROR_MARKER in error.message:
            categories.validation_error += 1

    return SessionErrors(
        session_id=session.session_id,
        agent_id=_optional_agent(session),
        total_errors=len(errors),
        errors=errors[:limit] if limit > 0 else errors,
        categories=categories,
    )


def tool_summary(call: ToolCall) -> str:
    """A one-line description of a call, taken from its most telling input."""
    match call.raw_input:
        case dict() as payload:
            for key in SUMMARY_INPUT_KEYS:
                value = payload.get(key)
                if isinstance(value, str):
                    return value
        case str() as text:
            return text
    return call.name


def session_timeline(session: LoadedSession, *, limit: int = 0) -> SessionTimeline:
    entries = session.entries
    items: list[TimelineEntry] = []

    for entry in entries:
        base: dict[str, Any] = {
            "timestamp": entry.timestamp,
            "role": entry.role,
            "tokens": entry.output_tokens,
            "sidechain": _sidechain_label(entry),
        }
        if not entry.tool_calls:
            items.append(
                TimelineEntry(
                    step=len(items) + 1,
                    type="message",
                    summary=truncate(entry.content, TIMELINE_SUMMARY_LENGTH),
                    **base,
                )
            )
        for call in entry.tool_calls:
            status = ""
            if call.result is not None:
                status = "failed" if call.result.is_error else "success"
            items.append(
                TimelineEntry(
                    step=len(items) + 1,
                    type="tool_call",
                    tool=call.name,
                    tool_use_id=call.id,
                    summary=truncate(tool_summary(call), TIMELINE_SUMMARY_LENGTH),
                    status=status,
                    **base,
                )
            )
        if limit > 0 and len(items) >= limit:
            break

    if limit > 0:
        items = items[:limit]
    return SessionTimeline(
        session_id=session.session_id,
        agent_id=_optional_agent(session),
        total_entries=len(entries),
        returned_entries=len(items),
        timeline=items,
    )


def context_log(entry: ProcessedEntry, offset: int) -> ContextLog:
    log = ContextLog(
        offset=offset,
        timestamp=entry.timestamp,
        role=entry.role,
        content=truncate(entry.content, CONTEXT_CONTENT_LENGTH),
        is_tool_result=entry.is_tool_result,
        is_error=entry.is_error,
    )
    if entry.tool_calls:
        call = entry.tool_calls[0]
        log.tool_name = call.name
        log.tool_use_id = call.id
        log.tool_input = call.raw_input
        if call.result is not None:
            log.tool_output = truncate(call.result.content, CONTEXT_CONTENT_LENGTH)
        if len(entry.tool_calls) > 1:
            log.tool_name = f"{call.name} (+{len(entry.tool_calls) - 1} more)"
    return log


def logs_around_entry(session: LoadedSession, target_uuid: str, *, offset: int = 0) -> LogsAroundEntry:
    """The target entry plus up to `|offset|` neighbours before (< 0) or after (> 0) it."""
    entries = session.entries
    target_index = next((index for index, entry in enumerate(entries) if entry.uuid == target_uuid), None)
    if target_index is None:
        raise EntryNotFoundError(f"entry with UUID {target_uuid} not found")

    if offset == 0:
        offset = DEFAULT_AROUND_OFFSET

    context: list[ContextLog] = []
    if offset < 0:
        for relative in range(offset, 0):
            position = target_index + relative
            if position >= 0:
                context.append(context_log(entries[position], relative))
        context.append(context_log(entries[target_index], 0))
    else:
        context.append(context_log(entries[target_index], 0))
        for relative in range(1, offset + 1):
            position = target_index + relative
            if position >= len(entries):
                break
            context.append(context_log(entries[position], relative))

    return LogsAroundEntry(
        session_id=session.session_id,
        project=session.project,
        target_uuid=target_uuid,
        target_index=target_index,
        offset=offset,
        entries=context,
        total_count=len(entries),
    )


def _input_string(call: ToolCall, key: str) -> str:
    if isinstance(call.raw_input, dict):
        value = call.raw_input.get(key)
        if isinstance(value, str):
            return value
    return ""


def sidechain_digests(session: LoadedSession) -> SessionSidechains:
    """What each spawned sub-agent was asked and what it answered."""
    index = session.context.index
    digests: list[SidechainDigest] = []
    for entry in walk_entries(session.entries):
        for call in entry.tool_calls:
            if call.name != TASK_TOOL_NAME or not call.task_entries:
                continue
            head = call.task_entries[0]
            digest = SidechainDigest(
                entry_uuid=entry.uuid,
                tool_use_id=call.id,
                subagent_type=_input_string(call, "subagent_type"),
                description=_input_string(call, "description"),
                agent_id=head.agent_id,
                entry_count=len(call.task_entries),
                has_missing_result=call.has_missing_result,
            )
            if index is not None:
                digest.first_user_message = first_user_message(head, index)
                digest.last_assistant_message = last_assistant_message(head, index)
            digests.append(digest)
    return SessionSidechains(session_id=session.session_id, sidechains=digests)


def session_stats(session: LoadedSession, *, errors_limit: int = 0) -> SessionStats:
    return SessionStats(
        session_id=session.session_id,
        agent_id=_optional_agent(session),
        project=session.project,
        generated_at=datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        summary=session_summary(session),
        tool_stats=tool_usage_stats(session),
        errors=session_errors(session, limit=errors_limit),
    )
