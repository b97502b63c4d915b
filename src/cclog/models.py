"""Models for session log records, the reconstructed entry tree, and reports."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Discriminator, Field, Tag, field_validator

TASK_TOOL_NAME = "Task"

# --- Raw input models ---


class RawRecord(BaseModel):
    """A single JSONL line from a session log."""

    uuid: str = ""
    parent_uuid: str | None = Field(default=None, alias="parentUuid")
    is_sidechain: bool = Field(default=False, alias="isSidechain")
    type: str = ""
    message: Any = None
    timestamp: str = ""
    agent_id: str = Field(default="", alias="agentId")
    session_id: str = Field(default="", alias="sessionId")
    cwd: str = ""
    git_branch: str = Field(default="", alias="gitBranch")
    version: str = ""
    user_type: str = Field(default="", alias="userType")
    request_id: str = Field(default="", alias="requestId")
    is_meta: bool = Field(default=False, alias="isMeta")
    tool_use_result: Any = Field(default=None, alias="toolUseResult")

    model_config = {"extra": "allow", "populate_by_name": True}

    @field_validator(
        "uuid",
        "type",
        "timestamp",
        "agent_id",
        "session_id",
        "cwd",
        "git_branch",
        "version",
        "user_type",
        "request_id",
        mode="before",
    )
    @classmethod
    def _null_string(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_sidechain", "is_meta", mode="before")
    @classmethod
    def _null_flag(cls, value: Any) -> Any:
        return False if value is None else value


class Usage(BaseModel):
    """Token usage block attached to assistant messages."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    model_config = {"extra": "allow"}

    @field_validator("*", mode="before")
    @classmethod
    def _null_count(cls, value: Any) -> Any:
        return 0 if value is None else value


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""

    model_config = {"extra": "allow"}


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    input: Any = None

    model_config = {"extra": "allow"}


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: str | list[Any] | None = None
    is_error: bool = False

    model_config = {"extra": "allow"}

    @field_validator("is_error", mode="before")
    @classmethod
    def _null_flag(cls, value: Any) -> Any:
        return False if value is None else value


class OtherBlock(BaseModel):
    """Any content block kind that carries no text, tool call, or tool result."""

    type: str = ""

    model_config = {"extra": "allow"}


_TAGGED_BLOCK_TYPES = frozenset({"text", "tool_use", "tool_result"})


def _content_block_tag(value: Any) -> str:
    if isinstance(value, dict):
        block_type = value.get("type")
    else:
        block_type = getattr(value, "type", None)
    if block_type in _TAGGED_BLOCK_TYPES:
        return block_type
    return "other"


ContentBlock = Annotated[
    Union[
        Annotated[TextBlock, Tag("text")],
        Annotated[ToolUseBlock, Tag("tool_use")],
        Annotated[ToolResultBlock, Tag("tool_result")],
        Annotated[OtherBlock, Tag("other")],
    ],
    Discriminator(_content_block_tag),
]


class Message(BaseModel):
    """The message payload embedded in a record."""

    role: str = ""
    content: str | list[ContentBlock] | None = None
    usage: Usage | None = None
    model: str | None = None

    model_config = {"extra": "allow"}

    @field_validator("role", mode="before")
    @classmethod
    def _null_role(cls, value: Any) -> Any:
        return "" if value is None else value


# --- Reconstructed tree ---


@dataclass(slots=True, eq=False)
class ToolCall:
    """A tool invocation and everything linked to it during reconstruction."""

    id: str
    name: str
    raw_input: Any = None
    result: ProcessedEntry | None = None
    task_entries: list[ProcessedEntry] = field(default_factory=list)
    has_missing_result: bool = False
    has_missing_sidechain: bool = False


@dataclass(slots=True, eq=False)
class ProcessedEntry:
    """One raw record enriched with hierarchy, tool linkage, and token data."""

    uuid: str
    parent_uuid: str = ""
    type: str = ""
    timestamp: str = ""
    raw_timestamp: str = ""
    role: str = ""
    content: str = ""
    agent_id: str = ""
    is_sidechain: bool = False

    children: list[ProcessedEntry] = field(default_factory=list)
    depth: int = 0

    tool_calls: list[ToolCall] = field(default_factory=list)
    is_tool_result: bool = False
    tool_result_id: str = ""
    result_agent_id: str = ""

    token_count: int = 0
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    is_command_message: bool = False
    command_name: str = ""
    command_args: str = ""
    command_output: str = ""
    is_merged_output: bool = False

    is_error: bool = False
    is_caveat: bool = False
    parse_failed: bool = False


def walk_entries(entries: Iterable[ProcessedEntry]) -> Iterator[ProcessedEntry]:
    """Yield every entry reachable from `entries` once, in pre-order.

    Descends into children, attached tool results, and nested task entries.
    """
    seen: set[int] = set()
    stack = list(reversed(list(entries)))
    while stack:
        entry = stack.pop()
        if id(entry) in seen:
            continue
        seen.add(id(entry))
        yield entry

        nested: list[ProcessedEntry] = []
        for call in entry.tool_calls:
            if call.result is not None:
                nested.append(call.result)
            nested.extend(call.task_entries)
        nested.extend(entry.children)
        stack.extend(reversed(nested))


# --- Discovery ---


class ProjectInfo(BaseModel):
    """A project directory holding session logs."""

    name: str
    path: str
    encoded_path: str
    session_count: int = 0
    last_modified: datetime


class SessionInfo(BaseModel):
    """Lightweight metadata for one session file."""

    session_id: str
    project: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    message_count: int = 0
    agent_types_used: list[str] = Field(default_factory=list)
    first_user_message: str = ""
    cwd: str = ""
    git_branch: str = ""
    file_path: str = Field(default="", exclude=True)


class AgentUsageInfo(BaseModel):
    """One session that spawned a given sub-agent type."""

    session_id: str
    project: str
    timestamp: datetime | None = None
    usage_count: int = 0
    prompts: list[str] = Field(default_factory=list)


class AgentSessions(BaseModel):
    agent_type: str
    sessions: list[AgentUsageInfo]
    count: int = 0


# --- Reports ---


class TokenStats(BaseModel):
    total_input: int = 0
    total_output: int = 0
    cache_read: int = 0
    cache_creation: int = 0


class SessionToolCall(BaseModel):
    name: str
    input: Any = None
    output: str = ""


class SessionLogEntry(BaseModel):
    uuid: str
    timestamp: str
    role: str
    content: str
    is_sidechain: bool = False
    agent_id: str = ""
    tool_calls: list[SessionToolCall] = Field(default_factory=list)


class SessionLogs(BaseModel):
    """Full processed logs for a session."""

    session_id: str
    project: str
    entries: list[SessionLogEntry]
    token_stats: TokenStats


class ToolCallStats(BaseModel):
    total: int = 0
    unique_tools: int = 0
    success: int = 0
    failed: int = 0


class SidechainStats(BaseModel):
    count: int = 0
    agent_ids: list[str] = Field(default_factory=list)


class SessionSummary(BaseModel):
    """A lightweight overview of a session."""

    session_id: str
    agent_id: str | None = None
    project: str
    date: str = ""
    duration_minutes: int = 0
    message_count: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    tokens: TokenStats
    tool_calls: ToolCallStats
    sidechains: SidechainStats
    has_errors: bool = False
    error_count: int = 0


class ToolUsageStat(BaseModel):
    name: str
    count: int = 0
    success: int = 0
    failed: int = 0


class ToolPatterns(BaseModel):
    most_used: str = ""
    most_failed: str = ""
    first_tool: str = ""
    last_tool: str = ""


class ToolSequenceEntry(BaseModel):
    name: str
    tool_use_id: str


class ToolUsageStats(BaseModel):
    session_id: str
    agent_id: str | None = None
    tools: list[ToolUsageStat]
    tool_sequence: list[ToolSequenceEntry]
    patterns: ToolPatterns


class SessionError(BaseModel):
    uuid: str
    timestamp: str
    type: str
    tool_name: str = ""
    message: str
    sidechain: str = ""
    entry_index: int


class ErrorCategories(BaseModel):
    tool_error: int = 0
    console_error: int = 0
    validation_error: int = 0


class SessionErrors(BaseModel):
    session_id: str
    agent_id: str | None = None
    total_errors: int = 0
    errors: list[SessionError]
    categories: ErrorCategories


class TimelineEntry(BaseModel):
    step: int
    timestamp: str
    role: str
    type: str
    tool: str = ""
    tool_use_id: str = ""
    summary: str
    status: str = ""
    tokens: int = 0
    sidechain: str = ""


class SessionTimeline(BaseModel):
    session_id: str
    agent_id: str | None = None
    total_entries: int
    returned_entries: int
    timeline: list[TimelineEntry]


class ContextLog(BaseModel):
    """An entry shown relative to a target entry."""

    offset: int
    timestamp: str
    role: str
    content: str
    tool_name: str = ""
    tool_use_id: str = ""
    tool_input: Any = None
    tool_output: str = ""
    is_tool_result: bool = False
    is_error: bool = False


class LogsAroundEntry(BaseModel):
    session_id: str
    project: str
    target_uuid: str
    target_index: int
    offset: int
    entries: list[ContextLog]
    total_count: int


class SidechainDigest(BaseModel):
    """What a sub-agent was asked and what it answered."""

    entry_uuid: str
    tool_use_id: str
    subagent_type: str = ""
    description: str = ""
    agent_id: str = ""
    entry_count: int = 0
    first_user_message: str = ""
    last_assistant_message: str = ""
    has_missing_result: bool = False


class SessionSidechains(BaseModel):
    session_id: str
    sidechains: list[SidechainDigest]


class SessionStats(BaseModel):
    """Aggregated session statistics."""

    session_id: str
    agent_id: str | None = None
    project: str
    generated_at: str
    summary: SessionSummary
    tool_stats: ToolUsageStats
    errors: SessionErrors


class SearchResult(BaseModel):
    session_id: str
    project: str
    entry_uuid: str
    timestamp: datetime | None = None
    role: str
    content_snippet: str
    tool_name: str = ""
    is_sidechain: bool = False


class SearchResults(BaseModel):
    results: list[SearchResult]
    total_matches: int
