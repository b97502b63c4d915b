"""Reconstruct Claude Code session logs into a conversation tree."""

from .models import ProcessedEntry, RawRecord, ToolCall
from .parser import read_session_file
from .processor import ProcessingContext, process_entries, reconstruct
from .service import (
    AgentNotFoundError,
    EntryNotFoundError,
    LoadedSession,
    ProjectNotFoundError,
    SessionNotFoundError,
    load_session,
    load_session_file,
)
from .sidechain import AgentIdCollection, SidechainReconciler, TreeTraversal

__all__ = [
    "process_entries",
    "reconstruct",
    "read_session_file",
    "load_session",
    "load_session_file",
    "ProcessingContext",
    "ProcessedEntry",
    "RawRecord",
    "ToolCall",
    "LoadedSession",
    "SidechainReconciler",
    "TreeTraversal",
    "AgentIdCollection",
    "ProjectNotFoundError",
    "SessionNotFoundError",
    "AgentNotFoundError",
    "EntryNotFoundError",
]
