"""Informational flags for tool calls that are missing linked data."""

from __future__ import annotations

from collections.abc import Iterable

from .models import TASK_TOOL_NAME, ProcessedEntry, walk_entries


def flag_missing_results(entries: Iterable[ProcessedEntry]) -> int:
    """Flag calls without a result, and Task calls without a sidechain.

    Runs over every reachable entry, including nested task entries and
    children. Returns the number of calls that received at least one flag.
    """
    flagged = 0
    for entry in walk_entries(entries):
        for call in entry.tool_calls:
            call.has_missing_result = call.result is None
            call.has_missing_sidechain = call.name == TASK_TOOL_NAME and not call.task_entries
            if call.has_missing_result or call.has_missing_sidechain:
                flagged += 1
    return flagged
