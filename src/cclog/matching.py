"""Pair tool calls with the entries that carry their results."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from .models import ProcessedEntry


def match_tool_results(entries: Sequence[ProcessedEntry]) -> set[str]:
    """Attach each assistant tool call to the first later result with its id.

    `entries` must be in input order. A result entry is attached
    to at most one call. Returns the identifiers of the consumed results.
    """
    results_by_call_id: dict[str, list[tuple[int, ProcessedEntry]]] = {}
    for position, entry in enumerate(entries):
        # Results without an identifier cannot be tracked as consumed.
        if entry.is_tool_result and entry.tool_result_id and entry.uuid:
            results_by_call_id.setdefault(entry.tool_result_id, []).append((position, entry))

    consumed: set[str] = set()
    unmatched = 0
    for position, entry in enumerate(entries):
        if entry.role != "assistant":
            continue
        for call in entry.tool_calls:
            if not call.id or call.result is not None:
                continue
            for result_position, candidate in results_by_call_id.get(call.id, ()):
                if result_position <= position or candidate.uuid in consumed:
                    continue
                call.result = candidate
                consumed.add(candidate.uuid)
                break
            else:
                unmatched += 1

    if unmatched:
        logger.debug("{count} tool calls have no matching result", count=unmatched)
    return consumed
