"""Reconstruct a session's entry forest from raw records."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from loguru import logger

from .commands import link_command_outputs
from .flags import flag_missing_results
from .matching import match_tool_results
from .models import ProcessedEntry, RawRecord
from .sidechain import SidechainIndex, SidechainReconciler, attach_sidechains
from .tokens import calculate_tokens
from .transform import transform_record


@dataclass
class ProcessingContext:
    """State shared by the reconstruction passes for one batch of records.

    Each pass owns the fields it writes:

    - transform: `entries`, `entries_by_id`
    - matching: `consumed_results`, plus `ToolCall.result`
    - sidechains: `index`, `claimed`, plus `ToolCall.task_entries` and
      `ProcessedEntry.children`
    - forest: `roots` and `ProcessedEntry.depth`

    Token totals, missing-data flags and command output are written on the
    entries themselves by the final passes.
    """

    entries: list[ProcessedEntry] = field(default_factory=list)
    entries_by_id: dict[str, ProcessedEntry] = field(default_factory=dict)
    consumed_results: set[str] = field(default_factory=set)
    index: SidechainIndex | None = None
    claimed: set[int] = field(default_factory=set)
    roots: list[ProcessedEntry] = field(default_factory=list)


def build_context(records: Iterable[RawRecord]) -> ProcessingContext:
    """Transform every record and index the results by identifier."""
    context = ProcessingContext()
    for record in records:
        entry = transform_record(record)
        context.entries.append(entry)
        if not entry.uuid:
            continue
        if entry.uuid in context.entries_by_id:
            logger.debug("Duplicate entry id {uuid}; keeping the first occurrence", uuid=entry.uuid)
            continue
        context.entries_by_id[entry.uuid] = entry
    return context


def select_root_entries(context: ProcessingContext) -> list[ProcessedEntry]:
    """Entries that are neither consumed results nor owned by a sidechain."""
    roots: list[ProcessedEntry] = []
    for entry in context.entries:
        if id(entry) in context.claimed:
            continue
        if entry.is_tool_result and entry.uuid in context.consumed_results:
            continue
        roots.append(entry)
    return roots


def assign_depths(roots: Sequence[ProcessedEntry]) -> None:
    """Set nesting depth: task entries sit one level below their owner.

    `children` links are not followed; every linked entry is also a task
    entry or an attached result, and takes its depth from there.
    """
    seen: set[int] = set()
    stack: list[tuple[ProcessedEntry, int]] = [(entry, 0) for entry in reversed(roots)]
    while stack:
        entry, depth = stack.pop()
        if id(entry) in seen:
            continue
        seen.add(id(entry))
        entry.depth = depth

        nested: list[tuple[ProcessedEntry, int]] = []
        for call in entry.tool_calls:
            if call.result is not None:
                nested.append((call.result, depth))
            nested.extend((task_entry, depth + 1) for task_entry in call.task_entries)
        stack.extend(reversed(nested))


def reconstruct(
    records: Iterable[RawRecord],
    *,
    reconciler: SidechainReconciler | None = None,
) -> ProcessingContext:
    """Run every pass and return the populated context."""
    context = build_context(records)
    context.consumed_results = match_tool_results(context.entries)
    context.index = SidechainIndex.build(context.entries_by_id, context.consumed_results)
    context.claimed = attach_sidechains(context.entries, context.index, reconciler)
    context.roots = select_root_entries(context)

    assign_depths(context.roots)
    calculate_tokens(context.roots)
    flag_missing_results(context.roots)
    merged = link_command_outputs(context.roots)

    logger.debug(
        "Reconstructed {roots} top-level entries from {total} records "
        "({consumed} results attached, {claimed} sidechain entries, {merged} command outputs)",
        roots=len(context.roots),
        total=len(context.entries),
        consumed=len(context.consumed_results),
        claimed=len(context.claimed),
        merged=merged,
    )
    return context


def process_entries(records: Iterable[RawRecord]) -> list[ProcessedEntry]:
    """Return the ordered top-level forest for a batch of raw records."""
    return reconstruct(records).roots
