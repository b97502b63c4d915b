"""Reconcile nested sub-agent conversations ("sidechains").

Parent links inside a sidechain are trusted when they reach every entry of
the agent. When they do not (a parent that was never ingested, links split
across files), the agent's entries are collected by agent id instead and
ordered by timestamp, giving up nesting in exchange for completeness.

`TreeTraversal` and `AgentIdCollection` are the two strategies;
`SidechainReconciler` picks between them. `attach_sidechains` runs the
reconciler for every sidechain root and hands the result to the Task call
that spawned it.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence, Set
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from loguru import logger

from .models import TASK_TOOL_NAME, ProcessedEntry, ToolCall
from .text import normalize_text
from .transform import parse_timestamp


@dataclass(frozen=True, slots=True)
class SidechainIndex:
    """Read-only lookup tables shared by the reconciliation strategies."""

    entries_by_id: Mapping[str, ProcessedEntry]
    children_by_parent: Mapping[str, list[ProcessedEntry]]
    entries_by_agent: Mapping[str, list[ProcessedEntry]]
    consumed_results: Set[str]

    @classmethod
    def build(
        cls,
        entries_by_id: Mapping[str, ProcessedEntry],
        consumed_results: Set[str],
    ) -> SidechainIndex:
        children: dict[str, list[ProcessedEntry]] = {}
        by_agent: dict[str, list[ProcessedEntry]] = {}
        # entries_by_id preserves first-appearance order.
        for entry in entries_by_id.values():
            if not entry.is_sidechain:
                continue
            if entry.parent_uuid:
                children.setdefault(entry.parent_uuid, []).append(entry)
            if entry.agent_id:
                by_agent.setdefault(entry.agent_id, []).append(entry)
        return cls(
            entries_by_id=entries_by_id,
            children_by_parent=children,
            entries_by_agent=by_agent,
            consumed_results=consumed_results,
        )

    def children_of(self, entry: ProcessedEntry) -> list[ProcessedEntry]:
        if not entry.uuid:
            return []
        return self.children_by_parent.get(entry.uuid, [])

    def agent_entries(self, agent_id: str) -> list[ProcessedEntry]:
        return self.entries_by_agent.get(agent_id, [])

    def is_owned_result(self, entry: ProcessedEntry) -> bool:
        """True for tool-result entries already attached to a tool call."""
        return entry.is_tool_result and entry.uuid in self.consumed_results


@dataclass(slots=True)
class Reconstruction:
    """The outcome of one strategy for one sidechain root."""

    strategy: str
    entries: list[ProcessedEntry]
    visited: list[ProcessedEntry]
    links: list[tuple[ProcessedEntry, list[ProcessedEntry]]] = field(default_factory=list)

    def commit_links(self) -> None:
        """Write the discovered parent/child topology onto the entries."""
        for parent, children in self.links:
            parent.children = list(children)


class SidechainStrategy(Protocol):
    name: str

    def reconstruct(self, root: ProcessedEntry, index: SidechainIndex) -> Reconstruction: ...


class TreeTraversal:
    """Depth-first walk over sidechain parent links starting at the root.

    Owned tool results are left out of the output, but their children are
    still walked so the tree is never cut short.
    """

    name = "tree"

    def reconstruct(self, root: ProcessedEntry, index: SidechainIndex) -> Reconstruction:
        entries: list[ProcessedEntry] = []
        visited: list[ProcessedEntry] = [root]
        seen: set[int] = {id(root)}
        links: list[tuple[ProcessedEntry, list[ProcessedEntry]]] = []

        stack: list[tuple[ProcessedEntry, bool]] = [(root, False)]
        while stack:
            entry, skip = stack.pop()
            if not skip:
                entries.append(entry)

            children = [child for child in index.children_of(entry) if id(child) not in seen]
            if not children:
                continue
            for child in children:
                seen.add(id(child))
                visited.append(child)
            links.append((entry, children))
            for child in reversed(children):
                stack.append((child, index.is_owned_result(child)))

        return Reconstruction(strategy=self.name, entries=entries, visited=visited, links=links)


class AgentIdCollection:
    """Flat, timestamp-ordered collection of every entry sharing the root's agent id."""

    name = "agent-id"

    def reconstruct(self, root: ProcessedEntry, index: SidechainIndex) -> Reconstruction:
        members = index.agent_entries(root.agent_id)
        collected: list[ProcessedEntry] = []
        seen: set[str] = set()
        for entry in members:
            if index.is_owned_result(entry) or entry.uuid in seen:
                continue
            seen.add(entry.uuid)
            collected.append(entry)

        # Stable sort: equal timestamps keep first-appearance order.
        collected.sort(key=lambda item: item.raw_timestamp)
        return Reconstruction(strategy=self.name, entries=collected, visited=list(members))


class SidechainReconciler:
    """Choose between structural traversal and agent-id collection."""

    def __init__(
        self,
        primary: SidechainStrategy | None = None,
        fallback: SidechainStrategy | None = None,
    ) -> None:
        self.primary = primary or TreeTraversal()
        self.fallback = fallback or AgentIdCollection()

    def reconcile(self, root: ProcessedEntry, index: SidechainIndex) -> Reconstruction:
        traversal = self.primary.reconstruct(root, index)
        if not root.agent_id:
            return traversal

        expected = len(index.agent_entries(root.agent_id))
        # Both sides count owned results, so skipping them never forces a fallback.
        reached = sum(1 for entry in traversal.visited if entry.agent_id == root.agent_id)
        if reached >= expected:
            return traversal

        logger.debug(
            "Sidechain {agent} traversal reached {reached}/{expected} entries from {root}; "
            "collecting by agent id",
            agent=root.agent_id,
            reached=reached,
            expected=expected,
            root=root.uuid,
        )
        return self.fallback.reconstruct(root, index)


def iter_sidechain_tree(root: ProcessedEntry, index: SidechainIndex) -> Iterator[ProcessedEntry]:
    """Yield the root and its sidechain descendants in depth-first pre-order."""
    seen: set[int] = {id(root)}
    stack = [root]
    while stack:
        entry = stack.pop()
        yield entry
        children = [child for child in index.children_of(entry) if id(child) not in seen]
        seen.update(id(child) for child in children)
        stack.extend(reversed(children))


def first_user_message(root: ProcessedEntry, index: SidechainIndex) -> str:
    """Return the first user-authored text of a sidechain, or ""."""
    for entry in iter_sidechain_tree(root, index):
        if entry.role == "user" and not entry.is_tool_result:
            content = entry.content.strip()
            if content:
                return content

    if not root.agent_id:
        return ""
    candidates = [
        entry
        for entry in index.agent_entries(root.agent_id)
        if entry.role == "user" and not entry.is_tool_result
    ]
    return _pick_by_time(candidates, latest=False)


def last_assistant_message(root: ProcessedEntry, index: SidechainIndex) -> str:
    """Return the latest assistant-authored text of a sidechain, or ""."""
    candidates = [
        entry
        for entry in iter_sidechain_tree(root, index)
        if entry.role == "assistant" and not entry.is_tool_result
    ]
    found = _pick_by_time(candidates, latest=True)
    if found or not root.agent_id:
        return found

    candidates = [
        entry
        for entry in index.agent_entries(root.agent_id)
        if entry.role == "assistant" and not entry.is_tool_result
    ]
    return _pick_by_time(candidates, latest=True)


def _pick_by_time(candidates: Sequence[ProcessedEntry], *, latest: bool) -> str:
    """Content of the earliest (or latest) candidate with text and a valid timestamp."""
    chosen_content = ""
    chosen_time: datetime | None = None
    for entry in candidates:
        content = entry.content.strip()
        if not content:
            continue
        moment = parse_timestamp(entry.raw_timestamp)
        if moment is None:
            continue
        if chosen_time is None or (moment > chosen_time if latest else moment < chosen_time):
            chosen_content = content
            chosen_time = moment
    return chosen_content


def find_sidechain_roots(
    entries: Sequence[ProcessedEntry],
    index: SidechainIndex,
) -> list[ProcessedEntry]:
    """Sidechain entries whose parent is empty, dangling, or outside any sidechain."""
    roots: list[ProcessedEntry] = []
    for entry in entries:
        if not entry.is_sidechain:
            continue
        parent = index.entries_by_id.get(entry.parent_uuid) if entry.parent_uuid else None
        if parent is None or not parent.is_sidechain:
            roots.append(entry)
    return roots


def task_prompt(call: ToolCall) -> str:
    if isinstance(call.raw_input, dict):
        prompt = call.raw_input.get("prompt")
        if isinstance(prompt, str):
            return prompt
    return ""


def match_task_call(
    root: ProcessedEntry,
    candidates: Sequence[ToolCall],
    index: SidechainIndex,
) -> ToolCall | None:
    """Find the Task call that spawned the sidechain rooted at `root`.

    Tried in order: the agent id recorded on the call's result, the Task
    prompt against the sidechain's first user message, then the sidechain's
    last assistant message against the call's result text.
    """
    if root.agent_id:
        for call in candidates:
            if call.result is not None and call.result.result_agent_id == root.agent_id:
                return call

    prompt = normalize_text(first_user_message(root, index))
    if prompt:
        for call in candidates:
            if normalize_text(task_prompt(call)) == prompt:
                return call

    answer = normalize_text(last_assistant_message(root, index))
    if answer:
        for call in candidates:
            if call.result is None:
                continue
            result_text = normalize_text(call.result.content)
            if result_text and answer in result_text:
                return call

    return None


def attach_sidechains(
    entries: Sequence[ProcessedEntry],
    index: SidechainIndex,
    reconciler: SidechainReconciler | None = None,
) -> set[int]:
    """Reconcile every sidechain root and attach it to its Task call.

    Returns the ids (``id()``) of every entry now owned by a Task call.
    Roots with no matching Task call are left untouched.
    """
    reconciler = reconciler or SidechainReconciler()
    open_calls = [
        call
        for entry in entries
        for call in entry.tool_calls
        if call.name == TASK_TOOL_NAME and not call.task_entries
    ]

    claimed: set[int] = set()
    for root in find_sidechain_roots(entries, index):
        if id(root) in claimed:
            continue

        call = match_task_call(root, open_calls, index)
        if call is None:
            logger.debug(
                "No Task call found for sidechain root {uuid} (agent {agent}); keeping it top-level",
                uuid=root.uuid,
                agent=root.agent_id or "-",
            )
            continue

        reconstruction = reconciler.reconcile(root, index)
        reconstruction.commit_links()
        call.task_entries = reconstruction.entries
        open_calls.remove(call)
        claimed.update(id(entry) for entry in reconstruction.visited)
        claimed.update(id(entry) for entry in reconstruction.entries)
        logger.debug(
            "Attached {count} sidechain entries to Task call {call_id} via {strategy}",
            count=len(reconstruction.entries),
            call_id=call.id,
            strategy=reconstruction.strategy,
        )

    return claimed
