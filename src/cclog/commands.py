"""Local command detection and command-output linking."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from .models import ProcessedEntry
from .text import extract_xml_content

COMMAND_NAME_TAG = "command-name"
COMMAND_ARGS_TAG = "command-args"
COMMAND_STDOUT_TAG = "local-command-stdout"


def apply_command_info(entry: ProcessedEntry) -> None:
    """Mark entries whose content invokes a local command."""
    if f"<{COMMAND_NAME_TAG}>" not in entry.content:
        return
    entry.is_command_message = True
    entry.command_name = extract_xml_content(entry.content, COMMAND_NAME_TAG).strip()
    entry.command_args = extract_xml_content(entry.content, COMMAND_ARGS_TAG).strip()


def is_command_with_stdout(current: ProcessedEntry, nxt: ProcessedEntry) -> bool:
    return (
        current.is_command_message
        and nxt.role == "user"
        and f"<{COMMAND_STDOUT_TAG}>" in nxt.content
    )


def link_command_outputs(entries: Sequence[ProcessedEntry]) -> int:
    """Fold captured stdout into the preceding command entry.

    The stdout entry stays in place with empty content so lookups by
    identifier still find it. Returns the number of merged pairs.
    """
    merged = 0
    for current, nxt in zip(entries, entries[1:]):
        if not is_command_with_stdout(current, nxt):
            continue
        current.command_output = extract_xml_content(nxt.content, COMMAND_STDOUT_TAG)
        nxt.content = ""
        nxt.is_merged_output = True
        merged += 1
        logger.debug(
            "Linked stdout of {next_uuid} into command {command} ({uuid})",
            next_uuid=nxt.uuid,
            command=current.command_name or "<unnamed>",
            uuid=current.uuid,
        )
    return merged
