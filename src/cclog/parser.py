"""Read session JSONL files into raw records."""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from .models import RawRecord

SUMMARY_ENTRY_TYPE = "summary"
SUBAGENTS_DIR_NAME = "subagents"
AGENT_FILE_GLOB = "agent-*.jsonl"


def read_jsonl_file(path: Path) -> list[RawRecord]:
    """Parse one JSONL file, skipping blank, malformed and summary lines."""
    records: list[RawRecord] = []

    with path.open("rb") as handle:
        for line_number, raw in enumerate(handle, start=1):
            try:
                line = raw.decode("utf-8").strip()
            except UnicodeDecodeError as exc:
                logger.warning(
                    "Skipping undecodable line in {file}:{line}: {error}",
                    file=path,
                    line=line_number,
                    error=exc,
                )
                continue
            if not line:
                continue

            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning(
                    "Skipping malformed JSON in {file}:{line}: {error}",
                    file=path,
                    line=line_number,
                    error=exc,
                )
                continue

            if not isinstance(data, dict):
                logger.warning("Skipping non-object line in {file}:{line}", file=path, line=line_number)
                continue

            try:
                record = RawRecord.model_validate(data)
            except ValidationError as exc:
                logger.warning(
                    "Skipping invalid record in {file}:{line}: {error}",
                    file=path,
                    line=line_number,
                    error=exc,
                )
                continue

            if record.type == SUMMARY_ENTRY_TYPE:
                logger.debug("Skipping summary record in {file}:{line}", file=path, line=line_number)
                continue
            records.append(record)

    return records


def subagent_files(main_path: Path) -> list[Path]:
    """Sub-agent logs stored beside a session, in `<stem>/subagents/`."""
    directory = main_path.parent / main_path.stem / SUBAGENTS_DIR_NAME
    if not directory.is_dir():
        return []
    return sorted(directory.glob(AGENT_FILE_GLOB))


def load_subagent_files(main_path: Path) -> list[RawRecord]:
    records: list[RawRecord] = []
    for path in subagent_files(main_path):
        try:
            loaded = read_jsonl_file(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping unreadable subagent file {file}: {error}", file=path, error=exc)
            continue
        logger.debug("Loaded {count} records from subagent file {file}", count=len(loaded), file=path.name)
        records.extend(loaded)
    return records


def read_session_file(path: Path) -> list[RawRecord]:
    """Read a session's main file followed by its sub-agent files."""
    records = read_jsonl_file(path)
    records.extend(load_subagent_files(path))
    return records
