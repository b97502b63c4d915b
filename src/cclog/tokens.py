"""Token estimation and aggregation."""

from __future__ import annotations

import math
from collections.abc import Iterable

from .models import ProcessedEntry, walk_entries

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate a token count from text length (0 for empty text)."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


def entry_total_tokens(entry: ProcessedEntry) -> int:
    """Input-side total for one entry; output tokens are reported separately."""
    return entry.input_tokens + entry.cache_read_tokens + entry.cache_creation_tokens


def calculate_tokens(entries: Iterable[ProcessedEntry]) -> None:
    """Set `total_tokens` on every reachable entry.

    Covers attached tool results and nested task entries at any depth.
    Children are totalled on their own and never folded into their parent.
    """
    for entry in walk_entries(entries):
        entry.total_tokens = entry_total_tokens(entry)
