"""Small text helpers shared by the processing passes and reports."""

from __future__ import annotations


def extract_xml_content(text: str, tag: str) -> str:
    """Return the text between the first `<tag>` and the following `</tag>`."""
    start_tag = f"<{tag}>"
    end_tag = f"</{tag}>"

    start = text.find(start_tag)
    if start == -1:
        return ""
    start += len(start_tag)

    end = text.find(end_tag, start)
    if end == -1:
        return ""
    return text[start:end]


def normalize_text(text: str) -> str:
    """Collapse newlines and whitespace runs so texts compare by words."""
    return " ".join(text.split())


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."
