"""Normalization and editing helpers for note content and tags."""

import re


def normalize_content(content: str) -> str:
    """Normalize line endings to LF and strip trailing newlines."""
    return content.replace("\r\n", "\n").rstrip("\n")


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim tags and drop empty and case-insensitive duplicates, keeping first spelling."""
    seen: set[str] = set()
    normalized = []
    for raw in tags:
        tag = raw.strip()
        if not tag:
            continue
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        normalized.append(tag)
    return normalized


def parse_tag_list(value: str) -> list[str]:
    """Split a comma-separated tag option into tags."""
    return [t.strip() for t in value.split(",") if t.strip()]


def merge_tags(existing: list[str], to_add: list[str]) -> list[str]:
    """Append tags not already present (case-insensitive)."""
    return normalize_tags([*existing, *to_add])


def remove_tags(existing: list[str], to_remove: list[str]) -> list[str]:
    lowered = {tag.lower() for tag in to_remove}
    return [tag for tag in existing if tag.lower() not in lowered]


# ----------------------------------------------------------------------------
# Line-based content edits (1-indexed line numbers)
# ----------------------------------------------------------------------------


def parse_line_edit(value: str) -> tuple[int, str]:
    """
    Parse a ``LINE:TEXT`` option value.

    Raises:
        ValueError: If the value has no colon or LINE is not an integer
    """
    line, sep, text = value.partition(":")
    if not sep:
        raise ValueError("Invalid line edit format. Use LINE:TEXT")
    try:
        return int(line), text
    except ValueError:
        raise ValueError(f"Invalid line number: {line!r}") from None


def _check_line(lines: list[str], line_num: int) -> int:
    index = line_num - 1
    if index < 0 or index >= len(lines):
        raise ValueError(f"Line {line_num} out of range (1-{len(lines)})")
    return index


def insert_line(content: str, line_num: int, text: str) -> str:
    """Insert ``text`` before ``line_num``; out-of-range numbers clamp to the ends."""
    lines = content.split("\n")
    index = max(0, min(line_num - 1, len(lines)))
    lines.insert(index, text)
    return "\n".join(lines)


def replace_line(content: str, line_num: int, text: str) -> str:
    lines = content.split("\n")
    lines[_check_line(lines, line_num)] = text
    return "\n".join(lines)


def delete_line(content: str, line_num: int) -> str:
    lines = content.split("\n")
    del lines[_check_line(lines, line_num)]
    return "\n".join(lines)


def set_title_line(content: str, title: str) -> str:
    """Replace a leading ``# Heading`` with ``# title``, or prepend one."""
    lines = content.split("\n")
    if re.match(r"^#\s+", lines[0]):
        lines[0] = f"# {title}"
    else:
        lines.insert(0, f"# {title}")
    return "\n".join(lines)
