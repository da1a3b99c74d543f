from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from .rows import Thread

logger = logging.getLogger(__name__)

DiffFetcher = Callable[[str, str, str], str]
"""fetch_diff(file, from_commit, to_commit) -> unified diff text for that file."""


@dataclass
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MappedPosition:
    line_start: int | None
    line_end: int | None
    is_deleted: bool = False


def _parse_range(value: str) -> tuple[int, int] | None:
    start, _, count = value.partition(",")
    try:
        return int(start), int(count) if count else 1
    except ValueError:
        return None


def parse_hunk_header(line: str) -> Hunk | None:
    parts = line.split()
    if len(parts) < 4:
        return None
    old_range = _parse_range(parts[1].lstrip("-"))
    new_range = _parse_range(parts[2].lstrip("+"))
    if old_range is None or new_range is None:
        return None
    return Hunk(old_start=old_range[0], old_count=old_range[1], new_start=new_range[0], new_count=new_range[1])


def parse_file_hunks(diff_text: str, target_file: str) -> list[Hunk]:
    """Hunks for one file of a (possibly multi-file) git diff."""
    hunks: list[Hunk] = []
    in_target = False
    current: Hunk | None = None

    for line in diff_text.splitlines():
        if line.startswith("diff --git"):
            if current is not None and in_target:
                hunks.append(current)
            current = None
            in_target = line.endswith(f" b/{target_file}")
            continue
        if line.startswith("@@") and in_target:
            if current is not None:
                hunks.append(current)
            current = parse_hunk_header(line)
            continue
        if current is None or not in_target:
            continue
        if line.startswith("+"):
            current.lines.append("add")
        elif line.startswith("-"):
            current.lines.append("delete")
        elif line.startswith(" ") or line == "":
            current.lines.append("context")

    if current is not None and in_target:
        hunks.append(current)
    return hunks


def map_line(old_line: int, hunks: list[Hunk]) -> int | None:
    """New-side line number for `old_line`, or None when the line was deleted."""
    offset = 0
    for hunk in hunks:
        if old_line < hunk.old_start:
            return old_line + offset
        if old_line < hunk.old_start + hunk.old_count:
            old_pos = hunk.old_start
            new_pos = hunk.new_start
            for kind in hunk.lines:
                if kind == "context":
                    if old_pos == old_line:
                        return new_pos
                    old_pos += 1
                    new_pos += 1
                elif kind == "delete":
                    if old_pos == old_line:
                        return None
                    old_pos += 1
                else:
                    new_pos += 1
            return None
        offset += hunk.new_count - hunk.old_count
    return old_line + offset


def _unchanged(thread: Thread) -> MappedPosition:
    return MappedPosition(line_start=thread.line_start, line_end=thread.line_end)


def map_all_threads(
    threads: Iterable[Thread],
    target_commit: str,
    fetch_diff: DiffFetcher,
) -> dict[str, MappedPosition]:
    results: dict[str, MappedPosition] = {}
    groups: dict[tuple[str, str], list[Thread]] = {}

    for thread in threads:
        commit = thread.created_at_commit
        if not commit or commit == target_commit:
            results[thread.id] = _unchanged(thread)
            continue
        groups.setdefault((thread.file, commit), []).append(thread)

    for (file, from_commit), group in groups.items():
        try:
            diff_text = fetch_diff(file, from_commit, target_commit)
        except RuntimeError as error:
            logger.warning("Failed to get diff for %s from %s to %s: %s", file, from_commit, target_commit, error)
            for thread in group:
                results[thread.id] = MappedPosition(None, None, is_deleted=True)
            continue

        if not diff_text.strip():
            for thread in group:
                results[thread.id] = _unchanged(thread)
            continue

        hunks = parse_file_hunks(diff_text, file)
        if not hunks and "deleted file" in diff_text:
            for thread in group:
                results[thread.id] = MappedPosition(None, None, is_deleted=True)
            continue

        for thread in group:
            start = map_line(thread.line_start, hunks)
            end = map_line(thread.line_end, hunks)
            results[thread.id] = MappedPosition(start, end, is_deleted=start is None or end is None)

    return results


def apply_display_positions(threads: Iterable[Thread], mapped: dict[str, MappedPosition]) -> list[Thread]:
    updated: list[Thread] = []
    for thread in threads:
        position = mapped.get(thread.id)
        if position is None:
            updated.append(thread)
            continue
        updated.append(
            replace(
                thread,
                display_line_start=position.line_start,
                display_line_end=position.line_end,
                is_deleted=position.is_deleted,
                is_displaced=position.line_start != thread.line_start or position.line_end != thread.line_end,
            )
        )
    return updated
