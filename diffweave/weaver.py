from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Iterable

from .decomposer import CONTEXT_RADIUS, collapsed_run_ids, decompose_diff
from .rows import (
    COMMIT_MESSAGE_FILE,
    NAVIGABLE_ROW_TYPES,
    CollapsedRun,
    CommentEditor,
    CommitHeader,
    CommitLine,
    DiffViewState,
    Row,
    Selection,
    Thread,
    ThreadRow,
    row_anchor,
)

HALF_PAGE = 15


@dataclass(frozen=True)
class DiffView:
    rows: list[Row]
    thread_row_index: dict[str, int] = field(default_factory=dict)
    navigable_indices: list[int] = field(default_factory=list)


def partition_threads(threads: Iterable[Thread]) -> tuple[list[Thread], list[Thread]]:
    file_threads: list[Thread] = []
    message_threads: list[Thread] = []
    for thread in threads:
        if thread.file == COMMIT_MESSAGE_FILE:
            message_threads.append(thread)
        else:
            file_threads.append(thread)
    return file_threads, message_threads


def _threads_by_anchor(threads: Iterable[Thread]) -> dict[tuple[str, int], list[Thread]]:
    lookup: dict[tuple[str, int], list[Thread]] = {}
    for thread in threads:
        lookup.setdefault(thread.anchor, []).append(thread)
    return lookup


def weave_threads(
    base_rows: list[Row],
    threads: Iterable[Thread],
    selection: Selection | None = None,
) -> list[Row]:
    """Splice thread rows and the comment editor after their anchor rows.

    A thread is anchored by (file, line_end) and only rows with a new-side
    line number can be anchors, so threads on purely deleted lines or on
    lines hidden inside a collapsed run are left out of the result.
    """
    pending = _threads_by_anchor(threads)
    editor_key = (selection.file, selection.end) if selection is not None else None
    editor_emitted = False
    result: list[Row] = []

    for row in base_rows:
        result.append(row)
        key = row_anchor(row)
        if key is None:
            continue
        for thread in pending.pop(key, []):
            result.append(ThreadRow(thread=thread))
        if not editor_emitted and key == editor_key:
            result.append(CommentEditor(file=selection.file, line_start=selection.start, line_end=selection.end))
            editor_emitted = True

    return result


def thread_row_index(rows: list[Row]) -> dict[str, int]:
    return {row.thread.id: index for index, row in enumerate(rows) if isinstance(row, ThreadRow)}


def navigable_indices(rows: list[Row]) -> list[int]:
    return [index for index, row in enumerate(rows) if isinstance(row, NAVIGABLE_ROW_TYPES)]


def foldable_run_ids(diff_text: str, *, radius: int = CONTEXT_RADIUS) -> list[str]:
    return collapsed_run_ids(decompose_diff(diff_text, radius=radius))


def anchored_run_ids(
    rows: Iterable[Row],
    threads: Iterable[Thread],
    selection: Selection | None = None,
) -> set[str]:
    anchors = {thread.anchor for thread in threads}
    if selection is not None:
        anchors.add((selection.file, selection.end))
    found: set[str] = set()
    for row in rows:
        if not isinstance(row, CollapsedRun):
            continue
        if any(line.anchor in anchors for line in row.hidden_lines):
            found.add(row.id)
    return found


def message_line_diff(old: str, new: str) -> list[tuple[str, str]]:
    old_lines = old.splitlines()
    new_lines = new.splitlines()
    chunks: list[tuple[str, str]] = []
    matcher = SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            chunks.extend(("equal", text) for text in new_lines[j1:j2])
            continue
        if tag in {"delete", "replace"}:
            chunks.extend(("delete", text) for text in old_lines[i1:i2])
        if tag in {"insert", "replace"}:
            chunks.extend(("insert", text) for text in new_lines[j1:j2])
    return chunks


def build_commit_message_rows(
    change_id: str,
    message: str,
    base_message: str | None = None,
) -> list[Row]:
    rows: list[Row] = [CommitHeader(change_id=change_id)]
    if base_message is None or base_message == message:
        for index, text in enumerate(message.splitlines(), start=1):
            rows.append(CommitLine(line_num=index, content=text))
        return rows

    line_num = 0
    for tag, text in message_line_diff(base_message, message):
        if tag == "delete":
            rows.append(CommitLine(line_num=None, content=text, diff_tag=tag))
            continue
        line_num += 1
        rows.append(CommitLine(line_num=line_num, content=text, diff_tag=tag))
    return rows


def build_diff_view(
    diff_text: str,
    threads: Iterable[Thread],
    state: DiffViewState | None = None,
    *,
    message_rows: list[Row] | None = None,
    radius: int = CONTEXT_RADIUS,
) -> DiffView:
    state = state or DiffViewState()
    thread_list = list(threads)
    expanded = set(state.expanded_ids)
    base_rows = decompose_diff(diff_text, expanded, radius=radius)
    if state.expand_anchored:
        forced = anchored_run_ids(base_rows, thread_list, state.selection) - expanded - state.collapsed_ids
        if forced:
            expanded |= forced
            base_rows = decompose_diff(diff_text, expanded, radius=radius)

    rows = weave_threads([*(message_rows or []), *base_rows], thread_list, state.selection)
    return DiffView(rows=rows, thread_row_index=thread_row_index(rows), navigable_indices=navigable_indices(rows))


def step_cursor(navigable: list[int], current: int, step: int) -> int:
    """Move a row cursor by `step` navigable positions, clamped to the ends."""
    if not navigable:
        return current
    if current in navigable:
        position = navigable.index(current) + step
    elif step >= 0:
        position = bisect_right(navigable, current) + step - 1
    else:
        position = bisect_left(navigable, current) + step
    return navigable[max(0, min(len(navigable) - 1, position))]


def first_navigable(navigable: list[int], current: int = 0) -> int:
    return navigable[0] if navigable else current


def last_navigable(navigable: list[int], current: int = 0) -> int:
    return navigable[-1] if navigable else current
