from __future__ import annotations

import re
from typing import Iterable

from .rows import CollapsedRun, FileHeader, HunkHeader, Line, Row

CONTEXT_RADIUS = 3

HUNK_HEADER_RE = re.compile(r"^@@ -(?P<old_start>\d+)(?:,\d+)? \+(?P<new_start>\d+)(?:,\d+)? @@")


def collapsed_run_id(file: str, first_hidden: Line) -> str:
    return f"{file}:{first_hidden.new_line_num}"


def _split_diff_lines(diff_text: str) -> list[str]:
    lines = diff_text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _next_starts_with(lines: list[str], index: int, prefix: str) -> bool:
    return index + 1 < len(lines) and lines[index + 1].startswith(prefix)


def parse_diff_rows(diff_text: str) -> list[Row]:
    """Scan unified-diff text once and emit file, hunk and line rows.

    Never raises: a hunk header that does not parse keeps the previous
    counters and the following lines are still emitted.
    """
    rows: list[Row] = []
    current_file = ""
    old_path: str | None = None
    old_line = 0
    new_line = 0
    in_hunk = False
    git_format = False
    lines = _split_diff_lines(diff_text)

    for index, line in enumerate(lines):
        if line.startswith("diff --git"):
            git_format = True
            in_hunk = False
            old_path = None
            continue
        # Plain `diff -u` output has no `diff --git` line between files, so a
        # `---`/`+++` pair ends the open hunk there.
        if in_hunk and not git_format and line.startswith("--- ") and _next_starts_with(lines, index, "+++ "):
            in_hunk = False
        if not in_hunk and line.startswith("--- "):
            value = line[4:].split("\t")[0].strip()
            old_path = value[2:] if value.startswith("a/") else None
            continue
        if not in_hunk and line.startswith("+++ b/"):
            current_file = line[6:].split("\t")[0]
            rows.append(FileHeader(path=current_file))
            continue
        if not in_hunk and line.startswith("+++ /dev/null") and old_path:
            current_file = old_path
            rows.append(FileHeader(path=current_file))
            continue
        if line.startswith("@@"):
            match = HUNK_HEADER_RE.match(line)
            if match:
                old_line = int(match.group("old_start"))
                new_line = int(match.group("new_start"))
            rows.append(HunkHeader(header_text=line))
            in_hunk = True
            continue
        if not in_hunk:
            continue

        if line.startswith("+"):
            rows.append(Line(file=current_file, kind="add", content=line[1:], new_line_num=new_line))
            new_line += 1
        elif line.startswith("-"):
            rows.append(Line(file=current_file, kind="delete", content=line[1:], old_line_num=old_line))
            old_line += 1
        elif line.startswith(" ") or line == "":
            rows.append(
                Line(
                    file=current_file,
                    kind="context",
                    content=line[1:],
                    old_line_num=old_line,
                    new_line_num=new_line,
                )
            )
            old_line += 1
            new_line += 1
        # "\ No newline at end of file" and other markers do not occupy a line.

    return rows


def _fold_run(run: list[Line], expanded: frozenset[str], radius: int) -> list[Row]:
    if len(run) <= 2 * radius + 1:
        return list(run)
    hidden = run[radius : len(run) - radius]
    run_id = collapsed_run_id(run[0].file, hidden[0])
    if run_id in expanded:
        return list(run)
    return [
        *run[:radius],
        CollapsedRun(file=run[0].file, hidden_lines=tuple(hidden), id=run_id),
        *run[len(run) - radius :],
    ]


def collapse_context(
    rows: list[Row],
    expanded_ids: Iterable[str] = (),
    *,
    radius: int = CONTEXT_RADIUS,
) -> list[Row]:
    expanded = frozenset(expanded_ids)
    result: list[Row] = []
    run: list[Line] = []

    for row in rows:
        if isinstance(row, Line) and row.kind == "context":
            if run and run[-1].file != row.file:
                result.extend(_fold_run(run, expanded, radius))
                run = []
            run.append(row)
            continue
        if run:
            result.extend(_fold_run(run, expanded, radius))
            run = []
        result.append(row)

    if run:
        result.extend(_fold_run(run, expanded, radius))
    return result


def decompose_diff(
    diff_text: str,
    expanded_ids: Iterable[str] = (),
    *,
    radius: int = CONTEXT_RADIUS,
) -> list[Row]:
    return collapse_context(parse_diff_rows(diff_text), expanded_ids, radius=radius)


def collapsed_run_ids(rows: Iterable[Row]) -> list[str]:
    return [row.id for row in rows if isinstance(row, CollapsedRun)]
