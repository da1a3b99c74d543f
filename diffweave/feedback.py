from __future__ import annotations

from typing import Callable

from .line_mapper import MappedPosition, parse_hunk_header
from .revisions import Review

SKIPPED_HEADER_PREFIXES = ("diff --git", "index ", "--- ", "+++ ")


def extract_nearby_hunks(diff_text: str, line_start: int, line_end: int, padding: int = 5) -> str:
    """Diff lines whose new-side position falls within the padded range.

    Deleted lines are kept when they directly follow an included line.
    """
    target_start = max(0, line_start - padding)
    target_end = line_end + padding

    numbered: list[tuple[str, int | None]] = []
    new_pos = 0
    for line in diff_text.splitlines():
        if line.startswith(SKIPPED_HEADER_PREFIXES):
            continue
        if line.startswith("@@"):
            hunk = parse_hunk_header(line)
            if hunk is not None:
                new_pos = hunk.new_start
            numbered.append((line, new_pos))
        elif line.startswith("-"):
            numbered.append((line, None))
        else:
            numbered.append((line, new_pos))
            new_pos += 1

    out: list[str] = []
    last_included = False
    for text, new_line in numbered:
        if text.startswith("@@"):
            hunk = parse_hunk_header(text)
            if hunk is not None and hunk.new_start <= target_end and hunk.new_start + hunk.new_count >= target_start:
                out.append(text)
            last_included = False
            continue
        include = last_included if new_line is None else target_start <= new_line <= target_end
        if include:
            out.append(text)
        last_included = include
    return "".join(f"{text}\n" for text in out)


def excerpt_lines(file_text: str, line_start: int, line_end: int, padding: int = 3) -> str:
    """Numbered source lines around a range, with the range marked by ">"."""
    lines = file_text.splitlines()
    first = max(1, line_start - padding)
    last = min(len(lines), line_end + padding)
    out = []
    for number in range(first, last + 1):
        marker = ">" if line_start <= number <= line_end else " "
        out.append(f"{marker} {number:4} | {lines[number - 1]}\n")
    return "".join(out)


def _short(value: str | None, size: int) -> str:
    return (value or "unknown")[:size]


def format_pending_feedback(
    review: Review,
    mapped: dict[str, MappedPosition],
    diff_for_file: Callable[[str], str],
    current_commit: str | None = None,
    file_text: Callable[[str], str | None] | None = None,
) -> str:
    """Markdown digest of a review's open threads at their current positions.

    `diff_for_file(file)` returns the change's diff for one file; it is
    called at most once per file. When the diff has nothing near a thread,
    `file_text(file)` (if given) supplies the current file so the digest
    can quote the commented lines instead.
    """
    open_threads = review.open_threads
    if not open_threads:
        return ""

    diff_cache: dict[str, str] = {}
    parts = [f"## Change: {review.change_id[:8]}\n\n"]
    for thread in open_threads:
        position = mapped.get(thread.id)
        display_start = thread.line_start
        display_end = thread.line_end
        is_deleted = False
        if position is not None:
            display_start = position.line_start if position.line_start is not None else thread.line_start
            display_end = position.line_end if position.line_end is not None else thread.line_end
            is_deleted = position.is_deleted

        parts.append(f"### Thread {thread.id[:8]} - {thread.file}\n")
        parts.append(
            f"**Originally:** lines {thread.line_start}-{thread.line_end} "
            f"in {_short(thread.created_at_commit, 12)}\n"
        )
        now = "lines deleted (nearest: {}-{} in {})" if is_deleted else "lines {}-{} in {}"
        parts.append("**Now:** " + now.format(display_start, display_end, _short(current_commit, 12)) + "\n\n")

        if not is_deleted:
            if thread.file not in diff_cache:
                diff_cache[thread.file] = diff_for_file(thread.file)
            nearby = extract_nearby_hunks(diff_cache[thread.file], display_start, display_end)
            if nearby:
                parts.append(f"```diff\n{nearby}```\n\n")
            elif file_text is not None:
                content = file_text(thread.file)
                excerpt = excerpt_lines(content, display_start, display_end) if content else ""
                if excerpt:
                    parts.append(f"```\n{excerpt}```\n\n")

        parts.append("**Comments:**\n")
        for comment in thread.comments:
            parts.append(f"- **{comment.author.capitalize()}**: {comment.text}\n")
        parts.append("\n")
    return "".join(parts)
