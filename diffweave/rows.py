from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Iterable, Union

COMMIT_MESSAGE_FILE = "<commit-message>"
VALID_THREAD_STATUSES = {"open", "resolved"}


def new_thread_id() -> str:
    return uuid.uuid4().hex


def normalize_line_number(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Comment:
    author: str
    text: str
    timestamp: str = ""


@dataclass(frozen=True)
class Thread:
    id: str
    file: str
    line_start: int
    line_end: int
    status: str = "open"
    comments: tuple[Comment, ...] = ()
    created_at_commit: str | None = None
    created_at_revision: int | None = None
    # Display-only, filled in by line_mapper.apply_display_positions.
    display_line_start: int | None = None
    display_line_end: int | None = None
    is_displaced: bool = False
    is_deleted: bool = False

    @property
    def anchor(self) -> tuple[str, int]:
        return self.file, self.line_end

    @property
    def is_open(self) -> bool:
        return self.status == "open"


@dataclass(frozen=True)
class Selection:
    file: str
    start: int
    end: int

    @classmethod
    def between(cls, file: str, first: int, second: int) -> Selection:
        return cls(file=file, start=min(first, second), end=max(first, second))

    def extend_to(self, line_num: int) -> Selection:
        return Selection(self.file, min(self.start, line_num), max(self.end, line_num))


@dataclass(frozen=True)
class DiffViewState:
    """Host-owned snapshot passed into every build call.

    Nothing in the core keeps this between calls; the host replaces the
    snapshot whenever the user expands a run or changes the selection.
    """

    expanded_ids: frozenset[str] = frozenset()
    selection: Selection | None = None
    expand_anchored: bool = True
    # Runs the user folded explicitly; never forced open by expand_anchored.
    collapsed_ids: frozenset[str] = frozenset()

    def with_expanded(self, run_id: str) -> DiffViewState:
        return replace(self, expanded_ids=self.expanded_ids | {run_id}, collapsed_ids=self.collapsed_ids - {run_id})

    def with_collapsed(self, run_id: str) -> DiffViewState:
        return replace(self, expanded_ids=self.expanded_ids - {run_id}, collapsed_ids=self.collapsed_ids | {run_id})

    def with_all_collapsed(self, run_ids: Iterable[str]) -> DiffViewState:
        return replace(self, expanded_ids=frozenset(), collapsed_ids=frozenset(run_ids))

    def with_selection(self, selection: Selection | None) -> DiffViewState:
        return replace(self, selection=selection)


@dataclass(frozen=True)
class FileHeader:
    row_type: ClassVar[str] = "file-header"
    path: str


@dataclass(frozen=True)
class HunkHeader:
    row_type: ClassVar[str] = "hunk-header"
    header_text: str


@dataclass(frozen=True)
class Line:
    row_type: ClassVar[str] = "line"
    file: str
    kind: str
    content: str
    old_line_num: int | None = None
    new_line_num: int | None = None

    @property
    def anchor(self) -> tuple[str, int] | None:
        if self.new_line_num is None:
            return None
        return self.file, self.new_line_num


@dataclass(frozen=True)
class CollapsedRun:
    row_type: ClassVar[str] = "collapsed"
    file: str
    hidden_lines: tuple[Line, ...]
    id: str


@dataclass(frozen=True)
class ThreadRow:
    row_type: ClassVar[str] = "thread"
    thread: Thread


@dataclass(frozen=True)
class CommentEditor:
    row_type: ClassVar[str] = "comment-editor"
    file: str
    line_start: int
    line_end: int


@dataclass(frozen=True)
class CommitHeader:
    row_type: ClassVar[str] = "commit-header"
    change_id: str


@dataclass(frozen=True)
class CommitLine:
    row_type: ClassVar[str] = "commit-line"
    line_num: int | None
    content: str
    diff_tag: str | None = None
    file: str = field(default=COMMIT_MESSAGE_FILE, init=False)

    @property
    def anchor(self) -> tuple[str, int] | None:
        if self.line_num is None:
            return None
        return COMMIT_MESSAGE_FILE, self.line_num


Row = Union[FileHeader, HunkHeader, Line, CollapsedRun, ThreadRow, CommentEditor, CommitHeader, CommitLine]

NAVIGABLE_ROW_TYPES = (Line, ThreadRow, CollapsedRun, CommitLine)


def row_anchor(row: Row) -> tuple[str, int] | None:
    if isinstance(row, (Line, CommitLine)):
        return row.anchor
    return None


def comment_from_dict(raw: dict[str, Any]) -> Comment:
    return Comment(
        author=str(raw.get("author", "")),
        text=str(raw.get("text", "")),
        timestamp=str(raw.get("timestamp", "") or ""),
    )


def thread_from_dict(raw: dict[str, Any]) -> Thread:
    status = str(raw.get("status", "open")).lower()
    if status not in VALID_THREAD_STATUSES:
        status = "open"
    comments = raw.get("comments") or []
    line_start = normalize_line_number(raw.get("line_start")) or 0
    line_end = normalize_line_number(raw.get("line_end"))
    return Thread(
        id=str(raw.get("id", "")),
        file=str(raw.get("file", "")),
        line_start=line_start,
        line_end=line_start if line_end is None else line_end,
        status=status,
        comments=tuple(comment_from_dict(item) for item in comments if isinstance(item, dict)),
        created_at_commit=raw.get("created_at_commit"),
        created_at_revision=normalize_line_number(raw.get("created_at_revision")),
    )


def thread_to_dict(thread: Thread) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": thread.id,
        "file": thread.file,
        "line_start": thread.line_start,
        "line_end": thread.line_end,
        "status": thread.status,
        "comments": [
            {"author": comment.author, "text": comment.text, "timestamp": comment.timestamp}
            for comment in thread.comments
        ],
    }
    if thread.created_at_commit is not None:
        payload["created_at_commit"] = thread.created_at_commit
    if thread.created_at_revision is not None:
        payload["created_at_revision"] = thread.created_at_revision
    if thread.display_line_start is not None or thread.display_line_end is not None:
        payload["display_line_start"] = thread.display_line_start
        payload["display_line_end"] = thread.display_line_end
        payload["is_displaced"] = thread.is_displaced
        payload["is_deleted"] = thread.is_deleted
    return payload


def _line_to_dict(line: Line) -> dict[str, Any]:
    return {
        "file": line.file,
        "kind": line.kind,
        "content": line.content,
        "oldLineNum": line.old_line_num,
        "newLineNum": line.new_line_num,
    }


def row_to_dict(row: Row) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": row.row_type}
    if isinstance(row, FileHeader):
        payload["path"] = row.path
    elif isinstance(row, HunkHeader):
        payload["header"] = row.header_text
    elif isinstance(row, Line):
        payload.update(_line_to_dict(row))
    elif isinstance(row, CollapsedRun):
        payload["id"] = row.id
        payload["file"] = row.file
        payload["hiddenLines"] = [_line_to_dict(line) for line in row.hidden_lines]
    elif isinstance(row, ThreadRow):
        payload["thread"] = thread_to_dict(row.thread)
    elif isinstance(row, CommentEditor):
        payload["file"] = row.file
        payload["lineStart"] = row.line_start
        payload["lineEnd"] = row.line_end
    elif isinstance(row, CommitHeader):
        payload["changeId"] = row.change_id
    elif isinstance(row, CommitLine):
        payload["lineNum"] = row.line_num
        payload["content"] = row.content
        if row.diff_tag is not None:
            payload["diffTag"] = row.diff_tag
    return payload


def rows_to_dicts(rows: Iterable[Row]) -> list[dict[str, Any]]:
    return [row_to_dict(row) for row in rows]
