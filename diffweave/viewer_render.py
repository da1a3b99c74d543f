from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .graph import GraphRow, SvgLine, compute_graph_elements, pair_with_previous_pads
from .rows import (
    CollapsedRun,
    CommentEditor,
    CommitHeader,
    CommitLine,
    FileHeader,
    HunkHeader,
    Line,
    Row,
    ThreadRow,
)
from .weaver import DiffView

LINE_PREFIX = {"context": " ", "add": "+", "delete": "-"}
DIFF_TAG_PREFIX = {"equal": " ", "insert": "+", "delete": "-"}
LANE_GLYPHS = {"Parent": "│", "Ancestor": "╎", "Blank": " "}


def line_style(kind: str) -> str:
    if kind in {"add", "insert"}:
        return "green"
    if kind == "delete":
        return "red"
    return "white"


def thread_status_style(status: str) -> str:
    return "dim" if status == "resolved" else "yellow"


def _number(value: int | None) -> str:
    return "" if value is None else str(value)


def row_cells(row: Row) -> tuple[str, str, str, Text]:
    """(old, new, kind, content) cells for one row of a diff view."""
    if isinstance(row, FileHeader):
        return "", "", "file", Text(row.path, style="bold blue")
    if isinstance(row, HunkHeader):
        return "", "", "hunk", Text(row.header_text, style="dim")
    if isinstance(row, Line):
        prefix = LINE_PREFIX.get(row.kind, "?")
        return (
            _number(row.old_line_num),
            _number(row.new_line_num),
            row.kind,
            Text(prefix + row.content, style=line_style(row.kind)),
        )
    if isinstance(row, CollapsedRun):
        first = row.hidden_lines[0].new_line_num if row.hidden_lines else None
        last = row.hidden_lines[-1].new_line_num if row.hidden_lines else None
        label = f"··· {len(row.hidden_lines)} unchanged line(s) {_number(first)}-{_number(last)} ···"
        return "", "", "fold", Text(label, style="italic cyan")
    if isinstance(row, ThreadRow):
        thread = row.thread
        head = f"[{thread.id}] {thread.file}:{thread.line_start}-{thread.line_end} ({thread.status})"
        text = Text(head, style=f"bold {thread_status_style(thread.status)}")
        for comment in thread.comments:
            text.append(f"\n  {comment.author}: ", style="bold magenta")
            text.append(comment.text)
        return "", "", "thread", text
    if isinstance(row, CommentEditor):
        return "", "", "editor", Text(f"New comment on lines {row.line_start}-{row.line_end}", style="bold cyan")
    if isinstance(row, CommitHeader):
        return "", "", "commit", Text(f"Commit message ({row.change_id[:8]})", style="bold blue")
    if isinstance(row, CommitLine):
        prefix = DIFF_TAG_PREFIX.get(row.diff_tag or "equal", " ")
        return "", _number(row.line_num), row.diff_tag or "msg", Text(prefix + row.content, style=line_style(row.diff_tag or ""))
    return "", "", "?", Text(repr(row))


def render_diff_view(
    console: Console,
    view: DiffView,
    *,
    title: str = "Diff",
    cursor: int | None = None,
    max_rows: int | None = None,
) -> None:
    table = Table(title=f"{title} ({len(view.rows)} rows)", header_style="bold magenta")
    table.add_column("#", justify="right", style="dim")
    table.add_column("old", justify="right")
    table.add_column("new", justify="right")
    table.add_column("kind", no_wrap=True)
    table.add_column("content", overflow="fold")
    rows = view.rows if max_rows is None else view.rows[:max_rows]
    for index, row in enumerate(rows):
        old, new, kind, content = row_cells(row)
        style = "reverse" if index == cursor else None
        table.add_row(str(index), old, new, kind, content, style=style)
    console.print(table)
    if max_rows is not None and len(view.rows) > max_rows:
        console.print(f"[cyan]... {len(view.rows) - max_rows} more row(s)[/cyan]")


def render_view_summary(console: Console, view: DiffView, warnings: list[str]) -> None:
    files = sum(1 for row in view.rows if isinstance(row, FileHeader))
    folds = [row for row in view.rows if isinstance(row, CollapsedRun)]
    hidden = sum(len(row.hidden_lines) for row in folds)
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Rows", str(len(view.rows)))
    table.add_row("Files", str(files))
    table.add_row("Collapsed", f"{len(folds)} run(s), {hidden} line(s) hidden")
    table.add_row("Threads shown", str(len(view.thread_row_index)))
    table.add_row("Navigable", str(len(view.navigable_indices)))
    table.add_row("Warnings", str(len(warnings)))
    console.print(Panel(table, title="Diff Summary", border_style="blue"))


def lane_text(row: GraphRow) -> Text:
    text = Text()
    for col in row.node_line:
        if col == "Node":
            text.append(row.glyph or "o", style="bold")
        else:
            text.append(LANE_GLYPHS.get(col, " "), style="dim" if col == "Ancestor" else "")
        text.append(" ")
    return text


def render_graph_rows(console: Console, rows: list[GraphRow], labels: dict[str, str] | None = None) -> None:
    labels = labels or {}
    table = Table(title=f"Graph ({len(rows)} rows)", header_style="bold magenta")
    table.add_column("lanes", no_wrap=True)
    table.add_column("node", style="cyan", no_wrap=True)
    table.add_column("lines", justify="right")
    table.add_column("diagonals", justify="right")
    table.add_column("label", overflow="ellipsis")
    for row, prev in pair_with_previous_pads(rows):
        elements = compute_graph_elements(row, prev)
        lines = [element for element in elements if isinstance(element, SvgLine)]
        diagonals = [element for element in lines if element.is_diagonal]
        table.add_row(
            lane_text(row),
            row.node[:8],
            str(len(lines)),
            str(len(diagonals)),
            labels.get(row.node, ""),
        )
    console.print(table)
