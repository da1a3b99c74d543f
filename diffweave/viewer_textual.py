from __future__ import annotations

from dataclasses import replace

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Static

from .revisions import iso_utc_now
from .rows import (
    CollapsedRun,
    Comment,
    DiffViewState,
    Row,
    Selection,
    Thread,
    ThreadRow,
    new_thread_id,
    row_anchor,
)
from .viewer_render import row_cells
from .weaver import (
    HALF_PAGE,
    DiffView,
    build_diff_view,
    first_navigable,
    foldable_run_ids,
    last_navigable,
    step_cursor,
)


class CommentModal(ModalScreen[str | None]):
    CSS = """
    CommentModal {
        align: center middle;
    }
    #dialog {
        width: 70%;
        max-width: 90;
        border: round #8338ec;
        padding: 1 2;
        background: #0b0f19;
    }
    #buttons {
        height: auto;
        layout: horizontal;
        align: right middle;
        padding-top: 1;
    }
    """

    def __init__(self, title: str, placeholder: str = "Write a comment...") -> None:
        super().__init__()
        self.dialog_title = title
        self.placeholder = placeholder

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static(f"[b]{self.dialog_title}[/b]")
            yield Input(placeholder=self.placeholder, id="comment_input")
            with Horizontal(id="buttons"):
                yield Button("Cancel", id="cancel")
                yield Button("OK", id="ok", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#comment_input", Input).focus()

    def _submit(self) -> None:
        stripped = self.query_one("#comment_input", Input).value.strip()
        self.dismiss(stripped if stripped else None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
            return
        self._submit()


class DiffweaveTextualApp(App[None]):
    CSS = """
    Screen { layout: vertical; }
    #topbar { height: 3; border: round #3a86ff; padding: 0 1; }
    #rows { height: 1fr; }
    #status { height: 3; border: round #8338ec; padding: 0 1; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("j", "next_row", "Down"),
        Binding("k", "prev_row", "Up"),
        Binding("g", "first_row", "Top"),
        Binding("G", "last_row", "Bottom"),
        Binding("ctrl+d", "half_page_down", "Half Down"),
        Binding("ctrl+u", "half_page_up", "Half Up"),
        Binding("v", "extend_selection", "Extend"),
        Binding("m", "comment", "Comment"),
        Binding("x", "toggle_thread_status", "Resolve/Reopen"),
        Binding("z", "collapse_all", "Collapse All"),
        Binding("escape", "clear_selection", "Clear Selection"),
    ]

    def __init__(
        self,
        diff_text: str,
        threads: list[Thread] | None = None,
        *,
        warnings: list[str] | None = None,
        message_rows: list[Row] | None = None,
        source_label: str = "",
        author: str = "user",
        expand_anchored: bool = True,
    ) -> None:
        super().__init__()
        self.diff_text = diff_text
        self.threads: list[Thread] = list(threads or [])
        self.warnings = list(warnings or [])
        self.message_rows = message_rows
        self.source_label = source_label
        self.author = author
        self.state = DiffViewState(expand_anchored=expand_anchored)
        self.view = DiffView(rows=[])
        self.cursor = 0

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("", id="topbar")
        yield DataTable(id="rows", cursor_type="row")
        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#rows", DataTable)
        table.add_columns("old", "new", "kind", "content")
        self._rebuild()
        self.cursor = first_navigable(self.view.navigable_indices, 0)
        self._move_cursor(self.cursor)
        table.focus()
        if self.warnings:
            self.notify(f"{len(self.warnings)} warning(s): {self.warnings[0]}", severity="warning", timeout=4)

    def _rebuild(self) -> None:
        self.view = build_diff_view(self.diff_text, self.threads, self.state, message_rows=self.message_rows)
        table = self.query_one("#rows", DataTable)
        table.clear()
        for index, row in enumerate(self.view.rows):
            table.add_row(*row_cells(row), key=str(index))
        if self.view.rows:
            self._move_cursor(min(self.cursor, len(self.view.rows) - 1))
        self._update_bars()

    def _move_cursor(self, index: int) -> None:
        self.cursor = index
        table = self.query_one("#rows", DataTable)
        if table.row_count:
            table.move_cursor(row=index)
        self._update_bars()

    def _update_bars(self) -> None:
        open_count = sum(1 for thread in self.threads if thread.is_open)
        top = (
            f"[b]{self.source_label or 'diff'}[/b]  rows={len(self.view.rows)}  "
            f"threads={len(self.threads)} (open {open_count})  expanded={len(self.state.expanded_ids)}"
        )
        self.query_one("#topbar", Static).update(top)
        selection = self.state.selection
        if selection is None:
            status = "enter: expand run / select line   v: extend   m: comment   x: resolve   z: collapse all"
        else:
            status = f"selection {selection.file}:{selection.start}-{selection.end}   m: comment   escape: clear"
        self.query_one("#status", Static).update(status)

    def current_row(self) -> Row | None:
        if 0 <= self.cursor < len(self.view.rows):
            return self.view.rows[self.cursor]
        return None

    def _set_state(self, state: DiffViewState) -> None:
        self.state = state
        self._rebuild()

    def action_next_row(self) -> None:
        self._move_cursor(step_cursor(self.view.navigable_indices, self.cursor, 1))

    def action_prev_row(self) -> None:
        self._move_cursor(step_cursor(self.view.navigable_indices, self.cursor, -1))

    def action_half_page_down(self) -> None:
        self._move_cursor(step_cursor(self.view.navigable_indices, self.cursor, HALF_PAGE))

    def action_half_page_up(self) -> None:
        self._move_cursor(step_cursor(self.view.navigable_indices, self.cursor, -HALF_PAGE))

    def action_first_row(self) -> None:
        self._move_cursor(first_navigable(self.view.navigable_indices, self.cursor))

    def action_last_row(self) -> None:
        self._move_cursor(last_navigable(self.view.navigable_indices, self.cursor))

    def action_activate(self) -> None:
        row = self.current_row()
        if isinstance(row, CollapsedRun):
            self._set_state(self.state.with_expanded(row.id))
            return
        anchor = row_anchor(row) if row is not None else None
        if anchor is None:
            return
        file, line_num = anchor
        self._set_state(self.state.with_selection(Selection.between(file, line_num, line_num)))

    def action_extend_selection(self) -> None:
        selection = self.state.selection
        row = self.current_row()
        anchor = row_anchor(row) if row is not None else None
        if selection is None or anchor is None:
            return
        file, line_num = anchor
        if file != selection.file:
            self.notify("Selection cannot span files.", severity="warning", timeout=2)
            return
        self._set_state(self.state.with_selection(selection.extend_to(line_num)))

    def action_clear_selection(self) -> None:
        if self.state.selection is not None:
            self._set_state(self.state.with_selection(None))

    def action_collapse_all(self) -> None:
        self._set_state(self.state.with_all_collapsed(foldable_run_ids(self.diff_text)))

    def action_toggle_thread_status(self) -> None:
        row = self.current_row()
        if not isinstance(row, ThreadRow):
            return
        target = row.thread
        status = "resolved" if target.is_open else "open"
        self.threads = [replace(thread, status=status) if thread.id == target.id else thread for thread in self.threads]
        self._rebuild()
        self.notify(f"Thread {target.id[:8]} {status}", timeout=1.6)

    def action_comment(self) -> None:
        selection = self.state.selection
        row = self.current_row()
        if selection is None and isinstance(row, ThreadRow):
            thread_id = row.thread.id

            def _on_reply(result: str | None) -> None:
                if result is not None:
                    self.add_reply(thread_id, result)

            self.push_screen(CommentModal(f"Reply to {thread_id[:8]}"), _on_reply)
            return
        if selection is None:
            self.notify("Select a line first (enter).", severity="warning", timeout=2)
            return

        def _on_comment(result: str | None) -> None:
            if result is not None:
                self.add_thread(selection, result)

        title = f"Comment on {selection.file}:{selection.start}-{selection.end}"
        self.push_screen(CommentModal(title), _on_comment)

    def add_thread(self, selection: Selection, text: str) -> Thread:
        thread = Thread(
            id=new_thread_id(),
            file=selection.file,
            line_start=selection.start,
            line_end=selection.end,
            comments=(Comment(author=self.author, text=text, timestamp=iso_utc_now()),),
        )
        self.threads.append(thread)
        self._set_state(self.state.with_selection(None))
        return thread

    def add_reply(self, thread_id: str, text: str) -> None:
        comment = Comment(author=self.author, text=text, timestamp=iso_utc_now())
        self.threads = [
            replace(thread, comments=(*thread.comments, comment)) if thread.id == thread_id else thread
            for thread in self.threads
        ]
        self._rebuild()

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table.id == "rows":
            self.cursor = event.cursor_row

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.data_table.id != "rows":
            return
        self.cursor = event.cursor_row
        self.action_activate()


def launch_textual_viewer(
    diff_text: str,
    threads: list[Thread],
    warnings: list[str],
    message_rows: list[Row] | None,
    source_label: str,
    *,
    author: str = "user",
    expand_anchored: bool = True,
) -> int:
    app = DiffweaveTextualApp(
        diff_text,
        threads,
        warnings=warnings,
        message_rows=message_rows,
        source_label=source_label,
        author=author,
        expand_anchored=expand_anchored,
    )
    app.run()
    return 0
