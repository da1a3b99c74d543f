from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from .revisions import Review, iso_utc_now
from .rows import COMMIT_MESSAGE_FILE, Comment, DiffViewState, Row, Thread, new_thread_id
from .viewer_cli import load_diff_input, load_message_rows
from .viewer_core import load_review, parse_selection
from .viewer_render import render_diff_view, render_view_summary
from .weaver import DiffView, build_diff_view, foldable_run_ids, partition_threads


def parse_app_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive diff viewer with inline review threads.")
    parser.add_argument("path", nargs="?", help="Path to a unified diff file (omit to read from --repo)")
    parser.add_argument("--repo", help="Git repository to diff instead of reading a file")
    parser.add_argument("--base", default="HEAD~1", help="Base revision for --repo (default: HEAD~1)")
    parser.add_argument("--head", default="HEAD", help="Head revision for --repo (default: HEAD)")
    parser.add_argument("--review", help="Path to a review JSON document with threads")
    parser.add_argument("--message-file", help="Commit message to show as a pseudo-file above the diff")
    parser.add_argument("--base-message-file", help="Earlier commit message to diff --message-file against")
    parser.add_argument("--change-id", default="", help="Change id for the commit message header")
    parser.add_argument("--author", default="user", help="Author name for new comments (default: user)")
    parser.add_argument("--page-size", type=int, default=40, help="Rows per page in prompt/once mode (default: 40).")
    parser.add_argument("--once", action="store_true", help="Print summary and first page only, then exit.")
    parser.add_argument(
        "--ui",
        choices=["textual", "prompt"],
        default="textual",
        help="Viewer mode (default: textual).",
    )
    return parser.parse_args(argv)


def render_rows_page(console: Console, view: DiffView, page: int, page_size: int) -> None:
    total = len(view.rows)
    if total == 0:
        console.print("[yellow]Diff is empty.[/yellow]")
        return
    max_page = (total - 1) // page_size + 1
    page = max(1, min(page, max_page))
    start = (page - 1) * page_size
    end = min(start + page_size, total)
    page_view = DiffView(rows=view.rows[start:end])
    render_diff_view(console, page_view, title=f"Rows {start}-{end - 1}")
    console.print(f"[cyan]Page {page}/{max_page}[/cyan]  showing {start + 1}-{end} of {total}")


def render_command_help(console: Console) -> None:
    table = Table(title="Commands", header_style="bold magenta")
    table.add_column("command", style="cyan", no_wrap=True)
    table.add_column("description")
    table.add_row("list [page]", "Show a page of rows")
    table.add_row("expand <run-id>", "Expand one collapsed run")
    table.add_row("collapse [run-id]", "Collapse one run, or every run without an id")
    table.add_row("select <file>:<start>[-<end>]", "Select lines and open the comment editor row")
    table.add_row("clear", "Clear the selection")
    table.add_row("comment <text>", "Add a thread on the selection")
    table.add_row("resolve <thread-id>", "Toggle a thread between open and resolved")
    table.add_row("help", "Show this help")
    table.add_row("quit", "Exit")
    console.print(table)


def run_prompt_app(
    console: Console,
    diff_text: str,
    threads: list[Thread],
    warnings: list[str],
    message_rows: list[Row] | None,
    page_size: int,
    author: str,
) -> int:
    state = DiffViewState()
    page = 1

    def current_view() -> DiffView:
        return build_diff_view(diff_text, threads, state, message_rows=message_rows)

    view = current_view()
    render_view_summary(console, view, warnings)
    for warning in warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    render_rows_page(console, view, page=page, page_size=page_size)
    render_command_help(console)

    while True:
        command_line = Prompt.ask("[bold green]diffweave>[/bold green]").strip()
        if not command_line:
            continue
        parts = command_line.split(maxsplit=1)
        command = parts[0].lower()
        value = parts[1].strip() if len(parts) > 1 else ""

        if command in {"quit", "exit"}:
            return 0
        if command == "help":
            render_command_help(console)
            continue
        if command == "list":
            if value:
                try:
                    page = int(value)
                except ValueError:
                    console.print(f"[red]Invalid page: {value}[/red]")
                    continue
            render_rows_page(console, current_view(), page=page, page_size=page_size)
            continue
        if command == "expand":
            if not value:
                console.print("[red]Usage: expand <run-id>[/red]")
                continue
            state = state.with_expanded(value)
        elif command == "collapse":
            if value:
                state = state.with_collapsed(value)
            else:
                state = state.with_all_collapsed(foldable_run_ids(diff_text))
        elif command == "select":
            try:
                state = state.with_selection(parse_selection(value))
            except ValueError as error:
                console.print(f"[red]{error}[/red]")
                continue
        elif command == "clear":
            state = state.with_selection(None)
        elif command == "comment":
            selection = state.selection
            if selection is None or not value:
                console.print("[red]Usage: select <file>:<start>[-<end>] then comment <text>[/red]")
                continue
            threads.append(
                Thread(
                    id=new_thread_id(),
                    file=selection.file,
                    line_start=selection.start,
                    line_end=selection.end,
                    comments=(Comment(author=author, text=value, timestamp=iso_utc_now()),),
                )
            )
            state = state.with_selection(None)
        elif command == "resolve":
            matches = [index for index, thread in enumerate(threads) if thread.id.startswith(value)] if value else []
            if len(matches) != 1:
                console.print(f"[red]Thread not found: {value}[/red]")
                continue
            target = threads[matches[0]]
            threads[matches[0]] = replace(target, status="resolved" if target.is_open else "open")
        else:
            console.print(f"[red]Unknown command: {command}[/red]")
            render_command_help(console)
            continue
        render_rows_page(console, current_view(), page=page, page_size=page_size)


def run_textual_app(
    diff_text: str,
    threads: list[Thread],
    warnings: list[str],
    message_rows: list[Row] | None,
    source_label: str,
    author: str,
) -> int:
    try:
        from .viewer_textual import launch_textual_viewer
    except Exception as error:  # noqa: BLE001
        print(
            f"[error] textual UI is unavailable: {error}. Install dependencies: python -m pip install -e .",
            file=sys.stderr,
        )
        return 1
    return launch_textual_viewer(diff_text, threads, warnings, message_rows, source_label, author=author)


def run_app(argv: list[str]) -> int:
    args = parse_app_args(argv)
    if args.page_size < 1:
        print("[error] --page-size must be >= 1", file=sys.stderr)
        return 2

    console = Console()
    review: Review | None = None
    warnings: list[str] = []
    try:
        diff_text = load_diff_input(args)
        if args.review:
            review, warnings = load_review(Path(args.review))
        message_rows = load_message_rows(args, review)
    except LookupError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 2
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    threads = list(review.threads) if review is not None else []
    if message_rows is None:
        threads, message_threads = partition_threads(threads)
        if message_threads:
            warnings.append(f"{len(message_threads)} thread(s) on {COMMIT_MESSAGE_FILE} hidden (no --message-file).")

    if args.once:
        view = build_diff_view(diff_text, threads, DiffViewState(), message_rows=message_rows)
        render_view_summary(console, view, warnings)
        for warning in warnings:
            console.print(f"[yellow]warning:[/yellow] {warning}")
        render_rows_page(console, view, page=1, page_size=args.page_size)
        return 0

    if args.ui == "prompt":
        return run_prompt_app(console, diff_text, threads, warnings, message_rows, args.page_size, args.author)
    source_label = args.path or f"{args.repo} {args.base}..{args.head}"
    return run_textual_app(diff_text, threads, warnings, message_rows, source_label, args.author)
