from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from rich.console import Console

from .revisions import Review
from .rows import COMMIT_MESSAGE_FILE, DiffViewState, Row, rows_to_dicts
from .viewer_core import git_diff, load_review, load_text, parse_selection, resolve_input_path
from .viewer_render import render_diff_view, render_view_summary
from .weaver import DiffView, build_commit_message_rows, build_diff_view, partition_threads


def parse_view_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="View a unified diff with collapsed context and review threads.")
    parser.add_argument("path", nargs="?", help="Path to a unified diff file (omit to read from --repo)")
    parser.add_argument("--repo", help="Git repository to diff instead of reading a file")
    parser.add_argument("--base", default="HEAD~1", help="Base revision for --repo (default: HEAD~1)")
    parser.add_argument("--head", default="HEAD", help="Head revision for --repo (default: HEAD)")
    parser.add_argument("--review", help="Path to a review JSON document with threads")
    parser.add_argument("--expand", action="append", default=[], help="Collapsed run id to expand (repeatable)")
    parser.add_argument("--select", help="Line selection as FILE:START[-END] (shows the comment editor)")
    parser.add_argument(
        "--no-expand-anchored",
        dest="expand_anchored",
        action="store_false",
        help="Keep runs collapsed even when they hide a thread anchor",
    )
    parser.add_argument("--message-file", help="Commit message to show as a pseudo-file above the diff")
    parser.add_argument("--base-message-file", help="Earlier commit message to diff --message-file against")
    parser.add_argument("--change-id", default="", help="Change id for the commit message header")
    parser.add_argument("--max-rows", type=int, default=None, help="Show at most this many rows")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Output rows as JSON")
    return parser.parse_args(argv)


def load_diff_input(args: argparse.Namespace) -> str:
    if args.repo:
        return git_diff(Path(args.repo), args.base, args.head)
    if not args.path:
        raise LookupError("Either a diff path or --repo is required.")
    path = resolve_input_path(Path(args.path), search_roots=[Path(__file__).resolve().parents[1]])
    return load_text(path)


def load_message_rows(args: argparse.Namespace, review: Review | None) -> list[Row] | None:
    if not args.message_file:
        return None
    message = load_text(Path(args.message_file))
    base_message = load_text(Path(args.base_message_file)) if args.base_message_file else None
    change_id = args.change_id or (review.change_id if review is not None else "")
    return build_commit_message_rows(change_id, message, base_message)


def view_payload(view: DiffView, warnings: list[str]) -> dict:
    return {
        "warnings": warnings,
        "rows": rows_to_dicts(view.rows),
        "threadRowIndex": view.thread_row_index,
        "navigableIndices": view.navigable_indices,
    }


def run_view(argv: list[str]) -> int:
    args = parse_view_args(argv)
    if args.max_rows is not None and args.max_rows < 1:
        print("[error] --max-rows must be >= 1", file=sys.stderr)
        return 2

    console = Console()
    review: Review | None = None
    warnings: list[str] = []
    try:
        selection = parse_selection(args.select) if args.select else None
    except ValueError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 2

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

    state = DiffViewState(
        expanded_ids=frozenset(args.expand),
        selection=selection,
        expand_anchored=args.expand_anchored,
    )
    view = build_diff_view(diff_text, threads, state, message_rows=message_rows)

    if args.as_json:
        print(json.dumps(view_payload(view, warnings), ensure_ascii=False, indent=2))
        return 0

    render_view_summary(console, view, warnings)
    for warning in warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    render_diff_view(console, view, max_rows=args.max_rows)
    return 0
