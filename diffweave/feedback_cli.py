from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .feedback import format_pending_feedback
from .line_mapper import apply_display_positions, map_all_threads
from .revisions import (
    Revision,
    comparison_label,
    has_pending_changes,
    parse_revision_ref,
    record_revision,
    resolve_comparison,
    with_pending_revision,
)
from .viewer_core import git_diff, load_review, resolve_input_path, run_git, save_review

logger = logging.getLogger(__name__)


def parse_feedback_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize open review threads at their current positions.")
    parser.add_argument("review", help="Path to a review JSON document")
    parser.add_argument("--repo", default=".", help="Git repository holding the reviewed commits (default: .)")
    parser.add_argument("--base", default="HEAD~1", help="Parent of the change, for nearby hunks (default: HEAD~1)")
    parser.add_argument("--target", default="HEAD", help="Commit to map thread anchors onto (default: HEAD)")
    parser.add_argument("--revisions", action="store_true", help="List revisions, including an unrecorded one")
    parser.add_argument("--compare", nargs=2, metavar=("FROM", "TO"), help="Resolve a revision pair (base|rN rN)")
    parser.add_argument(
        "--record",
        nargs="?",
        const="",
        metavar="DESCRIPTION",
        help="Record --target as the next revision and save the review",
    )
    parser.add_argument("--json", dest="as_json", action="store_true", help="Output mapped positions as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log diagnostics to stderr")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def render_revisions(console: Console, revisions: list[Revision]) -> None:
    table = Table(title=f"Revisions ({len(revisions)})", header_style="bold magenta")
    table.add_column("rev", justify="right", no_wrap=True)
    table.add_column("commit", style="cyan", no_wrap=True)
    table.add_column("created", no_wrap=True)
    table.add_column("description", overflow="ellipsis")
    for revision in revisions:
        label = f"r{revision.number}" + (" (pending)" if revision.is_pending else "")
        table.add_row(label, revision.commit_id[:12], revision.created_at or "-", revision.description or "")
    console.print(table)


def run_feedback(argv: list[str]) -> int:
    args = parse_feedback_args(argv)
    configure_logging(args.verbose)
    console = Console()
    repo = Path(args.repo)

    path = resolve_input_path(Path(args.review))
    try:
        review, warnings = load_review(path)
        target_commit = run_git(repo, ["rev-parse", args.target]).strip()
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1
    if not args.as_json:
        for warning in warnings:
            console.print(f"[yellow]warning:[/yellow] {warning}", highlight=False)

    if args.record is not None:
        if not has_pending_changes(review.revisions, target_commit):
            console.print(f"Nothing to record: {target_commit[:12]} is already the latest revision.")
            return 0
        revisions = record_revision(review.revisions, target_commit, args.record or None)
        review = replace(review, revisions=tuple(revisions), working_commit_id=target_commit)
        try:
            save_review(path, review)
        except (OSError, RuntimeError) as error:
            print(f"[error] {error}", file=sys.stderr)
            return 1
        console.print(f"[green]Recorded r{revisions[-1].number}[/green] at {target_commit[:12]}")
        return 0

    if args.revisions or args.compare:
        revisions = with_pending_revision(review.revisions, target_commit)
        if args.revisions:
            render_revisions(console, revisions)
            if has_pending_changes(review.revisions, target_commit):
                console.print(f"[yellow]Unrecorded changes at {target_commit[:12]}; save them with --record.[/yellow]")
        if args.compare:
            try:
                from_rev = parse_revision_ref(args.compare[0])
                to_rev = parse_revision_ref(args.compare[1])
                if not isinstance(to_rev, int):
                    raise ValueError(f"Invalid target revision: {args.compare[1]}")
                from_commit, to_commit = resolve_comparison(revisions, from_rev, to_rev)
            except (LookupError, ValueError) as error:
                print(f"[error] {error}", file=sys.stderr)
                return 2
            console.print(f"{comparison_label(from_rev, to_rev)}: {from_commit or args.base} -> {to_commit}")
        return 0

    def fetch_diff(file: str, from_commit: str, to_commit: str) -> str:
        return git_diff(repo, from_commit, to_commit, file)

    def show_file(file: str) -> str | None:
        try:
            return run_git(repo, ["show", f"{target_commit}:{file}"])
        except RuntimeError as error:
            logger.debug("No content for %s at %s: %s", file, target_commit, error)
            return None

    mapped = map_all_threads(review.open_threads, target_commit, fetch_diff)

    if args.as_json:
        payload = {
            thread.id: {
                "line_start": thread.display_line_start,
                "line_end": thread.display_line_end,
                "is_displaced": thread.is_displaced,
                "is_deleted": thread.is_deleted,
            }
            for thread in apply_display_positions(review.open_threads, mapped)
        }
        print(json.dumps({"warnings": warnings, "threads": payload}, ensure_ascii=False, indent=2))
        return 0

    try:
        digest = format_pending_feedback(
            review,
            mapped,
            lambda file: git_diff(repo, args.base, target_commit, file),
            current_commit=target_commit,
            file_text=show_file,
        )
    except RuntimeError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 1
    if not digest:
        console.print("[green]No open threads.[/green]")
        return 0
    print(digest, end="")
    return 0
