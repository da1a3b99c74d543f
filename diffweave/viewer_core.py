from __future__ import annotations

import json
import re
import subprocess
from pathlib import Path
from typing import Any

from .graph import GraphRow, graph_row_from_dict
from .revisions import Review, review_from_dict, review_to_dict
from .rows import VALID_THREAD_STATUSES, Selection

SELECTION_RE = re.compile(r"^(?P<file>.+):(?P<start>\d+)(?:-(?P<end>\d+))?$")


def resolve_input_path(path: Path, search_roots: list[Path] | None = None) -> Path:
    if path.is_absolute():
        return path
    primary = (Path.cwd() / path).resolve()
    if primary.exists():
        return primary
    for root in search_roots or []:
        candidate = (root / path).resolve()
        if candidate.exists():
            return candidate
    return primary


def load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error
    except json.JSONDecodeError as error:
        raise RuntimeError(f"Invalid JSON: {error}") from error


def load_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error


def run_git(repo: Path, args: list[str]) -> str:
    process = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )
    if process.returncode != 0:
        message = process.stderr.strip() or process.stdout.strip()
        raise RuntimeError(f"git {' '.join(args)} failed: {message}")
    return process.stdout


def git_diff(repo: Path, base: str, head: str, file: str | None = None) -> str:
    args = ["diff", "--no-color", base, head]
    if file:
        args.extend(["--", file])
    return run_git(repo, args)


def validate_review(doc: Any) -> list[str]:
    if not isinstance(doc, dict):
        raise RuntimeError("Review document must be a JSON object")
    for key in ["change_id", "threads"]:
        if key not in doc:
            raise RuntimeError(f"Missing required key: {key}")
    if not isinstance(doc["threads"], list):
        raise RuntimeError("threads must be an array")

    warnings: list[str] = []
    thread_ids = [thread.get("id") for thread in doc["threads"] if isinstance(thread, dict)]
    if len(thread_ids) != len(set(thread_ids)):
        warnings.append("Duplicate thread ids detected.")
    for thread in doc["threads"]:
        if not isinstance(thread, dict):
            warnings.append("Thread entry must be an object.")
            continue
        thread_id = thread.get("id", "?")
        if str(thread.get("status", "open")).lower() not in VALID_THREAD_STATUSES:
            warnings.append(f"Unknown thread status: {thread_id}")
        start = thread.get("line_start")
        end = thread.get("line_end")
        if isinstance(start, int) and isinstance(end, int) and end < start:
            warnings.append(f"Thread line_end before line_start: {thread_id}")

    revisions = doc.get("revisions") or []
    numbers = [item.get("number") for item in revisions if isinstance(item, dict)]
    if numbers != list(range(1, len(numbers) + 1)):
        warnings.append("Revision numbers are not 1..n in order.")
    pending = [item for item in revisions if isinstance(item, dict) and item.get("is_pending")]
    if pending and pending[-1] is not revisions[-1]:
        warnings.append("Only the last revision may be pending.")
    return warnings


def load_review(path: Path) -> tuple[Review, list[str]]:
    doc = load_json(path)
    if isinstance(doc, dict) and isinstance(doc.get("review"), dict):
        doc = doc["review"]
    warnings = validate_review(doc)
    return review_from_dict(doc), warnings


def save_review(path: Path, review: Review) -> None:
    payload: Any = review_to_dict(review)
    doc = load_json(path) if path.exists() else None
    if isinstance(doc, dict) and isinstance(doc.get("review"), dict):
        doc["review"] = payload
        payload = doc
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def load_graph(path: Path) -> tuple[list[GraphRow], dict[str, str]]:
    """Graph rows plus node -> label (a row's "description" or "label" field)."""
    doc = load_json(path)
    if isinstance(doc, dict):
        doc = doc.get("graph")
    if not isinstance(doc, list):
        raise RuntimeError("Graph document must be an array of rows or an object with a graph array")
    rows: list[GraphRow] = []
    labels: dict[str, str] = {}
    for item in doc:
        if not isinstance(item, dict):
            continue
        row = graph_row_from_dict(item)
        rows.append(row)
        label = item.get("description") or item.get("label")
        if label:
            labels[row.node] = str(label).splitlines()[0]
    return rows, labels


def parse_selection(value: str) -> Selection:
    match = SELECTION_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid selection (expected FILE:START[-END]): {value}")
    start = int(match.group("start"))
    end = int(match.group("end") or start)
    return Selection.between(match.group("file"), start, end)
