from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Union

from .rows import Thread, normalize_line_number, thread_from_dict, thread_to_dict

BASE = "base"

RevisionRef = Union[int, str]


def iso_utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Revision:
    number: int
    commit_id: str
    is_pending: bool = False
    description: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Review:
    change_id: str
    base: str = "@-"
    threads: tuple[Thread, ...] = ()
    revisions: tuple[Revision, ...] = ()
    working_commit_id: str | None = None
    created_at: str | None = None

    @property
    def open_threads(self) -> list[Thread]:
        return [thread for thread in self.threads if thread.is_open]


def revision_from_dict(raw: dict[str, Any]) -> Revision:
    description = raw.get("description")
    return Revision(
        number=normalize_line_number(raw.get("number")) or 0,
        commit_id=str(raw.get("commit_id", "")),
        is_pending=bool(raw.get("is_pending", False)),
        description=None if description is None else str(description),
        created_at=raw.get("created_at"),
    )


def revision_to_dict(revision: Revision) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "number": revision.number,
        "commit_id": revision.commit_id,
        "is_pending": revision.is_pending,
    }
    if revision.description is not None:
        payload["description"] = revision.description
    if revision.created_at is not None:
        payload["created_at"] = revision.created_at
    return payload


def review_from_dict(raw: dict[str, Any]) -> Review:
    threads = raw.get("threads") or []
    revisions = raw.get("revisions") or []
    return Review(
        change_id=str(raw.get("change_id", "")),
        base=str(raw.get("base", "@-")),
        threads=tuple(thread_from_dict(item) for item in threads if isinstance(item, dict)),
        revisions=tuple(revision_from_dict(item) for item in revisions if isinstance(item, dict)),
        working_commit_id=raw.get("working_commit_id"),
        created_at=raw.get("created_at"),
    )


def review_to_dict(review: Review) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "change_id": review.change_id,
        "base": review.base,
        "threads": [thread_to_dict(thread) for thread in review.threads],
        "revisions": [revision_to_dict(revision) for revision in review.revisions],
    }
    if review.working_commit_id is not None:
        payload["working_commit_id"] = review.working_commit_id
    if review.created_at is not None:
        payload["created_at"] = review.created_at
    return payload


def has_pending_changes(revisions: tuple[Revision, ...] | list[Revision], working_commit_id: str | None) -> bool:
    recorded = [revision for revision in revisions if not revision.is_pending]
    if not recorded:
        return working_commit_id is not None
    return working_commit_id is not None and recorded[-1].commit_id != working_commit_id


def with_pending_revision(revisions: tuple[Revision, ...] | list[Revision], current_commit_id: str) -> list[Revision]:
    """Append a synthetic pending revision when the working state is unrecorded."""
    result = [revision for revision in revisions if not revision.is_pending]
    if result and result[-1].commit_id == current_commit_id:
        return result
    next_number = result[-1].number + 1 if result else 1
    result.append(Revision(number=next_number, commit_id=current_commit_id, is_pending=True))
    return result


def record_revision(
    revisions: tuple[Revision, ...] | list[Revision],
    commit_id: str,
    description: str | None = None,
    *,
    created_at: str | None = None,
) -> list[Revision]:
    result = [revision for revision in revisions if not revision.is_pending]
    result.append(
        Revision(
            number=len(result) + 1,
            commit_id=commit_id,
            description=description,
            created_at=created_at or iso_utc_now(),
        )
    )
    return result


def _find_revision(revisions: tuple[Revision, ...] | list[Revision], number: int) -> Revision:
    for revision in revisions:
        if revision.number == number:
            return revision
    raise LookupError(f"Revision not found: {number}")


def parse_revision_ref(value: str) -> RevisionRef:
    text = value.strip().lower()
    if text == BASE:
        return BASE
    try:
        return int(text.lstrip("r"))
    except ValueError as error:
        raise ValueError(f"Invalid revision: {value}") from error


def resolve_comparison(
    revisions: tuple[Revision, ...] | list[Revision],
    from_rev: RevisionRef,
    to_rev: int,
) -> tuple[str | None, str]:
    """Commits for a (from | "base", to) comparison.

    The first element is None for "base", meaning the change's parent.
    """
    target = _find_revision(revisions, to_rev)
    if from_rev == BASE:
        return None, target.commit_id
    if not isinstance(from_rev, int):
        raise ValueError(f"Invalid revision: {from_rev}")
    if from_rev >= to_rev:
        raise ValueError(f"Comparison must go forward: r{from_rev} -> r{to_rev}")
    return _find_revision(revisions, from_rev).commit_id, target.commit_id


def comparison_label(from_rev: RevisionRef, to_rev: int) -> str:
    left = "base" if from_rev == BASE else f"r{from_rev}"
    return f"{left} -> r{to_rev}"
