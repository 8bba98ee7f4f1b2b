"""Document paths for the curation pipeline."""

from __future__ import annotations

JOBS_COLLECTION = "refreshJobs"


def user_path(uid: str) -> str:
    return f"users/{uid}"


def summary_path(uid: str) -> str:
    return f"users/{uid}/memory/summary"


def receipts_collection(uid: str) -> str:
    return f"users/{uid}/receipts"


def receipt_path(uid: str, entry_id: str) -> str:
    return f"{receipts_collection(uid)}/{entry_id}"


def job_id(uid: str, count: int) -> str:
    return f"{uid}:{count}"


def job_path(job: str) -> str:
    return f"{JOBS_COLLECTION}/{job}"


def is_valid_segment(value: str) -> bool:
    """A single path segment: non-empty, no separators."""
    return bool(value) and "/" not in value and value not in (".", "..")
