"""
Persistent storage for the imported course pool.

This module manages the file:

    data/processed/course_pool.json

with the schema {"courses": [ ...course record dicts... ]}.

Imported courses land here first; the grade tracking side picks courses
out of the pool. Records are keyed by their `id`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List

from kosengrade.config import COURSE_POOL_PATH
from kosengrade.model import CourseRecord


logger = logging.getLogger(__name__)


def _pool_path(path: str | Path | None) -> Path:
    """
    Custom path if provided (mainly for tests), otherwise the package default.
    """
    return Path(path) if path is not None else COURSE_POOL_PATH


def load_course_records(path: str | Path | None = None) -> List[CourseRecord]:
    """
    Load all course records.

    Returns an empty list if the file does not exist or is invalid.
    Individual broken entries are skipped.
    """
    pool_path = _pool_path(path)

    # First run: nothing imported yet
    if not pool_path.exists():
        return []

    try:
        data = json.loads(pool_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Could not read course pool %s: %s", pool_path, exc)
        return []

    raw = data.get("courses", []) if isinstance(data, dict) else []
    if not isinstance(raw, list):
        return []

    out: List[CourseRecord] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            out.append(CourseRecord.from_dict(entry))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping broken course record in %s: %s", pool_path, exc)
    return out


def _write(records: List[CourseRecord], pool_path: Path) -> None:
    pool_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"courses": [r.to_dict() for r in records]}
    pool_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def save_course_records(records: Iterable[CourseRecord], path: str | Path | None = None) -> None:
    """
    Insert or replace records by id. Existing records keep their position,
    new ones are appended in the given order.
    """
    pool_path = _pool_path(path)
    existing = load_course_records(pool_path)

    index = {r.id: i for i, r in enumerate(existing)}
    for record in records:
        if record.id in index:
            existing[index[record.id]] = record
        else:
            index[record.id] = len(existing)
            existing.append(record)

    _write(existing, pool_path)


def delete_course_record(course_id: str, path: str | Path | None = None) -> bool:
    """
    Remove one record. Returns False if no record had that id.
    """
    pool_path = _pool_path(path)
    existing = load_course_records(pool_path)
    kept = [r for r in existing if r.id != course_id]
    if len(kept) == len(existing):
        return False
    _write(kept, pool_path)
    return True
