"""
Validated syllabus record -> CourseRecord.

Attendance rule (KOSEN):
- experiment courses tolerate 1/10 of the sessions missed (rounded up)
- every other class type tolerates 1/3 (rounded down)
"""

from __future__ import annotations

import math
import uuid
from typing import Optional

from kosengrade.model import CourseRecord, EvaluationCriterion, ValidatedSyllabusRecord


SESSIONS_PER_CREDIT = 15


def absence_ceiling(class_type: str, total_session_count: int) -> int:
    if class_type == "experiment":
        return math.ceil(total_session_count / 10)
    return total_session_count // 3


def assemble_course_record(
    record: ValidatedSyllabusRecord,
    term: str,
    academic_year: int,
    *,
    source_url: Optional[str] = None,
) -> CourseRecord:
    """
    Build a fresh CourseRecord (no grades, no absences) from a validated record.
    """
    if not isinstance(record, ValidatedSyllabusRecord):
        raise TypeError("assemble_course_record() requires a ValidatedSyllabusRecord")

    total_sessions = record.credits * SESSIONS_PER_CREDIT

    criteria = [
        EvaluationCriterion(id=f"eval-{idx}", name=item.name, weight=item.percentage, max_points=100)
        for idx, item in enumerate(record.evaluation_criteria)
    ]

    return CourseRecord(
        id=f"course-{uuid.uuid4().hex}",
        name=record.subject_name,
        instructor=record.instructor,
        credits=record.credits,
        class_type=record.class_type,
        evaluation_criteria=criteria,
        absence_ceiling=absence_ceiling(record.class_type, total_sessions),
        total_session_count=total_sessions,
        term="fall" if term == "fall" else "spring",
        academic_year=academic_year,
        description=record.description,
        source_url=source_url,
    )
