"""
Grade and attendance arithmetic for one course record.

KOSEN rule: a course is failed outright once absences reach the ceiling
computed at import time (1/3 of sessions, 1/10 for experiments).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from kosengrade.model import CourseRecord


# Final exam share used for the prediction helpers
FINAL_EXAM_WEIGHT = 0.4
# At or below this many remaining absences the course is flagged
ABSENCE_WARNING_MARGIN = 2


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class GradeStatus:
    value: int
    status: str  # "safe" | "risk" | "fail"
    absence_warning: bool
    remaining: int
    predicted_final: int = 0
    needs_to_pass: int = 0


def subject_grade(record: CourseRecord) -> int:
    """
    Weighted score on a 0-100 scale.

    Each criterion contributes (average points / max points * 100) * weight / 100.
    Criteria without grades contribute nothing, so the value grows as grades
    are entered. 0 when no grade exists at all.
    """
    weighted = 0.0
    graded_weight = 0.0

    for criterion in record.evaluation_criteria:
        points = [g.points for g in record.grades if g.criterion_id == criterion.id]
        if not points or not criterion.max_points:
            continue
        average = sum(points) / len(points)
        weighted += (average / criterion.max_points * 100) * (criterion.weight / 100)
        graded_weight += criterion.weight

    if graded_weight == 0:
        return 0
    return _round_half_up(weighted)


def predict_final_grade(current: int, final_exam_weight: float = FINAL_EXAM_WEIGHT) -> int:
    """Best case: full marks on the final exam."""
    if current <= 0:
        return 0
    return _round_half_up(current * (1 - final_exam_weight) + final_exam_weight * 100)


def points_needed_to_pass(record: CourseRecord, final_exam_weight: float = FINAL_EXAM_WEIGHT) -> int:
    current = subject_grade(record)
    if current == 0 or current >= record.passing_grade:
        return 0
    needed = (record.passing_grade - current * (1 - final_exam_weight)) / final_exam_weight
    # round first so float noise (90.00000000000001) does not add a point
    return int(math.ceil(round(max(0.0, needed), 9)))


def absence_limit(record: CourseRecord) -> int:
    return record.absence_ceiling


def remaining_absences(record: CourseRecord) -> int:
    return absence_limit(record) - record.absences


def is_absence_failed(record: CourseRecord) -> bool:
    return record.absences >= absence_limit(record)


def grade_status(record: CourseRecord) -> GradeStatus:
    value = subject_grade(record)
    remaining = remaining_absences(record)

    if is_absence_failed(record):
        status = "fail"
    elif remaining <= ABSENCE_WARNING_MARGIN:
        status = "risk"
    elif value >= record.passing_grade:
        status = "safe"
    elif value >= 30:
        status = "risk"
    else:
        status = "fail"

    return GradeStatus(
        value=value,
        status=status,
        absence_warning=remaining <= ABSENCE_WARNING_MARGIN,
        remaining=remaining,
        predicted_final=predict_final_grade(value),
        needs_to_pass=points_needed_to_pass(record),
    )


def attendance_percentage(record: CourseRecord) -> int:
    if record.total_session_count <= 0:
        return 100
    attended = max(0, record.total_session_count - record.absences)
    return _round_half_up(attended / record.total_session_count * 100)
