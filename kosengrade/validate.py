"""
Record validation.

validate_candidate() is the only way to turn untrusted extraction output
into a ValidatedSyllabusRecord. The rules live on the pydantic model; this
module turns pydantic's error list into one message per violated rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import pydantic

from kosengrade.model import CLASS_TYPES, TERMS, CandidateSyllabusRecord, ValidatedSyllabusRecord


@dataclass
class ValidationResult:
    valid: bool
    data: Optional[ValidatedSyllabusRecord] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _messages(err: Dict[str, Any], candidate: CandidateSyllabusRecord) -> List[str]:
    loc = err["loc"][0] if err["loc"] else None

    if err["type"] == "evaluation_total":
        return [err["msg"], err["ctx"]["gap"]]
    if loc == "subject_name":
        return ["Subject name is missing or empty"]
    if loc == "instructor":
        return ["Instructor is missing or empty"]
    if loc == "credits":
        return [f"Credits must be an integer between 1 and 10 (got {candidate.credits!r})"]
    if loc == "term":
        return [f"Term must be one of {', '.join(TERMS)} (got {candidate.term!r})"]
    if loc == "class_type":
        return [f"Class type must be one of {', '.join(CLASS_TYPES)} (got {candidate.class_type!r})"]
    if loc == "evaluation_criteria":
        return ["Evaluation criteria are missing or malformed"]
    return [f"{loc}: {err['msg']}"]


def validate_candidate(candidate: Union[CandidateSyllabusRecord, Mapping[str, Any]]) -> ValidationResult:
    if isinstance(candidate, Mapping):
        candidate = CandidateSyllabusRecord.from_dict(candidate)

    warnings: List[str] = []
    fields = {
        "subject_name": candidate.subject_name,
        "instructor": candidate.instructor,
        "credits": candidate.credits,
        "term": candidate.term,
        "class_type": candidate.class_type,
        "evaluation_criteria": candidate.evaluation_criteria,
        "description": candidate.description,
    }

    try:
        data = ValidatedSyllabusRecord.model_validate(fields, context={"warnings": warnings})
    except pydantic.ValidationError as exc:
        errors: List[str] = []
        for err in exc.errors():
            for message in _messages(err, candidate):
                # one message per field, however many items inside it failed
                if message not in errors:
                    errors.append(message)
        return ValidationResult(valid=False, errors=errors, warnings=warnings)

    return ValidationResult(valid=True, data=data, warnings=warnings)
