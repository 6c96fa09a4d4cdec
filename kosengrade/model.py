"""
Central data model definitions used across the project.

This module defines the canonical structure of every record that flows
through the syllabus pipeline so that:
- extractors, validator, assembler and storage share the same field names
- untrusted extraction output (CandidateSyllabusRecord) is a different type
  from trusted output (ValidatedSyllabusRecord)
- course records can be written to and read back from JSON

EvaluationItem and ValidatedSyllabusRecord are pydantic models: the field
constraints below are the validation rules for an imported syllabus.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Generic, List, Literal, Mapping, Optional, Tuple, TypeVar, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, conint, constr, field_validator
from pydantic_core import PydanticCustomError

from kosengrade.normalize import is_valid, normalize, total


Term = Literal["spring", "fall", "both"]
ClassType = Literal["lecture", "practical", "experiment"]

TERMS = get_args(Term)
CLASS_TYPES = get_args(ClassType)

T = TypeVar("T")


def format_percentage(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


@dataclass
class RawDocument:
    """
    One fetched detail page (markdown) plus the URL it came from.
    """

    url: str
    content: str


class EvaluationItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: constr(strip_whitespace=True, min_length=1)
    percentage: float = Field(ge=0, strict=True)


@dataclass
class CandidateSyllabusRecord:
    """
    Unvalidated extraction output. Every field may be missing.

    evaluation_criteria holds EvaluationItems from the extractors or raw
    mappings from an untrusted source.
    fallback_fields lists the fields whose extractor fell through to its
    default value (low-confidence extraction).
    """

    subject_name: Optional[str] = None
    instructor: Optional[str] = None
    credits: Optional[Any] = None
    term: Optional[str] = None
    class_type: Optional[str] = None
    evaluation_criteria: Optional[Any] = None
    description: Optional[str] = None
    source_url: Optional[str] = None
    fallback_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        if isinstance(self.evaluation_criteria, (list, tuple)):
            out["evaluation_criteria"] = [
                c.model_dump() if isinstance(c, BaseModel) else c for c in self.evaluation_criteria
            ]
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CandidateSyllabusRecord":
        """
        Build a candidate from an untrusted mapping (camelCase or snake_case keys).
        Values are kept as-is; the validator decides what is acceptable.
        """

        def pick(*keys: str) -> Any:
            for k in keys:
                if k in data:
                    return data[k]
            return None

        return cls(
            subject_name=pick("subject_name", "subjectName", "name"),
            instructor=pick("instructor"),
            credits=pick("credits"),
            term=pick("term"),
            class_type=pick("class_type", "classType"),
            evaluation_criteria=pick("evaluation_criteria", "evaluationCriteria"),
            description=pick("description"),
            source_url=pick("source_url", "sourceUrl", "url"),
        )


class ValidatedSyllabusRecord(BaseModel):
    """
    A candidate that passed every validation rule.
    Evaluation percentages sum to exactly 100.

    Build it with model_validate(); pass context={"warnings": [...]} to
    collect the normalization notice.
    """

    model_config = ConfigDict(frozen=True)

    subject_name: constr(strip_whitespace=True, min_length=1)
    instructor: constr(strip_whitespace=True, min_length=1)
    credits: conint(strict=True, ge=1, le=10)
    term: Term
    class_type: ClassType
    evaluation_criteria: Tuple[EvaluationItem, ...] = Field(min_length=1)
    description: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def blank_description_is_none(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str):
            return None
        return v.strip() or None

    @field_validator("evaluation_criteria")
    @classmethod
    def percentages_sum_to_100(
        cls, v: Tuple[EvaluationItem, ...], info: ValidationInfo
    ) -> Tuple[EvaluationItem, ...]:
        s = total(v)
        if not is_valid(v):
            gap = f"Excess: {format_percentage(s - 100)}%" if s > 100 else f"Shortfall: {format_percentage(100 - s)}%"
            raise PydanticCustomError(
                "evaluation_total",
                "Evaluation percentages sum to {total}% (must be 100%)",
                {"total": format_percentage(s), "gap": gap},
            )
        if s == 100:
            return v
        if info.context is not None and "warnings" in info.context:
            info.context["warnings"].append(
                f"Evaluation percentages originally summed to {format_percentage(s)}% and were normalized"
            )
        return tuple(normalize(v))


@dataclass
class EvaluationCriterion:
    id: str
    name: str
    weight: float
    max_points: int = 100


@dataclass
class Grade:
    id: str
    criterion_id: str
    points: float
    date: str


@dataclass
class AbsenceRecord:
    id: str
    date: str
    reason: Optional[str] = None
    approved: bool = False


@dataclass
class CourseRecord:
    """
    Represents one course as stored in the course pool.

    Created once by the assembler; grades and absences are added later by
    the grade tracking side of the application.
    """

    id: str
    name: str
    instructor: str
    credits: int
    class_type: str
    evaluation_criteria: List[EvaluationCriterion]
    absence_ceiling: int
    total_session_count: int
    term: str
    academic_year: int
    course_type: str = "required"
    passing_grade: int = 60
    grades: List[Grade] = field(default_factory=list)
    absences: int = 0
    absence_records: List[AbsenceRecord] = field(default_factory=list)
    description: Optional[str] = None
    source_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CourseRecord":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            instructor=str(data.get("instructor", "")),
            credits=int(data["credits"]),
            class_type=str(data["class_type"]),
            evaluation_criteria=[EvaluationCriterion(**c) for c in data.get("evaluation_criteria", [])],
            absence_ceiling=int(data["absence_ceiling"]),
            total_session_count=int(data["total_session_count"]),
            term=str(data["term"]),
            academic_year=int(data["academic_year"]),
            course_type=str(data.get("course_type", "required")),
            passing_grade=int(data.get("passing_grade", 60)),
            grades=[Grade(**g) for g in data.get("grades", [])],
            absences=int(data.get("absences", 0)),
            absence_records=[AbsenceRecord(**a) for a in data.get("absence_records", [])],
            description=data.get("description"),
            source_url=data.get("source_url"),
        )


@dataclass
class BatchFailure:
    index: int
    error: BaseException
    item: Any


@dataclass
class BatchResult(Generic[T]):
    successful: List[T] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)
    total: int = 0
