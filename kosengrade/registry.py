"""
Institution / department registry.

Maps a KOSEN school (syllabus site `school_id`) to its departments and the
numeric `department_id` used by the public syllabus site:

    https://syllabus.kosen-k.go.jp/Pages/PublicDepartments?school_id=XX

Only schools listed here can be imported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from kosengrade.errors import ConfigurationError


@dataclass(frozen=True)
class Department:
    name: str
    department_id: int
    label: Optional[str] = None
    note: Optional[str] = None
    # "legacy" = old curriculum, "current" = new curriculum, None = both
    era: Optional[str] = None


@dataclass(frozen=True)
class School:
    syllabus_id: str
    name: str
    short_name: str
    departments: List[Department] = field(default_factory=list)
    # students who entered in or before this year belong to legacy departments
    legacy_cutoff_year: Optional[int] = None


SCHOOLS: dict[str, School] = {
    "20": School(
        syllabus_id="20",
        name="長野工業高等専門学校",
        short_name="長野高専",
        legacy_cutoff_year=2021,
        departments=[
            Department("情報エレクトロニクス系", 31, label="情報エレクトロニクス系（IE系）", era="current"),
            Department("機械ロボティクス系", 32, label="機械ロボティクス系（MR系）", era="current"),
            Department("都市デザイン系", 33, label="都市デザイン系（UD系）", era="current"),
            Department("工学科（専門共通）", 34, note="専門科目：全系共通", era="current"),
            Department("工学科（一般科目）", 35, note="一般科目：全系共通", era="current"),
            Department("機械工学科", 11, era="legacy"),
            Department("電気電子工学科", 12, era="legacy"),
            Department("電子制御工学科", 13, era="legacy"),
            Department("電子情報工学科", 14, era="legacy"),
            Department("環境都市工学科", 15, era="legacy"),
            Department("一般科", 16, era="legacy"),
        ],
    ),
}


def get_school(syllabus_id: str) -> School:
    school = SCHOOLS.get(str(syllabus_id).strip())
    if school is None:
        raise ConfigurationError(f"Unknown institution id: {syllabus_id!r}")
    return school


def resolve_department_id(syllabus_id: str, department: str | int) -> int:
    """
    Resolve a department given as numeric id, name or display label.

    A numeric id is accepted only if the school actually has it.
    """
    school = get_school(syllabus_id)
    text = str(department).strip()

    if text.isdigit():
        dep_id = int(text)
        if any(d.department_id == dep_id for d in school.departments):
            return dep_id
    else:
        for d in school.departments:
            if d.name == text or (d.label and d.label == text):
                return d.department_id

    raise ConfigurationError(f"Unknown department {department!r} for {school.short_name} (school_id={syllabus_id})")


def departments_for_year(school: School, entry_year: int) -> List[Department]:
    """
    Departments a student who entered in `entry_year` can belong to.
    """
    if school.legacy_cutoff_year is None:
        return list(school.departments)
    wanted = "legacy" if entry_year <= school.legacy_cutoff_year else "current"
    return [d for d in school.departments if d.era in (wanted, None)]
