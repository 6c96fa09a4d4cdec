"""
Field extraction (syllabus markdown -> CandidateSyllabusRecord).

Every field has its own extractor built from an ordered tuple of strategies.
A strategy returns a value or None; the first non-None value wins. The order
encodes how the syllabus pages evolved (most specific / oldest format first)
and must not be shuffled.

When an extractor falls through to its default, a warning tagged
"extraction-ambiguity" is logged and extract_candidate() records the field in
CandidateSyllabusRecord.fallback_fields. Nothing in this module raises:
malformed input degrades to the default value.

Labels are matched in Japanese and English.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any, Callable, List, NamedTuple, Optional, Sequence
from urllib.parse import parse_qs, urlparse

from kosengrade.markdown import (
    clean_cell,
    headings,
    iter_table_rows,
    normalize_label,
    section,
    table_field,
)
from kosengrade.model import CandidateSyllabusRecord, EvaluationItem, RawDocument


logger = logging.getLogger(__name__)

AMBIGUITY_TAG = "extraction-ambiguity"
DEFAULT = "default"


class Extraction(NamedTuple):
    value: Any
    strategy: str


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

UNKNOWN_TITLE = "Unknown"
INSTRUCTOR_PLACEHOLDER = "unspecified"
DEFAULT_CREDITS = 2
DESCRIPTION_MAX_CHARS = 400
TITLE_MAX_CHARS = 80

# Headings that are site chrome or section titles, never a subject name
BOILERPLATE_HEADINGS = {
    "シラバス",
    "公開シラバス",
    "シラバス検索",
    "webシラバス",
    "科目一覧",
    "メニュー",
    "ホーム",
    "ログイン",
    "科目基礎情報",
    "到達目標",
    "ルーブリック",
    "授業計画",
    "評価割合",
    "学科の到達目標項目との関係",
    "教育方法等",
    "モデルコアカリキュラムの学習内容と到達目標",
    "syllabus",
    "public syllabus",
    "web syllabus",
    "menu",
    "home",
    "login",
    "navigation",
    "course information",
    "learning objectives",
    "rubric",
    "course plan",
    "evaluation percentages",
}

TITLE_LABELS = ("授業科目", "授業科目名", "科目名", "Subject", "Subject name", "Course", "Course name", "Course title")
TITLE_URL_PARAMS = ("subject_id", "id")

INSTRUCTOR_LABELS = ("担当教員", "担当者", "担当教官", "教員名", "Instructor", "Instructors", "Lecturer", "Teacher")
_INSTRUCTOR_COLON_RE = re.compile(
    r"(?:担当教員|担当者|担当教官|教員名|Instructors?|Lecturer|Teacher)\s*[:：]\s*([^\n|]+)",
    re.IGNORECASE,
)

_CREDIT_UNIT_PATTERNS = (
    re.compile(r"単位数\s*[:|]?\s*(\d+)"),
    re.compile(r"credit\s*units?\s*[:|]?\s*(\d+)", re.IGNORECASE),
)
_REGISTERED_CREDIT_PATTERNS = (
    re.compile(r"(?:履修単位|学修単位)\s*[:|]?\s*(\d+)"),
    re.compile(r"registered\s+credits?\s*[:|]?\s*(\d+)", re.IGNORECASE),
)
_GENERIC_CREDIT_PATTERNS = (
    re.compile(r"(\d+)\s*単位"),
    re.compile(r"(\d+)\s*credits?\b", re.IGNORECASE),
)

TERM_LABELS = ("開設期", "開講期", "開講時期", "開講学期", "Term", "Semester", "Offering period")
FIRST_HALF = ("前期", "前学期", "first semester", "first half", "spring")
SECOND_HALF = ("後期", "後学期", "second semester", "second half", "fall", "autumn")
FULL_YEAR = ("通年", "full year", "full-year", "year-round")

FORMAT_LABELS = ("授業形態", "授業形式", "Teaching format", "Class type", "Course format", "Format")
EXPERIMENT_KEYWORDS = ("実験", "experiment", "laboratory")
PRACTICAL_KEYWORDS = ("実習", "演習", "ゼミ", "practical", "practice", "seminar", "exercise")

# Longest first so the regex alternation prefers e.g. 定期試験 over 試験
EVALUATION_KEYWORDS = (
    "定期試験",
    "中間試験",
    "期末試験",
    "ポートフォリオ",
    "相互評価",
    "小テスト",
    "平常評価",
    "レポート",
    "平常点",
    "その他",
    "試験",
    "課題",
    "発表",
    "態度",
    "出席",
    "実技",
    "作品",
    "peer evaluation",
    "participation",
    "presentation",
    "examination",
    "assignments",
    "assignment",
    "attendance",
    "portfolio",
    "homework",
    "attitude",
    "quizzes",
    "routine",
    "reports",
    "report",
    "exams",
    "exam",
    "quiz",
    "tests",
    "test",
    "other",
)

EVALUATION_SECTION_LABELS = ("評価割合", "evaluation percentage")
EVALUATION_VALUE_ROW_LABELS = {
    "総合評価割合",
    "overall evaluation percentage",
    "overall evaluation percentages",
    "overall evaluation ratio",
}
EVALUATION_TOTAL_LABELS = {"合計", "計", "total"}
GRADING_POLICY_LABELS = (
    "評価方法および評価基準",
    "評価方法と基準",
    "評価方法",
    "成績評価",
    "grading policy",
    "evaluation method",
    "assessment method",
)
DEFAULT_EVALUATION = (("exam", 80), ("report", 20))
PLAUSIBLE_TOTAL = (98, 102)

_KEYWORD_ALT = "|".join(re.escape(k) for k in EVALUATION_KEYWORDS)
_ANNOTATED_RE = re.compile(
    rf"(?<![A-Za-z])({_KEYWORD_ALT})[^()\n%]{{0,40}}?\(\s*(\d{{1,3}})\s*%\s*\)",
    re.IGNORECASE,
)
_INLINE_RE = re.compile(rf"(?<![A-Za-z])({_KEYWORD_ALT})[^\n%]{{0,20}}?(\d{{1,3}})\s*%", re.IGNORECASE)
_PERCENT_CELL_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*%?$")

DESCRIPTION_LABELS = ("授業の概要", "授業概要", "概要", "Course overview", "Course description", "Overview", "Description")
_DESCRIPTION_LABEL_ALT = "|".join(re.escape(l) for l in DESCRIPTION_LABELS)
_DESCRIPTION_BOLD_RE = re.compile(
    rf"^\s*(?:\*\*|__)\s*(?:{_DESCRIPTION_LABEL_ALT})\s*[:：]?\s*(?:\*\*|__)\s*[:：]?\s*(.*)$",
    re.IGNORECASE,
)
_DESCRIPTION_COLON_RE = re.compile(rf"(?:{_DESCRIPTION_LABEL_ALT})\s*[:：]\s*([^\n]+)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Strategy runner
# ---------------------------------------------------------------------------


def _nfkc(text: str) -> str:
    # full-width digits, colons and percent signs -> ASCII
    return unicodedata.normalize("NFKC", text)


def _run(
    field: str,
    strategies: Sequence[Callable[..., Any]],
    args: tuple,
    default: Any,
    url: Optional[str] = None,
) -> Extraction:
    for strategy in strategies:
        try:
            value = strategy(*args)
        except Exception:
            logger.debug("%s strategy %s raised; skipping", field, strategy.__name__, exc_info=True)
            continue
        if value is not None:
            return Extraction(value, strategy.__name__)

    logger.warning(
        "%s: %s fell back to default %r (low confidence) url=%s",
        AMBIGUITY_TAG,
        field,
        default,
        url or "-",
    )
    return Extraction(default, DEFAULT)


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------


def title_from_heading(text: str, url: Optional[str] = None) -> Optional[str]:
    for level, heading in headings(text):
        if level > 3 or not heading:
            continue
        if heading.lower() in BOILERPLATE_HEADINGS or len(heading) >= TITLE_MAX_CHARS:
            continue
        return heading
    return None


def title_from_table(text: str, url: Optional[str] = None) -> Optional[str]:
    value = table_field(text, TITLE_LABELS)
    if value and len(value) < TITLE_MAX_CHARS:
        return value
    return None


def title_from_url(text: str, url: Optional[str] = None) -> Optional[str]:
    if not url:
        return None
    params = parse_qs(urlparse(url).query)
    for name in TITLE_URL_PARAMS:
        values = params.get(name)
        if values and values[0].strip():
            return values[0].strip()
    return None


TITLE_STRATEGIES = (title_from_heading, title_from_table, title_from_url)


def _extract_title(text: str, url: Optional[str] = None) -> Extraction:
    return _run("title", TITLE_STRATEGIES, (text, url), UNKNOWN_TITLE, url)


def extract_title(text: str, url: Optional[str] = None) -> str:
    return _extract_title(text, url).value


# ---------------------------------------------------------------------------
# Instructor
# ---------------------------------------------------------------------------


def instructor_from_table(text: str) -> Optional[str]:
    value = table_field(text, INSTRUCTOR_LABELS)
    return value or None


def instructor_from_colon(text: str) -> Optional[str]:
    m = _INSTRUCTOR_COLON_RE.search(text)
    if not m:
        return None
    value = clean_cell(m.group(1))
    return value or None


INSTRUCTOR_STRATEGIES = (instructor_from_table, instructor_from_colon)


def _extract_instructor(text: str, url: Optional[str] = None) -> Extraction:
    return _run("instructor", INSTRUCTOR_STRATEGIES, (text,), INSTRUCTOR_PLACEHOLDER, url)


def extract_instructor(text: str) -> str:
    return _extract_instructor(text).value


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------


def _first_credit(text: str, patterns: Sequence[re.Pattern]) -> Optional[int]:
    text = _nfkc(text)
    for pattern in patterns:
        for m in pattern.finditer(text):
            n = int(m.group(1))
            if 1 <= n <= 10:
                return n
    return None


def credits_from_unit_label(text: str) -> Optional[int]:
    return _first_credit(text, _CREDIT_UNIT_PATTERNS)


def credits_from_registered_label(text: str) -> Optional[int]:
    return _first_credit(text, _REGISTERED_CREDIT_PATTERNS)


def credits_from_generic(text: str) -> Optional[int]:
    return _first_credit(text, _GENERIC_CREDIT_PATTERNS)


CREDIT_STRATEGIES = (credits_from_unit_label, credits_from_registered_label, credits_from_generic)


def _extract_credits(text: str, url: Optional[str] = None) -> Extraction:
    return _run("credits", CREDIT_STRATEGIES, (text,), DEFAULT_CREDITS, url)


def extract_credits(text: str) -> int:
    return _extract_credits(text).value


# ---------------------------------------------------------------------------
# Term
# ---------------------------------------------------------------------------


def _keyword_re(keywords: Sequence[str]) -> re.Pattern:
    # English keywords match whole words only ("fallback" is not "fall")
    parts = [rf"\b{re.escape(k)}\b" if k.isascii() else re.escape(k) for k in keywords]
    return re.compile("|".join(parts), re.IGNORECASE)


_FIRST_HALF_RE = _keyword_re(FIRST_HALF)
_SECOND_HALF_RE = _keyword_re(SECOND_HALF)
_FULL_YEAR_RE = _keyword_re(FULL_YEAR)


def map_term(text: str) -> Optional[str]:
    """
    "both" if both halves (or a full year) are mentioned, "fall" for the
    second half only, "spring" for the first half only, None if neither.
    """
    if _FULL_YEAR_RE.search(text):
        return "both"
    first = _FIRST_HALF_RE.search(text) is not None
    second = _SECOND_HALF_RE.search(text) is not None
    if first and second:
        return "both"
    if second:
        return "fall"
    if first:
        return "spring"
    return None


def term_from_field(text: str) -> Optional[str]:
    value = table_field(text, TERM_LABELS)
    if value is None:
        return None
    return map_term(value) or "spring"


def term_from_document(text: str) -> Optional[str]:
    return map_term(text)


TERM_STRATEGIES = (term_from_field, term_from_document)


def _extract_term(text: str, url: Optional[str] = None) -> Extraction:
    return _run("term", TERM_STRATEGIES, (text,), "spring", url)


def extract_term(text: str) -> str:
    return _extract_term(text).value


# ---------------------------------------------------------------------------
# Class type
# ---------------------------------------------------------------------------


def map_class_type(text: str) -> Optional[str]:
    lowered = text.lower()
    if any(k in lowered for k in EXPERIMENT_KEYWORDS):
        return "experiment"
    if any(k in lowered for k in PRACTICAL_KEYWORDS):
        return "practical"
    return None


def class_type_from_field(text: str, title: str) -> Optional[str]:
    value = table_field(text, FORMAT_LABELS)
    if value is None:
        return None
    return map_class_type(value) or "lecture"


def class_type_from_title(text: str, title: str) -> Optional[str]:
    return map_class_type(title or "")


CLASS_TYPE_STRATEGIES = (class_type_from_field, class_type_from_title)


def _extract_class_type(text: str, title: Optional[str] = None, url: Optional[str] = None) -> Extraction:
    if title is None:
        title = extract_title(text, url)
    return _run("class_type", CLASS_TYPE_STRATEGIES, (text, title), "lecture", url)


def extract_class_type(text: str, title: Optional[str] = None) -> str:
    return _extract_class_type(text, title).value


# ---------------------------------------------------------------------------
# Evaluation breakdown
# ---------------------------------------------------------------------------


def _parse_percentage(cell: str) -> Optional[float]:
    m = _PERCENT_CELL_RE.match(_nfkc(cell).strip())
    if not m:
        return None
    value = float(m.group(1))
    return int(value) if value.is_integer() else value


def _has_category(cell: str) -> bool:
    lowered = cell.lower()
    return any(k in lowered for k in EVALUATION_KEYWORDS)


def _pair_columns(header: List[str], values: List[str]) -> List[EvaluationItem]:
    items: List[EvaluationItem] = []
    # column 0 is the row label column
    for col in range(1, min(len(header), len(values))):
        name = header[col].strip()
        if not name or normalize_label(name) in EVALUATION_TOTAL_LABELS:
            continue
        value = _parse_percentage(values[col])
        if value is None or value <= 0:
            continue
        items.append(EvaluationItem(name=name, percentage=value))
    return items


def _evaluation_from_rows(rows: List[List[str]]) -> Optional[List[EvaluationItem]]:
    for vi, row in enumerate(rows):
        if not row or normalize_label(row[0]) not in EVALUATION_VALUE_ROW_LABELS:
            continue
        header = None
        for candidate in reversed(rows[:vi]):
            if any(_has_category(c) for c in candidate[1:]):
                header = candidate
                break
        if header is None:
            continue
        items = _pair_columns(header, row)
        if items and all(i.percentage <= 100 for i in items):
            return items
    return None


def evaluation_from_table(text: str) -> Optional[List[EvaluationItem]]:
    """
    "評価割合" table: the header row names the categories, the
    "総合評価割合" row carries the percentages in the same columns.
    """
    scope = section(text, EVALUATION_SECTION_LABELS)
    if scope is not None:
        found = _evaluation_from_rows(list(iter_table_rows(scope)))
        if found:
            return found
    return _evaluation_from_rows(list(iter_table_rows(text)))


def _plausible(found: dict) -> Optional[List[EvaluationItem]]:
    if not found:
        return None
    s = sum(found.values())
    if not PLAUSIBLE_TOTAL[0] <= s <= PLAUSIBLE_TOTAL[1]:
        return None
    return [EvaluationItem(name=name, percentage=pct) for name, pct in found.items()]


def _collect(pattern: re.Pattern, text: str) -> dict:
    found: dict = {}
    seen: set = set()
    for m in pattern.finditer(text):
        name = m.group(1)
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        found[name] = int(m.group(2))
    return found


def evaluation_from_grading_notes(text: str) -> Optional[List[EvaluationItem]]:
    """
    Free-text grading policy such as "定期試験(70%)、レポート(30%)で評価する".
    """
    scope = section(text, GRADING_POLICY_LABELS) or table_field(text, GRADING_POLICY_LABELS)
    if not scope:
        return None
    return _plausible(_collect(_ANNOTATED_RE, _nfkc(scope)))


def evaluation_from_inline(text: str) -> Optional[List[EvaluationItem]]:
    """
    Anywhere in the page: "試験 70%", "report: 30%".
    """
    return _plausible(_collect(_INLINE_RE, _nfkc(text)))


EVALUATION_STRATEGIES = (evaluation_from_table, evaluation_from_grading_notes, evaluation_from_inline)


def default_evaluation() -> List[EvaluationItem]:
    return [EvaluationItem(name=n, percentage=p) for n, p in DEFAULT_EVALUATION]


def _extract_evaluation(text: str, url: Optional[str] = None) -> Extraction:
    return _run("evaluation_criteria", EVALUATION_STRATEGIES, (text,), default_evaluation(), url)


def extract_evaluation(text: str) -> List[EvaluationItem]:
    return _extract_evaluation(text).value


# ---------------------------------------------------------------------------
# Description
# ---------------------------------------------------------------------------


def description_from_bold_label(text: str) -> Optional[str]:
    lines = text.splitlines()
    for i, line in enumerate(lines):
        m = _DESCRIPTION_BOLD_RE.match(line)
        if not m:
            continue
        parts = [m.group(1).strip()] if m.group(1).strip() else []
        for nxt in lines[i + 1 :]:
            stripped = nxt.strip()
            if not stripped:
                if parts:
                    break
                continue
            if stripped.startswith(("#", "|")) or _DESCRIPTION_BOLD_RE.match(nxt) or stripped.startswith(("**", "__")):
                break
            parts.append(stripped)
        body = clean_cell(" ".join(parts))
        if body:
            return body
    return None


def description_from_table(text: str) -> Optional[str]:
    return table_field(text, DESCRIPTION_LABELS) or None


def description_from_colon(text: str) -> Optional[str]:
    m = _DESCRIPTION_COLON_RE.search(text)
    if not m:
        return None
    return clean_cell(m.group(1)) or None


DESCRIPTION_STRATEGIES = (description_from_bold_label, description_from_table, description_from_colon)


def extract_description(text: str) -> Optional[str]:
    """
    Overview paragraph, at most 400 characters. A missing overview is normal.
    """
    for strategy in DESCRIPTION_STRATEGIES:
        try:
            value = strategy(text)
        except Exception:
            logger.debug("description strategy %s raised; skipping", strategy.__name__, exc_info=True)
            continue
        if value:
            return value[:DESCRIPTION_MAX_CHARS]
    return None


# ---------------------------------------------------------------------------
# Whole record
# ---------------------------------------------------------------------------


def extract_candidate(document: RawDocument) -> CandidateSyllabusRecord:
    """
    Run every field extractor over one document.
    """
    text = document.content or ""
    url = document.url

    title = _extract_title(text, url)
    fields = {
        "subject_name": title,
        "instructor": _extract_instructor(text, url),
        "credits": _extract_credits(text, url),
        "term": _extract_term(text, url),
        "class_type": _extract_class_type(text, title.value, url),
        "evaluation_criteria": _extract_evaluation(text, url),
    }

    candidate = CandidateSyllabusRecord(
        description=extract_description(text),
        source_url=url,
        **{name: extraction.value for name, extraction in fields.items()},
    )
    candidate.fallback_fields = [name for name, extraction in fields.items() if extraction.strategy == DEFAULT]
    return candidate
