"""
Small helpers for reading the markdown Firecrawl returns for syllabus pages.

Syllabus pages are mostly pipe tables with key/value cells, e.g.

    | 授業形態 | 講義 | 単位の種別と単位数 | 履修単位: 2 |

Cells may still contain inline HTML (<br>, <span>) and markdown emphasis,
which clean_cell() strips.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup


_HEADING_RE = re.compile(r"^\s*(#{1,6})\s+(.*?)\s*#*\s*$")
_BOLD_LINE_RE = re.compile(r"^\s*(?:\*\*|__)(.+?)(?:\*\*|__)\s*[:：]?\s*$")
_SEPARATOR_CELL_RE = re.compile(r"^:?-{2,}:?$")
_LINK_RE = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|`)")
_ESCAPE_RE = re.compile(r"\\([\\`*_{}\[\]()#+\-.!|])")
_SPACE_RE = re.compile(r"\s+")


def clean_cell(text: str) -> str:
    """
    Reduce one cell (or line) to plain text.
    """
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ", strip=True)
    text = _LINK_RE.sub(r"\1", text)
    text = _ESCAPE_RE.sub(r"\1", text)
    text = _EMPHASIS_RE.sub("", text)
    return _SPACE_RE.sub(" ", text).strip()


def normalize_label(text: str) -> str:
    return clean_cell(text).rstrip(":：").strip().lower()


def split_row(line: str) -> Optional[List[str]]:
    """
    Split a pipe-table line into cleaned cells.
    Returns None if the line is not a table row.
    """
    raw = line.strip()
    if not raw.startswith("|"):
        return None
    raw = raw[1:]
    if raw.endswith("|"):
        raw = raw[:-1]
    return [clean_cell(c) for c in raw.split("|")]


def is_separator_row(cells: Sequence[str]) -> bool:
    non_empty = [c.replace(" ", "") for c in cells if c.strip()]
    return bool(non_empty) and all(_SEPARATOR_CELL_RE.match(c) for c in non_empty)


def iter_table_rows(text: str) -> Iterator[List[str]]:
    """
    Yield every table row (separator rows skipped) in document order.
    """
    for line in text.splitlines():
        cells = split_row(line)
        if cells is None or is_separator_row(cells):
            continue
        yield cells


def table_field(text: str, labels: Iterable[str]) -> Optional[str]:
    """
    Value of the first table cell whose label matches one of `labels`.

    The value is the first non-empty cell to the right of the label, so
    trailing empty cells ("| 担当教員 | 山田 太郎 | | |") are tolerated.
    """
    wanted = {normalize_label(l) for l in labels}
    for cells in iter_table_rows(text):
        for i, cell in enumerate(cells):
            if normalize_label(cell) not in wanted:
                continue
            for value in cells[i + 1 :]:
                if value:
                    return value
    return None


def headings(text: str) -> List[Tuple[int, str]]:
    out: List[Tuple[int, str]] = []
    for line in text.splitlines():
        m = _HEADING_RE.match(line)
        if m:
            out.append((len(m.group(1)), clean_cell(m.group(2))))
    return out


def _label_line(line: str) -> Optional[str]:
    m = _HEADING_RE.match(line)
    if m:
        return clean_cell(m.group(2))
    m = _BOLD_LINE_RE.match(line)
    if m:
        return clean_cell(m.group(1))
    return None


def section(text: str, labels: Iterable[str]) -> Optional[str]:
    """
    Body of the first section introduced by a heading or bold label line
    containing one of `labels`, up to the next heading / bold label line.
    """
    wanted = [l.lower() for l in labels]
    lines = text.splitlines()
    for i, line in enumerate(lines):
        title = _label_line(line)
        if title is None or not any(w in title.lower() for w in wanted):
            continue
        body: List[str] = []
        for nxt in lines[i + 1 :]:
            if _label_line(nxt) is not None:
                break
            body.append(nxt)
        return "\n".join(body)
    return None
