"""
Two-stage syllabus import.

    IDLE -> RESOLVING_URLS -> FETCHING_DETAILS -> DONE
    RESOLVING_URLS -> FAILED (unknown department, no detail URLs)
    RESOLVING_URLS -> DONE (served from cache)
    FETCHING_DETAILS -> FAILED (every page failed)

Stage 1 scrapes the department's subject listing page once and keeps the
links that point to individual syllabus pages of the same school/department.

Stage 2 fetches the detail pages in rate-limited chunks and runs each one
through extract -> validate -> assemble. A failing page is reported, never
fatal, unless every page failed.

There is no cancellation: once Stage 2 starts it runs every chunk.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from kosengrade.assemble import assemble_course_record
from kosengrade.batch import ProgressCallback, run_in_chunks
from kosengrade.cache import TTLCache, make_cache_key
from kosengrade.config import (
    CACHE_TTL_SECONDS,
    CHUNK_DELAY_MS,
    CHUNK_SIZE,
    DETAIL_PATH,
    LISTING_PATH,
    MIN_CONTENT_LENGTH,
    SYLLABUS_BASE_URL,
    SYLLABUS_HOST,
)
from kosengrade.errors import (
    AllDetailsFailedError,
    EmptyContentError,
    NoDetailUrlsError,
    SyllabusError,
    ValidationError,
)
from kosengrade.events import EventBus
from kosengrade.extract import extract_candidate
from kosengrade.firecrawl import FirecrawlClient
from kosengrade.model import CourseRecord, RawDocument, ValidatedSyllabusRecord
from kosengrade.registry import resolve_department_id
from kosengrade.validate import validate_candidate


logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = "idle"
    RESOLVING_URLS = "resolving_urls"
    FETCHING_DETAILS = "fetching_details"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------


@dataclass
class FetchRequest:
    """
    One import request. `department` is a department id or a registry name/label.
    """

    institution_id: str
    department: str | int
    grade_level: int
    academic_year: int
    term: str = "spring"


@dataclass
class ListingResolution:
    listing_url: str
    department_id: int
    raw_link_count: int
    urls: List[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "urls": list(self.urls),
            "totalUrls": len(self.urls),
            "listingUrl": self.listing_url,
            "rawLinkCount": self.raw_link_count,
        }


@dataclass
class FailureReport:
    url: str
    reason: str
    errors: List[str] = field(default_factory=list)
    candidate: Any = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"url": self.url, "reason": self.reason}
        if self.errors:
            out["errors"] = list(self.errors)
        if self.candidate is not None:
            out["partial"] = self.candidate.to_dict()
        return out


@dataclass
class DetailOutcome:
    success: bool
    url: str
    record: Optional[CourseRecord] = None
    errors: List[str] = field(default_factory=list)
    partial: Any = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "url": self.url}
        if self.record is not None:
            out["record"] = self.record.to_dict()
        if self.errors:
            out["errors"] = list(self.errors)
        if self.partial is not None:
            out["partialData"] = self.partial.to_dict()
        return out


@dataclass
class PipelineResult:
    state: PipelineState
    listing_url: str
    total_urls: int
    records: List[CourseRecord] = field(default_factory=list)
    failures: List[FailureReport] = field(default_factory=list)
    from_cache: bool = False

    @property
    def success_count(self) -> int:
        return len(self.records)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "listingUrl": self.listing_url,
            "totalUrls": self.total_urls,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "failures": [f.to_dict() for f in self.failures],
            "records": [r.to_dict() for r in self.records],
            "fromCache": self.from_cache,
        }


# ---------------------------------------------------------------------------
# Stage 1: listing page -> detail URLs
# ---------------------------------------------------------------------------


def build_listing_url(institution_id: str, department_id: int, year: int) -> str:
    """
    e.g. https://syllabus.kosen-k.go.jp/Pages/PublicSubjects?school_id=20&department_id=31&year=2025&lang=ja
    """
    query = urlencode({"school_id": institution_id, "department_id": department_id, "year": year, "lang": "ja"})
    return f"{SYLLABUS_BASE_URL}{LISTING_PATH}?{query}"


def filter_detail_urls(links: List[str], institution_id: str, department_id: int) -> List[str]:
    """
    Keep syllabus detail links of the same school/department, force lang=ja,
    drop duplicates (first occurrence wins).

    Detail URLs look like:
        https://syllabus.kosen-k.go.jp/Pages/PublicSyllabus?school_id=20&department_id=31&subject_id=0001&year=2025&lang=ja
    """
    seen: set[str] = set()
    out: List[str] = []

    for link in links:
        if not link:
            continue
        try:
            parsed = urlparse(link.strip())
        except ValueError:
            continue

        if parsed.scheme not in ("http", "https") or parsed.hostname != SYLLABUS_HOST:
            continue
        if not parsed.path.endswith(DETAIL_PATH):
            continue

        params = parse_qs(parsed.query, keep_blank_values=True)
        if not params.get("subject_id"):
            continue
        if params.get("school_id", [None])[0] != str(institution_id):
            continue
        if params.get("department_id", [None])[0] != str(department_id):
            continue

        params["lang"] = ["ja"]
        normalized = urlunparse(parsed._replace(query=urlencode(params, doseq=True), fragment=""))
        if normalized in seen:
            continue
        seen.add(normalized)
        out.append(normalized)

    return out


def _clamp_year(year: int) -> int:
    # syllabi for future years are not published
    return min(int(year), date.today().year)


def resolve_detail_urls(client: FirecrawlClient, request: FetchRequest) -> ListingResolution:
    """
    Stage 1. Raises NoDetailUrlsError when nothing matches.
    """
    department_id = resolve_department_id(request.institution_id, request.department)
    year = _clamp_year(request.academic_year)
    listing_url = build_listing_url(request.institution_id, department_id, year)

    logger.info("Scraping subject listing: %s", listing_url)
    links = client.scrape_links(listing_url)
    logger.info("Total links found: %d", len(links))

    urls = filter_detail_urls(links, request.institution_id, department_id)
    logger.info("Filtered syllabus URLs: %d", len(urls))

    if not urls:
        criteria = (
            f"{SYLLABUS_BASE_URL}{DETAIL_PATH}?school_id={request.institution_id}"
            f"&department_id={department_id}&subject_id=..."
        )
        raise NoDetailUrlsError(listing_url, len(links), criteria)

    return ListingResolution(listing_url=listing_url, department_id=department_id, raw_link_count=len(links), urls=urls)


# ---------------------------------------------------------------------------
# Stage 2: one detail page -> course record
# ---------------------------------------------------------------------------


def fetch_validated_record(client: FirecrawlClient, url: str) -> ValidatedSyllabusRecord:
    """
    Fetch + extract + validate one detail page.
    """
    markdown = client.scrape_markdown(url)
    if len(markdown.strip()) < MIN_CONTENT_LENGTH:
        logger.warning("Empty or JS-only page (%d chars): %s", len(markdown.strip()), url)
        raise EmptyContentError(url, len(markdown.strip()))

    candidate = extract_candidate(RawDocument(url=url, content=markdown))
    if candidate.fallback_fields:
        logger.info("Low-confidence fields for %s: %s", url, ", ".join(candidate.fallback_fields))

    result = validate_candidate(candidate)
    if not result.valid:
        logger.warning("Validation failed for %s: %s", url, "; ".join(result.errors))
        raise ValidationError(url, result.errors, candidate)

    for warning in result.warnings:
        logger.info("%s: %s", url, warning)

    assert result.data is not None
    return result.data


def process_detail_url(client: FirecrawlClient, url: str, term: str, academic_year: int) -> CourseRecord:
    record = fetch_validated_record(client, url)
    return assemble_course_record(record, term, _clamp_year(academic_year), source_url=url)


def detail_outcome(client: FirecrawlClient, url: str, term: str, academic_year: int) -> DetailOutcome:
    """
    Per-page result object; errors are reported, not raised.
    """
    try:
        record = process_detail_url(client, url, term, academic_year)
    except ValidationError as exc:
        return DetailOutcome(success=False, url=url, errors=exc.errors, partial=exc.candidate)
    except SyllabusError as exc:
        return DetailOutcome(success=False, url=url, errors=[str(exc)])
    return DetailOutcome(success=True, url=url, record=record)


def _failure_report(url: str, error: BaseException) -> FailureReport:
    if isinstance(error, ValidationError):
        return FailureReport(url=url, reason="validation failed", errors=error.errors, candidate=error.candidate)
    return FailureReport(url=url, reason=str(error))


# ---------------------------------------------------------------------------
# Whole import
# ---------------------------------------------------------------------------


async def run_pipeline(
    client: FirecrawlClient,
    request: FetchRequest,
    *,
    cache: Optional[TTLCache] = None,
    events: Optional[EventBus] = None,
    chunk_size: int = CHUNK_SIZE,
    delay_ms: float = CHUNK_DELAY_MS,
    on_progress: Optional[ProgressCallback] = None,
    on_state: Optional[Callable[[PipelineState], None]] = None,
    sleep: Callable[[float], Any] = asyncio.sleep,
) -> PipelineResult:
    """
    Run both stages and return the imported course records plus every failure.

    Raises the Stage-1 error, NoDetailUrlsError, or AllDetailsFailedError.
    """
    state = PipelineState.IDLE

    def enter(new_state: PipelineState) -> None:
        nonlocal state
        logger.debug("Pipeline state %s -> %s", state.value, new_state.value)
        state = new_state
        if on_state is not None:
            on_state(new_state)

    enter(PipelineState.RESOLVING_URLS)
    year = _clamp_year(request.academic_year)
    try:
        department_id = resolve_department_id(request.institution_id, request.department)
    except SyllabusError:
        enter(PipelineState.FAILED)
        raise
    cache_key = make_cache_key(request.institution_id, department_id, request.grade_level, year)

    if cache is not None:
        cached = cache.get(cache_key)
        if cached is not None:
            listing_url, total_urls, pairs, failures = cached
            logger.info(
                "Using cached syllabi for %s (%d records, %d failed)", cache_key, len(pairs), len(failures)
            )
            records = [assemble_course_record(r, request.term, year, source_url=u) for u, r in pairs]
            enter(PipelineState.DONE)
            return _finish(request, department_id, events, PipelineResult(
                state=PipelineState.DONE,
                listing_url=listing_url,
                total_urls=total_urls,
                records=records,
                failures=list(failures),
                from_cache=True,
            ))

    try:
        listing = await asyncio.to_thread(resolve_detail_urls, client, request)
    except SyllabusError:
        enter(PipelineState.FAILED)
        raise

    enter(PipelineState.FETCHING_DETAILS)

    async def worker(url: str, index: int, total: int) -> Tuple[str, ValidatedSyllabusRecord]:
        logger.info("(%d/%d) Scraping %s", index + 1, total, url)
        record = await asyncio.to_thread(fetch_validated_record, client, url)
        return url, record

    def on_error(error: BaseException, index: int, url: str) -> None:
        logger.warning("(%d/%d) Failed %s: %s", index + 1, len(listing.urls), url, error)

    batch = await run_in_chunks(
        listing.urls,
        worker,
        chunk_size=chunk_size,
        delay_ms=delay_ms,
        on_progress=on_progress,
        on_error=on_error,
        sleep=sleep,
    )

    failures = [_failure_report(f.item, f.error) for f in batch.failed]

    if not batch.successful:
        enter(PipelineState.FAILED)
        raise AllDetailsFailedError(len(listing.urls), failures)

    pairs: List[Tuple[str, ValidatedSyllabusRecord]] = list(batch.successful)
    if cache is not None:
        cache.put(cache_key, (listing.listing_url, len(listing.urls), pairs, failures), CACHE_TTL_SECONDS)

    records = [assemble_course_record(r, request.term, year, source_url=u) for u, r in pairs]
    enter(PipelineState.DONE)

    logger.info("Imported %d of %d syllabi (%d failed)", len(records), len(listing.urls), len(failures))
    return _finish(request, department_id, events, PipelineResult(
        state=PipelineState.DONE,
        listing_url=listing.listing_url,
        total_urls=len(listing.urls),
        records=records,
        failures=failures,
    ))


def _finish(
    request: FetchRequest,
    department_id: int,
    events: Optional[EventBus],
    result: PipelineResult,
) -> PipelineResult:
    if events is not None:
        events.emit(
            "pool:updated",
            {"institution_id": request.institution_id, "department_id": department_id, "count": result.success_count},
        )
    return result
