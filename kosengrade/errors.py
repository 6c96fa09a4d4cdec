"""
Exception types raised by the syllabus pipeline.

Stage-1 errors (ConfigurationError, UpstreamFetchError, NoDetailUrlsError)
abort an import. Stage-2 errors (UpstreamFetchError, EmptyContentError,
ValidationError) are captured per detail page by the batch runner.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class SyllabusError(Exception):
    """Base class for all kosengrade errors."""


class ConfigurationError(SyllabusError):
    """Missing secret or unknown institution/department mapping."""


class UpstreamFetchError(SyllabusError):
    def __init__(self, url: str, status: Optional[int] = None, detail: Optional[str] = None) -> None:
        self.url = url
        self.status = status
        self.detail = detail
        msg = f"Fetching {url} failed"
        if status is not None:
            msg += f" (HTTP {status})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class EmptyContentError(SyllabusError):
    def __init__(self, url: str, length: int) -> None:
        self.url = url
        self.length = length
        super().__init__(f"Empty or too short content ({length} chars) from {url}")


class ValidationError(SyllabusError):
    """
    Extracted fields failed business rules.

    The candidate record and every violated rule are kept for the failure report.
    """

    def __init__(self, url: Optional[str], errors: Sequence[str], candidate: Any = None) -> None:
        self.url = url
        self.errors = list(errors)
        self.candidate = candidate
        super().__init__(f"Validation failed for {url or '(unknown url)'}: " + "; ".join(self.errors))


class NoDetailUrlsError(SyllabusError):
    def __init__(self, listing_url: str, raw_link_count: int, criteria: str) -> None:
        self.listing_url = listing_url
        self.raw_link_count = raw_link_count
        self.criteria = criteria
        super().__init__(
            f"No syllabus detail URLs found on {listing_url} "
            f"({raw_link_count} raw links, none matched {criteria})"
        )


class AllDetailsFailedError(SyllabusError):
    def __init__(self, attempted: int, failures: Sequence[Any] = ()) -> None:
        self.attempted = attempted
        self.failures = list(failures)
        super().__init__(f"All {attempted} syllabus detail pages failed")
