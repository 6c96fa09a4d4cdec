"""
Firecrawl scrape client.

Two request shapes are used:

    listing page:  {"url": ..., "formats": ["links"],    "timeout": 30000}
    detail page:   {"url": ..., "formats": ["markdown"], "timeout": 25000}

The API key is sent as a bearer token and never printed or logged.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests

from kosengrade.config import (
    DETAIL_TIMEOUT_MS,
    FIRECRAWL_SCRAPE_URL,
    HTTP_TIMEOUT_MARGIN_S,
    LISTING_TIMEOUT_MS,
    load_api_key,
)
from kosengrade.errors import UpstreamFetchError


logger = logging.getLogger(__name__)


class FirecrawlClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        endpoint: str = FIRECRAWL_SCRAPE_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self.endpoint = endpoint
        self.session = session or requests.Session()

    def __repr__(self) -> str:
        return f"FirecrawlClient(endpoint={self.endpoint!r})"

    # ------------------------------------------------------------------
    # Core request
    # ------------------------------------------------------------------

    def _scrape(self, url: str, formats: List[str], timeout_ms: int) -> dict[str, Any]:
        """
        POST one scrape request and return the `data` object of the response.
        """
        payload = {"url": url, "formats": formats, "timeout": timeout_ms}
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            resp = self.session.post(
                self.endpoint,
                json=payload,
                headers=headers,
                timeout=timeout_ms / 1000 + HTTP_TIMEOUT_MARGIN_S,
            )
        except requests.RequestException as exc:
            raise UpstreamFetchError(url, detail=str(exc)) from exc

        if not resp.ok:
            logger.warning("Firecrawl returned HTTP %s for %s", resp.status_code, url)
            raise UpstreamFetchError(url, status=resp.status_code, detail=resp.text[:200])

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamFetchError(url, status=resp.status_code, detail="invalid JSON response") from exc

        if not isinstance(body, dict):
            raise UpstreamFetchError(url, status=resp.status_code, detail="unexpected response shape")
        if body.get("success") is False:
            raise UpstreamFetchError(url, status=resp.status_code, detail=str(body.get("error") or "success=false"))

        # Firecrawl v1 nests results under "data"; older responses are flat
        data = body.get("data")
        return data if isinstance(data, dict) else body

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def scrape_links(self, url: str) -> List[str]:
        """
        All absolute links found on the page.
        """
        data = self._scrape(url, ["links"], LISTING_TIMEOUT_MS)
        links = data.get("links") or []
        return [str(link) for link in links if isinstance(link, str) and link.strip()]

    def scrape_markdown(self, url: str) -> str:
        data = self._scrape(url, ["markdown"], DETAIL_TIMEOUT_MS)
        markdown = data.get("markdown")
        return markdown if isinstance(markdown, str) else ""
