"""
Configuration constants for the syllabus importer.

All tunables (URLs, timeouts, rate-limit pacing, cache lifetime, data paths)
live here so the rest of the package never hard-codes them.
The Firecrawl API key is the only secret and is read from the environment.
"""

from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from kosengrade.errors import ConfigurationError


# =============================================================================
# FILE PATHS
# =============================================================================

PACKAGE_DIR = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_DIR / "data"
PROCESSED_DIR = DATA_DIR / "processed"
COURSE_POOL_PATH = PROCESSED_DIR / "course_pool.json"


# =============================================================================
# URLS
# =============================================================================

SYLLABUS_HOST = "syllabus.kosen-k.go.jp"
SYLLABUS_BASE_URL = f"https://{SYLLABUS_HOST}"
LISTING_PATH = "/Pages/PublicSubjects"
DETAIL_PATH = "/Pages/PublicSyllabus"

FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v1/scrape"
API_KEY_ENV = "FIRECRAWL_API_KEY"


# =============================================================================
# FETCH / RATE LIMITING
# =============================================================================

# Firecrawl-side timeouts (milliseconds, sent in the request body)
LISTING_TIMEOUT_MS = 30_000
DETAIL_TIMEOUT_MS = 25_000

# Extra seconds on top of the Firecrawl timeout for the local socket timeout
HTTP_TIMEOUT_MARGIN_S = 5.0

# Two pages at a time, half a second between chunks (Firecrawl request budget)
CHUNK_SIZE = 2
CHUNK_DELAY_MS = 500

# Anything shorter is treated as an empty / JS-only page
MIN_CONTENT_LENGTH = 50


# =============================================================================
# CACHE
# =============================================================================

CACHE_TTL_SECONDS = 24 * 60 * 60
CACHE_KEY_PREFIX = "syllabus_cache"


# =============================================================================
# SECRETS
# =============================================================================


def load_api_key(env_file: Optional[str | Path] = None) -> str:
    """
    Return the Firecrawl API key from the environment (or a .env file).

    Raises ConfigurationError when no key is configured.
    """
    load_dotenv(env_file)
    key = (os.getenv(API_KEY_ENV) or "").strip()
    if not key:
        raise ConfigurationError(f"{API_KEY_ENV} is not set (environment or .env file)")
    return key


# =============================================================================
# ACADEMIC YEAR
# =============================================================================


def current_academic_year(today: Optional[date] = None) -> int:
    """
    Japanese academic years start in April: January-March belong to the previous year.
    """
    today = today or date.today()
    return today.year if today.month >= 4 else today.year - 1
