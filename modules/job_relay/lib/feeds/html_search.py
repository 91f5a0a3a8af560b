# modules/job_relay/lib/feeds/html_search.py
"""
Job search result pages scraped as HTML (Upwork "nx/search/jobs" layout).

Example feeds entry:
{
  "kind": "html",
  "source": "upwork:react",
  "params": {
    "query": "react next.js typescript",
    "keywords": ["react", "next.js", "typescript"],
    "min_budget": 30,
    "max_budget": 5000
  }
}
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup  # pip install beautifulsoup4 html5lib

from ..config import FeedConfig
from ..http_client import HttpClient
from ..models import FeedResult, JobRecord
from ..utils import parse_money
from .base import BaseFeed, PostingFilter, delay_seconds
from .registry import register
from .rss import HOURS_PER_WEEK, extract_budget, extract_client_spent

log = logging.getLogger(__name__)

SITE_BASE = "https://www.upwork.com"
SEARCH_URL = SITE_BASE + "/nx/search/jobs/"

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

_TILE = 'article[data-test="job-tile"]'
_TITLE = '[data-test="job-title"]'
_LINK = 'a[data-test="job-title-link"]'
_DESCRIPTION = '[data-test="job-description"]'
_BUDGET = '[data-test="budget"]'
_CLIENT_INFO = '[data-test="client-info"]'

# "$25-$40 per hour", "$30 hourly"; the low end is used
_TILE_HOURLY_RE = re.compile(r"\$([0-9,]+)(?:\s*-\s*\$[0-9,]+)?\s*(?:/\s*hr|per hour|hourly)", re.IGNORECASE)
_TILE_FIXED_RE = re.compile(r"\$([0-9,]+)")


def tile_budget(text: str) -> float:
    """Budget cell of a result tile: hourly rates become a 40h week, else the first dollar amount."""
    if not text:
        return 0.0
    m = _TILE_HOURLY_RE.search(text)
    if m:
        return parse_money(m.group(1)) * HOURS_PER_WEEK
    budget = extract_budget(text)
    if budget > 0:
        return budget
    m = _TILE_FIXED_RE.search(text)
    return parse_money(m.group(1)) if m else 0.0


def search_params(params: dict[str, Any]) -> dict[str, str]:
    page_size = int(params.get("page_size") or 50)
    out = {
        "q": str(params.get("query") or "").strip(),
        "sort": "recency",
        "paging": f"0;{page_size}",
    }
    if params.get("client_location"):
        out["client_location"] = str(params["client_location"])
    return out


def parse_search_page(html: str, *, base_url: str = SITE_BASE) -> tuple[list[JobRecord], list[str]]:
    """Return (records, errors) for every job tile on a search result page."""
    soup = BeautifulSoup(html, "html5lib")
    records: list[JobRecord] = []
    errors: list[str] = []

    for i, tile in enumerate(soup.select(_TILE)):
        link = tile.select_one(_LINK)
        href = (link.get("href") or "").strip() if link else ""
        url = urljoin(base_url, href) if href else ""

        title_el = tile.select_one(_TITLE) or link
        title = title_el.get_text(" ", strip=True) if title_el else ""
        desc_el = tile.select_one(_DESCRIPTION)
        description = desc_el.get_text(" ", strip=True) if desc_el else ""
        budget_el = tile.select_one(_BUDGET)
        budget_text = budget_el.get_text(" ", strip=True) if budget_el else ""
        client_el = tile.select_one(_CLIENT_INFO)
        client_info = client_el.get_text(" ", strip=True) if client_el else ""

        if not url or not title:
            errors.append(f"tile[{i}]: missing title or link")
            continue

        try:
            records.append(
                JobRecord(
                    id=_job_id(url),
                    title=title,
                    summary=description,
                    url=url,
                    budget=tile_budget(budget_text),
                    client_verified="payment verified" in client_info.lower(),
                    client_spent=extract_client_spent(client_info),
                )
            )
        except ValueError as e:
            errors.append(f"tile[{i}]: {e}")
    return records, errors


def _job_id(url: str) -> str:
    # Tracking query strings vary between page loads; the path is stable.
    bare, _ = urldefrag(url)
    parsed = urlparse(bare)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".rstrip("/")


@register
class HtmlSearchFeed(BaseFeed):
    """
    Scrapes job tiles from search result pages.

    Each FeedConfig.params may include:
      url: str                 # full search URL; otherwise built from `query`
      query: str               # search terms for the default search URL
      page_size: int           # results requested per page (default 50)
      client_location: str     # optional search filter
      keywords / min_budget / max_budget   # same filter as the rss feed
      delay_seconds: float     # polite pause between searches (default 1.0, 0 disables)
    """

    kind = "html"

    def __init__(self, client: HttpClient | None = None) -> None:
        if client is None:
            client = HttpClient(user_agent=BROWSER_UA)
            client.session.headers.update({
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            })
        self._client = client

    def fetch(self, specs: list[FeedConfig], *, skip_network: bool) -> list[FeedResult]:
        if skip_network:
            return []

        results: list[FeedResult] = []
        for idx, spec in enumerate(specs):
            params = dict(spec.params or {})
            delay = delay_seconds(params)
            if idx > 0 and delay > 0:
                time.sleep(delay)
            results.append(self._fetch_one(spec, params))
        return results

    def close(self) -> None:
        self._client.close()

    def _fetch_one(self, spec: FeedConfig, params: dict[str, Any]) -> FeedResult:
        result = FeedResult(source=spec.source)
        url = str(params.get("url") or "").strip()
        query: dict[str, str] | None = None
        if not url:
            query = search_params(params)
            if not query["q"]:
                result.errors.append("html feed needs 'url' or 'query'")
                return result
            url = SEARCH_URL

        try:
            html = self._client.get_text(url, params=query)
        except Exception as e:
            result.errors.append(f"fetch failed: {type(e).__name__}: {e}")
            return result

        records, errors = parse_search_page(html, base_url=SITE_BASE)
        result.errors.extend(errors)
        if not records and not errors:
            log.info("No job tiles found for %s (page layout may have changed)", spec.source)

        keep = PostingFilter.from_params(params)
        result.records.extend(r for r in records if keep.matches(r))
        return result
