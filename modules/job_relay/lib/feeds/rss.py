# modules/job_relay/lib/feeds/rss.py
from __future__ import annotations

import os
import re
import time
from typing import Any

import feedparser  # pip install feedparser
from bs4 import BeautifulSoup  # pip install beautifulsoup4 html5lib

from ..config import FeedConfig
from ..http_client import HttpClient
from ..models import FeedResult, JobRecord
from ..utils import parse_money
from .base import BaseFeed, PostingFilter, delay_seconds
from .registry import register

# Fixed-price budget lines, tried in order; first positive amount wins.
_BUDGET_PATTERNS = [
    re.compile(r"Budget:\s*\$([0-9,]+)", re.IGNORECASE),
    re.compile(r"Budget:\s*([0-9,]+)\s*USD", re.IGNORECASE),
]
# Hourly rates become a weekly figure (40h) so they sort into the same tiers.
_HOURLY_PATTERNS = [
    re.compile(r"\$([0-9,]+)\s*/\s*hr", re.IGNORECASE),
    re.compile(r"\$([0-9,]+)\s*/\s*hour", re.IGNORECASE),
]
HOURS_PER_WEEK = 40

_SPENT_RE = re.compile(r"Spent\s*:?\s*\$([0-9,]+)", re.IGNORECASE)
_SPENT_K_RE = re.compile(r"\$([0-9,]+)k\+?\s*spent", re.IGNORECASE)
_VERIFIED_MARKER = "payment verified"


def html_to_text(html: str) -> str:
    """Feed descriptions arrive as HTML fragments; keep line breaks, drop tags."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html5lib")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    text = soup.get_text()
    lines = [re.sub(r"[ \t]+", " ", ln).strip() for ln in text.splitlines()]
    return "\n".join(ln for ln in lines if ln).strip()


def extract_budget(text: str) -> float:
    if not text:
        return 0.0
    for pat in _BUDGET_PATTERNS:
        m = pat.search(text)
        if m:
            amount = parse_money(m.group(1))
            if amount > 0:
                return amount
    for pat in _HOURLY_PATTERNS:
        m = pat.search(text)
        if m:
            rate = parse_money(m.group(1))
            if rate > 0:
                return rate * HOURS_PER_WEEK
    return 0.0


def extract_client_spent(text: str) -> float:
    if not text:
        return 0.0
    m = _SPENT_RE.search(text)
    if m:
        return parse_money(m.group(1))
    m = _SPENT_K_RE.search(text)
    if m:
        return parse_money(m.group(1)) * 1000
    return 0.0


def record_from_entry(entry: Any) -> JobRecord:
    """Map one feedparser entry onto a JobRecord. Raises ValueError if it has no id or link."""
    link = str(entry.get("link") or "").strip()
    summary = html_to_text(str(entry.get("summary") or entry.get("description") or ""))
    return JobRecord(
        id=str(entry.get("id") or entry.get("guid") or link).strip(),
        title=html_to_text(str(entry.get("title") or "")) or "(no title)",
        summary=summary,
        url=link,
        budget=extract_budget(summary),
        client_verified=_VERIFIED_MARKER in summary.lower(),
        client_spent=extract_client_spent(summary),
    )


@register
class RssFeed(BaseFeed):
    """
    RSS/Atom job search feed (Upwork saved-search style).

    Each FeedConfig.params may include:
      url: str                 # feed URL (default: env UPWORK_RSS_FEED_URL)
      keywords: list[str]      # keep entries mentioning any keyword (title or summary)
      min_budget: number       # drop stated budgets below this
      max_budget: number       # drop stated budgets above this
      delay_seconds: float     # polite pause between feeds (default 1.0, 0 disables)
    """

    kind = "rss"

    def __init__(self, client: HttpClient | None = None) -> None:
        self._client = client or HttpClient()

    def fetch(self, specs: list[FeedConfig], *, skip_network: bool) -> list[FeedResult]:
        results: list[FeedResult] = []
        if skip_network:
            return results

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
        url = str(params.get("url") or os.getenv("UPWORK_RSS_FEED_URL", "")).strip()
        if not url:
            result.errors.append("rss feed has no 'url'")
            return result

        keep = PostingFilter.from_params(params)

        try:
            body = self._client.get_bytes(url)
        except Exception as e:
            result.errors.append(f"fetch failed: {type(e).__name__}: {e}")
            return result

        parsed = feedparser.parse(body)
        if getattr(parsed, "bozo", False) and not parsed.entries:
            result.errors.append(f"unparsable feed: {parsed.get('bozo_exception')!r}")
            return result

        for i, entry in enumerate(parsed.entries or []):
            try:
                record = record_from_entry(entry)
            except ValueError as e:
                result.errors.append(f"entry[{i}]: {e}")
                continue
            if keep.matches(record):
                result.records.append(record)
        return result
