# modules/job_relay/lib/feeds/api.py
from __future__ import annotations

import os
import time
from collections.abc import Mapping
from typing import Any

from ..config import FeedConfig
from ..http_client import HttpClient, scrub_url_secrets
from ..models import FeedResult, JobRecord
from ..utils import parse_money
from .base import BaseFeed, PostingFilter, delay_seconds
from .html_search import SITE_BASE
from .registry import register

API_URL = "https://www.upwork.com/api/profiles/v2/search/jobs"
TOKEN_ENV = "UPWORK_ACCESS_TOKEN"


def record_from_job(job: Mapping[str, Any]) -> JobRecord:
    """Map one API job object onto a JobRecord. Raises ValueError if it has no id."""
    ciphertext = str(job.get("ciphertext") or "").strip()
    job_id = str(job.get("id") or ciphertext).strip()
    url = str(job.get("url") or "").strip()
    if not url and ciphertext:
        url = f"{SITE_BASE}/jobs/{ciphertext}"

    client = job.get("client") or {}
    if not isinstance(client, Mapping):
        client = {}
    amount = job.get("amount") or {}
    budget = amount.get("amount") if isinstance(amount, Mapping) else amount

    return JobRecord(
        id=job_id,
        title=str(job.get("title") or "").strip() or "(no title)",
        summary=str(job.get("snippet") or job.get("description") or ""),
        url=url,
        budget=parse_money(str(budget)) if budget not in (None, "") else 0.0,
        client_verified=bool(client.get("paymentVerified", False)),
        client_spent=parse_money(str(client.get("totalSpent") or 0)),
    )


def _token(params: Mapping[str, Any]) -> str:
    token = str(params.get("access_token") or "").strip()
    if token:
        return token
    env_name = str(params.get("access_token_env") or TOKEN_ENV).strip()
    return os.getenv(env_name, "").strip()


@register
class ApiFeed(BaseFeed):
    """
    Paginated job search over the marketplace REST API.

    The bearer token is obtained elsewhere (OAuth is not handled here).

    Each FeedConfig.params may include:
      query: str               # search terms (required)
      url: str                 # endpoint (default API_URL)
      access_token: str        # bearer token, or
      access_token_env: str    # env var holding it (default UPWORK_ACCESS_TOKEN)
      page_size: int           # jobs per page (default 50)
      max_pages: int           # pages to walk per run (default 1)
      keywords / min_budget / max_budget   # same filter as the rss feed
      delay_seconds: float     # pause between feeds and pages (default 1.0, 0 disables)
    """

    kind = "api"

    def __init__(self, client: HttpClient | None = None) -> None:
        self._client = client or HttpClient()

    def fetch(self, specs: list[FeedConfig], *, skip_network: bool) -> list[FeedResult]:
        if skip_network:
            return []

        results: list[FeedResult] = []
        for idx, spec in enumerate(specs):
            params = dict(spec.params or {})
            delay = delay_seconds(params)
            if idx > 0 and delay > 0:
                time.sleep(delay)
            results.append(self._fetch_one(spec, params, delay))
        return results

    def close(self) -> None:
        self._client.close()

    def _fetch_one(self, spec: FeedConfig, params: dict[str, Any], delay: float) -> FeedResult:
        result = FeedResult(source=spec.source)
        query = str(params.get("query") or "").strip()
        if not query:
            result.errors.append("api feed has no 'query'")
            return result
        token = _token(params)
        if not token:
            result.errors.append(f"api feed has no access token (set 'access_token' or {TOKEN_ENV})")
            return result

        url = str(params.get("url") or API_URL).strip()
        page_size = max(int(params.get("page_size") or 50), 1)
        max_pages = max(int(params.get("max_pages") or 1), 1)
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        keep = PostingFilter.from_params(params)

        for page in range(max_pages):
            if page > 0 and delay > 0:
                time.sleep(delay)
            query_params = {"q": query, "sort": "recency", "paging": f"{page * page_size};{page_size}"}
            try:
                data = self._client.get_json(url, params=query_params, headers=headers)
            except Exception as e:
                result.errors.append(f"page {page}: {type(e).__name__}: {scrub_url_secrets(str(e))}")
                break

            jobs = data.get("jobs") if isinstance(data, Mapping) else None
            if not isinstance(jobs, list):
                result.errors.append(f"page {page}: response has no 'jobs' list")
                break

            for i, job in enumerate(jobs):
                if not isinstance(job, Mapping):
                    result.errors.append(f"page {page} job[{i}] is not an object")
                    continue
                try:
                    record = record_from_job(job)
                except ValueError as e:
                    result.errors.append(f"page {page} job[{i}]: {e}")
                    continue
                if keep.matches(record):
                    result.records.append(record)

            if len(jobs) < page_size:
                break
        return result
