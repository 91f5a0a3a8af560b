# job_relay/http_client.py
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .models import DeliveryResult

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "JobRelay/0.1 (+https://example.invalid)"

_QUERY_SECRET_RE = re.compile(r"\b(key|token)=[^&\s'\"]+", re.IGNORECASE)


class HttpClient:
    """
    Shared requests.Session with transport-level retries.

    Sinks pass `retry_statuses` without 429 and `retry_methods` without POST so
    rate limiting and non-idempotent writes reach the caller untouched.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        *,
        retries: int = 3,
        retry_statuses: Iterable[int] = (429, 500, 502, 503, 504),
        retry_methods: Iterable[str] = ("GET", "HEAD"),
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=tuple(retry_statuses),
            allowed_methods=frozenset(m.upper() for m in retry_methods),
            raise_on_status=False,
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    # ---- convenience ----
    def get_bytes(self, url: str, *, params: Mapping[str, Any] | None = None, timeout: float | None = None) -> bytes:
        """GET and return the raw body (feed parsers sniff the encoding themselves)."""
        resp = self.session.get(url, params=params, timeout=timeout or self.timeout)
        resp.raise_for_status()
        return resp.content

    def get_text(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout)
        resp.raise_for_status()
        return resp.text

    def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout)
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as e:
            preview = resp.text[:200].replace("\n", " ")
            raise ValueError(f"JSON decode failed for {url!r}; body starts: {preview!r}") from e

    def send(self, method: str, url: str, **kwargs: Any) -> DeliveryResult:
        """Issue a write and classify the outcome. Never raises for HTTP or transport errors."""
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            return classify_exception(e)
        return classify_response(resp)

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)


# ---- Response classification -----------------------------------------------


def classify_response(resp: requests.Response) -> DeliveryResult:
    """2xx -> DELIVERED, 429 -> RATE_LIMITED, anything else -> FAILED."""
    status = resp.status_code
    if 200 <= status < 300:
        payload: Any = None
        if resp.content:
            try:
                payload = resp.json()
            except ValueError:
                payload = resp.text
        return DeliveryResult.delivered(status_code=status, payload=payload)
    if status == 429:
        return DeliveryResult.rate_limited(status_code=status)
    body = (resp.text or "")[:200].replace("\n", " ")
    return DeliveryResult.failed(f"HTTP {status}: {body}".strip(), status_code=status)


def classify_exception(exc: BaseException) -> DeliveryResult:
    # urllib3 gives up with RetryError once its own retries are spent.
    if isinstance(exc, requests.exceptions.RetryError) and "429" in str(exc):
        return DeliveryResult.rate_limited(status_code=429)
    return DeliveryResult.failed(scrub_url_secrets(repr(exc)))


def scrub_url_secrets(text: str) -> str:
    """Blank out key=/token= query values that requests echoes into error messages."""
    return _QUERY_SECRET_RE.sub(r"\1=***", text)
