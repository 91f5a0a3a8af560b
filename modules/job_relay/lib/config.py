from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from .models import BudgetCategory
from .utils import getenv_str, truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class FeedConfig:
    """
    One feed to pull postings from.
    - kind: feed family registered in feeds.registry ("rss", "html", "api", "json_file")
    - source: human-stable label used in logs and meta (e.g., "upwork:python")
    - params: passed through to the feed (url, keywords, min_budget, ...)
    """

    kind: str
    source: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Thresholds:
    budget_tier1: float = 300
    budget_tier2: float = 1500
    verified_spent_high: float = 1000
    unverified_spent_low: float = 100


@dataclass(frozen=True)
class TrelloCredentials:
    api_key: str = ""
    token: str = ""
    board_id: str = ""
    list_ids: dict[BudgetCategory, str] = field(default_factory=dict)


_LIST_ENV = {
    BudgetCategory.QUICK_WINS: "TRELLO_LIST_QUICK_WINS",
    BudgetCategory.MEDIUM_PROJECTS: "TRELLO_LIST_MEDIUM_PROJECTS",
    BudgetCategory.HIGH_VALUE: "TRELLO_LIST_HIGH_VALUE",
}

DEFAULT_STATE_PATH = "/app/local/state/processed_jobs.json"


@dataclass
class Settings:
    """
    Canonical configuration for one 'job_relay' run.

    Credentials come from kwargs first, then the environment
    (TRELLO_API_KEY, TRELLO_TOKEN, TRELLO_BOARD_ID, TRELLO_LIST_*, SLACK_WEBHOOK_URL).
    """

    feeds: list[FeedConfig] = field(default_factory=list)
    thresholds: Thresholds = field(default_factory=Thresholds)
    trello: TrelloCredentials = field(default_factory=TrelloCredentials)
    slack_webhook_url: str = ""

    # Dedup store
    state_path: str = DEFAULT_STATE_PATH
    retention_days: float = 7

    # Chat pacing
    messages_per_minute: int = 50
    delay_between_messages_ms: int = 1200
    drain_poll_seconds: float = 1.0
    drain_timeout_sec: float | None = None

    # Board archival
    archive_batch_size: int = 10
    archive_pause_ms: int = 1000
    archive_enabled: bool = True

    # Runtime behavior
    http_timeout: float = 15.0
    skip_network: bool = False

    # ------------- convenience -------------
    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @property
    def min_send_interval(self) -> float:
        """Seconds between chat sends: the stricter of the fixed delay and the per-minute cap."""
        per_minute = 60.0 / self.messages_per_minute
        return max(self.delay_between_messages_ms / 1000.0, per_minute)

    @property
    def archive_pause_seconds(self) -> float:
        return self.archive_pause_ms / 1000.0

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional unless stated otherwise):

            feeds: list[{kind, source, params}]   # or
            feeds_path: str                       # JSON file with the same list
            # neither given -> one "rss" feed from UPWORK_RSS_FEED_URL

            state_path: str = "/app/local/state/processed_jobs.json"
            retention_days: float = 7

            budget_tier1: 300, budget_tier2: 1500
            verified_spent_high: 1000, unverified_spent_low: 100

            messages_per_minute: 50, delay_between_messages_ms: 1200
            drain_poll_seconds: 1.0, drain_timeout_sec: null

            archive_batch_size: 10, archive_pause_ms: 1000, archive_enabled: true

            trello_api_key, trello_token, trello_board_id: str  # else env
            trello_list_ids: {QUICK_WINS: id, ...}               # else env
            slack_webhook_url: str                               # else env

            http_timeout: 15.0
            skip_network: bool = false
        """
        kw = dict(kwargs or {})

        try:
            thresholds = Thresholds(
                budget_tier1=float(kw.get("budget_tier1", 300)),
                budget_tier2=float(kw.get("budget_tier2", 1500)),
                verified_spent_high=float(kw.get("verified_spent_high", 1000)),
                unverified_spent_low=float(kw.get("unverified_spent_low", 100)),
            )
            settings = cls(
                feeds=_resolve_feeds(kw),
                thresholds=thresholds,
                trello=_resolve_trello(kw),
                slack_webhook_url=str(kw.get("slack_webhook_url") or getenv_str("SLACK_WEBHOOK_URL", "")).strip(),
                state_path=str(kw.get("state_path") or getenv_str("JOB_RELAY_STATE_PATH", DEFAULT_STATE_PATH)),
                retention_days=float(kw.get("retention_days", 7)),
                messages_per_minute=int(kw.get("messages_per_minute", 50)),
                delay_between_messages_ms=int(kw.get("delay_between_messages_ms", 1200)),
                drain_poll_seconds=float(kw.get("drain_poll_seconds", 1.0)),
                drain_timeout_sec=_optional_float(kw.get("drain_timeout_sec")),
                archive_batch_size=int(kw.get("archive_batch_size", 10)),
                archive_pause_ms=int(kw.get("archive_pause_ms", 1000)),
                archive_enabled=truthy(kw.get("archive_enabled", True)),
                http_timeout=float(kw.get("http_timeout", 15.0)),
                skip_network=truthy(kw.get("skip_network")),
            )
        except ConfigError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid job_relay option: {e}") from e

        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _optional_float(v: Any) -> float | None:
    if v in (None, ""):
        return None
    return float(v)


def _resolve_trello(kw: Mapping[str, Any]) -> TrelloCredentials:
    raw_lists = kw.get("trello_list_ids") or {}
    if not isinstance(raw_lists, Mapping):
        raise ConfigError("'trello_list_ids' must be an object keyed by category.")

    list_ids: dict[BudgetCategory, str] = {}
    for cat, env_name in _LIST_ENV.items():
        val = raw_lists.get(cat.value) or getenv_str(env_name)
        if val:
            list_ids[cat] = str(val).strip()

    return TrelloCredentials(
        api_key=str(kw.get("trello_api_key") or getenv_str("TRELLO_API_KEY", "")).strip(),
        token=str(kw.get("trello_token") or getenv_str("TRELLO_TOKEN", "")).strip(),
        board_id=str(kw.get("trello_board_id") or getenv_str("TRELLO_BOARD_ID", "")).strip(),
        list_ids=list_ids,
    )


def _resolve_feeds(kw: Mapping[str, Any]) -> list[FeedConfig]:
    if kw.get("feeds"):
        return _parse_feeds_list(kw["feeds"])

    feeds_path = str(kw.get("feeds_path") or "").strip()
    if feeds_path:
        try:
            with open(feeds_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"job_relay feeds file not found: {feeds_path}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"job_relay feeds file is invalid JSON: {feeds_path}") from e
        return _parse_feeds_list(data)

    url = str(kw.get("feed_url") or os.getenv("UPWORK_RSS_FEED_URL", "")).strip()
    if url:
        return [FeedConfig(kind="rss", source="upwork", params={"url": url})]
    return []


def _parse_feeds_list(value: Any) -> list[FeedConfig]:
    """
    Parse a flat list into FeedConfig objects.
    Accepts: [{"kind": "...", "source": "...", "params": {...}}, ...]
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ConfigError("'feeds' must be a list (or its JSON encoding).") from e
    if not isinstance(value, list):
        raise ConfigError("Expected a list of feed objects.")
    out: list[FeedConfig] = []
    for i, item in enumerate(value):
        if not isinstance(item, dict):
            raise ConfigError(f"Feed[{i}] must be an object.")
        kind = item.get("kind")
        source = item.get("source") or kind
        params = item.get("params") or {}
        if not kind:
            raise ConfigError(f"Feed[{i}] requires 'kind'.")
        if not isinstance(params, dict):
            raise ConfigError(f"Feed[{i}].params must be an object.")
        out.append(FeedConfig(kind=str(kind), source=str(source), params=dict(params)))
    return out


def _validate_settings(s: Settings) -> None:
    t = s.thresholds
    if t.budget_tier1 < 0 or t.budget_tier2 < t.budget_tier1:
        raise ConfigError("Budget tiers must satisfy 0 <= budget_tier1 <= budget_tier2.")
    if s.messages_per_minute <= 0:
        raise ConfigError("'messages_per_minute' must be >= 1.")
    if s.delay_between_messages_ms < 0:
        raise ConfigError("'delay_between_messages_ms' must be >= 0.")
    if s.archive_batch_size <= 0:
        raise ConfigError("'archive_batch_size' must be >= 1.")
    if s.archive_pause_ms < 0:
        raise ConfigError("'archive_pause_ms' must be >= 0.")
    if s.retention_days < 0:
        raise ConfigError("'retention_days' must be >= 0.")
    if s.drain_poll_seconds <= 0:
        raise ConfigError("'drain_poll_seconds' must be > 0.")
    if not s.state_path.strip():
        raise ConfigError("'state_path' cannot be empty.")

    # Offline runs (tests, dry runs) need neither sinks nor feeds.
    if s.skip_network:
        return

    if not s.feeds:
        raise ConfigError("No feeds configured. Provide 'feeds', 'feeds_path' or UPWORK_RSS_FEED_URL.")
    missing = [
        name
        for name, val in (
            ("TRELLO_API_KEY", s.trello.api_key),
            ("TRELLO_TOKEN", s.trello.token),
            ("TRELLO_BOARD_ID", s.trello.board_id),
            ("SLACK_WEBHOOK_URL", s.slack_webhook_url),
        )
        if not val
    ]
    if missing:
        raise ConfigError(f"Missing required credentials: {', '.join(missing)}")
