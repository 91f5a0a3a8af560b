"""
One relay cycle: sweep state, archive stale cards, pull feeds, card and notify new postings.

Features:
  - Parallel fetch by feed kind
  - Dedup against the JSON store (admission only after the card exists)
  - Paced chat delivery through DispatchQueue, drained before returning
  - Dependency injection for testability (`get_feed`, `board`, `chat`)
  - Structured logging via `logging_bridge`
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Protocol

from . import logging_bridge
from .archiver import BatchArchiver
from .categorizer import categorize
from .config import FeedConfig, Settings
from .dispatch import DispatchQueue
from .feeds.base import BaseFeed
from .models import ArchiveReport, BudgetCategory, DeliveryResult, FeedResult, JobRecord, NotificationTask, Priority
from .store import DedupStore, admit, is_new
from .utils import utcnow


class Board(Protocol):
    def initialize(self) -> None: ...

    def create_card(self, record: JobRecord, category: BudgetCategory, priority: Priority) -> DeliveryResult: ...

    def list_cards(self) -> list[dict[str, Any]]: ...

    def close_card(self, card_id: str) -> DeliveryResult: ...


class Chat(Protocol):
    def post(self, task: NotificationTask) -> DeliveryResult: ...


# =============================================================================
# DEFAULT COLLABORATORS (PRODUCTION)
# =============================================================================
def _default_get_feed(kind: str) -> type[BaseFeed]:
    from .feeds.registry import get as get_feed_class

    return get_feed_class(kind)


def _default_board(settings: Settings) -> Board | None:
    if settings.skip_network:
        return None
    from .sinks.trello import TrelloBoard

    return TrelloBoard(settings.trello, timeout=settings.http_timeout)


def _default_chat(settings: Settings) -> Chat | None:
    if settings.skip_network:
        return None
    from .sinks.slack import SlackWebhook

    return SlackWebhook(settings.slack_webhook_url, timeout=settings.http_timeout)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    get_feed: Callable[[str], type[BaseFeed]] | None = None,
    board: Board | None = None,
    chat: Chat | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Run one complete relay cycle.

    Args:
        settings: validated Settings.
        get_feed: override feed class lookup (tests).
        board / chat: injected sinks; default to Trello / Slack unless skip_network.
        now: reference time for sweeping, archiving and admission (default: utcnow()).

    Returns:
        meta dict with per-stage counts (the runner records it in the activity log).
    """
    now = now or utcnow()
    # Sinks built here are closed here; injected ones belong to the caller.
    owned: list[Any] = []
    if board is None:
        board = _default_board(settings)
        if board is not None:
            owned.append(board)
    if chat is None:
        chat = _default_chat(settings)
        if chat is not None:
            owned.append(chat)
    try:
        return _run_cycle(settings, get_feed or _default_get_feed, board, chat, now)
    finally:
        for sink in owned:
            sink.close()


def _run_cycle(
    settings: Settings,
    get_feed: Callable[[str], type[BaseFeed]],
    board: Board | None,
    chat: Chat | None,
    now: datetime,
) -> dict[str, Any]:
    start_ns = time.perf_counter_ns()
    store = DedupStore(settings.state_path)
    durations_us: dict[str, int] = {}

    # -------------------------------------------------------------------------
    # 1. BOARD SETUP (lists exist and are ordered); never fatal
    # -------------------------------------------------------------------------
    t0 = time.perf_counter_ns()
    if board is not None:
        try:
            board.initialize()
        except Exception as e:
            logging_bridge.error({
                "component": "job_relay.engine",
                "op": "initialize_board",
                "error": repr(e),
            })
    durations_us["initialize"] = _since_us(t0)

    # -------------------------------------------------------------------------
    # 2. SWEEP OLD DEDUP ENTRIES
    # -------------------------------------------------------------------------
    t0 = time.perf_counter_ns()
    swept = store.cleanup(settings.retention, now)
    durations_us["sweep"] = _since_us(t0)

    # -------------------------------------------------------------------------
    # 3. ARCHIVE STALE CARDS
    # -------------------------------------------------------------------------
    t0 = time.perf_counter_ns()
    report = ArchiveReport()
    if board is not None and settings.archive_enabled:
        archiver = BatchArchiver(
            board,
            batch_size=settings.archive_batch_size,
            pause_seconds=settings.archive_pause_seconds,
        )
        report = archiver.archive_stale(settings.retention, now)
    durations_us["archive"] = _since_us(t0)

    # -------------------------------------------------------------------------
    # 4-5. LOAD STATE, FETCH FEEDS
    # -------------------------------------------------------------------------
    snapshot = store.load()

    t0 = time.perf_counter_ns()
    feed_results = _fetch_all(settings, get_feed)
    durations_us["fetch"] = _since_us(t0)

    fetched: list[JobRecord] = []
    found_by_source: dict[str, int] = {}
    feed_errors: dict[str, list[str]] = {}
    for res in feed_results:
        fetched.extend(res.records)
        found_by_source[res.source] = found_by_source.get(res.source, 0) + len(res.records)
        if res.errors:
            feed_errors.setdefault(res.source, []).extend(res.errors)

    # -------------------------------------------------------------------------
    # 6. PARTITION: new vs already seen (first occurrence wins inside a batch)
    # -------------------------------------------------------------------------
    new_records: list[JobRecord] = []
    seen_count = 0
    batch_ids: set[str] = set()
    for record in fetched:
        if record.id in batch_ids:
            continue
        batch_ids.add(record.id)
        if is_new(record.id, snapshot):
            new_records.append(record)
        else:
            seen_count += 1

    # -------------------------------------------------------------------------
    # 7. CARD, ADMIT, ENQUEUE
    # -------------------------------------------------------------------------
    queue = DispatchQueue(
        chat.post if chat is not None else _no_chat,
        settings.min_send_interval,
        poll_interval=settings.drain_poll_seconds,
    )
    carded: dict[str, int] = {}
    card_failures = 0
    admitted = 0

    t0 = time.perf_counter_ns()
    for record in new_records:
        category, priority = categorize(record, settings.thresholds)
        result = _create_card(board, record, category, priority)
        if not result.ok:
            card_failures += 1
            logging_bridge.error({
                "component": "job_relay.engine",
                "op": "create_card",
                "job_id": record.id,
                "title": record.title,
                "category": category.value,
                "status_code": result.status_code,
                "error": result.error or result.outcome.value,
            })
            continue

        carded[category.value] = carded.get(category.value, 0) + 1
        snapshot = admit(record.id, snapshot, now)
        admitted += 1
        if chat is not None:
            queue.enqueue(NotificationTask(record=record, category=category, priority=priority))
    durations_us["deliver_cards"] = _since_us(t0)

    # -------------------------------------------------------------------------
    # 8-9. PERSIST ONCE, THEN WAIT FOR CHAT DELIVERY
    # -------------------------------------------------------------------------
    persisted = store.persist(snapshot)

    t0 = time.perf_counter_ns()
    drained = queue.wait_for_drain(settings.drain_timeout_sec)
    durations_us["drain"] = _since_us(t0)
    total_us = _since_us(start_ns)

    # -------------------------------------------------------------------------
    # SUMMARY
    # -------------------------------------------------------------------------
    message = f"{admitted} new job(s) relayed, {seen_count} already seen, {card_failures} card failure(s)"
    meta: dict[str, Any] = {
        "message": message,
        "fetched": len(fetched),
        "new": len(new_records),
        "seen": seen_count,
        "carded_by_category": carded,
        "card_failures": card_failures,
        "admitted": admitted,
        "persisted": persisted,
        "notified": queue.stats.delivered,
        "notify_requeued": queue.stats.requeued,
        "notify_dropped": queue.stats.dropped,
        "drained": drained,
        "swept": swept,
        "archive": {
            "found": report.found,
            "closed": report.closed,
            "failed": report.failed,
            "batches": report.batches,
            "error": report.error,
        },
        "found_by_source": found_by_source,
        "feed_errors": feed_errors,
        "skip_network": settings.skip_network,
        "durations_us": {**durations_us, "_total_us": total_us},
    }

    logging_bridge.activity({"component": "job_relay.engine", "op": "summary", **meta})
    return meta


# =============================================================================
# HELPERS
# =============================================================================
def _fetch_all(settings: Settings, get_feed: Callable[[str], type[BaseFeed]]) -> list[FeedResult]:
    """One thread per feed kind; results come back in the order kinds first appear in settings.feeds."""
    by_kind: dict[str, list[FeedConfig]] = {}
    for fc in settings.feeds:
        by_kind.setdefault(fc.kind, []).append(fc)
    if not by_kind:
        return []

    def _run_kind(kind: str, specs: list[FeedConfig]) -> list[FeedResult]:
        feed = get_feed(kind)()
        try:
            return feed.fetch(specs, skip_network=settings.skip_network)
        finally:
            feed.close()

    results_by_kind: dict[str, list[FeedResult]] = {}
    with ThreadPoolExecutor(max_workers=len(by_kind), thread_name_prefix="feed") as pool:
        futures = {pool.submit(_run_kind, k, specs): k for k, specs in by_kind.items()}
        for fut in as_completed(futures):
            kind = futures[fut]
            try:
                results_by_kind[kind] = fut.result()
            except Exception as e:
                results_by_kind[kind] = []
                logging_bridge.error({
                    "component": "job_relay.engine",
                    "op": "feed_fetch",
                    "kind": kind,
                    "sources": [s.source for s in by_kind[kind]],
                    "error": repr(e),
                })

    out: list[FeedResult] = []
    for kind in by_kind:
        out.extend(results_by_kind.get(kind, []))
    return out


def _create_card(
    board: Board | None, record: JobRecord, category: BudgetCategory, priority: Priority
) -> DeliveryResult:
    if board is None:
        return DeliveryResult.failed("no board configured (skip_network)")
    try:
        return board.create_card(record, category, priority)
    except Exception as e:
        return DeliveryResult.failed(repr(e))


def _no_chat(task: NotificationTask) -> DeliveryResult:
    return DeliveryResult.failed("no chat sink configured")


def _since_us(t0_ns: int) -> int:
    return int((time.perf_counter_ns() - t0_ns) // 1000)
