from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Protocol

from . import logging_bridge
from .models import ArchiveReport, DeliveryResult
from .utils import parse_iso, utcnow

LOG = logging.getLogger(__name__)


class CardBoard(Protocol):
    def list_cards(self) -> list[dict[str, Any]]: ...

    def close_card(self, card_id: str) -> DeliveryResult: ...


def select_stale(cards: Iterable[dict[str, Any]], cutoff: datetime) -> list[dict[str, Any]]:
    """
    Open cards whose last activity is strictly before `cutoff`.
    Cards without a readable dateLastActivity are left alone.
    """
    stale: list[dict[str, Any]] = []
    for card in cards:
        if not isinstance(card, dict) or card.get("closed") or not card.get("id"):
            continue
        last = parse_iso(card.get("dateLastActivity"))
        if last is not None and last < cutoff:
            stale.append(card)
    return stale


class BatchArchiver:
    """
    Closes stale board cards in fixed-size batches.

    Cards inside a batch are closed concurrently; batches run one after the
    other with a pause in between (not after the last one).
    """

    def __init__(
        self,
        board: CardBoard,
        *,
        batch_size: int = 10,
        pause_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be >= 1")
        self.board = board
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self._sleep = sleep

    def archive_stale(self, retention: timedelta, now: datetime | None = None) -> ArchiveReport:
        now = now or utcnow()
        report = ArchiveReport()

        try:
            cards = self.board.list_cards()
        except Exception as e:
            report.error = repr(e)
            logging_bridge.error({
                "component": "job_relay.archiver",
                "op": "list_cards",
                "error": report.error,
            })
            return report

        stale = select_stale(cards, now - retention)
        report.found = len(stale)

        for start in range(0, len(stale), self.batch_size):
            if start > 0 and self.pause_seconds > 0:
                self._sleep(self.pause_seconds)
            batch = stale[start : start + self.batch_size]
            report.batches += 1
            closed, failed = self._close_batch(batch)
            report.closed += closed
            report.failed += failed

        LOG.info("Archived stale cards: closed %d of %d", report.closed, report.found)
        logging_bridge.activity({
            "component": "job_relay.archiver",
            "op": "archive_stale",
            "retention_days": retention.total_seconds() / 86400,
            "found": report.found,
            "closed": report.closed,
            "failed": report.failed,
            "batches": report.batches,
            "message": f"closed {report.closed} of {report.found}",
        })
        return report

    def _close_batch(self, batch: list[dict[str, Any]]) -> tuple[int, int]:
        closed = failed = 0
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="archiver") as pool:
            futures = {pool.submit(self.board.close_card, str(card["id"])): card for card in batch}
            for fut, card in futures.items():
                try:
                    result = fut.result()
                except Exception as e:
                    result = DeliveryResult.failed(repr(e))
                if result.ok:
                    closed += 1
                    continue
                failed += 1
                logging_bridge.error({
                    "component": "job_relay.archiver",
                    "op": "close_card",
                    "card_id": card["id"],
                    "card_name": card.get("name"),
                    "status_code": result.status_code,
                    "error": result.error or result.outcome.value,
                })
        return closed, failed
