from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..config import FeedConfig
from ..models import FeedResult, JobRecord

DEFAULT_DELAY_SECONDS = 1.0


class BaseFeed(ABC):
    """
    Abstract feed interface.

    One instance processes every FeedConfig of its `kind` sequentially; the
    engine runs different kinds in parallel and calls close() when done.

    Contract:
      - fetch(specs, skip_network) returns one FeedResult per spec.
      - Return *all* records found; dedupe happens in the engine.
      - A failing spec is reported in FeedResult.errors, not raised.
    """

    kind: str = ""

    @abstractmethod
    def fetch(self, specs: list[FeedConfig], *, skip_network: bool) -> list[FeedResult]:
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources. Feeds without any keep the no-op."""


@dataclass(frozen=True)
class PostingFilter:
    """
    Per-feed keep/drop rule shared by the network feeds.

    keywords: keep postings whose title or summary mentions any of them (empty keeps all)
    min_budget / max_budget: only applied when the posting states a budget
    """

    keywords: tuple[str, ...] = ()
    min_budget: float | None = None
    max_budget: float | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> PostingFilter:
        keywords = tuple(str(k).strip().lower() for k in (params.get("keywords") or []) if str(k).strip())
        return cls(
            keywords=keywords,
            min_budget=opt_float(params.get("min_budget")),
            max_budget=opt_float(params.get("max_budget")),
        )

    def matches(self, record: JobRecord) -> bool:
        if self.keywords:
            haystack = f"{record.title}\n{record.summary}".lower()
            if not any(k in haystack for k in self.keywords):
                return False
        if record.budget > 0:
            if self.min_budget is not None and record.budget < self.min_budget:
                return False
            if self.max_budget is not None and record.budget > self.max_budget:
                return False
        return True


def opt_float(v: Any) -> float | None:
    if v in (None, ""):
        return None
    return float(v)


def delay_seconds(params: Mapping[str, Any], default: float = DEFAULT_DELAY_SECONDS) -> float:
    """Pause before this feed when it is not the first of its kind; 0 disables it."""
    delay = opt_float(params.get("delay_seconds"))
    return default if delay is None else max(delay, 0.0)
