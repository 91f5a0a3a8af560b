from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class BudgetCategory(str, Enum):
    """Budget tier of a posting; the value doubles as the board list key."""

    QUICK_WINS = "QUICK_WINS"
    MEDIUM_PROJECTS = "MEDIUM_PROJECTS"
    HIGH_VALUE = "HIGH_VALUE"

    @property
    def label(self) -> str:
        # "MEDIUM_PROJECTS" -> "Medium Projects"
        return " ".join(part.capitalize() for part in self.value.split("_"))


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(frozen=True)
class JobRecord:
    """
    One posting as handed over by a feed (pre-dedupe).
    budget == 0 means "not specified"; client_spent is the client's lifetime spend.
    """

    id: str
    title: str
    summary: str = ""
    url: str = ""
    budget: float = 0
    client_verified: bool = False
    client_spent: float = 0

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("JobRecord.id must be a non-empty string")
        if not math.isfinite(self.budget) or self.budget < 0:
            raise ValueError(f"JobRecord.budget must be a finite number >= 0 (got {self.budget!r})")
        if not math.isfinite(self.client_spent) or self.client_spent < 0:
            raise ValueError(f"JobRecord.client_spent must be a finite number >= 0 (got {self.client_spent!r})")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JobRecord:
        """
        Build a record from a loose mapping (JSON replay files, tests).
        Accepts snake_case or camelCase keys; missing numbers become 0.
        """

        def _num(*keys: str) -> float:
            for k in keys:
                v = data.get(k)
                if v not in (None, ""):
                    return float(str(v).replace(",", ""))
            return 0.0

        verified = data.get("client_verified", data.get("clientVerified", False))
        return cls(
            id=str(data.get("id") or data.get("guid") or data.get("link") or data.get("url") or "").strip(),
            title=str(data.get("title") or "").strip(),
            summary=str(data.get("summary") or data.get("description") or ""),
            url=str(data.get("url") or data.get("link") or "").strip(),
            budget=_num("budget"),
            client_verified=bool(verified),
            client_spent=_num("client_spent", "clientSpent"),
        )


@dataclass(frozen=True)
class ProcessedEntry:
    """Dedup store row: an id and when it was admitted (aware UTC)."""

    id: str
    admitted_at: datetime


@dataclass(frozen=True)
class NotificationTask:
    record: JobRecord
    category: BudgetCategory
    priority: Priority


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single sink call. Sinks return this instead of raising."""

    outcome: DeliveryOutcome
    status_code: int | None = None
    error: str | None = None
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.outcome is DeliveryOutcome.DELIVERED

    @classmethod
    def delivered(cls, status_code: int | None = None, payload: Any = None) -> DeliveryResult:
        return cls(DeliveryOutcome.DELIVERED, status_code=status_code, payload=payload)

    @classmethod
    def failed(cls, error: str, status_code: int | None = None) -> DeliveryResult:
        return cls(DeliveryOutcome.FAILED, status_code=status_code, error=error)

    @classmethod
    def rate_limited(cls, status_code: int | None = 429) -> DeliveryResult:
        return cls(DeliveryOutcome.RATE_LIMITED, status_code=status_code)


@dataclass
class FeedResult:
    """
    Result bundle produced by a single feed source.
    - records: everything the feed returned (NOT filtered for 'new').
    - errors: non-fatal issues the feed decided to surface.
    """

    source: str
    records: list[JobRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class ArchiveReport:
    found: int = 0
    closed: int = 0
    failed: int = 0
    batches: int = 0
    error: str | None = None
