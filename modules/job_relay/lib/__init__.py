# modules/job_relay/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .categorizer import categorize
from .config import ConfigError, FeedConfig, Settings, Thresholds
from .dispatch import DispatchQueue
from .engine import run_once
from .models import (
    BudgetCategory,
    DeliveryOutcome,
    DeliveryResult,
    FeedResult,
    JobRecord,
    NotificationTask,
    Priority,
    ProcessedEntry,
)
from .store import DedupStore

__all__ = [
    "BudgetCategory",
    "ConfigError",
    "DedupStore",
    "DeliveryOutcome",
    "DeliveryResult",
    "DispatchQueue",
    "FeedConfig",
    "FeedResult",
    "JobRecord",
    "NotificationTask",
    "Priority",
    "ProcessedEntry",
    "Settings",
    "Thresholds",
    "categorize",
    "run_once",
]
