# tests/conftest.py
import json
import os
import tempfile
import threading
import time

import pytest
from freezegun import freeze_time

from modules.job_relay.lib import config as jr_config
from modules.job_relay.lib.models import DeliveryResult


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
_CREDENTIAL_ENV = (
    "TRELLO_API_KEY",
    "TRELLO_TOKEN",
    "TRELLO_BOARD_ID",
    "TRELLO_LIST_QUICK_WINS",
    "TRELLO_LIST_MEDIUM_PROJECTS",
    "TRELLO_LIST_HIGH_VALUE",
    "SLACK_WEBHOOK_URL",
    "UPWORK_RSS_FEED_URL",
    "UPWORK_ACCESS_TOKEN",
    "JOB_RELAY_STATE_PATH",
)


@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="jr-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.setenv("CONFIG_PATH", "/app/local/config.json")

    # A developer shell with real credentials must not leak into unit tests.
    for name in _CREDENTIAL_ENV:
        monkeypatch.delenv(name, raising=False)

    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def write_min_config(tmp_path, monkeypatch):
    cfg = {
        "jobs": [
            {
                "id": "relay-never",
                "name": "Job relay (test)",
                "module": "modules.job_relay",
                "trigger": {"date": "2099-01-01T00:00:00Z"},
                "kwargs": {
                    "skip_network": True,
                    "state_path": str(tmp_path / "state" / "processed_jobs.json"),
                    "feeds": [{"kind": "json_file", "source": "fixture", "params": {"items": []}}],
                },
                "summary": "pytest config",
            }
        ]
    }
    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p


# ---------------------------------------------------------------------
# Relay fixtures
# ---------------------------------------------------------------------
@pytest.fixture
def relay_settings(tmp_path):
    """
    Factory for offline Settings: tmp state file, fast pacing, no credentials.
    Keyword overrides go straight into Settings.from_env_and_kwargs.
    """

    def _make(**overrides):
        kw = {
            "skip_network": True,
            "state_path": str(tmp_path / "processed_jobs.json"),
            "messages_per_minute": 60000,
            "delay_between_messages_ms": 0,
            "drain_poll_seconds": 0.01,
            "archive_pause_ms": 0,
        }
        kw.update(overrides)
        return jr_config.Settings.from_env_and_kwargs(kw)

    return _make


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


class FakeChat:
    """
    Records every post. `outcomes` is consumed one per call; when it runs out
    every further post is delivered.
    """

    def __init__(self, outcomes=None, clock=None) -> None:
        self.outcomes = list(outcomes or [])
        self.clock = clock
        self.attempts = []  # (job_id, outcome, timestamp)
        self.delivered = []
        self._lock = threading.Lock()

    def post(self, task):
        with self._lock:
            result = self.outcomes.pop(0) if self.outcomes else DeliveryResult.delivered(200)
            if isinstance(result, Exception):
                self.attempts.append((task.record.id, "raised", self._now()))
                raise result
            self.attempts.append((task.record.id, result.outcome.value, self._now()))
            if result.ok:
                self.delivered.append(task)
            return result

    __call__ = post

    def _now(self):
        return self.clock() if self.clock else time.monotonic()


@pytest.fixture
def fake_chat():
    return FakeChat


class FakeBoard:
    """
    In-memory board.
    - fail_ids: record ids whose card creation fails
    - cards: what list_cards() returns
    - close_fail_ids: card ids whose close fails
    """

    def __init__(self, cards=None, fail_ids=(), close_fail_ids=(), list_error=None, close_delay=0.0) -> None:
        self.cards = list(cards or [])
        self.fail_ids = set(fail_ids)
        self.close_fail_ids = set(close_fail_ids)
        self.list_error = list_error
        self.close_delay = close_delay
        self.initialized = 0
        self.created = []  # (record, category, priority)
        self.close_attempts = []
        self.closed = []
        self.max_concurrent_closes = 0
        self._active = 0
        self._lock = threading.Lock()

    def initialize(self):
        self.initialized += 1

    def create_card(self, record, category, priority):
        if record.id in self.fail_ids:
            return DeliveryResult.failed("HTTP 400: invalid list", status_code=400)
        self.created.append((record, category, priority))
        return DeliveryResult.delivered(200, payload={"id": f"card-{record.id}"})

    def list_cards(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.cards)

    def close_card(self, card_id):
        with self._lock:
            self._active += 1
            self.max_concurrent_closes = max(self.max_concurrent_closes, self._active)
            self.close_attempts.append(card_id)
        try:
            if self.close_delay:
                time.sleep(self.close_delay)
            if card_id in self.close_fail_ids:
                return DeliveryResult.failed("HTTP 500: boom", status_code=500)
            with self._lock:
                self.closed.append(card_id)
            return DeliveryResult.delivered(200)
        finally:
            with self._lock:
                self._active -= 1


@pytest.fixture
def fake_board():
    return FakeBoard
