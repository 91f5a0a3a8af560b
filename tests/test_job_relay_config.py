# tests/test_job_relay_config.py
import json
from datetime import timedelta

import pytest

from modules.job_relay.lib.config import ConfigError, FeedConfig, Settings
from modules.job_relay.lib.models import BudgetCategory


def _full_env(monkeypatch):
    monkeypatch.setenv("TRELLO_API_KEY", "key-env")
    monkeypatch.setenv("TRELLO_TOKEN", "token-env")
    monkeypatch.setenv("TRELLO_BOARD_ID", "board-env")
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.com/services/T/B/X")
    monkeypatch.setenv("UPWORK_RSS_FEED_URL", "https://www.upwork.com/ab/feed/jobs/rss?q=python")


def test_defaults_from_env(monkeypatch, tmp_path):
    _full_env(monkeypatch)
    monkeypatch.setenv("TRELLO_LIST_HIGH_VALUE", "list-hv")

    s = Settings.from_env_and_kwargs({"state_path": str(tmp_path / "s.json")})

    assert s.feeds == [FeedConfig(kind="rss", source="upwork", params={"url": "https://www.upwork.com/ab/feed/jobs/rss?q=python"})]
    assert s.trello.api_key == "key-env"
    assert s.trello.list_ids == {BudgetCategory.HIGH_VALUE: "list-hv"}
    assert s.retention == timedelta(days=7)
    assert s.min_send_interval == pytest.approx(1.2)
    assert s.archive_batch_size == 10
    assert s.archive_pause_seconds == 1.0
    assert s.thresholds.budget_tier1 == 300 and s.thresholds.budget_tier2 == 1500


def test_kwargs_override_env(monkeypatch):
    _full_env(monkeypatch)
    s = Settings.from_env_and_kwargs({
        "trello_token": "token-kw",
        "trello_list_ids": {"QUICK_WINS": "q1"},
        "feeds": json.dumps([{"kind": "json_file", "source": "replay", "params": {"items": []}}]),
        "messages_per_minute": "20",
        "delay_between_messages_ms": 500,
    })
    assert s.trello.token == "token-kw"
    assert s.trello.list_ids[BudgetCategory.QUICK_WINS] == "q1"
    assert s.feeds[0].kind == "json_file"
    # 20/min is stricter than a 0.5 s delay
    assert s.min_send_interval == pytest.approx(3.0)


def test_feeds_path(tmp_path, monkeypatch):
    _full_env(monkeypatch)
    p = tmp_path / "feeds.json"
    p.write_text(json.dumps([{"kind": "rss", "params": {"url": "https://x.test/rss"}}]), encoding="utf-8")
    s = Settings.from_env_and_kwargs({"feeds_path": str(p)})
    # source falls back to kind
    assert s.feeds == [FeedConfig(kind="rss", source="rss", params={"url": "https://x.test/rss"})]


def test_missing_credentials_are_listed(monkeypatch):
    monkeypatch.setenv("UPWORK_RSS_FEED_URL", "https://x.test/rss")
    with pytest.raises(ConfigError) as ei:
        Settings.from_env_and_kwargs({"trello_api_key": "k"})
    msg = str(ei.value)
    assert "TRELLO_TOKEN" in msg and "TRELLO_BOARD_ID" in msg and "SLACK_WEBHOOK_URL" in msg
    assert "TRELLO_API_KEY" not in msg


def test_skip_network_needs_no_credentials_or_feeds():
    s = Settings.from_env_and_kwargs({"skip_network": "true"})
    assert s.skip_network is True
    assert s.feeds == []


@pytest.mark.parametrize(
    "kwargs",
    [
        {"budget_tier1": 2000, "budget_tier2": 1000},
        {"messages_per_minute": 0},
        {"archive_batch_size": 0},
        {"retention_days": -1},
        {"drain_poll_seconds": 0},
        {"messages_per_minute": "lots"},
        {"feeds": [{"source": "no kind"}]},
        {"feeds": "not json"},
        {"feeds_path": "/definitely/not/here.json"},
        {"trello_list_ids": ["q1"]},
    ],
)
def test_invalid_options_raise_config_error(kwargs):
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs({"skip_network": True, **kwargs})
