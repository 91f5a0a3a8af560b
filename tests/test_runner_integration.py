import json
import re

import pytest


def _feed(*items):
    return [{"kind": "json_file", "source": "fixture", "params": {"items": list(items)}}]


def test_runner_calls_module_and_returns_meta(tmp_path, frozen_utc):
    from service import runner

    meta, run_id = runner.run_module_once(
        module="modules.job_relay",
        kwargs={
            "skip_network": True,
            "state_path": str(tmp_path / "processed.json"),
            "feeds": _feed({"id": "a", "title": "A"}),
        },
    )
    assert isinstance(run_id, str) and re.match(r"^[a-f0-9-]+$", run_id)
    assert meta["fetched"] == 1
    assert meta["skip_network"] is True
    assert "new job(s) relayed" in meta["message"]


def test_runner_writes_activity_record(tmp_path):
    from service import logging_utils, runner

    _, run_id = runner.run_module_once(
        module="modules.job_relay",
        kwargs={"skip_network": "true", "state_path": str(tmp_path / "p.json")},
        trigger_type="adhoc",
        job_context={"job_id": "relay-test"},
    )

    with open(logging_utils.get_activity_log_path(), encoding="utf-8") as f:
        rows = [json.loads(line) for line in f]
    [run_row] = [r for r in rows if r.get("run_id") == run_id]
    assert run_row["ok"] is True
    assert run_row["trigger_type"] == "adhoc"
    assert run_row["context"]["job_id"] == "relay-test"
    # string kwargs were coerced before reaching the module
    assert run_row["kwargs"]["skip_network"] is True


def test_runner_env_kwargs_are_resolved(tmp_path, monkeypatch):
    from service import runner

    monkeypatch.setenv("MY_STATE_FILE", str(tmp_path / "from-env.json"))
    runner.run_module_once(module="modules.job_relay", kwargs={"skip_network": True, "state_path_env": "MY_STATE_FILE"})
    assert (tmp_path / "from-env.json").exists()


def test_runner_propagates_config_errors():
    from modules.job_relay.lib.config import ConfigError
    from service import runner

    with pytest.raises(ConfigError):
        runner.run_module_once(module="modules.job_relay", kwargs={"messages_per_minute": 0, "skip_network": True})


def test_runner_rejects_module_without_run():
    from service import runner

    with pytest.raises(AttributeError):
        runner.run_module_once(module="modules.job_relay.lib.models")
