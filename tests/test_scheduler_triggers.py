from datetime import datetime, timezone
from pathlib import Path

import pytest

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "config.example.yaml"
DEFAULTS = {"coalesce": True, "max_instances": 1}

# 2099-01-05 is a Monday
MONDAY = datetime(2099, 1, 5, tzinfo=timezone.utc)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _job_spec(cfg, index=0):
    from service import scheduler

    return scheduler._make_job_spec(cfg["jobs"][index], DEFAULTS, tz=scheduler._resolve_timezone(cfg))


def test_example_relay_job_runs_every_fifteen_minutes():
    from service import config_schema, scheduler

    cfg = config_schema.load_config(str(EXAMPLE_CONFIG))
    spec = _job_spec(cfg)

    assert (spec.id, spec.module, spec.timeout_sec) == ("job-relay", "modules.job_relay", 600)
    assert spec.trigger.interval.total_seconds() == 900
    times = scheduler._preview_trigger(spec.trigger, spec.trigger.timezone, count=3, start=MONDAY)
    assert times == [_utc(2099, 1, 5, 0, 15), _utc(2099, 1, 5, 0, 30), _utc(2099, 1, 5, 0, 45)]


def test_min_config_date_trigger_fires_once(write_min_config):
    from service import config_schema

    spec = _job_spec(config_schema.load_config())

    assert spec.id == "relay-never"
    assert spec.kwargs["skip_network"] is True
    run_at = _utc(2099, 1, 1)
    assert spec.trigger.run_date == run_at
    assert spec.trigger.get_next_fire_time(None, MONDAY.replace(year=2098)) == run_at
    assert spec.trigger.get_next_fire_time(run_at, run_at) is None


def test_cron_string_relay_during_working_hours():
    from service.scheduler import _build_trigger, _preview_trigger

    trig = _build_trigger({"cron": "*/15 8-18 * * mon-fri"}, "UTC")
    friday_evening = _utc(2099, 1, 9, 18, 40)

    assert _preview_trigger(trig, timezone.utc, count=3, start=friday_evening) == [
        _utc(2099, 1, 9, 18, 45),
        _utc(2099, 1, 12, 8, 0),
        _utc(2099, 1, 12, 8, 15),
    ]


def test_cron_object_defaults_seconds_to_zero():
    from service.scheduler import _build_trigger, _preview_trigger

    trig = _build_trigger({"cron": {"minute": "0,30", "hour": "9-10"}}, "UTC")
    times = _preview_trigger(trig, timezone.utc, count=5, start=_utc(2099, 1, 5, 8, 59, 59))

    assert [(t.day, t.hour, t.minute, t.second) for t in times] == [
        (5, 9, 0, 0),
        (5, 9, 30, 0),
        (5, 10, 0, 0),
        (5, 10, 30, 0),
        (6, 9, 0, 0),
    ]


def test_date_without_offset_uses_scheduler_timezone():
    from service.scheduler import _build_trigger

    local = _build_trigger({"date": "2099-01-01T06:00:00"}, "America/New_York")
    epoch = _build_trigger({"date": {"run_at": int(_utc(2099, 1, 1, 11).timestamp())}}, "UTC")

    assert local.run_date == _utc(2099, 1, 1, 11)
    assert epoch.run_date == _utc(2099, 1, 1, 11)


def test_daily_times_are_exact_pairs():
    from apscheduler.triggers.combining import OrTrigger

    from service.scheduler import _build_trigger, _preview_trigger

    trig = _build_trigger({"daily_time": {"time": ["12:30", "07:00", "07:00"]}}, "UTC")

    assert isinstance(trig, OrTrigger)
    times = _preview_trigger(trig, timezone.utc, count=3, start=_utc(2099, 1, 5, 6))
    assert times == [_utc(2099, 1, 5, 7, 0), _utc(2099, 1, 5, 12, 30), _utc(2099, 1, 6, 7, 0)]


@pytest.mark.parametrize(
    "trigger",
    [
        {},
        {"interval": {"minutes": 15}, "cron": "*/15 * * * *"},
        {"interval": {"minutes": 0}},
        {"interval": {"minutes": 15, "every": 2}},
        {"cron": "*/15 * * * * *"},
        {"cron": {"minutes": 15}},
        {"date": {"timezone": "UTC"}},
        {"daily_time": {"time": "24:00"}},
    ],
)
def test_malformed_triggers_are_rejected(trigger):
    from service.scheduler import _build_trigger

    with pytest.raises(ValueError):
        _build_trigger(trigger, "UTC")


def test_relay_job_spec_never_overlaps_by_default():
    from service.scheduler import _make_job_spec

    spec = _make_job_spec(
        {"id": "relay", "module": "modules.job_relay", "trigger": {"interval": {"minutes": 15}}},
        default_job_defaults=DEFAULTS,
        tz="UTC",
    )
    assert spec.max_instances == 1
    assert spec.coalesce is True
    assert spec.kwargs == {}


def test_start_registers_configured_jobs(write_min_config):
    from service import scheduler

    controller = scheduler.start(str(write_min_config))
    try:
        assert list(controller.get_job_ids()) == ["relay-never"]
    finally:
        controller.stop()
    assert controller.join(timeout=1.0) is True
