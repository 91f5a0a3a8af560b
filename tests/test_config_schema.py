import pytest


def test_load_and_validate_min_config(write_min_config):
    from service import config_schema

    cfg = config_schema.load_config()  # CONFIG_PATH set by fixture
    jobs = cfg.get("jobs", [])
    assert isinstance(jobs, list) and jobs, "expected at least one job"
    config_schema.validate(cfg)
    assert jobs[0]["id"] == "relay-never"
    assert jobs[0]["module"] == "modules.job_relay"


def test_yaml_config_hoists_top_level_trigger(tmp_path):
    from service import config_schema

    p = tmp_path / "config.yaml"
    p.write_text(
        "timezone: UTC\n"
        "jobs:\n"
        "  - module: modules.job_relay\n"
        "    interval: {minutes: 15}\n"
        "    coalesce: 'yes'\n"
        "    timeout_sec: '600'\n",
        encoding="utf-8",
    )
    cfg = config_schema.load_config(str(p))
    config_schema.validate(cfg)

    [job] = cfg["jobs"]
    assert job["id"] == "modules.job_relay"
    assert job["trigger"] == {"interval": {"minutes": 15}}
    assert job["coalesce"] is True
    assert job["timeout_sec"] == 600


def test_example_config_is_valid():
    import pathlib

    from service import config_schema

    example = pathlib.Path(__file__).resolve().parent.parent / "config.example.yaml"
    cfg = config_schema.load_config(str(example))
    config_schema.validate(cfg)
    assert cfg["jobs"][0]["kwargs"]["feeds"][0]["kind"] == "rss"


@pytest.mark.parametrize(
    "jobs",
    [
        [{"module": "m", "trigger": {}}],
        [{"module": "m", "trigger": {"interval": {"minutes": 1}, "cron": "* * * * *"}}],
        [{"module": "m", "trigger": {"daily_time": "25:00"}}],
        [{"id": "x", "module": "m", "interval": {"minutes": 1}}, {"id": "x", "module": "m", "interval": {"hours": 1}}],
        [{"module": "", "interval": {"minutes": 1}}],
        [{"module": "m", "interval": {"minutes": 1}, "kwargs": []}],
    ],
)
def test_validate_rejects_bad_jobs(jobs):
    from service import config_schema

    with pytest.raises(config_schema.ConfigError):
        config_schema.validate({"jobs": jobs})


def test_missing_file_raises_config_error(tmp_path):
    from service import config_schema

    with pytest.raises(config_schema.ConfigError):
        config_schema.load_config(str(tmp_path / "missing.json"))
