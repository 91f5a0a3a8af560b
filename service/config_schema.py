# service/config_schema.py
from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the service config is invalid."""


TRIGGER_FIELDS = ("cron", "interval", "date", "daily_time")
_DAILY_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the service configuration.

    Resolution order:
      1) Explicit `path` argument
      2) os.environ['CONFIG_PATH']
      3) Empty config ({"jobs": []})

    Each job comes back with an `id` and a nested `trigger` object, whichever
    form the file used.
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using empty default config.")
        cfg: dict[str, Any] = {"jobs": []}
    else:
        cfg = _read_any(resolved_path)

    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """Raise ConfigError on any problem. No prints, no sys.exit()."""
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    jobs = cfg.get("jobs")
    if jobs is None:
        raise ConfigError("Missing required top-level 'jobs' list.")
    if not isinstance(jobs, list):
        raise ConfigError("'jobs' must be a list.")

    tz = cfg.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise ConfigError("'timezone' must be a string if provided.")
    if "executor_workers" in cfg:
        _to_int(cfg["executor_workers"], field="executor_workers", job_id="<top-level>", allow_zero=False)

    seen_ids: set[str] = set()
    for idx, job in enumerate(jobs):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")

        module = job.get("module")
        if not isinstance(module, str) or not module.strip():
            raise ConfigError(f"Job {idx}: 'module' is required and must be a non-empty string.")

        job_id = _derive_job_id(job, idx)
        if job_id in seen_ids:
            raise ConfigError(f"Duplicate job id '{job_id}'.")
        seen_ids.add(job_id)

        trigger = _trigger_block(job, job_id)
        kind = next(iter(trigger))
        value = trigger[kind]
        if kind == "interval":
            if not isinstance(value, dict):
                raise ConfigError(f"Job '{job_id}': interval must be an object of time kwargs.")
            for k, v in value.items():
                if k in ("weeks", "days", "hours", "minutes", "seconds", "jitter"):
                    _to_int(v, field=f"interval.{k}", job_id=job_id, allow_zero=True)
        elif kind == "cron":
            if not isinstance(value, (str, dict)):
                raise ConfigError(f"Job '{job_id}': cron must be a crontab string or an object.")
        elif kind == "date":
            if isinstance(value, dict):
                value = value.get("run_at")
            if not isinstance(value, (str, int, float)) or (isinstance(value, str) and not value.strip()):
                raise ConfigError(f"Job '{job_id}': date must be an ISO-8601 string or epoch seconds.")
        elif kind == "daily_time":
            times = value.get("time") if isinstance(value, dict) else value
            if isinstance(times, str):
                times = [times]
            if not isinstance(times, list) or not times:
                raise ConfigError(f"Job '{job_id}': daily_time needs 'HH:MM' string(s).")
            for t in times:
                _validate_daily_time(t, job_id)

        _require_optional_bool(job, "coalesce", job_id)
        _require_optional_int(job, "timeout_sec", job_id, allow_zero=True)
        _require_optional_int(job, "max_instances", job_id, allow_zero=False)
        _require_optional_int(job, "misfire_grace_time", job_id, allow_zero=True)

        if "kwargs" in job and not isinstance(job["kwargs"], dict):
            raise ConfigError(f"Job '{job_id}': 'kwargs' must be a dict if provided.")

        for opt_str in ("summary", "description"):
            if opt_str in job and not isinstance(job[opt_str], str):
                raise ConfigError(f"Job '{job_id}': '{opt_str}' must be a string if provided.")


# ---- Internal helpers --------------------------------------------------------


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    if "jobs" not in cfg or not isinstance(cfg["jobs"], list):
        cfg["jobs"] = []

    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    normalized_jobs: list[dict[str, Any]] = []
    for idx, job in enumerate(cfg["jobs"]):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")

        job_copy = dict(job)
        job_copy["id"] = _derive_job_id(job_copy, idx)

        # Hoist top-level trigger keys into a nested "trigger" object.
        if "trigger" not in job_copy:
            hoisted = {k: job_copy.pop(k) for k in TRIGGER_FIELDS if k in job_copy}
            if hoisted:
                job_copy["trigger"] = hoisted

        if "coalesce" in job_copy:
            job_copy["coalesce"] = _to_bool(job_copy["coalesce"], field="coalesce", job_id=job_copy["id"])
        for n, allow_zero in (("timeout_sec", True), ("max_instances", False), ("misfire_grace_time", True)):
            if n in job_copy:
                job_copy[n] = _to_int(job_copy[n], field=n, job_id=job_copy["id"], allow_zero=allow_zero)

        normalized_jobs.append(job_copy)

    cfg["jobs"] = normalized_jobs


def _trigger_block(job: dict[str, Any], job_id: str) -> dict[str, Any]:
    """Return {kind: value} with exactly one trigger, from `trigger` or the job's top level."""
    if "trigger" in job:
        container = job["trigger"]
        if not isinstance(container, dict):
            raise ConfigError(f"Job '{job_id}': 'trigger' must be an object when present.")
        also_top_level = [k for k in TRIGGER_FIELDS if k in job]
        if also_top_level:
            raise ConfigError(f"Job '{job_id}': do not mix top-level triggers {also_top_level} with nested 'trigger'.")
    else:
        container = job

    present = [k for k in TRIGGER_FIELDS if container.get(k) is not None]
    if len(present) != 1:
        raise ConfigError(f"Job '{job_id}': exactly one trigger required among {', '.join(TRIGGER_FIELDS)}.")
    return {present[0]: container[present[0]]}


def _derive_job_id(job: dict[str, Any], idx: int) -> str:
    # id | name | module → id
    for key in ("id", "name", "module"):
        v = job.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"job_{idx}"


def _validate_daily_time(dt: Any, job_id: str) -> None:
    if not isinstance(dt, str):
        raise ConfigError(f"Job '{job_id}': daily_time needs 'HH:MM' string(s).")
    m = _DAILY_TIME_RE.match(dt.strip())
    if not m:
        raise ConfigError(f"Job '{job_id}': daily_time must match HH:MM[:SS] (24h), got {dt!r}.")
    hour, minute, second = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
    if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
        raise ConfigError(f"Job '{job_id}': daily_time {dt!r} out of range (00:00..23:59).")


def _require_optional_bool(job: dict[str, Any], field: str, job_id: str) -> None:
    if field in job:
        _to_bool(job[field], field=field, job_id=job_id)


def _require_optional_int(job: dict[str, Any], field: str, job_id: str, *, allow_zero: bool) -> None:
    if field in job:
        _to_int(job[field], field=field, job_id=job_id, allow_zero=allow_zero)


def _to_bool(value: Any, *, field: str, job_id: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"1", "true", "yes", "on"}:
            return True
        if v in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Job '{job_id}': '{field}' must be a boolean (or boolean-like string).")


def _to_int(value: Any, *, field: str, job_id: str, allow_zero: bool) -> int:
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.") from err
    if iv < 0 or (iv == 0 and not allow_zero):
        raise ConfigError(f"Job '{job_id}': '{field}' must be >= {'0' if allow_zero else '1'} (got {iv}).")
    return iv


def _read_any(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    lower = path.lower()
    if lower.endswith((".yml", ".yaml")):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        data = {} if data is None else data
    else:
        # .json, or anything else: JSON first
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config in {path} must be a mapping/object.")
    return data
