# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from datetime import tzinfo as _dt_tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)


# ---- Internal structures ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    trigger: Any  # apscheduler BaseTrigger
    module: str
    kwargs: dict[str, Any]
    timeout_sec: int | None
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """Small façade around APScheduler so the CLI can manage lifecycle cleanly."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # In-flight jobs finish on their own threads.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """True if stopped before `timeout`."""
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return [job.id for job in self._scheduler.get_jobs()]


# ---- Module API -------------------------------------------------------------


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load configuration, build a BackgroundScheduler, add jobs, and start.

    max_instances defaults to 1: a relay run never overlaps the previous one,
    which is what keeps the dedup store single-writer.
    """
    cfg = config_schema.load_config(config_path)
    config_schema.validate(cfg)
    tz = _resolve_timezone(cfg)

    job_defaults = {"coalesce": True, "max_instances": 1}
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=job_defaults,
        executors={"default": ThreadPoolExecutor(_int_or(cfg.get("executor_workers"), 4))},
        jobstores={"default": MemoryJobStore()},
    )

    for raw in cfg.get("jobs", []):
        try:
            spec = _make_job_spec(raw, default_job_defaults=job_defaults, tz=tz)
        except (ValueError, KeyError):
            LOG.exception("Skipping job due to config error: %r", raw)
            continue
        _add_job(scheduler, spec)

    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


# ---- Helpers ----------------------------------------------------------------


def _preview_trigger(trigger: Any, tz: Any, count: int = 6, start: datetime | None = None) -> list[datetime]:
    """Next `count` fire times after `start` (default now), for logs."""
    now = start or datetime.now(tz=tz)
    prev = now
    times: list[datetime] = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


def _resolve_timezone(cfg: dict[str, Any]) -> Any:
    """APScheduler 3.x wants a pytz zone: config 'timezone', then env TZ, then UTC."""
    tz_name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC


def _make_job_spec(raw: dict[str, Any], default_job_defaults: dict[str, Any], tz: Any) -> JobSpec:
    jid = str(raw.get("id") or raw.get("name") or _require(raw, "module"))
    trigger_def = raw.get("trigger") or {k: raw[k] for k in config_schema.TRIGGER_FIELDS if k in raw}
    return JobSpec(
        id=jid,
        trigger=_build_trigger(trigger_def, str(tz)),
        module=_require(raw, "module"),
        kwargs=dict(raw.get("kwargs") or {}),
        timeout_sec=_int_or(raw.get("timeout_sec"), None),
        max_instances=_int_or(raw.get("max_instances"), default_job_defaults["max_instances"]),
        coalesce=bool(raw.get("coalesce", default_job_defaults["coalesce"])),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
    )


def _tz(z: Any) -> _dt_tzinfo | None:
    if not z:
        return None
    if isinstance(z, _dt_tzinfo):
        return z
    return ZoneInfo(str(z))


def _build_trigger(trig_def: dict[str, Any], tz: str | None) -> Any:
    """
    Build an APScheduler trigger from a dict holding exactly one of:

      {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}}
      {"cron":     {second?, minute?, hour?, day?, day_of_week?, month?, jitter?, timezone?, ...}}
      {"cron":     "*/15 * * * *"}
      {"date":     {"run_at": ISO|epoch|datetime, "timezone"?}} or a bare ISO|epoch value
      {"daily_time": {"time": "HH:MM[:SS]" | [...], "day_of_week"?, "timezone"?}} or "HH:MM"

    A block's own 'timezone' wins; otherwise the scheduler tz is used.
    Raises ValueError on anything malformed.
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")

    present = [k for k in config_schema.TRIGGER_FIELDS if trig_def.get(k) is not None]
    if len(present) != 1:
        raise ValueError("exactly one of {'interval','cron','date','daily_time'} must be provided")
    kind = present[0]
    builders = {
        "interval": _interval_trigger,
        "cron": _cron_trigger,
        "date": _date_trigger,
        "daily_time": _daily_time_trigger,
    }
    return builders[kind](trig_def[kind], _tz(tz))


def _interval_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> IntervalTrigger:
    if not isinstance(spec, dict):
        raise ValueError("interval must be an object with time fields")
    allowed = {"weeks", "days", "hours", "minutes", "seconds", "jitter", "timezone", "start_date", "end_date"}
    unknown = set(spec) - allowed
    if unknown:
        raise ValueError(f"interval has unknown field(s): {sorted(unknown)}")

    def _as_int_ge0(name: str) -> int:
        try:
            v = int(spec.get(name, 0))
        except (TypeError, ValueError) as err:
            raise ValueError(f"interval.{name} must be an integer") from err
        if v < 0:
            raise ValueError(f"interval.{name} must be >= 0")
        return v

    kwargs: dict[str, Any] = {}
    for k in ("weeks", "days", "hours", "minutes", "seconds"):
        v = _as_int_ge0(k)
        if v:
            kwargs[k] = v
    if not kwargs:
        raise ValueError("interval must be greater than 0 (provide at least one nonzero time field)")
    if _as_int_ge0("jitter"):
        kwargs["jitter"] = _as_int_ge0("jitter")
    for k in ("start_date", "end_date"):
        if k in spec:
            kwargs[k] = spec[k]
    return IntervalTrigger(timezone=_tz(spec.get("timezone")) or default_tz, **kwargs)


def _cron_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> CronTrigger:
    if isinstance(spec, str):
        fields = spec.strip().split()
        if len(fields) != 5:
            raise ValueError(f"cron string must have 5 fields (got {len(fields)}): {spec!r}")
        return CronTrigger.from_crontab(spec, timezone=default_tz)
    if not isinstance(spec, dict):
        raise ValueError("cron must be a crontab string or an object")
    allowed = {"second", "minute", "hour", "day", "day_of_week", "month", "timezone", "start_date", "end_date", "jitter"}
    unknown = set(spec) - allowed
    if unknown:
        raise ValueError(f"cron has unknown field(s): {sorted(unknown)}")
    return CronTrigger(
        second=spec.get("second", 0),
        minute=spec.get("minute", 0),
        hour=spec.get("hour", 0),
        day=spec.get("day"),
        day_of_week=spec.get("day_of_week"),
        month=spec.get("month"),
        start_date=spec.get("start_date"),
        end_date=spec.get("end_date"),
        jitter=spec.get("jitter"),
        timezone=_tz(spec.get("timezone")) or default_tz,
    )


def _date_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> DateTrigger:
    if isinstance(spec, dict):
        run_at = spec.get("run_at")
        tzinfo = _tz(spec.get("timezone")) or default_tz
    else:
        run_at, tzinfo = spec, default_tz
    if run_at is None:
        raise ValueError("date trigger requires 'run_at' (or non-empty scalar value)")

    tzinfo = tzinfo or timezone.utc
    if isinstance(run_at, (int, float)):
        dt = datetime.fromtimestamp(run_at, tz=tzinfo)
    elif isinstance(run_at, datetime):
        dt = run_at if run_at.tzinfo else run_at.replace(tzinfo=tzinfo)
    else:
        try:
            dt = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=tzinfo)
    return DateTrigger(run_date=dt, timezone=dt.tzinfo)


def _daily_time_trigger(spec: Any, default_tz: _dt_tzinfo | None) -> Any:
    """One CronTrigger per distinct time (OrTrigger when several); never an hours x minutes cross-product."""
    if isinstance(spec, str):
        spec = {"time": spec}
    if not isinstance(spec, dict):
        raise ValueError("daily_time must be an object or 'HH:MM' string")
    unknown = set(spec) - {"time", "day_of_week", "timezone"}
    if unknown:
        raise ValueError(f"daily_time has unknown field(s): {sorted(unknown)}")

    times = spec.get("time")
    if times is None:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]
    if not isinstance(times, (list, tuple)):
        raise ValueError("daily_time.time must be a string or list of strings")

    tzinfo = _tz(spec.get("timezone")) or default_tz
    triggers = [
        CronTrigger(second=s, minute=m, hour=h, day_of_week=spec.get("day_of_week"), timezone=tzinfo)
        for h, m, s in sorted({_parse_hms(str(t)) for t in times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


def _parse_hms(s: str) -> tuple[int, int, int]:
    parts = s.split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {s!r}")
    try:
        hh, mm = int(parts[0]), int(parts[1])
        ss = int(parts[2]) if len(parts) == 3 else 0
    except ValueError as err:
        raise ValueError(f"daily_time.time must contain integers: {s!r}") from err
    time(hh, mm, ss)  # range check
    return hh, mm, ss


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """Register a wrapper that runs the module through runner.run_module_once() and logs the outcome."""

    def _job_wrapper() -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
        try:
            meta, run_id = runner.run_module_once(
                spec.module,
                kwargs=dict(spec.kwargs),
                trigger_type="scheduled",
                job_context=_build_job_context(spec),
                timeout_sec=spec.timeout_sec,
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            _write_activity(spec, status="error", duration_s=_time.monotonic() - started)
            return

        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs: %s", spec.id, duration, meta.get("message"))
        _write_activity(spec, status="ok", duration_s=duration, run_id=run_id)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )

    if os.getenv("SCHEDULER_PREVIEW") == "1":
        preview = _preview_trigger(spec.trigger, scheduler.timezone, count=int(os.getenv("SCHEDULER_PREVIEW_COUNT", "6")))
        LOG.info("Preview[%s]: %s", spec.id, ", ".join(t.isoformat() for t in preview) or "(none)")
    LOG.info(
        "Registered job[%s] (module=%s, summary=%r, trigger=%s, max_instances=%s, coalesce=%s)",
        spec.id,
        spec.module,
        spec.summary,
        spec.trigger,
        spec.max_instances,
        spec.coalesce,
    )


def _write_activity(spec: JobSpec, status: str, duration_s: float, run_id: str | None = None) -> None:
    """Non-fatal: a failed log write must not kill the scheduler thread."""
    try:
        write_activity_log({
            "ts": datetime.now(timezone.utc).isoformat(),
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": spec.id,
                "module": spec.module,
                "status": status,
                "run_id": run_id,
                "duration_ms": int(duration_s * 1000),
                "summary": spec.summary,
            },
        })
    except Exception:
        LOG.debug("write_activity_log failed for job[%s]", spec.id, exc_info=True)


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d or d[key] in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    """int(v), or `default` when v is None/invalid."""
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _build_job_context(spec: JobSpec) -> dict[str, Any]:
    return {
        "job_id": spec.id,
        "module": spec.module,
        "now_iso": datetime.now(timezone.utc).isoformat(),
    }
