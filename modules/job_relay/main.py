from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'job_relay' module.

    Accepts kwargs (from scheduler/runner), including:
      feeds: list[{kind, source, params}] | feeds_path: str
      state_path: str = "/app/local/state/processed_jobs.json"
      retention_days: float = 7
      messages_per_minute: int = 50
      delay_between_messages_ms: int = 1200
      archive_batch_size: int = 10
      archive_pause_ms: int = 1000
      skip_network: bool = False

    Credentials are read from the environment unless passed explicitly
    (see lib/config.py).

    Returns:
      meta dict; the runner records it and sends nothing.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "job_relay.main",
        "op": "start",
        "feeds": [f"{f.kind}:{f.source}" for f in settings.feeds],
        "state_path": settings.state_path,
        "min_send_interval": settings.min_send_interval,
        "flags": {
            "skip_network": settings.skip_network,
            "archive_enabled": settings.archive_enabled,
        },
    })

    return _run_engine(settings)
