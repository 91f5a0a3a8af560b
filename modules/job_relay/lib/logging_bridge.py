from __future__ import annotations

import logging
from typing import Any

from service import logging_utils as _backend

# Keys whose values never reach the logs (Trello key/token, Slack webhook URL)
_REDACT_KEYS = {
    "token",
    "api_key",
    "apikey",
    "key",
    "secret",
    "webhook",
    "webhook_url",
    "authorization",
}

_ACTIVITY_LOG = logging.getLogger("job_relay.activity")
_ERROR_LOG = logging.getLogger("job_relay.error")


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Copy `record`, scrubbing secret-looking keys at any depth.
    Exact key match (case-insensitive) plus anything ending in '_token' / '_secret'.
    """

    def _scrub(value: Any) -> Any:
        if isinstance(value, dict):
            out: dict[str, Any] = {}
            for k, v in value.items():
                lk = str(k).lower()
                if lk in _REDACT_KEYS or lk.endswith("_token") or lk.endswith("_secret"):
                    out[k] = "***REDACTED***"
                else:
                    out[k] = _scrub(v)
            return out
        if isinstance(value, list):
            return [_scrub(v) for v in value]
        return value

    return _scrub(record)


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record through service.logging_utils.
    Falls back to stdlib logging if the JSONL write fails.
    """
    payload = _redact_record(record)
    try:
        _backend.write_activity_log(payload)
    except Exception:
        _ACTIVITY_LOG.info(payload)
        return
    _ACTIVITY_LOG.debug("%s.%s", payload.get("component"), payload.get("op"))


def error(record: dict[str, Any]) -> None:
    """Write an error record; mirrored to stdlib logging at WARNING so it shows on the console."""
    payload = _redact_record(record)
    try:
        _backend.write_error_log(payload)
    except Exception:
        _ERROR_LOG.error(payload)
        return
    _ERROR_LOG.warning("%s.%s failed: %s", payload.get("component"), payload.get("op"), payload.get("error"))
