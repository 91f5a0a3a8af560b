# service/logging_utils.py
from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from typing import Any

# ---- Configuration (env-driven, read per write so tests can redirect) --------
#
#   LOG_DIR                 base directory (default /app/local/logs)
#   ACTIVITY_LOG_PREFIX     default "activity"
#   ERROR_LOG_PREFIX        default "error"
#   ACTIVITY_LOG_MAX_BYTES  size rotation threshold; <= 0 disables (date rotation is always on)

_DEFAULT_LOG_DIR = "/app/local/logs"

# Case-insensitive substrings; a matching KEY has its value replaced.
_DEFAULT_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "webhook",
    "authorization",
    "cookie",
}

_REDACTED = "***REDACTED***"

_HOSTNAME = socket.gethostname()
_PID = os.getpid()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record to today's activity JSONL file.
    May raise on unrecoverable I/O/serialization errors; never mutates `record`.
    """
    _write_jsonl(_log_path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity")), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Same as write_activity_log, into the parallel error file."""
    _write_jsonl(_log_path_for_today(os.getenv("ERROR_LOG_PREFIX", "error")), record)


def get_activity_log_path() -> str:
    return _log_path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity"))


def get_error_log_path() -> str:
    return _log_path_for_today(os.getenv("ERROR_LOG_PREFIX", "error"))


def redact(record: dict[str, Any], keys: set[str] | None = None) -> dict[str, Any]:
    """Redacted deep copy of `record` (see _DEFAULT_REDACT_KEYS)."""
    return _redact_deep(record, keys or _DEFAULT_REDACT_KEYS)


# ---- Internal helpers --------------------------------------------------------


def _log_path_for_today(prefix: str) -> str:
    log_dir = os.getenv("LOG_DIR") or _DEFAULT_LOG_DIR
    return os.path.join(log_dir, f"{prefix}-{_dt.date.today().isoformat()}.jsonl")


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


def _rotate_file_if_needed(path: str) -> None:
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    rotated = f"{path}.{_dt.datetime.now().strftime('%Y%m%d-%H%M%S')}"
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, rotated)


def _scrub_url_credentials(value: str) -> str:
    """Slack webhook URLs carry their secret in the path; keep only the host."""
    if value.startswith("https://hooks.slack.com/"):
        return "https://hooks.slack.com/" + _REDACTED
    lower = value.lower()
    if lower.startswith("bearer "):
        return value.split(" ", 1)[0] + " " + _REDACTED
    return value


def _key_matches(name: str, patterns: Iterable[str]) -> bool:
    n = name.lower()
    return any(pat in n for pat in patterns)


def _redact_deep(value: Any, patterns: Iterable[str]) -> Any:
    if isinstance(value, dict):
        return {
            k: (_REDACTED if isinstance(k, str) and _key_matches(k, patterns) else _redact_deep(v, patterns))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    if isinstance(value, str):
        return _scrub_url_credentials(value)
    return value


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    """
    Redact, stamp host/pid, rotate by size if configured, then append one line
    with O_APPEND (atomic per write on POSIX). Retries once on OSError.
    """
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    _rotate_file_if_needed(path)

    payload = _redact_deep(record, _DEFAULT_REDACT_KEYS)
    payload["_meta"] = {"host": _HOSTNAME, "pid": _PID}
    # default=str keeps datetimes/enums from breaking a log line
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    def _append_once() -> None:
        fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
        try:
            os.write(fd, data)
        finally:
            os.close(fd)

    try:
        _append_once()
    except OSError:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        _append_once()
