from __future__ import annotations

import contextlib
import json
import os
import tempfile
from datetime import datetime, timedelta

from .logging_bridge import activity as log_activity
from .logging_bridge import error as log_error
from .models import ProcessedEntry
from .utils import parse_iso, to_iso_z, utcnow

Snapshot = dict[str, ProcessedEntry]

# ---- Pure snapshot operations ----------------------------------------------


def is_new(job_id: str, snapshot: Snapshot) -> bool:
    return job_id not in snapshot


def admit(job_id: str, snapshot: Snapshot, now: datetime) -> Snapshot:
    """
    Return a snapshot that contains `job_id`.
    Re-admitting a known id is a no-op: the original admission time is kept.
    """
    if job_id in snapshot:
        return snapshot
    out = dict(snapshot)
    out[job_id] = ProcessedEntry(id=job_id, admitted_at=now)
    return out


def sweep(snapshot: Snapshot, retention: timedelta, now: datetime) -> tuple[Snapshot, int]:
    """Drop entries older than `retention`. An entry exactly at the boundary survives."""
    kept = {k: e for k, e in snapshot.items() if now - e.admitted_at <= retention}
    return kept, len(snapshot) - len(kept)


# ---- File-backed store -----------------------------------------------------


class DedupStore:
    """
    JSON file holding [{"id": str, "timestamp": ISO-8601}, ...].

    Reads never raise (a broken file is an empty history); writes are
    temp-file + rename so a crash mid-write leaves the previous file intact.
    Single writer per file.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> Snapshot:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            log_error({
                "component": "job_relay.store",
                "op": "load",
                "path": self.path,
                "error": repr(e),
            })
            return {}

        if not isinstance(data, list):
            log_error({
                "component": "job_relay.store",
                "op": "load",
                "path": self.path,
                "error": f"expected a JSON array, got {type(data).__name__}",
            })
            return {}

        snapshot: Snapshot = {}
        skipped = 0
        for row in data:
            entry = _entry_from_row(row)
            if entry is None:
                skipped += 1
                continue
            # First occurrence wins on duplicated ids.
            snapshot.setdefault(entry.id, entry)

        if skipped:
            log_activity({
                "component": "job_relay.store",
                "op": "load_skipped_rows",
                "path": self.path,
                "skipped": skipped,
            })
        return snapshot

    def persist(self, snapshot: Snapshot) -> bool:
        """Write the whole snapshot. Returns False (after logging) on failure."""
        rows = [
            {"id": e.id, "timestamp": to_iso_z(e.admitted_at)}
            for e in sorted(snapshot.values(), key=lambda e: e.admitted_at)
        ]
        tmp_path = None
        try:
            _ensure_dir(self.path)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".processed-", suffix=".tmp", dir=os.path.dirname(os.path.abspath(self.path))
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, indent=2)
            os.replace(tmp_path, self.path)
            tmp_path = None
            return True
        except OSError as e:
            log_error({
                "component": "job_relay.store",
                "op": "persist",
                "path": self.path,
                "entries": len(rows),
                "error": repr(e),
            })
            return False
        finally:
            if tmp_path:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)

    def cleanup(self, retention: timedelta, now: datetime | None = None) -> int:
        """Load, sweep and write back. Returns how many entries were removed."""
        snapshot = self.load()
        kept, removed = sweep(snapshot, retention, now or utcnow())
        if removed:
            self.persist(kept)
        return removed


# ---- Internal helpers ------------------------------------------------------


def _entry_from_row(row: object) -> ProcessedEntry | None:
    if not isinstance(row, dict):
        return None
    job_id = row.get("id")
    if not isinstance(job_id, str) or not job_id:
        return None
    admitted_at = parse_iso(row.get("timestamp"))
    if admitted_at is None:
        return None
    return ProcessedEntry(id=job_id, admitted_at=admitted_at)


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(os.path.abspath(path))
    if d:
        os.makedirs(d, exist_ok=True)
