from __future__ import annotations

import json
from typing import Any

from ..config import FeedConfig
from ..models import FeedResult, JobRecord
from .base import BaseFeed
from .registry import register


@register
class JsonFileFeed(BaseFeed):
    """
    Replays postings from a local JSON array (offline runs, fixtures).

    params:
      path: str                    # file holding [{id, title, budget, ...}, ...]
      items: list[dict]            # or inline records instead of a file

    Runs even with skip_network since it never touches the network.
    """

    kind = "json_file"

    def fetch(self, specs: list[FeedConfig], *, skip_network: bool) -> list[FeedResult]:
        results: list[FeedResult] = []
        for spec in specs:
            result = FeedResult(source=spec.source)
            raw_items, err = self._load(spec.params)
            if err:
                result.errors.append(err)
            for i, item in enumerate(raw_items):
                if not isinstance(item, dict):
                    result.errors.append(f"item[{i}] is not an object")
                    continue
                try:
                    result.records.append(JobRecord.from_dict(item))
                except ValueError as e:
                    result.errors.append(f"item[{i}]: {e}")
            results.append(result)
        return results

    @staticmethod
    def _load(params: dict[str, Any]) -> tuple[list[Any], str | None]:
        if isinstance(params.get("items"), list):
            return params["items"], None
        path = str(params.get("path") or "").strip()
        if not path:
            return [], "json_file feed needs 'path' or 'items'"
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            return [], f"could not read {path}: {e}"
        if not isinstance(data, list):
            return [], f"{path} must hold a JSON array"
        return data, None
