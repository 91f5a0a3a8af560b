from __future__ import annotations

import logging
from typing import Any

import requests

from .. import logging_bridge, render
from ..config import TrelloCredentials
from ..http_client import HttpClient, scrub_url_secrets
from ..models import BudgetCategory, DeliveryResult, JobRecord, Priority
from .base import SinkError

LOG = logging.getLogger(__name__)

API_BASE = "https://api.trello.com/1"

# Left-to-right order of the category lists on the board
LIST_ORDER = (BudgetCategory.QUICK_WINS, BudgetCategory.MEDIUM_PROJECTS, BudgetCategory.HIGH_VALUE)


class TrelloBoard:
    """
    Kanban sink: one list per budget category, one card per posting.

    Auth is Trello's key/token query pair. Writes return DeliveryResult;
    only list_cards raises (SinkError) because the archiver cannot proceed without it.
    """

    def __init__(
        self,
        creds: TrelloCredentials,
        *,
        client: HttpClient | None = None,
        timeout: float = 15.0,
        api_base: str = API_BASE,
    ) -> None:
        self.creds = creds
        self.api_base = api_base.rstrip("/")
        self.list_ids: dict[BudgetCategory, str] = dict(creds.list_ids)
        # Card creation is a POST and never retried at the transport layer;
        # 429 is left for the caller to see.
        self._client = client or HttpClient(
            timeout=timeout,
            retry_statuses=(500, 502, 503, 504),
            retry_methods=("GET", "PUT"),
        )

    # ---- Board setup ----

    def initialize(self) -> None:
        """
        Make sure every category has a list, then order them QUICK_WINS, MEDIUM_PROJECTS, HIGH_VALUE.
        Lists named like the category label are reused before creating new ones.
        """
        existing = self._get(f"/boards/{self.creds.board_id}/lists")
        by_name = {str(lst.get("name", "")).strip().lower(): lst for lst in existing if isinstance(lst, dict)}

        for cat in LIST_ORDER:
            if self.list_ids.get(cat):
                continue
            found = by_name.get(cat.label.lower())
            if found and found.get("id"):
                self.list_ids[cat] = str(found["id"])
                continue
            created = self._client.send(
                "POST",
                self._url("/lists"),
                params=self._auth(),
                json={"name": cat.label, "idBoard": self.creds.board_id, "pos": "bottom"},
            )
            if not created.ok or not isinstance(created.payload, dict):
                raise SinkError(f"could not create list {cat.label!r}: {created.error}")
            self.list_ids[cat] = str(created.payload["id"])
            logging_bridge.activity({
                "component": "job_relay.trello",
                "op": "create_list",
                "category": cat.value,
                "list_id": self.list_ids[cat],
            })

        self._reorder(existing)

    def _reorder(self, existing: list[dict[str, Any]]) -> None:
        current = {str(lst.get("id")): lst.get("pos") for lst in existing if isinstance(lst, dict)}
        wanted = [self.list_ids[cat] for cat in LIST_ORDER]
        positions = [current.get(list_id) for list_id in wanted]
        if all(isinstance(p, (int, float)) for p in positions) and positions == sorted(positions):
            return
        for idx, list_id in enumerate(wanted, start=1):
            result = self._client.send("PUT", self._url(f"/lists/{list_id}"), params=self._auth(), json={"pos": idx})
            if not result.ok:
                logging_bridge.error({
                    "component": "job_relay.trello",
                    "op": "reorder_list",
                    "list_id": list_id,
                    "status_code": result.status_code,
                    "error": result.error,
                })

    # ---- Cards ----

    def create_card(self, record: JobRecord, category: BudgetCategory, priority: Priority) -> DeliveryResult:
        list_id = self.list_ids.get(category)
        if not list_id:
            return DeliveryResult.failed(f"no Trello list configured for {category.value}")
        body = {"idList": list_id, **render.card_payload(record, category, priority)}
        return self._client.send("POST", self._url("/cards"), params=self._auth(), json=body)

    def list_cards(self) -> list[dict[str, Any]]:
        cards = self._get(f"/boards/{self.creds.board_id}/cards", fields="id,name,closed,dateLastActivity")
        return [c for c in cards if isinstance(c, dict)]

    def close_card(self, card_id: str) -> DeliveryResult:
        return self._client.send("PUT", self._url(f"/cards/{card_id}"), params=self._auth(), json={"closed": True})

    def close(self) -> None:
        self._client.close()

    # ---- Internal helpers ----

    def _url(self, path: str) -> str:
        return f"{self.api_base}{path}"

    def _auth(self) -> dict[str, str]:
        return {"key": self.creds.api_key, "token": self.creds.token}

    def _get(self, path: str, **params: str) -> list[Any]:
        try:
            data = self._client.get_json(self._url(path), params={**self._auth(), **params})
        except (requests.RequestException, ValueError) as e:
            raise SinkError(f"GET {path} failed: {scrub_url_secrets(str(e))}") from None
        if not isinstance(data, list):
            raise SinkError(f"GET {path} returned {type(data).__name__}, expected a list")
        return data
