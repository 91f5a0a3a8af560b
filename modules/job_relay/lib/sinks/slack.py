from __future__ import annotations

from .. import render
from ..http_client import HttpClient
from ..models import DeliveryResult, NotificationTask


class SlackWebhook:
    """Chat sink: posts one Block Kit message per task to an incoming webhook."""

    def __init__(self, webhook_url: str, *, client: HttpClient | None = None, timeout: float = 15.0) -> None:
        self.webhook_url = webhook_url
        # No transport retries: 429 must reach the dispatch queue and a retried
        # POST could double-post.
        self._client = client or HttpClient(timeout=timeout, retries=0, retry_statuses=(), retry_methods=())

    def post(self, task: NotificationTask) -> DeliveryResult:
        payload = render.chat_message(task.record, task.category, task.priority)
        return self._client.send("POST", self.webhook_url, json=payload)

    __call__ = post

    def close(self) -> None:
        self._client.close()
