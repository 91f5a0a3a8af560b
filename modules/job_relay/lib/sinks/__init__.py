# modules/job_relay/lib/sinks/__init__.py
from __future__ import annotations

from .base import SinkError
from .slack import SlackWebhook
from .trello import TrelloBoard

__all__ = ["SinkError", "SlackWebhook", "TrelloBoard"]
