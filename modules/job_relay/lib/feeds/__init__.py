# modules/job_relay/lib/feeds/__init__.py
from __future__ import annotations

# Importing the concrete feeds registers them.
from . import api, html_search, json_file, rss
from .base import BaseFeed, PostingFilter
from .registry import all_kinds, get, register

__all__ = ["BaseFeed", "PostingFilter", "all_kinds", "api", "get", "html_search", "json_file", "register", "rss"]
