from __future__ import annotations


class SinkError(Exception):
    """A sink read (e.g. listing board cards) could not be completed."""
