from __future__ import annotations

from .base import BaseFeed

# kind -> feed class
_REGISTRY: dict[str, type[BaseFeed]] = {}


def register(cls: type[BaseFeed]) -> type[BaseFeed]:
    """Class decorator; cls.kind must be a non-empty string."""
    kind = getattr(cls, "kind", "") or ""
    if not isinstance(kind, str) or not kind.strip():
        raise ValueError(f"Cannot register feed {cls!r}: missing/empty 'kind'.")
    key = kind.strip().lower()
    if key in _REGISTRY and _REGISTRY[key] is not cls:
        raise ValueError(f"Feed kind {key!r} already registered to {_REGISTRY[key]!r}.")
    _REGISTRY[key] = cls
    return cls


def get(kind: str) -> type[BaseFeed]:
    """Case-insensitive lookup. Raises KeyError if unknown."""
    key = (kind or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No feed registered for kind {kind!r}.")
    return _REGISTRY[key]


def all_kinds() -> dict[str, type[BaseFeed]]:
    return dict(_REGISTRY)
