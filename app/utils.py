"""Utility helpers for the YouTube Universe service."""

from __future__ import annotations

from typing import Any, Final


class _Missing:
    """Sentinel type marking an absent value in a nested lookup."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()


def dig(tree: Any, *path: str | int, default: Any = MISSING) -> Any:
    """Walk ``path`` through nested dicts/lists and return the value found.

    String steps index mappings, integer steps index sequences (negative
    indexes count from the end). Any missing key, out-of-range index or
    type mismatch along the way returns ``default`` instead of raising. JSON
    ``null`` leaves count as missing too.
    """

    node = tree
    for step in path:
        if isinstance(step, int) and not isinstance(step, bool):
            if not isinstance(node, list):
                return default
            try:
                node = node[step]
            except IndexError:
                return default
        else:
            if not isinstance(node, dict) or step not in node:
                return default
            node = node[step]
    if node is None:
        return default
    return node


def text_of(node: Any) -> str:
    """Flatten a ``simpleText``/``runs`` text node into a plain string."""

    simple = dig(node, "simpleText")
    if isinstance(simple, str):
        return simple
    runs = dig(node, "runs", default=[])
    if not isinstance(runs, list):
        return ""
    return "".join(
        str(run.get("text") or "") for run in runs if isinstance(run, dict)
    )


def absolute_url(value: Any) -> str | None:
    """Return ``value`` as an absolute http(s) URL, or ``None``."""

    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if candidate.startswith("//"):
        candidate = f"https:{candidate}"
    if candidate.startswith(("http://", "https://")):
        return candidate
    return None


def shorten_id(value: str, length: int = 8) -> str:
    """Return the leading characters of an identifier followed by an ellipsis."""

    return f"{value[:length]}…"
