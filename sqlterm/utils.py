"""Formatting helpers shared by the CLI views."""

from typing import Optional


def format_duration(seconds: Optional[float]) -> str:
    """Human readable duration: ``850ms``, ``2.35s`` or ``3m 12s``."""
    if seconds is None:
        return "-"
    ms = int(seconds * 1000)
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60000:
        return f"{seconds:.2f}s"
    whole = int(seconds)
    return f"{whole // 60}m {whole % 60}s"


def truncate(text: str, max_len: int) -> str:
    """Shorten ``text`` to ``max_len`` characters, ending in ``...`` when cut."""
    if len(text) <= max_len:
        return text
    return text[:max(max_len - 3, 0)] + "..."


def format_number(n: int) -> str:
    """Integer with thousands separators."""
    return f"{n:,}"

