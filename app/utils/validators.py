"""Deterministic validators and sanitizers for invoice input."""

from __future__ import annotations


def sanitize_text(value: str | None, max_len: int = 20000) -> str | None:
    """Sanitize free-form content before persistence; blank input becomes ``None``."""
    if value is None:
        return None
    cleaned = str(value).replace("\x00", "").strip()
    cleaned = cleaned[:max_len]
    return cleaned or None
