"""Simple data redaction helpers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "**REDACTED**"

SENSITIVE_KEYS = frozenset({"Authorization", "authorization", "refreshToken", "accessToken", "password"})


def redact(data: Mapping[str, Any] | None, keys: Iterable[str] = SENSITIVE_KEYS) -> dict[str, Any]:
    """Return a copy of *data* with sensitive *keys* hidden."""
    if not data:
        return {}
    hidden = set(keys)
    return {k: (REDACTED if k in hidden else v) for k, v in data.items()}
