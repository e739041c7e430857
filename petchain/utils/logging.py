"""Rate-limited logging used by the flush loop."""

from __future__ import annotations

import logging
import time

_LAST: dict[str, float] = {}
_MAX_CODES = 1024


def warn_once(logger: logging.Logger, code: str, message: str, *args, window: float = 60) -> bool:
    """Emit ``message`` at WARNING level at most once per ``window`` seconds for ``code``.

    Returns ``True`` when the record was emitted. The code cache is capped at
    ``_MAX_CODES`` entries; the stalest code is evicted first.
    """
    now = time.monotonic()
    last = _LAST.get(code)
    if last is not None and now - last <= window:
        return False
    if code not in _LAST and len(_LAST) >= _MAX_CODES:
        stalest = min(_LAST, key=_LAST.__getitem__)
        del _LAST[stalest]
    _LAST[code] = now
    logger.warning("[%s] " + message, code, *args)
    return True


def reset_warnings() -> None:
    """Forget every code seen so far."""
    _LAST.clear()
