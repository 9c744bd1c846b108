"""Structured reconcile logging — one JSON entry per reconcile."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from .correlation import get_reconcile_id

_log = logging.getLogger("lifecycle_agent.reconcile")


def log_reconcile(
    *,
    operation: str,
    name: str,
    phase: str | None,
    outcome: str,
    started: float,
    requeue: bool = False,
    requeue_after: float = 0.0,
    logger: logging.Logger | None = None,
    **extra: Any,
) -> None:
    """Emit the JSON summary of a reconcile.

    ``started`` is a ``time.monotonic()`` reading. Never raises.
    """
    try:
        entry: dict[str, Any] = {
            "operation": operation,
            "name": name,
            "phase": phase,
            "outcome": outcome,
            "requeue": requeue,
            "requeue_after": requeue_after,
            "duration_ms": round((time.monotonic() - started) * 1000, 2),
            "reconcile_id": get_reconcile_id(),
        }
        entry.update(extra)
        (logger or _log).info(json.dumps(entry, default=str))
    except Exception:  # noqa: BLE001
        _log.debug("Failed to emit structured log entry", exc_info=True)
