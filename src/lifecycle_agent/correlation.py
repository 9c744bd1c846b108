"""Reconcile ID management — ties every log line of one reconcile together."""

from __future__ import annotations

import uuid
from contextvars import ContextVar

_reconcile_id: ContextVar[str | None] = ContextVar("reconcile_id", default=None)


def get_reconcile_id() -> str | None:
    """Get current reconcile ID from context."""
    return _reconcile_id.get()


def set_reconcile_id(reconcile_id: str | None) -> None:
    """Set reconcile ID in context."""
    _reconcile_id.set(reconcile_id)


def generate_reconcile_id() -> str:
    return str(uuid.uuid4())
