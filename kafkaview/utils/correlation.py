"""Lightweight correlation ID utilities for structured logging.

Provides a per-request correlation identifier via a ContextVar so that the
per-provider tasks spawned for one overview request include the same
``req_id`` in their log records, from the HTTP layer down to adapter calls.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def set_request_id(request_id: str) -> None:
    """Set the current request correlation id in a context variable."""

    _request_id_var.set(request_id)


def get_request_id() -> str:
    """Return the current request correlation id, or empty string."""

    return _request_id_var.get()


def new_request_id() -> str:
    """Generate, set and return a fresh correlation id."""

    request_id = uuid.uuid4().hex[:12]
    _request_id_var.set(request_id)
    return request_id
