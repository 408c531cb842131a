"""Request-scoped correlation IDs.

The HTTP middleware opens a correlation_scope per request; everything that
logs during the request picks the id up through get_correlation_id().
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

_current: ContextVar[str] = ContextVar("stayhub_correlation_id", default="")

# Longer inbound values are replaced, not echoed
_MAX_INBOUND_LENGTH = 128


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def correlation_id_from_header(value: str | None) -> str:
    """Keep a caller-supplied id if it is short and printable, else mint one."""
    if value and len(value) <= _MAX_INBOUND_LENGTH and value.isprintable():
        return value
    return generate_correlation_id()


def get_correlation_id() -> str:
    return _current.get()


@contextmanager
def correlation_scope(inbound: str | None = None) -> Iterator[str]:
    """Bind a correlation id for the duration of the block and yield it."""
    cid = correlation_id_from_header(inbound)
    token = _current.set(cid)
    try:
        yield cid
    finally:
        _current.reset(token)
