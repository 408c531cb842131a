"""Redaction helpers for safe logging. Guest data must pass through these."""

import re
from datetime import date
from decimal import Decimal
from typing import Any

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
# Leading + required so ISO dates and numeric ids are left alone
_PHONE_PATTERN = re.compile(r"\+\d[\d\s\-()]{7,}\d")
# Stripe client secrets look like pi_<id>_secret_<token>
_CLIENT_SECRET_PATTERN = re.compile(r"\b(pi|seti)_[A-Za-z0-9]+_secret_[A-Za-z0-9]+\b")

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Redact PII and payment secrets from a string."""
    result = _CLIENT_SECRET_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> Any:
    """Redact any value for safe logging.

    Scalars keep their JSON type; strings are scrubbed; containers are
    reduced to their shape so nested guest data never leaks.
    """
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (Decimal, date)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple, set)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, Any]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}
