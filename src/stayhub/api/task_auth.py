"""Caller authentication for /tasks/* worker routes.

Production callers (Cloud Scheduler) present a Google-signed OIDC token
whose audience is TASKS_OIDC_AUDIENCE and, if TASKS_OIDC_SERVICE_ACCOUNT
is set, whose email matches it. With the audience set to the local-dev
value an X-Internal-Task-Secret header equal to INTERNAL_TASK_SECRET is
accepted as well. Anything else is rejected; a missing audience rejects
everything.
"""

from __future__ import annotations

import hmac
import os

from fastapi import HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from stayhub.observability.logging import get_logger
from stayhub.observability.redaction import safe_log_context

logger = get_logger(__name__)

LOCAL_DEV_AUDIENCE = "stayhub-tasks-local"
INTERNAL_SECRET_HEADER = "X-Internal-Task-Secret"


def _reject(reason: str, **context) -> None:
    logger.warning(
        "task caller rejected",
        extra={"extra_fields": safe_log_context(reason=reason, **context)},
    )


def _internal_secret_matches(request: Request) -> bool:
    expected = os.environ.get("INTERNAL_TASK_SECRET", "")
    presented = request.headers.get(INTERNAL_SECRET_HEADER, "")
    return bool(expected) and hmac.compare_digest(presented.encode(), expected.encode())


def oidc_caller(token: str, audience: str) -> str | None:
    """Return the verified caller email (or "oidc"), None if the token fails."""
    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as e:
        _reject("oidc_verification_failed", error=str(e))
        return None

    email = claims.get("email") or ""
    pinned = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    if pinned and email != pinned:
        _reject("service_account_mismatch")
        return None
    return email or "oidc"


def authenticate_task(request: Request) -> str | None:
    """Identify the task caller, or None when it must be rejected."""
    audience = os.environ.get("TASKS_OIDC_AUDIENCE", "")
    if not audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return None

    if audience == LOCAL_DEV_AUDIENCE and _internal_secret_matches(request):
        return "internal-secret"

    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer" or not token:
        _reject("missing_bearer_token")
        return None
    return oidc_caller(token, audience)


def require_task_auth(request: Request) -> str:
    """FastAPI dependency: the authenticated task caller, or 401."""
    caller = authenticate_task(request)
    if caller is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return caller
