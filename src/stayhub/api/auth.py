"""Bearer-token authentication for guests and hotel owners.

Session tokens are RS256 JWTs issued by the identity provider (Clerk).
They are checked against the provider's JWKS and turned into a
CurrentUser straight from the claims; there is no local user table.

Configuration (all required, otherwise every request is rejected):
    OIDC_ISSUER, OIDC_AUDIENCE, OIDC_JWKS_URL
Optional:
    OIDC_AUTHORIZED_PARTIES  comma separated allow-list for the azp claim
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import Depends, HTTPException, Request

_REQUIRED_CLAIMS = ["exp", "iss", "aud", "sub"]


@dataclass
class CurrentUser:
    id: str
    email: str | None
    name: str | None


@dataclass(frozen=True)
class OidcSettings:
    issuer: str
    audience: str
    jwks_url: str
    authorized_parties: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> OidcSettings | None:
        issuer = os.environ.get("OIDC_ISSUER")
        audience = os.environ.get("OIDC_AUDIENCE")
        jwks_url = os.environ.get("OIDC_JWKS_URL")
        if not issuer or not audience or not jwks_url:
            return None
        parties = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
        return cls(
            issuer=issuer,
            audience=audience,
            jwks_url=jwks_url,
            authorized_parties=tuple(p.strip() for p in parties.split(",") if p.strip()),
        )


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


class JwksCache:
    """Signing keys by kid, refreshed every ttl seconds or on demand."""

    def __init__(self, ttl: float = 600) -> None:
        self._ttl = ttl
        self._keys: dict[str, dict[str, Any]] = {}
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self._keys = {}
            self._fetched_at = 0.0

    def _refresh(self, jwks_url: str) -> None:
        try:
            jwks = _fetch_jwks(jwks_url)
        except requests.RequestException:
            raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
        self._keys = {k["kid"]: k for k in jwks.get("keys", []) if k.get("kid")}
        self._fetched_at = time.time()

    def get(self, jwks_url: str, kid: str, *, force_refresh: bool = False) -> dict[str, Any] | None:
        with self._lock:
            if force_refresh or time.time() - self._fetched_at >= self._ttl:
                self._refresh(jwks_url)
            return self._keys.get(kid)


_jwks = JwksCache()


def _invalid(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def _decode(token: str, key_data: dict[str, Any], settings: OidcSettings) -> dict[str, Any]:
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(key_data)
    except (jwt.InvalidKeyError, ValueError, KeyError):
        raise _invalid()
    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=settings.issuer,
        audience=settings.audience,
        options={"require": _REQUIRED_CLAIMS},
    )


def verify_token(token: str) -> dict[str, Any]:
    """Verify a session JWT and return its claims.

    Raises:
        HTTPException: 401 for any invalid token, 503 if the JWKS endpoint
            cannot be reached.
    """
    settings = OidcSettings.from_env()
    if settings is None:
        raise _invalid("OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise _invalid()
    if not kid:
        raise _invalid()

    key_data = _jwks.get(settings.jwks_url, kid)
    if key_data is None:
        # Provider may have rotated keys since the last fetch
        key_data = _jwks.get(settings.jwks_url, kid, force_refresh=True)
    if key_data is None:
        raise _invalid()

    try:
        try:
            claims = _decode(token, key_data, settings)
        except jwt.InvalidSignatureError:
            # Same kid re-issued with a new key
            key_data = _jwks.get(settings.jwks_url, kid, force_refresh=True)
            if key_data is None:
                raise _invalid()
            claims = _decode(token, key_data, settings)
    except jwt.ExpiredSignatureError:
        raise _invalid("Token expired")
    except jwt.InvalidTokenError:
        raise _invalid()

    azp = claims.get("azp")
    if settings.authorized_parties and azp is not None and azp not in settings.authorized_parties:
        raise _invalid()
    if not claims.get("sub"):
        raise _invalid()
    return claims


def _bearer_token(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        raise _invalid("Unauthorized")
    return token.strip()


def _user_from_claims(claims: dict[str, Any]) -> CurrentUser:
    name = claims.get("name") or claims.get("given_name") or claims.get("first_name")
    return CurrentUser(id=claims["sub"], email=claims.get("email"), name=name)


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: the signed-in caller, or 401."""
    return _user_from_claims(verify_token(_bearer_token(request)))


CurrentUserDep = Depends(get_current_user)
