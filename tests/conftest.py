"""Shared pytest fixtures for StayHub booking tests."""
import sys
sys.dont_write_bytecode = True

from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from helpers import (  # noqa: E402
    OIDC_ENV,
    FakeStripeClient,
    InMemoryBookingRepository,
    _create_jwks,
    _create_token,
    _generate_rsa_keypair,
)


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset global JWKS cache to avoid cross-test contamination.

    The JWKS cache is a module-level singleton that persists between tests.
    Without this reset, a cached JWKS from a previous test may not match the
    current test's keys.
    """
    import stayhub.api.auth as auth_module

    auth_module._jwks.clear()
    yield
    auth_module._jwks.clear()


@pytest.fixture(scope="session")
def rsa_keypair():
    return _generate_rsa_keypair()


@pytest.fixture
def jwks(rsa_keypair):
    _, public_key = rsa_keypair
    return _create_jwks(public_key)


@pytest.fixture
def oidc_env():
    with patch.dict("os.environ", OIDC_ENV):
        yield OIDC_ENV


@pytest.fixture
def mock_jwks_fetch(jwks):
    with patch("stayhub.api.auth._fetch_jwks", return_value=jwks) as mock:
        yield mock


@pytest.fixture
def auth_headers(rsa_keypair, oidc_env, mock_jwks_fetch):
    """Authorization header for user-123 (guest@example.com)."""
    private_key, _ = rsa_keypair
    return {"Authorization": f"Bearer {_create_token(private_key)}"}


@pytest.fixture
def repo():
    return InMemoryBookingRepository()


@pytest.fixture
def stripe_client():
    return FakeStripeClient()


@pytest.fixture
def client(repo, stripe_client):
    app = create_test_app(repo, stripe_client)
    return TestClient(app)


def create_test_app(repo, stripe_client, role="public"):
    from stayhub.api.factory import create_app

    return create_app(role=role, booking_repository=repo, stripe_client=stripe_client)


@pytest.fixture
def worker_client(repo, stripe_client):
    app = create_test_app(repo, stripe_client, role="worker")
    return TestClient(app)
