"""
Shared fixtures for gateway tests.

Outbound HTTP never leaves the process: a single ``httpx.MockTransport``
serves both the identity provider's JWKS endpoint and the upstream
generateContent endpoint.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

import httpx
import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm

from gateway.app.config import Settings
from gateway.app.main import create_app


PROJECT_ID = "test-project"
TEST_KID = "test-key-id-2024"
JWKS_URL = "https://keys.example.test/jwk/securetoken"
UPSTREAM_BASE = "https://upstream.example.test/v1beta/models"
TEST_MODEL = "gemini-test-model"
TEST_API_KEY = "test-api-key"


def generate_test_key():
    """Generate an RSA private key for signing test tokens"""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )


def private_pem(key) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode()


# Generate keys once for reuse
TEST_KEY = generate_test_key()
OTHER_KEY = generate_test_key()


def create_mock_jwks(kid: str = TEST_KID, key=TEST_KEY) -> Dict[str, Any]:
    jwk = RSAAlgorithm.to_jwk(key.public_key(), as_dict=True)
    jwk["kid"] = kid
    jwk["use"] = "sig"
    jwk["alg"] = "RS256"
    return {"keys": [jwk]}


def create_id_token(
    sub: Optional[str] = "user-123",
    kid: str = TEST_KID,
    key=TEST_KEY,
    exp_delta_minutes: int = 60,
    audience: str = PROJECT_ID,
    issuer: Optional[str] = None,
) -> str:
    """
    Create a Firebase-style ID token.

    Args:
        sub: Subject (Firebase uid); ``None`` leaves the claim out
        kid: Key ID for JWKS matching
        key: RSA key used to sign
        exp_delta_minutes: Token expiry relative to now
        audience: Expected to be the project id
        issuer: Defaults to the securetoken issuer for PROJECT_ID
    """
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "iss": issuer or f"https://securetoken.google.com/{PROJECT_ID}",
        "aud": audience,
        "iat": now - timedelta(minutes=1),
        "exp": now + timedelta(minutes=exp_delta_minutes),
        "auth_time": int(now.timestamp()),
        "email": "user@example.com",
    }
    if sub is not None:
        payload["sub"] = sub
        payload["user_id"] = sub

    return jwt.encode(payload, private_pem(key), algorithm="RS256", headers={"kid": kid})


def gemini_body(text: Any = "hi") -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


UpstreamReply = Union[httpx.Response, Exception]


class FakeServices:
    """Scripted stand-in for the JWKS endpoint and the upstream API."""

    def __init__(self):
        self.jwks: Dict[str, Any] = create_mock_jwks()
        self.jwks_status = 200
        self.jwks_calls = 0
        self.upstream_replies: List[UpstreamReply] = []
        self.upstream_requests: List[httpx.Request] = []

    def reply(self, *replies: UpstreamReply) -> None:
        self.upstream_replies.extend(replies)

    def reply_json(self, status_code: int, body: Any) -> None:
        self.reply(httpx.Response(status_code, json=body))

    def upstream_json(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.upstream_requests[index].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == JWKS_URL:
            self.jwks_calls += 1
            return httpx.Response(self.jwks_status, json=self.jwks)

        self.upstream_requests.append(request)
        if not self.upstream_replies:
            return httpx.Response(200, json=gemini_body())

        reply = self.upstream_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeSleep:
    """Records backoff delays instead of sleeping."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.delays)


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "GEMINI_API_KEY": TEST_API_KEY,
        "GEMINI_API_BASE_URL": UPSTREAM_BASE,
        "GEMINI_MODEL": TEST_MODEL,
        "REQUIRE_AUTH": True,
        "FIREBASE_SERVICE_ACCOUNT_KEY": json.dumps({
            "type": "service_account",
            "project_id": PROJECT_ID,
            "client_email": "firebase-adminsdk@test-project.iam.gserviceaccount.com",
        }),
        "FIREBASE_JWKS_URL": JWKS_URL,
        "ALLOWED_ORIGINS": None,
        "LOG_LEVEL": "DEBUG",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def build_client(services, fake_sleep):
    """Factory for a started TestClient; closes every client it opened."""
    opened = []

    def _build(**overrides: Any) -> TestClient:
        app = create_app(make_settings(**overrides), transport=services.transport, sleep=fake_sleep)
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield _build

    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def client(build_client):
    return build_client()


@pytest.fixture
def auth_headers():
    return {
        "Authorization": f"Bearer {create_id_token()}",
        "Content-Type": "application/json",
    }
