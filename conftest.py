"""
Shared pytest fixtures: test settings, an RSA key + JWKS served through a patched PyJWKClient fetch,
an ID token factory, an in-memory user store, and a stubbed cognito-idp client.
"""
import time
from unittest.mock import patch

import boto3
import jwt
import pytest
from botocore import UNSIGNED
from botocore.config import Config
from botocore.stub import Stubber
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientConnectionError
from sqlalchemy import func, select

from cognito_auth.config import CognitoSettings
from cognito_auth.database import make_engine
from cognito_auth.models import LocalUser
from cognito_auth.service import CognitoAuth

REGION = "us-east-1"
USER_POOL_ID = "us-east-1_TestPool"
CLIENT_ID = "test-client-id"
DOMAIN = "auth.example.com"
REDIRECT_URI = "https://app.example/callback"
ISSUER = f"https://cognito-idp.{REGION}.amazonaws.com/{USER_POOL_ID}"
KID = "test-key"


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


def _public_jwk(key, kid: str) -> dict:
    pub = key.public_key().public_numbers()
    return {"kty": "RSA", "kid": kid, "alg": "RS256", "use": "sig", "n": _int_to_b64url(pub.n), "e": _int_to_b64url(pub.e)}


@pytest.fixture(scope="session")
def rsa_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture(scope="session")
def other_rsa_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture
def settings():
    return CognitoSettings(
        region=REGION,
        user_pool_id=USER_POOL_ID,
        client_id=CLIENT_ID,
        domain=DOMAIN,
        redirect_uri=REDIRECT_URI,
        cookie_secret="test-cookie-secret",
        environment="development",
        database_url="sqlite:///:memory:",
    )


class JwksEndpoint:
    """What the patched key set fetch returns, plus how often it was hit."""

    def __init__(self, jwks: dict):
        self.jwks = jwks
        self.calls = 0
        self.fail = False


@pytest.fixture
def jwks_endpoint(rsa_key):
    """Serve the test JWKS from PyJWKClient.fetch_data instead of the network."""
    endpoint = JwksEndpoint({"keys": [_public_jwk(rsa_key, KID)]})

    def fake_fetch_data(client):
        endpoint.calls += 1
        if endpoint.fail:
            raise PyJWKClientConnectionError("Fail to fetch data from the url, err: connection refused")
        return endpoint.jwks

    with patch.object(PyJWKClient, "fetch_data", fake_fetch_data):
        yield endpoint


@pytest.fixture
def make_id_token(rsa_key):
    """Build a signed Cognito-style ID token; keyword overrides replace claims."""

    def _make(*, key=None, kid=KID, algorithm="RS256", headers=None, **overrides):
        now = int(time.time())
        claims = {
            "sub": "11111111-2222-3333-4444-555555555555",
            "email": "new.user@example.com",
            "email_verified": False,
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "token_use": "id",
            "iat": now,
            "exp": now + 3600,
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        hdrs = {"kid": kid} if kid else {}
        hdrs.update(headers or {})
        return jwt.encode(claims, key if key is not None else rsa_key, algorithm=algorithm, headers=hdrs)

    return _make


@pytest.fixture
def cognito_client():
    return boto3.client(
        "cognito-idp",
        region_name=REGION,
        config=Config(signature_version=UNSIGNED),
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def cognito_stub(cognito_client):
    with Stubber(cognito_client) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def auth(settings, cognito_client):
    service = CognitoAuth(settings, engine=make_engine("sqlite:///:memory:"), cognito_client=cognito_client)
    yield service
    service.close()


@pytest.fixture
def user_count():
    """Number of rows in the users table behind a UserStore."""

    def _count(store) -> int:
        with store.session_factory() as db:
            return db.scalar(select(func.count()).select_from(LocalUser))

    return _count
