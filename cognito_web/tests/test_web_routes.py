"""Tests for the Cognito login routes: hosted-UI login/callback/logout, passwordless, refresh."""
from dataclasses import replace
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from cognito_auth.cookies import ALL_COOKIES
from cognito_auth.database import make_engine
from cognito_auth.service import CognitoAuth
from cognito_web.main import create_app

EMAIL = "new.user@example.com"
SESSION = "S1-challenge-session-0123456789abcdef"


class MockResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


@pytest.fixture
def client(auth):
    return TestClient(create_app(auth), follow_redirects=False)


def signed(auth, name, value):
    return auth.cookies._serializer(name).dumps(value)


def deleted_cookies(response):
    """Names of cookies the response deletes (Max-Age=0)."""
    names = set()
    for header in response.headers.get_list("set-cookie"):
        if "max-age=0" in header.lower():
            names.add(header.split("=", 1)[0])
    return names


def token_response(id_token, **extra):
    payload = {"access_token": "at", "id_token": id_token, "refresh_token": "rt", "expires_in": 3600}
    payload.update(extra)
    return MockResponse(payload=payload)


# --- hosted UI login ---


def test_login_redirects_to_hosted_ui_and_sets_state(client):
    r = client.get("/auth/cognito/login")
    assert r.status_code == 302
    location = urlparse(r.headers["location"])
    assert location.netloc == "auth.example.com"
    assert location.path == "/oauth2/authorize"
    params = parse_qs(location.query)
    assert params["response_type"] == ["code"]
    assert params["client_id"] == ["test-client-id"]
    assert params["state"][0]
    assert client.cookies.get("cognito_state")


def test_login_without_configuration_is_500(settings, cognito_client):
    auth = CognitoAuth(replace(settings, domain=""), engine=make_engine("sqlite:///:memory:"), cognito_client=cognito_client)
    r = TestClient(create_app(auth), follow_redirects=False).get("/auth/cognito/login")
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to initiate Cognito login"}
    auth.close()


def test_callback_sets_token_cookies_and_me_works(client, jwks_endpoint, make_id_token):
    r = client.get("/auth/cognito/login")
    state = parse_qs(urlparse(r.headers["location"]).query)["state"][0]

    post = MagicMock(return_value=token_response(make_id_token()))
    with patch("cognito_auth.oauth.httpx.post", post):
        r = client.get("/auth/cognito/callback", params={"code": "auth-code", "state": state})

    assert r.status_code == 302
    assert r.headers["location"] == "/admin"
    assert post.call_args.kwargs["data"]["code"] == "auth-code"
    assert "cognito_state" in deleted_cookies(r)
    assert client.cookies.get("cognito_id_token")
    assert client.cookies.get("cognito_refresh_token")

    me = client.get("/me")
    assert me.status_code == 200
    assert me.json()["email"] == EMAIL
    assert me.json()["emailVerified"] is False


def test_callback_state_mismatch_never_exchanges_code(client):
    client.get("/auth/cognito/login")
    post = MagicMock()
    with patch("cognito_auth.oauth.httpx.post", post):
        r = client.get("/auth/cognito/callback", params={"code": "auth-code", "state": "forged"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid state parameter"}
    assert "cognito_state" in deleted_cookies(r)
    post.assert_not_called()


def test_callback_without_state_cookie_is_mismatch(client):
    r = client.get("/auth/cognito/callback", params={"code": "auth-code", "state": "anything"})
    assert r.status_code == 400


def test_callback_provider_error_redirects_to_login(client):
    r = client.get("/auth/cognito/callback", params={"error": "access_denied", "error_description": "denied"})
    assert r.status_code == 302
    assert r.headers["location"] == "/admin/login?error=access_denied"


def test_callback_without_code(client):
    r = client.get("/auth/cognito/callback", params={"state": "st"})
    assert r.status_code == 400
    assert r.json() == {"error": "Authorization code not provided"}


def test_callback_exchange_failure_redirects_to_login(client):
    r = client.get("/auth/cognito/login")
    state = parse_qs(urlparse(r.headers["location"]).query)["state"][0]
    post = MagicMock(return_value=MockResponse(status_code=400, text='{"error":"invalid_grant"}'))
    with patch("cognito_auth.oauth.httpx.post", post):
        r = client.get("/auth/cognito/callback", params={"code": "used-code", "state": state})
    assert r.status_code == 302
    assert r.headers["location"] == "/admin/login?error=authentication_failed"
    assert not client.cookies.get("cognito_id_token")


def test_callback_with_unverifiable_id_token_fails(client, jwks_endpoint, make_id_token):
    r = client.get("/auth/cognito/login")
    state = parse_qs(urlparse(r.headers["location"]).query)["state"][0]
    post = MagicMock(return_value=token_response(make_id_token(aud="another-client")))
    with patch("cognito_auth.oauth.httpx.post", post):
        r = client.get("/auth/cognito/callback", params={"code": "auth-code", "state": state})
    assert r.headers["location"] == "/admin/login?error=authentication_failed"
    assert not client.cookies.get("cognito_id_token")


# --- logout ---


def test_logout_clears_cookies_and_goes_to_hosted_ui(client):
    r = client.get("/auth/cognito/logout")
    assert r.status_code == 302
    location = urlparse(r.headers["location"])
    assert location.netloc == "auth.example.com"
    assert location.path == "/logout"
    assert parse_qs(location.query)["logout_uri"] == ["http://testserver/admin/login"]
    assert deleted_cookies(r) == set(ALL_COOKIES)


def test_logout_without_domain_is_local(settings, cognito_client):
    auth = CognitoAuth(replace(settings, domain=""), engine=make_engine("sqlite:///:memory:"), cognito_client=cognito_client)
    r = TestClient(create_app(auth), follow_redirects=False).get("/auth/cognito/logout")
    assert r.headers["location"] == "http://testserver/admin/login"
    assert deleted_cookies(r) == set(ALL_COOKIES)
    auth.close()


# --- refresh ---


def test_refresh_without_cookie(client):
    r = client.post("/auth/cognito/refresh")
    assert r.status_code == 401


def test_refresh_sets_new_tokens(client, auth):
    client.cookies.set("cognito_refresh_token", signed(auth, "cognito_refresh_token", "rt-1"))
    payload = {"access_token": "new-at", "id_token": "new-id", "expires_in": 900}
    post = MagicMock(return_value=MockResponse(payload=payload))
    with patch("cognito_auth.oauth.httpx.post", post):
        r = client.post("/auth/cognito/refresh")
    assert r.status_code == 200
    assert r.json() == {"success": True, "expiresIn": 900}
    assert post.call_args.kwargs["data"]["refresh_token"] == "rt-1"
    assert auth.cookies.read_access_token({"cognito_access_token": client.cookies.get("cognito_access_token")}) == "new-at"


def test_refresh_rejected_clears_session(client, auth):
    client.cookies.set("cognito_refresh_token", signed(auth, "cognito_refresh_token", "revoked"))
    post = MagicMock(return_value=MockResponse(status_code=400, text='{"error":"invalid_grant"}'))
    with patch("cognito_auth.oauth.httpx.post", post):
        r = client.post("/auth/cognito/refresh")
    assert r.status_code == 401
    assert deleted_cookies(r) == set(ALL_COOKIES)


# --- passwordless ---


def _initiate_response():
    return {
        "ChallengeName": "EMAIL_OTP",
        "Session": SESSION,
        "ChallengeParameters": {
            "CODE_DELIVERY_DESTINATION": "n***@e***",
            "CODE_DELIVERY_DELIVERY_MEDIUM": "EMAIL",
            "CODE_DELIVERY_ATTRIBUTE_NAME": "email",
        },
    }


def test_passwordless_login_end_to_end(client, auth, cognito_stub, jwks_endpoint, make_id_token, user_count):
    cognito_stub.add_response(
        "initiate_auth",
        _initiate_response(),
        {
            "ClientId": "test-client-id",
            "AuthFlow": "USER_AUTH",
            "AuthParameters": {"USERNAME": EMAIL, "PREFERRED_CHALLENGE": "EMAIL_OTP"},
        },
    )
    cognito_stub.add_response(
        "respond_to_auth_challenge",
        {"ChallengeParameters": {}, "AuthenticationResult": {"AccessToken": "at", "IdToken": make_id_token(), "ExpiresIn": 3600}},
        {
            "ClientId": "test-client-id",
            "ChallengeName": "EMAIL_OTP",
            "ChallengeResponses": {"USERNAME": EMAIL, "EMAIL_OTP_CODE": "123456"},
            "Session": SESSION,
        },
    )

    r = client.post("/auth/cognito/passwordless/send-code", json={"email": EMAIL})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["codeDeliveryDetails"] == {"destination": "n***@e***", "deliveryMedium": "EMAIL", "attributeName": "email"}
    assert "session" not in body
    assert client.cookies.get("cognito_passwordless_session")

    r = client.post("/auth/cognito/passwordless/verify-code", json={"code": "123456"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Authentication successful", "redirectUrl": "/admin"}
    assert {"cognito_passwordless_session", "cognito_passwordless_email"} <= deleted_cookies(r)
    assert not client.cookies.get("cognito_passwordless_session")
    # No refresh token came back, so none is stored
    assert not client.cookies.get("cognito_refresh_token")

    me = client.get("/me")
    assert me.status_code == 200
    assert me.json()["email"] == EMAIL
    assert me.json()["emailVerified"] is False

    again = client.get("/me")
    assert again.json()["id"] == me.json()["id"]
    assert user_count(auth.store) == 1


def test_send_code_requires_email(client):
    r = client.post("/auth/cognito/passwordless/send-code", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "Email is required"}


def test_send_code_rejects_malformed_email(client, cognito_stub):
    r = client.post("/auth/cognito/passwordless/send-code", json={"email": "not-an-email"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid email format"}


def test_send_code_unknown_user(client, cognito_stub):
    cognito_stub.add_client_error("initiate_auth", "UserNotFoundException", "User does not exist.", 400)
    r = client.post("/auth/cognito/passwordless/send-code", json={"email": EMAIL})
    assert r.status_code == 404


def test_send_code_otp_not_enabled(client, cognito_stub):
    cognito_stub.add_client_error("initiate_auth", "NotAuthorizedException", "Auth flow not enabled", 400)
    r = client.post("/auth/cognito/passwordless/send-code", json={"email": EMAIL})
    assert r.status_code == 403


def test_verify_code_requires_code(client):
    r = client.post("/auth/cognito/passwordless/verify-code", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "Verification code is required"}


def test_verify_code_without_flow_cookies(client):
    r = client.post("/auth/cognito/passwordless/verify-code", json={"code": "123456"})
    assert r.status_code == 400
    assert r.json() == {"error": "Session expired. Please request a new code."}


def test_verify_code_mismatch_clears_flow(client, auth, cognito_stub):
    client.cookies.set("cognito_passwordless_session", signed(auth, "cognito_passwordless_session", SESSION))
    client.cookies.set("cognito_passwordless_email", signed(auth, "cognito_passwordless_email", EMAIL))
    cognito_stub.add_client_error(
        "respond_to_auth_challenge", "CodeMismatchException", "Invalid code or auth state for the user.", 400
    )
    r = client.post("/auth/cognito/passwordless/verify-code", json={"code": "123457"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid verification code"}
    assert {"cognito_passwordless_session", "cognito_passwordless_email"} <= deleted_cookies(r)
    assert not client.cookies.get("cognito_id_token")


def test_verify_code_expired(client, auth, cognito_stub):
    client.cookies.set("cognito_passwordless_session", signed(auth, "cognito_passwordless_session", SESSION))
    client.cookies.set("cognito_passwordless_email", signed(auth, "cognito_passwordless_email", EMAIL))
    cognito_stub.add_client_error("respond_to_auth_challenge", "ExpiredCodeException", "Code expired", 400)
    r = client.post("/auth/cognito/passwordless/verify-code", json={"code": "123456"})
    assert r.status_code == 400
    assert r.json() == {"error": "Verification code expired. Please request a new code."}
