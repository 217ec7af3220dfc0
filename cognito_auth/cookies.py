"""
Session and flow-state cookies.
Every value is signed and timestamped (itsdangerous); a cookie read back after its
maximum age, or tampered with, reads as absent. HttpOnly, SameSite=Lax,
Secure outside local development.
"""
import logging
from typing import Mapping

from fastapi import Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from cognito_auth.config import ENV_VARS, FLOW_STATE_MAX_AGE, REFRESH_TOKEN_MAX_AGE, TOKEN_MAX_AGE
from cognito_auth.errors import ConfigurationError
from cognito_auth.tokens import PasswordlessChallenge, TokenSet

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "cognito_access_token"
ID_TOKEN_COOKIE = "cognito_id_token"
REFRESH_TOKEN_COOKIE = "cognito_refresh_token"
STATE_COOKIE = "cognito_state"
PASSWORDLESS_SESSION_COOKIE = "cognito_passwordless_session"
PASSWORDLESS_EMAIL_COOKIE = "cognito_passwordless_email"

TOKEN_COOKIES = (ACCESS_TOKEN_COOKIE, ID_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE)
FLOW_COOKIES = (STATE_COOKIE, PASSWORDLESS_SESSION_COOKIE, PASSWORDLESS_EMAIL_COOKIE)
ALL_COOKIES = TOKEN_COOKIES + FLOW_COOKIES

# Maximum accepted age of each signed value, in seconds
MAX_AGES = {
    ACCESS_TOKEN_COOKIE: TOKEN_MAX_AGE,
    ID_TOKEN_COOKIE: TOKEN_MAX_AGE,
    REFRESH_TOKEN_COOKIE: REFRESH_TOKEN_MAX_AGE,
    STATE_COOKIE: FLOW_STATE_MAX_AGE,
    PASSWORDLESS_SESSION_COOKIE: FLOW_STATE_MAX_AGE,
    PASSWORDLESS_EMAIL_COOKIE: FLOW_STATE_MAX_AGE,
}

_SALT = "cognito-auth-cookie"


class SessionCookieManager:
    def __init__(self, secret: str, *, secure: bool = True, path: str = "/"):
        self.secure = secure
        self.path = path
        self._secret = secret

    def _serializer(self, name: str) -> URLSafeTimedSerializer:
        # Only signing and reading need the secret; deleting cookies never does
        if not self._secret:
            raise ConfigurationError(f"Missing required Cognito configuration: {ENV_VARS['cookie_secret']}")
        # Salt per cookie name: a signed state value cannot be replayed as a session cookie
        return URLSafeTimedSerializer(self._secret, salt=f"{_SALT}:{name}")

    def _set(self, response: Response, name: str, value: str, max_age: int) -> None:
        signed = self._serializer(name).dumps(value)
        response.set_cookie(
            name,
            value=signed,
            max_age=max_age,
            path=self.path,
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )

    def _get(self, cookies: Mapping[str, str], name: str) -> str | None:
        raw = cookies.get(name)
        if not raw:
            return None
        try:
            value = self._serializer(name).loads(raw, max_age=MAX_AGES[name])
        except SignatureExpired:
            logger.debug("Ignoring expired cookie %s", name)
            return None
        except BadSignature:
            logger.debug("Ignoring cookie %s with bad signature", name)
            return None
        if not isinstance(value, str) or not value:
            return None
        return value

    def _delete(self, response: Response, name: str) -> None:
        response.delete_cookie(name, path=self.path, secure=self.secure, httponly=True, samesite="lax")

    # --- tokens ---

    def store_tokens(self, response: Response, tokens: TokenSet) -> None:
        """Access/ID tokens live as long as the tokens; refresh token (if any) for 30 days."""
        self._set(response, ACCESS_TOKEN_COOKIE, tokens.access_token, tokens.expires_in)
        self._set(response, ID_TOKEN_COOKIE, tokens.id_token, tokens.expires_in)
        if tokens.refresh_token:
            self._set(response, REFRESH_TOKEN_COOKIE, tokens.refresh_token, REFRESH_TOKEN_MAX_AGE)

    def read_access_token(self, cookies: Mapping[str, str]) -> str | None:
        return self._get(cookies, ACCESS_TOKEN_COOKIE)

    def read_id_token(self, cookies: Mapping[str, str]) -> str | None:
        return self._get(cookies, ID_TOKEN_COOKIE)

    def read_refresh_token(self, cookies: Mapping[str, str]) -> str | None:
        return self._get(cookies, REFRESH_TOKEN_COOKIE)

    # --- OAuth state ---

    def store_oauth_state(self, response: Response, state: str) -> None:
        self._set(response, STATE_COOKIE, state, FLOW_STATE_MAX_AGE)

    def read_oauth_state(self, cookies: Mapping[str, str]) -> str | None:
        return self._get(cookies, STATE_COOKIE)

    def clear_oauth_state(self, response: Response) -> None:
        self._delete(response, STATE_COOKIE)

    # --- passwordless session + email ---

    def store_passwordless(self, response: Response, challenge: PasswordlessChallenge) -> None:
        self._set(response, PASSWORDLESS_SESSION_COOKIE, challenge.session, FLOW_STATE_MAX_AGE)
        self._set(response, PASSWORDLESS_EMAIL_COOKIE, challenge.email, FLOW_STATE_MAX_AGE)

    def read_passwordless(self, cookies: Mapping[str, str]) -> tuple[str, str] | None:
        """(session, email), or None unless both are present and valid."""
        session = self._get(cookies, PASSWORDLESS_SESSION_COOKIE)
        email = self._get(cookies, PASSWORDLESS_EMAIL_COOKIE)
        if not session or not email:
            return None
        return session, email

    def clear_passwordless(self, response: Response) -> None:
        self._delete(response, PASSWORDLESS_SESSION_COOKIE)
        self._delete(response, PASSWORDLESS_EMAIL_COOKIE)

    # --- logout ---

    def clear_all(self, response: Response) -> None:
        """Delete every token and flow cookie, whatever the provider logout does."""
        for name in ALL_COOKIES:
            self._delete(response, name)
