"""
Hosted-UI OAuth flow: authorization URL + CSRF state, code exchange, refresh, logout URL.
State is generated here; storing it (cookie, 10 minutes) and presenting it back is the caller's job.
"""
import logging
import secrets
from urllib.parse import urlencode

import httpx

from cognito_auth.config import HTTP_TIMEOUT, OAUTH_SCOPE, CognitoSettings
from cognito_auth.errors import (
    IncompleteResult,
    SignatureOrClaimError,
    StateMismatch,
    TokenExchangeFailed,
    TokenVerificationError,
)
from cognito_auth.tokens import TokenSet
from cognito_auth.verifier import TokenVerifier

logger = logging.getLogger(__name__)


def generate_state() -> str:
    """Opaque single-use value for CSRF protection; returned in callback."""
    return secrets.token_urlsafe(32)


def build_authorize_url(*, domain: str, client_id: str, redirect_uri: str, state: str, scope: str = OAUTH_SCOPE) -> str:
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
    }
    return f"https://{domain}/oauth2/authorize?{urlencode(params)}"


def states_match(presented: str | None, stored: str | None) -> bool:
    """Both present, non-empty and equal. Absence on either side is a mismatch."""
    if not presented or not stored:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


class OAuthFlowCoordinator:
    def __init__(self, settings: CognitoSettings, verifier: TokenVerifier):
        self.settings = settings
        self.verifier = verifier

    def _redirect_uri(self, redirect_uri: str | None) -> str:
        if redirect_uri:
            return redirect_uri
        self.settings.require("redirect_uri")
        return self.settings.redirect_uri

    def _client_auth(self) -> tuple[str, str] | None:
        """HTTP Basic client credentials for confidential app clients."""
        if self.settings.client_secret:
            return (self.settings.client_id, self.settings.client_secret)
        return None

    def start_authorization(self, redirect_uri: str | None = None) -> tuple[str, str]:
        """Return (authorization URL, state). The caller persists state for 10 minutes."""
        self.settings.require("domain", "client_id")
        state = generate_state()
        url = build_authorize_url(
            domain=self.settings.domain,
            client_id=self.settings.client_id,
            redirect_uri=self._redirect_uri(redirect_uri),
            state=state,
        )
        return url, state

    def complete_authorization(
        self,
        code: str,
        presented_state: str | None,
        stored_state: str | None,
        redirect_uri: str | None = None,
    ) -> TokenSet:
        """
        Check state, exchange code for tokens, verify the ID token.
        No token request is made when the state check fails.
        """
        if not states_match(presented_state, stored_state):
            raise StateMismatch("Presented state does not match stored state")

        data = self._token_request(
            {
                "grant_type": "authorization_code",
                "client_id": self.settings.client_id,
                "code": code,
                "redirect_uri": self._redirect_uri(redirect_uri),
            }
        )
        tokens = TokenSet.from_oauth_response(data)
        if not tokens.complete:
            raise IncompleteResult("Token response is missing access_token or id_token")

        try:
            self.verifier.verify(tokens.id_token)
        except SignatureOrClaimError:
            raise
        except TokenVerificationError as e:
            raise SignatureOrClaimError(f"Issued ID token failed verification: {e}") from e
        return tokens

    def refresh(self, refresh_token: str) -> TokenSet:
        """refresh_token grant. Cognito does not rotate refresh tokens, so the presented one is kept."""
        data = self._token_request(
            {
                "grant_type": "refresh_token",
                "client_id": self.settings.client_id,
                "refresh_token": refresh_token,
            }
        )
        tokens = TokenSet.from_oauth_response({"refresh_token": refresh_token, **data})
        if not tokens.complete:
            raise IncompleteResult("Refresh response is missing access_token or id_token")
        return tokens

    def _token_request(self, form: dict) -> dict:
        url = self.settings.hosted_ui_url("/oauth2/token")
        try:
            r = httpx.post(
                url,
                data=form,
                auth=self._client_auth(),
                headers={"Accept": "application/json"},
                timeout=HTTP_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.warning("Token request (%s) failed: %s", form.get("grant_type"), e)
            raise TokenExchangeFailed(f"Token request failed: {e}") from e

        if r.status_code != 200:
            body = r.text
            logger.info("Token endpoint returned %s for grant %s", r.status_code, form.get("grant_type"))
            raise TokenExchangeFailed(f"Token exchange failed: {body}", status_code=r.status_code, body=body)
        try:
            data = r.json()
        except ValueError as e:
            # e.g. an HTML error page from a proxy in front of the token endpoint
            logger.warning("Token endpoint returned a non-JSON body for grant %s", form.get("grant_type"))
            raise TokenExchangeFailed("Token response is not JSON", status_code=r.status_code, body=r.text) from e
        if not isinstance(data, dict):
            raise TokenExchangeFailed("Token response is not a JSON object", status_code=r.status_code, body=r.text)
        return data

    def build_logout_url(self, origin: str) -> str:
        """Hosted-UI logout URL when domain and client are configured, else the local post-logout URL."""
        local = f"{origin.rstrip('/')}{self.settings.post_logout_path}"
        if self.settings.domain and self.settings.client_id:
            params = urlencode({"client_id": self.settings.client_id, "logout_uri": local})
            return f"https://{self.settings.domain}/logout?{params}"
        return local
