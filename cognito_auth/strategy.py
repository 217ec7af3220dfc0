"""
Per-request authentication check: pick up the ID token, verify it, bind it to a local user.
"""
import logging
from typing import Mapping

from cognito_auth.binder import IdentityBinder
from cognito_auth.cookies import SessionCookieManager
from cognito_auth.models import LocalUser
from cognito_auth.verifier import TokenVerifier

logger = logging.getLogger(__name__)


def bearer_token(authorization: str | None) -> str | None:
    """Token from 'Authorization: Bearer <token>', else None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class Authenticator:
    def __init__(self, verifier: TokenVerifier, binder: IdentityBinder, cookies: SessionCookieManager):
        self.verifier = verifier
        self.binder = binder
        self.cookies = cookies

    def token_from_request(self, authorization: str | None, cookies: Mapping[str, str]) -> str | None:
        """Authorization header first, then the ID token cookie."""
        return bearer_token(authorization) or self.cookies.read_id_token(cookies)

    def authenticate(self, authorization: str | None, cookies: Mapping[str, str]) -> LocalUser | None:
        """
        Return the local user for the presented token, or None when no token was presented.
        Verification and binding failures propagate as typed errors.
        """
        token = self.token_from_request(authorization, cookies)
        if not token:
            return None
        identity = self.verifier.verify(token)
        user = self.binder.resolve(identity)
        logger.debug("Authenticated user id=%s", user.id)
        return user
