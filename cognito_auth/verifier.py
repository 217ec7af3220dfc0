"""
Cognito ID token verification via the user pool JWKS.
RS256 only; issuer and audience must match exactly. No check can be switched off.
"""
import logging

import jwt

from cognito_auth.config import CognitoSettings
from cognito_auth.errors import InvalidToken, KeyResolutionError, SignatureOrClaimError
from cognito_auth.keys import SigningKeyCache
from cognito_auth.tokens import ExternalIdentity

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]


class TokenVerifier:
    def __init__(self, settings: CognitoSettings, key_cache: SigningKeyCache | None = None):
        self.settings = settings
        self._key_cache = key_cache

    @property
    def key_cache(self) -> SigningKeyCache:
        # Built on first use so missing region/pool surfaces as ConfigurationError here
        if self._key_cache is None:
            self._key_cache = SigningKeyCache(self.settings.jwks_uri)
        return self._key_cache

    def close(self) -> None:
        if self._key_cache is not None:
            self._key_cache.clear()

    def verify(self, token: str) -> ExternalIdentity:
        """
        Verify signature, algorithm, issuer, audience and expiry; return the identity claims.
        Raises InvalidToken, KeyResolutionError or SignatureOrClaimError.
        """
        if not token or not token.strip():
            raise InvalidToken("Empty token")
        token = token.strip()
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            # DecodeError, or a malformed header such as a non-string kid
            raise InvalidToken("Token could not be decoded") from e

        # Reject before key lookup so an HS256/none token never reaches decode
        alg = header.get("alg")
        if alg != ALGORITHM:
            raise SignatureOrClaimError(f"Unexpected token algorithm {alg!r}")

        kid = header.get("kid")
        if not kid:
            raise KeyResolutionError("Token header has no kid")

        self.settings.require("client_id")
        issuer = self.settings.issuer
        signing_key = self.key_cache.get(kid)

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=[ALGORITHM],
                audience=self.settings.client_id,
                issuer=issuer,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise SignatureOrClaimError("Token expired") from e
        except jwt.InvalidAudienceError as e:
            raise SignatureOrClaimError("Invalid audience") from e
        except jwt.InvalidIssuerError as e:
            raise SignatureOrClaimError("Invalid issuer") from e
        except jwt.InvalidTokenError as e:
            logger.debug("ID token verification failed: %s", e)
            raise SignatureOrClaimError("Token verification failed") from e

        return ExternalIdentity.from_claims(claims)
