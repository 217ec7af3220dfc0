"""
Signing key resolution for Cognito ID tokens.
Keys come from the user pool's published JWKS and are cached per kid for a bounded age.
The cache is owned by whoever constructs it (see CognitoAuth); clear() is its teardown.
"""
import logging
import threading
import time
from dataclasses import dataclass

from jwt import PyJWK, PyJWKClient
from jwt.exceptions import PyJWKClientError, PyJWKSetError

from cognito_auth.config import HTTP_TIMEOUT, SIGNING_KEY_CACHE_AGE
from cognito_auth.errors import KeyResolutionError

logger = logging.getLogger(__name__)


@dataclass
class _CachedKey:
    key: PyJWK
    fetched_at: float

    def expired(self, max_age: float) -> bool:
        return (time.monotonic() - self.fetched_at) > max_age


class SigningKeyCache:
    """
    kid -> public key, populated lazily on first use and invalidated by age only.
    Concurrent misses for the same kid may both fetch; the result is the same key,
    so last writer wins. The lock guards the dict, never the network fetch.
    """

    def __init__(self, jwks_uri: str, max_age: float = SIGNING_KEY_CACHE_AGE, jwks_client: PyJWKClient | None = None):
        self.jwks_uri = jwks_uri
        self.max_age = max_age
        # PyJWKClient caches the whole key set for the same lifespan, so a burst of
        # new kids costs one fetch
        self._client = jwks_client or PyJWKClient(
            uri=jwks_uri,
            cache_keys=False,
            cache_jwk_set=True,
            lifespan=int(max_age),
            timeout=int(HTTP_TIMEOUT),
        )
        self._keys: dict[str, _CachedKey] = {}
        self._lock = threading.Lock()

    def get(self, kid: str) -> PyJWK:
        """Return the signing key for kid. Raises KeyResolutionError if unknown or unreachable."""
        with self._lock:
            cached = self._keys.get(kid)
        if cached is not None and not cached.expired(self.max_age):
            return cached.key

        try:
            key = self._client.get_signing_key(kid)
        except (PyJWKClientError, PyJWKSetError) as e:
            logger.warning("Signing key resolution failed for kid=%s: %s", kid, e)
            raise KeyResolutionError(f"No signing key for kid {kid!r}") from e

        with self._lock:
            self._keys[kid] = _CachedKey(key=key, fetched_at=time.monotonic())
        logger.debug("Cached signing key kid=%s from %s", kid, self.jwks_uri)
        return key

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
