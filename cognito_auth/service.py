"""
CognitoAuth: the explicitly constructed service object that owns every component.
The surrounding application builds one, passes it where it is needed, and closes it on shutdown.
"""
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import sessionmaker

from cognito_auth.binder import IdentityBinder
from cognito_auth.config import CognitoSettings
from cognito_auth.cookies import SessionCookieManager
from cognito_auth.database import init_db, make_engine, make_session_factory
from cognito_auth.oauth import OAuthFlowCoordinator
from cognito_auth.passwordless import PasswordlessFlowCoordinator
from cognito_auth.store import UserStore
from cognito_auth.strategy import Authenticator
from cognito_auth.verifier import TokenVerifier

logger = logging.getLogger(__name__)


class CognitoAuth:
    def __init__(
        self,
        settings: CognitoSettings,
        *,
        engine: Engine | None = None,
        session_factory: sessionmaker | None = None,
        verifier: TokenVerifier | None = None,
        cognito_client=None,
    ):
        self.settings = settings
        if session_factory is None:
            if engine is None:
                engine = make_engine(settings.database_url)
            init_db(engine)
            session_factory = make_session_factory(engine)
        self.engine = engine
        self.session_factory = session_factory

        self.verifier = verifier or TokenVerifier(settings)
        self.oauth = OAuthFlowCoordinator(settings, self.verifier)
        self.passwordless = PasswordlessFlowCoordinator(settings, client=cognito_client)
        self.store = UserStore(session_factory)
        self.binder = IdentityBinder(self.store)
        self._cookies: SessionCookieManager | None = None
        self._authenticator: Authenticator | None = None

    @classmethod
    def from_env(cls, **kwargs) -> "CognitoAuth":
        return cls(CognitoSettings.from_env(), **kwargs)

    @property
    def cookies(self) -> SessionCookieManager:
        if self._cookies is None:
            self._cookies = SessionCookieManager(
                self.settings.cookie_secret,
                secure=not self.settings.is_development,
            )
        return self._cookies

    @property
    def authenticator(self) -> Authenticator:
        if self._authenticator is None:
            self._authenticator = Authenticator(self.verifier, self.binder, self.cookies)
        return self._authenticator

    def close(self) -> None:
        """Drop cached signing keys and release database connections."""
        self.verifier.close()
        if self.engine is not None:
            self.engine.dispose()
        logger.debug("CognitoAuth closed")
