"""
Cognito configuration. Values come from the environment; nothing secret lives in code.
Settings are read eagerly but validated lazily: a missing required value raises
ConfigurationError the first time a component needs it, not at process start.
"""
import os
from dataclasses import dataclass

from cognito_auth.errors import ConfigurationError

# Flow state (OAuth state, passwordless session + email) lifetime in seconds
FLOW_STATE_MAX_AGE = 600

# Refresh token cookie lifetime: 30 days
REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 30

# Upper bound for access/ID token cookies; Cognito issues these for at most a day
TOKEN_MAX_AGE = 60 * 60 * 24

# Signing key cache age (seconds); keys are refetched after this
SIGNING_KEY_CACHE_AGE = 600

# Outbound HTTP timeout for token/userinfo/JWKS calls
HTTP_TIMEOUT = 10.0

# Scopes requested from the hosted UI
OAUTH_SCOPE = "openid email profile"

DEFAULT_POST_LOGOUT_PATH = "/admin/login"
DEFAULT_DATABASE_URL = "sqlite:///./cognito_auth.db"

# field name -> env var, used for error messages and from_env()
ENV_VARS = {
    "region": "AWS_REGION",
    "user_pool_id": "AWS_COGNITO_USER_POOL_ID",
    "client_id": "AWS_COGNITO_CLIENT_ID",
    "domain": "AWS_COGNITO_DOMAIN",
    "redirect_uri": "COGNITO_REDIRECT_URI",
    "client_secret": "AWS_COGNITO_CLIENT_SECRET",
    "post_logout_path": "COGNITO_POST_LOGOUT_PATH",
    "cookie_secret": "COGNITO_COOKIE_SECRET",
    "environment": "APP_ENV",
    "database_url": "COGNITO_DATABASE_URL",
}


@dataclass(frozen=True)
class CognitoSettings:
    region: str = ""
    user_pool_id: str = ""
    client_id: str = ""
    domain: str = ""
    redirect_uri: str = ""
    client_secret: str = ""
    post_logout_path: str = DEFAULT_POST_LOGOUT_PATH
    cookie_secret: str = ""
    environment: str = "production"
    database_url: str = DEFAULT_DATABASE_URL

    @classmethod
    def from_env(cls, environ=None) -> "CognitoSettings":
        """Build settings from environment variables. Never raises; see require()."""
        env = os.environ if environ is None else environ
        values = {}
        for field, var in ENV_VARS.items():
            raw = env.get(var)
            if raw is not None and raw.strip():
                values[field] = raw.strip()
        if "domain" in values:
            # Accept "https://auth.example.com/" as well as the bare host
            values["domain"] = values["domain"].removeprefix("https://").rstrip("/")
        return cls(**values)

    def require(self, *fields: str) -> None:
        """Raise ConfigurationError naming every missing field among `fields`."""
        missing = [ENV_VARS[f] for f in fields if not getattr(self, f)]
        if missing:
            raise ConfigurationError(f"Missing required Cognito configuration: {', '.join(missing)}")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def issuer(self) -> str:
        self.require("region", "user_pool_id")
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"

    def hosted_ui_url(self, path: str) -> str:
        """URL on the hosted-UI domain, e.g. hosted_ui_url("/oauth2/token")."""
        self.require("domain", "client_id")
        return f"https://{self.domain}{path}"
