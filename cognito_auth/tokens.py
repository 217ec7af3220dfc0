"""
Value types passed between the login flows, the verifier and the cookie layer.
"""
from dataclasses import dataclass

# Cognito omits expires_in on some responses; tokens are issued for an hour by default
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class ExternalIdentity:
    """Claims of a verified ID token. Built only by TokenVerifier."""

    subject: str
    email: str | None
    email_verified: bool = False
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None

    @classmethod
    def from_claims(cls, claims: dict) -> "ExternalIdentity":
        return cls(
            subject=str(claims["sub"]),
            email=claims.get("email") or None,
            email_verified=_claim_bool(claims.get("email_verified")),
            name=claims.get("name"),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
        )


def _claim_bool(value) -> bool:
    """email_verified is a JSON bool in ID tokens but a string in some userinfo responses."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    id_token: str
    refresh_token: str = ""
    expires_in: int = DEFAULT_EXPIRES_IN
    token_type: str = "Bearer"

    @classmethod
    def from_oauth_response(cls, data: dict) -> "TokenSet":
        """Token endpoint JSON (snake_case keys)."""
        return cls(
            access_token=data.get("access_token") or "",
            id_token=data.get("id_token") or "",
            refresh_token=data.get("refresh_token") or "",
            expires_in=int(data.get("expires_in") or DEFAULT_EXPIRES_IN),
            token_type=data.get("token_type") or "Bearer",
        )

    @classmethod
    def from_auth_result(cls, result: dict) -> "TokenSet":
        """Cognito AuthenticationResult (PascalCase keys from InitiateAuth / RespondToAuthChallenge)."""
        return cls(
            access_token=result.get("AccessToken") or "",
            id_token=result.get("IdToken") or "",
            refresh_token=result.get("RefreshToken") or "",
            expires_in=int(result.get("ExpiresIn") or DEFAULT_EXPIRES_IN),
            token_type=result.get("TokenType") or "Bearer",
        )

    @property
    def complete(self) -> bool:
        return bool(self.access_token and self.id_token)


@dataclass(frozen=True)
class CodeDelivery:
    destination: str | None = None
    medium: str | None = None
    attribute_name: str | None = None

    def as_dict(self) -> dict:
        return {
            "destination": self.destination,
            "deliveryMedium": self.medium,
            "attributeName": self.attribute_name,
        }


@dataclass(frozen=True)
class PasswordlessChallenge:
    """Result of starting an email-code login. session + email must come back together."""

    session: str
    email: str
    delivery: CodeDelivery | None = None
