"""
Typed failures raised by the authentication core.
The HTTP layer maps each kind to a status; `public_message` is the text that is safe to show a user.
"""


class AuthError(Exception):
    public_message = "Authentication failed"


class ConfigurationError(AuthError):
    public_message = "Authentication is not configured"


# --- token verification ---


class TokenVerificationError(AuthError):
    pass


class InvalidToken(TokenVerificationError):
    """Token could not be decoded at all."""


class KeyResolutionError(TokenVerificationError):
    """No signing key for the token's kid (or the key set could not be fetched)."""


class SignatureOrClaimError(TokenVerificationError):
    """Bad signature, wrong algorithm, issuer, audience, or expired."""


# --- login flows ---


class FlowError(AuthError):
    pass


class InvalidEmail(FlowError):
    public_message = "Invalid email format"


class StateMismatch(FlowError):
    public_message = "Invalid state parameter"


class TokenExchangeFailed(FlowError):
    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class CodeMismatch(FlowError):
    public_message = "Invalid verification code"


class CodeExpired(FlowError):
    public_message = "Verification code expired. Please request a new code."


class NotAuthorized(FlowError):
    pass


class UserNotFound(FlowError):
    public_message = "User not found. Please sign up first."


class InitiationFailed(FlowError):
    public_message = "Failed to send verification code"


class IncompleteResult(FlowError):
    pass


class ProviderUnavailable(FlowError):
    public_message = "Identity provider unavailable. Please try again."


# --- identity binding ---


class BindingError(AuthError):
    pass


class MissingEmail(BindingError):
    """Verified identity carries no email, so it cannot be bound to a local user."""


class DuplicateUser(BindingError):
    """Insert hit the unique email constraint."""
