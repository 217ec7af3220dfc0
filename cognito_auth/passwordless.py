"""
Passwordless email one-time-code login against Cognito (USER_AUTH flow, EMAIL_OTP challenge).
initiate() sends the code and returns the provider session; complete() answers the challenge.
The caller keeps session + email together (cookies, 10 minutes) between the two calls.
"""
import base64
import hashlib
import hmac
import logging
import re

import boto3
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cognito_auth.config import HTTP_TIMEOUT, CognitoSettings
from cognito_auth.errors import (
    CodeExpired,
    CodeMismatch,
    IncompleteResult,
    InitiationFailed,
    InvalidEmail,
    NotAuthorized,
    ProviderUnavailable,
    UserNotFound,
)
from cognito_auth.tokens import CodeDelivery, PasswordlessChallenge, TokenSet

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

AUTH_FLOW = "USER_AUTH"
CHALLENGE = "EMAIL_OTP"


def is_valid_email(email: str | None) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def secret_hash(username: str, client_id: str, client_secret: str) -> str:
    """SECRET_HASH required by app clients that have a secret: b64(HMAC-SHA256(secret, username + client_id))."""
    digest = hmac.new(
        client_secret.encode("utf-8"),
        (username + client_id).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def _error_message(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Message", "")


class PasswordlessFlowCoordinator:
    def __init__(self, settings: CognitoSettings, client=None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        """cognito-idp client. InitiateAuth / RespondToAuthChallenge are public APIs, so requests are unsigned."""
        if self._client is None:
            self.settings.require("region", "client_id")
            self._client = boto3.client(
                "cognito-idp",
                region_name=self.settings.region,
                config=Config(
                    signature_version=UNSIGNED,
                    connect_timeout=HTTP_TIMEOUT,
                    read_timeout=HTTP_TIMEOUT,
                    retries={"total_max_attempts": 1},
                ),
            )
        return self._client

    def _with_secret_hash(self, params: dict, username: str) -> dict:
        if self.settings.client_secret:
            params["SECRET_HASH"] = secret_hash(username, self.settings.client_id, self.settings.client_secret)
        return params

    def initiate(self, email: str) -> PasswordlessChallenge:
        """Send an email code. Raises InvalidEmail before any provider call if the address is malformed."""
        if not is_valid_email(email):
            raise InvalidEmail(f"Invalid email format: {email!r}")
        self.settings.require("client_id")

        params = self._with_secret_hash({"USERNAME": email, "PREFERRED_CHALLENGE": CHALLENGE}, email)
        try:
            response = self.client.initiate_auth(
                ClientId=self.settings.client_id,
                AuthFlow=AUTH_FLOW,
                AuthParameters=params,
            )
        except ClientError as e:
            code = _error_code(e)
            logger.info("InitiateAuth rejected: %s", code)
            if code == "UserNotFoundException":
                raise UserNotFound(_error_message(e)) from e
            if code == "NotAuthorizedException":
                raise NotAuthorized(_error_message(e)) from e
            raise InitiationFailed(f"{code}: {_error_message(e)}") from e
        except BotoCoreError as e:
            logger.warning("InitiateAuth failed: %s", e)
            raise ProviderUnavailable(str(e)) from e

        session = response.get("Session")
        if not session:
            raise InitiationFailed("Failed to initiate authentication")

        challenge_params = response.get("ChallengeParameters") or {}
        delivery = None
        if challenge_params.get("CODE_DELIVERY_DESTINATION"):
            delivery = CodeDelivery(
                destination=challenge_params.get("CODE_DELIVERY_DESTINATION"),
                medium=challenge_params.get("CODE_DELIVERY_DELIVERY_MEDIUM"),
                attribute_name=challenge_params.get("CODE_DELIVERY_ATTRIBUTE_NAME"),
            )
        return PasswordlessChallenge(session=session, email=email, delivery=delivery)

    def complete(self, email: str, code: str, session: str) -> TokenSet:
        """Answer the EMAIL_OTP challenge. A missing refresh token is returned as ""."""
        self.settings.require("client_id")
        responses = self._with_secret_hash({"USERNAME": email, "EMAIL_OTP_CODE": code}, email)
        try:
            response = self.client.respond_to_auth_challenge(
                ClientId=self.settings.client_id,
                ChallengeName=CHALLENGE,
                ChallengeResponses=responses,
                Session=session,
            )
        except ClientError as e:
            code_name = _error_code(e)
            message = _error_message(e)
            logger.info("RespondToAuthChallenge rejected: %s", code_name)
            if code_name == "CodeMismatchException":
                raise CodeMismatch(message) from e
            if code_name == "ExpiredCodeException":
                raise CodeExpired(message) from e
            # An expired challenge session is reported as NotAuthorizedException
            if code_name == "NotAuthorizedException" and "expired" in message.lower():
                raise CodeExpired(message) from e
            raise NotAuthorized(f"{code_name}: {message}") from e
        except BotoCoreError as e:
            logger.warning("RespondToAuthChallenge failed: %s", e)
            raise ProviderUnavailable(str(e)) from e

        tokens = TokenSet.from_auth_result(response.get("AuthenticationResult") or {})
        if not tokens.complete:
            raise IncompleteResult("Invalid OTP code or session expired")
        return tokens
