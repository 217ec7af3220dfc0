"""
FastAPI dependencies: the app's CognitoAuth instance and the authenticated local user.
"""
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from cognito_auth.errors import AuthError, ConfigurationError
from cognito_auth.models import LocalUser
from cognito_auth.service import CognitoAuth

logger = logging.getLogger(__name__)


def get_auth(request: Request) -> CognitoAuth:
    """The app's CognitoAuth, built from the environment on first use."""
    auth = getattr(request.app.state, "auth", None)
    if auth is None:
        auth = CognitoAuth.from_env()
        request.app.state.auth = auth
    return auth


def current_user(
    request: Request,
    auth: Annotated[CognitoAuth, Depends(get_auth)],
) -> LocalUser:
    """Bearer token or ID token cookie -> verified identity -> local user. 401 otherwise."""
    try:
        user = auth.authenticator.authenticate(request.headers.get("Authorization"), request.cookies)
    except ConfigurationError as e:
        logger.error("Authentication not configured: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "server_error", "error_description": e.public_message},
        )
    except AuthError as e:
        # Never reveal which check failed
        logger.debug("Authentication failed: %s: %s", type(e).__name__, e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "invalid_token", "error_description": "Authentication failed"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "invalid_request", "error_description": "Not authenticated"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


CurrentUser = Annotated[LocalUser, Depends(current_user)]
