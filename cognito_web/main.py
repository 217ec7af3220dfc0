"""
Cognito login routes for the web application.
Hosted-UI login/callback/logout, passwordless send-code/verify-code, token refresh, and /me.
Renders no pages: redirects and JSON only. Port 8000.
"""
import logging
from contextlib import asynccontextmanager
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from cognito_auth.errors import (
    AuthError,
    CodeExpired,
    CodeMismatch,
    ConfigurationError,
    InvalidEmail,
    NotAuthorized,
    ProviderUnavailable,
    StateMismatch,
    UserNotFound,
)
from cognito_auth.service import CognitoAuth
from cognito_web.auth import CurrentUser, get_auth

logger = logging.getLogger(__name__)

LOGIN_PATH = "/admin/login"
AFTER_LOGIN_PATH = "/admin"

Auth = Annotated[CognitoAuth, Depends(get_auth)]
router = APIRouter(prefix="/auth/cognito")


class SendCodeRequest(BaseModel):
    email: str | None = None


class VerifyCodeRequest(BaseModel):
    code: str | None = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _login_redirect(error: str) -> RedirectResponse:
    return RedirectResponse(url=f"{LOGIN_PATH}?{urlencode({'error': error})}", status_code=302)


# --- hosted UI ---


@router.get("/login")
def login(auth: Auth):
    """Generate state, store it in a 10-minute cookie, redirect to the hosted UI."""
    try:
        url, state = auth.oauth.start_authorization()
        response = RedirectResponse(url=url, status_code=302)
        auth.cookies.store_oauth_state(response, state)
    except ConfigurationError as e:
        logger.error("Cognito login error: %s", e)
        return _error("Failed to initiate Cognito login", 500)
    return response


@router.get("/callback")
def callback(
    request: Request,
    auth: Auth,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
):
    """
    Handle redirect from the hosted UI: check state, exchange code, verify ID token, set cookies.
    The state cookie is cleared on every outcome so a code/state pair can't be replayed.
    """
    cookies = auth.cookies

    if error:
        logger.warning("Cognito OAuth error: %s %s", error, error_description or "")
        response = _login_redirect(error)
        cookies.clear_oauth_state(response)
        return response

    if not code:
        response = _error("Authorization code not provided", 400)
        cookies.clear_oauth_state(response)
        return response

    try:
        stored_state = cookies.read_oauth_state(request.cookies)
        tokens = auth.oauth.complete_authorization(code, state, stored_state)
    except StateMismatch as e:
        response = _error(e.public_message, 400)
        cookies.clear_oauth_state(response)
        return response
    except AuthError as e:
        logger.warning("Cognito callback error: %s: %s", type(e).__name__, e)
        response = _login_redirect("authentication_failed")
        cookies.clear_oauth_state(response)
        return response

    response = RedirectResponse(url=AFTER_LOGIN_PATH, status_code=302)
    cookies.store_tokens(response, tokens)
    cookies.clear_oauth_state(response)
    return response


@router.get("/logout")
def logout(request: Request, auth: Auth):
    """Clear every Cognito cookie, then go through hosted-UI logout when it is configured."""
    origin = str(request.base_url).rstrip("/")
    response = RedirectResponse(url=auth.oauth.build_logout_url(origin), status_code=302)
    auth.cookies.clear_all(response)
    return response


@router.post("/refresh")
def refresh(request: Request, auth: Auth):
    """Exchange the refresh token cookie for new access/ID tokens."""
    try:
        refresh_token = auth.cookies.read_refresh_token(request.cookies)
        if not refresh_token:
            return _error("Not authenticated", 401)
        tokens = auth.oauth.refresh(refresh_token)
    except ConfigurationError as e:
        logger.error("Cognito refresh error: %s", e)
        return _error(e.public_message, 500)
    except AuthError as e:
        logger.info("Token refresh failed: %s: %s", type(e).__name__, e)
        response = _error("Session expired. Please log in again.", 401)
        auth.cookies.clear_all(response)
        return response

    response = JSONResponse({"success": True, "expiresIn": tokens.expires_in})
    auth.cookies.store_tokens(response, tokens)
    return response


# --- passwordless ---


@router.post("/passwordless/send-code")
def send_code(body: SendCodeRequest, auth: Auth):
    """Start an email-code login; session and email go into 10-minute cookies."""
    if not body.email:
        return _error("Email is required", 400)

    try:
        challenge = auth.passwordless.initiate(body.email)
        response = JSONResponse(
            {
                "success": True,
                "message": "Verification code sent to your email",
                "codeDeliveryDetails": challenge.delivery.as_dict() if challenge.delivery else None,
            }
        )
        auth.cookies.store_passwordless(response, challenge)
    except InvalidEmail as e:
        return _error(e.public_message, 400)
    except UserNotFound as e:
        return _error(e.public_message, 404)
    except NotAuthorized:
        return _error("Email OTP is not enabled for this user pool", 403)
    except ProviderUnavailable as e:
        return _error(e.public_message, 502)
    except AuthError as e:
        logger.error("Send OTP error: %s: %s", type(e).__name__, e)
        return _error("Failed to send verification code", 500)
    return response


@router.post("/passwordless/verify-code")
def verify_code(body: VerifyCodeRequest, request: Request, auth: Auth):
    """Answer the email-code challenge; on success set token cookies. Flow cookies are always cleared."""
    if not body.code:
        return _error("Verification code is required", 400)

    cookies = auth.cookies
    try:
        flow = cookies.read_passwordless(request.cookies)
        if flow is None:
            response = _error("Session expired. Please request a new code.", 400)
        else:
            session, email = flow
            tokens = auth.passwordless.complete(email, body.code, session)
            response = JSONResponse(
                {"success": True, "message": "Authentication successful", "redirectUrl": AFTER_LOGIN_PATH}
            )
            cookies.store_tokens(response, tokens)
    except (CodeMismatch, CodeExpired) as e:
        response = _error(e.public_message, 400)
    except NotAuthorized:
        response = _error("Authentication failed", 401)
    except ProviderUnavailable as e:
        response = _error(e.public_message, 502)
    except AuthError as e:
        logger.error("Verify OTP error: %s: %s", type(e).__name__, e)
        response = _error("Failed to verify code. Please try again.", 500)

    cookies.clear_passwordless(response)
    return response


def create_app(auth: CognitoAuth | None = None) -> FastAPI:
    """Build the app. With no CognitoAuth given, one is built from the environment on first request."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        built = getattr(app.state, "auth", None)
        if built is not None:
            built.close()

    app = FastAPI(title="Cognito Web", version="0.1.0", lifespan=lifespan)
    app.state.auth = auth
    app.include_router(router, tags=["cognito"])

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "cognito_web"}

    @app.get("/me")
    def me(user: CurrentUser):
        """The local user bound to the caller's Cognito identity."""
        return user.as_dict()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cognito_web.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
