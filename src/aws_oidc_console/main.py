"""Main FastAPI application for the AWS OIDC console."""

import logging
from contextlib import asynccontextmanager
from typing import Annotated
from urllib.parse import urlsplit

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from aws_oidc_console import __version__
from aws_oidc_console.auth.capabilities import NavigationRequested
from aws_oidc_console.auth.errors import (
    AuthError,
    ConfigurationError,
    CSRFError,
    DiscoveryError,
    NotAuthenticatedError,
    NotInitializedError,
    OAuthError,
    TokenExchangeError,
    VerifierNotFoundError,
)
from aws_oidc_console.auth.middleware import get_session_manager
from aws_oidc_console.auth.routes import auth_callback
from aws_oidc_console.auth.routes import router as auth_router
from aws_oidc_console.auth.session import SessionManager
from aws_oidc_console.aws.errors import (
    AWSFederationError,
    InvalidRoleArnError,
    RoleHistoryImportError,
)
from aws_oidc_console.aws.routes import router as aws_router
from aws_oidc_console.config import Settings, get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

AUTH_ERROR_STATUS = {
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    NotInitializedError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    DiscoveryError: status.HTTP_502_BAD_GATEWAY,
    CSRFError: status.HTTP_400_BAD_REQUEST,
    VerifierNotFoundError: status.HTTP_400_BAD_REQUEST,
    OAuthError: status.HTTP_400_BAD_REQUEST,
    TokenExchangeError: status.HTTP_400_BAD_REQUEST,
    NotAuthenticatedError: status.HTTP_401_UNAUTHORIZED,
}

AWS_ERROR_STATUS = {
    "AccessDenied": status.HTTP_403_FORBIDDEN,
    "AssumeRoleUnauthorizedOperation": status.HTTP_403_FORBIDDEN,
    "InvalidIdentityToken": status.HTTP_401_UNAUTHORIZED,
    "TokenExpired": status.HTTP_401_UNAUTHORIZED,
    "InvalidParameterValue": status.HTTP_400_BAD_REQUEST,
    "IncompleteCredentials": status.HTTP_400_BAD_REQUEST,
}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def auth_error_status(exc: AuthError) -> int:
    for error_type, code in AUTH_ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    logger.info("Starting AWS OIDC console...")
    if settings.oauth_authority:
        logger.info(f"OIDC authority: {settings.oauth_authority}")
    else:
        logger.warning("OAUTH_AUTHORITY is not set; login will fail until it is configured")
    logger.info(f"Redirect URI: {settings.redirect_uri}")

    yield

    logger.info("Shutting down AWS OIDC console...")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application; the callback route is mounted at the redirect URI path."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="AWS OIDC Console",
        description="Sign in with an OIDC provider and open the AWS console via web identity federation",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.dependency_overrides[get_settings] = lambda: settings

    callback_path = urlsplit(settings.redirect_uri).path or "/callback"
    app.add_api_route(callback_path, auth_callback, methods=["GET"], name="auth_callback")
    app.include_router(auth_router)
    app.include_router(aws_router)

    # =========================================================================
    # Health and Status Endpoints
    # =========================================================================

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "aws-oidc-console"}

    @app.get("/")
    async def root(
        session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    ):
        """Root endpoint with service information."""
        is_authenticated = await session_manager.is_session_valid()
        session = await session_manager.get_session() if is_authenticated else None
        return {
            "service": "AWS OIDC Console",
            "version": __version__,
            "authenticated": is_authenticated,
            "user": session.user.display_name if session else None,
            "login_url": "/auth/login",
            "console_url": "/aws/console",
            "docs_url": "/docs",
        }

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.exception_handler(NavigationRequested)
    async def navigation_handler(request: Request, exc: NavigationRequested):
        return RedirectResponse(url=exc.url, status_code=status.HTTP_302_FOUND)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        code = auth_error_status(exc)
        logger.warning(f"{request.method} {request.url.path} -> {code}: {exc}")
        headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=code, content=exc.to_payload(), headers=headers)

    @app.exception_handler(AWSFederationError)
    async def aws_error_handler(request: Request, exc: AWSFederationError):
        code = AWS_ERROR_STATUS.get(exc.code, status.HTTP_502_BAD_GATEWAY)
        logger.warning(f"{request.method} {request.url.path} -> {code}: {exc.code}")
        return JSONResponse(status_code=code, content=exc.to_payload())

    @app.exception_handler(InvalidRoleArnError)
    @app.exception_handler(RoleHistoryImportError)
    async def role_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=422,
            content={"error": type(exc).__name__, "message": str(exc)},
        )

    return app


# =============================================================================
# Run with Uvicorn
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "aws_oidc_console.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
    )
