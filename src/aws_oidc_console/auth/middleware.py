"""Authentication dependencies for FastAPI."""

import logging
from typing import Annotated

import httpx
from fastapi import Depends, Request

from aws_oidc_console.auth.capabilities import RedirectNavigator
from aws_oidc_console.auth.errors import NotAuthenticatedError
from aws_oidc_console.auth.models import OAuthSession
from aws_oidc_console.auth.oidc import OAuth2Client
from aws_oidc_console.auth.session import KeyValueStore, SessionManager
from aws_oidc_console.config import Settings, get_settings
from aws_oidc_console.storage import get_store

logger = logging.getLogger(__name__)


def get_http_client() -> httpx.AsyncClient | None:
    """Shared HTTP client; ``None`` opens a short-lived client per call."""
    return None


def get_session_manager(
    store: Annotated[KeyValueStore, Depends(get_store)],
) -> SessionManager:
    return SessionManager(store)


async def get_oauth_client(
    request: Request,
    store: Annotated[KeyValueStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
    http_client: Annotated[httpx.AsyncClient | None, Depends(get_http_client)],
) -> OAuth2Client:
    """
    Build an initialized OAuth2Client for this request.
    Each request is one page load; navigation ends the request with a redirect.
    """
    client = OAuth2Client(
        store,
        RedirectNavigator(str(request.url)),
        http_client=http_client,
        timeout_s=settings.http_timeout_s,
    )
    await client.initialize(settings.oauth_config())
    return client


async def require_authenticated(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> OAuthSession:
    """Require a valid, unexpired session."""
    if not await session_manager.is_session_valid():
        raise NotAuthenticatedError()
    session = await session_manager.get_session()
    if session is None:
        raise NotAuthenticatedError()
    return session


# Type aliases for dependency injection
OAuthClientDep = Annotated[OAuth2Client, Depends(get_oauth_client)]
AuthenticatedSession = Annotated[OAuthSession, Depends(require_authenticated)]
