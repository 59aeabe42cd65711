"""Authentication routes for the OAuth2 PKCE login/logout flow."""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from aws_oidc_console.auth.middleware import (
    AuthenticatedSession,
    OAuthClientDep,
    get_session_manager,
)
from aws_oidc_console.auth.models import AuthStatus
from aws_oidc_console.auth.session import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.get("/login")
async def login(client: OAuthClientDep):
    """
    Start the authorization code flow.
    The navigator turns the redirect into a 302 to the provider.
    """
    auth_url = await client.login()
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


async def auth_callback(client: OAuthClientDep):
    """
    Redirect URI handler.
    Runs page-load processing on the full request URL, then returns home.
    """
    result = await client.handle_page_load()
    if result:
        logger.info(f"User {result.user.display_name} logged in successfully")
    return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)


@router.get("/logout")
async def logout(client: OAuthClientDep, provider: bool = False):
    """Clear the local session, optionally ending the provider session too."""
    await client.logout(redirect_to_provider=provider)
    return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)


@router.get("/me")
async def get_current_user(session: AuthenticatedSession):
    """Get information about the currently authenticated user."""
    return session.user


@router.get("/status", response_model=AuthStatus)
async def get_status(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
):
    is_authenticated = await session_manager.is_session_valid()
    session = await session_manager.get_session() if is_authenticated else None
    return AuthStatus(
        is_authenticated=is_authenticated,
        user=session.user if session else None,
        debug_info=await session_manager.get_debug_info(),
    )


@router.get("/token")
async def get_access_token(session: AuthenticatedSession):
    """
    Get the current access token.
    Useful for CLI tools that need to make authenticated requests.
    """
    return {
        "access_token": session.access_token,
        "expires_at": datetime.fromtimestamp(session.expires_at / 1000, tz=timezone.utc).isoformat(),
        "token_type": session.token_type,
    }
