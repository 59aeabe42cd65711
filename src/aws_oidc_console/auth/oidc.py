"""OAuth2 Authorization Code + PKCE flow orchestrator."""

import hmac
import logging
from enum import Enum
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from aws_oidc_console.auth.capabilities import (
    Clock,
    Navigator,
    RandomSource,
    SystemRandomSource,
    origin_of,
    strip_query,
    system_clock,
)
from aws_oidc_console.auth.discovery import OIDCDiscovery
from aws_oidc_console.auth.errors import (
    AuthError,
    ConfigurationError,
    CSRFError,
    NotInitializedError,
    OAuthError,
    TokenExchangeError,
    UserinfoError,
    VerifierNotFoundError,
)
from aws_oidc_console.auth.models import (
    AuthResult,
    AuthStatus,
    OAuthConfig,
    OAuthSession,
    OIDCEndpoints,
    TokenResponse,
    UserInfo,
)
from aws_oidc_console.auth.pkce import generate_pkce_params
from aws_oidc_console.auth.session import KeyValueStore, SessionManager, id_token_claims
from aws_oidc_console.http import DEFAULT_TIMEOUT_S, open_client

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


class FlowState(str, Enum):
    """Lifecycle of an OAuth2Client within one execution context."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    LOGGING_IN = "logging_in"
    EXCHANGING_CODE = "exchanging_code"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


_UNREADY_STATES = (FlowState.UNINITIALIZED, FlowState.INITIALIZING)


class OAuth2Client:
    """Drives initialize / login / callback / logout for one OIDC provider.

    All browser-like side effects go through the injected capabilities: the
    key-value store holds the session and pending PKCE artifacts, the
    navigator performs redirects, the random source feeds PKCE.
    """

    def __init__(
        self,
        store: KeyValueStore,
        navigator: Navigator,
        random: RandomSource | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = system_clock,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.sessions = SessionManager(store, clock=clock)
        self.discovery = OIDCDiscovery(store, http_client=http_client, clock=clock, timeout_s=timeout_s)
        self.navigator = navigator
        self._random = random or SystemRandomSource()
        self._http_client = http_client
        self._clock = clock
        self._timeout_s = timeout_s

        self.state = FlowState.UNINITIALIZED
        self.authority: str | None = None
        self.client_id: str | None = None
        self.scope: str | None = None
        self.redirect_uri: str | None = None
        self._endpoints: OIDCEndpoints | None = None

    @property
    def endpoints(self) -> OIDCEndpoints | None:
        return self._endpoints

    def _ensure_initialized(self) -> None:
        if self.state in _UNREADY_STATES or self._endpoints is None:
            raise NotInitializedError()

    async def initialize(self, config: OAuthConfig) -> OIDCEndpoints:
        """Validate configuration and discover the provider endpoints."""
        missing = [
            name for name in ("authority", "client_id", "scope") if not getattr(config, name)
        ]
        if missing:
            raise ConfigurationError(
                f"OAuth2 configuration requires authority, client_id, and scope "
                f"(missing: {', '.join(missing)})"
            )

        self.state = FlowState.INITIALIZING
        self.authority = config.authority.rstrip("/")
        self.client_id = config.client_id
        self.scope = config.scope
        self.redirect_uri = config.redirect_uri or origin_of(self.navigator.current_url())

        logger.info(
            f"Initializing OAuth2 client (authority={self.authority}, "
            f"client_id={self.client_id}, redirect_uri={self.redirect_uri})"
        )

        try:
            self._endpoints = await self.discovery.discover(self.authority)
        except AuthError:
            self.state = FlowState.UNINITIALIZED
            raise

        self.state = FlowState.READY
        logger.info("OAuth2 client initialized")
        return self._endpoints

    def build_authorization_url(self, code_challenge: str, state: str) -> str:
        """Build the provider authorization URL for a PKCE request."""
        self._ensure_initialized()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "state": state,
        }
        endpoint = self._endpoints.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    async def login(self) -> str:
        """Start the flow and redirect to the authorization endpoint.

        A previous pending verifier/state pair is overwritten, so only the
        most recent login can complete.
        """
        self._ensure_initialized()

        pkce = generate_pkce_params(self._random)
        await self.sessions.store_pkce_verifier(pkce.verifier)
        await self.sessions.store_oauth_state(pkce.state)

        auth_url = self.build_authorization_url(pkce.challenge, pkce.state)
        logger.info(f"Redirecting to authorization endpoint (state={pkce.state[:6]}****)")

        self.state = FlowState.LOGGING_IN
        self.navigator.assign(auth_url)
        return auth_url

    async def handle_callback(self, code: str, state: str) -> AuthResult:
        """Validate *state*, exchange *code* and persist the new session."""
        self._ensure_initialized()

        self.state = FlowState.EXCHANGING_CODE
        try:
            stored_state = await self.sessions.retrieve_oauth_state()
            if not stored_state or not state or not hmac.compare_digest(
                stored_state.encode("utf-8"), state.encode("utf-8")
            ):
                await self.sessions.retrieve_pkce_verifier()
                raise CSRFError()

            code_verifier = await self.sessions.retrieve_pkce_verifier()
            if not code_verifier:
                raise VerifierNotFoundError()

            tokens = await self.exchange_code_for_tokens(code, code_verifier)
            user = await self._fetch_user_info_or_minimal(tokens.access_token)

            now = self._clock()
            expires_in = tokens.expires_in if tokens.expires_in is not None else DEFAULT_EXPIRES_IN
            session = OAuthSession(
                access_token=tokens.access_token,
                token_type=tokens.token_type or "Bearer",
                scope=tokens.scope or self.scope,
                expires_at=now + expires_in * 1000,
                created_at=now,
                refresh_token=tokens.refresh_token,
                id_token=tokens.id_token,
                user=user,
            )
            await self.sessions.store_session(session)
        except AuthError as e:
            logger.error(f"Callback handling failed: {e}")
            self.state = FlowState.FAILED
            await self.sessions.retrieve_pkce_verifier()
            await self.sessions.retrieve_oauth_state()
            self.state = FlowState.READY
            raise

        self.state = FlowState.AUTHENTICATED
        logger.info(f"User {user.sub} authenticated")
        return AuthResult(user=user, session=session)

    async def exchange_code_for_tokens(self, code: str, code_verifier: str) -> TokenResponse:
        """Exchange the authorization code for tokens at the token endpoint."""
        data = {
            "client_id": self.client_id,
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            async with open_client(self._http_client, self._timeout_s) as client:
                resp = await client.post(
                    self._endpoints.token_endpoint,
                    data=data,
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/x-www-form-urlencoded",
                    },
                )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token request failed: {e}") from e

        try:
            body = TokenResponse.model_validate(resp.json())
        except ValueError:
            body = TokenResponse()

        if resp.status_code != 200:
            raise TokenExchangeError(
                f"Token exchange failed: {resp.status_code} - "
                f"{body.error_description or body.error or resp.reason_phrase}",
                provider_error=body.error,
                status_code=resp.status_code,
            )
        if body.error:
            raise TokenExchangeError(
                f"Token error: {body.error_description or body.error}",
                provider_error=body.error,
                status_code=resp.status_code,
            )
        if not body.access_token:
            raise TokenExchangeError("No access token received", status_code=resp.status_code)

        logger.info("Token exchange successful")
        return body

    async def fetch_user_info(self, access_token: str) -> UserInfo:
        """Fetch identity claims; raises UserinfoError on any failure."""
        if not self._endpoints.userinfo_endpoint:
            raise UserinfoError("No userinfo endpoint available")

        try:
            async with open_client(self._http_client, self._timeout_s) as client:
                resp = await client.get(
                    self._endpoints.userinfo_endpoint,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise UserinfoError(f"Userinfo request failed: {e}") from e

        if resp.status_code != 200:
            raise UserinfoError(f"Userinfo fetch failed: {resp.status_code} {resp.reason_phrase}")

        try:
            return UserInfo.model_validate(resp.json())
        except ValueError as e:
            raise UserinfoError(f"Userinfo response invalid: {e}") from e

    async def _fetch_user_info_or_minimal(self, access_token: str) -> UserInfo:
        try:
            return await self.fetch_user_info(access_token)
        except UserinfoError as e:
            logger.warning(f"Falling back to minimal user info: {e}")
            return UserInfo.minimal(str(e))

    async def logout(self, redirect_to_provider: bool = False) -> None:
        """Clear all auth data, then redirect to the provider or reload the app."""
        logger.info("Logging out user")
        try:
            session = await self.sessions.get_session()
            await self.sessions.clear_all_auth_data()
        except (AuthError, OSError) as e:
            logger.error(f"Logout failed, forcing cleanup: {e}")
            await self.sessions.clear_all_auth_data()
            self.navigator.reload()
            return

        if redirect_to_provider and self._endpoints and self._endpoints.end_session_endpoint:
            params = {}
            if session and session.id_token:
                params["id_token_hint"] = session.id_token
            params["post_logout_redirect_uri"] = self.redirect_uri
            endpoint = self._endpoints.end_session_endpoint
            separator = "&" if "?" in endpoint else "?"
            self.navigator.assign(f"{endpoint}{separator}{urlencode(params)}")
        else:
            self.navigator.reload()

    async def handle_page_load(self, current_url: str | None = None) -> AuthResult | None:
        """Process an OAuth callback present in the current URL, if any.

        Callback parameters are stripped from the URL before anything else so
        a refresh cannot replay them.
        """
        url = current_url or self.navigator.current_url()
        params = parse_qs(urlsplit(url).query)
        code = (params.get("code") or [None])[0]
        state = (params.get("state") or [None])[0]
        error = (params.get("error") or [None])[0]

        if error or (code and state):
            self.navigator.replace_url(strip_query(url))

        if error:
            description = (params.get("error_description") or [None])[0]
            logger.error(f"Provider returned error: {error}")
            raise OAuthError(error, description)

        if code and state:
            logger.info("OAuth callback detected, processing")
            return await self.handle_callback(code, state)

        return None

    async def is_authenticated(self) -> bool:
        return await self.sessions.is_session_valid()

    async def get_current_user(self) -> UserInfo | None:
        session = await self.sessions.get_session()
        return session.user if session else None

    async def get_access_token(self) -> str | None:
        session = await self.sessions.get_session()
        return session.access_token if session else None

    async def get_id_token(self) -> str | None:
        session = await self.sessions.get_session()
        return session.id_token if session else None

    async def get_id_token_claims(self) -> dict | None:
        """Unverified claims of the stored ID token (for display only)."""
        return id_token_claims(await self.get_id_token())

    async def get_auth_status(self) -> AuthStatus:
        is_authenticated = await self.sessions.is_session_valid()
        return AuthStatus(
            is_authenticated=is_authenticated,
            user=await self.get_current_user() if is_authenticated else None,
            debug_info=await self.sessions.get_debug_info(),
        )

    async def refresh(self) -> AuthStatus:
        """Re-evaluate the stored session. No refresh grant is performed."""
        return await self.get_auth_status()
