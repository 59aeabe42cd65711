"""OAuth2 Authorization Code + PKCE client core."""

from aws_oidc_console.auth.capabilities import (
    FixedRandomSource,
    NavigationRequested,
    RecordingNavigator,
    RedirectNavigator,
    SystemRandomSource,
    system_clock,
)
from aws_oidc_console.auth.discovery import OIDCDiscovery
from aws_oidc_console.auth.errors import (
    AuthError,
    ConfigurationError,
    CSRFError,
    DiscoveryError,
    NotAuthenticatedError,
    NotInitializedError,
    OAuthError,
    StorageError,
    TokenExchangeError,
    VerifierNotFoundError,
)
from aws_oidc_console.auth.models import AuthResult, AuthStatus, OAuthConfig, OAuthSession, UserInfo
from aws_oidc_console.auth.oidc import FlowState, OAuth2Client
from aws_oidc_console.auth.session import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    SessionManager,
)

__all__ = [
    # Capabilities
    "FixedRandomSource",
    "NavigationRequested",
    "RecordingNavigator",
    "RedirectNavigator",
    "SystemRandomSource",
    "system_clock",
    # Errors
    "AuthError",
    "ConfigurationError",
    "CSRFError",
    "DiscoveryError",
    "NotAuthenticatedError",
    "NotInitializedError",
    "OAuthError",
    "StorageError",
    "TokenExchangeError",
    "VerifierNotFoundError",
    # Models
    "AuthResult",
    "AuthStatus",
    "OAuthConfig",
    "OAuthSession",
    "UserInfo",
    # Flow
    "FlowState",
    "OAuth2Client",
    "OIDCDiscovery",
    # Session
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "SessionManager",
]
