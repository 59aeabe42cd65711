"""Exception types raised by the authentication core.

Only lightweight, data-carrying exceptions live here so that the web and CLI
layers can turn them into HTTP responses or user-friendly messages.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error surfaced by the authentication core."""

    error: str = "auth_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.error)

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload without secrets."""
        return {"error": self.error, "message": str(self)}


class ConfigurationError(AuthError):
    """Required OAuth2 configuration is missing or invalid."""

    error = "configuration_error"


class NotInitializedError(AuthError):
    """OAuth2 client not initialized. Call initialize() first."""

    error = "not_initialized"


class CryptoUnavailableError(AuthError):
    """No cryptographically secure randomness source is available."""

    error = "crypto_unavailable"


class DiscoveryError(AuthError):
    """The provider metadata could not be fetched or is incomplete."""

    error = "discovery_error"


class CSRFError(AuthError):
    """Invalid state parameter - possible CSRF attack."""

    error = "invalid_state"


class VerifierNotFoundError(AuthError):
    """PKCE code verifier not found."""

    error = "verifier_not_found"


class TokenExchangeError(AuthError):
    """The token endpoint rejected the authorization code."""

    error = "token_exchange_failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        provider_error: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider_error = provider_error
        self.status_code = status_code

    def to_payload(self) -> dict[str, str]:
        payload = super().to_payload()
        if self.provider_error:
            payload["provider_error"] = self.provider_error
        return payload


class OAuthError(AuthError):
    """The provider redirected back with an explicit error."""

    error = "oauth_error"

    def __init__(self, provider_error: str, description: str | None = None) -> None:
        super().__init__(f"OAuth error: {description or provider_error}")
        self.provider_error = provider_error
        self.description = description

    def to_payload(self) -> dict[str, str]:
        payload = super().to_payload()
        payload["provider_error"] = self.provider_error
        return payload


class UserinfoError(AuthError):
    """The userinfo endpoint could not be reached or returned an error."""

    error = "userinfo_error"


class StorageError(AuthError):
    """Persisted authentication data is missing, corrupted or unwritable."""

    error = "storage_error"


class NotAuthenticatedError(AuthError):
    """Authentication required."""

    error = "not_authenticated"
