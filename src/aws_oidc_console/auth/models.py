"""Authentication data models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OAuthConfig(BaseModel):
    """Client configuration consumed by OAuth2Client.initialize()."""

    authority: str = Field("", description="OIDC issuer / authority base URL")
    client_id: str = Field("", description="OAuth2 public client ID")
    scope: str = Field("", description="Space separated scopes to request")
    redirect_uri: str | None = Field(None, description="Callback URL registered with the provider")


class OIDCEndpoints(BaseModel):
    """Normalized endpoint set extracted from a discovery document."""

    model_config = ConfigDict(frozen=True)

    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None
    issuer: str | None = None
    supported_scopes: tuple[str, ...] = ()
    supported_response_types: tuple[str, ...] = ()
    supported_code_challenge_methods: tuple[str, ...] = ()

    @classmethod
    def from_configuration(cls, config: dict) -> "OIDCEndpoints":
        return cls(
            authorization_endpoint=config["authorization_endpoint"],
            token_endpoint=config["token_endpoint"],
            userinfo_endpoint=config.get("userinfo_endpoint") or None,
            end_session_endpoint=config.get("end_session_endpoint") or None,
            issuer=config.get("issuer") or None,
            supported_scopes=tuple(config.get("scopes_supported") or ()),
            supported_response_types=tuple(config.get("response_types_supported") or ()),
            supported_code_challenge_methods=tuple(
                config.get("code_challenge_methods_supported") or ()
            ),
        )


class PKCEParams(BaseModel):
    """One pending PKCE verifier / challenge / state triple."""

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str
    state: str


class TokenResponse(BaseModel):
    """Token endpoint response body (success or error)."""

    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None
    error: str | None = None
    error_description: str | None = None


class UserInfo(BaseModel):
    """Identity claims returned by the userinfo endpoint.

    Unknown claims are kept as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    sub: str = Field("unknown", description="Subject (user ID)")
    email: str | None = None
    name: str | None = None
    picture: str | None = None
    login: str | None = Field(None, description="Provider username, e.g. GitHub login")
    preferred_username: str | None = None
    authenticated: bool | None = None
    error: str | None = Field(None, description="Why the claims could not be fetched")

    @classmethod
    def minimal(cls, error: str | None = None) -> "UserInfo":
        """Placeholder identity used when the userinfo endpoint is unavailable."""
        return cls(sub="unknown", authenticated=True, error=error)

    @property
    def display_name(self) -> str:
        return self.name or self.login or self.preferred_username or self.email or self.sub


class OAuthSession(BaseModel):
    """Authenticated session persisted in the key-value store.

    Timestamps are epoch milliseconds.
    """

    access_token: str = Field(..., min_length=1)
    token_type: str = "Bearer"
    scope: str = ""
    expires_at: int
    created_at: int
    refresh_token: str | None = None
    id_token: str | None = None
    user: UserInfo = Field(default_factory=UserInfo.minimal)

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def time_remaining(self, now: int) -> int:
        return max(0, self.expires_at - now)


class AuthResult(BaseModel):
    """Outcome of a successful callback."""

    user: UserInfo
    session: OAuthSession


class SessionDebugInfo(BaseModel):
    """Non-secret summary of the stored session."""

    has_session: bool
    is_expired: bool | None = None
    time_remaining: int | None = None
    time_remaining_formatted: str | None = None
    created_at: str | None = None
    expires_at: str | None = None
    token_type: str | None = None
    scope: str | None = None
    has_refresh_token: bool | None = None
    has_id_token: bool | None = None
    user_id: str | None = None
    user_email: str | None = None
    id_token_expires_at: str | None = None


class AuthStatus(BaseModel):
    """Current authentication status as seen by the outer layers."""

    is_authenticated: bool
    user: UserInfo | None = None
    debug_info: SessionDebugInfo


class CacheInfo(BaseModel):
    """Debug view of one cached discovery document."""

    authority: str
    age: int = Field(0, description="Age in minutes")
    expired: bool
    issuer: str | None = None
    error: str | None = None
