"""AWS federation and role history data models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MIN_DURATION_SECONDS = 900
MAX_DURATION_SECONDS = 43200
DEFAULT_DURATION_SECONDS = 3600
DEFAULT_REGION = "us-east-1"
MAX_ROLE_HISTORY = 10
SESSION_NAME_MAX_LENGTH = 64
CONSOLE_BASE_URL = "https://console.aws.amazon.com"
STS_ENDPOINT = "https://sts.amazonaws.com"
FEDERATION_ENDPOINT = "https://signin.aws.amazon.com/federation"

ROLE_ARN_PATTERN = r"^arn:aws:iam::\d{12}:role/[\w+=,.@-]+$"
SESSION_NAME_PATTERN = r"^[\w+=,.@-]+$"


class AWSConfig(BaseModel):
    """Settings consumed by AWSFederationService."""

    region: str = DEFAULT_REGION
    default_duration_seconds: int = Field(
        DEFAULT_DURATION_SECONDS, ge=MIN_DURATION_SECONDS, le=MAX_DURATION_SECONDS
    )
    console_base_url: str = CONSOLE_BASE_URL
    sts_endpoint: str = STS_ENDPOINT
    federation_endpoint: str = FEDERATION_ENDPOINT
    federation_endpoint_proxy: str | None = Field(
        None, description="Alternate endpoint used only for the getSigninToken call"
    )
    issuer: str = Field("http://localhost:8000", description="Issuer shown on the AWS signin page")


class AWSCredentials(BaseModel):
    """Temporary credentials returned by STS."""

    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime

    def redacted(self) -> dict:
        return {
            "access_key_id": f"{self.access_key_id[:4]}****",
            "expiration": self.expiration.isoformat(),
        }


class AssumedRoleUser(BaseModel):
    assumed_role_id: str
    arn: str


class AssumeRoleResult(BaseModel):
    credentials: AWSCredentials
    assumed_role_user: AssumedRoleUser | None = None


class SessionIdentity(BaseModel):
    """Identity claims kept alongside an AWS session. Nothing else is copied."""

    login: str | None = None
    email: str | None = None
    name: str | None = None
    sub: str


class AWSSessionInfo(BaseModel):
    role_arn: str
    session_name: str
    credentials: AWSCredentials
    created_at: int = Field(..., description="Epoch milliseconds")
    identity: SessionIdentity


class ConsoleSession(BaseModel):
    session_info: AWSSessionInfo
    console_url: str


class RoleHistoryItem(BaseModel):
    """One remembered role. Persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    arn: str
    name: str
    account_id: str
    last_used: int = Field(..., description="Epoch milliseconds")
    use_count: int = 1


class RoleHistory(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    roles: list[RoleHistoryItem] = Field(default_factory=list)
    max_items: int = MAX_ROLE_HISTORY


class RoleHistoryStats(BaseModel):
    total_roles: int = 0
    most_used_role: RoleHistoryItem | None = None
    oldest_role: RoleHistoryItem | None = None
    newest_role: RoleHistoryItem | None = None
