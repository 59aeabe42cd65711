"""Exchange an OIDC ID token for temporary AWS credentials and a console signin URL."""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from urllib.parse import urlencode

import boto3
import httpx
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from aws_oidc_console.auth.capabilities import Clock, system_clock
from aws_oidc_console.auth.models import UserInfo
from aws_oidc_console.aws.errors import AWSFederationError
from aws_oidc_console.aws.models import (
    MAX_DURATION_SECONDS,
    MIN_DURATION_SECONDS,
    SESSION_NAME_MAX_LENGTH,
    SESSION_NAME_PATTERN,
    AssumedRoleUser,
    AssumeRoleResult,
    AWSConfig,
    AWSCredentials,
    AWSSessionInfo,
    ConsoleSession,
    SessionIdentity,
)
from aws_oidc_console.http import DEFAULT_TIMEOUT_S, open_client

logger = logging.getLogger(__name__)

CREDENTIALS_EXPIRY_BUFFER_MS = 5 * 60 * 1000

_SESSION_NAME_RE = re.compile(SESSION_NAME_PATTERN, re.ASCII)


def create_sts_client(config: AWSConfig):
    """STS client that sends unsigned requests; no local AWS credentials are needed."""
    return boto3.client(
        "sts",
        region_name=config.region,
        endpoint_url=config.sts_endpoint,
        config=Config(signature_version=UNSIGNED),
    )


def _session_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


def _to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class AWSFederationService:
    """STS AssumeRoleWithWebIdentity plus the console federation endpoint."""

    def __init__(
        self,
        config: AWSConfig | None = None,
        sts_client=None,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = system_clock,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.config = config or AWSConfig()
        self._sts_client = sts_client
        self._http_client = http_client
        self._clock = clock
        self._timeout_s = timeout_s

    @property
    def sts_client(self):
        if self._sts_client is None:
            self._sts_client = create_sts_client(self.config)
        return self._sts_client

    def generate_session_name(self, user: UserInfo) -> str:
        """Build ``oidc-<user>-<timestamp>``, at most 64 characters.

        Never raises: falls back to a generic name instead.
        """
        now = self._clock()
        timestamp = _session_timestamp(now)
        try:
            email_local = user.email.split("@")[0] if user.email else None
            sub = re.sub(r"[^a-zA-Z0-9]", "", user.sub or "")
            base = user.login or user.preferred_username or email_local or sub or "oidc-user"

            clean = re.sub(r"[^\w+=,.@-]", "-", base, flags=re.ASCII)
            name = f"oidc-{clean}-{timestamp}"[:SESSION_NAME_MAX_LENGTH]

            if not _SESSION_NAME_RE.match(name):
                logger.warning(f"Generated session name is not valid, using fallback: {name}")
                return f"oidc-user-{timestamp}"[:SESSION_NAME_MAX_LENGTH]

            logger.info(f"Generated AWS session name: {name}")
            return name
        except (AttributeError, TypeError) as e:
            logger.error(f"Failed to generate session name: {e}")
            return f"oidc-session-{now}"[:SESSION_NAME_MAX_LENGTH]

    async def assume_role_with_web_identity(
        self,
        role_arn: str,
        id_token: str,
        session_name: str,
        duration_seconds: int | None = None,
    ) -> AssumeRoleResult:
        """Call STS AssumeRoleWithWebIdentity.

        Arguments are validated before any request is made.
        """
        if duration_seconds is None:
            duration_seconds = self.config.default_duration_seconds

        if not role_arn or not id_token or not session_name:
            raise AWSFederationError(
                "InvalidParameterValue",
                "Missing required parameters for AssumeRoleWithWebIdentity",
            )
        if not MIN_DURATION_SECONDS <= duration_seconds <= MAX_DURATION_SECONDS:
            raise AWSFederationError(
                "InvalidParameterValue",
                f"Duration must be between {MIN_DURATION_SECONDS} and "
                f"{MAX_DURATION_SECONDS} seconds",
            )

        logger.info(
            f"Assuming AWS role with web identity (role={role_arn}, session={session_name}, "
            f"duration={duration_seconds}s, region={self.config.region})"
        )

        try:
            response = await asyncio.to_thread(
                self.sts_client.assume_role_with_web_identity,
                RoleArn=role_arn,
                RoleSessionName=session_name,
                WebIdentityToken=id_token,
                DurationSeconds=duration_seconds,
            )
        except ClientError as e:
            error = AWSFederationError.from_client_error(e)
            logger.error(f"AssumeRoleWithWebIdentity failed: {error.code} - {error.message}")
            raise error from e
        except BotoCoreError as e:
            logger.error(f"AssumeRoleWithWebIdentity request failed: {e}")
            raise AWSFederationError("UnknownError", str(e)) from e

        creds = response.get("Credentials") or {}
        required = ("AccessKeyId", "SecretAccessKey", "SessionToken", "Expiration")
        if not all(creds.get(field) for field in required):
            raise AWSFederationError(
                "IncompleteCredentials", "Incomplete credentials in AWS STS response"
            )

        assumed = response.get("AssumedRoleUser") or {}
        assumed_role_user = None
        if assumed.get("AssumedRoleId") and assumed.get("Arn"):
            assumed_role_user = AssumedRoleUser(
                assumed_role_id=assumed["AssumedRoleId"], arn=assumed["Arn"]
            )

        logger.info("Successfully assumed AWS role")
        return AssumeRoleResult(
            credentials=AWSCredentials(
                access_key_id=creds["AccessKeyId"],
                secret_access_key=creds["SecretAccessKey"],
                session_token=creds["SessionToken"],
                expiration=creds["Expiration"],
            ),
            assumed_role_user=assumed_role_user,
        )

    async def generate_console_url(
        self,
        credentials: AWSCredentials,
        destination: str | None = None,
    ) -> str:
        """Trade credentials for a signin token and build the console login URL."""
        session_json = json.dumps({
            "sessionId": credentials.access_key_id,
            "sessionKey": credentials.secret_access_key,
            "sessionToken": credentials.session_token,
        })
        endpoint = self.config.federation_endpoint_proxy or self.config.federation_endpoint

        try:
            async with open_client(self._http_client, self._timeout_s) as client:
                resp = await client.get(
                    endpoint,
                    params={"Action": "getSigninToken", "Session": session_json},
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            raise AWSFederationError("FederationError", f"Federation request failed: {e}") from e

        if resp.status_code != 200:
            raise AWSFederationError(
                "FederationError",
                f"Federation request failed: {resp.status_code} {resp.reason_phrase}",
            )

        try:
            signin_token = resp.json().get("SigninToken")
        except (ValueError, AttributeError):
            signin_token = None
        if not signin_token:
            raise AWSFederationError(
                "FederationError", "No signin token received from federation endpoint"
            )

        params = {
            "Action": "login",
            "Issuer": self.config.issuer,
            "Destination": destination or self.config.console_base_url,
            "SigninToken": signin_token,
        }
        logger.info("Generated AWS console URL")
        return f"{self.config.federation_endpoint}?{urlencode(params)}"

    async def assume_role_and_open_console(
        self,
        role_arn: str,
        user: UserInfo,
        id_token: str,
        destination: str | None = None,
    ) -> ConsoleSession:
        session_name = self.generate_session_name(user)
        result = await self.assume_role_with_web_identity(role_arn, id_token, session_name)

        session_info = AWSSessionInfo(
            role_arn=role_arn,
            session_name=session_name,
            credentials=result.credentials,
            created_at=self._clock(),
            identity=SessionIdentity(
                login=user.login, email=user.email, name=user.name, sub=user.sub
            ),
        )
        console_url = await self.generate_console_url(result.credentials, destination)
        return ConsoleSession(session_info=session_info, console_url=console_url)

    def is_credentials_valid(self, credentials: AWSCredentials) -> bool:
        """True while more than five minutes of validity remain."""
        return _to_ms(credentials.expiration) > self._clock() + CREDENTIALS_EXPIRY_BUFFER_MS

    def get_time_remaining(self, expiration: datetime) -> int:
        return max(0, _to_ms(expiration) - self._clock())

    def format_time_remaining(self, expiration: datetime) -> str:
        remaining = self.get_time_remaining(expiration)
        if remaining == 0:
            return "Expired"
        hours = remaining // (1000 * 60 * 60)
        minutes = (remaining % (1000 * 60 * 60)) // (1000 * 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"
