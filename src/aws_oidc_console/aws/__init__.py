"""AWS web-identity federation and role history."""

from aws_oidc_console.aws.errors import (
    AWSFederationError,
    InvalidRoleArnError,
    RoleHistoryImportError,
)
from aws_oidc_console.aws.federation import AWSFederationService, create_sts_client
from aws_oidc_console.aws.models import (
    AssumeRoleResult,
    AWSConfig,
    AWSCredentials,
    AWSSessionInfo,
    ConsoleSession,
    RoleHistoryItem,
    RoleHistoryStats,
)
from aws_oidc_console.aws.role_history import (
    RoleHistoryStore,
    format_role_arn_for_display,
    get_account_id_from_arn,
    get_role_name_from_arn,
    is_valid_role_arn,
)

__all__ = [
    # Errors
    "AWSFederationError",
    "InvalidRoleArnError",
    "RoleHistoryImportError",
    # Federation
    "AWSFederationService",
    "create_sts_client",
    # Models
    "AssumeRoleResult",
    "AWSConfig",
    "AWSCredentials",
    "AWSSessionInfo",
    "ConsoleSession",
    "RoleHistoryItem",
    "RoleHistoryStats",
    # Role history
    "RoleHistoryStore",
    "format_role_arn_for_display",
    "get_account_id_from_arn",
    "get_role_name_from_arn",
    "is_valid_role_arn",
]
