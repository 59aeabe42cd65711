"""AWS federation error taxonomy."""

from __future__ import annotations

from botocore.exceptions import ClientError

USER_MESSAGES = {
    "InvalidIdentityToken": "ID token is invalid or expired. Please re-authenticate.",
    "AccessDenied": (
        "Access denied. Check that the role trusts the OIDC provider "
        "and you have permission to assume it."
    ),
    "TokenExpired": "ID token has expired. Please re-authenticate.",
    "AssumeRoleUnauthorizedOperation": (
        "Unauthorized to assume this role. Check role permissions and trust policy."
    ),
    "InvalidParameterValue": "Invalid ID token format. Ensure OIDC is properly configured.",
}

# STS wire codes that share a user-facing category
_CODE_ALIASES = {
    "ExpiredTokenException": "TokenExpired",
    "ExpiredToken": "TokenExpired",
    "ValidationError": "InvalidParameterValue",
    "InvalidParameterValueException": "InvalidParameterValue",
    "AccessDeniedException": "AccessDenied",
}


def normalize_error_code(code: str | None) -> str:
    if not code:
        return "UnknownError"
    return _CODE_ALIASES.get(code, code)


class AWSFederationError(Exception):
    """A failed console-open attempt, typed by an STS-style error code."""

    def __init__(self, code: str, message: str, request_id: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.request_id = request_id

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.code, f"AWS Error: {self.message}")

    @classmethod
    def from_client_error(cls, error: ClientError) -> "AWSFederationError":
        err = error.response.get("Error", {})
        return cls(
            code=normalize_error_code(err.get("Code")),
            message=err.get("Message") or str(error),
            request_id=error.response.get("ResponseMetadata", {}).get("RequestId"),
        )

    def to_payload(self) -> dict[str, str]:
        return {
            "error": self.code,
            "message": self.user_message,
            "detail": self.message,
        }


class InvalidRoleArnError(ValueError):
    """Invalid AWS IAM Role ARN format."""

    def __init__(self, arn: str | None = None):
        super().__init__("Invalid AWS IAM Role ARN format")
        self.arn = arn


class RoleHistoryImportError(ValueError):
    """Role history import data was rejected."""

    def __init__(self, reason: str):
        super().__init__(f"Import failed: {reason}")
        self.reason = reason
