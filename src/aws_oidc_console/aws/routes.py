"""AWS console and role history routes."""

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from aws_oidc_console.auth.errors import NotAuthenticatedError
from aws_oidc_console.auth.middleware import AuthenticatedSession, get_http_client
from aws_oidc_console.auth.session import KeyValueStore
from aws_oidc_console.aws.federation import AWSFederationService
from aws_oidc_console.aws.models import RoleHistoryItem, RoleHistoryStats
from aws_oidc_console.aws.role_history import RoleHistoryStore
from aws_oidc_console.config import Settings, get_settings
from aws_oidc_console.storage import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/aws", tags=["aws"])


class ConsoleRequest(BaseModel):
    role_arn: str = Field(..., description="IAM role to assume")
    destination: str | None = Field(None, description="Console page to land on")


def get_federation_service(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    http_client: Annotated[httpx.AsyncClient | None, Depends(get_http_client)],
) -> AWSFederationService:
    """Get or create the federation service for this application."""
    service = getattr(request.app.state, "federation_service", None)
    if service is None:
        service = AWSFederationService(
            settings.aws_config(),
            http_client=http_client,
            timeout_s=settings.http_timeout_s,
        )
        request.app.state.federation_service = service
    return service


def get_role_history(
    store: Annotated[KeyValueStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RoleHistoryStore:
    return RoleHistoryStore(store, max_items=settings.role_history_max)


FederationDep = Annotated[AWSFederationService, Depends(get_federation_service)]
RoleHistoryDep = Annotated[RoleHistoryStore, Depends(get_role_history)]


@router.post("/console")
async def open_console(
    body: ConsoleRequest,
    session: AuthenticatedSession,
    federation: FederationDep,
    role_history: RoleHistoryDep,
):
    """
    Assume the role with the session's ID token and return a console signin URL.
    Secret key and session token are never included in the response.
    """
    if not session.id_token:
        raise NotAuthenticatedError("No ID token available. Please re-authenticate.")

    await role_history.add_role_arn(body.role_arn)
    result = await federation.assume_role_and_open_console(
        body.role_arn.strip(), session.user, session.id_token, body.destination
    )
    info = result.session_info
    logger.info(f"Console session {info.session_name} opened for {info.role_arn}")

    return {
        "console_url": result.console_url,
        "session": {
            "role_arn": info.role_arn,
            "session_name": info.session_name,
            "created_at": info.created_at,
            "identity": info.identity.model_dump(exclude_none=True),
            "credentials": info.credentials.redacted(),
            "expires_in": federation.format_time_remaining(info.credentials.expiration),
        },
    }


@router.get("/roles", response_model=list[RoleHistoryItem])
async def list_roles(role_history: RoleHistoryDep):
    return await role_history.get_role_arns()


@router.delete("/roles")
async def remove_role(arn: str, role_history: RoleHistoryDep):
    return {"removed": await role_history.remove_role_arn(arn)}


@router.get("/roles/stats", response_model=RoleHistoryStats)
async def role_stats(role_history: RoleHistoryDep):
    return await role_history.get_history_stats()


@router.get("/roles/export")
async def export_roles(role_history: RoleHistoryDep):
    return Response(content=await role_history.export_history(), media_type="application/json")


@router.post("/roles/import")
async def import_roles(request: Request, role_history: RoleHistoryDep):
    """Merge an exported history document (raw JSON body) into the stored one."""
    body = (await request.body()).decode("utf-8", errors="replace")
    return {"total_roles": await role_history.import_history(body)}
