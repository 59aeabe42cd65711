"""Bounded most-recently-used history of assumed role ARNs."""

import json
import logging
import re

from pydantic import ValidationError

from aws_oidc_console.auth.capabilities import Clock, system_clock
from aws_oidc_console.auth.session import KeyValueStore
from aws_oidc_console.aws.errors import InvalidRoleArnError, RoleHistoryImportError
from aws_oidc_console.aws.models import (
    MAX_ROLE_HISTORY,
    ROLE_ARN_PATTERN,
    RoleHistory,
    RoleHistoryItem,
    RoleHistoryStats,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "aws_role_arn_history"

_ROLE_ARN_RE = re.compile(ROLE_ARN_PATTERN, re.ASCII)
_ROLE_NAME_RE = re.compile(r"arn:aws:iam::\d{12}:role/(.+)$")
_ACCOUNT_ID_RE = re.compile(r"arn:aws:iam::(\d{12}):role/.+$")


def is_valid_role_arn(arn: str | None) -> bool:
    return isinstance(arn, str) and _ROLE_ARN_RE.match(arn) is not None


def get_role_name_from_arn(arn: str) -> str:
    match = _ROLE_NAME_RE.search(arn)
    return match.group(1) if match else "Unknown"


def get_account_id_from_arn(arn: str) -> str:
    match = _ACCOUNT_ID_RE.search(arn)
    return match.group(1) if match else "Unknown"


def format_role_arn_for_display(arn: str) -> str:
    """``arn:aws:iam::123456789012:role/MyRole`` -> ``MyRole (123456789012)``."""
    return f"{arn.split('/')[-1]} ({get_account_id_from_arn(arn)})"


def _by_recency(roles: list[RoleHistoryItem]) -> list[RoleHistoryItem]:
    return sorted(roles, key=lambda role: role.last_used, reverse=True)


class RoleHistoryStore:
    """Role ARN history persisted as a single JSON value in a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        max_items: int = MAX_ROLE_HISTORY,
        clock: Clock = system_clock,
    ):
        self._store = store
        self.max_items = max_items
        self._clock = clock

    async def _load(self) -> RoleHistory:
        raw = await self._store.get(STORAGE_KEY)
        if not raw:
            return RoleHistory(max_items=self.max_items)
        try:
            history = RoleHistory.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Invalid role ARN history, resetting: {e.error_count()} error(s)")
            return RoleHistory(max_items=self.max_items)
        history.max_items = self.max_items
        return history

    async def _save(self, history: RoleHistory) -> None:
        await self._store.set(STORAGE_KEY, history.model_dump_json(by_alias=True))

    async def add_role_arn(self, arn: str) -> RoleHistoryItem:
        """Record a use of *arn*, moving it to the front of the history."""
        trimmed = (arn or "").strip()
        if not is_valid_role_arn(trimmed):
            raise InvalidRoleArnError(trimmed)

        history = await self._load()
        now = self._clock()

        existing = next((role for role in history.roles if role.arn == trimmed), None)
        if existing:
            history.roles.remove(existing)
            existing.last_used = now
            existing.use_count += 1
            item = existing
        else:
            item = RoleHistoryItem(
                arn=trimmed,
                name=get_role_name_from_arn(trimmed),
                account_id=get_account_id_from_arn(trimmed),
                last_used=now,
                use_count=1,
            )
        history.roles.insert(0, item)
        history.roles = history.roles[: self.max_items]

        await self._save(history)
        logger.info(f"Recorded role {format_role_arn_for_display(trimmed)} (uses={item.use_count})")
        return item

    async def get_role_arns(self) -> list[RoleHistoryItem]:
        """All remembered roles, most recently used first."""
        return _by_recency((await self._load()).roles)

    async def get_most_recent_role_arn(self) -> str | None:
        roles = await self.get_role_arns()
        return roles[0].arn if roles else None

    async def get_role_by_arn(self, arn: str | None) -> RoleHistoryItem | None:
        if not arn:
            return None
        trimmed = arn.strip()
        return next((r for r in (await self._load()).roles if r.arn == trimmed), None)

    async def has_role_arn(self, arn: str | None) -> bool:
        return await self.get_role_by_arn(arn) is not None

    async def remove_role_arn(self, arn: str | None) -> bool:
        if not arn:
            return False
        trimmed = arn.strip()
        history = await self._load()
        remaining = [role for role in history.roles if role.arn != trimmed]
        if len(remaining) == len(history.roles):
            return False
        history.roles = remaining
        await self._save(history)
        return True

    async def clear_history(self) -> None:
        await self._save(RoleHistory(max_items=self.max_items))

    async def get_history_stats(self) -> RoleHistoryStats:
        roles = await self.get_role_arns()
        if not roles:
            return RoleHistoryStats()
        return RoleHistoryStats(
            total_roles=len(roles),
            most_used_role=max(roles, key=lambda role: role.use_count),
            oldest_role=min(roles, key=lambda role: role.last_used),
            newest_role=roles[0],
        )

    async def export_history(self) -> str:
        return (await self._load()).model_dump_json(by_alias=True, indent=2)

    async def import_history(self, data: str) -> int:
        """Merge exported history into the stored one; imported entries win.

        Nothing is written unless every imported ARN is valid. Returns the
        resulting number of roles.
        """
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise RoleHistoryImportError(f"invalid JSON ({e})") from e

        roles = payload.get("roles") if isinstance(payload, dict) else None
        if not isinstance(roles, list):
            raise RoleHistoryImportError("Invalid history format: missing or invalid roles array")

        for role in roles:
            arn = role.get("arn") if isinstance(role, dict) else None
            if not is_valid_role_arn(arn):
                raise RoleHistoryImportError(f"Invalid role ARN in import data: {arn}")

        try:
            imported = [RoleHistoryItem.model_validate(role) for role in roles]
        except ValidationError as e:
            raise RoleHistoryImportError(f"invalid role entry ({e.error_count()} error(s))") from e

        # One entry per ARN; the most recently used duplicate wins.
        latest: dict[str, RoleHistoryItem] = {}
        for role in imported:
            if role.arn not in latest or role.last_used > latest[role.arn].last_used:
                latest[role.arn] = role
        imported = list(latest.values())

        history = await self._load()
        imported_arns = {role.arn for role in imported}
        merged = imported + [role for role in history.roles if role.arn not in imported_arns]
        history.roles = _by_recency(merged)[: self.max_items]

        await self._save(history)
        logger.info(f"Imported {len(imported)} roles ({len(history.roles)} in history)")
        return len(history.roles)
