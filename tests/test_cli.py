"""Tests for the command line entry points that work on stored state."""

import argparse

import pytest

from aws_oidc_console.cli import build_parser, cache_command, roles_command, show_status
from aws_oidc_console.config import Settings

ARN = "arn:aws:iam::123456789012:role/ConsoleAccess"


@pytest.fixture
def settings(tmp_path):
    return Settings(storage_backend="file", storage_path=str(tmp_path / "store.json"))


def roles(*argv: str) -> argparse.Namespace:
    return build_parser().parse_args(["roles", *argv])


class TestRolesCommand:
    @pytest.mark.asyncio
    async def test_add_list_remove(self, settings, capsys):
        assert await roles_command(settings, roles("add", ARN))
        assert await roles_command(settings, roles("list"))
        out = capsys.readouterr().out
        assert "ConsoleAccess (123456789012)" in out
        assert "uses=1" in out

        assert await roles_command(settings, roles("remove", ARN))
        assert not await roles_command(settings, roles("remove", ARN))

    @pytest.mark.asyncio
    async def test_add_rejects_bad_arn(self, settings, capsys):
        assert not await roles_command(settings, roles("add", "not-an-arn"))
        assert "✗" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_import_missing_file(self, settings, tmp_path):
        assert not await roles_command(settings, roles("import", str(tmp_path / "missing.json")))

    @pytest.mark.asyncio
    async def test_export_then_import(self, settings, tmp_path, capsys):
        await roles_command(settings, roles("add", ARN))
        capsys.readouterr()
        await roles_command(settings, roles("export"))
        exported = tmp_path / "history.json"
        exported.write_text(capsys.readouterr().out, encoding="utf-8")

        await roles_command(settings, roles("clear"))
        assert await roles_command(settings, roles("import", str(exported)))
        assert "1 roles in history" in capsys.readouterr().out


class TestStatusAndCache:
    @pytest.mark.asyncio
    async def test_status_without_session(self, settings, capsys):
        assert await show_status(settings) is False
        assert "Not authenticated" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_cache_info_empty(self, settings, capsys):
        args = build_parser().parse_args(["cache", "info"])
        assert await cache_command(settings, args)
        assert "No cached OIDC configurations." in capsys.readouterr().out


def test_subcommand_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["roles"])


@pytest.mark.asyncio
async def test_status_rejects_zero_attempts(settings, capsys):
    assert await show_status(settings, attempts=0) is False
    assert "Could not read session store" in capsys.readouterr().out
