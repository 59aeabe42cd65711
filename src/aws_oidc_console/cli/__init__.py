"""CLI for the AWS OIDC console: run the local app and manage stored state."""

import argparse
import asyncio
import sys
import threading
import webbrowser
from pathlib import Path

from aws_oidc_console.auth.discovery import OIDCDiscovery
from aws_oidc_console.auth.session import SessionManager
from aws_oidc_console.aws.errors import InvalidRoleArnError, RoleHistoryImportError
from aws_oidc_console.aws.role_history import RoleHistoryStore, format_role_arn_for_display
from aws_oidc_console.config import Settings, get_settings
from aws_oidc_console.retry import RetryExhaustedError, retry_with_backoff
from aws_oidc_console.storage import create_store


def serve(settings: Settings, host: str, port: int, open_browser: bool = True) -> bool:
    """Run the web app and open the login page in a browser."""
    import uvicorn

    from aws_oidc_console.main import create_app

    if not settings.oauth_authority or not settings.oauth_client_id:
        print("✗ OAUTH_AUTHORITY and OAUTH_CLIENT_ID must be set (environment or .env).")
        return False

    login_url = f"http://{host}:{port}/auth/login"
    print(f"Starting AWS OIDC console on http://{host}:{port}")
    if open_browser:
        print(f"Opening browser to: {login_url}\n")
        threading.Timer(1.0, webbrowser.open, args=(login_url,)).start()

    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
    return True


async def show_status(settings: Settings, attempts: int = 1) -> bool:
    sessions = SessionManager(create_store(settings))
    try:
        # Redis reads can fail transiently.
        valid = await retry_with_backoff(sessions.is_session_valid, max_attempts=attempts)
    except (RetryExhaustedError, ValueError) as e:
        print(f"✗ Could not read session store: {e}")
        return False
    if not valid:
        print("✗ Not authenticated.")
        print("  Run 'aws-oidc-console serve' to sign in.")
        return False

    session = await sessions.get_session()
    info = await sessions.get_debug_info()
    print("✓ Authenticated")
    print(f"  User: {session.user.display_name}")
    if session.user.email:
        print(f"  Email: {session.user.email}")
    print(f"  Expires in: {info.time_remaining_formatted} ({info.expires_at})")
    print(f"  ID token: {'yes' if info.has_id_token else 'no'}")
    return True


async def logout(settings: Settings) -> bool:
    await SessionManager(create_store(settings)).clear_all_auth_data()
    print("✓ Logged out. Stored session and cached provider data removed.")
    return True


async def roles_command(settings: Settings, args: argparse.Namespace) -> bool:
    history = RoleHistoryStore(create_store(settings), max_items=settings.role_history_max)

    if args.roles_command == "list":
        roles = await history.get_role_arns()
        if not roles:
            print("No roles in history.")
            return True
        print(f"Role history ({len(roles)}):")
        for role in roles:
            print(f"  - {format_role_arn_for_display(role.arn)}  uses={role.use_count}  {role.arn}")
        return True

    if args.roles_command == "add":
        try:
            item = await history.add_role_arn(args.arn)
        except InvalidRoleArnError as e:
            print(f"✗ {e}: {args.arn}")
            return False
        print(f"✓ Added {format_role_arn_for_display(item.arn)} (uses={item.use_count})")
        return True

    if args.roles_command == "remove":
        if await history.remove_role_arn(args.arn):
            print(f"✓ Removed {args.arn}")
            return True
        print(f"✗ Not in history: {args.arn}")
        return False

    if args.roles_command == "export":
        print(await history.export_history())
        return True

    if args.roles_command == "import":
        try:
            data = Path(args.file).read_text(encoding="utf-8")
            total = await history.import_history(data)
        except (OSError, RoleHistoryImportError) as e:
            print(f"✗ {e}")
            return False
        print(f"✓ Imported. {total} roles in history.")
        return True

    if args.roles_command == "clear":
        await history.clear_history()
        print("✓ Role history cleared.")
        return True

    return False


async def cache_command(settings: Settings, args: argparse.Namespace) -> bool:
    discovery = OIDCDiscovery(create_store(settings))

    if args.cache_command == "info":
        infos = await discovery.get_cache_info()
        if not infos:
            print("No cached OIDC configurations.")
            return True
        for info in infos:
            if info.error:
                print(f"  ✗ {info.authority}: {info.error}")
            else:
                state = "expired" if info.expired else "fresh"
                print(f"  - {info.authority} ({state}, {info.age} min old, issuer={info.issuer})")
        return True

    if args.cache_command == "clear":
        removed = await discovery.clear_cache()
        print(f"✓ Cleared {removed} cached OIDC configurations.")
        return True

    return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sign in with OIDC and open the AWS console",
        prog="aws-oidc-console",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the local web app and sign in")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: SERVER_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: SERVER_PORT)")
    serve_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Do not open the login page in a browser",
    )

    status_parser = subparsers.add_parser("status", help="Show the stored authentication session")
    status_parser.add_argument(
        "--retries",
        type=int,
        default=1,
        help="Attempts at reading the store, with exponential backoff (default: 1)",
    )
    subparsers.add_parser("logout", help="Remove the stored session and cached provider data")

    # Role history commands
    roles_parser = subparsers.add_parser("roles", help="Manage role ARN history")
    roles_sub = roles_parser.add_subparsers(dest="roles_command", required=True)
    roles_sub.add_parser("list", help="List remembered roles")
    roles_sub.add_parser("add", help="Remember a role ARN").add_argument("arn")
    roles_sub.add_parser("remove", help="Forget a role ARN").add_argument("arn")
    roles_sub.add_parser("export", help="Print the history as JSON")
    roles_sub.add_parser("import", help="Merge a JSON history file").add_argument("file")
    roles_sub.add_parser("clear", help="Forget all roles")

    # Discovery cache commands
    cache_parser = subparsers.add_parser("cache", help="Inspect the OIDC discovery cache")
    cache_sub = cache_parser.add_subparsers(dest="cache_command", required=True)
    cache_sub.add_parser("info", help="List cached provider configurations")
    cache_sub.add_parser("clear", help="Remove cached provider configurations")

    return parser


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "serve":
        success = serve(
            settings,
            host=args.host or settings.server_host,
            port=args.port or settings.server_port,
            open_browser=not args.no_browser,
        )
        sys.exit(0 if success else 1)

    elif args.command == "status":
        success = asyncio.run(show_status(settings, attempts=args.retries))
        sys.exit(0 if success else 1)

    elif args.command == "logout":
        success = asyncio.run(logout(settings))
        sys.exit(0 if success else 1)

    elif args.command == "roles":
        success = asyncio.run(roles_command(settings, args))
        sys.exit(0 if success else 1)

    elif args.command == "cache":
        success = asyncio.run(cache_command(settings, args))
        sys.exit(0 if success else 1)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
