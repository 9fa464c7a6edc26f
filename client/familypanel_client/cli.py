"""``familypanel-login``: sign in to Family Panel from a terminal.

Examples::

    familypanel-login login parent@example.com
    familypanel-login pin-login 6f1c...   # prompts for the kid's PIN
    familypanel-login whoami
    familypanel-login logout
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys

import httpx

from .api import RestClient
from .config import ClientConfig
from .controller import AuthSessionController
from .errors import ApiError
from .identity import IdentityClient
from .models import AuthUser
from .session_store import SessionStore

log = logging.getLogger("familypanel")


def _describe(user: AuthUser | None) -> str:
    if user is None:
        return "Not signed in."
    role = user.role or "unknown role"
    return f"Signed in as {user.name} <{user.email}> ({role})"


async def _run(args: argparse.Namespace, config: ClientConfig) -> int:
    rest = RestClient(config)
    identity = IdentityClient(rest, SessionStore())
    controller = AuthSessionController(identity, rest, rest, config=config)

    await controller.start()
    try:
        await controller.wait_ready()

        if args.command == "login":
            password = getpass.getpass("Password: ")
            await controller.sign_in(args.email, password)
        elif args.command == "pin-login":
            pin = getpass.getpass("PIN: ")
            await controller.sign_in_with_pin(args.user_id, pin)
            await controller.refresh_user()
        elif args.command == "logout":
            await controller.sign_out()

        print(_describe(controller.user))
        return 0
    except ApiError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    except httpx.HTTPError as exc:
        print(f"Server not reachable: {exc}", file=sys.stderr)
        return 2
    finally:
        await controller.close()
        await identity.close()


def _setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=fmt)


def main() -> None:
    """CLI entry point for the Family Panel client."""
    parser = argparse.ArgumentParser(description="Family Panel sign-in")
    parser.add_argument(
        "--server", default=None,
        help="Backend URL (default: from config or FAMILYPANEL_SERVER_URL).",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Sign in with email and password.")
    login.add_argument("email")

    pin_login = sub.add_parser("pin-login", help="Sign in as a kid with a 4-digit PIN.")
    pin_login.add_argument("user_id")

    sub.add_parser("whoami", help="Show the signed-in user.")
    sub.add_parser("logout", help="Sign out and forget the stored session.")

    args = parser.parse_args()
    _setup_logging(verbose=args.verbose)

    config = ClientConfig.load()
    if args.server:
        config.server_url = args.server
    log.debug("Using API at %s", config.api_base)

    try:
        code = asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
