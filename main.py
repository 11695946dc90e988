#!/usr/bin/env python3
"""
Taledynamic -- admin command line.

Works directly against the database configured by DATABASE_URL, without the
HTTP server. Useful for seeding accounts and support tasks.

Usage:
  python main.py create-user alice@example.com
  python main.py create-user alice@example.com --password s3cret
  python main.py list-users
  python main.py deactivate-user 7
  python main.py serve --host 0.0.0.0 --port 8000

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the database (default: sqlite file under db/)
  SECRET_KEY    JWT signing key; required unless DEBUG=true
"""

import argparse
import getpass
import sys
from typing import Optional

from core.config import get_settings
from core.errors import ServiceError
from db.context import DataContext
from services.users import UserService


def _open_users() -> tuple[DataContext, UserService]:
    context = DataContext(get_settings().database_url)
    return context, UserService(context)


def _create_user(args: argparse.Namespace) -> int:
    password: Optional[str] = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
    else:
        confirm = password

    context, users = _open_users()
    try:
        user = users.create_user(args.email, password, confirm)
    finally:
        context.close()
    print(f"  Created user {user.id} <{user.email}>")
    return 0


def _list_users(args: argparse.Namespace) -> int:
    context, users = _open_users()
    try:
        active = users.get_users()
    finally:
        context.close()
    if not active:
        print("  No active users.")
        return 0
    for user in active:
        print(f"  {user.id:>6}  {user.email:<40}  {user.created_at or ''}")
    return 0


def _deactivate_user(args: argparse.Namespace) -> int:
    context, users = _open_users()
    try:
        users.deactivate_user(args.user_id)
    finally:
        context.close()
    print(f"  User {args.user_id} deactivated; all refresh tokens revoked.")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taledynamic",
        description="Taledynamic account administration and server launcher.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user alice@example.com
  python main.py list-users
  python main.py deactivate-user 7
  DATABASE_URL=sqlite:///./dev.db python main.py serve --reload
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Register a new user")
    create.add_argument("email", help="Email address of the new user")
    create.add_argument(
        "--password",
        default=None,
        help="Password (prompted for, with confirmation, when omitted)",
    )
    create.set_defaults(handler=_create_user)

    list_cmd = sub.add_parser("list-users", help="List active users")
    list_cmd.set_defaults(handler=_list_users)

    deactivate = sub.add_parser(
        "deactivate-user",
        help="Soft-delete a user and revoke every active refresh token",
    )
    deactivate.add_argument("user_id", type=int, metavar="USER_ID")
    deactivate.set_defaults(handler=_deactivate_user)

    serve = sub.add_parser("serve", help="Run the API and web UI with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    serve.set_defaults(handler=_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "handler", None):
        parser.print_help()
        return 1

    try:
        return args.handler(args)
    except ServiceError as exc:
        for line in exc.message.split("\n"):
            print(f"  [!] {line}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
