#!/usr/bin/env python3
"""
Admin panel -- operator command line.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py create-user ops@example.com
  python main.py create-user root@example.com --role SUPER_ADMIN --password 's3cret!'
  python main.py logs
  python main.py logs --page 2 --limit 20

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL for users and the audit trail (default: SQLite file).
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_user(args: argparse.Namespace) -> int:
    """Provision an account outside the HTTP surface (there is no signup route)."""
    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("  [!] A password is required.")
        return 1

    try:
        hashed = hash_password(password)
    except ValueError as exc:
        print(f"  [!] {exc}")
        return 1

    store = UserStore(get_settings().database_url)
    try:
        user_id = store.create_user(User(email=args.email, role=args.role, hashed_password=hashed))
    except IntegrityError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created {args.role} user #{user_id} ({args.email.strip().lower()}).")
    return 0


def _logs(args: argparse.Namespace) -> int:
    if args.page < 1 or args.limit < 1:
        print("  [!] --page and --limit must be positive.")
        return 1

    recorder = AuditRecorder(AuditStore(get_settings().database_url))
    try:
        records, total = recorder.list_page(args.page, args.limit)
    finally:
        recorder.close()
        recorder.store.close()

    print(f"\nAudit trail -- page {args.page}, {len(records)} of {total} record(s)")
    print("─" * 72)
    for r in records:
        status = "ok  " if r.success else "FAIL"
        who = r.email or "-"
        print(f"  {r.timestamp}  {status}  {r.action:<40}  {who}  {r.ip_address or '-'}")
    if not records:
        print("  (no records on this page)")
    print()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Admin panel backend -- token auth, role-gated admin API, HTTP audit trail.",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the API server under uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(handler=_serve)

    create = sub.add_parser("create-user", help="Provision an admin account")
    create.add_argument("email", help="Login email (stored lowercase)")
    create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.ADMIN.value,
        help="Account role (default: ADMIN)",
    )
    create.add_argument("--password", default=None, help="Password (prompted if omitted)")
    create.set_defaults(handler=_create_user)

    logs = sub.add_parser("logs", help="Print the audit trail, newest first")
    logs.add_argument("--page", type=int, default=1, help="1-based page number (default: 1)")
    logs.add_argument("--limit", type=int, default=50, help="Records per page (default: 50)")
    logs.set_defaults(handler=_logs)

    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 0
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
