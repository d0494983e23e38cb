#!/usr/bin/env python3
"""
SessionGate -- command-line entry point.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 8000] [--reload]
  python main.py create-admin admin@example.com
  python main.py purge-expired

Configuration comes from the environment / .env (see core/config.py):
  ACCESS_SECRET, REFRESH_SECRET   signing secrets (>= 32 chars, must differ)
  ACCESS_TTL, REFRESH_TTL         token lifetimes, e.g. 15m, 168h, 30
  DATABASE_URL                    SQLAlchemy URL, defaults to ./sessiongate.db
  DEBUG=true                      generate throwaway secrets for local dev
"""

import argparse
import getpass
import sys

from pydantic import ValidationError


def _load():
    """Build settings, store and session manager, or exit with a message."""
    from auth.sessions import SessionManager
    from auth.store import CredentialStore
    from core.config import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"  [!] Invalid configuration: {e}")
        sys.exit(1)
    store = CredentialStore(settings.database_url, timeout_seconds=settings.db_timeout_seconds)
    return store, SessionManager(store, settings)


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_admin(args: argparse.Namespace) -> int:
    from auth.errors import AuthError
    from auth.models import Role

    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1

    store, sessions = _load()
    try:
        user_id = sessions.sign_up(args.email, password, role=Role.admin.value)
    except AuthError as e:
        print(f"  [!] Could not create admin: {e.message}")
        return 1
    finally:
        store.close()
    print(f"  Created admin {args.email} (id {user_id})")
    return 0


def _purge_expired(args: argparse.Namespace) -> int:
    from auth.errors import AuthError

    store, sessions = _load()
    try:
        removed = sessions.purge_expired()
    except AuthError as e:
        print(f"  [!] Purge failed: {e.message}")
        return 1
    finally:
        store.close()
    print(f"  Removed {removed} expired refresh token(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SessionGate -- token issuance, rotation and revocation service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_serve)

    admin = sub.add_parser("create-admin", help="Create a user with the admin role")
    admin.add_argument("email")
    admin.set_defaults(func=_create_admin)

    purge = sub.add_parser("purge-expired", help="Delete expired refresh tokens now")
    purge.set_defaults(func=_purge_expired)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
