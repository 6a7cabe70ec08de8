#!/usr/bin/env python3
"""
SessionGate -- operator commands for the credential and session service.

The HTTP API runs under an ASGI server (uvicorn asgi:app). This script covers
the one-off chores around it.

Usage:
  python main.py keygen --out keys
  python main.py keygen --out keys --action
  python main.py seed-roles
  python main.py create-admin alice alice@example.com
  python main.py purge-sessions

Environment variables (see core/config.py for the full list):
  DATABASE_URL           Store location (default: sqlite file next to this script)
  JWT_PRIVATE_KEY_PATH   Session signing key (default: keys/private.pem)
  JWT_PUBLIC_KEY_PATH    Session verification key (default: keys/public.pem)
"""

import argparse
import getpass
import os
import sys
from pathlib import Path

from auth.errors import AuthError
from auth.keys import generate_rsa_key_pair
from auth.models import User
from auth.passwords import hash_password
from auth.roles import RoleStore
from auth.sessions import SessionStore
from auth.store import UserStore, create_auth_engine
from core.config import get_settings

ADMIN_ROLE = "admin"


def _write_pem(path: Path, pem: str, private: bool) -> None:
    """Write a PEM file; private keys are created owner-read/write only."""
    if path.exists():
        raise FileExistsError(f"{path} already exists; refusing to overwrite")
    path.write_text(pem, encoding="utf-8")
    if private:
        os.chmod(path, 0o600)
    print(f"  wrote {path}")


def cmd_keygen(args: argparse.Namespace) -> int:
    out = Path(args.out)
    out.mkdir(parents=True, exist_ok=True)
    private_pem, public_pem = generate_rsa_key_pair(args.bits)
    _write_pem(out / "private.pem", private_pem, private=True)
    _write_pem(out / "public.pem", public_pem, private=False)
    if args.action:
        private_pem, public_pem = generate_rsa_key_pair(args.bits)
        _write_pem(out / "action_private.pem", private_pem, private=True)
        _write_pem(out / "action_public.pem", public_pem, private=False)
        print("  Set ACTION_TOKEN_ALGORITHM=RS256 and ACTION_*_KEY_PATH to use the action pair.")
    return 0


def cmd_seed_roles(args: argparse.Namespace) -> int:
    settings = get_settings()
    engine = create_auth_engine(settings.database_url)
    try:
        roles = RoleStore(engine).ensure_roles(settings.seed_roles)
    finally:
        engine.dispose()
    for role in roles:
        print(f"  {role.id:>4}  {role.name}")
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    """Create a verified identity holding the admin role.

    The first admin cannot be made through the API: POST /assign-role itself
    requires an admin.
    """
    password = getpass.getpass("Password: ")
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters.", file=sys.stderr)
        return 1
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.", file=sys.stderr)
        return 1

    settings = get_settings()
    engine = create_auth_engine(settings.database_url)
    try:
        users = UserStore(engine)
        roles = RoleStore(engine)
        seeded = {r.name: r for r in roles.ensure_roles([*settings.seed_roles, ADMIN_ROLE])}
        user_id = users.create_user(
            User(
                username=args.username,
                email=args.email,
                hashed_password=hash_password(password),
                email_verified=True,
                accepted_terms=True,
            )
        )
        roles.assign(user_id, seeded[ADMIN_ROLE].id)
        if settings.default_role in seeded:
            roles.assign(user_id, seeded[settings.default_role].id)
    except AuthError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()
    print(f"  Created admin {args.username!r} (id={user_id}).")
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    engine = create_auth_engine(get_settings().database_url)
    try:
        purged = SessionStore(engine).purge_expired()
    finally:
        engine.dispose()
    print(f"  Purged {purged} expired session record(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessiongate",
        description="Operator commands for the SessionGate credential service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py keygen --out keys
  python main.py create-admin root root@example.com
  DATABASE_URL=sqlite:////var/lib/sessiongate.db python main.py seed-roles
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    keygen = sub.add_parser("keygen", help="Generate an RSA key pair for session tokens")
    keygen.add_argument("--out", default="keys", metavar="DIR", help="Output directory (default: keys)")
    keygen.add_argument(
        "--action",
        action="store_true",
        help="Also generate a second pair for RS256 action tokens",
    )
    keygen.add_argument("--bits", type=int, default=2048, help="RSA modulus size (default: 2048)")
    keygen.set_defaults(func=cmd_keygen)

    seed = sub.add_parser("seed-roles", help="Create the configured SEED_ROLES if missing")
    seed.set_defaults(func=cmd_seed_roles)

    admin = sub.add_parser("create-admin", help="Create a verified user with the admin role")
    admin.add_argument("username")
    admin.add_argument("email")
    admin.set_defaults(func=cmd_create_admin)

    purge = sub.add_parser("purge-sessions", help="Delete expired session records")
    purge.set_defaults(func=cmd_purge_sessions)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
