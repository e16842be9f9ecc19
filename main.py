#!/usr/bin/env python3
"""
Marketplace auth -- operator command line.

Deployments that set BLOCK_ADMIN_REGISTRATION=true have no self-service route
for ADMIN accounts, so the first admin is bootstrapped here. The same credential rules apply as
over HTTP.

Usage:
  python main.py create-user admin@example.com ADMIN
  python main.py create-user seller@example.com SELLER --password 'Secret123'
  python main.py purge-tokens

Environment variables (see core/config.py):
  DATABASE_URL         Store to write to. Default: sqlite:///marketplace_auth.db
  PASSWORD_SCHEME      pbkdf2_sha512 (default) or bcrypt
  PASSWORD_ITERATIONS  PBKDF2 work factor. Default: 100000
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.errors import ValidationError
from auth.ledger import RefreshTokenLedger
from auth.models import User
from auth.passwords import PasswordHasher
from auth.store import CredentialStore
from auth.validation import validate_registration
from core.config import get_settings


def _read_password() -> str:
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise ValidationError("Passwords do not match.")
    return first


def create_user(store: CredentialStore, hasher: PasswordHasher, email: str, role: str, password: str) -> User:
    """Validate and insert one account. Raises ValidationError on bad input or a taken email."""
    email, password, parsed_role = validate_registration(email, password, role)
    if store.get_by_email(email) is not None:
        raise ValidationError(f"User '{email}' already exists.")
    try:
        return store.create_user(User(email=email, role=parsed_role, password_hash=hasher.hash(password)))
    except IntegrityError as exc:
        # Another writer inserted the same email after the check above.
        raise ValidationError(f"User '{email}' already exists.") from exc


def _cmd_create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = CredentialStore(settings.database_url, timeout_seconds=settings.store_timeout_seconds)
    try:
        password = args.password if args.password is not None else _read_password()
        hasher = PasswordHasher(scheme=settings.password_scheme, iterations=settings.password_iterations)
        user = create_user(store, hasher, args.email, args.role.upper(), password)
    except ValidationError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        for detail in exc.details:
            print(f"      - {detail}", file=sys.stderr)
        return 1
    finally:
        store.close()
    print(f"Created user '{user.email}' with role '{user.role.value}' (id {user.id}).")
    return 0


def _cmd_purge_tokens(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = CredentialStore(settings.database_url, timeout_seconds=settings.store_timeout_seconds)
    try:
        removed = RefreshTokenLedger(store).purge_expired()
    finally:
        store.close()
    print(f"Purged {removed} expired refresh token(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Marketplace auth -- operator commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account (the only way to add an ADMIN)")
    create.add_argument("email", help="Email address (stored lower-cased)")
    create.add_argument("role", help="ADMIN, SELLER or BUYER")
    create.add_argument(
        "--password",
        default=None,
        help="Password (8-128 chars, upper, lower and a digit). Prompted for when omitted.",
    )
    create.set_defaults(func=_cmd_create_user)

    purge = sub.add_parser("purge-tokens", help="Delete refresh-token rows that have expired")
    purge.set_defaults(func=_cmd_purge_tokens)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
