#!/usr/bin/env python3
"""
RadarOne operator CLI -- key generation, CPF checks and data backfills.

Usage:
  python main.py generate-key
  python main.py check-cpf 123.456.789-09
  python main.py backfill-cpf-hash
  python main.py backfill-cpf-hash --database-url sqlite:///auth/radarone_auth.db

Environment variables:
  PII_ENCRYPTION_KEY   64 hex characters. Required by backfill-cpf-hash.
  AUTH_DATABASE_URL    Optional. Overrides the default SQLite user database.
"""

import argparse
import sys
from dataclasses import dataclass, field
from typing import Optional

from auth.store import UserStore
from core.config import get_settings
from core.crypto import generate_key, get_secret_box
from core.errors import RadarOneError
from pii.cpf import CpfEncryptor, format_cpf, validate_cpf


@dataclass
class BackfillReport:
    """Outcome of backfill_cpf_hashes(). errors holds (user_id, error class name)."""

    total: int = 0
    updated: int = 0
    errors: list[tuple[int, str]] = field(default_factory=list)


def backfill_cpf_hashes(store: UserStore, encryptor: CpfEncryptor) -> BackfillReport:
    """Fill cpf_hash for users whose CPF was stored before the hash column existed.

    Each CPF is decrypted and hashed. A record that fails to decrypt is
    reported and skipped; the rest are still processed. Running it twice is
    harmless: the second run finds nothing to do.
    """
    report = BackfillReport()
    for user in store.users_missing_cpf_hash():
        report.total += 1
        try:
            digits = encryptor.decrypt(user.cpf_encrypted)
            cpf_hash = encryptor.hash(digits)
        except RadarOneError as exc:
            report.errors.append((user.id, type(exc).__name__))
            continue
        store.set_cpf_hash(user.id, cpf_hash)
        report.updated += 1
    return report


def _cmd_generate_key(args: argparse.Namespace) -> int:
    print(generate_key())
    return 0


def _cmd_check_cpf(args: argparse.Namespace) -> int:
    if validate_cpf(args.cpf):
        print(f"  {format_cpf(args.cpf)}  valid")
        return 0
    print(f"  [!] '{args.cpf}' is not a valid CPF.")
    return 1


def _cmd_backfill(args: argparse.Namespace) -> int:
    db_url: Optional[str] = args.database_url or get_settings().auth_database_url or None
    store = UserStore(db_url) if db_url else UserStore()
    try:
        encryptor = CpfEncryptor(get_secret_box())
        report = backfill_cpf_hashes(store, encryptor)
    except RadarOneError as exc:
        print(f"  [!] {exc}")
        return 1
    finally:
        store.close()

    print(f"  Users without cpf_hash: {report.total}")
    print(f"  Updated: {report.updated}")
    if report.errors:
        print(f"  [!] {len(report.errors)} record(s) could not be decrypted:")
        for user_id, error in report.errors:
            print(f"      user {user_id}: {error}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="radarone",
        description="RadarOne operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py generate-key >> .env
  python main.py check-cpf 111.444.777-35
  PII_ENCRYPTION_KEY=... python main.py backfill-cpf-hash
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    gen = sub.add_parser("generate-key", help="Print a fresh 64-hex-character PII_ENCRYPTION_KEY")
    gen.set_defaults(func=_cmd_generate_key)

    check = sub.add_parser("check-cpf", help="Validate a CPF checksum and print its formatted form")
    check.add_argument("cpf", help="CPF with or without punctuation")
    check.set_defaults(func=_cmd_check_cpf)

    backfill = sub.add_parser("backfill-cpf-hash", help="Compute cpf_hash for users stored before it existed")
    backfill.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy URL of the user database (default: AUTH_DATABASE_URL or the local SQLite file)",
    )
    backfill.set_defaults(func=_cmd_backfill)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
