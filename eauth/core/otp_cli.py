#!/usr/bin/env python3
"""
otp_cli.py: command line wrapper around the account service and otp_core.

Sub-commands:
- init-db  : create the SQLite schema
- register : create an account, print its secret and otpauth URI
- status   : print the account state
- uri      : print the otpauth URI of an account
- code     : print the current TOTP code of an account
- verify   : verify a TOTP code for an account
- hotp     : derive a code for a raw base-32 secret and counter

eg..:
    eauth register --email alice@example.com
    eauth verify --email alice@example.com --code 123456
    eauth hotp --secret GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ --counter 1 --digits 8
"""

import argparse
import logging
import sys

from eauth.core import otp_core
from eauth.core.accounts import DEFAULT_ISSUER, AccountService
from eauth.core.errors import OtpError
from eauth.core.otp_core import TotpParameters
from eauth.database.db_manager import DATABASE_FILE, SqliteAccountStore
from eauth.database.setup_database import setup_database


def _service(args) -> AccountService:
    params = TotpParameters(digits=args.digits, period=args.period, window=args.window)
    return AccountService(SqliteAccountStore(args.db), params=params, issuer=args.issuer)


# --- CLI command handlers ---
def cmd_init_db(args):
    setup_database(args.db)
    print(f"[*] Database ready: {args.db}")


def cmd_register(args):
    registration = _service(args).register(args.email)
    print(f"[*] Registered '{registration.account.identifier}'")
    print("    Secret:", registration.secret_b32)
    print("    URI:   ", registration.provisioning_uri)


def cmd_status(args):
    print(f"[user={args.email}] state: {_service(args).get_status(args.email).value}")


def cmd_uri(args):
    service = _service(args)
    print(service.provisioning_uri(service.get_account(args.email)))


def cmd_code(args):
    code, remaining = _service(args).request_code(args.email)
    print(f"[user={args.email}] TOTP: {code}  (valid ~{remaining:2d}s)")


def cmd_verify(args):
    result = _service(args).verify(args.email, args.code)
    print(f"[user={args.email}] [+] TOTP code is VALID (step {result.matched_step})")


def cmd_hotp(args):
    if args.counter < 0:
        raise ValueError("counter must be a non-negative integer")
    TotpParameters(digits=args.digits, algorithm=args.algorithm).validate()
    secret = otp_core.decode_secret(args.secret)
    print(otp_core.derive_code(secret, args.counter, args.digits, args.algorithm))


# --- Argparse builder ---
def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", default=DATABASE_FILE, help="SQLite database file")
    common.add_argument("--issuer", default=DEFAULT_ISSUER, help="Issuer label for otpauth URIs")
    common.add_argument("--digits", type=int, default=otp_core.DEFAULT_DIGITS, help="Number of OTP digits")
    common.add_argument("--period", type=int, default=otp_core.DEFAULT_TIME_STEP, help="TOTP time step (seconds)")
    common.add_argument("--window", type=int, default=otp_core.DEFAULT_WINDOW, help="Allowed +/- step window")

    p = argparse.ArgumentParser(prog="eauth", description="TOTP second-factor accounts")
    p.add_argument("--verbose", action="store_true", help="Verbose logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    pi = sub.add_parser("init-db", parents=[common], help="Create the database schema")
    pi.set_defaults(func=cmd_init_db)

    for name, handler, text in (
        ("register", cmd_register, "Register an account and print its secret"),
        ("status", cmd_status, "Show the account state"),
        ("uri", cmd_uri, "Print the otpauth URI"),
        ("code", cmd_code, "Show the current TOTP code"),
    ):
        ps = sub.add_parser(name, parents=[common], help=text)
        ps.add_argument("--email", required=True, help="Account identifier")
        ps.set_defaults(func=handler)

    pv = sub.add_parser("verify", parents=[common], help="Verify a TOTP code")
    pv.add_argument("--email", required=True, help="Account identifier")
    pv.add_argument("--code", required=True, help="OTP code to verify")
    pv.set_defaults(func=cmd_verify)

    ph = sub.add_parser("hotp", help="Derive a code for a raw secret and counter")
    ph.add_argument("--secret", required=True, help="Base32 secret")
    ph.add_argument("--counter", type=int, required=True)
    ph.add_argument("--digits", type=int, default=otp_core.DEFAULT_DIGITS)
    ph.add_argument("--algorithm", default=otp_core.DEFAULT_ALGORITHM, choices=sorted(otp_core.ALGORITHMS))
    ph.set_defaults(func=cmd_hotp)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        args.func(args)
    except (OtpError, ValueError) as e:
        print(f"[-] {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
