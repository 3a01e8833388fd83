#!/usr/bin/env python3
"""
otp_cli.py — CLI wrapper for totp_core (and the local account directory)

Subcommands:
- secret  : generate a new Base32 secret
- totp    : show the TOTP code for a secret (--watch for a live view)
- hotp    : HOTP code for a secret + counter
- verify  : verify a TOTP code (exit status 2 when it does not match)
- uri     : build an otpauth:// URI
- parse   : parse an otpauth:// URI and print its fields as JSON
- range   : codes for the periods around now (clock drift debugging)
- account : add / list / code / remove accounts in the sqlite directory
"""

import argparse
import json
import logging
import os
import sys
import time

from totp_core import otp_core
from totp_core.otp_core import TOTPParams
from totp_core.otpauth_uri import build_provisioning_uri, parse_provisioning_uri
from totp_database import db_manager

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_CODE = 2


def _params(args) -> TOTPParams:
    return TOTPParams(
        algorithm=getattr(args, "algorithm", None),
        digits=getattr(args, "digits", None),
        period=getattr(args, "period", None),
        window=getattr(args, "window", None),
    )


def _now(args) -> float:
    at = getattr(args, "at", None)
    if at is None:
        return time.time()
    if not 0 <= at <= otp_core.MAX_TIMESTAMP:  # also false for nan
        raise ValueError("--at must be between 0 and the end of year 9999")
    return at


# --- CLI command handlers ---
def cmd_secret(args):
    print(otp_core.generate_secret(args.bytes))


def cmd_totp(args):
    params = _params(args)
    if not args.watch:
        now = _now(args)
        code = otp_core.generate_totp(args.secret, params, at_time=now)
        remaining = otp_core.time_remaining(params.period, at_time=now)
        print(f"{code}  (valid {remaining}s)")
        return

    print(f"Press Ctrl+C to quit. Generating {params.digits}-digit TOTP every {params.period}s...\n")
    last_code = None
    try:
        while True:
            now = time.time()
            code = otp_core.generate_totp(args.secret, params, at_time=now)
            remaining = otp_core.time_remaining(params.period, at_time=now)
            if code != last_code:
                print(f"TOTP ({params.digits}d): {code}  (valid ~{remaining:2d}s)")
                last_code = code
            else:
                print(f".. {remaining:2d}s left", end='\r', flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")


def cmd_hotp(args):
    print(otp_core.hotp(args.secret, args.counter, _params(args)))


def cmd_verify(args):
    if otp_core.validate_totp(args.code, args.secret, _params(args), at_time=_now(args)):
        print("[+] TOTP code is VALID")
        return EXIT_OK
    print("[-] TOTP code is INVALID")
    return EXIT_INVALID_CODE


def cmd_uri(args):
    print(build_provisioning_uri(
        args.issuer, args.account, args.secret, _params(args),
        otp_type=args.type, counter=args.counter,
    ))


def cmd_parse(args):
    descriptor = parse_provisioning_uri(args.uri, strict=args.strict)
    print(json.dumps(descriptor.to_dict(), indent=2))


def cmd_range(args):
    for window in otp_core.generate_totp_range(args.secret, args.periods, _params(args), at_time=_now(args)):
        print(f"{window.time_slot}  {window.code}  "
              f"{window.valid_from.isoformat()} -> {window.valid_to.isoformat()}")


def cmd_account_add(args):
    if args.uri:
        descriptor = parse_provisioning_uri(args.uri)
    elif args.secret and args.account:
        descriptor = parse_provisioning_uri(
            build_provisioning_uri(args.issuer, args.account, args.secret, _params(args))
        )
    else:
        print("[!] Give either --uri or --secret together with --account", file=sys.stderr)
        return EXIT_ERROR
    descriptor.to_uri()  # ValueError if it could not be exported again
    account_id = db_manager.add_account(descriptor, args.db)
    print(f"[+] Added account {account_id}: {descriptor.issuer or '-'} / {descriptor.account_name}")


def cmd_account_list(args):
    accounts = db_manager.list_accounts(args.db)
    if not accounts:
        print("No accounts.")
        return
    for acc in accounts:
        print(f"{acc['id']:>4}  {acc['otp_type']}  {acc['issuer'] or '-'}  {acc['account_name']}")


def cmd_account_code(args):
    descriptor = db_manager.get_account(args.id, args.db)
    if descriptor.otp_type == "hotp":
        counter = descriptor.counter or 0
        if counter >= otp_core.MAX_COUNTER:
            raise ValueError("HOTP counter exhausted")
        code = otp_core.hotp(descriptor.secret, counter, descriptor.params)
        db_manager.set_counter(args.id, counter + 1, args.db)
        print(f"{code}  (counter {counter})")
    else:
        now = _now(args)
        code = otp_core.generate_totp(descriptor.secret, descriptor.params, at_time=now)
        remaining = otp_core.time_remaining(descriptor.period, at_time=now)
        print(f"{code}  (valid {remaining}s)")
    db_manager.touch_account(args.id, args.db)


def cmd_account_remove(args):
    if not db_manager.delete_account(args.id, args.db):
        raise db_manager.SecretNotFound(f"Account {args.id} not found")
    print(f"[+] Removed account {args.id}")


def cmd_help(args):
    print("'totp-cli -h' for help.")


# --- Argparse builder ---
def _add_param_args(p, window: bool = False):
    p.add_argument("--algorithm", default=otp_core.DEFAULT_ALGORITHM, help="SHA1, SHA256 or SHA512")
    p.add_argument("--digits", type=int, default=otp_core.DEFAULT_DIGITS, help="Number of OTP digits (6-8)")
    p.add_argument("--period", type=int, default=otp_core.DEFAULT_TIME_STEP, help="TOTP time step (seconds)")
    if window:
        p.add_argument("--window", type=int, default=otp_core.DEFAULT_WINDOW, help="Allowed +/- step window")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="totp-cli", description="TOTP/HOTP authenticator CLI")
    p.add_argument("--verbose", action="store_true", help="Verbose (debug) logging")
    p.add_argument("--db", default=os.environ.get("TOTP_DATABASE_FILE", db_manager.DATABASE_FILE),
                   help="Account database file")
    p.set_defaults(func=cmd_help)
    sub = p.add_subparsers(dest="cmd")

    # secret
    ps = sub.add_parser("secret", help="Generate a new Base32 secret")
    ps.add_argument("--bytes", type=int, default=otp_core.SECRET_BYTES, help="Secret length in bytes")
    ps.set_defaults(func=cmd_secret)

    # totp
    pt = sub.add_parser("totp", help="Show the TOTP code for a secret")
    pt.add_argument("--secret", required=True)
    _add_param_args(pt)
    pt.add_argument("--at", type=float, help="Unix time to compute the code for (default: now)")
    pt.add_argument("--watch", action="store_true", help="Refresh every second until Ctrl+C")
    pt.set_defaults(func=cmd_totp)

    # hotp
    ph = sub.add_parser("hotp", help="Generate HOTP code for a specific counter")
    ph.add_argument("--secret", required=True)
    ph.add_argument("--counter", type=int, required=True)
    _add_param_args(ph)
    ph.set_defaults(func=cmd_hotp)

    # verify
    pv = sub.add_parser("verify", help="Verify a TOTP code")
    pv.add_argument("--secret", required=True)
    pv.add_argument("--code", required=True, help="OTP code to verify")
    _add_param_args(pv, window=True)
    pv.add_argument("--at", type=float, help="Unix time to verify at (default: now)")
    pv.set_defaults(func=cmd_verify)

    # uri
    pu = sub.add_parser("uri", help="Build an otpauth:// URI")
    pu.add_argument("--secret", required=True)
    pu.add_argument("--account", required=True, help="Account name, e.g. alice@example.com")
    pu.add_argument("--issuer", default="", help="Issuer, e.g. Example")
    pu.add_argument("--type", choices=("totp", "hotp"), default="totp")
    pu.add_argument("--counter", type=int, default=0, help="Initial HOTP counter")
    _add_param_args(pu)
    pu.set_defaults(func=cmd_uri)

    # parse
    pp = sub.add_parser("parse", help="Parse an otpauth:// URI")
    pp.add_argument("uri")
    pp.add_argument("--strict", action="store_true", help="Reject bad algorithm/digits/period")
    pp.set_defaults(func=cmd_parse)

    # range
    pr = sub.add_parser("range", help="Show codes around the current period")
    pr.add_argument("--secret", required=True)
    pr.add_argument("--periods", type=int, default=3)
    _add_param_args(pr)
    pr.add_argument("--at", type=float, help="Unix time at the centre (default: now)")
    pr.set_defaults(func=cmd_range)

    # account
    pa = sub.add_parser("account", help="Manage the local account directory")
    sub_a = pa.add_subparsers(dest="account_cmd")
    pa.set_defaults(func=lambda args: pa.print_help())

    paa = sub_a.add_parser("add", help="Add an account from a URI or from fields")
    paa.add_argument("--uri", help="otpauth:// URI (QR payload)")
    paa.add_argument("--secret")
    paa.add_argument("--account")
    paa.add_argument("--issuer", default="")
    _add_param_args(paa)
    paa.set_defaults(func=cmd_account_add)

    pal = sub_a.add_parser("list", help="List accounts")
    pal.set_defaults(func=cmd_account_list)

    pac = sub_a.add_parser("code", help="Show the current code of an account")
    pac.add_argument("id", type=int)
    pac.add_argument("--at", type=float, help="Unix time (TOTP accounts only)")
    pac.set_defaults(func=cmd_account_code)

    par = sub_a.add_parser("remove", help="Delete an account")
    par.add_argument("id", type=int)
    par.set_defaults(func=cmd_account_remove)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return args.func(args) or EXIT_OK
    except (ValueError, db_manager.SecretNotFound) as e:  # OTPError is a ValueError
        print(f"[!] {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
