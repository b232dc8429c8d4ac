#!/usr/bin/env python3
"""
otp_cli.py - CLI wrapper around otp_core.py

Subcommands:
- secret   : print a fresh base32 secret
- hotp     : HOTP code for a given counter
- totp     : current TOTP code (or a live view with --watch)
- verify   : check a TOTP code against the window
- uri      : print the otpauth:// provisioning URI
- add-user : add a user (password + secret) to the users file

The secret is read from --secret or the OTP_SECRET environment variable.
"""

import argparse
import os
import sys
import time

import pyotp

from core import otp_core
from core.errors import OTPError


def _secret(args) -> str:
    secret = args.secret or os.getenv("OTP_SECRET")
    if not secret:
        raise SystemExit("[!] Provide --secret or set OTP_SECRET")
    return secret


def _secret_length(value: str) -> int:
    # base32 có padding: độ dài phải là bội số của 8 (pyotp yêu cầu >= 32)
    length = int(value)
    if length < 32 or length % 8:
        raise argparse.ArgumentTypeError(f"length must be a multiple of 8 and at least 32, got {length}")
    return length


# --- CLI command handlers ---
def cmd_secret(args):
    print(pyotp.random_base32(length=args.length))


def cmd_hotp(args):
    code = otp_core.hotp(_secret(args), args.counter, args.digits, args.algorithm)
    print(f"HOTP({args.digits}d, {args.algorithm.value}, counter={args.counter}): {code}")


def cmd_totp(args):
    secret = _secret(args)
    if not args.watch:
        now = args.timestamp if args.timestamp is not None else time.time()
        code = otp_core.totp(secret, now, args.period, args.digits, args.algorithm)
        print(f"TOTP ({args.digits}d): {code}  (valid ~{otp_core.seconds_remaining(now, args.period):2d}s)")
        return

    print(f"Press Ctrl+C to quit. Generating {args.digits}-digit TOTP every {args.period}s...\n")
    last_code = None
    try:
        while True:
            now = time.time()
            code = otp_core.totp(secret, now, args.period, args.digits, args.algorithm)
            remaining = otp_core.seconds_remaining(now, args.period)
            if code != last_code:
                print(f"TOTP ({args.digits}d): {code}  (valid ~{remaining:2d}s)")
                last_code = code
            else:
                print(f".. {remaining:2d}s left", end='\r', flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")


def cmd_verify(args):
    ok = otp_core.verify_totp(
        _secret(args),
        args.code,
        timestamp=args.timestamp,
        period=args.period,
        digits=args.digits,
        algorithm=args.algorithm,
        window=args.window,
    )
    if ok:
        print("[+] TOTP code is VALID")
    else:
        print("[-] TOTP code is INVALID")
    return 0 if ok else 1


def cmd_uri(args):
    print(otp_core.format_otpauth_uri(
        _secret(args), args.account, args.issuer,
        algorithm=args.algorithm, digits=args.digits, period=args.period,
    ))


def cmd_add_user(args):
    from backend.models import save_user

    secret = save_user(args.username, args.password, path=args.users_file)
    print(f"[*] User '{args.username}' saved to {args.users_file}")
    print(f"    secret: {secret}")


# --- Argparse builder ---
def _add_otp_options(p: argparse.ArgumentParser, period: bool = True):
    p.add_argument("--secret", help="Base32 shared secret (default: $OTP_SECRET)")
    p.add_argument("--digits", type=int, default=otp_core.DEFAULT_DIGITS, help="Number of OTP digits")
    p.add_argument("--algorithm", type=otp_core.HashAlgorithm.parse, default=otp_core.HashAlgorithm.SHA1,
                   help="SHA1, SHA256 or SHA512")
    if period:
        p.add_argument("--period", type=int, default=otp_core.DEFAULT_TIME_STEP, help="TOTP time step (seconds)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="fullstack-otp", description="TOTP/HOTP generator and verifier")
    sub = p.add_subparsers(dest="cmd")

    ps = sub.add_parser("secret", help="Print a new random base32 secret")
    ps.add_argument("--length", type=_secret_length, default=32,
                    help="Secret length in base32 characters (multiple of 8, at least 32)")
    ps.set_defaults(func=cmd_secret)

    ph = sub.add_parser("hotp", help="Generate HOTP code for a specific counter")
    _add_otp_options(ph, period=False)
    ph.add_argument("--counter", type=int, required=True)
    ph.set_defaults(func=cmd_hotp)

    pt = sub.add_parser("totp", help="Generate the current TOTP code")
    _add_otp_options(pt)
    pt.add_argument("--timestamp", type=float, help="UNIX time to compute the code for")
    pt.add_argument("--watch", action="store_true", help="Keep printing codes in real time")
    pt.set_defaults(func=cmd_totp)

    pv = sub.add_parser("verify", help="Verify a TOTP code")
    _add_otp_options(pv)
    pv.add_argument("--code", required=True, help="OTP code to verify")
    pv.add_argument("--timestamp", type=float, help="UNIX time to verify at")
    pv.add_argument("--window", type=int, default=otp_core.DEFAULT_WINDOW, help="Allowed +/- step window")
    pv.set_defaults(func=cmd_verify)

    pu = sub.add_parser("uri", help="Print otpauth URI for TOTP")
    _add_otp_options(pu)
    pu.add_argument("--account", default="user@example")
    pu.add_argument("--issuer", default="Fullstack OTP")
    pu.set_defaults(func=cmd_uri)

    pa = sub.add_parser("add-user", help="Add a user to the users file")
    pa.add_argument("--username", required=True)
    pa.add_argument("--password", required=True)
    pa.add_argument("--users-file", default="users.json")
    pa.set_defaults(func=cmd_add_user)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    try:
        return args.func(args) or 0
    except (OTPError, ValueError) as e:
        print(f"[!] {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
