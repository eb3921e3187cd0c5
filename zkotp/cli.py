#!/usr/bin/env python3
"""
ZK-OTP Command Line Interface

Usage:
    zkotp otp --secret <base32> [--time <unix>]
    zkotp field-hash <value>
    zkotp action-hash --to <address> --value <int> --data <hex>
    zkotp register --uid <id> --secret <base32>
    zkotp check --uid <id>
    zkotp authorize --uid <id> --otp <code> --to <address> --value <int> --data <hex>
    zkotp conformance
"""

import argparse
import json
import sys


def cmd_otp(args):
    """Print the current code for a secret."""
    from zkotp.otp import current_code

    print(current_code(args.secret, args.time))
    return 0


def cmd_field_hash(args):
    """Poseidon field hash of one value."""
    from zkotp import field_hash

    print(field_hash(args.value))
    return 0


def cmd_action_hash(args):
    """Action hash of (to, value, data)."""
    from zkotp import action_hash

    print(action_hash(args.to, args.value, args.data))
    return 0


def cmd_register(args):
    from zkotp_api.main import build_service

    service = build_service()
    service.register(args.uid, args.secret)
    print(f"Registered: {args.uid}")
    return 0


def cmd_check(args):
    from zkotp_api.main import build_service

    registered = build_service().check_registered(args.uid)
    print(json.dumps({"registered": registered}))
    return 0 if registered else 1


def cmd_authorize(args):
    """Generate ledger calldata authorizing one call."""
    from zkotp_api.main import build_service

    calldata = build_service().authorize(args.uid, args.otp, args.to, args.value, args.data)
    output = json.dumps(calldata.to_dict(), indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        print(f"Proof saved to: {args.output}")
    else:
        print(output)
    return 0


def cmd_conformance(args):
    """Run the cross-boundary conformance vectors."""
    from zkotp.conformance import all_passed, run_conformance

    results = run_conformance()
    for r in results:
        mark = "✓" if r.passed else "✗"
        line = f"{mark} {r.vector_id}: {r.description}"
        if r.detail:
            line += f" ({r.detail})"
        print(line)

    if all_passed(results):
        print("ZKOTP_CONFORMANCE: PASS")
        return 0
    print("ZKOTP_CONFORMANCE: FAIL")
    return 1


COMMANDS = {
    "otp": cmd_otp,
    "field-hash": cmd_field_hash,
    "action-hash": cmd_action_hash,
    "register": cmd_register,
    "check": cmd_check,
    "authorize": cmd_authorize,
    "conformance": cmd_conformance,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zkotp",
        description="ZK-OTP authorization CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  zkotp otp -s JBSWY3DPEHPK3PXP
  zkotp field-hash 1
  zkotp action-hash --to 0x00000000000000000000000000000000000000aa --value 1 --data 0x
  zkotp authorize -u alice -p 123456 --to 0x...aa --value 0 --data 0x
  zkotp conformance
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    otp_parser = subparsers.add_parser("otp", help="Show the current one-time code")
    otp_parser.add_argument("-s", "--secret", required=True, help="Base32 secret")
    otp_parser.add_argument("-t", "--time", type=float, help="Unix time (default: now)")

    fh_parser = subparsers.add_parser("field-hash", help="Poseidon hash of a field element")
    fh_parser.add_argument("value", help="Decimal or 0x-hex field element")

    for name, help_text in (("action-hash", "Compute an action hash"), ("authorize", "Generate an authorization proof")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--to", required=True, help="Target address")
        p.add_argument("--value", default="0", help="Call value (decimal or 0x-hex)")
        p.add_argument("--data", default="0x", help="Call payload (0x-hex)")
        if name == "authorize":
            p.add_argument("-u", "--uid", required=True, help="Account id")
            p.add_argument("-p", "--otp", required=True, help="6-digit code")
            p.add_argument("-o", "--output", help="Output file for calldata")

    reg_parser = subparsers.add_parser("register", help="Register an account secret")
    reg_parser.add_argument("-u", "--uid", required=True, help="Account id")
    reg_parser.add_argument("-s", "--secret", required=True, help="Base32 secret")

    check_parser = subparsers.add_parser("check", help="Check whether an account is registered")
    check_parser.add_argument("-u", "--uid", required=True, help="Account id")

    subparsers.add_parser("conformance", help="Run conformance vectors")

    return parser


def main(argv=None):
    from zkotp.errors import ZKOTPError

    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    try:
        code = handler(args)
    except ZKOTPError as e:
        print(f"✗ {type(e).__name__}: {e}", file=sys.stderr)
        code = 1
    return code


if __name__ == "__main__":
    sys.exit(main())
