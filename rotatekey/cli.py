"""
Command-line interface for rotate-aws-key.
"""

import argparse
import asyncio
import re
import sys

from botocore.exceptions import BotoCoreError

from . import __version__
from .core import get_aws_credentials_path, list_profile_names
from .iam import IAMKeyGateway, create_iam_client
from .rotation import (
    MAX_PROFILES_PER_RUN,
    STATUS_CANCELLED,
    STATUS_NO_KEYS,
    STATUS_NOTHING,
    STATUS_TOO_MANY,
    rotate,
)

CANCEL_ANSWERS = {"q", "quit"}


def format_profile_label(profile, now=None):
    """Label a profile for selection: name, key id and key age."""
    age = profile.age_days(now)
    age_str = f" ({age}d)" if age is not None else ""
    return f"{profile.name}  {profile.access_key_id}{age_str}"


def parse_selection(answer, profiles):
    """
    Turn a selection answer into profile names.

    Entries may be list numbers (1-based) or profile names, separated by
    commas or whitespace.

    Returns:
        tuple: (names, invalid entries)
    """
    names = []
    invalid = []
    for token in re.split(r"[,\s]+", answer.strip()):
        if not token:
            continue
        if token.isdecimal() and 1 <= int(token) <= len(profiles):
            name = profiles[int(token) - 1].name
        elif any(profile.name == token for profile in profiles):
            name = token
        else:
            invalid.append(token)
            continue
        if name not in names:
            names.append(name)
    return names, invalid


def prompt_profile_selection(profiles, input_func=input):
    """
    Ask which profiles to rotate.

    A blank answer selects nothing. 'q', end of input or Ctrl-C cancels.

    Returns:
        list of profile names, or None if cancelled
    """
    print("\nWhich profiles would you like to rotate?")
    for i, profile in enumerate(profiles, 1):
        print(f"  {i}. {format_profile_label(profile)}")

    while True:
        try:
            answer = input_func(
                f"\nSelect up to {MAX_PROFILES_PER_RUN} (numbers or names, blank for none, q to cancel): "
            )
        except (EOFError, KeyboardInterrupt):
            print()
            return None

        if answer.strip().lower() in CANCEL_ANSWERS:
            return None

        names, invalid = parse_selection(answer, profiles)
        if invalid:
            print(f"Invalid choice: {', '.join(invalid)}. Please try again.")
            continue
        return names


def print_rotated_keys(rotated):
    for result in rotated:
        print(f"\n[{result.name}]")
        print(f"AWS_ACCESS_KEY_ID={result.new_access_key_id}")
        print(f"AWS_SECRET_ACCESS_KEY={result.new_secret_access_key}")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="rotate-aws-key",
        description="Rotate the AWS IAM access keys of local credential profiles",
        epilog="Examples:\n"
        "  rotate-aws-key                # Rotate the key of the default profile\n"
        "  rotate-aws-key -p             # Pick up to two profiles to rotate\n"
        "  rotate-aws-key -e             # Also update AWS_* variables in ./.env\n"
        "  rotate-aws-key -e app/.env -o # Update app/.env and print the new key",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-o",
        "--output",
        action="store_true",
        help="Print the new access key id and secret of every rotated profile",
    )
    parser.add_argument(
        "-p",
        "--profiles",
        action="store_true",
        help="Choose among all profiles in the credentials file instead of only 'default'",
    )
    parser.add_argument(
        "-e",
        "--env",
        metavar="PATH",
        nargs="?",
        const=".env",  # .env in the current directory when -e is used without a path
        default=None,
        help="Also update AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY in an env file "
        "(default: .env). Only used when exactly one profile is rotated",
    )
    parser.add_argument(
        "--aws-profile",
        metavar="PROFILE",
        default=None,
        help="AWS profile used for the IAM calls (defaults to the standard credential chain)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    print()
    print(" rotate-aws-key ")

    candidates = ["default"]
    if args.profiles:
        try:
            candidates = list_profile_names()
        except OSError as e:
            print(
                f"Error: Could not read credentials file {get_aws_credentials_path()}",
                file=sys.stderr,
            )
            print(f"Details: {e}", file=sys.stderr)
            return 1

    try:
        gateway = IAMKeyGateway(create_iam_client(args.aws_profile))
    except BotoCoreError as e:
        print("Error: Failed to create IAM client", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        return 1

    report = asyncio.run(
        rotate(
            gateway,
            candidates,
            select=prompt_profile_selection if args.profiles else None,
            env_file=args.env,
        )
    )

    if report.status == STATUS_NO_KEYS:
        print("No existing access keys")
        return 0
    if report.status == STATUS_CANCELLED:
        print("Operation cancelled")
        return 0
    if report.status == STATUS_TOO_MANY:
        print(
            f"Error: Cannot rotate more than {MAX_PROFILES_PER_RUN} access keys "
            f"({len(report.selected)} selected)",
            file=sys.stderr,
        )
        return 0
    if report.status == STATUS_NOTHING:
        print("Nothing to rotate")
        return 0

    count = len(report.rotated)
    print(f"✓ Rotated {count} access key{'s' if count != 1 else ''}")

    not_deleted = [outcome for outcome in report.deletions if not outcome.deleted]
    for outcome in not_deleted:
        print(
            f"⚠ Warning: Old access key {outcome.access_key_id} of '{outcome.name}' is still active",
            file=sys.stderr,
        )

    if args.output:
        print_rotated_keys(report.rotated)

    print("\nComplete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
