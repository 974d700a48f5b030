#!/usr/bin/env python3
"""
Pi-Apps Updater CLI

Command-line interface for checking and applying pi-apps updates.
"""

import argparse
import logging
import sys
from typing import List, Optional

from common.exceptions import PiAppsError
from common.logging_config import setup_logging
from store.config import get_config

from .updater import AppUpdater, UpdateStatus

logger = logging.getLogger(__name__)


def progress_callback(status: UpdateStatus, message: str, percent: float):
    """Display update progress."""
    bar_width = 30
    filled = int(bar_width * percent / 100)
    bar = "=" * filled + "-" * (bar_width - filled)
    print(f"\r[{bar}] {percent:.0f}% {message[:40]:40s}", end="", flush=True)
    if percent >= 100:
        print()


def cmd_check(args):
    """Check for available updates."""
    print("Checking for updates...")

    updater = AppUpdater(get_config(), fast=args.fast)
    try:
        files, apps = updater.set_status()
    except PiAppsError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if not files and not apps:
        print("\nPi-Apps is up to date.")
        return 0

    if files:
        print(f"\n{len(files)} file(s) can be updated:")
        for change in files:
            print(f"  {change.path}{' (new)' if change.is_new else ''}")
    if apps:
        print(f"\n{len(apps)} app(s) can be updated:")
        for app in apps:
            note = " (will be reinstalled)" if updater.will_reinstall(app) else ""
            print(f"  {app}{note}")

    removed = updater.get_removed_apps()
    if removed:
        print(f"\nNo longer available upstream: {', '.join(removed)}")
    return 0


def cmd_update(args):
    """Apply updates."""
    updater = AppUpdater(get_config(), fast=args.fast)

    print("Checking for updates...")
    try:
        files, apps = updater.set_status()
    except PiAppsError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if not files and not apps:
        print("Nothing is updatable.")
        return 0

    print(f"\n{len(files)} file(s) and {len(apps)} app(s) will be updated.")

    if not args.yes:
        response = input("\nProceed with update? [y/N] ")
        if response.lower() != "y":
            print("Update cancelled.")
            return 0

    print()
    updater.set_progress_callback(progress_callback)
    result = updater.perform_update(files, apps)

    if result.success:
        print(f"\n{result.message}")
        if result.reinstalled_apps:
            print(f"Reinstalled: {', '.join(result.reinstalled_apps)}")
        return 0

    print(f"\n{result.message}", file=sys.stderr)
    print("All changes were rolled back.", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pi-apps-updater",
        description="Pi-Apps Updater",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--fast", action="store_true",
                        help="Reuse the last check instead of downloading again")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # check command
    check_parser = subparsers.add_parser("check", help="Check for updates")
    check_parser.set_defaults(func=cmd_check)

    # update command
    update_parser = subparsers.add_parser("update", help="Install updates")
    update_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    update_parser.set_defaults(func=cmd_update)

    args = parser.parse_args(argv)

    setup_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.command is None:
        # Default to check
        return cmd_check(args)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
