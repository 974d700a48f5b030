#!/usr/bin/env python3
"""
Pi-Apps CLI

Command-line interface for listing, installing and managing apps.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from common.exceptions import PiAppsError
from common.logging_config import setup_logging
from store.app_catalog import LIST_FILTERS, AppCatalog
from store.app_status import get_app_status
from store.config import get_config
from store.createapp import AppScaffolder
from store.importer import AppImporter
from store.installer import Action, AppManager
from store.log_diagnose import diagnose_log
from store.logs import cleanup_old_logs, delete_all_logs, get_log_files

logger = logging.getLogger(__name__)


def get_manager() -> AppManager:
    return AppManager(get_config())


def _fail(error: PiAppsError) -> int:
    print(f"Error: {error.message}", file=sys.stderr)
    log_path = getattr(error, "log_path", None)
    if log_path:
        print(f"Log file: {log_path}", file=sys.stderr)
    return 1


def cmd_list(args):
    """List apps matching a filter or category."""
    catalog = AppCatalog(get_config())
    try:
        apps = catalog.list_apps(args.filter)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        print(f"Valid filters: {', '.join(LIST_FILTERS)}", file=sys.stderr)
        return 1
    for app in apps:
        print(app)
    return 0


def cmd_search(args):
    """Search app names and descriptions."""
    catalog = AppCatalog(get_config())
    results = catalog.search(args.query)
    if not results:
        print(f"No apps found for: {args.query}")
        return 0
    for app in results:
        print(app)
    return 0


def cmd_info(args):
    """Show detailed app information."""
    catalog = AppCatalog(get_config())
    try:
        info = catalog.get(args.app)
    except PiAppsError as e:
        return _fail(e)

    if args.json:
        print(json.dumps(info.to_dict(), indent=2))
        return 0

    print(f"Name:        {info.name}")
    print(f"Type:        {info.app_type.value if info.app_type else 'unknown'}")
    print(f"Category:    {info.category or '(none)'}")
    print(f"Status:      {info.status}")
    if info.website:
        print(f"Website:     {info.website}")
    if info.summary:
        print(f"Description: {info.summary}")
    if info.credits:
        print(f"Credits:     {info.credits.splitlines()[0]}")
    return 0


def cmd_status(args):
    """Print the status of one or more apps."""
    for app in args.apps:
        status = get_app_status(app, get_config())
        print(f"{app}: {status}" if len(args.apps) > 1 else status)
    return 0


def cmd_install(args):
    """Install an app."""
    manager = get_manager()
    try:
        manager.install(args.app)
    except PiAppsError as e:
        return _fail(e)
    return 0


def cmd_uninstall(args):
    """Uninstall an app."""
    manager = get_manager()
    try:
        manager.uninstall(args.app)
    except PiAppsError as e:
        return _fail(e)
    return 0


def cmd_update(args):
    """Update an app in place."""
    manager = get_manager()
    try:
        manager.update(args.app)
    except PiAppsError as e:
        return _fail(e)
    return 0


def cmd_refresh(args):
    """Replace an app's files with the updated copy."""
    manager = get_manager()
    try:
        reinstalled = manager.refresh(args.app)
    except PiAppsError as e:
        return _fail(e)
    print(f"Refreshed {args.app}{' (reinstalled)' if reinstalled else ''}")
    return 0


def _split_apps(values: List[str]) -> List[str]:
    apps = []
    for value in values:
        apps.extend(a.strip() for a in value.split("\n") if a.strip())
    return apps


def cmd_multi_install(args):
    """Install several apps."""
    manager = get_manager()
    try:
        manager.multi_manage(Action.INSTALL, _split_apps(args.apps))
    except PiAppsError as e:
        return _fail(e)
    return 0


def cmd_multi_uninstall(args):
    """Uninstall several apps."""
    manager = get_manager()
    try:
        manager.multi_manage(Action.UNINSTALL, _split_apps(args.apps))
    except PiAppsError as e:
        return _fail(e)
    return 0


def cmd_diagnose(args):
    """Diagnose a failure log."""
    config = get_config()
    path = Path(args.logfile)
    if not path.is_file():
        print(f"Log file not found: {path}", file=sys.stderr)
        return 1
    diagnosis = diagnose_log(path, config.package_manager)
    if args.json:
        print(json.dumps(diagnosis.to_dict(), indent=2))
        return 0
    print(f"Error type: {diagnosis.error_type.value}")
    for caption in diagnosis.captions:
        print(caption)
    return 0


def cmd_logs(args):
    """List log files, or clean them up."""
    config = get_config()
    if args.delete_all:
        count = delete_all_logs(config)
        print(f"Deleted {count} log file(s)")
        return 0
    if args.cleanup:
        count = cleanup_old_logs(config)
        print(f"Removed {count} old log file(s)")
        return 0

    entries = get_log_files(config)
    if not entries:
        print("No log files found.")
        return 0
    for entry in entries:
        print(f"{entry.date_label():<20} {entry.caption}  ({entry.path.name})")
    return 0


def cmd_import(args):
    """Import apps from a zip, folder or GitHub pull request."""
    try:
        with AppImporter(get_config()) as importer:
            apps = importer.import_source(args.source)
    except PiAppsError as e:
        return _fail(e)
    for app in apps:
        print(f"Imported {app}")
    return 0


def cmd_create(args):
    """Create a new app skeleton."""
    scaffolder = AppScaffolder(get_config())
    try:
        app_dir = scaffolder.create(
            args.name,
            description=args.description,
            website=args.website or "",
            credits=args.credits or "",
            kind=args.type,
            packages=args.packages,
            compat=args.compat,
            icon=Path(args.icon) if args.icon else None,
            version=args.app_version or "",
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except PiAppsError as e:
        return _fail(e)
    print(f"Created {app_dir}")
    return 0


def cmd_category(args):
    """Move an app to another category."""
    catalog = AppCatalog(get_config())
    try:
        catalog.set_category(args.app, args.category)
    except PiAppsError as e:
        return _fail(e)
    print(f"Moved {args.app} to {args.category or '(no category)'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pi-apps",
        description="Pi-Apps app store for Linux single-board computers",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # list
    list_p = subparsers.add_parser("list", help="List apps")
    list_p.add_argument("filter", nargs="?", default="local",
                        help="Filter (local, installed, package, ...) or category name")
    list_p.set_defaults(func=cmd_list)

    # search
    search_p = subparsers.add_parser("search", help="Search for apps")
    search_p.add_argument("query", help="Search query")
    search_p.set_defaults(func=cmd_search)

    # info
    info_p = subparsers.add_parser("info", help="Show app details")
    info_p.add_argument("app", help="App name")
    info_p.add_argument("--json", action="store_true", help="Print as JSON")
    info_p.set_defaults(func=cmd_info)

    # status
    status_p = subparsers.add_parser("status", help="Show app status")
    status_p.add_argument("apps", nargs="+", help="App names")
    status_p.set_defaults(func=cmd_status)

    # install / uninstall / update / refresh
    for name, func, help_text in (
        ("install", cmd_install, "Install an app"),
        ("uninstall", cmd_uninstall, "Uninstall an app"),
        ("update", cmd_update, "Update an app"),
        ("refresh", cmd_refresh, "Refresh an app from the update folder"),
    ):
        action_p = subparsers.add_parser(name, help=help_text)
        action_p.add_argument("app", help="App name")
        action_p.set_defaults(func=func)

    # multi-install / multi-uninstall
    multi_in = subparsers.add_parser("multi-install", help="Install several apps")
    multi_in.add_argument("apps", nargs="+", help="App names")
    multi_in.set_defaults(func=cmd_multi_install)

    multi_un = subparsers.add_parser("multi-uninstall", help="Uninstall several apps")
    multi_un.add_argument("apps", nargs="+", help="App names")
    multi_un.set_defaults(func=cmd_multi_uninstall)

    # diagnose
    diag_p = subparsers.add_parser("diagnose", help="Diagnose a failure log")
    diag_p.add_argument("logfile", help="Path to the log file")
    diag_p.add_argument("--json", action="store_true", help="Print as JSON")
    diag_p.set_defaults(func=cmd_diagnose)

    # logs
    logs_p = subparsers.add_parser("logs", help="List or clean up log files")
    logs_group = logs_p.add_mutually_exclusive_group()
    logs_group.add_argument("--cleanup", action="store_true",
                            help="Delete logs older than the retention period")
    logs_group.add_argument("--delete-all", action="store_true", help="Delete every log")
    logs_p.set_defaults(func=cmd_logs)

    # import
    import_p = subparsers.add_parser("import", help="Import apps")
    import_p.add_argument("source", help="Zip file, folder, zip URL or GitHub PR URL")
    import_p.set_defaults(func=cmd_import)

    # create
    create_p = subparsers.add_parser("create", help="Create a new app")
    create_p.add_argument("name", help="App name")
    create_p.add_argument("-d", "--description", required=True, help="App description")
    create_p.add_argument("-w", "--website", help="Project website")
    create_p.add_argument("-c", "--credits", help="Credits")
    create_p.add_argument("-t", "--type", choices=["standard", "package"], default="standard")
    create_p.add_argument("-p", "--packages", nargs="+", help="Packages for package apps")
    create_p.add_argument("--compat", choices=["universal", "32", "64", "32-and-64"],
                          default="universal", help="Which install scripts to create")
    create_p.add_argument("--icon", help="Icon image to copy into the app")
    create_p.add_argument("--app-version", help="Upstream version to pin in the install script")
    create_p.set_defaults(func=cmd_create)

    # category
    cat_p = subparsers.add_parser("category", help="Set an app's category")
    cat_p.add_argument("app", help="App name")
    cat_p.add_argument("category", help="Category name (empty string for none)")
    cat_p.set_defaults(func=cmd_category)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.command is None:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
