"""
Log files - Listing and housekeeping for logs/.

Log names follow <action>-<result>-<app>.log, optionally with a number
after .log when an earlier log of the same name already existed.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, List

from .config import StoreConfig, get_config

logger = logging.getLogger(__name__)

LOG_NAME_PATTERN = re.compile(
    r"^(install|uninstall|update|refresh)-(success|fail|incomplete)-(.+)\.log\d*$",
    re.IGNORECASE,
)

_GERUNDS = {
    "install": "Installing",
    "uninstall": "Uninstalling",
    "update": "Updating",
    "refresh": "Refreshing",
}
_OUTCOMES = {
    "success": "succeeded.",
    "fail": "failed.",
    "incomplete": "was interrupted.",
}


@dataclass
class LogEntry:
    """One log file in logs/."""
    path: Path
    app: str
    action: str
    result: str
    modified: datetime

    @property
    def caption(self) -> str:
        return f"{_GERUNDS[self.action]} {self.app} {_OUTCOMES[self.result]}"

    def date_label(self, now: Optional[datetime] = None) -> str:
        """'Today 14:02', 'Yesterday 09:30' or 'Monday 18:45'."""
        now = now or datetime.now()
        day = self.modified.strftime("%A")
        if self.modified.date() == now.date():
            day = "Today"
        elif self.modified.date() == (now - timedelta(days=1)).date():
            day = "Yesterday"
        return f"{day} {self.modified.strftime('%H:%M')}"


def parse_log_name(path: Path) -> Optional[LogEntry]:
    """Build a LogEntry from a file name, or None if the name does not fit."""
    path = Path(path)
    match = LOG_NAME_PATTERN.match(path.name)
    if not match:
        return None
    try:
        mtime = path.stat().st_mtime
    except OSError:
        mtime = time.time()
    return LogEntry(
        path=path,
        action=match.group(1).lower(),
        result=match.group(2).lower(),
        app=match.group(3),
        modified=datetime.fromtimestamp(mtime),
    )


def get_log_files(config: Optional[StoreConfig] = None) -> List[LogEntry]:
    """All recognised log files, newest first."""
    config = config or get_config()
    logs_dir = config.logs_dir
    if not logs_dir.is_dir():
        return []
    entries = []
    for path in logs_dir.iterdir():
        if not path.is_file():
            continue
        entry = parse_log_name(path)
        if entry is None:
            logger.debug(f"Ignoring unrecognised log file {path.name}")
            continue
        entries.append(entry)
    entries.sort(key=lambda e: e.modified, reverse=True)
    return entries


def get_logfile(app: str, config: Optional[StoreConfig] = None) -> Optional[Path]:
    """Newest log of an app, or None."""
    for entry in get_log_files(config):
        if entry.app == app:
            return entry.path
    return None


def cleanup_old_logs(config: Optional[StoreConfig] = None, days: Optional[int] = None) -> int:
    """
    Delete logs older than the retention period.

    Returns:
        Number of files deleted.
    """
    config = config or get_config()
    days = config.log_retention_days if days is None else days
    logs_dir = config.logs_dir
    if not logs_dir.is_dir():
        return 0

    cutoff = time.time() - days * 86400
    removed = 0
    for path in logs_dir.iterdir():
        if not path.is_file():
            continue
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError as e:
            logger.warning(f"Could not remove old log file {path}: {e}")
    if removed:
        logger.info(f"Removed {removed} log file(s) older than {days} days")
    return removed


def delete_all_logs(config: Optional[StoreConfig] = None) -> int:
    """Delete every file in logs/. Returns the number deleted."""
    config = config or get_config()
    logs_dir = config.logs_dir
    if not logs_dir.is_dir():
        return 0
    removed = 0
    for path in logs_dir.iterdir():
        if path.is_file():
            path.unlink()
            removed += 1
    logger.info(f"Deleted {removed} log file(s)")
    return removed
