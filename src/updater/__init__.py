"""
Pi-Apps Updater

Keeps a pi-apps directory in sync with its upstream repository:
- Shallow clone of the upstream repo into update/pi-apps
- Detection of changed files and apps
- Backup and rollback around every update
"""

from .updater import (
    AppUpdater,
    FileChange,
    UpdateResult,
    UpdateStatus,
)

__all__ = [
    "AppUpdater",
    "FileChange",
    "UpdateResult",
    "UpdateStatus",
]
