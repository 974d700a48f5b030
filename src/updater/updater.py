#!/usr/bin/env python3
"""
Pi-Apps Updater

Brings a pi-apps directory up to date with its upstream repository.

Workflow:
1. Clone the upstream repo into update/pi-apps
2. Compare it with the local tree to find changed files and apps
3. Back up everything that is about to change
4. Copy changed files, refresh changed apps (reinstalling where needed)
5. If anything fails, restore the backup
"""

from __future__ import annotations

import filecmp
import logging
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Set

from common.exceptions import MissingConfigError, PiAppsError, UpdateError
from store.app_catalog import AppCatalog, list_subtract
from store.config import StoreConfig, get_config
from store.installer import AppManager
from utils.atomic_write import atomic_write_lines, safe_backup

logger = logging.getLogger(__name__)

# Never compared or copied, relative to the pi-apps directory
LOCAL_ONLY_DIRS = (".git/", "apps/", "data/", "logs/", "update/")


class UpdateStatus(Enum):
    """Status of an update operation."""
    IDLE = "idle"
    CHECKING = "checking"
    BACKING_UP = "backing_up"
    UPDATING_FILES = "updating_files"
    UPDATING_APPS = "updating_apps"
    COMPLETE = "complete"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


@dataclass
class FileChange:
    """A non-app file that differs from upstream."""
    path: str
    is_new: bool = False


@dataclass
class UpdateResult:
    """Outcome of perform_update()."""
    success: bool = True
    message: str = ""
    updated_files: List[str] = field(default_factory=list)
    updated_apps: List[str] = field(default_factory=list)
    reinstalled_apps: List[str] = field(default_factory=list)
    backup_dir: Optional[Path] = None


def _relative_files(root: Path, skip: tuple) -> Set[str]:
    if not root.is_dir():
        return set()
    files = set()
    for path in root.rglob("*"):
        if path.is_file() or path.is_symlink():
            rel = path.relative_to(root).as_posix()
            if not rel.startswith(skip):
                files.add(rel)
    return files


def directories_match(dir1: Path, dir2: Path) -> bool:
    """True if both folders hold the same files with the same content."""
    files1 = _relative_files(dir1, ())
    files2 = _relative_files(dir2, ())
    if files1 != files2:
        return False
    return all(filecmp.cmp(dir1 / f, dir2 / f, shallow=False) for f in files1)


class AppUpdater:
    """
    Updates pi-apps files and apps from the upstream repository.

    Args:
        config: Store configuration (default: from environment)
        manager: AppManager used to reinstall apps (created if omitted)
        fast: Use the lists cached under data/update-status instead of
            cloning and comparing again
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        manager: Optional[AppManager] = None,
        fast: bool = False,
    ):
        self.config = config or get_config()
        self.manager = manager or AppManager(self.config)
        self.catalog: AppCatalog = self.manager.catalog
        self.fast = fast
        self.status = UpdateStatus.IDLE
        self._progress_callback: Optional[Callable[[UpdateStatus, str, float], None]] = None

    def set_progress_callback(
        self,
        callback: Callable[[UpdateStatus, str, float], None],
    ):
        """
        Set callback for progress updates.

        Args:
            callback: Function(status, message, percent)
        """
        self._progress_callback = callback

    def _notify(self, status: UpdateStatus, message: str, percent: float = 0):
        self.status = status
        if self._progress_callback:
            self._progress_callback(status, message, percent)

    @property
    def clone_dir(self) -> Path:
        return self.config.update_dir

    @property
    def _files_cache(self) -> Path:
        return self.config.update_status_dir / "updatable-files"

    @property
    def _apps_cache(self) -> Path:
        return self.config.update_status_dir / "updatable-apps"

    # -------------------------------------------------------------------------
    # Checking
    # -------------------------------------------------------------------------

    def git_url(self) -> str:
        path = self.config.git_url_file
        url = path.read_text(encoding="utf-8").strip() if path.is_file() else ""
        if not url:
            raise MissingConfigError(str(path))
        return url

    def check_repo(self) -> None:
        """
        Download a fresh shallow clone of the upstream repository.

        Raises:
            UpdateError: git clone failed
        """
        if self.fast and self.clone_dir.is_dir():
            return

        url = self.git_url()
        self._notify(UpdateStatus.CHECKING, "Checking for online changes...", 10)
        update_root = self.clone_dir.parent
        if update_root.exists():
            shutil.rmtree(update_root)
        update_root.mkdir(parents=True)

        try:
            result = subprocess.run(
                ["git", "clone", "--depth=1", url, str(self.clone_dir)],
                capture_output=True,
                text=True,
                timeout=600,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise UpdateError(f"Failed to download the pi-apps repository: {e}", cause=e)
        if result.returncode != 0:
            raise UpdateError(
                f"Failed to download the pi-apps repository: {result.stderr.strip()}"
            )
        logger.info(f"Cloned {url} into {self.clone_dir}")

    def _excluded_files(self) -> Set[str]:
        exclusion_file = self.config.data_dir / "update-exclusion"
        if not exclusion_file.is_file():
            return set()
        excluded = set()
        for line in exclusion_file.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith(("#", ";")):
                excluded.add(line)
        return excluded

    @staticmethod
    def _read_cache(path: Path) -> List[str]:
        return [
            line.strip()
            for line in path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]

    def get_updatable_files(self) -> List[FileChange]:
        """
        Files outside apps/ that are new or changed upstream.

        Files that only exist locally are left alone.
        """
        if self.fast and self._files_cache.is_file():
            return [FileChange(p) for p in self._read_cache(self._files_cache)]

        local = _relative_files(self.config.directory, LOCAL_ONLY_DIRS)
        online = _relative_files(self.clone_dir, LOCAL_ONLY_DIRS)
        excluded = self._excluded_files()

        changes = []
        for rel in sorted(online):
            if rel in excluded:
                continue
            if rel not in local:
                changes.append(FileChange(rel, is_new=True))
            elif not filecmp.cmp(self.config.directory / rel, self.clone_dir / rel, shallow=False):
                changes.append(FileChange(rel))
        return changes

    def get_updatable_apps(self) -> List[str]:
        """Online apps that are new or whose folder differs from upstream."""
        if self.fast and self._apps_cache.is_file():
            return self._read_cache(self._apps_cache)
        if not self.clone_dir.is_dir():
            return []

        updatable = []
        for app in self.catalog.online_apps():
            local_dir = self.config.app_dir(app)
            online_dir = self.clone_dir / "apps" / app
            if not local_dir.is_dir() or not directories_match(local_dir, online_dir):
                updatable.append(app)
        return updatable

    def get_removed_apps(self) -> List[str]:
        """Local apps that upstream no longer has."""
        if not self.clone_dir.is_dir():
            return []
        return list_subtract(self.catalog.local_apps(), self.catalog.online_apps())

    def write_status(self, files: List[FileChange], apps: List[str]) -> None:
        atomic_write_lines(self._files_cache, [f.path for f in files])
        atomic_write_lines(self._apps_cache, apps)

    def set_status(self):
        """
        Clone upstream and cache what can be updated.

        Returns:
            (updatable files, updatable apps)
        """
        self.check_repo()
        files = self.get_updatable_files()
        apps = self.get_updatable_apps()
        self.write_status(files, apps)
        self._notify(
            UpdateStatus.IDLE,
            f"Found {len(files)} updatable files and {len(apps)} updatable apps",
            100,
        )
        return files, apps

    def will_reinstall(self, app: str) -> bool:
        return self.catalog.will_reinstall(app, self.manager.backend)

    # -------------------------------------------------------------------------
    # Updating
    # -------------------------------------------------------------------------

    def update_file(self, path: str) -> None:
        src = self.clone_dir / path
        if not src.exists():
            raise UpdateError(f"{path} does not exist in the update folder")
        dst = self.config.directory / path
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
        logger.debug(f"Updated {path}")

    def refresh_app(self, app: str) -> bool:
        """Refresh one app. Returns True if it had to be reinstalled."""
        return self.manager.refresh(app)

    def _backup(self, files: List[FileChange], apps: List[str]) -> Path:
        backup_dir = self.config.data_dir / "update-backup" / str(int(time.time()))
        backup_dir.mkdir(parents=True, exist_ok=True)
        for change in files:
            src = self.config.directory / change.path
            if src.is_file():
                safe_backup(src, backup_dir / "files" / Path(change.path).parent)
        for app in apps:
            src = self.config.app_dir(app)
            if src.is_dir():
                shutil.copytree(src, backup_dir / "apps" / app, symlinks=True)
        logger.info(f"Backed up {len(files)} files and {len(apps)} apps to {backup_dir}")
        return backup_dir

    def _rollback(self, backup_dir: Path, files: List[FileChange], apps: List[str]) -> None:
        logger.warning("Rolling back changes...")
        for change in files:
            target = self.config.directory / change.path
            saved = backup_dir / "files" / change.path
            if saved.is_file():
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(saved, target)
            elif change.is_new and target.exists():
                target.unlink()
        for app in apps:
            target = self.config.app_dir(app)
            saved = backup_dir / "apps" / app
            if target.exists():
                shutil.rmtree(target)
            if saved.is_dir():
                shutil.copytree(saved, target, symlinks=True)
        self._notify(UpdateStatus.ROLLED_BACK, "Rollback completed", 100)

    def perform_update(
        self,
        files: Optional[List[FileChange]] = None,
        apps: Optional[List[str]] = None,
    ) -> UpdateResult:
        """
        Update files and apps, rolling everything back on failure.

        Args:
            files: Files to update (default: get_updatable_files())
            apps: Apps to refresh (default: get_updatable_apps())
        """
        files = self.get_updatable_files() if files is None else files
        apps = self.get_updatable_apps() if apps is None else apps
        result = UpdateResult()

        if not files and not apps:
            result.message = "Nothing is updatable."
            self._notify(UpdateStatus.COMPLETE, result.message, 100)
            return result

        self._notify(UpdateStatus.BACKING_UP, "Backing up files...", 5)
        try:
            result.backup_dir = self._backup(files, apps)
        except OSError as e:
            result.success = False
            result.message = f"Failed to create backup: {e}"
            self._notify(UpdateStatus.FAILED, result.message, 0)
            return result

        try:
            total = len(files) + len(apps)
            done = 0
            for change in files:
                self._notify(UpdateStatus.UPDATING_FILES, f"Updating {change.path}", 10 + 85 * done / total)
                self.update_file(change.path)
                result.updated_files.append(change.path)
                done += 1
            for app in apps:
                self._notify(UpdateStatus.UPDATING_APPS, f"Refreshing {app}", 10 + 85 * done / total)
                if self.refresh_app(app):
                    result.reinstalled_apps.append(app)
                result.updated_apps.append(app)
                done += 1
        except (PiAppsError, OSError) as e:
            logger.error(f"Update failed: {e}")
            result.success = False
            result.message = f"Update failed: {e}"
            self._rollback(result.backup_dir, files, apps)
            return result

        self.write_status(
            [f for f in self.get_updatable_files() if f.path not in result.updated_files],
            [a for a in self.get_updatable_apps() if a not in result.updated_apps],
        )
        result.message = "Update completed successfully"
        self._notify(UpdateStatus.COMPLETE, result.message, 100)
        logger.info(
            f"Updated {len(result.updated_files)} files and {len(result.updated_apps)} apps"
        )
        return result
