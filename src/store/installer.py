"""
App Installer - Runs install/uninstall/update for apps and records the outcome.

Every action writes a log under logs/ named <action>-<result>-<app>.log.
Script output is copied to the terminal as-is and to the log with escape
codes removed. When an action fails the log is diagnosed and the app's
status is set from the diagnosis.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Callable, List, Dict, TextIO

from common.decorators import timed
from common.exceptions import (
    AppActionError, AppNotFoundError, AppStateError, BatchActionError,
    InternetError, ScriptNotFoundError,
)
from common.logging_config import LogContext

from .app_catalog import AppCatalog
from .app_status import (
    AppStatus, AppType, app_type, clear_app_status, get_app_status,
    pkgapp_packages_required, refresh_pkgapp_status, set_app_status,
)
from .config import StoreConfig, get_config
from .log_diagnose import (
    AnsiStrippingWriter, ErrorDiagnosis, ErrorType, diagnose_log,
    format_logfile, get_device_info,
)
from .package_manager import PackageManager, get_package_manager
from .system import check_internet

logger = logging.getLogger(__name__)

ISSUES_URL = "https://github.com/Botspot/pi-apps/issues/new/choose"
DISCORD_URL = "https://discord.gg/RXSTvaUvuu"

# Failures of these kinds are not the app's fault
NON_APP_ERRORS = (ErrorType.SYSTEM, ErrorType.INTERNET, ErrorType.PACKAGE)


class Action(Enum):
    """Things that can be done to an app."""
    INSTALL = "install"
    UNINSTALL = "uninstall"
    UPDATE = "update"
    REFRESH = "refresh"

    @property
    def gerund(self) -> str:
        return f"{self.value[:-1] if self.value.endswith('e') else self.value}ing"

    @property
    def past(self) -> str:
        return f"{self.value}d" if self.value.endswith("e") else f"{self.value}ed"


class InstallProgress:
    """Progress tracking for app actions."""

    def __init__(self, callback: Optional[Callable[[int, str], None]] = None):
        self.callback = callback
        self.percent = 0
        self.message = ""

    def update(self, percent: int, message: str = "") -> None:
        self.percent = percent
        self.message = message
        if self.callback:
            self.callback(percent, message)


class AppManager:
    """
    Install, uninstall and update apps in a pi-apps directory.

    Args:
        config: Store configuration (default: from environment)
        catalog: Catalog to resolve scripts and categories
        backend: Package manager for package apps (default: detected)
        output: Terminal stream that receives script output
        internet_check: Callable returning True when online
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        catalog: Optional[AppCatalog] = None,
        backend: Optional[PackageManager] = None,
        output: Optional[TextIO] = None,
        internet_check: Optional[Callable[[], bool]] = None,
    ):
        self.config = config or get_config()
        self.catalog = catalog or AppCatalog(self.config)
        self._backend = backend
        self.output = output or sys.stdout
        self._internet_check = internet_check
        self._progress_callback: Optional[Callable[[int, str], None]] = None

    @property
    def backend(self) -> PackageManager:
        if self._backend is None:
            self._backend = get_package_manager(self.config.package_manager)
        return self._backend

    def set_progress_callback(self, callback: Callable[[int, str], None]) -> None:
        """Set callback for progress updates."""
        self._progress_callback = callback

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _say(self, message: str, color: str = "\033[96m") -> None:
        self.output.write(f"{color}{message}\033[0m\n")
        self.output.flush()

    def check_internet(self) -> bool:
        if self._internet_check is not None:
            return self._internet_check()
        return check_internet(self.config.connectivity_url)

    def _new_log_path(self, action: Action, app: str) -> Path:
        """logs/<action>-incomplete-<app>.log, numbered if the name is taken."""
        logs_dir = self.config.logs_dir
        logs_dir.mkdir(parents=True, exist_ok=True)
        path = logs_dir / f"{action.value}-incomplete-{app}.log"
        if not path.exists():
            return path
        i = 1
        while Path(f"{path}{i}").exists():
            i += 1
        return Path(f"{path}{i}")

    def _script_env(self, app: str, is_update: bool) -> Dict[str, str]:
        env = os.environ.copy()
        env["PI_APPS_DIR"] = str(self.config.directory)
        env["app"] = app
        env["DEBIAN_FRONTEND"] = "noninteractive"
        if is_update:
            env["script_input"] = "update"
        return env

    def _wrapper_script(self, app: str, script: Path) -> str:
        """Script text that loads the shell API, enters the app folder, then runs the app script."""
        lines = [
            "#!/bin/bash",
            f'export PI_APPS_DIR="{self.config.directory}"',
        ]
        if self.config.api_script.is_file():
            lines.append(f'source "{self.config.api_script}"')
        lines.append(f'cd "{self.config.app_dir(app)}"')
        lines.append("")
        lines.append(script.read_text(encoding="utf-8", errors="replace"))
        return "\n".join(lines)

    def _run_logged(self, cmd: List[str], log, cwd: Path, env: Dict[str, str]) -> int:
        """Run cmd, copying combined output to the terminal and the log. Returns the exit code."""
        log_writer = AnsiStrippingWriter(log)
        process = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            bufsize=1,
        )
        for line in process.stdout:
            self.output.write(line)
            log_writer.write(line)
        self.output.flush()
        log_writer.flush()
        return process.wait()

    def _select_script(self, action: Action, app: str) -> Path:
        app_dir = self.config.app_dir(app)
        if action == Action.INSTALL:
            name = self.catalog.script_name_cpu(app)
            if not name or name == "packages":
                raise ScriptNotFoundError(app, "install")
        elif action == Action.UPDATE:
            name = "update"
        else:
            name = "uninstall"
        script = app_dir / name
        if not script.is_file():
            raise ScriptNotFoundError(app, name)
        return script

    def _write_failure_footer(self, log, action: Action, app: str) -> None:
        log.write(f"\nFailed to {action.value} {app}!\n")
        log.write("Need help? Copy the ENTIRE terminal output or take a screenshot.\n")
        log.write(f"Please ask on Github: {ISSUES_URL}\n")
        log.write(f"Or on Discord: {DISCORD_URL}\n")
        self._say(f"\nFailed to {action.value} {app}!", "\033[91m")
        self._say(
            "Need help? Copy the ENTIRE terminal output or take a screenshot.\n"
            f"Please ask on Github: {ISSUES_URL}\nOr on Discord: {DISCORD_URL}",
            "\033[93m",
        )

    def _format_log(self, path: Path) -> None:
        try:
            format_logfile(path, get_device_info(self.config.directory, bits=self.catalog.bits))
        except OSError as e:
            logger.warning(f"Failed to format log file {path}: {e}")

    def _diagnose(self, log_path: Path) -> Optional[ErrorDiagnosis]:
        backend = self.config.package_manager or (self._backend.name if self._backend else None)
        try:
            return diagnose_log(log_path, backend)
        except OSError as e:
            logger.error(f"Unable to detect error type for {log_path.name}: {e}")
            return None

    # -------------------------------------------------------------------------
    # Core action
    # -------------------------------------------------------------------------

    @timed
    def manage_app(self, action: Action, app: str, is_update: bool = False) -> bool:
        """
        Run one action on one app and record the result.

        Args:
            action: INSTALL, UNINSTALL or UPDATE
            app: App folder name
            is_update: The action is part of an update (sets script_input=update)

        Returns:
            True when the action ran, False when it was skipped.

        Raises:
            AppNotFoundError: app folder does not exist
            InternetError: installing while offline
            ScriptNotFoundError: no script fits this system
            AppActionError: the script or package command failed
            ValueError: action is REFRESH, which has no script of its own
        """
        action = Action(action)
        if action == Action.REFRESH:
            raise ValueError("Refreshing an app has no script; use refresh() instead")
        if not self.catalog.exists(app):
            raise AppNotFoundError(app)

        status = get_app_status(app, self.config)
        if action == Action.INSTALL and status == AppStatus.DISABLED.value:
            self._say(f"Not installing the {app} app. IT IS DISABLED.", "\033[93m")
            logger.info(f"Skipping install of disabled app {app}")
            return False

        if action == Action.INSTALL and not self.check_internet():
            raise InternetError(self.config.connectivity_url)

        kind = app_type(app, self.config)
        progress = InstallProgress(self._progress_callback)

        with LogContext(app=app, action=action.value):
            log_path = self._new_log_path(action, app)
            with open(log_path, "w", encoding="utf-8") as log:
                stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
                log.write(f"{stamp} {action.gerund.capitalize()} {app}...\n\n")
                log.flush()
                self._say(f"{action.gerund.capitalize()} {app}...")
                progress.update(5, f"{action.gerund.capitalize()} {app}...")

                if action == Action.INSTALL and kind == AppType.STANDARD:
                    supported, message = self.catalog.is_supported(app)
                    if not supported:
                        warning = (
                            f"WARNING: {message} "
                            f"Continuing in {self.config.unsupported_delay} seconds..."
                        )
                        log.write(f"{warning}\n")
                        self._say(warning, "\033[93m")
                        time.sleep(self.config.unsupported_delay)

                missing_script = None
                try:
                    exit_code = self._execute(action, app, kind, log, is_update)
                except ScriptNotFoundError as e:
                    missing_script = e
                    exit_code = 1
                    log.write(f"{e.message}\n")

                if exit_code != 0:
                    self._write_failure_footer(log, action, app)

            if missing_script is not None:
                self._format_log(log_path)
                os.replace(log_path, Path(str(log_path).replace("-incomplete-", "-fail-", 1)))
                raise missing_script

            if exit_code != 0:
                return self._finish_failure(action, app, kind, log_path, exit_code)

            with open(log_path, "a", encoding="utf-8") as log:
                log.write(f"\n{action.past.capitalize()} {app} successfully.\n")
            self._say(f"{action.past.capitalize()} {app} successfully.", "\033[92m")
            self._format_log(log_path)
            final_log = Path(str(log_path).replace("-incomplete-", "-success-", 1))
            os.replace(log_path, final_log)

            if action == Action.UNINSTALL:
                clear_app_status(app, self.config)
            else:
                set_app_status(app, AppStatus.INSTALLED, self.config)
            if kind == AppType.PACKAGE:
                refresh_pkgapp_status(app, self.backend, self.config)

            progress.update(100, f"{action.past.capitalize()} {app}")
            logger.info(f"{action.past.capitalize()} {app} (log: {final_log.name})")
            return True

    def _execute(self, action: Action, app: str, kind: AppType, log, is_update: bool) -> int:
        app_dir = self.config.app_dir(app)
        env = self._script_env(app, is_update or action == Action.UPDATE)

        if kind == AppType.PACKAGE:
            packages = pkgapp_packages_required(app, self.backend, self.config)
            if not packages:
                raise ScriptNotFoundError(app, "packages")
            if action == Action.UNINSTALL:
                cmd = self.backend.remove_command(packages)
            else:
                cmd = self.backend.install_command(packages)
            log.write(f"Running: {' '.join(cmd)}\n")
            log.flush()
            return self._run_logged(cmd, log, app_dir, env)

        script = self._select_script(action, app)
        script.chmod(0o755)
        log.write(f"Running script: {script}\n")
        log.flush()

        fd, wrapper = tempfile.mkstemp(prefix="pi-apps-script-", suffix=".sh")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self._wrapper_script(app, script))
            os.chmod(wrapper, 0o755)
            return self._run_logged(["bash", wrapper], log, app_dir, env)
        finally:
            os.unlink(wrapper)

    def _finish_failure(
        self, action: Action, app: str, kind: AppType, log_path: Path, exit_code: int
    ) -> bool:
        self._format_log(log_path)
        fail_log = Path(str(log_path).replace("-incomplete-", "-fail-", 1))
        os.replace(log_path, fail_log)

        diagnosis = self._diagnose(fail_log)
        if kind == AppType.STANDARD:
            if diagnosis is None or diagnosis.error_type in NON_APP_ERRORS:
                set_app_status(app, AppStatus.FAILED, self.config)
            else:
                set_app_status(app, AppStatus.CORRUPTED, self.config)
        else:
            refresh_pkgapp_status(app, self.backend, self.config)

        if diagnosis is not None:
            for caption in diagnosis.captions:
                self._say(caption, "\033[93m")

        logger.error(f"Failed to {action.value} {app} (exit code {exit_code})")
        raise AppActionError(
            app,
            action.value,
            exit_code,
            log_path=str(fail_log),
            error_type=diagnosis.error_type.value if diagnosis else None,
            captions=diagnosis.captions if diagnosis else [],
        )

    # -------------------------------------------------------------------------
    # Public actions
    # -------------------------------------------------------------------------

    def install(self, app: str) -> bool:
        """Install an app. Raises AppStateError if it is already installed."""
        status = get_app_status(app, self.config)
        if status == AppStatus.INSTALLED.value:
            raise AppStateError(app, status, "install")
        return self.manage_app(Action.INSTALL, app)

    def uninstall(self, app: str) -> bool:
        """Uninstall an app. Corrupted and failed apps may be uninstalled."""
        status = get_app_status(app, self.config)
        if status == AppStatus.UNINSTALLED.value:
            raise AppStateError(app, status, "uninstall")
        return self.manage_app(Action.UNINSTALL, app)

    def install_if_not_installed(self, app: str) -> bool:
        if get_app_status(app, self.config) == AppStatus.INSTALLED.value:
            logger.debug(f"{app} is already installed")
            return False
        return self.manage_app(Action.INSTALL, app)

    def update(self, app: str) -> bool:
        """
        Update an app in place.

        Script apps with an update script run it. Everything else is
        uninstalled and installed again.
        """
        if not self.catalog.exists(app):
            raise AppNotFoundError(app)
        kind = app_type(app, self.config)
        if kind == AppType.STANDARD and (self.config.app_dir(app) / "update").is_file():
            return self.manage_app(Action.UPDATE, app, is_update=True)

        if get_app_status(app, self.config) != AppStatus.UNINSTALLED.value:
            self.manage_app(Action.UNINSTALL, app, is_update=True)
        return self.manage_app(Action.INSTALL, app, is_update=True)

    def refresh(self, app: str) -> bool:
        """
        Replace an app's files with the copy in the update clone.

        Installed apps whose install script or package list changed are
        uninstalled with the old files and installed with the new ones.

        Returns:
            True if the app was reinstalled.
        """
        source = self.config.update_dir / "apps" / app
        if not source.is_dir():
            raise AppNotFoundError(app)

        reinstall = self.catalog.exists(app) and self.catalog.will_reinstall(app, self.backend)
        if reinstall:
            logger.info(f"{app} changed enough to need a reinstall")
            self.manage_app(Action.UNINSTALL, app, is_update=True)

        target = self.config.app_dir(app)
        if target.exists():
            shutil.rmtree(target)
        shutil.copytree(source, target)
        logger.info(f"Refreshed {app} from the update folder")

        if reinstall:
            self.manage_app(Action.INSTALL, app, is_update=True)
        return reinstall

    # -------------------------------------------------------------------------
    # Batches and maintenance
    # -------------------------------------------------------------------------

    def validate_apps(self, action: Action, apps: List[str]) -> List[str]:
        """
        Drop apps that do not exist or are already in the target state.

        Refreshes are kept as given, the app may only exist in the update clone.
        """
        action = Action(action)
        valid = []
        for app in apps:
            app = app.strip()
            if not app:
                continue
            if action == Action.REFRESH:
                valid.append(app)
                continue
            if not self.catalog.exists(app):
                logger.warning(f"Skipping '{app}': app does not exist")
                continue
            status = get_app_status(app, self.config)
            if action == Action.INSTALL and status == AppStatus.INSTALLED.value:
                logger.info(f"Skipping '{app}': already installed")
                continue
            if action == Action.UNINSTALL and status == AppStatus.UNINSTALLED.value:
                logger.info(f"Skipping '{app}': not installed")
                continue
            valid.append(app)
        return valid

    def multi_manage(self, action: Action, apps: List[str]) -> List[str]:
        """
        Run an action on several apps one after another.

        Returns:
            The apps that were processed successfully.

        Raises:
            BatchActionError: listing every app that failed
        """
        action = Action(action)
        apps = self.validate_apps(action, apps)
        done, failed = [], []
        total = len(apps)
        for i, app in enumerate(apps):
            logger.info(f"[{i + 1}/{total}] {action.gerund} {app}")
            try:
                if action == Action.UPDATE:
                    self.update(app)
                elif action == Action.REFRESH:
                    self.refresh(app)
                else:
                    self.manage_app(action, app)
                done.append(app)
            except (AppActionError, AppNotFoundError, AppStateError,
                    InternetError, ScriptNotFoundError) as e:
                logger.error(f"{action.value} {app} failed: {e.message}")
                failed.append(app)
        if failed:
            raise BatchActionError(action.value, failed)
        return done

    def multi_install(self, apps: List[str]) -> List[str]:
        return self.multi_manage(Action.INSTALL, apps)

    def multi_uninstall(self, apps: List[str]) -> List[str]:
        return self.multi_manage(Action.UNINSTALL, apps)

    def remove_deprecated_app(
        self,
        app: str,
        removal_bits: Optional[int] = None,
        uninstall: bool = True,
    ) -> bool:
        """
        Remove an app that upstream no longer ships.

        Args:
            app: App folder name
            removal_bits: Only remove on 32- or 64-bit systems (None for both)
            uninstall: Uninstall it first if it is installed

        Returns:
            True if the app folder was removed.
        """
        if removal_bits is not None and removal_bits != self.catalog.bits:
            return False
        if not self.catalog.exists(app):
            return False

        if uninstall and get_app_status(app, self.config) != AppStatus.UNINSTALLED.value:
            self.manage_app(Action.UNINSTALL, app)

        shutil.rmtree(self.config.app_dir(app))
        clear_app_status(app, self.config)
        logger.info(f"Removed deprecated app {app}")
        return True
