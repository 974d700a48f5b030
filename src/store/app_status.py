"""
App Status - Per-app status files and app type detection.

The status of an app is the content of data/status/<app>. A missing file
means the app is uninstalled.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, List

from common.exceptions import AppNotFoundError, InvalidAppError
from utils.atomic_write import atomic_write_lines, atomic_write_text

from .config import StoreConfig, get_config
from .package_manager import PackageManager

logger = logging.getLogger(__name__)


class AppStatus(Enum):
    """Values a status file may hold."""
    INSTALLED = "installed"
    UNINSTALLED = "uninstalled"
    CORRUPTED = "corrupted"
    DISABLED = "disabled"
    FAILED = "failed"


class AppType(Enum):
    """How an app is installed."""
    STANDARD = "standard"  # install/uninstall shell scripts
    PACKAGE = "package"    # packages file handed to the package manager


STANDARD_SCRIPTS = ("install", "install-32", "install-64", "uninstall")
HIDDEN_CATEGORY = "hidden"


def _check_name(app: str) -> None:
    if not app:
        raise ValueError("app name must not be empty")


def get_app_status(app: str, config: Optional[StoreConfig] = None) -> str:
    """
    Read an app's status string.

    Unknown strings are returned as-is so callers can see what a script wrote.
    """
    _check_name(app)
    config = config or get_config()
    status_file = config.status_dir / app
    if not status_file.is_file():
        return AppStatus.UNINSTALLED.value
    status = status_file.read_text(encoding="utf-8", errors="replace").strip()
    return status or AppStatus.UNINSTALLED.value


def set_app_status(app: str, status, config: Optional[StoreConfig] = None) -> None:
    """Write an app's status file. Accepts an AppStatus or a plain string."""
    _check_name(app)
    config = config or get_config()
    value = status.value if isinstance(status, AppStatus) else str(status)
    atomic_write_text(config.status_dir / app, f"{value}\n")
    logger.debug(f"Status of {app} set to {value}")


def clear_app_status(app: str, config: Optional[StoreConfig] = None) -> None:
    """Remove an app's status file, which marks it uninstalled."""
    _check_name(app)
    config = config or get_config()
    status_file = config.status_dir / app
    if status_file.exists():
        status_file.unlink()
        logger.debug(f"Status of {app} cleared")


def app_type(app: str, config: Optional[StoreConfig] = None) -> AppType:
    """
    Determine whether an app is a package app or a standard (script) app.

    Raises:
        AppNotFoundError: app folder does not exist
        InvalidAppError: folder holds neither a packages file nor scripts
    """
    _check_name(app)
    config = config or get_config()
    app_dir = config.app_dir(app)
    if not app_dir.is_dir():
        raise AppNotFoundError(app)

    if (app_dir / "packages").is_file():
        return AppType.PACKAGE
    if any((app_dir / script).is_file() for script in STANDARD_SCRIPTS):
        return AppType.STANDARD
    raise InvalidAppError(app)


def read_packages_file(app: str, config: Optional[StoreConfig] = None) -> List[str]:
    """Words of an app's packages file, with ' | ' alternatives joined as 'a|b'."""
    config = config or get_config()
    packages_file = config.app_dir(app) / "packages"
    if not packages_file.is_file():
        return []
    content = packages_file.read_text(encoding="utf-8")
    content = content.replace(" | ", "|")
    return content.split()


def pkgapp_packages_required(
    app: str,
    backend: PackageManager,
    config: Optional[StoreConfig] = None,
) -> List[str]:
    """
    Resolve the packages a package app would install on this system.

    For 'a|b|c' alternatives the first installed one wins, otherwise the
    first available one. If any entry has no available package the app
    cannot be installed and an empty list is returned.
    """
    packages = []
    for word in read_packages_file(app, config):
        if "|" in word:
            options = [p for p in word.split("|") if p]
            chosen = next((p for p in options if backend.package_installed(p)), None)
            if chosen is None:
                chosen = next((p for p in options if backend.package_available(p)), None)
            if chosen is None:
                logger.debug(f"{app}: none of {options} are available")
                return []
            packages.append(chosen)
        else:
            if not backend.package_available(word):
                logger.debug(f"{app}: package {word} is not available")
                return []
            packages.append(word)
    return packages


def refresh_pkgapp_status(
    app: str,
    backend: PackageManager,
    config: Optional[StoreConfig] = None,
) -> str:
    """
    Recompute a package app's status from what the package manager reports.

    Disabled apps keep their status. When its packages cannot be
    resolved the app is moved to the hidden category and its status is left
    alone; a hidden app whose packages come back is unhidden.

    Returns:
        The status of the app afterwards.
    """
    config = config or get_config()
    current = get_app_status(app, config)
    if current == AppStatus.DISABLED.value:
        return current

    required = pkgapp_packages_required(app, backend, config)
    if not required:
        if category_override(app, config) != HIDDEN_CATEGORY:
            logger.info(f"Hiding {app}: its packages are not available")
            write_category_override(app, HIDDEN_CATEGORY, config)
        return current

    if all(backend.package_installed(p) for p in required):
        status = AppStatus.INSTALLED
    else:
        status = AppStatus.UNINSTALLED
    set_app_status(app, status, config)

    if category_override(app, config) == HIDDEN_CATEGORY:
        logger.info(f"Unhiding {app}: its packages are available again")
        write_category_override(app, None, config)
    return status.value


def _override_lines(config: StoreConfig) -> List[str]:
    overrides = config.category_overrides_file
    if not overrides.is_file():
        return []
    return overrides.read_text(encoding="utf-8").splitlines()


def category_override(app: str, config: Optional[StoreConfig] = None) -> Optional[str]:
    """The category an override line gives the app, or None."""
    config = config or get_config()
    for line in _override_lines(config):
        name, sep, category = line.partition("|")
        if sep and name.strip() == app:
            return category.strip()
    return None


def write_category_override(
    app: str,
    category: Optional[str],
    config: Optional[StoreConfig] = None,
) -> None:
    """
    Replace the override line of an app.

    A category of None only removes the existing line, so the app falls
    back to its category from data/categories.
    """
    config = config or get_config()
    lines = [
        line for line in _override_lines(config)
        if line.split("|", 1)[0].strip() != app
    ]
    if category is not None:
        lines.append(f"{app}|{category}")
    atomic_write_lines(config.category_overrides_file, lines)
