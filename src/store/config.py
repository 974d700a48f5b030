"""
Store Configuration - Location of the pi-apps directory and tunables.

Everything is read from the environment; there is no config file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common.exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

SUPPORTED_PACKAGE_MANAGERS = ("apt", "pacman", "apk")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidConfigError(name, raw, "must be an integer")
    if value < 0:
        raise InvalidConfigError(name, raw, "must not be negative")
    return value


@dataclass
class StoreConfig:
    """Paths and settings for one pi-apps directory."""
    directory: Path
    package_manager: Optional[str] = None  # None means auto-detect
    connectivity_url: str = "https://github.com"
    log_retention_days: int = 6
    unsupported_delay: int = 10
    debug: bool = False

    def __post_init__(self):
        self.directory = Path(self.directory).expanduser()
        if self.package_manager and self.package_manager not in SUPPORTED_PACKAGE_MANAGERS:
            raise InvalidConfigError(
                "package_manager",
                self.package_manager,
                f"expected one of {', '.join(SUPPORTED_PACKAGE_MANAGERS)}",
            )

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Build a config from PI_APPS_* environment variables."""
        directory = os.environ.get("PI_APPS_DIR") or str(Path.home() / "pi-apps")
        return cls(
            directory=Path(directory),
            package_manager=os.environ.get("PI_APPS_PACKAGE_MANAGER") or None,
            connectivity_url=os.environ.get("PI_APPS_CONNECTIVITY_URL", "https://github.com"),
            log_retention_days=_env_int("PI_APPS_LOG_RETENTION_DAYS", 6),
            unsupported_delay=_env_int("PI_APPS_UNSUPPORTED_DELAY", 10),
            debug=os.environ.get("PI_APPS_DEBUG", "").lower() in ("1", "true", "yes"),
        )

    @property
    def apps_dir(self) -> Path:
        return self.directory / "apps"

    @property
    def data_dir(self) -> Path:
        return self.directory / "data"

    @property
    def status_dir(self) -> Path:
        return self.data_dir / "status"

    @property
    def categories_dir(self) -> Path:
        return self.data_dir / "categories"

    @property
    def category_overrides_file(self) -> Path:
        return self.data_dir / "category-overrides"

    @property
    def runonce_hashes_file(self) -> Path:
        return self.data_dir / "runonce_hashes"

    @property
    def update_status_dir(self) -> Path:
        return self.data_dir / "update-status"

    @property
    def logs_dir(self) -> Path:
        return self.directory / "logs"

    @property
    def update_dir(self) -> Path:
        """Fresh clone of the upstream repository."""
        return self.directory / "update" / "pi-apps"

    @property
    def git_url_file(self) -> Path:
        return self.directory / "etc" / "git_url"

    @property
    def api_script(self) -> Path:
        return self.directory / "api"

    def app_dir(self, app: str) -> Path:
        return self.apps_dir / app


_config: Optional[StoreConfig] = None


def get_config() -> StoreConfig:
    """Return the process-wide config, reading the environment on first use."""
    global _config
    if _config is None:
        _config = StoreConfig.from_env()
        logger.debug(f"Using pi-apps directory {_config.directory}")
    return _config


def reset_config() -> None:
    """Forget the cached config so the next get_config() re-reads the environment."""
    global _config
    _config = None
