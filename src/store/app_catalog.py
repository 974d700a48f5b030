"""
App Catalog - Listing, categories and search over the apps/ folder.

Each app is a folder under apps/. Which apps exist, which category they
belong to and which install script fits this CPU are all answered by
looking at files on disk.
"""

from __future__ import annotations

import dataclasses
import filecmp
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable, Tuple

from common.decorators import handle_errors
from common.exceptions import AppNotFoundError, InvalidAppError
from utils.atomic_write import atomic_write_lines, atomic_append_line

from .app_status import (
    HIDDEN_CATEGORY, AppStatus, AppType, app_type, get_app_status,
    pkgapp_packages_required, write_category_override,
)
from .config import StoreConfig, get_config
from .package_manager import PackageManager
from .system import system_bits

logger = logging.getLogger(__name__)

APP_MARKER_FILES = ("install", "install-32", "install-64", "packages")
DEFAULT_SEARCH_FILES = ("description", "website", "credits")

LIST_FILTERS = (
    "local", "all", "online", "online_only", "local_only",
    "installed", "uninstalled", "corrupted", "disabled", "failed",
    "have_status", "missing_status", "cpu_installable",
    "package", "standard", "hidden", "visible",
)


# =============================================================================
# List algebra
# =============================================================================

def list_intersect(list1: Iterable[str], list2: Iterable[str]) -> List[str]:
    """Items of list1 that are also in list2."""
    other = set(list2)
    return sorted({item for item in list1 if item in other})


def list_intersect_partial(list1: Iterable[str], list2: Iterable[str]) -> List[str]:
    """Items of list1 that contain any item of list2 as a substring."""
    needles = [n for n in list2 if n]
    return sorted({item for item in list1 if any(n in item for n in needles)})


def list_subtract(list1: Iterable[str], list2: Iterable[str]) -> List[str]:
    """Items of list1 that are not in list2."""
    other = set(list2)
    return sorted({item for item in list1 if item not in other})


def list_subtract_partial(list1: Iterable[str], list2: Iterable[str]) -> List[str]:
    """Items of list1 that contain none of the items of list2."""
    needles = [n for n in list2 if n]
    return sorted({item for item in list1 if not any(n in item for n in needles)})


def list_union(list1: Iterable[str], list2: Iterable[str]) -> List[str]:
    return sorted(set(list1) | set(list2))


# =============================================================================
# App info
# =============================================================================

@handle_errors(OSError, default="", log_level=logging.DEBUG)
def _read_text(path: Path) -> str:
    if not path.is_file():
        return ""
    return path.read_text(encoding="utf-8", errors="replace").strip()


@dataclass
class AppInfo:
    """What the catalog knows about one app."""
    name: str
    app_type: Optional[AppType]
    description: str = ""
    website: str = ""
    credits: str = ""
    category: str = ""
    status: str = AppStatus.UNINSTALLED.value
    icon: Optional[Path] = None
    scripts: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        """First line of the description."""
        return self.description.split("\n", 1)[0] if self.description else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.app_type.value if self.app_type else None,
            "description": self.description,
            "website": self.website,
            "credits": self.credits,
            "category": self.category,
            "status": self.status,
            "icon": str(self.icon) if self.icon else None,
            "scripts": self.scripts,
        }


class AppCatalog:
    """
    Read-only view of a pi-apps directory, plus category overrides.

    Args:
        config: Store configuration (default: from environment)
        bits: CPU bitness override, detected when not given
    """

    def __init__(self, config: Optional[StoreConfig] = None, bits: Optional[int] = None):
        self.config = config or get_config()
        self._bits = bits

    @property
    def bits(self) -> int:
        if self._bits is None:
            self._bits = system_bits()
        return self._bits

    def online_config(self) -> StoreConfig:
        """Config pointing at the updater's fresh clone."""
        return dataclasses.replace(self.config, directory=self.config.update_dir)

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    @staticmethod
    def _apps_in(apps_dir: Path) -> List[str]:
        if not apps_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in apps_dir.iterdir()
            if entry.is_dir() and any((entry / f).is_file() for f in APP_MARKER_FILES)
        )

    def local_apps(self) -> List[str]:
        return self._apps_in(self.config.apps_dir)

    def online_apps(self) -> List[str]:
        """Apps in the update clone, or the local apps if there is no clone yet."""
        online_dir = self.config.update_dir / "apps"
        if not online_dir.is_dir():
            return self.local_apps()
        return self._apps_in(online_dir)

    def exists(self, app: str) -> bool:
        return bool(app) and self.config.app_dir(app).is_dir()

    def _with_status(self, statuses: Tuple[str, ...]) -> List[str]:
        return [
            app for app in self.local_apps()
            if get_app_status(app, self.config) in statuses
        ]

    def _have_status(self) -> List[str]:
        status_dir = self.config.status_dir
        if not status_dir.is_dir():
            return []
        return sorted(p.name for p in status_dir.iterdir() if p.is_file())

    def _cpu_installable(self) -> List[str]:
        return [app for app in self.local_apps() if self.script_name_cpu(app)]

    def _of_type(self, wanted: AppType) -> List[str]:
        result = []
        for app in self.local_apps():
            try:
                if app_type(app, self.config) == wanted:
                    result.append(app)
            except (AppNotFoundError, InvalidAppError) as e:
                logger.debug(f"Skipping {app}: {e}")
        return result

    def list_apps(self, filter: str = "local") -> List[str]:
        """
        List apps matching a filter.

        Known filters are in LIST_FILTERS; anything else is treated as a
        category name. Results are sorted.

        Raises:
            ValueError: filter is neither a known filter nor a category
        """
        if not filter or filter == "local":
            return self.local_apps()
        if filter == "all":
            return list_union(self.local_apps(), self.online_apps())
        if filter == "online":
            return self.online_apps()
        if filter == "online_only":
            return list_subtract(self.online_apps(), self.local_apps())
        if filter == "local_only":
            return list_subtract(self.local_apps(), self.online_apps())
        if filter == "installed":
            return self._with_status((AppStatus.INSTALLED.value,))
        if filter == "uninstalled":
            return self._with_status((AppStatus.UNINSTALLED.value,))
        if filter == "corrupted":
            return self._with_status((AppStatus.CORRUPTED.value,))
        if filter == "disabled":
            return self._with_status((AppStatus.DISABLED.value,))
        if filter == "failed":
            return self._with_status((AppStatus.FAILED.value,))
        if filter == "have_status":
            return list_intersect(self.local_apps(), self._have_status())
        if filter == "missing_status":
            return list_subtract(self.local_apps(), self._have_status())
        if filter == "cpu_installable":
            return self._cpu_installable()
        if filter == "package":
            return self._of_type(AppType.PACKAGE)
        if filter == "standard":
            return self._of_type(AppType.STANDARD)
        if filter == "hidden":
            return self.apps_in_category(HIDDEN_CATEGORY)
        if filter == "visible":
            return list_subtract(self.local_apps(), self.apps_in_category(HIDDEN_CATEGORY))

        if filter in self.categories():
            return self.apps_in_category(filter)
        raise ValueError(f"Unknown list filter or category: {filter}")

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def _prune_overrides(self) -> None:
        """Drop override lines for apps whose folder is gone."""
        overrides = self.config.category_overrides_file
        if not overrides.is_file():
            return
        lines = overrides.read_text(encoding="utf-8").splitlines()
        kept = []
        for line in lines:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                kept.append(line)
                continue
            name = stripped.split("|", 1)[0].strip()
            if self.config.app_dir(name).is_dir():
                kept.append(line)
            else:
                logger.info(f"Removing category override for missing app {name}")
        if len(kept) != len(lines):
            atomic_write_lines(overrides, kept)

    def read_categories(self) -> Dict[str, str]:
        """
        Map every app to its category.

        User overrides win over data/categories/*. Local apps with no
        category map to an empty string.
        """
        self._prune_overrides()
        result: Dict[str, str] = {}

        overrides = self.config.category_overrides_file
        if overrides.is_file():
            for line in overrides.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line or line.startswith("#") or "|" not in line:
                    continue
                name, category = (part.strip() for part in line.split("|", 1))
                if name and name not in result:
                    result[name] = category

        categories_dir = self.config.categories_dir
        if categories_dir.is_dir():
            for category_file in sorted(categories_dir.iterdir()):
                if not category_file.is_file():
                    continue
                for name in category_file.read_text(encoding="utf-8").splitlines():
                    name = name.strip()
                    if name and name not in result:
                        result[name] = category_file.name

        for app in self.local_apps():
            result.setdefault(app, "")
        return result

    def categories(self) -> List[str]:
        return sorted({c for c in self.read_categories().values() if c})

    def apps_in_category(self, category: str) -> List[str]:
        return sorted(app for app, c in self.read_categories().items() if c == category)

    def has_category(self, app: str) -> bool:
        return bool(self.read_categories().get(app))

    def set_category(self, app: str, category: str) -> None:
        """Record a user override for an app's category."""
        if not self.exists(app):
            raise AppNotFoundError(app)
        write_category_override(app, category, self.config)
        logger.info(f"Moved {app} to category {category or '(none)'}")

    def add_category_override(self, app: str, category: str) -> None:
        atomic_append_line(self.config.category_overrides_file, f"{app}|{category}")

    # -------------------------------------------------------------------------
    # Per-app details
    # -------------------------------------------------------------------------

    def script_name(self, app: str, config: Optional[StoreConfig] = None) -> str:
        """
        Which install scripts an app has.

        Returns one of 'install-32', 'install-64', 'install-32 install-64',
        'install' or '' (package app or nothing). Arch scripts win over a
        plain install script.
        """
        app_dir = (config or self.config).app_dir(app)
        has32 = (app_dir / "install-32").is_file()
        has64 = (app_dir / "install-64").is_file()
        if has32 and has64:
            return "install-32 install-64"
        if has32:
            return "install-32"
        if has64:
            return "install-64"
        if (app_dir / "install").is_file():
            return "install"
        return ""

    def script_name_cpu(self, app: str, config: Optional[StoreConfig] = None) -> str:
        """
        The install script to run on this CPU, 'packages' for package apps,
        or '' if the app cannot be installed here.

        64-bit systems prefer install-64 and may fall back to install-32.
        32-bit systems never run install-64.
        """
        app_dir = (config or self.config).app_dir(app)
        if (app_dir / "packages").is_file():
            return "packages"
        if self.bits == 64:
            candidates = ("install-64", "install", "install-32")
        else:
            candidates = ("install-32", "install")
        for candidate in candidates:
            if (app_dir / candidate).is_file():
                return candidate
        return ""

    def is_supported(self, app: str) -> Tuple[bool, str]:
        """Whether the app can run on this CPU, with a message when it can't."""
        if self.script_name_cpu(app):
            return True, ""
        scripts = self.script_name(app)
        if scripts == "install-64" and self.bits == 32:
            return False, f"{app} is only available for 64-bit systems."
        return False, f"{app} has no install script for this system."

    def get(self, app: str) -> AppInfo:
        """
        Collect everything the catalog knows about an app.

        Raises:
            AppNotFoundError: app folder does not exist
        """
        kind = app_type(app, self.config)
        app_dir = self.config.app_dir(app)
        icon = None
        for name in ("icon-64.png", "icon-24.png"):
            if (app_dir / name).is_file():
                icon = app_dir / name
                break
        return AppInfo(
            name=app,
            app_type=kind,
            description=_read_text(app_dir / "description"),
            website=_read_text(app_dir / "website"),
            credits=_read_text(app_dir / "credits"),
            category=self.read_categories().get(app, ""),
            status=get_app_status(app, self.config),
            icon=icon,
            scripts=sorted(
                p.name for p in app_dir.iterdir()
                if p.is_file() and (p.name.startswith("install") or p.name in ("uninstall", "update"))
            ),
        )

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def search(self, query: str, files: Iterable[str] = DEFAULT_SEARCH_FILES) -> List[str]:
        """
        Case-insensitive search over app names and metadata files.

        Hidden apps and apps that cannot run on this CPU are left out.
        Apps whose name starts with the query come first, then apps whose
        name contains it, then the rest, each alphabetically.
        """
        needle = query.lower()
        files = tuple(files)
        matches = set()
        for app in self.local_apps():
            if needle in app.lower():
                matches.add(app)
                continue
            app_dir = self.config.app_dir(app)
            for name in files:
                if needle in _read_text(app_dir / name).lower():
                    matches.add(app)
                    break

        candidates = list_intersect(matches, self._cpu_installable())
        candidates = list_subtract(candidates, self.apps_in_category(HIDDEN_CATEGORY))

        starts = [a for a in candidates if a.lower().startswith(needle)]
        contains = [a for a in candidates if needle in a.lower() and a not in starts]
        rest = [a for a in candidates if a not in starts and a not in contains]
        return starts + contains + rest

    # -------------------------------------------------------------------------
    # Update comparison
    # -------------------------------------------------------------------------

    def will_reinstall(self, app: str, backend: PackageManager) -> bool:
        """
        Whether refreshing an installed app from the update clone needs a
        reinstall rather than a plain file copy.
        """
        if get_app_status(app, self.config) != AppStatus.INSTALLED.value:
            return False

        online = self.online_config()
        if not online.app_dir(app).is_dir():
            return False

        local_script = self.script_name_cpu(app)
        new_script = self.script_name_cpu(app, online)
        if not new_script:
            return False

        if (local_script == "packages") != (new_script == "packages"):
            return True

        if new_script == "packages":
            local_pkgs = pkgapp_packages_required(app, backend, self.config)
            new_pkgs = pkgapp_packages_required(app, backend, online)
            return local_pkgs != new_pkgs

        local_file = self.config.app_dir(app) / local_script
        new_file = online.app_dir(app) / new_script
        if not local_file.is_file():
            return True
        return not filecmp.cmp(local_file, new_file, shallow=False)
