"""
App Scaffolder - Creates the skeleton of a new app from jinja2 templates.

Templates are looked up in order:
1. store/templates/ (shipped with the package)
2. ~/.config/pi-apps/templates (user overrides)
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional, List, Dict

from jinja2 import (
    ChoiceLoader, Environment, FileSystemLoader, TemplateError as JinjaTemplateError,
    TemplateNotFound,
)

from common.exceptions import AppExistsError, TemplateNotFoundError, TemplateRenderError

from .app_status import AppType
from .config import StoreConfig, get_config

logger = logging.getLogger(__name__)

# compat -> install scripts to create
COMPAT_SCRIPTS: Dict[str, List[str]] = {
    "universal": ["install"],
    "32": ["install-32"],
    "64": ["install-64"],
    "32-and-64": ["install-32", "install-64"],
}


class TemplateLoader:
    """Loads app templates from the package and user template folders."""

    TEMPLATE_PATHS = [
        Path(__file__).parent / "templates",
        Path.home() / ".config/pi-apps/templates",
    ]

    def __init__(self, additional_paths: Optional[List[Path]] = None):
        self._paths = list(self.TEMPLATE_PATHS)
        if additional_paths:
            self._paths = list(additional_paths) + self._paths
        self._env = self._create_environment()

    def _create_environment(self) -> Environment:
        loaders = []
        for path in self._paths:
            if path.is_dir():
                loaders.append(FileSystemLoader(str(path)))
                logger.debug(f"Added template path: {path}")

        return Environment(
            loader=ChoiceLoader(loaders),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, name: str, /, **variables) -> str:
        """
        Render a template.

        Raises:
            TemplateNotFoundError: no template with that name
            TemplateRenderError: the template failed to render
        """
        try:
            template = self._env.get_template(name)
        except TemplateNotFound:
            raise TemplateNotFoundError(name)
        try:
            return template.render(**variables)
        except JinjaTemplateError as e:
            raise TemplateRenderError(name, str(e))


class AppScaffolder:
    """Writes a new app folder under apps/."""

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        loader: Optional[TemplateLoader] = None,
    ):
        self.config = config or get_config()
        self.loader = loader or TemplateLoader()

    def create(
        self,
        name: str,
        description: str,
        website: str = "",
        credits: str = "",
        kind: str = "standard",
        packages: Optional[List[str]] = None,
        compat: str = "universal",
        icon: Optional[Path] = None,
        version: str = "",
    ) -> Path:
        """
        Create a new app.

        Args:
            name: App folder name
            description: First line is the summary shown in app lists
            website: Project website
            credits: Who made the app and who packaged it
            kind: "standard" (install scripts) or "package" (packages file)
            packages: Packages for package apps, or to pre-fill install scripts
            compat: "universal", "32", "64" or "32-and-64"
            icon: Image copied to icon-64.png and icon-24.png
            version: Upstream version, written as version=... at the top of install scripts

        Returns:
            Path of the new app folder.

        Raises:
            ValueError: bad name, kind or compat, or a package app without packages
            AppExistsError: the app folder already exists
        """
        name = name.strip()
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid app name: {name!r}")
        kind = AppType(kind)
        if kind == AppType.STANDARD and compat not in COMPAT_SCRIPTS:
            raise ValueError(f"Unknown compatibility '{compat}'")
        if kind == AppType.PACKAGE and not packages:
            raise ValueError("Package apps need at least one package")

        app_dir = self.config.app_dir(name)
        if app_dir.exists():
            raise AppExistsError(name)

        variables = {
            "name": name,
            "description": description,
            "website": website,
            "packages": packages or [],
            "version": version.strip(),
        }
        files: Dict[str, str] = {
            "description": self.loader.render("description.j2", **variables),
        }
        if kind == AppType.PACKAGE:
            files["packages"] = self.loader.render("packages.j2", **variables)
        else:
            install = self.loader.render("install.sh.j2", **variables)
            for script in COMPAT_SCRIPTS[compat]:
                files[script] = install
            files["uninstall"] = self.loader.render("uninstall.sh.j2", **variables)

        app_dir.mkdir(parents=True)
        for filename, content in files.items():
            path = app_dir / filename
            path.write_text(content, encoding="utf-8")
            if filename.startswith(("install", "uninstall")):
                path.chmod(0o755)
        if website:
            (app_dir / "website").write_text(website.strip() + "\n", encoding="utf-8")
        if credits:
            (app_dir / "credits").write_text(credits.strip() + "\n", encoding="utf-8")
        if icon is not None:
            for icon_name in ("icon-64.png", "icon-24.png"):
                shutil.copyfile(icon, app_dir / icon_name)

        logger.info(f"Created {kind.value} app {name} in {app_dir}")
        return app_dir
