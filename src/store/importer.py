"""
App Importer - Bring apps in from zip files, folders or GitHub pull requests.

Imported apps land in apps/<name>, replacing an existing app of the same
name. Apps without a category are filed under "Imported".
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Optional, List, Tuple
from urllib.parse import urlparse

import httpx

from common.decorators import retry
from common.exceptions import (
    AppImportError, DownloadError, InvalidAppStructureError, MissingConfigError,
)

from .app_catalog import AppCatalog
from .config import StoreConfig, get_config

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
IMPORTED_CATEGORY = "Imported"
INSTALL_FILES = ("install", "install-32", "install-64", "packages")


def validate_app_structure(app_dir: Path) -> None:
    """
    Check that a folder looks like an app.

    Raises:
        InvalidAppStructureError: listing every missing piece
    """
    app_dir = Path(app_dir)
    missing = []
    if not any((app_dir / icon).is_file() for icon in ("icon-24.png", "icon-64.png")):
        missing.append("icon-24.png or icon-64.png")
    if not any((app_dir / f).is_file() for f in INSTALL_FILES):
        missing.append("install script or packages file")
    if not (app_dir / "description").is_file():
        missing.append("description")
    if missing:
        raise InvalidAppStructureError(str(app_dir), missing)


def extract_zip(zip_path: Path, dest: Path) -> None:
    """Extract a zip, refusing members that would land outside dest."""
    dest = Path(dest).resolve()
    with zipfile.ZipFile(zip_path) as zf:
        for member in zf.infolist():
            target = (dest / member.filename).resolve()
            if target != dest and dest not in target.parents:
                raise AppImportError(
                    f"Refusing to extract '{member.filename}' outside the target folder",
                    source=str(zip_path),
                )
        zf.extractall(dest)


def parse_pull_request_url(url: str) -> Tuple[str, str, int]:
    """
    Split https://github.com/<owner>/<repo>/pull/<number> into its parts.

    Raises:
        AppImportError: not a pull request URL
    """
    parsed = urlparse(url.strip())
    parts = [p for p in parsed.path.split("/") if p]
    if "github.com" not in parsed.netloc or len(parts) < 4 or parts[2] != "pull":
        raise AppImportError(f"Not a GitHub pull request URL: {url}", source=url)
    try:
        number = int(parts[3])
    except ValueError:
        raise AppImportError(f"Invalid pull request number in {url}", source=url)
    return parts[0], parts[1], number


def get_git_url(config: Optional[StoreConfig] = None) -> Tuple[str, str]:
    """
    Account and repository name of the upstream repo from etc/git_url.

    Raises:
        MissingConfigError: etc/git_url is missing or empty
    """
    config = config or get_config()
    path = config.git_url_file
    url = path.read_text(encoding="utf-8").strip() if path.is_file() else ""
    if not url:
        raise MissingConfigError(str(path))
    parts = [p for p in urlparse(url).path.split("/") if p]
    if len(parts) < 2:
        raise MissingConfigError(str(path))
    repo = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
    return parts[0], repo


class AppImporter:
    """
    Imports apps into a pi-apps directory.

    Args:
        config: Store configuration (default: from environment)
        client: httpx client for downloads; one is created and owned if omitted
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
    ):
        self.config = config or get_config()
        self.catalog = AppCatalog(self.config)
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": "pi-apps"},
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AppImporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Network
    # -------------------------------------------------------------------------

    @retry(attempts=3, delay=1.0)
    def _get(self, url: str) -> httpx.Response:
        return self._client.get(url)

    def download(self, url: str, dest: Path) -> Path:
        """
        Download url to dest.

        Raises:
            DownloadError: network failure or non-2xx response
        """
        try:
            response = self._get(url)
        except httpx.HTTPError as e:
            raise DownloadError(url, str(e))
        if response.status_code >= 400:
            raise DownloadError(url, f"HTTP {response.status_code}")
        dest.write_bytes(response.content)
        logger.debug(f"Downloaded {url} ({len(response.content)} bytes)")
        return dest

    # -------------------------------------------------------------------------
    # Install into apps/
    # -------------------------------------------------------------------------

    def _replace_app_dir(self, source: Path, target: Path) -> None:
        if target.exists():
            logger.info(f"Replacing existing app {target.name}")
            shutil.rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, target)

    def _install_app_dir(self, source: Path, name: str) -> str:
        validate_app_structure(source)
        target = self.config.app_dir(name)
        source_real, target_real = source.resolve(), target.resolve()
        if source_real == target_real:
            logger.info(f"{name} is already in the apps folder")
        elif target_real in source_real.parents:
            # source would be deleted along with the old app folder
            with tempfile.TemporaryDirectory(prefix="pi-apps-import-") as tmp:
                staged = Path(tmp) / name
                shutil.copytree(source, staged)
                self._replace_app_dir(staged, target)
        else:
            self._replace_app_dir(source, target)

        if not self.catalog.has_category(name):
            self.catalog.add_category_override(name, IMPORTED_CATEGORY)
        logger.info(f"Imported {name}")
        return name

    def import_directory(self, path: Path, name: Optional[str] = None) -> str:
        """Copy an app folder into apps/. Returns the app name."""
        path = Path(path)
        if not path.is_dir():
            raise AppImportError(f"Not a folder: {path}", source=str(path))
        return self._install_app_dir(path, name or path.name)

    def import_zip(self, zip_path: Path) -> str:
        """
        Import an app from a zip file.

        A zip with a single top-level folder takes that folder's name;
        otherwise the app is named after the zip file.
        """
        zip_path = Path(zip_path)
        if not zip_path.is_file():
            raise AppImportError(f"Zip file not found: {zip_path}", source=str(zip_path))
        with tempfile.TemporaryDirectory(prefix="pi-apps-import-") as tmp:
            tmp_dir = Path(tmp)
            try:
                extract_zip(zip_path, tmp_dir)
            except zipfile.BadZipFile as e:
                raise AppImportError("Invalid zip file", source=str(zip_path), cause=e)

            entries = list(tmp_dir.iterdir())
            if len(entries) == 1 and entries[0].is_dir():
                return self._install_app_dir(entries[0], entries[0].name)
            return self._install_app_dir(tmp_dir, zip_path.stem)

    def import_zip_url(self, url: str) -> str:
        """Download a zip and import it."""
        name = Path(urlparse(url).path).name or "app.zip"
        with tempfile.TemporaryDirectory(prefix="pi-apps-download-") as tmp:
            zip_path = self.download(url, Path(tmp) / name)
            return self.import_zip(zip_path)

    def import_pull_request(self, url: str) -> List[str]:
        """
        Import every valid app touched by a GitHub pull request.

        Returns:
            Names of the imported apps.
        """
        owner, repo, number = parse_pull_request_url(url)
        api_url = f"{GITHUB_API}/repos/{owner}/{repo}/pulls/{number}"
        try:
            response = self._get(api_url)
        except httpx.HTTPError as e:
            raise DownloadError(api_url, str(e))
        if response.status_code != 200:
            raise AppImportError(
                f"GitHub API returned HTTP {response.status_code} for pull request #{number}",
                source=url,
            )
        head = response.json().get("head") or {}
        full_name = (head.get("repo") or {}).get("full_name")
        sha = head.get("sha")
        if not full_name or not sha:
            raise AppImportError("Pull request has no head repository", source=url)

        archive_url = f"https://github.com/{full_name}/archive/{sha}.zip"
        imported = []
        with tempfile.TemporaryDirectory(prefix="pi-apps-pr-") as tmp:
            tmp_dir = Path(tmp)
            archive = self.download(archive_url, tmp_dir / "pr.zip")
            extract_dir = tmp_dir / "extract"
            extract_dir.mkdir()
            extract_zip(archive, extract_dir)

            apps_dirs = sorted(extract_dir.glob("*/apps"))
            if not apps_dirs:
                raise AppImportError("No apps folder found in pull request", source=url)

            for app_dir in sorted(p for p in apps_dirs[0].iterdir() if p.is_dir()):
                try:
                    imported.append(self._install_app_dir(app_dir, app_dir.name))
                except InvalidAppStructureError as e:
                    logger.warning(f"Skipping {app_dir.name}: {e.message}")

        if not imported:
            raise AppImportError("no valid apps found in PR", source=url)
        return imported

    def import_source(self, source: str) -> List[str]:
        """Import from a PR URL, zip URL, zip file or folder."""
        if source.startswith(("http://", "https://")):
            if "github.com" in source and "/pull/" in source:
                return self.import_pull_request(source)
            return [self.import_zip_url(source)]
        path = Path(source).expanduser()
        if path.is_dir():
            return [self.import_directory(path)]
        if path.suffix.lower() == ".zip":
            return [self.import_zip(path)]
        raise AppImportError(f"Don't know how to import '{source}'", source=source)
