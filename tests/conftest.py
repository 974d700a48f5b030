"""
Pytest configuration and shared fixtures for Pi-Apps tests.

Builds throwaway pi-apps directories and fakes the package manager.
"""

import os
import pytest
from unittest.mock import MagicMock, patch
from pathlib import Path
from typing import Generator, List, Optional
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from store.config import StoreConfig, reset_config
from store.package_manager import PackageManager


# ============ Environment Fixtures ============

@pytest.fixture
def temp_home(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary home directory for tests."""
    old_home = os.environ.get('HOME')
    os.environ['HOME'] = str(tmp_path)

    (tmp_path / ".config/pi-apps").mkdir(parents=True)

    yield tmp_path

    if old_home:
        os.environ['HOME'] = old_home
    else:
        os.environ.pop('HOME', None)


@pytest.fixture(autouse=True)
def _clean_config():
    """Never let a cached config leak between tests."""
    reset_config()
    yield
    reset_config()


# ============ Pi-Apps Directory Fixtures ============

@pytest.fixture
def pi_apps_dir(tmp_path: Path) -> Path:
    """An empty pi-apps directory with the usual folders."""
    root = tmp_path / "pi-apps"
    for sub in ("apps", "data/status", "data/categories", "logs", "etc"):
        (root / sub).mkdir(parents=True)
    (root / "etc/git_url").write_text("https://github.com/Botspot/pi-apps\n")
    return root


@pytest.fixture
def store_config(pi_apps_dir: Path) -> StoreConfig:
    """Config for pi_apps_dir with apt and no unsupported-app delay."""
    return StoreConfig(
        directory=pi_apps_dir,
        package_manager="apt",
        unsupported_delay=0,
    )


def write_app(
    root: Path,
    name: str,
    install: Optional[str] = None,
    uninstall: Optional[str] = "#!/bin/bash\necho removed\n",
    packages: Optional[str] = None,
    description: str = "A test app\nMore details here.",
    extra: Optional[dict] = None,
) -> Path:
    """Create apps/<name> under root. Returns the app folder."""
    app_dir = root / "apps" / name
    app_dir.mkdir(parents=True, exist_ok=True)
    (app_dir / "description").write_text(description + "\n")
    (app_dir / "icon-64.png").write_bytes(b"\x89PNG")
    if packages is not None:
        (app_dir / "packages").write_text(packages + "\n")
    else:
        (app_dir / "install").write_text(install or "#!/bin/bash\necho installed\n")
        if uninstall is not None:
            (app_dir / "uninstall").write_text(uninstall)
    for filename, content in (extra or {}).items():
        (app_dir / filename).write_text(content)
    return app_dir


@pytest.fixture
def make_app(pi_apps_dir: Path):
    """Factory fixture: make_app("Name", install="...") -> app folder."""
    def _make(name: str, **kwargs) -> Path:
        return write_app(pi_apps_dir, name, **kwargs)
    return _make


class FakeBackend(PackageManager):
    """Package manager that answers from in-memory sets and runs `true`/`false`."""

    name = "apt"

    def __init__(self, available: Optional[List[str]] = None,
                 installed: Optional[List[str]] = None, succeed: bool = True):
        self.available = set(available or [])
        self.installed = set(installed or [])
        self.succeed = succeed
        self.commands: List[List[str]] = []

    def _command(self, verb: str, packages: List[str]) -> List[str]:
        self.commands.append([verb] + list(packages))
        if not self.succeed:
            return ["bash", "-c", "echo 'E: Could not get lock /var/lib/dpkg/lock-frontend'; exit 100"]
        if verb == "install":
            self.installed.update(packages)
        else:
            self.installed.difference_update(packages)
        return ["bash", "-c", f"echo {verb} {' '.join(packages)}"]

    def install_command(self, packages: List[str]) -> List[str]:
        return self._command("install", packages)

    def remove_command(self, packages: List[str]) -> List[str]:
        return self._command("remove", packages)

    def package_installed(self, package: str) -> bool:
        return package in self.installed

    def package_available(self, package: str) -> bool:
        return package in self.available or package in self.installed


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend(available=["vlc", "gimp", "neofetch"])


# ============ Subprocess Fixtures ============

@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for tests."""
    with patch('subprocess.run') as mock_run:
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout="",
            stderr="",
        )
        yield mock_run


# ============ Pytest Configuration ============

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "unit: fast unit tests with no external deps"
    )
    config.addinivalue_line(
        "markers", "integration: tests that run real bash scripts or git"
    )
