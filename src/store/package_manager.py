"""
Package Manager - Thin wrappers around apt, pacman and apk.

Only answers "is it installed", "is it available" and builds the argv for
installing or removing packages. Repository editing is not handled here.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import Optional, List

from common.exceptions import PackageManagerError

logger = logging.getLogger(__name__)

# Non-systemd distros satisfy "init" through one of these
INIT_PACKAGES = ["openrc", "systemd", "dinit", "s6", "runit", "busybox"]


def _english_env() -> dict:
    env = os.environ.copy()
    env["LANG"] = "en_US.UTF-8"
    env["LC_ALL"] = "en_US.UTF-8"
    return env


class PackageManager(ABC):
    """Base class for package manager backends."""

    name: str = ""

    @abstractmethod
    def install_command(self, packages: List[str]) -> List[str]:
        """Argv that installs the given packages non-interactively."""
        pass

    @abstractmethod
    def remove_command(self, packages: List[str]) -> List[str]:
        """Argv that removes the given packages and their orphans."""
        pass

    @abstractmethod
    def package_installed(self, package: str) -> bool:
        """Check if a package is installed."""
        pass

    @abstractmethod
    def package_available(self, package: str) -> bool:
        """Check if a package can be installed from a configured repository."""
        pass

    def _run_ok(self, cmd: List[str], timeout: int = 60) -> bool:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=_english_env(),
            )
            return result.returncode == 0
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"{cmd[0]} check failed: {e}")
            return False

    def _run_output(self, cmd: List[str], timeout: int = 60) -> Optional[str]:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=_english_env(),
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"{cmd[0]} query failed: {e}")
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    def _init_available(self) -> bool:
        return any(self.package_installed(p) for p in INIT_PACKAGES)


class AptManager(PackageManager):
    """Debian, Ubuntu, Raspberry Pi OS."""

    name = "apt"

    def __init__(self, dpkg_arch: Optional[str] = None):
        self._dpkg_arch = dpkg_arch

    @property
    def dpkg_arch(self) -> str:
        if self._dpkg_arch is None:
            output = self._run_output(["dpkg", "--print-architecture"])
            self._dpkg_arch = output.strip() if output else ""
        return self._dpkg_arch

    def install_command(self, packages: List[str]) -> List[str]:
        return ["sudo", "apt", "install", "-yf"] + packages

    def remove_command(self, packages: List[str]) -> List[str]:
        return ["sudo", "apt", "purge", "-y", "--autoremove"] + packages

    def package_installed(self, package: str) -> bool:
        if not package:
            return False
        output = self._run_output(["dpkg", "-s", package])
        if output is None:
            return False
        # dpkg -s succeeds for removed-but-not-purged packages too
        return "Status: install ok installed" in output

    def package_available(self, package: str) -> bool:
        if not package:
            return False
        target = package
        if self.dpkg_arch and ":" not in package:
            target = f"{package}:{self.dpkg_arch}"
        output = self._run_output(["apt-cache", "policy", target])
        if not output:
            return False
        return "Candidate:" in output and "Candidate: (none)" not in output


class PacmanManager(PackageManager):
    """Arch Linux ARM, Manjaro, Artix."""

    name = "pacman"

    def install_command(self, packages: List[str]) -> List[str]:
        return ["sudo", "pacman", "-S", "--noconfirm", "--needed"] + packages

    def remove_command(self, packages: List[str]) -> List[str]:
        return ["sudo", "pacman", "-Rns", "--noconfirm"] + packages

    def package_installed(self, package: str) -> bool:
        if not package:
            return False
        return self._run_ok(["pacman", "-Q", package])

    def package_available(self, package: str) -> bool:
        if not package:
            return False
        if package == "init":
            return self._init_available()
        return self._run_ok(["pacman", "-Si", package])


class ApkManager(PackageManager):
    """Alpine, postmarketOS, Chimera."""

    name = "apk"

    def install_command(self, packages: List[str]) -> List[str]:
        return ["sudo", "apk", "add"] + packages

    def remove_command(self, packages: List[str]) -> List[str]:
        return ["sudo", "apk", "del"] + packages

    def package_installed(self, package: str) -> bool:
        if not package:
            return False
        return self._run_ok(["apk", "info", "-e", package])

    def package_available(self, package: str) -> bool:
        if not package:
            return False
        if package == "init":
            return self._init_available()
        output = self._run_output(["apk", "search", "-x", package])
        return bool(output and output.strip())


_BACKENDS = {
    "apt": AptManager,
    "pacman": PacmanManager,
    "apk": ApkManager,
}


def detect_package_manager() -> Optional[str]:
    """Name of the first supported package manager found on PATH."""
    for name, binary in (("apt", "apt-get"), ("pacman", "pacman"), ("apk", "apk")):
        if shutil.which(binary):
            return name
    return None


def get_package_manager(name: Optional[str] = None) -> PackageManager:
    """
    Create a backend by name, or auto-detect one.

    Raises:
        PackageManagerError: unknown name or nothing detected
    """
    if name is None:
        name = detect_package_manager()
        if name is None:
            raise PackageManagerError("No supported package manager found (apt, pacman or apk)")
        logger.debug(f"Detected package manager: {name}")

    backend = _BACKENDS.get(name)
    if backend is None:
        raise PackageManagerError(f"Unsupported package manager: {name}", manager=name)
    return backend()


def app_to_pkg_name(app: str) -> str:
    """Stable dummy package name for an app, e.g. pi-apps-1a2b3c4d."""
    digest = hashlib.md5(app.encode("utf-8")).hexdigest()
    return f"pi-apps-{digest[:8]}"
