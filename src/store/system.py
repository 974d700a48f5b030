"""
System checks - CPU bitness and internet connectivity.
"""

from __future__ import annotations

import logging
import platform
import subprocess
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

ARCH_64 = ("aarch64", "arm64", "x86_64", "amd64", "riscv64")
ARCH_32 = ("armv7l", "armv6l", "i386", "i686", "armhf", "riscv32")


def bits_for_machine(machine: str) -> Optional[int]:
    """Map a `uname -m` style string to 32 or 64, or None if unknown."""
    machine = machine.strip().lower()
    if machine in ARCH_64:
        return 64
    if machine in ARCH_32:
        return 32
    return None


def system_bits() -> int:
    """
    Userland bitness: `getconf LONG_BIT`, then the machine name, default 64.

    A 64-bit kernel with a 32-bit userland reports 32 here, which is what
    decides whether install-32 or install-64 is run.
    """
    try:
        result = subprocess.run(
            ["getconf", "LONG_BIT"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0 and result.stdout.strip() in ("32", "64"):
            return int(result.stdout.strip())
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"getconf LONG_BIT failed: {e}")

    machine = platform.machine()
    bits = bits_for_machine(machine)
    if bits is None and machine:
        bits = 64 if "64" in machine else 32
    return bits or 64


def check_internet(
    url: str = "https://github.com",
    client: Optional[httpx.Client] = None,
    timeout: float = 10.0,
) -> bool:
    """Return True if url answers a HEAD request."""
    own_client = client is None
    client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        response = client.head(url)
        return response.status_code < 500
    except httpx.HTTPError as e:
        logger.debug(f"Connectivity check to {url} failed: {e}")
        return False
    finally:
        if own_client:
            client.close()
