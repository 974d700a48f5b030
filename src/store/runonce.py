"""
Runonce - Run a shell snippet only if it has never succeeded before.

Snippets are identified by the sha1 of their text, recorded in
data/runonce_hashes after a successful run.
"""

from __future__ import annotations

import hashlib
import logging
import os
import subprocess
from typing import Optional

from common.exceptions import RunonceError
from utils.atomic_write import atomic_append_line

from .config import StoreConfig, get_config

logger = logging.getLogger(__name__)


def script_hash(script: str) -> str:
    return hashlib.sha1(script.encode("utf-8")).hexdigest()


def has_run(script: str, config: Optional[StoreConfig] = None) -> bool:
    config = config or get_config()
    hashes_file = config.runonce_hashes_file
    if not hashes_file.is_file():
        return False
    digest = script_hash(script)
    return any(
        line.strip() == digest
        for line in hashes_file.read_text(encoding="utf-8").splitlines()
    )


def runonce(script: str, config: Optional[StoreConfig] = None) -> bool:
    """
    Run a snippet with bash unless it has already run successfully.

    Returns:
        True if the snippet ran now, False if it was skipped.

    Raises:
        RunonceError: the snippet exited non-zero (its hash is not recorded)
    """
    config = config or get_config()
    if has_run(script, config):
        logger.debug("runonce: snippet already ran, skipping")
        return False

    env = os.environ.copy()
    env["PI_APPS_DIR"] = str(config.directory)
    result = subprocess.run(["bash", "-c", script], env=env, cwd=str(config.directory))
    if result.returncode != 0:
        raise RunonceError(result.returncode)

    atomic_append_line(config.runonce_hashes_file, script_hash(script))
    logger.info(f"runonce: recorded {script_hash(script)}")
    return True
