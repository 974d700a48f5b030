"""
Atomic file operations for the pi-apps data directory.

Status files, category overrides and hash lists are rewritten with the
write-to-temp-then-rename pattern so a crash never leaves a half-written file.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Union


def _fsync_dir(directory: Path) -> None:
    try:
        dir_fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError):
        # O_DIRECTORY not available on all platforms
        pass


def atomic_write_bytes(path: Union[str, Path], content: bytes, mode: int = 0o644) -> None:
    """
    Write binary content to file atomically.

    Args:
        path: Destination file path
        content: Binary content to write
        mode: File permissions (default 0o644)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory keeps the rename on one filesystem
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
        _fsync_dir(path.parent)

    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: Union[str, Path], content: str, mode: int = 0o644) -> None:
    """Write text content to file atomically (UTF-8)."""
    atomic_write_bytes(path, content.encode('utf-8'), mode)


def atomic_write_lines(path: Union[str, Path], lines: Iterable[str], mode: int = 0o644) -> None:
    """
    Write one entry per line, newline-terminated.

    An empty iterable produces an empty file rather than removing it.
    """
    text = ''.join(f"{line}\n" for line in lines)
    atomic_write_text(path, text, mode)


def atomic_append_line(path: Union[str, Path], line: str) -> None:
    """
    Append a single line to a file by rewriting it atomically.

    Only meant for the small list files under data/.
    """
    path = Path(path)
    existing = path.read_text(encoding='utf-8') if path.exists() else ''
    if existing and not existing.endswith('\n'):
        existing += '\n'
    atomic_write_text(path, f"{existing}{line}\n")


def safe_backup(path: Union[str, Path], backup_dir: Union[str, Path]) -> Path:
    """
    Copy a file into backup_dir before it is overwritten.

    Args:
        path: File to backup
        backup_dir: Directory that receives the copy

    Returns:
        Path to the backup copy
    """
    path = Path(path)
    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    backup_path = backup_dir / path.name

    if path.exists():
        shutil.copy2(path, backup_path)

    return backup_path
