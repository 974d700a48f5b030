"""
Pi-Apps Utility Modules

Crash-safe writes for the flat files under the pi-apps data directory.
"""

from .atomic_write import (
    atomic_write_text,
    atomic_write_bytes,
    atomic_write_lines,
    atomic_append_line,
    safe_backup,
)

__all__ = [
    "atomic_write_text",
    "atomic_write_bytes",
    "atomic_write_lines",
    "atomic_append_line",
    "safe_backup",
]
