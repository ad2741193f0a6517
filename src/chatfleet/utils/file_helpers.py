"""Shared file utilities for chatfleet.

Provides the small set of filesystem helpers used around credential
directories:
- ensure_private_dir: Create a directory restricted to the owner
- set_secure_permissions: Owner-only file/directory permissions
- remove_directory: Delete a credential directory tree
"""

from __future__ import annotations

__all__ = [
    "ensure_private_dir",
    "remove_directory",
    "set_secure_permissions",
]

import shutil
import sys
from pathlib import Path


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Set secure permissions on file or directory.

    Sets permissions to restrict access to owner only:
    - Directory: 0o700 (rwx------)
    - File: 0o600 (rw-------)

    Does nothing on Windows. Silently ignores permission errors
    (some systems don't allow permission changes).

    Args:
        path: Path to file or directory.
        is_directory: If True, use directory permissions (0o700).
    """
    if sys.platform == "win32":
        return

    try:
        path.chmod(0o700 if is_directory else 0o600)
    except OSError:
        pass  # Permission changes might fail on some systems


def ensure_private_dir(path: Path) -> Path:
    """Create path (and parents) if missing and restrict it to the owner.

    Returns:
        Path: The same path, for chaining.
    """
    path.mkdir(parents=True, exist_ok=True)
    set_secure_permissions(path, is_directory=True)
    return path


def remove_directory(path: Path) -> bool:
    """Delete a directory tree.

    Args:
        path: Directory to delete.

    Returns:
        True if something was deleted, False if the path did not exist.

    Raises:
        OSError: If the tree exists but cannot be deleted.
    """
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True
