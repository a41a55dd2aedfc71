"""Path helpers for target installations.

Installation paths arrive from the UI in Windows format (e.g. ``G:\\SteamLibrary\\...``).
When the backend runs on WSL, these must be converted to ``/mnt/g/SteamLibrary/...``.
"""

import os
import re
import sys
from pathlib import Path, PurePosixPath

from skinsmith.config import settings
from skinsmith.constants import LIVE_ARCHIVE_NAME, PRIVATE_DATA_DIR_NAME


def to_native_path(windows_path: str) -> str:
    """Convert a Windows path to a native OS path.

    On Linux (WSL): ``G:\\Foo\\Bar`` → ``/mnt/g/Foo/Bar``
    On Windows: returns the path unchanged (with normalized separators).
    """
    if not windows_path:
        return windows_path

    if sys.platform == "linux":
        m = re.match(r"^([A-Za-z]):[/\\]", windows_path)
        if m:
            drive = m.group(1).lower()
            rest = windows_path[3:].replace("\\", "/")
            return f"/mnt/{drive}/{rest}"
        if windows_path.startswith("/"):
            return windows_path

    return os.path.normpath(windows_path)


def normalize_relative(path: str) -> str:
    """Forward-slash, lower-case form used to compare mod file paths."""
    return path.replace("\\", "/").strip("/").lower()


def safe_relative(path: str) -> PurePosixPath | None:
    """Relative POSIX form of *path*, or ``None`` if it could escape its root.

    Absolute paths, drive-qualified paths and ``..`` components are refused.
    """
    rel = PurePosixPath(path.replace("\\", "/"))
    if rel.is_absolute() or not rel.parts or ".." in rel.parts or ":" in rel.parts[0]:
        return None
    return rel


def mods_dir(target_path: str | Path) -> Path:
    """Directory inside the installation that holds the live content archive."""
    return Path(to_native_path(str(target_path))) / "game" / settings.mods_dir_name


def private_data_dir(target_path: str | Path) -> Path:
    return mods_dir(target_path) / PRIVATE_DATA_DIR_NAME


def live_archive_path(target_path: str | Path) -> Path:
    return mods_dir(target_path) / LIVE_ARCHIVE_NAME
