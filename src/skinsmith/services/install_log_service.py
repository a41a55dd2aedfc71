"""Persistence for the installation log kept inside the target installation."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from skinsmith.constants import INSTALLATION_LOG_FILE
from skinsmith.schemas.install_log import InstallationLog
from skinsmith.utils.paths import private_data_dir

logger = logging.getLogger(__name__)


def log_path(target_path: str | Path) -> Path:
    return private_data_dir(target_path) / INSTALLATION_LOG_FILE


def load_log(target_path: str | Path) -> InstallationLog | None:
    path = log_path(target_path)
    if not path.is_file():
        return None
    try:
        return InstallationLog.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError, ValueError):
        logger.warning("Installation log %s is unreadable", path, exc_info=True)
        return None


def save_log(target_path: str | Path, log: InstallationLog) -> Path:
    path = log_path(target_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(log.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    return path


def delete_log(target_path: str | Path) -> bool:
    path = log_path(target_path)
    if not path.exists():
        return False
    path.unlink()
    return True
