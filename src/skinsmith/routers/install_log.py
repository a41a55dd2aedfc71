"""Read-only view of what the last generation installed."""

from fastapi import APIRouter

from skinsmith.schemas.install_log import InstallationLog
from skinsmith.services.install_log_service import load_log

router = APIRouter(prefix="/install-log", tags=["install-log"])


@router.get("", response_model=InstallationLog)
def get_install_log(target_path: str) -> InstallationLog:
    return load_log(target_path) or InstallationLog()
