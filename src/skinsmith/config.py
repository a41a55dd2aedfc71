import os
import sys
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONTENT_SOURCES = [
    "https://cdn.skinsmith.dev",
    "https://cdn.jsdelivr.net/gh/skinsmith/content@main",
    "https://raw.githubusercontent.com/skinsmith/content/main",
]


def _default_data_dir() -> Path:
    if env := os.environ.get("SKS_DATA_DIR"):
        return Path(env)
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "com.skinsmith.app"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SKS_",
        extra="ignore",
    )

    data_dir: Path = Path("")
    cache_dir: Path = Path("")
    work_dir: Path = Path("")
    tools_dir: Path = Path("")
    unpacker_exe: str = "HLExtract.exe"
    packer_exe: str = "vpk.exe"
    mods_dir_name: str = "_skinsmith"

    content_sources: list[str] = DEFAULT_CONTENT_SOURCES
    base_asset_path: str = "Assets/Original.zip"
    fetch_overall_timeout: float = 600.0
    fetch_stall_timeout: float = 30.0
    fetch_stall_warning: float = 10.0
    fetch_retries_per_source: int = 2
    fetch_retry_initial_delay: float = 1.0
    fetch_min_bytes: int = 1024

    extract_timeout: float = 600.0
    recompile_timeout: float = 300.0

    host: str = "127.0.0.1"
    port: int = 8426

    @model_validator(mode="after")
    def _resolve_data_paths(self) -> "Settings":
        if self.data_dir == Path(""):
            self.data_dir = _default_data_dir()
        if self.cache_dir == Path(""):
            self.cache_dir = self.data_dir / "cache"
        if self.work_dir == Path(""):
            self.work_dir = self.data_dir / "work"
        if self.tools_dir == Path(""):
            self.tools_dir = self.data_dir / "tools"
        return self

    @property
    def unpacker_path(self) -> Path:
        return self.tools_dir / self.unpacker_exe

    @property
    def packer_path(self) -> Path:
        return self.tools_dir / self.packer_exe


settings = Settings()
