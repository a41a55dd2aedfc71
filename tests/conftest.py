from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from skinsmith.config import settings
from skinsmith.constants import PACKER_REQUIRED_LIBRARIES
from skinsmith.main import app
from skinsmith.routers import deps
from skinsmith.services.conflicts import ConflictEngine, ConflictResolver
from skinsmith.services.priority_service import PriorityService
from skinsmith.sources.fetcher import ResilientFetcher
from skinsmith.sources.ranker import SourceRanker
from skinsmith.tools.runner import CommandResult


@dataclass
class RunnerCall:
    executable: Path
    args: list[str]
    cwd: Path | None


class FakeRunner:
    """CommandRunner double: records calls and runs ``action`` to fake the tool's output."""

    def __init__(self) -> None:
        self.calls: list[RunnerCall] = []
        self.action: Callable[[list[str], Path | None], None] | None = None
        self.exit_code = 0
        self.stdout = ""
        self.stderr = ""

    async def run(
        self,
        executable: Path,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float,
        cancel_event=None,
    ) -> CommandResult:
        self.calls.append(RunnerCall(executable, list(args), cwd))
        if self.action is not None:
            self.action(list(args), cwd)
        return CommandResult(self.exit_code, self.stdout, self.stderr)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    data = tmp_path / "appdata"
    monkeypatch.setattr(settings, "data_dir", data)
    monkeypatch.setattr(settings, "cache_dir", data / "cache")
    monkeypatch.setattr(settings, "work_dir", data / "work")
    monkeypatch.setattr(settings, "tools_dir", data / "tools")
    return settings


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def tools_dir(tmp_path) -> Path:
    """Tool directory holding fake unpacker and packer executables plus packer libraries."""
    directory = tmp_path / "tools"
    directory.mkdir()
    for name in ("HLExtract.exe", "vpk.exe", *PACKER_REQUIRED_LIBRARIES):
        (directory / name).write_bytes(b"MZ")
    return directory


@pytest.fixture
def client():
    ranker = SourceRanker(["https://a.example", "https://b.example"])
    fetcher = ResilientFetcher(ranker, cache_root=settings.cache_dir)
    priorities = PriorityService()
    engine = ConflictEngine()
    resolver = ConflictResolver()

    app.dependency_overrides[deps.get_ranker] = lambda: ranker
    app.dependency_overrides[deps.get_fetcher] = lambda: fetcher
    app.dependency_overrides[deps.get_priority_service] = lambda: priorities
    app.dependency_overrides[deps.get_engine] = lambda: engine
    app.dependency_overrides[deps.get_resolver] = lambda: resolver
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
    app.dependency_overrides.clear()
