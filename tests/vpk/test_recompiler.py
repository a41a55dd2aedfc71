import os
import time

import pytest

from skinsmith.errors import ArtifactNotFoundError, ToolFailedError, ToolMissingError
from skinsmith.vpk.recompiler import ArchiveRecompiler


@pytest.fixture
def source_dir(tmp_path):
    directory = tmp_path / "work" / "tree"
    (directory / "scripts" / "items").mkdir(parents=True)
    (directory / "scripts" / "items" / "items_game.txt").write_text('"items_game" { }')
    return directory


def _recompiler(runner, tools_dir, **kwargs) -> ArchiveRecompiler:
    options = {
        "search_attempts": 2,
        "search_interval": 0.01,
        "ready_attempts": 3,
        "ready_interval": 0.01,
    }
    options.update(kwargs)
    return ArchiveRecompiler(runner, tool_path=tools_dir / "vpk.exe", timeout=30, **options)


class TestPreconditions:
    def test_missing_tool(self, tmp_path, fake_runner, source_dir):
        recompiler = ArchiveRecompiler(fake_runner, tool_path=tmp_path / "vpk.exe", timeout=30)
        with pytest.raises(ToolMissingError, match="Packer not found"):
            recompiler.check_preconditions(source_dir, tmp_path / "build")

    def test_missing_library(self, tmp_path, tools_dir, fake_runner, source_dir):
        (tools_dir / "tier0.dll").unlink()
        with pytest.raises(ToolMissingError, match="tier0.dll"):
            _recompiler(fake_runner, tools_dir).check_preconditions(source_dir, tmp_path / "build")

    def test_empty_source(self, tmp_path, tools_dir, fake_runner):
        empty = tmp_path / "empty"
        empty.mkdir()
        with pytest.raises(ArtifactNotFoundError):
            _recompiler(fake_runner, tools_dir).check_preconditions(empty, tmp_path / "build")

    def test_creates_build_dir(self, tmp_path, tools_dir, fake_runner, source_dir):
        build = tmp_path / "out" / "build"
        _recompiler(fake_runner, tools_dir).check_preconditions(source_dir, build)
        assert build.is_dir()


class TestCandidateDirs:
    def test_priority_order_without_duplicates(self, tmp_path):
        source = tmp_path / "tree"
        dirs = ArchiveRecompiler.candidate_dirs(source, source)
        assert dirs[0] == source
        assert dirs[1] == tmp_path
        assert len(dirs) == len(set(dirs))


class TestRecompile:
    @pytest.mark.asyncio
    async def test_returns_archive_from_build_dir(
        self, tmp_path, tools_dir, fake_runner, source_dir
    ):
        build = tmp_path / "build"

        def pack(args, cwd):
            (cwd / "tree.vpk").write_bytes(b"VPK" * 100)

        fake_runner.action = pack
        archive = await _recompiler(fake_runner, tools_dir).recompile(source_dir, build)

        assert archive == build / "tree.vpk"
        call = fake_runner.calls[0]
        assert call.args == [str(source_dir)]
        assert call.cwd == build

    @pytest.mark.asyncio
    async def test_finds_archive_next_to_source(self, tmp_path, tools_dir, fake_runner, source_dir):
        def pack(args, cwd):
            (source_dir.parent / "tree.vpk").write_bytes(b"VPK" * 100)

        fake_runner.action = pack
        archive = await _recompiler(fake_runner, tools_dir).recompile(
            source_dir, tmp_path / "build"
        )
        assert archive == source_dir.parent / "tree.vpk"

    @pytest.mark.asyncio
    async def test_stale_archive_ignored(self, tmp_path, tools_dir, fake_runner, source_dir):
        build = tmp_path / "build"
        build.mkdir()
        stale = build / "old.vpk"
        stale.write_bytes(b"VPK")
        an_hour_ago = time.time() - 3600
        os.utime(stale, (an_hour_ago, an_hour_ago))

        with pytest.raises(ArtifactNotFoundError, match="no new archive"):
            await _recompiler(fake_runner, tools_dir).recompile(source_dir, build)

    @pytest.mark.asyncio
    async def test_newest_archive_wins(self, tmp_path, tools_dir, fake_runner, source_dir):
        build = tmp_path / "build"

        def pack(args, cwd):
            older = cwd / "a.vpk"
            older.write_bytes(b"A" * 10)
            earlier = time.time() - 1
            os.utime(older, (earlier, earlier))
            (cwd / "b.vpk").write_bytes(b"B" * 10)

        fake_runner.action = pack
        archive = await _recompiler(fake_runner, tools_dir).recompile(source_dir, build)
        assert archive.name == "b.vpk"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path, tools_dir, fake_runner, source_dir):
        fake_runner.exit_code = 1
        fake_runner.stderr = "ERROR: cannot open tier0.dll"
        with pytest.raises(ToolFailedError, match="cannot open tier0.dll") as exc_info:
            await _recompiler(fake_runner, tools_dir).recompile(source_dir, tmp_path / "build")
        assert exc_info.value.exit_code == 1
