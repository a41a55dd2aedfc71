import zipfile

import pytest

from skinsmith.errors import CorruptArtifactError
from skinsmith.services.base_content import BaseContentProvider
from skinsmith.sources.fetcher import ResilientFetcher
from skinsmith.sources.ranker import SourceRanker
from skinsmith.vpk.extractor import ArchiveExtractor

ASSET = "Assets/Original.zip"


def _seed_cache(fetcher: ResilientFetcher, files: dict[str, bytes]) -> None:
    path = fetcher.cached_path(ASSET, "original")
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)


def _fake_unpack(args, cwd):
    marker = cwd / "root" / "scripts" / "items" / "items_game.txt"
    marker.parent.mkdir(parents=True)
    marker.write_text('"items_game" { }')


@pytest.fixture
def provider_parts(tmp_path, tools_dir, fake_runner):
    fetcher = ResilientFetcher(
        SourceRanker(["https://a.example"]), cache_root=tmp_path / "cache", min_bytes=1
    )
    extractor = ArchiveExtractor(fake_runner, tool_path=tools_dir / "HLExtract.exe")
    fake_runner.action = _fake_unpack
    return fetcher, extractor, fake_runner


class TestBaseContentProvider:
    @pytest.mark.asyncio
    async def test_builds_extracted_tree(self, provider_parts):
        fetcher, extractor, runner = provider_parts
        _seed_cache(fetcher, {"Original/pak01_dir.vpk": b"VPK" * 10, "Original/index.txt": b"1"})
        provider = BaseContentProvider(fetcher, extractor, asset_path=ASSET)
        phases: list[str] = []

        base = await provider.get_base(lambda phase, msg, pct: phases.append(phase))

        assert base == provider.extracted_dir
        assert (base / "scripts" / "items" / "items_game.txt").is_file()
        vpk = provider.payload_dir / "Original" / "pak01_dir.vpk"
        assert runner.calls[0].args[:2] == ["-p", str(vpk)]
        assert phases[0] == "download"
        assert phases[-1] == "base"

    @pytest.mark.asyncio
    async def test_reuses_extracted_tree(self, provider_parts):
        fetcher, extractor, runner = provider_parts
        _seed_cache(fetcher, {"pak01_dir.vpk": b"VPK"})
        provider = BaseContentProvider(fetcher, extractor, asset_path=ASSET)

        await provider.get_base()
        await provider.get_base()

        assert len(runner.calls) == 1
        assert provider.is_ready()

    @pytest.mark.asyncio
    async def test_container_without_archive_is_corrupt(self, provider_parts):
        fetcher, extractor, runner = provider_parts
        _seed_cache(fetcher, {"readme.txt": b"nothing here"})
        provider = BaseContentProvider(fetcher, extractor, asset_path=ASSET)

        with pytest.raises(CorruptArtifactError, match="pak01_dir.vpk"):
            await provider.get_base()

        assert runner.calls == []
        assert not provider.payload_dir.exists()

    @pytest.mark.asyncio
    async def test_invalidate_forces_rebuild(self, provider_parts):
        fetcher, extractor, runner = provider_parts
        _seed_cache(fetcher, {"pak01_dir.vpk": b"VPK"})
        provider = BaseContentProvider(fetcher, extractor, asset_path=ASSET)
        await provider.get_base()

        provider.invalidate()

        assert not provider.is_ready()
        assert not fetcher.cached_path(ASSET, "original").exists()
