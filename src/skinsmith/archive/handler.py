"""Readers for payload containers (.zip and .7z).

The base content arrives as ``Original.zip`` wrapping the stock
``pak01_dir.vpk``; a mod payload may be shipped as a .zip or .7z holding its
asset tree and ``index.txt``. Both are listed, read and unpacked through the
handlers here.
"""

from __future__ import annotations

import tempfile
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import py7zr
from py7zr.exceptions import ArchiveError

from skinsmith.errors import CorruptArtifactError
from skinsmith.utils.paths import safe_relative

SUPPORTED_EXTENSIONS = frozenset({".zip", ".7z"})

_READ_ERRORS = (OSError, ValueError, zipfile.BadZipFile, ArchiveError)


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    filename: str
    is_dir: bool
    size: int = 0

    @property
    def depth(self) -> int:
        return len(PurePosixPath(self.filename.replace("\\", "/")).parts)

    @property
    def name(self) -> str:
        return PurePosixPath(self.filename.replace("\\", "/")).name


class ArchiveHandler(ABC):
    @abstractmethod
    def list_entries(self) -> list[ArchiveEntry]: ...

    @abstractmethod
    def read_file(self, entry: ArchiveEntry) -> bytes: ...

    def read_all_files(self, entries: list[ArchiveEntry]) -> dict[str, bytes]:
        return {e.filename: self.read_file(e) for e in entries if not e.is_dir}

    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self) -> ArchiveHandler:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()


class ZipHandler(ArchiveHandler):
    def __init__(self, path: str | Path) -> None:
        self._zf = zipfile.ZipFile(path, "r")

    def list_entries(self) -> list[ArchiveEntry]:
        return [
            ArchiveEntry(filename=info.filename, is_dir=info.is_dir(), size=info.file_size)
            for info in self._zf.infolist()
        ]

    def read_file(self, entry: ArchiveEntry) -> bytes:
        return self._zf.read(entry.filename)

    def close(self) -> None:
        self._zf.close()


class SevenZipHandler(ArchiveHandler):
    """py7zr only extracts to disk, so reads go through a scratch directory."""

    def __init__(self, path: str | Path) -> None:
        self._archive = py7zr.SevenZipFile(Path(path), mode="r")

    def list_entries(self) -> list[ArchiveEntry]:
        return [
            ArchiveEntry(
                filename=info.filename,
                is_dir=info.is_directory,
                size=getattr(info, "uncompressed", 0) or 0,
            )
            for info in self._archive.list()
        ]

    def _extract(self, names: list[str]) -> dict[str, bytes]:
        self._archive.reset()
        with tempfile.TemporaryDirectory() as scratch:
            root = Path(scratch).resolve()
            self._archive.extract(path=root, targets=names)
            found: dict[str, bytes] = {}
            for name in names:
                path = (root / name).resolve()
                if path.is_file() and root in path.parents:
                    found[name] = path.read_bytes()
        return found

    def read_file(self, entry: ArchiveEntry) -> bytes:
        return self._extract([entry.filename]).get(entry.filename, b"")

    def read_all_files(self, entries: list[ArchiveEntry]) -> dict[str, bytes]:
        return self._extract([e.filename for e in entries if not e.is_dir])

    def close(self) -> None:
        self._archive.close()


def open_archive(path: str | Path) -> ArchiveHandler:
    """Pick a handler from the file extension."""
    p = Path(path)
    ext = p.suffix.lower()
    if ext == ".zip":
        return ZipHandler(p)
    if ext == ".7z":
        return SevenZipHandler(p)
    raise ValueError(f"Unsupported archive format: {ext}")


def is_container(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS


def extract_all(path: str | Path, dest: Path) -> list[Path]:
    """Unpack every file of the archive at *path* under *dest*.

    Entries with absolute paths or ``..`` components are rejected. Raises
    :class:`CorruptArtifactError` if the container cannot be read or its
    files cannot be written out.
    """
    name = Path(path).name
    try:
        with open_archive(path) as handler:
            contents = handler.read_all_files(handler.list_entries())
    except _READ_ERRORS as exc:
        raise CorruptArtifactError(f"Cannot read archive {name}: {exc}") from exc

    written: list[Path] = []
    for entry_name, data in contents.items():
        rel = safe_relative(entry_name)
        if rel is None:
            raise CorruptArtifactError(f"Archive entry escapes extraction root: {entry_name}")
        target = dest.joinpath(*rel.parts)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise CorruptArtifactError(
                f"Cannot unpack {entry_name} from {name}: {exc}"
            ) from exc
        written.append(target)
    return written


def read_named_entry(path: str | Path, file_name: str) -> bytes | None:
    """Contents of the shallowest file entry called *file_name*, if any."""
    wanted = file_name.lower()
    try:
        with open_archive(path) as handler:
            matches = [
                e for e in handler.list_entries() if not e.is_dir and e.name.lower() == wanted
            ]
            if not matches:
                return None
            entry = min(matches, key=lambda e: (e.depth, e.filename))
            return handler.read_file(entry)
    except _READ_ERRORS as exc:
        raise CorruptArtifactError(f"Cannot read archive {Path(path).name}: {exc}") from exc


def find_entry(root: Path, file_name: str) -> Path | None:
    """Locate *file_name* anywhere below *root* (shallowest match first)."""
    matches = [p for p in root.rglob(file_name) if p.is_file()]
    if not matches:
        return None
    return min(matches, key=lambda p: (len(p.relative_to(root).parts), str(p)))
