from skinsmith.archive.handler import (
    SUPPORTED_EXTENSIONS,
    ArchiveEntry,
    ArchiveHandler,
    SevenZipHandler,
    ZipHandler,
    extract_all,
    find_entry,
    is_container,
    open_archive,
    read_named_entry,
)

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "ArchiveEntry",
    "ArchiveHandler",
    "SevenZipHandler",
    "ZipHandler",
    "extract_all",
    "find_entry",
    "is_container",
    "open_archive",
    "read_named_entry",
]
