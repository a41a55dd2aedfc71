LIVE_ARCHIVE_NAME = "pak01_dir.vpk"

# Required inside every extracted base tree; the unpacker's exit code alone is not trusted.
EXTRACTION_MARKER = "scripts/items/items_game.txt"

# The unpacker nests everything under this directory when invoked with ``-e root``.
EXTRACTION_WRAPPER = "root"

CONFIG_FILE_CANDIDATES = (
    "scripts/items/items_game.txt",
    "items_game.txt",
)

INDEX_FILE_NAME = "index.txt"

PACKER_REQUIRED_LIBRARIES = (
    "filesystem_stdio.dll",
    "tier0.dll",
    "tier0_s.dll",
    "vstdlib.dll",
    "vstdlib_s.dll",
)

PRIVATE_DATA_DIR_NAME = "_temp"
PRIORITY_CONFIG_FILE = "mod_priority.json"
INSTALLATION_LOG_FILE = "installation_log.json"

SCRIPT_EXTENSIONS = frozenset({".txt", ".kv", ".vdf"})
ASSET_EXTENSIONS = frozenset({".vtex_c", ".vmat_c", ".vmdl_c", ".vpcf_c", ".vsnd_c", ".vpk"})
CONFIG_FILE_PATTERNS = ("gameinfo", "default", "settings")
CORE_FILE_PATTERNS = ("gameinfo", "pak01_dir")
