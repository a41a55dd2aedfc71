"""Record of which mods were installed into the live archive and what they own."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class InstalledEntry(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mod_id: str
    mod_name: str = ""
    blocks: list[str] = []
    files: list[str] = []


class InstallationLog(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    installed_entries: list[InstalledEntry] = []

    def find(self, mod_id: str) -> InstalledEntry | None:
        return next((e for e in self.installed_entries if e.mod_id == mod_id), None)

    def record(self, entry: InstalledEntry) -> None:
        """Add *entry*, replacing any previous entry for the same mod."""
        self.installed_entries = [e for e in self.installed_entries if e.mod_id != entry.mod_id]
        self.installed_entries.append(entry)

    def forget(self, mod_id: str) -> InstalledEntry | None:
        entry = self.find(mod_id)
        if entry is not None:
            self.installed_entries.remove(entry)
        return entry

    def files_owned_by(self, mod_id: str) -> list[str]:
        entry = self.find(mod_id)
        return list(entry.files) if entry else []
