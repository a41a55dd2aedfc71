from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ContentSource(BaseModel):
    url: str
    bytes_per_second: float | None = None
    failures: int = 0
    last_measured: datetime | None = None
    excluded: bool = False
