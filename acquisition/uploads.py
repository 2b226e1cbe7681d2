from __future__ import annotations

import asyncio
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class InMemoryUpload:
    """Upload whose bytes were already received, e.g. a decoded base64 body."""

    data: bytes
    content_type: str | None = None
    filename: str | None = None
    size: int | None = field(init=False)

    def __post_init__(self) -> None:
        self.size = len(self.data)

    async def read(self) -> bytes:
        return self.data


class FileUpload:
    """Upload backed by a file on disk; the read happens off the event loop."""

    def __init__(self, path: Path, content_type: str | None = None) -> None:
        self.path = Path(path)
        self.filename = self.path.name
        self.content_type = content_type or mimetypes.guess_type(self.path.name)[0]
        try:
            self.size: int | None = self.path.stat().st_size
        except OSError:
            self.size = None

    async def read(self) -> bytes:
        return await asyncio.to_thread(self.path.read_bytes)


__all__ = ["InMemoryUpload", "FileUpload"]
