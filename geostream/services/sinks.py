from __future__ import annotations

from pathlib import Path
from typing import Protocol


class TileSink(Protocol):
    def write(self, key: str, payload: bytes) -> Path:
        ...


class DirectoryTileSink:
    """Store each downloaded tile as ``<root>/<key>.<extension>``."""

    def __init__(self, root: Path, extension: str = "jpeg") -> None:
        self.root = Path(root).expanduser()
        self.extension = self._normalize_extension(extension)

    def path_for(self, key: str) -> Path:
        return self.root / f"{key}{self.extension}"

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def write(self, key: str, payload: bytes) -> Path:
        """Persist ``payload`` under ``key``; an ``OSError`` means the write failed."""

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        partial = path.with_name(f"{path.name}.part")
        partial.write_bytes(payload)
        partial.replace(path)
        return path

    @staticmethod
    def _normalize_extension(extension: str) -> str:
        return extension if extension.startswith(".") else f".{extension}"
