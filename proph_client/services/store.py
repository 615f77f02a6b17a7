from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> dict[str, Any] | None: ...

    def set(self, key: str, value: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local store; values do not survive a restart."""

    def __init__(self) -> None:
        self.entries: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        value = self.entries.get(key)
        return dict(value) if value is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        self.entries[key] = dict(value)

    def delete(self, key: str) -> None:
        self.entries.pop(key, None)


class JsonFileStore:
    """Durable store backed by a single JSON document on disk.

    A corrupt or unreadable file is treated as empty so a bad cache never
    blocks the client; it is rewritten on the next ``set``.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get(self, key: str) -> dict[str, Any] | None:
        value = self._load().get(key)
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        entries = self._load()
        entries[key] = value
        self._write(entries)

    def delete(self, key: str) -> None:
        entries = self._load()
        if entries.pop(key, None) is not None:
            self._write(entries)

    def _load(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("ignoring corrupt store file path=%s", self.path)
            return {}
        return decoded if isinstance(decoded, dict) else {}

    def _write(self, entries: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(entries, default=str), encoding="utf-8")
        tmp_path.replace(self.path)


def build_store(storage_path: str | None) -> KeyValueStore:
    if storage_path:
        return JsonFileStore(storage_path)
    return InMemoryStore()
