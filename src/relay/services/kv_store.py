from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_path_locks: dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = path.resolve()
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.Lock())


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...


class MemoryStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def put(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore:
    """One namespace persisted as a JSON object of string values in a single file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @classmethod
    def for_namespace(cls, state_dir: str | Path, namespace: str) -> JsonFileStore:
        return cls(Path(state_dir) / f"{namespace}.json")

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as state_file:
            data = json.load(state_file)
        if not isinstance(data, dict):
            raise ValueError(f"State file {self.path} does not contain a JSON object")
        return data

    async def get(self, key: str) -> str | None:
        with _lock_for(self.path):
            return self._load().get(key)

    async def put(self, key: str, value: str) -> None:
        # all keys share one file
        with _lock_for(self.path):
            data = self._load()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.path.parent, prefix=f"{self.path.name}.", suffix=".tmp", delete=False
            ) as state_file:
                json.dump(data, state_file, indent=2)
            try:
                os.replace(state_file.name, self.path)
            except OSError:
                os.unlink(state_file.name)
                raise


async def read_json(store: KeyValueStore, key: str) -> Any:
    raw = await store.get(key)
    if not raw:
        return None
    return json.loads(raw)


async def save_json(store: KeyValueStore, key: str, value: Any) -> None:
    await store.put(key, json.dumps(value))
