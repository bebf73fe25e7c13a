"""Key-value persistence used for records, session data and alert history.

Both implementations expose the same two coroutines, ``get`` and ``set``,
storing plain strings. Callers serialise their own documents (JSON).
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore:
    """Dict-backed store, handy for tests and single-session use."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        await asyncio.sleep(0)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        self._data[key] = value


class JsonFileKeyValueStore:
    """Keeps every key in a single JSON object on disk.

    A missing, unreadable or non-object file reads as empty; the next
    ``set`` rewrites it from scratch. Writes from different threads are
    serialised so one key never clobbers another.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._write_lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open('r', encoding='utf-8') as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable store file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring store file %s: top level is not an object", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write_key(self, key: str, value: str) -> None:
        with self._write_lock:
            data = self._read_all()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + '.tmp')
            with tmp.open('w', encoding='utf-8') as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            tmp.replace(self.path)

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write_key, key, value)
