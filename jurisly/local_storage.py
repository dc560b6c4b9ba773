# jurisly/local_storage.py
"""
Key/value JSON documents on disk, used by every local-mode component in
place of the browser's localStorage. One file per key under LOCAL_DATA_DIR.
"""

import asyncio
import json
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional

from .logging_config import get_logger

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"[^A-Za-z0-9_.-]")

# Small pool so file I/O never blocks the event loop
file_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="local_store_")


class LocalStorage:
    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, key: str) -> Path:
        return self.root / f"{_KEY_PATTERN.sub('_', key)}.json"

    async def _run(self, func: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(file_executor, func, *args)

    def _read_sync(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)

    def _write_sync(self, path: Path, value: Any) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(value, fh, ensure_ascii=False, default=str)
        tmp_path.replace(path)

    async def get_item(self, key: str) -> Optional[Any]:
        return await self._run(self._read_sync, self._path(key))

    async def update_item(
        self,
        key: str,
        mutate: Callable[[Optional[Any]], tuple[Any, Any]],
    ) -> Any:
        """
        Read-modify-write under the store lock.

        `mutate` receives the current value (or None) and returns
        (new_value, result); new_value is written back and result returned.
        """
        path = self._path(key)
        async with self._lock:
            current = await self._run(self._read_sync, path)
            new_value, result = mutate(current)
            await self._run(self._write_sync, path, new_value)
            return result
