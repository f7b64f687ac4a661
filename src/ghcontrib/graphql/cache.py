"""Content-addressed response cache persisted as JSON files on disk."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = 24 * 60 * 60


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def cache_key(query_text: str, dry_run: bool) -> str:
    return sha256_hex(json.dumps([query_text, bool(dry_run)], ensure_ascii=False))


def safe_write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, sort_keys=True)
        f.write("\n")
    os.replace(tmp, path)


class DiskCache:
    """
    Response envelopes keyed by ``cache_key(query_text, dry_run)``.

    - Entries expire ``ttl_sec`` after they were written; reading never
      extends that.
    - Reads and writes run in a worker thread. Writes are tracked so that
      shutdown can wait for them (``flush``).
    - ``wipe`` has no per-key locking; run it before any queries start.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        ttl_sec: float = DEFAULT_TTL_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._dir = Path(directory).expanduser()
        self._ttl_sec = ttl_sec
        self._clock = clock
        self._pending: set[asyncio.Task[None]] = set()
        self._writing: dict[str, dict[str, Any]] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def _path(self, key: str) -> Path:
        return self._dir / key[:2] / f"{key}.json"

    async def get(self, key: str) -> dict[str, Any] | None:
        # Entries still being written are already visible.
        if key in self._writing:
            return self._writing[key]
        return await asyncio.to_thread(self._read, key)

    def _read(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            entry = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt cache entry %s", path)
            return None
        if not isinstance(entry, dict) or not isinstance(entry.get("envelope"), dict):
            logger.warning("Ignoring malformed cache entry %s", path)
            return None

        expires_at = entry.get("expires_at")
        if not isinstance(expires_at, (int, float)) or expires_at <= self._clock():
            self.delete(key)
            return None
        return entry["envelope"]

    def _write(self, key: str, envelope: dict[str, Any]) -> None:
        now = self._clock()
        safe_write_json(
            self._path(key),
            {
                "key": key,
                "stored_at": now,
                "expires_at": now + self._ttl_sec,
                "envelope": envelope,
            },
        )

    def put(self, key: str, envelope: dict[str, Any]) -> asyncio.Task[None]:
        self._writing[key] = envelope
        task = asyncio.get_running_loop().create_task(
            asyncio.to_thread(self._write, key, envelope)
        )
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_write_done(key, t))
        return task

    def _on_write_done(self, key: str, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        self._writing.pop(key, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Cache write failed: %s", error)

    async def flush(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def keys(self) -> Iterator[str]:
        if not self._dir.is_dir():
            return
        for path in sorted(self._dir.glob("*/*.json")):
            yield path.stem

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return False
        return True

    def wipe(self) -> int:
        removed = 0
        for key in list(self.keys()):
            if self.delete(key):
                removed += 1
        logger.info("Removed %d cache entries from %s", removed, self._dir)
        return removed
