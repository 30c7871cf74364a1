"""
Decision cache for evaluator verdicts.

Entries are addressed by a fingerprint of (preset, tool, normalized input)
so equivalent operations (e.g. ``npm install a`` and ``npm install b``)
share one slot. Only fresh evaluator verdicts are cached, never rule hits.

Expiry is lazy: a stale entry is deleted when it is read, and there is no
background sweeper. No locking either; concurrent hooks racing on the same
fingerprint write the same kind of record, and the last writer wins.
"""

import hashlib
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, Field, StrictBool, ValidationError

from ccyolo.models import Operation
from ccyolo.normalize import normalize_input

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 16  # hex chars (8 bytes of SHA-256)
# Entries stamped further ahead of the clock than this are treated as expired
MAX_CLOCK_SKEW = 60.0


def fingerprint(profile_id: str, tool_name: str, tool_input: dict) -> str:
    """Short deterministic hash identifying one normalized operation.

    >>> a = fingerprint("balanced", "Bash", {"command": "npm install left-pad"})
    >>> a == fingerprint("balanced", "Bash", {"command": "npm install right-pad"})
    True
    >>> len(fingerprint("strict", "Read", {"file_path": "/x"}))
    16
    """
    normalized = normalize_input(tool_name, tool_input)
    key = f"{profile_id}:{tool_name}:{normalized}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


class CacheEntry(BaseModel):
    approve: StrictBool
    timestamp: float = Field(allow_inf_nan=False)


class CacheStore(Protocol):
    """Key-value backend for cache entries."""

    def load(self, key: str) -> Optional[str]: ...

    def save(self, key: str, data: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class FileCacheStore:
    """One JSON file per fingerprint under ``directory``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> Optional[str]:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def save(self, key: str, data: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def clear(self) -> None:
        if not self.directory.is_dir():
            return
        for path in self.directory.glob("*.json"):
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def count(self) -> int:
        if not self.directory.is_dir():
            return 0
        return sum(1 for _ in self.directory.glob("*.json"))


class MemoryCacheStore:
    """Dict-backed store for tests and dry runs."""

    def __init__(self):
        self.data: dict[str, str] = {}

    def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def save(self, key: str, data: str) -> None:
        self.data[key] = data

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def clear(self) -> None:
        self.data.clear()

    def count(self) -> int:
        return len(self.data)


class DecisionCache:
    """TTL cache of evaluator verdicts on top of a ``CacheStore``."""

    def __init__(self, store: CacheStore, ttl: int, clock: Callable[[], float] = time.time):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def get(self, operation: Operation) -> Optional[bool]:
        """Return the cached verdict, or None on miss, corruption, or expiry."""
        key = fingerprint(operation.profile_id, operation.tool_name, operation.tool_input)
        try:
            raw = self.store.load(key)
        except (OSError, ValueError) as e:
            logger.debug("cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.debug("corrupt cache entry %s, treating as miss", key)
            return None

        age = self.clock() - entry.timestamp
        if age >= self.ttl or age < -MAX_CLOCK_SKEW:
            logger.debug("cache entry %s expired (age %.0fs)", key, age)
            try:
                self.store.delete(key)
            except OSError as e:
                logger.debug("cache delete failed for %s: %s", key, e)
            return None

        return entry.approve

    def set(self, operation: Operation, approve: bool) -> None:
        key = fingerprint(operation.profile_id, operation.tool_name, operation.tool_input)
        entry = CacheEntry(approve=approve, timestamp=self.clock())
        self.store.save(key, entry.model_dump_json())

    def clear(self) -> None:
        self.store.clear()

