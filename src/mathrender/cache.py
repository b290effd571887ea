"""Content-hash cache deciding which source files need reprocessing."""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Dict, Optional

CACHE_FILE_NAME = "math-cache.json"
_CHUNK_SIZE = 1 << 16


class CacheError(RuntimeError):
    pass


def fingerprint(path: Path) -> str:
    digest = hashlib.md5()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ChangeCache:
    """Maps absolute source paths to the MD5 of their last processed content.

    The store is held in memory for the whole run and only written back by
    ``save()``, so an aborted run leaves the previous cache file intact.
    """

    def __init__(self, cache_file: Path, entries: Optional[Dict[str, str]] = None, force: bool = False) -> None:
        self.cache_file = cache_file
        self.entries: Dict[str, str] = dict(entries or {})
        self.force = force

    @classmethod
    def load(cls, cache_file: Path, force: bool = False) -> "ChangeCache":
        if not cache_file.exists():
            return cls(cache_file, force=force)
        try:
            data = json.loads(cache_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CacheError(f"Unable to read cache file {cache_file}: {exc}") from exc
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise CacheError(f"Cache file {cache_file} must contain a JSON object of path -> hash strings")
        return cls(cache_file, data, force=force)

    def is_unchanged(self, path: Path) -> bool:
        key = str(path)
        current = fingerprint(path)
        same = self.entries.get(key) == current
        if not same:
            self.entries[key] = current
        if self.force:
            return False
        return same

    def invalidate(self, path: Path) -> None:
        self.entries.pop(str(path), None)

    def ensure_writable(self) -> None:
        """Fail before any processing when ``save()`` could not succeed."""
        parent = self.cache_file.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(f"Unable to create cache directory {parent}: {exc}") from exc
        if self.cache_file.is_dir():
            raise CacheError(f"Cache path is a directory: {self.cache_file}")
        target = self.cache_file if self.cache_file.exists() else parent
        if not os.access(target, os.W_OK):
            raise CacheError(f"Cache file is not writable: {self.cache_file}")

    def save(self) -> None:
        payload = json.dumps(self.entries, ensure_ascii=False, indent=2) + "\n"
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(payload, encoding="utf-8", newline="\n")
        except OSError as exc:
            raise CacheError(f"Unable to write cache file {self.cache_file}: {exc}") from exc

    def __len__(self) -> int:
        return len(self.entries)
