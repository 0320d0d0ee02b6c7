"""
Cache Management Helper
File-backed TTL cache for upstream API responses (app list, game details, ...)
"""

import asyncio
import json
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from helpers.logging_helper import get_logger

DEFAULT_CACHE_DURATION = 3600  # 1 hour in seconds
CACHE_SUFFIX = ".json"

logger = get_logger("CacheStore")


def safe_cache_name(key: str) -> str:
    """
    Turn an arbitrary cache key into a filesystem-safe file stem.
    """
    return re.sub(r"[^a-zA-Z0-9_-]", "_", key)


class CacheStore:
    """
    Key/value cache with a per-entry TTL, one JSON file per key.

    Each file holds {"data", "timestamp", "ttl", "expires_at"}. Anything that
    can't be read back (missing, half-written, not JSON) is a cache miss.
    """

    def __init__(self, cache_dir: Union[str, Path], default_ttl: float = DEFAULT_CACHE_DURATION):
        self.cache_dir = Path(cache_dir)
        self.default_ttl = default_ttl

    async def init(self) -> bool:
        """
        Ensure the cache directory exists.
        """
        return await asyncio.to_thread(self._ensure_cache_directory)

    def _ensure_cache_directory(self) -> bool:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.cache_dir}: {e}")
            return False

    def get_cache_file_path(self, key: str) -> Path:
        return self.cache_dir / f"{safe_cache_name(key)}{CACHE_SUFFIX}"

    def _cache_files(self) -> List[Path]:
        if not self.cache_dir.exists():
            return []
        return [p for p in self.cache_dir.glob(f"*{CACHE_SUFFIX}") if p.is_file()]

    # ===== SYNC FILE OPERATIONS (run in a worker thread) =====

    def _write_entry(self, key: str, value: Any, ttl: float) -> bool:
        if not self._ensure_cache_directory():
            return False

        cache_file = self.get_cache_file_path(key)
        now = time.time()
        entry = {
            "data": value,
            "timestamp": now,
            "ttl": ttl,
            "expires_at": now + ttl,
        }
        temp_file = cache_file.with_suffix(".tmp")
        try:
            # Atomic write using temporary file
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(entry, f, ensure_ascii=False)
            temp_file.replace(cache_file)
            logger.debug(f"Cached '{key}' for {ttl}s")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving cache entry '{key}': {e}")
            try:
                temp_file.unlink(missing_ok=True)
            except OSError:
                pass
            return False

    @staticmethod
    def _read_entry(cache_file: Path) -> Optional[Dict[str, Any]]:
        """
        Read one cache file. Returns None when the file is absent or unusable.
        """
        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                entry = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable cache file {cache_file.name}: {e}")
            return None

        if not isinstance(entry, dict) or not isinstance(entry.get("expires_at"), (int, float)):
            logger.warning(f"Malformed cache file {cache_file.name}")
            return None
        return entry

    def _remove_file(self, cache_file: Path) -> bool:
        try:
            cache_file.unlink()
            return True
        except FileNotFoundError:
            return False
        except PermissionError:
            logger.warning(f"Cache file {cache_file} is in use and could not be removed")
            return False
        except OSError as e:
            logger.error(f"Error removing cache file {cache_file.name}: {e}")
            return False

    def _get_sync(self, key: str) -> Optional[Any]:
        cache_file = self.get_cache_file_path(key)
        entry = self._read_entry(cache_file)
        if entry is None:
            return None

        if time.time() >= entry["expires_at"]:
            logger.debug(f"Cache entry '{key}' expired")
            self._remove_file(cache_file)
            return None

        logger.debug(f"Cache hit for '{key}'")
        return entry.get("data")

    def _clear_sync(self) -> int:
        cleared = 0
        for cache_file in self._cache_files():
            if self._remove_file(cache_file):
                cleared += 1
        logger.info(f"Cleared {cleared} cache files")
        return cleared

    def _cleanup_sync(self) -> int:
        now = time.time()
        removed = 0
        for cache_file in self._cache_files():
            entry = self._read_entry(cache_file)
            if entry is None:
                continue
            if now >= entry["expires_at"] and self._remove_file(cache_file):
                removed += 1

        if removed > 0:
            logger.info(f"Removed {removed} expired cache entries")
        return removed

    def _stats_sync(self) -> Dict[str, Any]:
        now = time.time()
        total_size = 0
        valid = 0
        expired = 0
        files = self._cache_files()

        for cache_file in files:
            try:
                total_size += cache_file.stat().st_size
            except OSError:
                continue

            entry = self._read_entry(cache_file)
            if entry is None:
                # Unparsable entries count toward total only
                continue
            if now >= entry["expires_at"]:
                expired += 1
            else:
                valid += 1

        return {
            "total_files": len(files),
            "valid_files": valid,
            "expired_files": expired,
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }

    # ===== PUBLIC ASYNC API =====

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a JSON-serializable value under key for ttl seconds.
        Returns False (and logs) if the entry could not be written.
        """
        if ttl is None:
            ttl = self.default_ttl
        return await asyncio.to_thread(self._write_entry, key, value, ttl)

    async def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value, or None on a miss (absent, corrupt or expired).
        Expired entries are deleted on read.
        """
        return await asyncio.to_thread(self._get_sync, key)

    async def delete(self, key: str) -> None:
        removed = await asyncio.to_thread(self._remove_file, self.get_cache_file_path(key))
        if removed:
            logger.debug(f"Deleted cache entry '{key}'")

    async def clear(self) -> int:
        return await asyncio.to_thread(self._clear_sync)

    async def cleanup(self) -> int:
        """
        Delete every expired entry; valid and unreadable entries are left alone.
        Returns number of entries removed.
        """
        return await asyncio.to_thread(self._cleanup_sync)

    async def get_stats(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self._stats_sync)
