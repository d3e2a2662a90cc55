import hashlib
import json
import logging
import re
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Pattern, Union

from .base import KeyValueStore

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]")


class CacheManager(KeyValueStore):
    """TTL cache held in memory with optional JSON file persistence"""

    DEFAULT_TTL = 3600.0  # seconds

    def __init__(self, ttl_seconds: Optional[float] = None, use_file_cache: bool = False,
                 cache_dir: Union[str, Path] = ".cache"):
        self.default_ttl = float(ttl_seconds) if ttl_seconds is not None else self.DEFAULT_TTL
        self.use_file_cache = use_file_cache
        self.cache_dir = Path(cache_dir)
        self._memory: Dict[str, Dict[str, Any]] = {}
        # Adapter lookups run in worker threads
        self._lock = threading.RLock()

        if self.use_file_cache:
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Failed to create cache directory %s: %s", self.cache_dir, e)
                self.use_file_cache = False

    @staticmethod
    def generate_key(prefix: str, params: Dict[str, Any]) -> str:
        """Build a stable key from a prefix and a parameter dict"""
        param_string = json.dumps(params, sort_keys=True, default=str)
        digest = hashlib.md5(param_string.encode("utf-8")).hexdigest()
        return f"{prefix}:{digest}"

    def _file_path(self, key: str) -> Path:
        return self.cache_dir / f"{_UNSAFE_FILENAME.sub('_', key)}.json"

    @staticmethod
    def _is_expired(entry: Dict[str, Any]) -> bool:
        return time.time() - entry["timestamp"] > entry["ttl"]

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                if not self._is_expired(entry):
                    return entry["data"]
                del self._memory[key]

            if self.use_file_cache:
                path = self._file_path(key)
                if path.exists():
                    try:
                        with open(path, 'r') as f:
                            entry = json.load(f)
                    except (OSError, ValueError) as e:
                        logger.debug("Ignoring unreadable cache file %s: %s", path, e)
                        return None
                    if not self._is_expired(entry):
                        self._memory[key] = entry
                        return entry["data"]
                    path.unlink(missing_ok=True)

        return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        entry = {
            "key": key,
            "data": value,
            "timestamp": time.time(),
            "ttl": float(ttl) if ttl is not None else self.default_ttl,
        }
        with self._lock:
            self._memory[key] = entry

            if self.use_file_cache:
                try:
                    with open(self._file_path(key), 'w') as f:
                        json.dump(entry, f, indent=2, default=str)
                except OSError as e:
                    logger.warning("Failed to write cache file for %s: %s", key, e)

    def invalidate(self, key: str) -> None:
        """Drop one entry"""
        with self._lock:
            self._memory.pop(key, None)
            if self.use_file_cache:
                self._file_path(key).unlink(missing_ok=True)

    def invalidate_pattern(self, pattern: Union[str, Pattern]) -> int:
        """Drop every entry whose key matches a regex; returns the memory count removed"""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            matched = [key for key in self._memory if regex.search(key)]
            for key in matched:
                del self._memory[key]

            if self.use_file_cache and self.cache_dir.exists():
                for path in self.cache_dir.glob("*.json"):
                    if regex.search(self._stored_key(path)):
                        path.unlink(missing_ok=True)
        return len(matched)

    @staticmethod
    def _stored_key(path: Path) -> str:
        """Original key of a cache file; the sanitized file name when unreadable"""
        try:
            with open(path, 'r') as f:
                return str(json.load(f).get("key") or path.stem)
        except (OSError, ValueError, AttributeError):
            return path.stem

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()
            if self.use_file_cache and self.cache_dir.exists():
                for path in self.cache_dir.glob("*.json"):
                    path.unlink(missing_ok=True)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total_size = sum(len(json.dumps(entry, default=str)) for entry in self._memory.values())
            memory_entries = len(self._memory)
        file_entries = 0
        if self.use_file_cache and self.cache_dir.exists():
            file_entries = sum(1 for _ in self.cache_dir.glob("*.json"))
        return {
            "memory_entries": memory_entries,
            "total_size": total_size,
            "file_entries": file_entries,
        }
