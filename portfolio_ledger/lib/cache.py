"""Persisted key/value cache with TTL, per-entry size cap and quota sweep."""

import errno
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Optional

from portfolio_ledger.lib import config
from portfolio_ledger.lib.errors import CacheWriteSkipped, QuotaExceededError

logger = logging.getLogger(__name__)

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


def default_cache_dir() -> Path:
    """Cache directory from PORTFOLIO_LEDGER_CACHE_DIR or ~/.portfolio-ledger/cache."""
    env_dir = os.environ.get("PORTFOLIO_LEDGER_CACHE_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".portfolio-ledger" / "cache"


def namespace_for(user_id: str) -> str:
    """Key namespace of one user: ``portfolio_<user_id>``."""
    return f"{config.CACHE_KEY_PREFIX}{user_id}"


def namespaced_key(user_id: str, section: str) -> str:
    """Key of one cached section: ``portfolio_<user_id>_<section>``."""
    return f"{namespace_for(user_id)}_{section}"


class CacheManager:
    """Manages cached JSON entries, one file per key.

    Features:
    - Entries are stored as ``{"data": ..., "timestamp": ...}``
    - Fixed TTL; expired entries are deleted when read
    - Oversized entries are refused rather than written
    - Optional total quota; on overflow the writer's namespace is swept and
      the write retried, then everything under the global prefix as a last resort
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        ttl_seconds: float = config.CACHE_TTL_SECONDS,
        max_entry_bytes: int = config.CACHE_MAX_ENTRY_BYTES,
        quota_bytes: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize cache manager.

        Args:
            cache_dir: Directory for cache files. Defaults to ~/.portfolio-ledger/cache/
            ttl_seconds: Entry lifetime (default: 5 minutes)
            max_entry_bytes: Largest serialized entry accepted (default: 2 MiB)
            quota_bytes: Total storage quota; None means only the filesystem limits it
            clock: Wall-clock source in seconds (default: time.time)
        """
        if cache_dir is None:
            cache_dir = default_cache_dir()

        self.cache_dir = cache_dir
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.ttl_seconds = ttl_seconds
        self.max_entry_bytes = max_entry_bytes
        self.quota_bytes = quota_bytes
        self._clock = clock

    def now(self) -> float:
        """Current wall-clock time in seconds."""
        return self._clock() if self._clock is not None else time.time()

    def _get_cache_path(self, key: str) -> Path:
        """Get file path for cache key."""
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve cached data if still fresh.

        Args:
            key: Cache key

        Returns:
            Cached data, or None on miss, expiry or an unreadable entry
        """
        cache_path = self._get_cache_path(key)

        if not cache_path.exists():
            return None

        try:
            with open(cache_path, "r", encoding="utf-8") as f:
                entry = json.load(f)
            data = entry["data"]
            timestamp = float(entry["timestamp"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OSError):
            logger.warning(f"Unreadable cache entry {key}, removing it")
            cache_path.unlink(missing_ok=True)
            return None

        age = self.now() - timestamp
        if age >= self.ttl_seconds:
            logger.info(f"Cache expired for {key}")
            cache_path.unlink(missing_ok=True)
            return None

        logger.debug(f"Using cached {key} ({int(age)}s old)")
        return data

    def set(self, key: str, data: Any) -> bool:
        """
        Store data in cache.

        Never raises: an oversized payload or a storage failure leaves the cache
        without the entry, so readers fall back to the store.

        Args:
            key: Cache key
            data: JSON-serializable data

        Returns:
            True if the entry was written
        """
        payload = json.dumps({"data": data, "timestamp": self.now()})
        size = len(payload.encode("utf-8"))

        if size > self.max_entry_bytes:
            logger.warning(CacheWriteSkipped(key, size, self.max_entry_bytes).message)
            return False

        try:
            self._write(key, payload)
        except QuotaExceededError as e:
            logger.warning(f"{e.message}, clearing cache")
            return self._write_after_sweep(key, payload)
        except OSError as e:
            logger.error(f"Error writing cache {key}: {e}")
            return False

        logger.debug(f"Cached {key} ({size / 1024:.1f}KB)")
        return True

    def _write(self, key: str, payload: str) -> None:
        """Write one entry, raising QuotaExceededError when storage is exhausted."""
        cache_path = self._get_cache_path(key)
        size = len(payload.encode("utf-8"))

        if self.quota_bytes is not None:
            used = self.usage_bytes() - (
                cache_path.stat().st_size if cache_path.exists() else 0
            )
            if used + size > self.quota_bytes:
                raise QuotaExceededError(key)

        try:
            with open(cache_path, "w", encoding="utf-8") as f:
                f.write(payload)
        except OSError as e:
            if e.errno in _QUOTA_ERRNOS:
                cache_path.unlink(missing_ok=True)
                raise QuotaExceededError(key) from e
            raise

    def _write_after_sweep(self, key: str, payload: str) -> bool:
        """Drop the writer's own entries and retry; sweep every portfolio key as a last resort."""
        for scope in ("own", "global"):
            if scope == "own":
                doomed = self._sibling_keys(key)
            else:
                doomed = self.keys(config.CACHE_KEY_PREFIX)
            removed = self._delete_keys(doomed)
            logger.info(f"Cache cleared due to quota ({removed} {scope} entries)")
            try:
                self._write(key, payload)
                return True
            except QuotaExceededError:
                continue
            except OSError as e:
                logger.error(f"Error writing cache {key}: {e}")
                return False

        logger.warning(f"Cache still over quota, {key} not cached")
        return False

    @staticmethod
    def _sibling_keys(key: str) -> list[str]:
        """The exact section keys of the user owning ``key``.

        User ids may contain underscores, so a prefix match on the namespace would
        also catch other users (``portfolio_alice`` vs ``portfolio_alice_2``).
        """
        for section in config.CACHE_SECTIONS:
            suffix = f"_{section}"
            if key.startswith(config.CACHE_KEY_PREFIX) and key.endswith(suffix):
                user_id = key[len(config.CACHE_KEY_PREFIX) : -len(suffix)]
                return [namespaced_key(user_id, s) for s in config.CACHE_SECTIONS]
        return [key]

    def _delete_keys(self, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            path = self._get_cache_path(key)
            if path.exists():
                path.unlink()
                removed += 1
        return removed

    def delete(self, key: str) -> None:
        """Remove one entry if present."""
        self._get_cache_path(key).unlink(missing_ok=True)

    def keys(self, prefix: str = "") -> list[str]:
        """List cached keys starting with ``prefix``."""
        return sorted(
            path.stem for path in self.cache_dir.glob("*.json") if path.stem.startswith(prefix)
        )

    def sweep(self, prefix: str) -> int:
        """
        Remove every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed
        """
        removed = 0
        for key in self.keys(prefix):
            self.delete(key)
            removed += 1
        return removed

    def usage_bytes(self) -> int:
        """Total size of all cache files."""
        return sum(path.stat().st_size for path in self.cache_dir.glob("*.json"))

    def clear(self) -> None:
        """Clear all cache files."""
        for cache_file in self.cache_dir.glob("*.json"):
            cache_file.unlink(missing_ok=True)


class UserCache:
    """Namespaced view of the cache for one user.

    Holdings, transactions and aggregates are stored independently under
    ``portfolio_<user_id>_holdings`` / ``_transactions`` / ``_aggregates``.
    An in-process freshness mark sits in front of them: while it is younger than
    the TTL no reload is attempted at all.
    """

    def __init__(self, manager: CacheManager, user_id: str):
        """
        Args:
            manager: Underlying cache manager
            user_id: Validated opaque user identifier
        """
        self.manager = manager
        self.user_id = user_id
        self._fresh_at: Optional[float] = None

    def mark_fresh(self) -> None:
        """Record that in-memory data was just loaded."""
        self._fresh_at = self.manager.now()

    def is_fresh(self) -> bool:
        """True while the last load is younger than the TTL."""
        if self._fresh_at is None:
            return False
        return self.manager.now() - self._fresh_at < self.manager.ttl_seconds

    def key(self, section: str) -> str:
        """Full cache key for a section."""
        if section not in config.CACHE_SECTIONS:
            raise ValueError(f"Unknown cache section: {section}")
        return namespaced_key(self.user_id, section)

    def get(self, section: str) -> Optional[Any]:
        """Fresh cached section data, or None."""
        return self.manager.get(self.key(section))

    def set(self, section: str, data: Any) -> bool:
        """Cache one section; False when the write was skipped."""
        return self.manager.set(self.key(section), data)

    def invalidate(self) -> None:
        """Delete the three namespaced keys of this user and drop the freshness mark."""
        self._fresh_at = None
        for section in config.CACHE_SECTIONS:
            self.manager.delete(self.key(section))
        logger.info("Cache invalidated for user_id=%s", self.user_id)
