"""Result cache for per-file analysis.

Entries map a fingerprint (hash of resolved file path, file content and the
active rule/severity/options set) to the Issue list that analysis produced,
along with the syntax errors tolerated while parsing the file.
A configuration change alone changes the fingerprint, so stale results are
never served.

The store is TTL-based with LRU eviction and is safe to share between the
engine's worker threads: reads are concurrent-safe and writes to the same
fingerprint are last-writer-wins. It can optionally be persisted to a cache
directory as JSON.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from solscan.findings.models import Issue, ParseErrorInfo

logger = logging.getLogger(__name__)

CACHE_VERSION = "2"
CACHE_FILE = "cache.json"
METADATA_FILE = "metadata.json"

DEFAULT_MAX_ENTRIES = 10_000
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60.0  # 7 days


def compute_fingerprint(file_path: str, content: str, rule_set: Any) -> str:
    """
    Compute the cache key for one file's analysis.

    Args:
        file_path: Resolved path of the file (issues embed it).
        content: File source text.
        rule_set: JSON-serializable description of the active rules,
                  e.g. [[rule_id, severity, options], ...].

    Returns:
        SHA-256 hex digest.
    """
    key_data = json.dumps(
        {"path": file_path, "content": content, "rules": rule_set},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(key_data.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """A single cache entry with TTL tracking."""

    issues: list[Issue]
    created_at: float
    parse_errors: list[ParseErrorInfo] = field(default_factory=list)
    hits: int = 0


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int


class ResultCache:
    """TTL-based, LRU-bounded, thread-safe store of per-file Issue lists."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        cache_dir: Optional[Path] = None,
    ) -> None:
        """
        Args:
            max_entries: Maximum number of entries before LRU eviction.
            ttl_seconds: Time-to-live for entries in seconds.
            cache_dir: Directory used by save()/load(); None disables persistence.
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def _is_expired(self, entry: CacheEntry, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return current - entry.created_at > self.ttl_seconds

    def get(self, fingerprint: str) -> Optional[list[Issue]]:
        """Return the cached issues for fingerprint, or None on a miss or expired entry."""
        entry = self.get_entry(fingerprint)
        return entry.issues if entry is not None else None

    def get_entry(self, fingerprint: str) -> Optional[CacheEntry]:
        """Like get(), but returns a copy of the whole entry (issues and parse errors)."""
        with self._lock:
            entry = self._cache.get(fingerprint)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry):
                del self._cache[fingerprint]
                self._misses += 1
                return None

            # Move to end (most recently used)
            self._cache.move_to_end(fingerprint)
            entry.hits += 1
            self._hits += 1
            return CacheEntry(
                issues=list(entry.issues),
                created_at=entry.created_at,
                parse_errors=list(entry.parse_errors),
                hits=entry.hits,
            )

    def set(
        self,
        fingerprint: str,
        issues: Sequence[Issue],
        parse_errors: Sequence[ParseErrorInfo] = (),
    ) -> None:
        """Store issues under fingerprint (last writer wins), evicting the oldest entries when full."""
        with self._lock:
            self._cache[fingerprint] = CacheEntry(
                issues=list(issues),
                created_at=time.time(),
                parse_errors=list(parse_errors),
            )
            self._cache.move_to_end(fingerprint)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)

    def has(self, fingerprint: str) -> bool:
        with self._lock:
            entry = self._cache.get(fingerprint)
            return entry is not None and not self._is_expired(entry)

    def invalidate(self, fingerprint: str) -> None:
        with self._lock:
            self._cache.pop(fingerprint, None)

    def clear(self) -> None:
        """Drop every entry and reset statistics."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def cleanup(self) -> int:
        """Remove expired entries and return how many were removed."""
        with self._lock:
            now = time.time()
            expired = [key for key, entry in self._cache.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._cache[key]
            return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, size=len(self._cache))

    def hit_rate(self) -> float:
        with self._lock:
            total = self._hits + self._misses
            return self._hits / total if total else 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    # --- persistence ---

    def save(self) -> bool:
        """
        Write the cache to cache_dir as JSON.

        Returns:
            True if written, False if persistence is disabled or writing failed
            (failures are logged, never raised).
        """
        if self.cache_dir is None:
            return False

        with self._lock:
            data = {
                key: {
                    "created_at": entry.created_at,
                    "issues": [issue.model_dump(mode="json") for issue in entry.issues],
                    "parse_errors": [error.model_dump(mode="json") for error in entry.parse_errors],
                }
                for key, entry in self._cache.items()
            }
        metadata = {"version": CACHE_VERSION, "saved_at": time.time(), "entry_count": len(data)}

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            (self.cache_dir / CACHE_FILE).write_text(json.dumps(data), encoding="utf-8")
            (self.cache_dir / METADATA_FILE).write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to save cache to %s: %s", self.cache_dir, e)
            return False

        logger.info("Saved %d cache entr%s to %s", len(data), "y" if len(data) == 1 else "ies", self.cache_dir)
        return True

    def load(self) -> int:
        """
        Load entries from cache_dir, skipping expired ones.

        A missing cache, a version mismatch or an unreadable file leaves the
        in-memory cache unchanged; problems are logged, never raised.

        Returns:
            Number of entries loaded.
        """
        if self.cache_dir is None:
            return 0

        metadata_path = self.cache_dir / METADATA_FILE
        cache_path = self.cache_dir / CACHE_FILE
        if not metadata_path.exists() or not cache_path.exists():
            return 0

        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
            if metadata.get("version") != CACHE_VERSION:
                logger.warning(
                    "Ignoring cache at %s: version %r != %r",
                    self.cache_dir,
                    metadata.get("version"),
                    CACHE_VERSION,
                )
                return 0
            raw = json.loads(cache_path.read_text(encoding="utf-8"))
            entries = {
                key: CacheEntry(
                    issues=[Issue.model_validate(item) for item in value["issues"]],
                    created_at=float(value["created_at"]),
                    parse_errors=[ParseErrorInfo.model_validate(item) for item in value.get("parse_errors", [])],
                )
                for key, value in raw.items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.warning("Failed to load cache from %s: %s", self.cache_dir, e)
            return 0

        loaded = 0
        with self._lock:
            now = time.time()
            for key, entry in entries.items():
                if self._is_expired(entry, now):
                    continue
                self._cache[key] = entry
                loaded += 1
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)

        logger.info("Loaded %d cache entr%s from %s", loaded, "y" if loaded == 1 else "ies", self.cache_dir)
        return loaded
