"""Content-addressed cache for translation results.

L1: In-memory LRU cache for fast access (default: 1000 entries)
L3: SQLite persistent cache with per-entry TTL and access counters

The cache is best-effort: backend failures are logged and counted, and
callers see a miss instead of an exception.
"""

import hashlib
import json
import logging
import sqlite3
import time
from collections import OrderedDict
from pathlib import Path
from typing import Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import CacheError
from app.metrics.translation_metrics import (
    translation_cache_errors_total,
    translation_cache_lookups_total,
)
from app.models.translation import TranslationRequest, TranslationResponse

logger = logging.getLogger(__name__)

KEY_PREFIX = "translation:"


class LRUCache:
    """In-memory LRU cache of serialized responses with expiry timestamps.

    Automatically evicts least recently used entries when full.
    """

    def __init__(self, maxsize: int = 1000):
        self.cache: OrderedDict[str, Tuple[float, str]] = OrderedDict()
        self.maxsize = maxsize
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None if absent or expired."""
        entry = self.cache.get(key)
        if entry is not None:
            expires_at, value = entry
            if expires_at > time.time():
                self.hits += 1
                # Move to end (most recently used)
                self.cache.move_to_end(key)
                return value
            del self.cache[key]
        self.misses += 1
        return None

    def set(self, key: str, value: str, ttl: float) -> None:
        if key in self.cache:
            self.cache.move_to_end(key)
        elif len(self.cache) >= self.maxsize:
            # Remove oldest (first) item
            self.cache.popitem(last=False)
        self.cache[key] = (time.time() + ttl, value)

    def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self.cache if key.startswith(prefix)]
        for key in doomed:
            del self.cache[key]
        return len(doomed)

    def clear(self) -> None:
        self.cache.clear()
        self.hits = 0
        self.misses = 0

    def get_stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": len(self.cache),
            "maxsize": self.maxsize,
            "hit_ratio": self.hits / total if total > 0 else 0,
        }


class SQLiteCache:
    """Persistent SQLite store keyed by cache key.

    Every public method raises CacheError on sqlite failures; TranslationCache
    decides how to degrade.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self) -> None:
        # Ensure parent directory exists
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS translations (
                    cache_key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    source_lang TEXT NOT NULL,
                    target_lang TEXT NOT NULL,
                    hits INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL,
                    expires_at INTEGER NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_expires_at
                ON translations(expires_at)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_language_pair
                ON translations(source_lang, target_lang)
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[Tuple[str, int]]:
        """Return ``(value, expires_at)`` if present and unexpired.

        Bumps the entry's access count.
        """
        now = int(time.time())
        try:
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT value, expires_at FROM translations "
                    "WHERE cache_key = ? AND expires_at > ?",
                    (key, now),
                )
                row = cursor.fetchone()
                if row is None:
                    return None
                cursor.execute(
                    "UPDATE translations SET hits = hits + 1 WHERE cache_key = ?",
                    (key,),
                )
                conn.commit()
                return row[0], row[1]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="get") from e

    def get_hits(self, key: str) -> int:
        try:
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT hits FROM translations WHERE cache_key = ?", (key,)
                )
                row = cursor.fetchone()
                return row[0] if row else 0
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="get") from e

    def set(
        self,
        key: str,
        value: str,
        source_lang: str,
        target_lang: str,
        ttl: int,
        hits: int = 0,
    ) -> None:
        now = int(time.time())
        try:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO translations
                    (cache_key, value, source_lang, target_lang, hits, created_at, expires_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (key, value, source_lang, target_lang, hits, now, now + ttl),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="set") from e

    def delete_language_pair(self, source_lang: str, target_lang: str) -> int:
        try:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "DELETE FROM translations WHERE source_lang = ? AND target_lang = ?",
                    (source_lang, target_lang),
                )
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="delete") from e

    def clear(self) -> int:
        try:
            conn = self._connect()
            try:
                cursor = conn.execute("DELETE FROM translations")
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="clear") from e

    def cleanup_expired(self) -> int:
        now = int(time.time())
        try:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "DELETE FROM translations WHERE expires_at <= ?", (now,)
                )
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="cleanup") from e

    def ping(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("SELECT 1 FROM translations LIMIT 1").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="ping") from e

    def get_stats(self) -> dict:
        now = int(time.time())
        try:
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) FROM translations")
                total = cursor.fetchone()[0]
                cursor.execute(
                    "SELECT COUNT(*) FROM translations WHERE expires_at <= ?", (now,)
                )
                expired = cursor.fetchone()[0]
                cursor.execute(
                    "SELECT COUNT(*) FROM translations WHERE expires_at > ? AND hits > ?",
                    (now, TranslationCache.FREQUENT_HITS),
                )
                frequent = cursor.fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheError(str(e), operation="stats") from e
        return {
            "total_entries": total,
            "expired_entries": expired,
            "active_entries": total - expired,
            "frequent_entries": frequent,
        }


class TranslationCache:
    """Two-tier cache of TranslationResponse objects.

    On an L1 miss the L3 entry is promoted to L1. Writes go to both tiers
    with a TTL chosen from how the entry is used:

    - frequent entries (more than ``FREQUENT_HITS`` lookups): ``frequent_ttl``
    - requests carrying conversation context: ``context_ttl``
    - everything else: ``default_ttl``
    """

    FREQUENT_HITS = 10

    def __init__(
        self,
        db_path: str,
        l1_size: int = 1000,
        default_ttl: int = 3600,
        context_ttl: int = 7200,
        frequent_ttl: int = 86400,
    ):
        self.l1 = LRUCache(maxsize=l1_size)
        self.l3 = SQLiteCache(db_path=db_path)
        self.default_ttl = default_ttl
        self.context_ttl = context_ttl
        self.frequent_ttl = frequent_ttl
        self.errors = 0

    @staticmethod
    def generate_cache_key(request: TranslationRequest) -> str:
        """Build the deterministic key for a request.

        Identical (text, source, target, domain) tuples always map to the
        same key; the language pair stays readable for invalidation.
        """
        canonical = json.dumps(
            {
                "text": request.text,
                "source_lang": request.source_lang,
                "target_lang": request.target_lang,
                "domain": request.domain,
            },
            sort_keys=True,
            ensure_ascii=False,
            separators=(",", ":"),
        )
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"{KEY_PREFIX}{request.source_lang}:{request.target_lang}:{digest}"

    def _record_error(self, error: CacheError) -> None:
        self.errors += 1
        translation_cache_errors_total.labels(operation=error.operation).inc()
        logger.warning(f"Translation cache {error.operation} failed: {error.detail}")

    def _decode(self, key: str, raw: str) -> Optional[TranslationResponse]:
        try:
            return TranslationResponse.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

    async def get_cached_translation(self, key: str) -> Optional[TranslationResponse]:
        """Look up a response by key. Never raises."""
        raw = self.l1.get(key)
        if raw is not None:
            translation_cache_lookups_total.labels(tier="l1", result="hit").inc()
            logger.debug(f"L1 cache hit for {key}")
            return self._decode(key, raw)
        translation_cache_lookups_total.labels(tier="l1", result="miss").inc()

        try:
            entry = self.l3.get(key)
        except CacheError as e:
            self._record_error(e)
            return None

        if entry is None:
            translation_cache_lookups_total.labels(tier="l3", result="miss").inc()
            return None

        raw, expires_at = entry
        translation_cache_lookups_total.labels(tier="l3", result="hit").inc()
        logger.debug(f"L3 cache hit for {key}")
        # Promote to L1 for the remaining lifetime of the row
        self.l1.set(key, raw, ttl=expires_at - time.time())
        return self._decode(key, raw)

    def _select_ttl(self, hits: int, request: Optional[TranslationRequest]) -> int:
        if hits > self.FREQUENT_HITS:
            return self.frequent_ttl
        if request is not None and request.context is not None:
            return self.context_ttl
        return self.default_ttl

    async def cache_translation(
        self,
        key: str,
        response: TranslationResponse,
        request: Optional[TranslationRequest] = None,
    ) -> None:
        """Store a response in both tiers. Failures are logged, not raised."""
        value = response.model_dump_json()
        source_lang, target_lang = self._pair_from_key(key, request)

        try:
            hits = self.l3.get_hits(key)
        except CacheError as e:
            self._record_error(e)
            hits = 0

        ttl = self._select_ttl(hits, request)
        self.l1.set(key, value, ttl=ttl)
        try:
            self.l3.set(key, value, source_lang, target_lang, ttl=ttl, hits=hits)
        except CacheError as e:
            self._record_error(e)

    @staticmethod
    def _pair_from_key(
        key: str, request: Optional[TranslationRequest]
    ) -> Tuple[str, str]:
        if request is not None:
            return request.source_lang, request.target_lang
        parts = key[len(KEY_PREFIX):].split(":") if key.startswith(KEY_PREFIX) else []
        if len(parts) >= 3:
            return parts[0], parts[1]
        return "", ""

    async def invalidate_language_pair(self, source_lang: str, target_lang: str) -> int:
        """Drop every cached translation for one language pair."""
        removed = self.l1.delete_prefix(f"{KEY_PREFIX}{source_lang}:{target_lang}:")
        try:
            removed = max(removed, self.l3.delete_language_pair(source_lang, target_lang))
        except CacheError as e:
            self._record_error(e)
        logger.info(
            f"Invalidated {removed} cached translations for {source_lang}->{target_lang}"
        )
        return removed

    async def clear_cache(self) -> None:
        self.l1.clear()
        try:
            removed = self.l3.clear()
        except CacheError as e:
            self._record_error(e)
            return
        logger.info(f"Translation cache cleared ({removed} persistent entries)")

    async def ping(self) -> bool:
        """Return True when the persistent tier answers."""
        try:
            self.l3.ping()
        except CacheError as e:
            self._record_error(e)
            return False
        return True

    def get_cache_stats(self) -> dict:
        """Combined L1/L3 statistics.

        L1 hit ratio represents the user-visible cache performance; L3 only
        reports entry counts.
        """
        l1_stats = self.l1.get_stats()
        try:
            l3_stats = self.l3.get_stats()
        except CacheError as e:
            self._record_error(e)
            l3_stats = {"available": False}
        return {
            "l1": l1_stats,
            "l3": l3_stats,
            "errors": self.errors,
            "ttl": {
                "default": self.default_ttl,
                "context": self.context_ttl,
                "frequent": self.frequent_ttl,
            },
        }

    def cleanup(self) -> int:
        """Purge expired entries from L3."""
        try:
            return self.l3.cleanup_expired()
        except CacheError as e:
            self._record_error(e)
            return 0
