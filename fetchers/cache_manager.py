"""Response cache for source repository requests, keyed by request URL."""

import hashlib
import json
import logging
import os
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from dateutil.parser import isoparse

from models import CacheEntry

logger = logging.getLogger('content_store_migrator.fetcher.cache')

META_SUFFIX = '.meta.json'


class CacheMode(Enum):
    """Cache operation modes."""
    USE = "use"
    REFRESH = "refresh"
    DISABLE = "disable"


def normalize_url(url: str) -> str:
    """
    Normalize a request URL into a cache key.

    Lowercases scheme and host and drops the fragment; path and query are
    kept verbatim because the source treats them case-sensitively.
    """
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ''))


def cache_file_name(url: str) -> str:
    """
    Derive a readable, collision-resistant file name for a URL.

    ``https://host/a/jcr:content.infinity.json`` becomes
    ``jcr-content.infinity-<md5[:8]>.json``.
    """
    key = normalize_url(url)
    url_hash = hashlib.md5(key.encode('utf-8')).hexdigest()[:8]

    base_name = urlsplit(key).path.rstrip('/').split('/')[-1] or 'index'
    base_name = base_name.replace(':', '-')

    if '.' in base_name:
        stem, ext = base_name[:base_name.rfind('.')], base_name[base_name.rfind('.'):]
    else:
        stem, ext = base_name, ''
    return f"{stem}-{url_hash}{ext}"


class BaseResponseCache:
    """Shared bookkeeping for cache implementations."""

    def __init__(self, mode: CacheMode = CacheMode.USE):
        self.mode = CacheMode(mode)
        self.stats = {
            'hits': 0,
            'misses': 0,
            'writes': 0
        }
        self._lock = threading.Lock()

    def _count(self, stat: str) -> None:
        with self._lock:
            self.stats[stat] += 1

    def get(self, key: str) -> Optional[bytes]:
        """Return the cached body for a URL, or None."""
        entry = self.get_entry(key)
        return entry.body if entry else None

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    def put(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics including hit rate."""
        total = self.stats['hits'] + self.stats['misses']
        return {
            'mode': self.mode.value,
            'hits': self.stats['hits'],
            'misses': self.stats['misses'],
            'writes': self.stats['writes'],
            'hit_rate': self.stats['hits'] / total if total else 0.0
        }


class MemoryResponseCache(BaseResponseCache):
    """In-process cache with the same contract as ResponseCache."""

    def __init__(self, mode: CacheMode = CacheMode.USE):
        super().__init__(mode)
        self._entries: Dict[str, CacheEntry] = {}

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        if self.mode != CacheMode.USE:
            return None
        entry = self._entries.get(normalize_url(key))
        self._count('hits' if entry else 'misses')
        return entry

    def put(self, key: str, data: bytes) -> None:
        if self.mode == CacheMode.DISABLE:
            return
        normalized = normalize_url(key)
        self._entries[normalized] = CacheEntry(
            key=normalized,
            body=bytes(data),
            fetched_at=datetime.now(timezone.utc)
        )
        self._count('writes')

    def __len__(self) -> int:
        return len(self._entries)


class ResponseCache(BaseResponseCache):
    """
    Filesystem cache of raw source responses, scoped to one content store.

    Entries never expire. Each body is stored next to a small metadata file
    recording the original URL, fetch time and checksum.
    """

    def __init__(self, cache_dir: str, mode: CacheMode = CacheMode.USE):
        """
        Initialize response cache.

        Args:
            cache_dir: Directory holding this store's cached responses
            mode: Cache mode (use, refresh, disable)
        """
        super().__init__(mode)
        self.cache_dir = os.path.abspath(cache_dir)
        logger.debug(f"Response cache: mode={self.mode.value}, directory={self.cache_dir}")

    def cache_file_path(self, key: str) -> str:
        """Path of the body file for a URL."""
        return os.path.join(self.cache_dir, cache_file_name(key))

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """
        Retrieve a cached response.

        Args:
            key: Request URL

        Returns:
            CacheEntry or None if absent, unreadable or reads are disabled
        """
        if self.mode != CacheMode.USE:
            return None

        body_file = self.cache_file_path(key)
        if not os.path.exists(body_file):
            self._count('misses')
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            with open(body_file, 'rb') as f:
                body = f.read()
            fetched_at = self._read_fetched_at(body_file)
        except OSError as e:
            self._count('misses')
            logger.warning(f"Cache read error for {key}: {str(e)}")
            return None

        self._count('hits')
        logger.debug(f"Using cached: {os.path.basename(body_file)}")
        return CacheEntry(key=normalize_url(key), body=body, fetched_at=fetched_at)

    def put(self, key: str, data: bytes) -> None:
        """
        Store a response body.

        Args:
            key: Request URL
            data: Raw response body
        """
        if self.mode == CacheMode.DISABLE:
            return

        os.makedirs(self.cache_dir, exist_ok=True)
        body_file = self.cache_file_path(key)

        try:
            with open(body_file, 'wb') as f:
                f.write(data)

            metadata = {
                'url': normalize_url(key),
                'fetched_at': datetime.now(timezone.utc).isoformat(),
                'sha256': hashlib.sha256(data).hexdigest(),
                'size_bytes': len(data)
            }
            with open(body_file + META_SUFFIX, 'w', encoding='utf-8') as f:
                json.dump(metadata, f, indent=2)
        except OSError as e:
            logger.warning(f"Cache write error for {key}: {str(e)}")
            return

        self._count('writes')
        logger.debug(f"Cache stored: {key} ({len(data)} bytes)")

    def clear(self) -> int:
        """
        Remove every cached entry for this store.

        Returns:
            Number of entries cleared
        """
        if not os.path.isdir(self.cache_dir):
            return 0

        cleared = 0
        for filename in os.listdir(self.cache_dir):
            file_path = os.path.join(self.cache_dir, filename)
            try:
                os.remove(file_path)
            except OSError as e:
                logger.warning(f"Failed to clear cache file {file_path}: {str(e)}")
                continue
            if not filename.endswith(META_SUFFIX):
                cleared += 1

        logger.info(f"Cleared {cleared} cache entries from {self.cache_dir}")
        return cleared

    @staticmethod
    def _read_fetched_at(body_file: str) -> datetime:
        """Read the fetch timestamp, falling back to the file's mtime."""
        meta_file = body_file + META_SUFFIX
        try:
            with open(meta_file, 'r', encoding='utf-8') as f:
                return isoparse(json.load(f)['fetched_at'])
        except (OSError, ValueError, KeyError):
            return datetime.fromtimestamp(os.path.getmtime(body_file), tz=timezone.utc)


__all__ = [
    'CacheMode',
    'ResponseCache',
    'MemoryResponseCache',
    'normalize_url',
    'cache_file_name'
]
