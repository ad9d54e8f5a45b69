"""
Key-value store access.

The service keeps all state in a flat key namespace with per-key expiry.
Reads may lag writes and there are no multi-key transactions, so nothing
built on top of this module may assume read-after-write or atomicity.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

import redis

from edge_analytics.config import settings

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = set("*?[]\\")


def _glob_escape(prefix: str) -> str:
    """Escape Redis MATCH metacharacters in a literal prefix"""
    return "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in prefix)


@dataclass
class KeyPage:
    """One page of a prefix listing; ``cursor`` is None on the last page"""
    keys: List[str] = field(default_factory=list)
    cursor: Optional[str] = None


class KVStore:
    """
    Redis-backed key-value store.

    Only GET/SET/DEL and cursor-based SCAN are used, which keeps the
    access pattern portable to any eventually consistent KV backend.
    """

    def __init__(self, client: redis.Redis, scan_count: Optional[int] = None):
        self._client = client
        self._scan_count = scan_count or settings.KV_SCAN_COUNT

    @classmethod
    def from_url(cls, url: str) -> "KVStore":
        return cls(redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[str]:
        value = self._client.get(key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            self._client.set(key, value, ex=int(ttl))
        else:
            self._client.set(key, value)

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def list_keys(self, prefix: str, cursor: Optional[str] = None) -> KeyPage:
        """
        Return one page of keys starting with ``prefix``.

        Pass the returned cursor back in to continue. A page may be empty
        while the cursor is still open, and SCAN may repeat a key across pages.
        """
        next_cursor, keys = self._client.scan(
            cursor=int(cursor or 0),
            match=_glob_escape(prefix) + "*",
            count=self._scan_count
        )
        names = [k.decode("utf-8") if isinstance(k, bytes) else k for k in keys]
        next_cursor = int(next_cursor)
        return KeyPage(keys=names, cursor=str(next_cursor) if next_cursor else None)

    def iter_keys(self, prefix: str) -> Iterator[str]:
        """Walk every page for ``prefix``, yielding each key once"""
        seen = set()
        cursor: Optional[str] = None
        while True:
            page = self.list_keys(prefix, cursor)
            for key in page.keys:
                if key in seen:
                    continue
                seen.add(key)
                yield key
            cursor = page.cursor
            if not cursor:
                break

    def ping(self) -> bool:
        return bool(self._client.ping())
