"""
Identity Service - maps human slugs to canonical location IDs

Canonical IDs are 26 characters of Crockford Base32 (no I/L/O/U). Every
storage key downstream uses the canonical ID; a slug that has no alias
record is an unknown location, never a storage key of its own.
"""
import hashlib
import json
import logging
import re
from typing import Iterable, Optional

from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore

logger = logging.getLogger(__name__)

CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
CANONICAL_ID_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")
CANONICAL_ID_LENGTH = 26

# 2025-01-01T00:00:00.000Z; fixed so seeded IDs never change between runs
DETERMINISTIC_EPOCH_MS = 1735689600000


def is_canonical(value: Optional[str]) -> bool:
    return bool(value) and bool(CANONICAL_ID_RE.match(value))


def encode_base32(data: bytes) -> str:
    """Crockford Base32, MSB-first, no padding; a trailing partial group is left-shifted"""
    out = []
    bits = 0
    acc = 0
    for byte in data:
        acc = (acc << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            out.append(CROCKFORD_ALPHABET[(acc >> bits) & 31])
            acc &= (1 << bits) - 1
    if bits:
        out.append(CROCKFORD_ALPHABET[(acc << (5 - bits)) & 31])
    return "".join(out)


def deterministic_id(slug: str) -> str:
    """
    Derive a canonical-shaped ID from a slug alone.

    48-bit fixed timestamp + first 80 bits of SHA-256(slug) = 16 bytes,
    Base32-encoded and fitted to 26 characters. Reproducible offline, so the
    alias table can be rebuilt from a profile listing at any time.
    """
    time48 = DETERMINISTIC_EPOCH_MS.to_bytes(6, "big")
    digest = hashlib.sha256(slug.encode("utf-8")).digest()[:10]
    encoded = encode_base32(time48 + digest)
    return encoded.ljust(CANONICAL_ID_LENGTH, "0")[:CANONICAL_ID_LENGTH]


def _parse_alias_value(raw: Optional[str]) -> Optional[str]:
    """Alias values are {"locationID": ...}; a bare JSON or plain string is accepted too"""
    if not raw:
        return None
    value = raw.strip()
    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = value
    if isinstance(parsed, dict):
        parsed = parsed.get("locationID")
    if isinstance(parsed, str) and is_canonical(parsed.strip()):
        return parsed.strip()
    return None


class IdentityResolver:
    """Resolve slugs or canonical IDs against the alias table"""

    def __init__(self, store: KVStore):
        self.store = store

    def resolve(self, id_or_slug: Optional[str]) -> Optional[str]:
        """
        Return the canonical ID for ``id_or_slug`` or None if unknown.

        Canonical input is returned as-is without touching the store.
        """
        value = (id_or_slug or "").strip()
        if not value:
            return None
        if is_canonical(value):
            return value
        return _parse_alias_value(self.store.get(keys.alias_key(value)))

    def put_alias(self, slug: str, canonical_id: str) -> None:
        slug = slug.strip()
        if not slug or not is_canonical(canonical_id):
            raise ValueError(f"Refusing alias {slug!r} -> {canonical_id!r}")
        self.store.put(keys.alias_key(slug), json.dumps({"locationID": canonical_id}))

    def find_slug(self, canonical_id: str) -> Optional[str]:
        """Reverse lookup: first slug whose alias points at ``canonical_id``"""
        for name in self.store.iter_keys(keys.ALIAS_PREFIX):
            if _parse_alias_value(self.store.get(name)) == canonical_id:
                return name[len(keys.ALIAS_PREFIX):]
        return None

    def seed(self, slugs: Iterable[str]) -> dict:
        """Write deterministic aliases for every non-canonical slug"""
        wrote = 0
        skipped = 0
        total = 0
        for slug in slugs:
            slug = (slug or "").strip()
            if not slug or is_canonical(slug):
                continue
            total += 1
            try:
                self.put_alias(slug, deterministic_id(slug))
                wrote += 1
            except Exception as e:
                logger.warning(f"Alias seed failed for {slug!r}: {e}")
                skipped += 1
        return {"wrote": wrote, "skipped": skipped, "total": total}
