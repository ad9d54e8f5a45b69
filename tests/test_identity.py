import json

import pytest

from edge_analytics.db import keys
from edge_analytics.services.identity_service import (
    CANONICAL_ID_RE,
    deterministic_id,
    encode_base32,
    is_canonical,
)
from tests.conftest import CAFE_ID, CAFE_SLUG, HOTEL_ID, HOTEL_SLUG

OTHER_ID = "ABCDEFGHJKMNPQRSTVWXYZ0123"


class CountingStore:
    """Wraps a KVStore and counts reads"""

    def __init__(self, store):
        self.store = store
        self.reads = 0

    def get(self, key):
        self.reads += 1
        return self.store.get(key)

    def __getattr__(self, name):
        return getattr(self.store, name)


def test_deterministic_id_golden_vectors():
    assert deterministic_id(CAFE_SLUG) == CAFE_ID
    assert deterministic_id(HOTEL_SLUG) == HOTEL_ID


def test_deterministic_id_shape_and_fixed_time_prefix():
    for slug in ("a", "my-cafe", "hotel-budapest", "ünnep-étterem", "x" * 200):
        value = deterministic_id(slug)
        assert len(value) == 26
        assert CANONICAL_ID_RE.match(value)
        # 2025-01-01T00:00:00Z occupies the leading characters of every ID
        assert value.startswith("06A1YABW0")


def test_deterministic_id_is_stable():
    assert deterministic_id("my-cafe") == deterministic_id("my-cafe")
    assert deterministic_id("my-cafe") != deterministic_id("my-cafe-2")


def test_encode_base32_left_shifts_partial_group():
    assert encode_base32(b"") == ""
    assert encode_base32(b"\x00") == "00"
    assert encode_base32(b"\xff") == "ZW"


@pytest.mark.parametrize("value,expected", [
    (CAFE_ID, True),
    (OTHER_ID, True),
    (CAFE_ID.lower(), False),
    ("06A1YABW0103WA44T8RVABKK2", False),
    ("06A1YABW0103WA44T8RVABKK2I", False),
    ("", False),
    (None, False),
])
def test_is_canonical(value, expected):
    assert is_canonical(value) is expected


def test_canonical_input_resolves_without_store_read(store, resolver):
    counting = CountingStore(store)
    resolver.store = counting
    assert resolver.resolve(OTHER_ID) == OTHER_ID
    assert counting.reads == 0


def test_unknown_slug_then_seeded_alias(resolver):
    assert resolver.resolve(CAFE_SLUG) is None
    resolver.put_alias(CAFE_SLUG, OTHER_ID)
    assert resolver.resolve(CAFE_SLUG) == OTHER_ID
    assert resolver.resolve(CAFE_SLUG) == OTHER_ID


def test_resolve_accepts_legacy_alias_encodings(store, resolver):
    store.put(keys.alias_key("bare-json"), json.dumps(OTHER_ID))
    store.put(keys.alias_key("plain"), OTHER_ID)
    store.put(keys.alias_key("broken"), "{not json")
    store.put(keys.alias_key("wrong-shape"), json.dumps({"locationID": "short"}))

    assert resolver.resolve("bare-json") == OTHER_ID
    assert resolver.resolve("plain") == OTHER_ID
    assert resolver.resolve("broken") is None
    assert resolver.resolve("wrong-shape") is None


def test_resolve_blank_is_not_found(resolver):
    assert resolver.resolve("") is None
    assert resolver.resolve("   ") is None
    assert resolver.resolve(None) is None


def test_put_alias_rejects_non_canonical_target(resolver):
    with pytest.raises(ValueError):
        resolver.put_alias(CAFE_SLUG, "not-an-id")
    with pytest.raises(ValueError):
        resolver.put_alias("  ", OTHER_ID)


def test_find_slug(seeded):
    assert seeded.find_slug(HOTEL_ID) == HOTEL_SLUG
    assert seeded.find_slug(OTHER_ID) is None


def test_seed_skips_canonical_and_blank_slugs(resolver):
    result = resolver.seed([CAFE_SLUG, HOTEL_SLUG, OTHER_ID, "", None])
    assert result == {"wrote": 2, "skipped": 0, "total": 2}
    assert resolver.resolve(CAFE_SLUG) == CAFE_ID
    assert resolver.resolve(HOTEL_SLUG) == HOTEL_ID
