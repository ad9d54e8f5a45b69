"""
Maintenance Service - one-off batch jobs over the key namespace

These back the bearer-gated /api/admin/* endpoints. They are not part of the
request path and, like everything else, rely on read-modify-write.
"""
import logging
from typing import Dict, Iterable

from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore
from edge_analytics.schemas import LocationProfile
from edge_analytics.services.counter_service import CounterStore, parse_count
from edge_analytics.services.identity_service import IdentityResolver, is_canonical

logger = logging.getLogger(__name__)


class MaintenanceService:
    def __init__(self, store: KVStore, resolver: IdentityResolver, counters: CounterStore):
        self.store = store
        self.resolver = resolver
        self.counters = counters

    def purge_legacy(self, mode: str = "merge") -> Dict[str, object]:
        """
        Clean up underscore-spelled event counters.

        ``merge`` adds each legacy value into its hyphenated key before
        deleting it; ``burn`` deletes legacy keys outright.
        """
        if mode not in ("merge", "burn"):
            raise ValueError(f"Unknown purge mode {mode!r}")
        migrated = 0
        removed = 0
        for name in list(self.store.iter_keys(keys.STATS_PREFIX)):
            parsed = keys.split_day_key(name)
            if parsed is None or "_" not in parsed.tail:
                continue
            if mode == "merge":
                value = parse_count(self.store.get(name))
                if value:
                    target = keys.stat_key(parsed.location_id, parsed.day, parsed.tail.replace("_", "-"))
                    self.counters.add_to_key(target, value)
                    migrated += 1
            self.store.delete(name)
            removed += 1

        logger.info(f"purge-legacy ({mode}): migrated={migrated} removed={removed}")
        return {"ok": True, "mode": mode, "migrated": migrated, "removed": removed}

    def backfill_slug_stats(self) -> Dict[str, object]:
        """Move slug-keyed counters onto their canonical-ID keys"""
        moved = 0
        removed = 0
        skipped = 0
        for name in list(self.store.iter_keys(keys.STATS_PREFIX)):
            parsed = keys.split_day_key(name)
            if parsed is None:
                continue
            if is_canonical(parsed.location_id):
                skipped += 1
                continue
            canonical = self.resolver.resolve(parsed.location_id)
            if not canonical:
                skipped += 1
                continue

            value = parse_count(self.store.get(name))
            if value:
                target = keys.stat_key(canonical, parsed.day, parsed.tail.replace("_", "-"))
                self.counters.add_to_key(target, value)
                moved += 1
            else:
                removed += 1
            self.store.delete(name)

        logger.info(f"backfill-slug-stats: moved={moved} removed={removed} skipped={skipped}")
        return {"ok": True, "moved": moved, "removed": removed, "skipped": skipped}

    def seed_aliases(self, profiles: Iterable[LocationProfile]) -> Dict[str, object]:
        """Write deterministic alias records for every profile slug"""
        result = self.resolver.seed(p.location_id for p in profiles)
        logger.info(f"seed-alias-ulids: {result}")
        return {"ok": True, **result}
