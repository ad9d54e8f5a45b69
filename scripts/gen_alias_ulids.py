#!/usr/bin/env python3
"""
Alias NDJSON generator

Reads a profiles.json document and writes one bulk-upload line per location
slug, mapping ``alias:<slug>`` to its deterministic canonical ID. The output
matches what POST /api/admin/seed-alias-ulids writes directly.

Usage:
    python scripts/gen_alias_ulids.py --in profiles.json --out aliases.ndjson
"""
import argparse
import json
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from edge_analytics.db import keys
from edge_analytics.services.catalog_service import parse_profiles
from edge_analytics.services.identity_service import deterministic_id, is_canonical


def alias_lines(document):
    """Yield ``{"key", "value"}`` records; canonical slugs map to themselves"""
    for profile in parse_profiles(document):
        slug = profile.location_id
        if not slug:
            continue
        canonical = slug if is_canonical(slug) else deterministic_id(slug)
        yield {
            "key": keys.alias_key(slug),
            "value": json.dumps({"locationID": canonical}, separators=(",", ":")),
        }


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Generate deterministic alias records from profiles.json"
    )
    parser.add_argument(
        "--in",
        dest="in_path",
        default="profiles.json",
        help="Input profiles document (default: profiles.json)"
    )
    parser.add_argument(
        "--out",
        dest="out_path",
        default="aliases.ndjson",
        help="Output NDJSON file (default: aliases.ndjson)"
    )
    args = parser.parse_args(argv)

    with open(args.in_path, encoding="utf-8") as f:
        document = json.load(f)

    wrote = 0
    with open(args.out_path, "w", encoding="utf-8") as out:
        for line in alias_lines(document):
            out.write(json.dumps(line) + "\n")
            wrote += 1

    print(f"Wrote {wrote} alias lines -> {args.out_path}")
    return wrote


if __name__ == "__main__":
    main()
