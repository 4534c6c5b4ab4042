#!/usr/bin/env python3
"""Create the named indexes the app relies on, skipping the ones that already exist.

An index counts as existing when an index with the same name is already on
the collection; key patterns are not compared. Failures (e.g. a unique index
over duplicate data) are reported and do not stop the run.

Usage:
  python create_missing_indexes.py
  DRY_RUN=1 python create_missing_indexes.py
"""

import sys
import time

from pymongo.errors import OperationFailure

from mongo_config import MONGODB_DB, connect, dry_run

DRY_RUN = dry_run()

# (collection, name, keys, options)
INDEX_DEFINITIONS = [
    ("projects", "updatedAt_desc", [("updatedAt", -1)], {}),
    ("projects", "eventDate_desc", [("eventDate", -1)], {}),
    ("projects", "eventName_text", [("eventName", "text")], {}),
    ("projects", "hashtags_array", [("hashtags", 1)], {}),
    ("projects", "partnerId_lookup", [("partnerId", 1)], {"sparse": True}),
    ("projects", "viewSlug_unique", [("viewSlug", 1)], {"unique": True}),
    ("projects", "editSlug_unique", [("editSlug", 1)], {"unique": True}),

    ("bitly_links", "bitlink_unique", [("bitlink", 1)], {"unique": True}),
    ("bitly_links", "createdAt_desc", [("createdAt", -1)], {}),
    ("bitly_project_links", "projectId_lookup", [("projectId", 1)], {}),
    ("bitly_project_links", "bitlyLinkId_lookup", [("bitlyLinkId", 1)], {}),
    ("bitly_project_links", "projectId_bitlyLinkId_unique",
     [("projectId", 1), ("bitlyLinkId", 1)], {"unique": True}),

    ("partners", "name_lookup", [("name", 1)], {}),
    ("partners", "viewSlug_unique", [("viewSlug", 1)], {"unique": True, "sparse": True}),
    ("partner_analytics", "partnerId_unique", [("partnerId", 1)], {"unique": True}),

    ("chart_configurations", "chartId_lookup", [("chartId", 1)], {}),
    ("chart_configurations", "order_sort", [("order", 1)], {}),
    ("chart_configurations", "isActive_filter", [("isActive", 1)], {}),
    ("variables_metadata", "name_unique", [("name", 1)], {"unique": True}),
    ("variables_metadata", "category_filter", [("category", 1)], {}),

    ("hashtag_slugs", "hashtag_unique", [("hashtag", 1)], {"unique": True}),
    ("hashtag_slugs", "slug_unique", [("slug", 1)], {"unique": True}),
    ("filter_slugs", "slug_unique", [("slug", 1)], {"unique": True}),
    ("hashtag_colors", "hashtag_unique", [("hashtag", 1)], {"unique": True}),

    ("report_templates", "isDefault_filter", [("isDefault", 1)], {}),
    ("notifications", "createdAt_desc", [("createdAt", -1)], {}),
    ("notifications", "userId_createdAt", [("userId", 1), ("createdAt", -1)], {}),
    ("aggregation_logs", "createdAt_ttl", [("createdAt", 1)], {"expireAfterSeconds": 2592000}),  # 30 days
]


def missing_indexes(db, definitions=INDEX_DEFINITIONS):
    """Split definitions into (missing, existing) by index name."""
    info_cache = {}
    missing = []
    existing = []
    for definition in definitions:
        coll_name, name = definition[0], definition[1]
        if coll_name not in info_cache:
            info_cache[coll_name] = db[coll_name].index_information()
        if name in info_cache[coll_name]:
            existing.append(definition)
        else:
            missing.append(definition)
    return missing, existing


def create_indexes(db, definitions, dry=False):
    """Returns [(collection, name, status, detail)]; status is created/would-create/failed."""
    results = []
    for coll_name, name, keys, options in definitions:
        if dry:
            results.append((coll_name, name, "would-create", ""))
            print(f"  {coll_name}.{name}: would create {keys} {options or ''}")
            continue
        start = time.time()
        try:
            db[coll_name].create_index(keys, name=name, **options)
        except OperationFailure as e:
            results.append((coll_name, name, "failed", str(e)))
            print(f"  {coll_name}.{name}: FAILED {e}")
        else:
            elapsed = int((time.time() - start) * 1000)
            results.append((coll_name, name, "created", f"{elapsed}ms"))
            print(f"  {coll_name}.{name}: created ({elapsed}ms)")
    return results


def main():
    client, db = connect()
    print(f"Database: {MONGODB_DB}")

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    missing, existing = missing_indexes(db)

    print(f"\n--- 1. Existing indexes ({len(existing)}) ---")
    for coll_name, name, _, _ in existing:
        print(f"  {coll_name}.{name}")

    print(f"\n--- 2. Creating missing indexes ({len(missing)}) ---")
    results = create_indexes(db, missing, dry=DRY_RUN)
    failed = [r for r in results if r[2] == "failed"]

    print("\nSummary:")
    print(f"  Already present: {len(existing)}")
    print(f"  Created:         {sum(1 for r in results if r[2] == 'created')}")
    print(f"  Failed:          {len(failed)}")

    if DRY_RUN and missing:
        print("\n(No changes made — run without DRY_RUN=1 to apply)")

    client.close()
    print("Done!")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] {e}")
        sys.exit(1)
