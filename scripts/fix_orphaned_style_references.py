#!/usr/bin/env python3
"""
Fix style references that point at deleted page_styles_enhanced documents.

Projects, partners and report templates reference a theme via styleId
(projects also via the older styleIdEnhanced). When the style has been
deleted the app silently falls back to the default theme; this makes the
fallback explicit by setting the reference to null.

Style IDs are stored either as ObjectId or as their hex string, so both
sides are compared as strings.

Usage:
  python fix_orphaned_style_references.py
  DRY_RUN=1 python fix_orphaned_style_references.py
"""

import datetime
import sys

from mongo_config import connect, dry_run

DRY_RUN = dry_run()

# collection -> fields holding a page_styles_enhanced id
STYLE_REFERENCES = [
    ("projects", "styleId"),
    ("projects", "styleIdEnhanced"),
    ("partners", "styleId"),
    ("report_templates", "styleId"),
]


def find_orphans(docs, field, existing_ids):
    """Return the docs whose field references a style id not in existing_ids."""
    orphans = []
    for doc in docs:
        ref = doc.get(field)
        if ref in (None, ""):
            continue
        if str(ref) not in existing_ids:
            orphans.append(doc)
    return orphans


def doc_label(doc):
    return doc.get("eventName") or doc.get("name") or str(doc["_id"])


def fix_references(db, dry=False):
    """Returns {(collection, field): orphan_count}."""
    existing_ids = {str(s["_id"]) for s in db["page_styles_enhanced"].find({}, {"_id": 1})}
    print(f"Found {len(existing_ids)} existing styles\n")

    results = {}
    for n, (coll_name, field) in enumerate(STYLE_REFERENCES, 1):
        print(f"--- {n}. {coll_name}.{field} ---")
        coll = db[coll_name]
        docs = list(coll.find(
            {field: {"$exists": True, "$nin": [None, ""]}},
            {field: 1, "eventName": 1, "name": 1},
        ))
        orphans = find_orphans(docs, field, existing_ids)
        print(f"  {len(docs)} documents reference a style, {len(orphans)} orphaned")
        for doc in orphans:
            print(f"  {doc['_id']} ({doc_label(doc)}): {doc[field]} -> null")
        if orphans and not dry:
            result = coll.update_many(
                {"_id": {"$in": [d["_id"] for d in orphans]}},
                {"$set": {field: None, "updatedAt": datetime.datetime.utcnow().isoformat()}},
            )
            print(f"  Updated {result.modified_count} documents")
        results[(coll_name, field)] = len(orphans)
        print()
    return results


def main():
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    results = fix_references(db, dry=DRY_RUN)
    total = sum(results.values())

    print("Summary:")
    for (coll_name, field), count in results.items():
        print(f"  {coll_name}.{field}: {count}")
    if total == 0:
        print("  No orphaned references — database is clean")

    if DRY_RUN and total:
        print("\n(No changes made — run without DRY_RUN=1 to apply)")

    client.close()
    print("Done!")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] {e}")
        sys.exit(1)
