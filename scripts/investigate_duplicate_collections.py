#!/usr/bin/env python3
"""Compare duplicate collections left behind by the camelCase -> snake_case rename."""

import sys

from mongo_config import connect

# (legacy, current)
COLLECTION_PAIRS = [
    ("chartConfigurations", "chart_configurations"),
    ("variablesGroups", "variables_groups"),
    ("variablesConfig", "variables_metadata"),
    ("local_users", "users"),
    ("bitly_link_project_junction", "bitly_project_links"),
]


def count_label(count):
    return "missing" if count is None else f"{count} docs"


def junction_pairs(docs):
    return {f"{d.get('projectId')}-{d.get('bitlyLinkId')}" for d in docs}


def main():
    client, db = connect()
    names = set(db.list_collection_names())

    print("\n--- Collection pairs ---")
    for legacy, current in COLLECTION_PAIRS:
        legacy_count = db[legacy].count_documents({}) if legacy in names else None
        current_count = db[current].count_documents({}) if current in names else None
        print(f"  {legacy:30s} {count_label(legacy_count):>12s}  |  {current:25s} {count_label(current_count):>12s}")
        if legacy_count:
            print(f"    WARN: legacy collection {legacy} still holds data")

    print("\n--- Bitly junction overlap ---")
    legacy = junction_pairs(db["bitly_link_project_junction"].find({}, {"projectId": 1, "bitlyLinkId": 1}))
    current = junction_pairs(db["bitly_project_links"].find({}, {"projectId": 1, "bitlyLinkId": 1}))
    print(f"  bitly_link_project_junction: {len(legacy)} pairs")
    print(f"  bitly_project_links:         {len(current)} pairs")
    print(f"  Common pairs:                {len(legacy & current)}")
    print(f"  Only in legacy table:        {len(legacy - current)}")

    print("\n--- Project slug fields ---")
    with_slugs = db["projects"].count_documents({"$or": [
        {"viewSlug": {"$exists": True}}, {"editSlug": {"$exists": True}}]})
    without = db["projects"].count_documents({"$or": [
        {"viewSlug": {"$exists": False}}, {"editSlug": {"$exists": False}}]})
    print(f"  Projects with viewSlug/editSlug: {with_slugs}")
    print(f"  Projects missing one of them:    {without}")

    client.close()
    print("Done!")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] {e}")
        sys.exit(1)
