#!/usr/bin/env python3
"""
Give every project hashtag a UUID slug in hashtag_slugs.

Hashtag report pages are addressed by /hashtag/<uuid>. The lookup fails for
hashtags that were added before slugs existed, so this script:
1. Collects every hashtag from projects.hashtags and every categorized
   hashtag from projects.categorizedHashtags (stored as "category:tag")
2. Removes duplicate slug documents (keeps the oldest per hashtag)
3. Inserts a slug document for each hashtag that has none

Re-running inserts nothing once every hashtag has its slug.

Usage:
  python migrate_hashtag_slugs.py
  DRY_RUN=1 python migrate_hashtag_slugs.py
"""

import datetime
import sys
import uuid

from mongo_config import connect, dry_run

DRY_RUN = dry_run()


def collect_hashtags(projects):
    """Return the sorted set of hashtags used by any project."""
    tags = set()
    for project in projects:
        hashtags = project.get("hashtags") or []
        if isinstance(hashtags, str):
            hashtags = hashtags.split(",")
        for tag in hashtags:
            if isinstance(tag, str) and tag.strip():
                tags.add(tag.strip())
        for category, cat_tags in (project.get("categorizedHashtags") or {}).items():
            for tag in cat_tags or []:
                if isinstance(tag, str) and tag.strip():
                    tags.add(f"{category}:{tag.strip()}")
    return sorted(tags)


def find_duplicate_slugs(slug_docs):
    """Return the _ids of every slug doc after the first one for its hashtag."""
    seen = set()
    duplicates = []
    for doc in slug_docs:
        tag = doc.get("hashtag")
        if tag in seen:
            duplicates.append(doc["_id"])
        else:
            seen.add(tag)
    return duplicates


def migrate_slugs(db, dry=False):
    """Returns (created, removed_duplicates, total_hashtags)."""
    slugs_col = db["hashtag_slugs"]
    projects = db["projects"].find({}, {"hashtags": 1, "categorizedHashtags": 1})
    hashtags = collect_hashtags(projects)
    print(f"Found {len(hashtags)} distinct hashtags across projects")

    slug_docs = list(slugs_col.find({}).sort([("createdAt", 1), ("_id", 1)]))
    duplicates = find_duplicate_slugs(slug_docs)
    if duplicates:
        print(f"Removing {len(duplicates)} duplicate slug documents")
        if not dry:
            slugs_col.delete_many({"_id": {"$in": duplicates}})

    existing = {doc.get("hashtag") for doc in slug_docs}
    created = 0
    for tag in hashtags:
        if tag in existing:
            continue
        slug = str(uuid.uuid4())
        print(f"  {tag} -> {slug}")
        if not dry:
            slugs_col.update_one(
                {"hashtag": tag},
                {"$setOnInsert": {
                    "hashtag": tag,
                    "slug": slug,
                    "createdAt": datetime.datetime.utcnow().isoformat(),
                }},
                upsert=True,
            )
        created += 1

    return created, len(duplicates), len(hashtags)


def main():
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    print("--- Migrating hashtag slugs ---")
    created, removed, total = migrate_slugs(db, dry=DRY_RUN)

    print("\nSummary:")
    print(f"  Hashtags:            {total}")
    print(f"  Slugs created:       {created}")
    print(f"  Duplicates removed:  {removed}")
    print(f"  Already had a slug:  {total - created}")

    if DRY_RUN:
        print("\n(No changes made — run without DRY_RUN=1 to apply)")

    client.close()
    print("Done!")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] {e}")
        sys.exit(1)
