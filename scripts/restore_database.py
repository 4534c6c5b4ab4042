#!/usr/bin/env python3
"""
Restore collections from a backup made by backup_database.py.

Defaults to a dry run: nothing is written unless DRY_RUN=0. Every collection
file is checked against the manifest's MD5 checksum before it is used; a
mismatch fails that collection and leaves the database untouched for it.

A manifest whose integrity was not verified at backup time is refused, and a
collection that already holds documents is skipped, unless FORCE=1 (which
then drops the existing collection before inserting).

Usage:
  python restore_database.py messmass_backup_2025-11-02T19-30-00-000Z
  python restore_database.py messmass_backup_... projects
  DRY_RUN=0 python restore_database.py messmass_backup_...
  DRY_RUN=0 FORCE=1 python restore_database.py messmass_backup_...
"""

import os
import sys

from pymongo.errors import OperationFailure, PyMongoError

from backup_files import MANIFEST, backup_path, collection_path, documents_checksum, read_json
from mongo_config import MONGODB_DB, connect, dry_run

DRY_RUN = dry_run(default="1")
FORCE = os.environ.get("FORCE", "0") == "1"

# index_information() keys that create_index does not accept
_INDEX_META = ("v", "ns", "key", "name")


class RestoreError(Exception):
    pass


def load_manifest(backup_dir, force=False):
    if not os.path.isdir(backup_dir):
        raise RestoreError(f"Backup not found: {backup_dir}")
    path = os.path.join(backup_dir, MANIFEST)
    if not os.path.exists(path):
        raise RestoreError("Backup manifest not found. Invalid backup.")
    manifest = read_json(path)
    if not manifest.get("integrity", {}).get("verified"):
        print("WARNING: backup integrity was not verified when it was created")
        if not force:
            raise RestoreError("Refusing to restore unverified backup (set FORCE=1 to override)")
    return manifest


def select_collections(manifest, collection=None):
    names = [c["name"] for c in manifest.get("collections", [])]
    if collection is None:
        return names
    if collection not in names:
        raise RestoreError(f'Collection "{collection}" not found in backup')
    return [collection]


def load_collection(backup_dir, manifest, name):
    """Return (documents, indexes) after checking the manifest checksum."""
    path = collection_path(backup_dir, name)
    if not os.path.exists(path):
        raise RestoreError(f"Backup file not found: {name}.json")
    data = read_json(path)
    documents = data.get("documents", [])
    expected = manifest.get("integrity", {}).get("checksums", {}).get(name)
    if expected:
        actual = documents_checksum(documents)
        if actual != expected:
            raise RestoreError(f"Checksum mismatch for {name}: expected {expected}, got {actual}")
    return documents, data.get("indexes", [])


def recreate_indexes(coll, indexes):
    created = 0
    for index in indexes:
        if index.get("name") == "_id_":
            continue
        options = {k: v for k, v in index.items() if k not in _INDEX_META}
        keys = [tuple(k) for k in index["key"]]
        try:
            coll.create_index(keys, name=index["name"], **options)
            created += 1
        except OperationFailure as e:
            print(f"    WARN: could not create index {index['name']}: {e}")
    return created


def restore_collection(db, name, documents, indexes, dry=True, force=False):
    """Returns "restored", "skipped" or "dry-run"."""
    if dry:
        print(f"    Would restore {len(documents)} documents, {max(len(indexes) - 1, 0)} indexes")
        return "dry-run"

    coll = db[name]
    existing = coll.count_documents({})
    if existing:
        if not force:
            print(f"    Collection already has {existing} documents, skipping (FORCE=1 to overwrite)")
            return "skipped"
        print(f"    Dropping existing collection ({existing} documents)")
        coll.drop()

    if documents:
        coll.insert_many(documents)
    created = recreate_indexes(coll, indexes)
    print(f"    Inserted {len(documents)} documents, created {created} indexes")
    return "restored"


def restore_backup(db, backup_dir, collection=None, dry=True, force=False):
    """Returns {collection: status}; status is restored/skipped/dry-run/failed."""
    manifest = load_manifest(backup_dir, force=force)
    print(f"  Timestamp:   {manifest.get('timestamp')}")
    print(f"  Collections: {manifest.get('totalCollections')}")
    print(f"  Documents:   {manifest.get('totalDocuments')}")

    results = {}
    for name in select_collections(manifest, collection):
        print(f"\n  {name}")
        try:
            documents, indexes = load_collection(backup_dir, manifest, name)
            print(f"    Checksum OK ({len(documents)} documents)")
            results[name] = restore_collection(db, name, documents, indexes, dry=dry, force=force)
        except (RestoreError, PyMongoError, OSError) as e:
            print(f"    ERROR {e}")
            results[name] = "failed"
    return results


def main():
    if len(sys.argv) < 2:
        print("Usage: python restore_database.py <backup_name> [collection]")
        sys.exit(1)
    backup_dir = backup_path(sys.argv[1])
    collection = sys.argv[2] if len(sys.argv) > 2 else None

    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")
    else:
        print("=" * 60)
        print(f"  RESTORING INTO {MONGODB_DB}{' (FORCE)' if FORCE else ''}")
        print("=" * 60)

    print(f"--- Backup {backup_dir} ---")
    try:
        results = restore_backup(db, backup_dir, collection, dry=DRY_RUN, force=FORCE)
    except RestoreError as e:
        print(f"[FATAL] {e}")
        client.close()
        sys.exit(1)

    failed = [n for n, status in results.items() if status == "failed"]
    print("\nSummary:")
    print(f"  Collections processed: {len(results)}")
    print(f"  Restored:              {sum(1 for s in results.values() if s == 'restored')}")
    print(f"  Skipped:               {sum(1 for s in results.values() if s == 'skipped')}")
    print(f"  Errors:                {len(failed)}")

    if DRY_RUN:
        print("\n(No changes made — run with DRY_RUN=0 to apply)")

    client.close()
    print("Done!")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] Restore failed: {e}")
        sys.exit(1)
