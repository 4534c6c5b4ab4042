#!/usr/bin/env python3
"""
Back up every collection of the MessMass database to local files.

Writes scripts/backups/messmass_backup_<timestamp>/ with one Extended JSON
file per collection (documents + index specs), a manifest.json holding
counts, sizes and per-collection MD5 checksums, and a human-readable
BACKUP_SUMMARY.txt. Restore with restore_database.py.

Usage:
  python backup_database.py
"""

import datetime
import os
import sys

from pymongo.errors import OperationFailure

from backup_files import (
    MANIFEST, SUMMARY, backup_path, collection_path, documents_checksum, write_json,
)
from mongo_config import MONGODB_DB, connect

FORMAT_VERSION = "1"


def backup_name(now=None):
    now = now or datetime.datetime.utcnow()
    return "messmass_backup_" + now.strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3] + "Z"


def index_specs(coll):
    return [dict(info, name=name) for name, info in coll.index_information().items()]


def collection_size(db, name):
    try:
        return db.command("collStats", name).get("size", 0)
    except OperationFailure:
        return 0


def backup_collection(db, name, backup_dir):
    """Write one collection file; returns (manifest entry, checksum)."""
    coll = db[name]
    documents = list(coll.find({}))
    indexes = index_specs(coll)
    size = collection_size(db, name)
    write_json(collection_path(backup_dir, name), {
        "name": name,
        "documentCount": len(documents),
        "documents": documents,
        "indexes": indexes,
        "backedUpAt": datetime.datetime.utcnow().isoformat(),
    })
    entry = {"name": name, "documentCount": len(documents), "indexes": len(indexes), "sizeBytes": size}
    return entry, documents_checksum(documents)


def backup_database(db, backup_dir):
    """Back up all collections into backup_dir and return the manifest."""
    os.makedirs(os.path.join(backup_dir, "collections"), exist_ok=True)
    names = sorted(db.list_collection_names())
    manifest = {
        "timestamp": datetime.datetime.utcnow().isoformat(),
        "version": FORMAT_VERSION,
        "database": db.name,
        "totalCollections": len(names),
        "totalDocuments": 0,
        "totalSize": 0,
        "collections": [],
        "integrity": {"verified": False, "checksums": {}},
    }
    failed = []
    for name in names:
        print(f"  {name}...", end=" ")
        try:
            entry, checksum = backup_collection(db, name, backup_dir)
        except (OperationFailure, OSError) as e:
            print(f"ERROR {e}")
            failed.append(name)
            continue
        manifest["collections"].append(entry)
        manifest["integrity"]["checksums"][name] = checksum
        manifest["totalDocuments"] += entry["documentCount"]
        manifest["totalSize"] += entry["sizeBytes"]
        print(f"{entry['documentCount']} docs, {entry['indexes']} indexes, {entry['sizeBytes'] / 1024:.2f} KB")

    # verified only when every collection was written
    manifest["integrity"]["verified"] = not failed
    manifest["integrity"]["failed"] = failed
    write_json(os.path.join(backup_dir, MANIFEST), manifest)
    with open(os.path.join(backup_dir, SUMMARY), "w", encoding="utf-8") as f:
        f.write(summary_text(manifest, backup_dir))
    return manifest


def summary_text(manifest, backup_dir):
    name = os.path.basename(backup_dir)
    lines = [
        "=" * 80,
        "DATABASE BACKUP SUMMARY",
        "=" * 80,
        "",
        f"Timestamp: {manifest['timestamp']}",
        f"Database:  {manifest.get('database', '')}",
        f"Location:  {backup_dir}",
        "",
        f"Total Collections: {manifest['totalCollections']}",
        f"Total Documents:   {manifest['totalDocuments']:,}",
        f"Total Size:        {manifest['totalSize'] / 1024 / 1024:.2f} MB",
        "",
        "COLLECTIONS:",
    ]
    for coll in sorted(manifest["collections"], key=lambda c: -c["documentCount"]):
        lines.append(
            f"  {coll['name']:35s} {coll['documentCount']:8d} docs  |  "
            f"{coll['sizeBytes'] / 1024:10.2f} KB  |  {coll['indexes']} indexes")
    lines += [
        "",
        f"Integrity: {'VERIFIED' if manifest['integrity']['verified'] else 'NOT VERIFIED'}",
        f"Checksums: {len(manifest['integrity']['checksums'])} collections",
        "",
        "RESTORE:",
        f"  DRY_RUN=1 python scripts/restore_database.py {name}",
        f"  DRY_RUN=0 python scripts/restore_database.py {name}",
        f"  DRY_RUN=0 python scripts/restore_database.py {name} projects",
        "",
    ]
    return "\n".join(lines)


def main():
    client, db = connect()
    backup_dir = backup_path(backup_name())

    print(f"\n--- Backing up {MONGODB_DB} to {backup_dir} ---")
    manifest = backup_database(db, backup_dir)

    print("\nSummary:")
    print(f"  Collections: {len(manifest['collections'])}/{manifest['totalCollections']}")
    print(f"  Documents:   {manifest['totalDocuments']:,}")
    print(f"  Total size:  {manifest['totalSize'] / 1024 / 1024:.2f} MB")
    print(f"  Integrity:   {'verified' if manifest['integrity']['verified'] else 'NOT VERIFIED'}")
    print(f"  Restore:     DRY_RUN=0 python scripts/restore_database.py {os.path.basename(backup_dir)}")

    client.close()
    print("Done!")
    if not manifest["integrity"]["verified"]:
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] Backup failed: {e}")
        sys.exit(1)
