#!/usr/bin/env python3
"""
Populate project KYC stats from Bitly data already stored in MongoDB.

No Bitly API calls are made (run sync_bitly_links.py first for fresh data).
1. Recalculate bitly_project_links.cachedMetrics from the linked bitly_links
2. Aggregate every junction of a project and write the KYC fields
   (totalBitlyClicks, bitlyCountry1..5, bitlyTopReferrer, device clicks, ...)
   into project.stats.
   Country slots and referrer fields the new data no longer fills are unset.
   Projects whose junctions were never synced are skipped.

Bitly drops old analytics, so click totals are never lowered: the stored
value wins when it is higher than the recomputed one.

Environment variables:
  DRY_RUN=1      preview only
  SKIP_CACHE=1   skip step 1 and use the cachedMetrics already stored

Usage:
  python populate_kyc_from_existing_bitly.py
  python populate_kyc_from_existing_bitly.py <projectId>
"""

import datetime
import os
import sys
from collections import defaultdict

from bson import ObjectId

from bitly_metrics import (
    aggregate_junctions, cached_metrics_for_link, is_synced, kyc_stats, stale_kyc_fields,
)
from mongo_config import connect, dry_run

DRY_RUN = dry_run()
SKIP_CACHE = os.environ.get("SKIP_CACHE", "0") == "1"

# Counters that only ever grow
MONOTONIC_FIELDS = ("totalBitlyClicks", "uniqueBitlyClicks")


def recalculate_cached_metrics(db, junctions, dry=False):
    """Refresh cachedMetrics on each junction from its bitly_links document."""
    links_col = db["bitly_links"]
    junctions_col = db["bitly_project_links"]
    updated = 0
    missing = 0
    for junction in junctions:
        link = links_col.find_one({"_id": junction.get("bitlyLinkId")})
        if not link:
            missing += 1
            continue
        now = datetime.datetime.utcnow().isoformat()
        metrics = cached_metrics_for_link(link, now)
        junction["cachedMetrics"] = metrics
        if not dry:
            junctions_col.update_one(
                {"_id": junction["_id"]},
                {"$set": {"cachedMetrics": metrics, "lastSyncedAt": now}},
            )
        updated += 1
    return updated, missing


def merge_with_current(current_stats, new_stats):
    """Return the fields that change, keeping the higher value for monotonic counters."""
    changes = {}
    for field, value in new_stats.items():
        current = current_stats.get(field)
        if field in MONOTONIC_FIELDS and isinstance(current, (int, float)):
            value = max(current, value)
        if current != value:
            changes[field] = value
    return changes


def populate_project_stats(db, junctions, dry=False):
    """Returns (updated, unchanged, missing_projects, unsynced_projects)."""
    projects_col = db["projects"]
    by_project = defaultdict(list)
    for junction in junctions:
        by_project[junction.get("projectId")].append(junction)

    updated = 0
    unchanged = 0
    missing = 0
    unsynced = 0
    for project_id, project_junctions in by_project.items():
        project = projects_col.find_one({"_id": project_id}, {"eventName": 1, "stats": 1})
        if not project:
            print(f"  WARN: project {project_id} not found, skipping")
            missing += 1
            continue
        if not any(is_synced(j) for j in project_junctions):
            print(f"  {project.get('eventName', project_id)}: no synced Bitly metrics, skipping")
            unsynced += 1
            continue

        current = project.get("stats") or {}
        new_stats = kyc_stats(aggregate_junctions(project_junctions))
        changes = merge_with_current(current, new_stats)
        stale = [field for field in stale_kyc_fields(new_stats) if field in current]
        if not changes and not stale:
            unchanged += 1
            continue

        before = current.get("totalBitlyClicks", 0)
        after = changes.get("totalBitlyClicks", before)
        print(f"  {project.get('eventName', project_id)}: clicks {before} -> {after}, "
              f"{len(changes)} field(s) changed, {len(stale)} removed")
        if not dry:
            update = {}
            if changes:
                update["$set"] = {f"stats.{field}": value for field, value in changes.items()}
            if stale:
                update["$unset"] = {f"stats.{field}": "" for field in stale}
            projects_col.update_one({"_id": project_id}, update)
        updated += 1
    return updated, unchanged, missing, unsynced


def main():
    project_ref = sys.argv[1] if len(sys.argv) > 1 else None
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    query = {"projectId": ObjectId(project_ref)} if project_ref else {}
    junctions = list(db["bitly_project_links"].find(query))
    print(f"Found {len(junctions)} Bitly junctions")
    if not junctions:
        print("Nothing to do.")
        client.close()
        return

    print("\n--- 1. Recalculating junction cachedMetrics ---")
    if SKIP_CACHE:
        print("  Skipped (SKIP_CACHE=1)")
    else:
        cached, missing_links = recalculate_cached_metrics(db, junctions, dry=DRY_RUN)
        print(f"  Recalculated {cached} junctions ({missing_links} with missing Bitly link)")

    print("\n--- 2. Writing KYC fields to project.stats ---")
    updated, unchanged, missing, unsynced = populate_project_stats(db, junctions, dry=DRY_RUN)

    print("\nSummary:")
    print(f"  Projects updated:   {updated}")
    print(f"  Already up to date: {unchanged}")
    print(f"  Projects missing:   {missing}")
    print(f"  Never synced:       {unsynced}")

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
