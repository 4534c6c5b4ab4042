#!/usr/bin/env python3
"""
Migrate Bitly links from one-to-many (bitly_links.projectId) to the
many-to-many junction collection bitly_project_links.

1. Optionally copy bitly_links into bitly_links_backup_<ts> (BACKUP=1)
2. For each link with a projectId, load the linked project(s) and compute
   the date range each project "owns" the link's clicks for
3. Upsert one junction per (bitlyLinkId, projectId) with empty cachedMetrics
   (populate_kyc_from_existing_bitly.py fills them)
4. Unset the deprecated projectId field, unless a link failed (exit 1)
5. Print validation counts

Date ranges, for events sorted by (eventDate, createdAt):
  - events with neither eventDate nor createdAt are not linked
  - a single event owns the link for all time
  - the first event starts at -inf, the last event ends at +inf
  - an event ends on its own date when the next event is < 3 days later,
    otherwise two days after its date
  - the next event starts where the previous one ended (or the day after
    the previous event when both share a date)

Environment variables:
  DRY_RUN=1   preview only
  BACKUP=1    back up bitly_links first

Usage:
  DRY_RUN=1 python migrate_bitly_many_to_many.py
  BACKUP=1 python migrate_bitly_many_to_many.py
"""

import datetime
import os
import sys
import time
from collections import OrderedDict

from pymongo.errors import PyMongoError

from bitly_metrics import empty_cached_metrics
from mongo_config import MONGODB_DB, connect, dry_run

DRY_RUN = dry_run()
CREATE_BACKUP = os.environ.get("BACKUP", "0") == "1"
GAP_DAYS = 3
TAIL_DAYS = 2


def _iso_day(value):
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()[:10]
    return str(value or "")[:10]


def _event_day(event):
    # events without a date fall back to their creation day
    return _iso_day(event.get("eventDate") or event.get("createdAt"))


def _shift(day, days):
    return (datetime.date.fromisoformat(day) + datetime.timedelta(days=days)).isoformat()


def _end_date(current_day, next_day):
    gap = (datetime.date.fromisoformat(next_day) - datetime.date.fromisoformat(current_day)).days
    if gap < GAP_DAYS:
        return current_day
    return _shift(current_day, TAIL_DAYS)


def calculate_date_ranges(events):
    """Map projectId -> (startDate, endDate); None means unbounded.

    events: [{"projectId", "eventDate", "createdAt"}, ...]
    Events with neither an eventDate nor a createdAt are left out.
    """
    dated = [e for e in events if _event_day(e)]
    if not dated:
        return OrderedDict()
    if len(dated) == 1:
        return OrderedDict([(dated[0]["projectId"], (None, None))])

    ordered = sorted(dated, key=lambda e: (_event_day(e), str(e.get("createdAt") or "")))
    ranges = OrderedDict()
    for i, current in enumerate(ordered):
        day = _event_day(current)
        if i == 0:
            start = None
        else:
            previous = ordered[i - 1]
            if _event_day(previous) == day:
                start = _shift(day, 1)
            else:
                start = ranges[previous["projectId"]][1]

        if i == len(ordered) - 1:
            end = None
        else:
            end = _end_date(day, _event_day(ordered[i + 1]))
        ranges[current["projectId"]] = (start, end)
    return ranges


def backup_links(db):
    name = f"bitly_links_backup_{int(time.time() * 1000)}"
    docs = list(db["bitly_links"].find({}))
    if docs:
        db[name].insert_many(docs)
    print(f"Backup created: {name} ({len(docs)} documents)")
    return name


def link_junctions(db, link, dry=False):
    """Upsert the junctions of one link; returns the number of junctions, or None if skipped."""
    project_ids = link["projectId"] if isinstance(link["projectId"], list) else [link["projectId"]]
    projects = list(db["projects"].find(
        {"_id": {"$in": project_ids}}, {"eventDate": 1, "createdAt": 1}))
    if not projects:
        print("    No valid projects found, skipping")
        return None

    events = [
        {"projectId": p["_id"], "eventDate": p.get("eventDate"), "createdAt": p.get("createdAt")}
        for p in projects
    ]
    ranges = calculate_date_ranges(events)
    for event in events:
        if event["projectId"] not in ranges:
            print(f"    WARN: project {event['projectId']} has no eventDate or createdAt, not linked")
    for project_id, (start, end) in ranges.items():
        now = datetime.datetime.utcnow().isoformat()
        print(f"    -> {project_id} ({start or '-inf'} to {end or '+inf'})")
        if not dry:
            db["bitly_project_links"].update_one(
                {"bitlyLinkId": link["_id"], "projectId": project_id},
                {"$setOnInsert": {
                    "bitlyLinkId": link["_id"],
                    "projectId": project_id,
                    "startDate": start,
                    "endDate": end,
                    "autoCalculated": True,
                    "cachedMetrics": empty_cached_metrics(),
                    "createdAt": now,
                    "updatedAt": now,
                    "lastSyncedAt": None,
                }},
                upsert=True,
            )
    return len(ranges)


def migrate_links(db, dry=False):
    """Returns (created, skipped_links, failed_links, total_links)."""
    links = list(db["bitly_links"].find({"projectId": {"$ne": None}}))
    print(f"Found {len(links)} links with projectId")

    created = 0
    skipped = 0
    errors = 0
    for link in links:
        print(f"\n  {link.get('bitlink', link['_id'])}")
        try:
            count = link_junctions(db, link, dry=dry)
        except (ValueError, PyMongoError) as e:
            print(f"    ERROR: {e}")
            errors += 1
            continue
        if count is None:
            skipped += 1
        else:
            created += count
    return created, skipped, errors, len(links)


def main():
    print("=" * 60)
    print("  BITLY MANY-TO-MANY MIGRATION")
    print("=" * 60)
    print(f"  Database: {MONGODB_DB}")
    print(f"  Mode:     {'DRY RUN (no writes)' if DRY_RUN else '*** LIVE (writing to MongoDB!) ***'}")
    print(f"  Backup:   {'YES' if CREATE_BACKUP else 'NO'}")
    print("=" * 60)

    if not DRY_RUN:
        print("\n  Press Ctrl+C within 5 seconds to abort...")
        try:
            time.sleep(5)
        except KeyboardInterrupt:
            print("\n  Aborted.")
            sys.exit(0)

    client, db = connect()
    junction_col = db["bitly_project_links"]

    existing = junction_col.count_documents({})
    if existing:
        print(f"WARN: junction collection already holds {existing} documents (migration may have run)")

    backup_name = None
    if CREATE_BACKUP and not DRY_RUN:
        backup_name = backup_links(db)

    created, skipped, errors, total_links = migrate_links(db, dry=DRY_RUN)

    print("\n--- Cleaning up deprecated projectId ---")
    if errors:
        print(f"  Skipped: {errors} link(s) failed, projectId kept so the run can be repeated")
    elif DRY_RUN:
        print(f"  Would unset projectId on {total_links} documents")
    else:
        result = db["bitly_links"].update_many(
            {"projectId": {"$exists": True}}, {"$unset": {"projectId": ""}})
        print(f"  Unset projectId on {result.modified_count} documents")

    print("\n--- Validation ---")
    print(f"  Junction entries:                {junction_col.count_documents({})}")
    print(f"  Links with projectId remaining:  "
          f"{db['bitly_links'].count_documents({'projectId': {'$exists': True}})}")

    print("\nSummary:")
    print(f"  Junctions created: {created}")
    print(f"  Links skipped:     {skipped}")
    print(f"  Links failed:      {errors}")
    if backup_name:
        print(f"  Rollback: db.bitly_links.drop(); db.{backup_name}.renameCollection('bitly_links')")

    if DRY_RUN:
        print("\n(No changes made — run without DRY_RUN=1 to apply)")

    client.close()
    print("Done!")
    if errors:
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] Migration failed: {e}")
        sys.exit(1)
