#!/usr/bin/env python3
"""
Refresh bitly_links analytics from the Bitly v4 API.

For every link (or one bitlink given as argument) fetches the 12-month click
summary plus country, referrer and device breakdowns, and stores them as
total_clicks / unique_clicks / geo.countries / referrers / devices.
Requests are paced at one link per second.

Requires BITLY_ACCESS_TOKEN.

Usage:
  python sync_bitly_links.py
  python sync_bitly_links.py bit.ly/abc123
  DRY_RUN=1 python sync_bitly_links.py
"""

import datetime
import sys
import time

import requests

from mongo_config import BITLY_ACCESS_TOKEN, connect, dry_run

DRY_RUN = dry_run()
API_BASE = "https://api-ssl.bitly.com/v4/bitlinks"
PERIOD = {"unit": "month", "units": 12}
REQUEST_DELAY = 1.0
TIMEOUT = 30


def fetch_link_analytics(session, bitlink):
    """Fetch summary and breakdowns for one bitlink; raises on HTTP errors."""
    def get(path):
        resp = session.get(f"{API_BASE}/{bitlink}/{path}", params=PERIOD, timeout=TIMEOUT)
        resp.raise_for_status()
        return resp.json()

    summary = get("clicks/summary")
    countries = get("countries")
    referrers = get("referrers")
    devices = get("devices")
    total = summary.get("total_clicks", 0)
    return {
        "total_clicks": total,
        # the summary endpoint has no unique count
        "unique_clicks": total,
        "geo.countries": [
            {"country": m.get("value"), "clicks": m.get("clicks", 0)}
            for m in countries.get("metrics", [])
        ],
        "referrers": [
            {"referrer": m.get("value"), "clicks": m.get("clicks", 0)}
            for m in referrers.get("metrics", [])
        ],
        "devices": [
            {"device": m.get("value"), "clicks": m.get("clicks", 0)}
            for m in devices.get("metrics", [])
        ],
    }


def make_session(token):
    session = requests.Session()
    session.headers.update({"Authorization": f"Bearer {token}"})
    return session


def sync_links(db, session, links, dry=False, delay=REQUEST_DELAY):
    """Returns (synced, errors)."""
    links_col = db["bitly_links"]
    synced = 0
    errors = 0
    for i, link in enumerate(links, 1):
        bitlink = link.get("bitlink")
        try:
            analytics = fetch_link_analytics(session, bitlink)
        except requests.RequestException as e:
            print(f"  [{i}/{len(links)}] {bitlink}: ERROR {e}")
            errors += 1
        else:
            print(f"  [{i}/{len(links)}] {bitlink}: {analytics['total_clicks']} clicks, "
                  f"{len(analytics['geo.countries'])} countries")
            if not dry:
                analytics["lastSyncAt"] = datetime.datetime.utcnow().isoformat()
                links_col.update_one({"_id": link["_id"]}, {"$set": analytics})
            synced += 1
        if delay and i < len(links):
            time.sleep(delay)
    return synced, errors


def main():
    if not BITLY_ACCESS_TOKEN:
        print("[FATAL] BITLY_ACCESS_TOKEN is not set")
        sys.exit(1)

    bitlink = sys.argv[1] if len(sys.argv) > 1 else None
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    query = {"bitlink": bitlink} if bitlink else {}
    links = list(db["bitly_links"].find(query, {"bitlink": 1}))
    print(f"--- Syncing {len(links)} Bitly link(s) ---")
    if bitlink and not links:
        print(f"ERROR: {bitlink} not found in bitly_links")
        client.close()
        sys.exit(1)

    synced, errors = sync_links(db, make_session(BITLY_ACCESS_TOKEN), links, dry=DRY_RUN)

    print("\nSummary:")
    print(f"  Synced: {synced}")
    print(f"  Errors: {errors}")

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
