#!/usr/bin/env python3
"""
Aggregate a partner's Bitly links into partner-level KYC stats.

Partners own Bitly links through partners.bitlyLinkIds. This sums the linked
bitly_links documents (total/unique clicks, country, referrer and device
breakdowns) and writes the flattened KYC fields to partners.stats.

The reported totalClicks is the plain sum of total_clicks over the linked
documents; each breakdown sums to at most that total (Bitly only reports
countries/referrers for clicks it could attribute).

Usage:
  python aggregate_partner_bitly_kyc.py                  # all partners with links
  python aggregate_partner_bitly_kyc.py <id|viewSlug>    # one partner
  DRY_RUN=1 python aggregate_partner_bitly_kyc.py
"""

import datetime
import sys

from bitly_metrics import aggregate_links, kyc_stats, stale_kyc_fields, top_n
from mongo_config import connect, dry_run
from partners import partner_query

DRY_RUN = dry_run()


def aggregate_partner_links(db, partner, dry=False):
    """Returns the aggregate for one partner, or None when it is skipped.

    A partner is skipped (and its stats left as they are) when no linked
    document is found or none of them has click data yet.
    """
    link_ids = list(dict.fromkeys(partner.get("bitlyLinkIds") or []))
    name = partner.get("name", "(unnamed)")
    if not link_ids:
        print(f"  {name}: no Bitly links, skipping")
        return None

    links = list(db["bitly_links"].find({"_id": {"$in": link_ids}}))
    missing = len(link_ids) - len(links)
    aggregate = aggregate_links(links)

    print(f"\n{name} ({partner['_id']}): {len(links)} links")
    if missing:
        print(f"  WARN: {missing} linked Bitly document(s) not found")
    if not links:
        print("  No linked Bitly documents, skipping")
        return None
    if not aggregate["totalClicks"] and not aggregate["countries"]:
        print("  No click data yet, skipping")
        return None
    print(f"  Total clicks:  {aggregate['totalClicks']}")
    print(f"  Unique clicks: {aggregate['uniqueClicks']}")
    for country, clicks in top_n(aggregate["countries"], 5):
        print(f"    {country}: {clicks}")
    for referrer, clicks in top_n(aggregate["referrers"], 5):
        print(f"    via {referrer}: {clicks}")

    if not dry:
        stats = kyc_stats(aggregate)
        fields = {f"stats.{key}": value for key, value in stats.items()}
        fields["stats.bitlyLinkCount"] = len(links)
        fields["updatedAt"] = datetime.datetime.utcnow().isoformat()
        update = {"$set": fields}
        stale = stale_kyc_fields(stats)
        if stale:
            update["$unset"] = {f"stats.{key}": "" for key in stale}
        db["partners"].update_one({"_id": partner["_id"]}, update)

    return aggregate


def main():
    ref = sys.argv[1] if len(sys.argv) > 1 else None
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    if ref:
        partner = db["partners"].find_one(partner_query(ref))
        if not partner:
            print(f"ERROR: partner {ref} not found")
            client.close()
            sys.exit(1)
        partners = [partner]
    else:
        partners = list(db["partners"].find({"bitlyLinkIds.0": {"$exists": True}}))
    print(f"--- Aggregating Bitly KYC for {len(partners)} partner(s) ---")

    updated = 0
    grand_total = 0
    for partner in partners:
        aggregate = aggregate_partner_links(db, partner, dry=DRY_RUN)
        if aggregate is None:
            continue
        updated += 1
        grand_total += aggregate["totalClicks"]

    print("\nSummary:")
    print(f"  Partners aggregated: {updated}")
    print(f"  Total clicks:        {grand_total}")

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
