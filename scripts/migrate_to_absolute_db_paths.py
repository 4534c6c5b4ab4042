#!/usr/bin/env python3
"""
Migrate chart formulas from bare tokens to absolute database paths.

Charts written before the absolute-path change reference stat fields as
[female], [remoteImages], ... The formula engine now resolves tokens by their
database path, so every mapped token becomes [stats.female] etc.
Tokens not in ABSOLUTE_PATH_MAP ([PARAM:*], [MANUAL:*], unknown names) are
left untouched. Re-running is a no-op.

Usage:
  python migrate_to_absolute_db_paths.py
  DRY_RUN=1 python migrate_to_absolute_db_paths.py
"""

import datetime
import sys

from formula_tokens import migrate_to_absolute, rewrite_chart_formulas
from mongo_config import connect, dry_run

DRY_RUN = dry_run()
MODIFIED_BY = "migration-absolute-db-paths"


def absolute_formula(formula):
    return migrate_to_absolute(formula)[0]


def migrate_charts(db, dry=False):
    """Rewrite every chart; returns (updated, unchanged, changes_by_chart)."""
    charts_col = db["chart_configurations"]
    charts = list(charts_col.find({}))
    print(f"Found {len(charts)} charts")

    updated = 0
    unchanged = 0
    changes_by_chart = []
    for chart in charts:
        updates, changes = rewrite_chart_formulas(chart, absolute_formula)
        label = f"{chart.get('title', '(untitled)')} ({chart.get('chartId', chart['_id'])})"
        if not updates:
            unchanged += 1
            continue

        updated += 1
        changes_by_chart.append((label, changes))
        print(f"  Updated: {label}")
        if not dry:
            updates["updatedAt"] = datetime.datetime.utcnow().isoformat()
            updates["lastModifiedBy"] = MODIFIED_BY
            charts_col.update_one({"_id": chart["_id"]}, {"$set": updates})

    return updated, unchanged, changes_by_chart


def main():
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    print("--- Migrating chart formulas to absolute paths ---")
    updated, unchanged, changes_by_chart = migrate_charts(db, dry=DRY_RUN)

    if changes_by_chart:
        print("\n--- Detailed changes ---")
        for label, changes in changes_by_chart:
            print(f"\n{label}:")
            for element_label, old, new in changes:
                print(f'  "{element_label}": {old} -> {new}')

    print("\nSummary:")
    print(f"  Updated:   {updated}")
    print(f"  Unchanged: {unchanged}")
    print(f"  Total:     {updated + unchanged}")

    if DRY_RUN:
        print("\n(No changes made — run without DRY_RUN=1 to apply)")

    client.close()
    print("Done!")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] Migration failed: {e}")
        sys.exit(1)
