#!/usr/bin/env python3
"""
Strip wrapping brackets from chart formulas of the form [X].

Text and image charts store the raw field name as their formula
("reportText1"), but the chart editor saved some of them as "[reportText1]",
which the report renderer cannot resolve. Any formula that is exactly one
bracketed token is rewritten to the bare token; everything else, including
arithmetic formulas, is left alone.

Usage:
  python fix_chart_formula_brackets.py             # all charts
  python fix_chart_formula_brackets.py <chartId>   # one chart
  DRY_RUN=1 python fix_chart_formula_brackets.py
"""

import datetime
import sys

from formula_tokens import rewrite_chart_formulas, strip_wrapping_brackets
from mongo_config import connect, dry_run

DRY_RUN = dry_run()


def fix_brackets(db, chart_id=None, dry=False):
    charts_col = db["chart_configurations"]
    query = {"chartId": chart_id} if chart_id else {}
    charts = list(charts_col.find(query))
    print(f"Found {len(charts)} chart(s) to check")

    fixed_charts = 0
    fixed_formulas = 0
    for chart in charts:
        updates, changes = rewrite_chart_formulas(chart, strip_wrapping_brackets)
        if not updates:
            continue
        fixed_charts += 1
        fixed_formulas += len(changes)
        print(f"  {chart.get('chartId')} ({chart.get('type', '?')}): {chart.get('title', '')}")
        for label, old, new in changes:
            print(f"    {label}: {old!r} -> {new!r}")
        if not dry:
            updates["updatedAt"] = datetime.datetime.utcnow().isoformat()
            charts_col.update_one({"_id": chart["_id"]}, {"$set": updates})

    return fixed_charts, fixed_formulas, len(charts)


def main():
    chart_id = sys.argv[1] if len(sys.argv) > 1 else None
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    if chart_id:
        print(f"--- Fixing bracketed formulas for chart {chart_id} ---")
    else:
        print("--- Fixing bracketed formulas for all charts ---")
    fixed_charts, fixed_formulas, total = fix_brackets(db, chart_id, dry=DRY_RUN)

    if chart_id and total == 0:
        print(f"ERROR: chart {chart_id} not found")
        client.close()
        sys.exit(1)

    print("\nSummary:")
    print(f"  Charts fixed:   {fixed_charts}")
    print(f"  Formulas fixed: {fixed_formulas}")
    print(f"  Charts checked: {total}")

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
