#!/usr/bin/env python3
"""
Validate every chart formula and fix the ones with stale token formats.

1. Normalize formulas to the [stats.fieldName] form
   ([female] -> [stats.female], stats.female -> [stats.female]).
2. Check every referenced field against the variables_metadata catalog and
   the fields actually present in projects.stats. Unknown fields are
   reported per chart; they are not removed.
3. Report drift between the KYC catalog and the database fields.

Usage:
  python validate_and_fix_all_formulas.py
  DRY_RUN=1 python validate_and_fix_all_formulas.py
"""

import datetime
import sys
from collections import Counter

from formula_tokens import extract_fields, iter_chart_formulas, normalize_formula, rewrite_chart_formulas
from mongo_config import connect, dry_run

DRY_RUN = dry_run()
MAX_LISTED = 20


def stats_field_frequency(projects):
    """How many projects carry each stats field."""
    freq = Counter()
    for project in projects:
        freq.update((project.get("stats") or {}).keys())
    return freq


def catalog_field_names(variables):
    """Field names from variables_metadata, with any stats. prefix dropped."""
    names = set()
    for var in variables:
        name = var.get("name")
        if not name:
            continue
        if name.startswith("stats."):
            name = name[len("stats."):]
        names.add(name)
    return names


def find_unknown_fields(chart, known_fields):
    """Return [(label, field), ...] for references to fields nobody knows about."""
    unknown = []
    for label, formula in iter_chart_formulas(chart):
        for field in extract_fields(formula):
            if field not in known_fields:
                unknown.append((label, field))
    return unknown


def print_limited(items):
    for item in items[:MAX_LISTED]:
        print(f"    - {item}")
    if len(items) > MAX_LISTED:
        print(f"    ... and {len(items) - MAX_LISTED} more")


def normalize_charts(charts_col, charts, dry=False):
    """Rewrite every chart formula to [stats.field] form.

    The charts are updated in place so later checks see the fixed text.
    Returns (fixed_charts, fixed_formulas).
    """
    fixed_charts = 0
    fixed_formulas = 0
    for chart in charts:
        updates, changes = rewrite_chart_formulas(chart, normalize_formula)
        if not updates:
            continue
        fixed_charts += 1
        fixed_formulas += len(changes)
        print(f"  {chart.get('title', '(untitled)')} ({chart.get('chartId')})")
        for label, old, new in changes:
            print(f"    {label}: {old} -> {new}")
        chart.update(updates)
        if not dry:
            charts_col.update_one({"_id": chart["_id"]}, {"$set": dict(
                updates, updatedAt=datetime.datetime.utcnow().isoformat())})
    return fixed_charts, fixed_formulas


def main():
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    charts_col = db["chart_configurations"]
    charts = list(charts_col.find({}))
    projects = list(db["projects"].find({}, {"stats": 1}))
    variables = list(db["variables_metadata"].find({}, {"name": 1}))

    field_freq = stats_field_frequency(projects)
    catalog = catalog_field_names(variables)
    known_fields = catalog | set(field_freq)

    print(f"Charts: {len(charts)}, projects: {len(projects)}, catalog variables: {len(catalog)}\n")

    # 1. Normalize formula format
    print("--- 1. Normalizing formula tokens ---")
    fixed_charts, fixed_formulas = normalize_charts(charts_col, charts, dry=DRY_RUN)
    print(f"Normalized {fixed_formulas} formulas across {fixed_charts} charts")

    # 2. Validate referenced fields
    print("\n--- 2. Validating referenced fields ---")
    invalid_charts = 0
    for chart in charts:
        unknown = find_unknown_fields(chart, known_fields)
        if not unknown:
            continue
        invalid_charts += 1
        print(f"  INVALID: {chart.get('title', '(untitled)')} ({chart.get('chartId')})")
        for label, field in unknown:
            print(f"    {label}: unknown field {field!r}")
    if invalid_charts:
        print(f"{invalid_charts} charts reference unknown fields")
    else:
        print("All formulas reference known fields")

    # 3. Catalog vs database drift
    print("\n--- 3. Catalog vs database fields ---")
    db_only = sorted(set(field_freq) - catalog)
    catalog_only = sorted(catalog - set(field_freq))
    if db_only:
        print(f"  Fields in projects.stats but NOT in variables_metadata ({len(db_only)}):")
        print_limited(db_only)
    if catalog_only:
        print(f"  Variables in variables_metadata but in NO project ({len(catalog_only)}):")
        print_limited(catalog_only)
    if not db_only and not catalog_only:
        print("  Catalog and database fields match")

    print("\nSummary:")
    print(f"  Charts normalized:         {fixed_charts}")
    print(f"  Charts with unknown fields: {invalid_charts}")

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
