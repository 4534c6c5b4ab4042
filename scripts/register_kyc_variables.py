#!/usr/bin/env python3
"""
Register KYC variables in variables_metadata so the chart configurator and
the clicker can use them.

1. Insert the mandatory report content and Szerencsejatek variables that are
   not registered yet. Existing variables keep their edits; they are only
   marked as system variables.
2. With DISCOVER=1, also register every projects.stats field that has no
   metadata, inferring label, type, category and visibility from its name.
3. Re-read /api/variables-config on the running app so its cached variable
   list picks up the new entries (a WARN when the app is not reachable).

Running it twice inserts nothing the second time.

Environment variables:
  DRY_RUN=1    preview only
  DISCOVER=1   also register unregistered stats fields

Usage:
  python register_kyc_variables.py
  DISCOVER=1 DRY_RUN=1 python register_kyc_variables.py
"""

import datetime
import os
import re
import sys

import requests

from mongo_config import APP_BASE_URL, connect, dry_run

DRY_RUN = dry_run()
DISCOVER = os.environ.get("DISCOVER", "0") == "1"
TIMEOUT = 30
MAX_LISTED = 10

SZERENCSEJATEK_FIELDS = [
    ("szerencsejatekAllPerson", "Szerencsejatek All Person", "count"),
    ("szerencsejatekAllRegistered", "Szerencsejatek All Registered", "count"),
    ("szerencsejatekAllusersAllphotos", "Szerencsejatek All Users All Photos", "count"),
    ("szerencsejatekFunnelQR", "Szerencsejatek Funnel QR", "count"),
    ("szerencsejatekFunnelSocial", "Szerencsejatek Funnel Social", "count"),
    ("szerencsejatekFunnelURL", "Szerencsejatek Funnel URL", "count"),
    ("szerencsejatekHostessAllRegistered", "Szerencsejatek Hostess All Registered", "count"),
    ("szerencsejatekHostessAllphotos", "Szerencsejatek Hostess All Photos", "count"),
    ("szerencsejatekMarketingCTA01", "Szerencsejatek Marketing CTA 01", "count"),
    ("szerencsejatekMarketingCTA01Conversion", "Szerencsejatek Marketing CTA 01 Conversion", "percentage"),
    ("szerencsejatekMarketingCTA02", "Szerencsejatek Marketing CTA 02", "count"),
    ("szerencsejatekMarketingCTA02Conversion", "Szerencsejatek Marketing CTA 02 Conversion", "percentage"),
    ("szerencsejatekMarketingOptInNumber", "Szerencsejatek Marketing Opt-In Number", "count"),
    ("szerencsejatekMarketingOptInPercentage", "Szerencsejatek Marketing Opt-In Percentage", "percentage"),
    ("szerencsejatekTop10", "Szerencsejatek Top 10", "count"),
]

SPECIAL_LABELS = {
    "remoteFans": "Remote Fans",
    "stadium": "Stadium Fans",
    "genAlpha": "Generation Alpha",
    "genYZ": "Generation Y/Z",
    "boomer": "Baby Boomers",
    "merched": "Merchandised Fans",
    "eventResultHome": "Home Team Score",
    "eventResultVisitor": "Visitor Team Score",
    "eventTicketPurchases": "Ticket Purchases",
}

CATEGORY_FIELDS = {
    "images": {"remoteImages", "hostessImages", "selfies", "totalImages", "approvedImages", "rejectedImages"},
    "fans": {"remoteFans", "stadium", "totalFans"},
    "demographics": {"female", "male", "genAlpha", "genYZ", "genX", "boomer"},
    "merchandise": {"merched", "jersey", "scarf", "flags", "baseballCap", "other"},
}
CLICKER_CATEGORIES = {"images", "fans", "demographics", "merchandise"}
READ_ONLY_CATEGORIES = {"bitly", "visits"}


def mandatory_variables():
    """reportText11-15, reportImage11-25 and the Szerencsejatek counters."""
    variables = []
    for num in range(11, 16):
        variables.append({"name": f"reportText{num}", "label": f"Report Text {num}", "type": "text",
                          "category": "Report Content", "order": num})
    for num in range(11, 26):
        variables.append({"name": f"reportImage{num}", "label": f"Report Image {num}", "type": "text",
                          "category": "Report Content", "order": num})
    for order, (name, label, kind) in enumerate(SZERENCSEJATEK_FIELDS, 1):
        variables.append({"name": name, "label": label, "type": kind,
                          "category": "Szerencsejatek", "order": order})
    for var in variables:
        var.update(derived=False, isSystemVariable=True, visibleInClicker=True, editableInManual=True)
    return variables


def infer_label(name):
    if name in SPECIAL_LABELS:
        return SPECIAL_LABELS[name]
    match = re.match(r"^report(Image|Text)(\d+)$", name)
    if match:
        return f"Report {match.group(1)} {match.group(2)}"
    if name.startswith("bitlyClicksFrom") and len(name) > len("bitlyClicksFrom"):
        return f"Bitly Clicks from {name[len('bitlyClicksFrom'):]}"
    if name.startswith("visit") and len(name) > len("visit"):
        return f"Visit from {name[len('visit'):]}"
    spaced = re.sub(r"([A-Z])", r" \1", name).strip()
    return spaced[:1].upper() + spaced[1:]


def infer_type(name):
    if re.match(r"^reportImage\d+$", name):
        return "textmedia"
    if re.match(r"^reportText\d+$", name):
        return "textarea"
    lowered = name.lower()
    if "url" in lowered or "link" in lowered:
        return "texthyper"
    return "number"


def infer_category(name):
    for prefix, category in (("bitly", "bitly"), ("event", "event"), ("report", "reportContent"),
                             ("visit", "visits")):
        if name.startswith(prefix):
            return category
    for category, fields in CATEGORY_FIELDS.items():
        if name in fields:
            return category
    return "other"


def discovered_variable(name):
    """Metadata for a stats field found in the data but missing from the catalog."""
    category = infer_category(name)
    return {
        "name": name,
        "label": infer_label(name),
        "type": infer_type(name),
        "category": category,
        "derived": False,
        "isSystemVariable": False,
        "visibleInClicker": category in CLICKER_CATEGORIES,
        "editableInManual": category not in READ_ONLY_CATEGORIES,
    }


def unregistered_stats_fields(db, registered):
    fields = set()
    for project in db["projects"].find({}, {"stats": 1}):
        fields.update((project.get("stats") or {}).keys())
    return sorted(fields - set(registered))


def register_variables(db, variables, dry=False):
    """Insert the variables that do not exist yet.

    Existing non-system variables are marked as system variables when the
    definition says so; nothing else about them changes.
    Returns (inserted_names, marked_names).
    """
    coll = db["variables_metadata"]
    inserted = []
    marked = []
    for var in variables:
        now = datetime.datetime.utcnow().isoformat()
        existing = coll.find_one({"name": var["name"]}, {"isSystemVariable": 1})
        if existing:
            if var.get("isSystemVariable") and not existing.get("isSystemVariable"):
                print(f"  ~ {var['name']}: marked as system variable")
                if not dry:
                    coll.update_one({"_id": existing["_id"]},
                                    {"$set": {"isSystemVariable": True, "updatedAt": now}})
                marked.append(var["name"])
            continue
        print(f"  + {var['name']} -> {var['label']!r} ({var['category']}, {var['type']})")
        if not dry:
            coll.insert_one(dict(var, createdAt=now, updatedAt=now, createdBy="system", updatedBy="system"))
        inserted.append(var["name"])
    return inserted, marked


def refresh_app_variables(names, base_url=APP_BASE_URL):
    """Reload the app's variable list; returns the names it still lacks, or None if unreachable."""
    url = f"{base_url}/api/variables-config"
    try:
        resp = requests.get(url, headers={"Cache-Control": "no-cache"}, timeout=TIMEOUT)
        resp.raise_for_status()
        body = resp.json()
    except (requests.RequestException, ValueError) as e:
        print(f"  WARN: could not reach {url}: {e}")
        return None
    served = {v.get("name") for v in body.get("variables") or [] if isinstance(v, dict)}
    return [name for name in names if name not in served]


def main():
    client, db = connect()

    if DRY_RUN:
        print("=== DRY RUN MODE ===\n")

    variables = mandatory_variables()
    print(f"--- 1. Mandatory variables ({len(variables)}) ---")
    inserted, marked = register_variables(db, variables, dry=DRY_RUN)

    if DISCOVER:
        print("\n--- 2. Unregistered stats fields ---")
        registered = [v.get("name") for v in db["variables_metadata"].find({}, {"name": 1})]
        # dry runs have not written the mandatory set
        registered += inserted
        missing = unregistered_stats_fields(db, registered)
        print(f"  {len(missing)} stats field(s) without metadata")
        found, _ = register_variables(db, [discovered_variable(name) for name in missing], dry=DRY_RUN)
        inserted += found

    if inserted and not DRY_RUN:
        print("\n--- 3. Refreshing the app variable list ---")
        lacking = refresh_app_variables(inserted)
        if lacking is not None:
            if lacking:
                print(f"  WARN: app does not serve {len(lacking)} new variable(s) yet:")
                for name in lacking[:MAX_LISTED]:
                    print(f"    - {name}")
            else:
                print(f"  App serves all {len(inserted)} new variables")

    print("\nSummary:")
    print(f"  Variables inserted:        {len(inserted)}")
    print(f"  Marked as system variable: {len(marked)}")

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
