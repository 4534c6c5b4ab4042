#!/usr/bin/env python3
"""
Diagnose report template resolution across partners, templates, data blocks
and charts.

Checks, each printed as PASS / WARN / FAIL:
1. A default template (isDefault: true) exists
2. Every partner's reportTemplateId resolves
3. Every template's dataBlocks resolve to data_blocks documents
4. Every chart referenced by a block exists in chart_configurations
5. Every template/partner styleId resolves in page_styles_enhanced
6. (optional) The running app's /api/partners/report/<slug> agrees with the
   database for one partner

Exits 1 when any check FAILs.

Usage:
  python diagnose_report_templates.py
  python diagnose_report_templates.py <partnerViewSlug>   # also cross-check the API
"""

import sys

import requests
from bson import ObjectId

from mongo_config import APP_BASE_URL, connect
from partners import events_query

PASS, WARN, FAIL = "PASS", "WARN", "FAIL"


class Diagnostics:
    def __init__(self):
        self.results = []

    def log(self, status, name, message):
        self.results.append((status, name, message))
        print(f"  [{status}] {name}")
        print(f"         {message}")

    def count(self, status):
        return sum(1 for r in self.results if r[0] == status)


def as_object_id(value):
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def check_default_template(db, diag):
    template = db["report_templates"].find_one({"isDefault": True})
    if template:
        diag.log(PASS, "Default template", f"{template.get('name')} ({len(template.get('dataBlocks') or [])} blocks)")
    else:
        diag.log(FAIL, "Default template", "No report template has isDefault: true")
    return template


def check_partner_templates(db, diag):
    partners = list(db["partners"].find({}, {"name": 1, "reportTemplateId": 1}))
    explicit = [p for p in partners if p.get("reportTemplateId")]
    if not explicit:
        diag.log(WARN, "Partner templates", f"None of {len(partners)} partners sets reportTemplateId")
        return
    for partner in explicit:
        template_id = as_object_id(partner["reportTemplateId"])
        template = db["report_templates"].find_one({"_id": template_id}, {"name": 1})
        name = f"Partner \"{partner.get('name')}\" template"
        if template:
            diag.log(PASS, name, f"Template found: {template.get('name')}")
        else:
            diag.log(FAIL, name, f"Template NOT FOUND for ID: {partner['reportTemplateId']}")


def check_template_blocks(db, diag, templates):
    """Returns every data block referenced by any template."""
    blocks = []
    for template in templates:
        name = f"Template \"{template.get('name')}\" blocks"
        refs = template.get("dataBlocks") or []
        if not refs:
            diag.log(WARN, name, "No dataBlocks in template")
            continue
        block_ids = [as_object_id(ref.get("blockId")) for ref in refs if isinstance(ref, dict)]
        found = list(db["data_blocks"].find({"_id": {"$in": block_ids}}))
        found_ids = {b["_id"] for b in found}
        missing = [str(bid) for bid in block_ids if bid not in found_ids]
        if missing:
            diag.log(FAIL, name, f"{len(missing)} of {len(block_ids)} block(s) MISSING: {', '.join(missing)}")
        else:
            diag.log(PASS, name, f"All {len(block_ids)} block(s) found")
        blocks.extend(found)
    return blocks


def check_block_charts(db, diag, blocks):
    existing = {c.get("chartId") for c in db["chart_configurations"].find({}, {"chartId": 1})}
    seen = set()
    for block in blocks:
        if block["_id"] in seen:
            continue
        seen.add(block["_id"])
        chart_ids = [c.get("chartId") for c in block.get("charts") or [] if isinstance(c, dict)]
        missing = [cid for cid in chart_ids if cid not in existing]
        name = f"Block \"{block.get('name')}\" charts"
        if missing:
            diag.log(FAIL, name, f"Missing charts: {', '.join(map(str, missing))}")
        elif not chart_ids:
            diag.log(WARN, name, "Block has no charts")
        else:
            diag.log(PASS, name, f"All {len(chart_ids)} chart(s) found")


def check_styles(db, diag, templates):
    existing = {str(s["_id"]) for s in db["page_styles_enhanced"].find({}, {"_id": 1})}
    owners = [("Template", t) for t in templates]
    owners += [("Partner", p) for p in db["partners"].find({"styleId": {"$nin": [None, ""]}}, {"name": 1, "styleId": 1})]
    for kind, doc in owners:
        style_id = doc.get("styleId")
        if not style_id:
            continue
        name = f"{kind} \"{doc.get('name')}\" style"
        if str(style_id) in existing:
            diag.log(PASS, name, f"Style {style_id} found")
        else:
            diag.log(FAIL, name, f"Style {style_id} NOT FOUND in page_styles_enhanced")


def check_partner_api(db, diag, slug, base_url=APP_BASE_URL):
    partner = db["partners"].find_one({"viewSlug": slug})
    if not partner:
        diag.log(FAIL, f"Partner {slug}", "Not found in database")
        return
    url = f"{base_url}/api/partners/report/{slug}"
    try:
        resp = requests.get(url, timeout=30)
        resp.raise_for_status()
        body = resp.json()
    except (requests.RequestException, ValueError) as e:
        diag.log(FAIL, f"API {url}", f"Request failed: {e}")
        return

    api_partner = body.get("partner") or {}
    if str(api_partner.get("_id")) != str(partner["_id"]):
        diag.log(FAIL, "API partner identity", f"API returned {api_partner.get('_id')}, database has {partner['_id']}")
    else:
        diag.log(PASS, "API partner identity", f"{partner.get('name')} ({partner['_id']})")

    db_events = db["projects"].count_documents(events_query(partner["_id"]))
    api_events = len(body.get("events") or [])
    status = PASS if api_events == db_events else WARN
    diag.log(status, "API event count", f"API: {api_events}, database: {db_events}")


def main():
    slug = sys.argv[1] if len(sys.argv) > 1 else None
    client, db = connect()
    diag = Diagnostics()

    print("\n--- 1. Default template ---")
    check_default_template(db, diag)

    print("\n--- 2. Partner templates ---")
    check_partner_templates(db, diag)

    templates = list(db["report_templates"].find({}))
    print(f"\n--- 3. Template data blocks ({len(templates)} templates) ---")
    blocks = check_template_blocks(db, diag, templates)

    print("\n--- 4. Block charts ---")
    check_block_charts(db, diag, blocks)

    print("\n--- 5. Styles ---")
    check_styles(db, diag, templates)

    if slug:
        print(f"\n--- 6. API cross-check ({APP_BASE_URL}) ---")
        check_partner_api(db, diag, slug)

    print("\nSummary:")
    print(f"  PASS: {diag.count(PASS)}")
    print(f"  WARN: {diag.count(WARN)}")
    print(f"  FAIL: {diag.count(FAIL)}")

    client.close()
    print("Done!")
    if diag.count(FAIL):
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[FATAL] {e}")
        sys.exit(1)
