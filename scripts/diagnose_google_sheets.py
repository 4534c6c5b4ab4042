#!/usr/bin/env python3
"""
Diagnose the Google Sheets event sync for partners that have it enabled.

For each partner with googleSheetConfig.enabled (or the one given as
argument), printed as PASS / WARN / FAIL:
1. The service account can open the sheet (title and tabs)
2. The configured tab has data rows from dataStartRow on
3. What a pull would do: rows whose UUID (column A by default) matches
   projects.googleSheetUuid are updates (or skips when name and date are
   unchanged), rows without a known UUID would create events, and rows
   without an event name cannot be imported

Read-only: nothing is written to the sheet or the database.
Exits 1 when credentials are missing or any check FAILs.

Usage:
  python diagnose_google_sheets.py
  python diagnose_google_sheets.py <partnerId|viewSlug>
"""

import base64
import binascii
import sys
from urllib.parse import quote

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from diagnose_report_templates import FAIL, PASS, WARN, Diagnostics
from mongo_config import GOOGLE_SHEETS_PRIVATE_KEY, GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL, connect
from partners import partner_query

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
TIMEOUT = 30
LAST_COLUMN = "ZZ"
SAMPLE_ROWS = 3
# zero-based positions in the default column map
NAME_COLUMN = 4
DATE_COLUMN = 5


def decode_private_key(raw):
    """PEM key from the environment: literal \\n escapes or a base64-encoded PEM."""
    key = raw.strip()
    if "BEGIN PRIVATE KEY" not in key:
        try:
            key = base64.b64decode(key).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return raw
    return key.replace("\\n", "\n")


def sheets_session(email, private_key):
    credentials = service_account.Credentials.from_service_account_info({
        "type": "service_account",
        "client_email": email,
        "private_key": decode_private_key(private_key),
        "token_uri": TOKEN_URI,
    }, scopes=SCOPES)
    return AuthorizedSession(credentials)


def sheet_metadata(session, sheet_id):
    """Returns (title, [tab names])."""
    resp = session.get(f"{SHEETS_API}/{sheet_id}",
                       params={"fields": "properties.title,sheets.properties.title"}, timeout=TIMEOUT)
    resp.raise_for_status()
    body = resp.json()
    tabs = [s.get("properties", {}).get("title") for s in body.get("sheets") or []]
    return body.get("properties", {}).get("title", ""), tabs


def read_rows(session, sheet_id, sheet_name, start_row=2):
    cell_range = f"{sheet_name}!A{start_row}:{LAST_COLUMN}"
    resp = session.get(f"{SHEETS_API}/{sheet_id}/values/{quote(cell_range)}", timeout=TIMEOUT)
    resp.raise_for_status()
    return resp.json().get("values") or []


def column_index(letter):
    """"A" -> 0, "Z" -> 25, "AA" -> 26."""
    index = 0
    for char in letter.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def _cell(row, index):
    return str(row[index]).strip() if index < len(row) and row[index] is not None else ""


def plan_pull(rows, uuid_index, existing):
    """Classify sheet rows against existing projects keyed by googleSheetUuid.

    Returns {"create": n, "update": n, "skip": n, "invalid": [row numbers]}
    where row numbers are relative to the first data row.
    """
    plan = {"create": 0, "update": 0, "skip": 0, "invalid": []}
    for num, row in enumerate(rows, 1):
        if not any(_cell(row, i) for i in range(len(row))):
            continue
        name = _cell(row, NAME_COLUMN)
        if not name:
            plan["invalid"].append(num)
            continue
        project = existing.get(_cell(row, uuid_index))
        if not project:
            plan["create"] += 1
        elif project.get("eventName") != name or str(project.get("eventDate") or "") != _cell(row, DATE_COLUMN):
            plan["update"] += 1
        else:
            plan["skip"] += 1
    return plan


def check_partner_sheet(db, diag, session, partner):
    config = partner.get("googleSheetConfig") or {}
    label = partner.get("name", str(partner["_id"]))
    sheet_id = config.get("sheetId")
    if not sheet_id:
        diag.log(FAIL, f"{label}: sheet", "googleSheetConfig has no sheetId")
        return
    sheet_name = config.get("sheetName") or "Events"
    start_row = config.get("dataStartRow") or 2

    try:
        title, tabs = sheet_metadata(session, sheet_id)
    except (requests.RequestException, GoogleAuthError) as e:
        diag.log(FAIL, f"{label}: sheet access", f"{sheet_id}: {e}")
        return
    diag.log(PASS, f"{label}: sheet access", f"{title!r}, tabs: {', '.join(tabs)}")
    if sheet_name not in tabs:
        diag.log(FAIL, f"{label}: tab", f"Tab {sheet_name!r} not found")
        return

    try:
        rows = read_rows(session, sheet_id, sheet_name, start_row)
    except (requests.RequestException, GoogleAuthError) as e:
        diag.log(FAIL, f"{label}: rows", str(e))
        return
    if not rows:
        diag.log(WARN, f"{label}: rows", f"No data rows from row {start_row}")
        return
    diag.log(PASS, f"{label}: rows", f"{len(rows)} rows from row {start_row}")
    uuid_index = column_index(config.get("uuidColumn") or "A")
    for num, row in enumerate(rows[:SAMPLE_ROWS], start_row):
        print(f"         row {num}: uuid={_cell(row, uuid_index)!r} name={_cell(row, NAME_COLUMN)!r} "
              f"date={_cell(row, DATE_COLUMN)!r}")

    uuids = [u for u in (_cell(row, uuid_index) for row in rows) if u]
    existing = {p["googleSheetUuid"]: p for p in db["projects"].find(
        {"googleSheetUuid": {"$in": uuids}}, {"googleSheetUuid": 1, "eventName": 1, "eventDate": 1})}
    plan = plan_pull(rows, uuid_index, existing)
    diag.log(PASS, f"{label}: pull preview",
             f"create {plan['create']}, update {plan['update']}, unchanged {plan['skip']}")
    if plan["invalid"]:
        first = ", ".join(str(n + start_row - 1) for n in plan["invalid"][:5])
        diag.log(WARN, f"{label}: invalid rows", f"{len(plan['invalid'])} rows without an event name (rows {first})")


def main():
    ref = sys.argv[1] if len(sys.argv) > 1 else None
    if not GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL or not GOOGLE_SHEETS_PRIVATE_KEY:
        print("[FATAL] GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL and GOOGLE_SHEETS_PRIVATE_KEY must be set")
        sys.exit(1)

    client, db = connect()
    diag = Diagnostics()
    session = sheets_session(GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL, GOOGLE_SHEETS_PRIVATE_KEY)
    print(f"Service account: {GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL}")

    if ref:
        partner = db["partners"].find_one(partner_query(ref))
        if not partner:
            print(f"ERROR: partner {ref} not found")
            client.close()
            sys.exit(1)
        if not (partner.get("googleSheetConfig") or {}).get("enabled"):
            diag.log(WARN, partner.get("name", ref), "Google Sheets sync is not enabled")
        partners = [partner]
    else:
        partners = list(db["partners"].find({"googleSheetConfig.enabled": True}))
    print(f"\n--- Checking {len(partners)} partner sheet(s) ---")

    for partner in partners:
        check_partner_sheet(db, diag, session, partner)

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
