#!/usr/bin/env python3
"""
Check the sports data APIs used for partner and fixture enrichment.

1. API-Football: the key is accepted (/status) and the daily request quota
   is not used up. API-Football reports bad keys in the body's "errors"
   with HTTP 200, so both are checked.
2. TheSportsDB: every partner with a sportsDbUrl resolves to a team, and
   the stored sportsDb.teamId matches it. Lookups are paced at one per second.

Printed as PASS / WARN / FAIL. Exits 1 when API_FOOTBALL_KEY is missing or
any check FAILs.

Usage:
  python diagnose_sports_apis.py
  python diagnose_sports_apis.py <partnerId|viewSlug>   # one partner
  TEAM_SEARCH=Ferencvaros python diagnose_sports_apis.py   # also search API-Football teams
"""

import os
import re
import sys
import time

import requests

from diagnose_report_templates import FAIL, PASS, WARN, Diagnostics
from mongo_config import API_FOOTBALL_KEY, SPORTSDB_API_KEY, connect
from partners import partner_query

API_FOOTBALL_BASE = "https://v3.football.api-sports.io"
SPORTSDB_BASE = "https://www.thesportsdb.com/api/v1/json"
TIMEOUT = 30
REQUEST_DELAY = 1.0
QUOTA_WARN_RATIO = 0.9
TEAM_SEARCH = os.environ.get("TEAM_SEARCH", "")

_TEAM_URL_RE = re.compile(r"thesportsdb\.com/team/(\d+)", re.IGNORECASE)


class ApiError(Exception):
    pass


def api_football_get(session, path, params=None):
    resp = session.get(f"{API_FOOTBALL_BASE}/{path}", params=params, timeout=TIMEOUT)
    resp.raise_for_status()
    body = resp.json()
    errors = body.get("errors")
    if errors:
        messages = errors.values() if isinstance(errors, dict) else errors
        raise ApiError(", ".join(str(m) for m in messages))
    return body.get("response")


def make_football_session(key):
    session = requests.Session()
    session.headers.update({"x-apisports-key": key})
    return session


def check_api_football(diag, session):
    try:
        status = api_football_get(session, "status") or {}
    except (requests.RequestException, ValueError, ApiError) as e:
        diag.log(FAIL, "API-Football key", str(e))
        return False
    account = status.get("account") or {}
    plan = (status.get("subscription") or {}).get("plan", "?")
    diag.log(PASS, "API-Football key", f"{account.get('email', '?')} ({plan} plan)")

    usage = status.get("requests") or {}
    current, limit = usage.get("current", 0), usage.get("limit_day")
    if limit and current >= limit:
        diag.log(FAIL, "API-Football quota", f"{current}/{limit} requests used today")
    elif limit and current >= limit * QUOTA_WARN_RATIO:
        diag.log(WARN, "API-Football quota", f"{current}/{limit} requests used today")
    else:
        diag.log(PASS, "API-Football quota", f"{current}/{limit or '?'} requests used today")
    return True


def search_football_team(diag, session, name):
    try:
        teams = api_football_get(session, "teams", {"search": name}) or []
    except (requests.RequestException, ValueError, ApiError) as e:
        diag.log(FAIL, f"API-Football team search {name!r}", str(e))
        return
    if not teams:
        diag.log(WARN, f"API-Football team search {name!r}", "No teams found")
        return
    found = ", ".join(f"{t['team'].get('name')} ({t['team'].get('id')})" for t in teams[:5] if t.get("team"))
    diag.log(PASS, f"API-Football team search {name!r}", f"{len(teams)} team(s): {found}")


def team_id_from_url(url):
    match = _TEAM_URL_RE.search(url or "")
    return match.group(1) if match else None


def lookup_sportsdb_team(session, team_id, api_key=SPORTSDB_API_KEY):
    resp = session.get(f"{SPORTSDB_BASE}/{api_key}/lookupteam.php", params={"id": team_id}, timeout=TIMEOUT)
    resp.raise_for_status()
    teams = resp.json().get("teams") or []
    return teams[0] if teams else None


def check_sportsdb_partner(diag, session, partner):
    label = partner.get("name", str(partner["_id"]))
    team_id = team_id_from_url(partner.get("sportsDbUrl"))
    if not team_id:
        diag.log(FAIL, f"{label}: sportsDbUrl", f"No team id in {partner.get('sportsDbUrl')!r}")
        return
    try:
        team = lookup_sportsdb_team(session, team_id)
    except (requests.RequestException, ValueError) as e:
        diag.log(FAIL, f"{label}: TheSportsDB", str(e))
        return
    if not team:
        diag.log(FAIL, f"{label}: TheSportsDB", f"Team {team_id} not found")
        return
    stored = (partner.get("sportsDb") or {}).get("teamId")
    if stored is None:
        diag.log(WARN, f"{label}: TheSportsDB", f"{team.get('strTeam')} ({team_id}), partner not enriched yet")
    elif str(stored) != team_id:
        diag.log(WARN, f"{label}: TheSportsDB", f"Stored teamId {stored} differs from URL team {team_id}")
    else:
        diag.log(PASS, f"{label}: TheSportsDB", f"{team.get('strTeam')} ({team.get('strLeague', '?')})")


def main():
    ref = sys.argv[1] if len(sys.argv) > 1 else None

    if not API_FOOTBALL_KEY:
        print("[FATAL] API_FOOTBALL_KEY is not set")
        sys.exit(1)

    client, db = connect()
    diag = Diagnostics()

    print("\n--- 1. API-Football ---")
    football = make_football_session(API_FOOTBALL_KEY)
    if check_api_football(diag, football) and TEAM_SEARCH:
        search_football_team(diag, football, TEAM_SEARCH)

    print("\n--- 2. TheSportsDB partners ---")
    if ref:
        partners = [p for p in [db["partners"].find_one(partner_query(ref))] if p]
        if not partners:
            diag.log(FAIL, f"Partner {ref}", "Not found in database")
    else:
        partners = list(db["partners"].find({"sportsDbUrl": {"$nin": [None, ""]}}))
    print(f"  {len(partners)} partner(s) with a TheSportsDB URL")
    sportsdb = requests.Session()
    for n, partner in enumerate(partners):
        if n:
            time.sleep(REQUEST_DELAY)
        check_sportsdb_partner(diag, sportsdb, partner)

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
