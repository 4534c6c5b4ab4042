#!/usr/bin/env python3
"""
Aggregate event stats up to the partner level.

For each partner, finds its events (projects.partnerId, or projects.partner1
as an ObjectId or embedded partner), sums every numeric stats field across
them and prints the totals. A partner_analytics summary (totals, averages,
best event, attendance/engagement trends, top hashtags) is upserted unless
DRY_RUN=1.

Usage:
  python aggregate_partner_stats.py                  # all partners
  python aggregate_partner_stats.py <id|viewSlug>    # one partner
  DRY_RUN=1 python aggregate_partner_stats.py <id>
"""

import datetime
import sys
from collections import defaultdict

from mongo_config import connect, dry_run
from partners import events_query, partner_query

DRY_RUN = dry_run()
TOP_HASHTAGS = 10
TREND_THRESHOLD = 5  # percent


def _number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def sum_stats(projects):
    """Sum every numeric stats field across projects; text fields are skipped."""
    totals = defaultdict(int)
    for project in projects:
        for field, value in (project.get("stats") or {}).items():
            value = _number(value)
            if value is not None:
                totals[field] += value
    return dict(sorted(totals.items()))


def _images(stats):
    return sum(_number(stats.get(f)) or 0 for f in ("remoteImages", "hostessImages", "selfies"))


def _fans(stats):
    return sum(_number(stats.get(f)) or 0 for f in ("remoteFans", "stadium"))


def _parse_date(value):
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _subtract_months(day, months):
    month = day.month - months
    year = day.year
    while month <= 0:
        month += 12
        year -= 1
    return day.replace(year=year, month=month, day=min(day.day, 28))


def compute_trend(projects, metric, today=None):
    """Compare the last 3 months with the 3 before; returns (trend, percent)."""
    today = today or datetime.date.today()
    three_ago = _subtract_months(today, 3)
    six_ago = _subtract_months(today, 6)
    recent = []
    previous = []
    for project in projects:
        day = _parse_date(project.get("eventDate"))
        if day is None:
            continue
        value = metric(project.get("stats") or {})
        if day >= three_ago:
            recent.append(value)
        elif day >= six_ago:
            previous.append(value)

    if len(recent) < 2 or len(previous) < 2:
        return "insufficient_data", 0
    previous_avg = sum(previous) / len(previous)
    if previous_avg <= 0:
        return "insufficient_data", 0
    recent_avg = sum(recent) / len(recent)
    percent = round((recent_avg - previous_avg) / previous_avg * 100, 2)
    if percent > TREND_THRESHOLD:
        return "increasing", percent
    if percent < -TREND_THRESHOLD:
        return "decreasing", percent
    return "stable", percent


def build_partner_analytics(partner, projects, today=None):
    """Summary document for partner_analytics; projects must be sorted by eventDate."""
    partner_id = str(partner["_id"])
    total_events = len(projects)
    total_attendees = 0
    total_images = 0
    total_fans = 0
    total_merched = 0
    total_bitly = 0
    best = None
    hashtag_counts = defaultdict(lambda: [0, 0])

    for project in projects:
        stats = project.get("stats") or {}
        attendees = _number(stats.get("eventAttendees")) or 0
        total_attendees += attendees
        total_images += _images(stats)
        total_fans += _fans(stats)
        total_merched += _number(stats.get("merched")) or 0
        total_bitly += _number(stats.get("totalBitlyClicks")) or 0
        if best is None or attendees > best[0]:
            best = (attendees, project)
        for tag in project.get("hashtags") or []:
            hashtag_counts[tag][0] += 1
            hashtag_counts[tag][1] += attendees

    top_hashtags = sorted(
        (
            {"hashtag": tag, "eventCount": count, "avgAttendance": round(attendees / count)}
            for tag, (count, attendees) in hashtag_counts.items()
        ),
        key=lambda h: (-h["eventCount"], h["hashtag"]),
    )[:TOP_HASHTAGS]

    attendance_trend, attendance_pct = compute_trend(
        projects, lambda s: _number(s.get("eventAttendees")) or 0, today)
    engagement_trend, engagement_pct = compute_trend(projects, _images, today)
    best_attendance, best_project = best

    return {
        "partnerId": partner_id,
        "partnerName": partner.get("name"),
        "partnerEmoji": partner.get("emoji"),
        "totalEvents": total_events,
        "firstEventDate": projects[0].get("eventDate"),
        "lastEventDate": projects[-1].get("eventDate"),
        "totalAttendees": total_attendees,
        "avgAttendeesPerEvent": round(total_attendees / total_events),
        "bestEventAttendance": best_attendance,
        "bestEventId": str(best_project["_id"]),
        "bestEventName": best_project.get("eventName"),
        "bestEventDate": best_project.get("eventDate"),
        "totalImages": total_images,
        "avgImagesPerEvent": round(total_images / total_events),
        "totalFans": total_fans,
        "avgFansPerEvent": round(total_fans / total_events),
        "totalMerchedFans": total_merched,
        "avgMerchandiseRate": round(total_merched / total_fans * 100, 2) if total_fans else 0,
        "totalBitlyClicks": total_bitly,
        "avgBitlyClicksPerEvent": round(total_bitly / total_events),
        "attendanceTrend": attendance_trend,
        "attendanceTrendPercent": attendance_pct,
        "engagementTrend": engagement_trend,
        "engagementTrendPercent": engagement_pct,
        "topHashtags": top_hashtags,
    }


def aggregate_partner(db, partner, dry=False, today=None):
    """Print totals for one partner and upsert its analytics; returns the totals."""
    projects = list(db["projects"].find(events_query(partner["_id"])).sort("eventDate", 1))
    print(f"\n{partner.get('name', '(unnamed)')} ({partner['_id']}): {len(projects)} events")

    totals = sum_stats(projects)
    for field, value in totals.items():
        print(f"  {field}: {value}")

    analytics_col = db["partner_analytics"]
    if not projects:
        print("  No events — removing stale analytics record")
        if not dry:
            analytics_col.delete_one({"partnerId": str(partner["_id"])})
        return totals

    analytics = build_partner_analytics(partner, projects, today)
    print(f"  Attendees: {analytics['totalAttendees']} (avg {analytics['avgAttendeesPerEvent']}), "
          f"best: {analytics['bestEventName']}")
    if not dry:
        now = datetime.datetime.utcnow().isoformat()
        analytics_col.update_one(
            {"partnerId": analytics["partnerId"]},
            {
                "$set": dict(analytics, lastAggregatedAt=now, updatedAt=now),
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
        )
    return totals


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
        partners = list(db["partners"].find({}))
    print(f"--- Aggregating stats for {len(partners)} partner(s) ---")

    processed = 0
    errors = 0
    for partner in partners:
        try:
            aggregate_partner(db, partner, dry=DRY_RUN)
            processed += 1
        except Exception as e:
            print(f"  ERROR aggregating {partner.get('name')} ({partner['_id']}): {e}")
            errors += 1

    print("\nSummary:")
    print(f"  Partners processed: {processed}")
    print(f"  Errors: {errors}")

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
        print(f"[FATAL] {e}")
        sys.exit(1)
