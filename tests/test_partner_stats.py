"""Tests for partner-level stats aggregation."""

import datetime

from bson import ObjectId

from aggregate_partner_stats import aggregate_partner, build_partner_analytics, compute_trend, sum_stats
from partners import events_query, partner_query


def event(day, **stats):
    return {"_id": ObjectId(), "eventName": f"Event {day}", "eventDate": day, "stats": stats}


class TestSumStats:

    def test_two_events_are_summed(self):
        projects = [event("2024-01-01", female=3, male=2), event("2024-02-01", female=3, male=2)]
        assert sum_stats(projects) == {"female": 6, "male": 4}

    def test_non_numeric_fields_skipped(self):
        projects = [event("2024-01-01", female=3, notes="x", verified=True), {"stats": None}]
        assert sum_stats(projects) == {"female": 3}


class TestPartnerAggregate:

    def test_totals_and_upsert(self, db):
        partner = {"_id": ObjectId(), "name": "Partner A"}
        db["projects"].find.return_value.sort.return_value = [
            event("2024-01-01", female=3, male=2, eventAttendees=100),
            event("2024-02-01", female=3, male=2, eventAttendees=200),
        ]

        totals = aggregate_partner(db, partner)

        assert totals["female"] == 6
        assert totals["male"] == 4
        db["projects"].find.assert_called_once_with(events_query(partner["_id"]))
        analytics = db["partner_analytics"]
        query, update = analytics.update_one.call_args[0]
        assert query == {"partnerId": str(partner["_id"])}
        assert update["$set"]["totalEvents"] == 2
        assert update["$set"]["totalAttendees"] == 300
        assert "createdAt" in update["$setOnInsert"]
        assert analytics.update_one.call_args[1] == {"upsert": True}

    def test_partner_without_events_drops_analytics(self, db):
        partner = {"_id": ObjectId(), "name": "Empty"}
        db["projects"].find.return_value.sort.return_value = []

        assert aggregate_partner(db, partner) == {}
        db["partner_analytics"].delete_one.assert_called_once_with({"partnerId": str(partner["_id"])})
        db["partner_analytics"].update_one.assert_not_called()

    def test_dry_run(self, db):
        db["projects"].find.return_value.sort.return_value = [event("2024-01-01", female=1)]

        aggregate_partner(db, {"_id": ObjectId()}, dry=True)
        db["partner_analytics"].update_one.assert_not_called()


class TestAnalyticsSummary:

    def test_best_event_and_averages(self):
        projects = [
            event("2024-01-01", eventAttendees=100, remoteImages=10, stadium=50, merched=5),
            event("2024-02-01", eventAttendees=300, remoteImages=20, stadium=150, merched=15),
        ]
        projects[0]["hashtags"] = ["hockey"]
        projects[1]["hashtags"] = ["hockey", "final"]

        summary = build_partner_analytics({"_id": ObjectId(), "name": "P"}, projects)

        assert summary["bestEventAttendance"] == 300
        assert summary["bestEventName"] == "Event 2024-02-01"
        assert summary["avgAttendeesPerEvent"] == 200
        assert summary["totalImages"] == 30
        assert summary["avgMerchandiseRate"] == 10.0
        assert summary["firstEventDate"] == "2024-01-01"
        assert summary["topHashtags"][0] == {"hashtag": "hockey", "eventCount": 2, "avgAttendance": 200}

    def test_increasing_trend(self):
        projects = [
            event("2024-02-10", eventAttendees=100), event("2024-03-10", eventAttendees=100),
            event("2024-05-10", eventAttendees=110), event("2024-06-10", eventAttendees=110),
        ]
        trend, pct = compute_trend(projects, lambda s: s["eventAttendees"], today=datetime.date(2024, 7, 1))
        assert trend == "increasing"
        assert pct == 10.0

    def test_insufficient_data(self):
        projects = [event("2024-06-10", eventAttendees=100)]
        assert compute_trend(projects, lambda s: s["eventAttendees"], today=datetime.date(2024, 7, 1)) == (
            "insufficient_data", 0)


def test_partner_query():
    oid = ObjectId()
    assert partner_query(str(oid)) == {"_id": oid}
    assert partner_query("szerencsejatek") == {"viewSlug": "szerencsejatek"}
