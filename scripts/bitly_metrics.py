"""Aggregation helpers shared by the Bitly KYC scripts.

bitly_links documents carry the raw analytics pulled from the Bitly API:
  total_clicks, unique_clicks,
  geo.countries: [{country, clicks}], referrers: [{referrer, clicks}],
  devices: [{device, clicks}]

bitly_project_links junctions cache a per-project copy of those numbers under
cachedMetrics (totalClicks, uniqueClicks, countriesData, referrersData,
devicesData, lastSyncedAt). Junctions that were never synced (lastSyncedAt
None) are left out of every aggregate. The KYC pages read flattened fields
from project/partner stats.
"""

import datetime
from collections import Counter

TOP_COUNTRIES_CACHED = 10
TOP_COUNTRIES_KYC = 5
DEVICE_KINDS = ("mobile", "desktop", "tablet")
SOCIAL_REFERRERS = ("facebook", "instagram", "twitter")
REFERRER_FIELDS = (
    "bitlyTopReferrer",
    "bitlyReferrerCount",
    "bitlyFacebookClicks",
    "bitlyInstagramClicks",
    "bitlySocialClicks",
    "bitlyDirectClicks",
)


def _clicks(value):
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    return 0


def sum_breakdown(entries, key):
    """Merge [{key: name, clicks: n}, ...] into a Counter keyed by name."""
    counter = Counter()
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        name = entry.get(key)
        if not name:
            continue
        counter[name] += _clicks(entry.get("clicks"))
    return counter


def top_n(counter, n):
    """Highest-click (name, clicks) pairs; ties are broken by name."""
    return sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))[:n]


def device_breakdown(entries):
    """Bucket device entries into lower-cased device names ("other" if unnamed)."""
    counter = Counter()
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        name = (entry.get("device") or "other").lower()
        counter[name] += _clicks(entry.get("clicks"))
    return counter


def aggregate_links(links):
    """Sum raw bitly_links documents into one aggregate dict."""
    total = 0
    unique = 0
    countries = Counter()
    referrers = Counter()
    devices = Counter()
    for link in links:
        total += _clicks(link.get("total_clicks"))
        unique += _clicks(link.get("unique_clicks"))
        countries.update(sum_breakdown((link.get("geo") or {}).get("countries"), "country"))
        referrers.update(sum_breakdown(link.get("referrers"), "referrer"))
        devices.update(device_breakdown(link.get("devices")))
    return {
        "linkCount": len(links),
        "totalClicks": total,
        "uniqueClicks": unique,
        "countries": countries,
        "referrers": referrers,
        "devices": devices,
    }


def cached_metrics_for_link(link, now=None):
    """Build the cachedMetrics document stored on a bitly_project_links junction."""
    now = now or datetime.datetime.utcnow().isoformat()
    countries = sum_breakdown((link.get("geo") or {}).get("countries"), "country")
    referrers = sum_breakdown(link.get("referrers"), "referrer")
    return {
        "totalClicks": _clicks(link.get("total_clicks")),
        "uniqueClicks": _clicks(link.get("unique_clicks")),
        "countriesData": [
            {"country": c, "clicks": n} for c, n in top_n(countries, TOP_COUNTRIES_CACHED)
        ],
        "referrersData": [
            {"referrer": r, "clicks": n} for r, n in top_n(referrers, TOP_COUNTRIES_CACHED)
        ],
        "devicesData": dict(device_breakdown(link.get("devices"))),
        "lastSyncedAt": now,
    }


def empty_cached_metrics():
    """cachedMetrics for a junction that has never been synced."""
    return {
        "totalClicks": 0,
        "uniqueClicks": 0,
        "countriesData": [],
        "referrersData": [],
        "devicesData": {},
        "lastSyncedAt": None,
    }


def is_synced(junction):
    """True when the junction carries metrics computed from real Bitly data."""
    metrics = junction.get("cachedMetrics")
    if not metrics or "totalClicks" not in metrics:
        return False
    return (metrics.get("lastSyncedAt") or junction.get("lastSyncedAt")) is not None


def aggregate_junctions(junctions):
    """Merge cachedMetrics across every synced junction of one project."""
    total = 0
    unique = 0
    countries = Counter()
    referrers = Counter()
    devices = Counter()
    synced = [j for j in junctions if is_synced(j)]
    for junction in synced:
        metrics = junction["cachedMetrics"]
        total += _clicks(metrics.get("totalClicks"))
        unique += _clicks(metrics.get("uniqueClicks"))
        countries.update(sum_breakdown(metrics.get("countriesData"), "country"))
        referrers.update(sum_breakdown(metrics.get("referrersData"), "referrer"))
        for name, clicks in (metrics.get("devicesData") or {}).items():
            devices[name.lower()] += _clicks(clicks)
    return {
        "linkCount": len(synced),
        "totalClicks": total,
        "uniqueClicks": unique,
        "countries": countries,
        "referrers": referrers,
        "devices": devices,
    }


def kyc_stats(aggregate):
    """Flatten an aggregate into the stat fields shown on the KYC pages."""
    stats = {
        "totalBitlyClicks": aggregate["totalClicks"],
        "uniqueBitlyClicks": aggregate["uniqueClicks"],
    }
    for kind in DEVICE_KINDS:
        stats[f"bitly{kind.capitalize()}Clicks"] = aggregate["devices"].get(kind, 0)

    for num, (country, clicks) in enumerate(top_n(aggregate["countries"], TOP_COUNTRIES_KYC), 1):
        stats[f"bitlyCountry{num}"] = country
        stats[f"bitlyCountry{num}Clicks"] = clicks
    stats["bitlyCountryCount"] = len(aggregate["countries"])

    referrers = aggregate["referrers"]
    if referrers:
        stats["bitlyTopReferrer"] = top_n(referrers, 1)[0][0]
        stats["bitlyReferrerCount"] = len(referrers)
        stats["bitlyFacebookClicks"] = referrers.get("facebook", 0)
        stats["bitlyInstagramClicks"] = referrers.get("instagram", 0)
        stats["bitlySocialClicks"] = sum(referrers.get(r, 0) for r in SOCIAL_REFERRERS)
        stats["bitlyDirectClicks"] = referrers.get("direct", 0)
    return stats


def stale_kyc_fields(stats):
    """KYC fields an earlier run may have written that stats no longer carries.

    Country slots above the current top count and the referrer fields of a
    link set without referrers have to be unset, or old values outlive the
    new totals.
    """
    fields = []
    for num in range(1, TOP_COUNTRIES_KYC + 1):
        fields += [f"bitlyCountry{num}", f"bitlyCountry{num}Clicks"]
    fields += REFERRER_FIELDS
    return [field for field in fields if field not in stats]
