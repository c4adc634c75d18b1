"""
Threshold bucketing shared by the inventory and marketing reports.

Bands are (upper_inclusive, tier) pairs in ascending order; the first band
whose upper bound is >= value wins, anything above the last band gets the
default tier. The function is total over all integers.

Boundaries (authoritative):
- Inactivity (days since last visit): <=30 active, 31-60 recent,
  61-90 warning, >90 urgent. 90 is "warning", 91 is "urgent".
  Future dates (negative elapsed) are "active".
- Expiry (days remaining): <0 expired, 0-7 critical, 8-30 warning,
  >30 ok. No expiry date is "no_date".
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, Sequence

from ..time_utils import days_between

TIER_ACTIVE = "active"
TIER_RECENT = "recent"
TIER_WARNING = "warning"
TIER_URGENT = "urgent"
TIER_NEVER = "never"

EXPIRY_EXPIRED = "expired"
EXPIRY_CRITICAL = "critical"
EXPIRY_WARNING = "warning"
EXPIRY_OK = "ok"
EXPIRY_NO_DATE = "no_date"

INACTIVITY_BANDS: tuple[tuple[int, str], ...] = (
    (30, TIER_ACTIVE),
    (60, TIER_RECENT),
    (90, TIER_WARNING),
)
INACTIVITY_DEFAULT = TIER_URGENT
INACTIVITY_TIERS = (TIER_URGENT, TIER_WARNING, TIER_RECENT, TIER_ACTIVE)

EXPIRY_BANDS: tuple[tuple[int, str], ...] = (
    (-1, EXPIRY_EXPIRED),
    (7, EXPIRY_CRITICAL),
    (30, EXPIRY_WARNING),
)
EXPIRY_DEFAULT = EXPIRY_OK


def classify(value: int, bands: Sequence[tuple[int, str]], default: str) -> str:
    for upper, tier in bands:
        if value <= upper:
            return tier
    return default


def classify_inactivity(elapsed_days: int) -> str:
    return classify(elapsed_days, INACTIVITY_BANDS, INACTIVITY_DEFAULT)


def classify_expiry(days_remaining: int | None) -> str:
    if days_remaining is None:
        return EXPIRY_NO_DATE
    return classify(days_remaining, EXPIRY_BANDS, EXPIRY_DEFAULT)


def classify_clients(clients: Iterable[dict], today: date) -> dict[str, list[dict]]:
    """
    Bucket clients by days since their last visit.

    Each client dict needs "last_visit" (date or None). Returned rows carry
    "days_since_last_visit" and "status"; each tier is ordered most
    inactive first. Clients with no visit at all go under "never".
    """
    tiers: dict[str, list[dict]] = {tier: [] for tier in INACTIVITY_TIERS}
    tiers[TIER_NEVER] = []

    for client in clients:
        last_visit = client.get("last_visit")
        if last_visit is None:
            tiers[TIER_NEVER].append({**client, "days_since_last_visit": None, "status": TIER_NEVER})
            continue
        elapsed = days_between(last_visit, today)
        tier = classify_inactivity(elapsed)
        tiers[tier].append({**client, "days_since_last_visit": elapsed, "status": tier})

    for tier in INACTIVITY_TIERS:
        tiers[tier].sort(key=lambda row: row["days_since_last_visit"], reverse=True)
    return tiers
