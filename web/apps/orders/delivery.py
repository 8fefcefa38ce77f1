"""Delivery date estimates counted in business days."""

from datetime import date, timedelta

SHIPPING_METHOD_DAYS = {"standard": 7, "express": 3, "overnight": 1}

REMOTE_STATES = frozenset(
    s.lower()
    for s in (
        "Arunachal Pradesh",
        "Assam",
        "Manipur",
        "Meghalaya",
        "Mizoram",
        "Nagaland",
        "Sikkim",
        "Tripura",
        "Andaman and Nicobar Islands",
        "Lakshadweep",
        "Ladakh",
    )
)
REMOTE_EXTRA_DAYS = 2


def add_business_days(start: date, days: int) -> date:
    """Return the date ``days`` working days after ``start``, skipping weekends."""
    current = start
    remaining = days
    while remaining > 0:
        current += timedelta(days=1)
        if current.weekday() < 5:
            remaining -= 1
    return current


def estimate_delivery_date(state: str, start: date, method: str = "standard") -> date:
    """Estimate when a parcel sent to ``state`` on ``start`` arrives.

    Unknown shipping methods fall back to standard. Remote north-eastern
    states and island territories take two extra business days.
    """
    days = SHIPPING_METHOD_DAYS.get(method, SHIPPING_METHOD_DAYS["standard"])
    if (state or "").strip().lower() in REMOTE_STATES:
        days += REMOTE_EXTRA_DAYS
    return add_business_days(start, days)
