"""
Slot identity used for de-duplication.

A slot key is a pure function of (service, staff, datetime) so it stays
stable across restarts. The platform may return the same slot either as a
full RFC 3339 datetime or as a bare time of day, so the datetime is
normalised to one representation before keying.
"""

from datetime import date as date_cls, datetime, time, tzinfo

from .formatting import parse_slot_datetime


def build_slot_key(service_id: int, staff_id: int, slot_datetime: str) -> str:
    """
    Compose the dedup key for a slot.

    Example:
        build_slot_key(100, 42, "2025-06-01T10:00:00+03:00")
        -> "svc=100|staff=42|dt=2025-06-01T10:00:00+03:00"
    """
    return f"svc={service_id}|staff={staff_id}|dt={slot_datetime}"


def normalize_slot_datetime(value: str, day: str, tz: tzinfo) -> str:
    """
    Bring a timeslot value into canonical ISO-8601 form in the given zone.

    Args:
        value: Full datetime or bare HH:MM[:SS] time as returned by the API
        day: The YYYY-MM-DD date the timeslot was requested for
        tz: Configured time zone

    Returns:
        The datetime as isoformat() with offset, or the stripped raw value
        if it is neither shape.
    """
    raw = value.strip()

    moment = parse_slot_datetime(raw, tz)
    if moment is not None:
        return moment.isoformat()

    try:
        clock = time.fromisoformat(raw)
        on_day = date_cls.fromisoformat(day)
    except ValueError:
        return raw

    moment = datetime.combine(on_day, clock.replace(tzinfo=None), tzinfo=clock.tzinfo or tz)
    try:
        return moment.astimezone(tz).isoformat()
    except OverflowError:
        return raw
