"""Human-readable rendering of durations, locations, timestamps and alert text."""

from __future__ import annotations

from datetime import datetime, timezone

from kyr.domains.rights.models import Encounter, Location


def format_duration(seconds: int) -> str:
    """Render seconds as ``MM:SS``. Minutes are not capped at 59.

    >>> format_duration(125)
    '02:05'
    """
    if seconds < 0:
        raise ValueError(f"Duration cannot be negative: {seconds}")
    minutes, remaining = divmod(int(seconds), 60)
    return f"{minutes:02d}:{remaining:02d}"


def format_location(location: Location) -> str:
    """``"city, state"`` when both are known, otherwise coordinates to 4 places."""
    if location.city and location.state:
        return f"{location.city}, {location.state}"
    return f"{location.latitude:.4f}, {location.longitude:.4f}"


def _local(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone()


def format_date(ts: datetime) -> str:
    return _local(ts).strftime("%m/%d/%Y")


def format_time(ts: datetime) -> str:
    return _local(ts).strftime("%I:%M:%S %p")


def format_timestamp(ts: datetime) -> str:
    """Local date and time, e.g. ``03/14/2026, 09:26:53 PM``. Naive values are UTC."""
    return f"{format_date(ts)}, {format_time(ts)}"


def build_alert_message(user_label: str, location: Location, when: datetime) -> str:
    return (
        f"EMERGENCY ALERT: {user_label} has triggered an emergency alert. "
        f"Location: {format_location(location)}. "
        f"Time: {format_timestamp(when)}. "
        "Please check on them immediately."
    )


def default_summary(encounter: Encounter) -> str:
    """Canned summary used whenever generated text is unavailable."""
    location = encounter.location
    duration = format_duration(encounter.duration) if encounter.duration else "Unknown"
    return (
        f"Encounter recorded on {format_date(encounter.timestamp)} "
        f"at {format_time(encounter.timestamp)}. "
        f"Location: {location.city or 'Unknown'}, {location.state or 'Unknown'}. "
        f"Duration: {duration}."
    )
