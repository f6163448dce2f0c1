"""Formatting helpers shared by command output."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import IO, Any


def print_json(data: Any, out: IO[str]) -> None:
    """Write ``data`` as one compact JSON document followed by a newline."""
    if data is None or (isinstance(data, list) and not data):
        out.write("[]\n")
        return
    out.write(json.dumps(data, separators=(",", ":"), ensure_ascii=False))
    out.write("\n")


def _about(amount: int, unit: str) -> str:
    suffix = "" if amount == 1 else "s"
    return f"about {amount} {unit}{suffix} ago"


def fuzzy_ago(ago: timedelta) -> str:
    if ago < timedelta(minutes=1):
        return "less than a minute ago"
    if ago < timedelta(hours=1):
        return _about(int(ago.total_seconds() // 60), "minute")
    if ago < timedelta(days=1):
        return _about(int(ago.total_seconds() // 3600), "hour")
    if ago < timedelta(days=30):
        return _about(ago.days, "day")
    if ago < timedelta(days=365):
        return _about(ago.days // 30, "month")
    return _about(ago.days // 365, "year")


def time_ago(when: datetime | None, now: datetime | None = None) -> str:
    """Humanize a timestamp relative to ``now``, e.g. ``about 2 years ago``."""
    if when is None:
        return "-"
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return fuzzy_ago(now - when)


def format_time(when: datetime | None) -> str:
    """Render an absolute timestamp as ``2024-02-11 18:55:08 +0000 UTC``."""
    if when is None:
        return "-"
    when = when.astimezone(timezone.utc)
    return when.strftime("%Y-%m-%d %H:%M:%S +0000 UTC")


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "0"
    if float(seconds).is_integer():
        return str(int(seconds))
    return str(float(seconds))


def format_bool(value: bool) -> str:
    return "true" if value else "false"
