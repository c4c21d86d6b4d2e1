# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""Reporting date helpers."""

import datetime as dt
import re
from typing import Optional
from zoneinfo import ZoneInfo

# Provider calendars: Play exports are filed in JST, Apple sales reports in Pacific time
PLAY_TIMEZONE = "Asia/Tokyo"
APPLE_TIMEZONE = "America/Los_Angeles"

# Lookahead so every position is tried, including inside longer digit runs
_date_regex = re.compile(r"(?=(20\d{2})[-_]?(\d{2})[-_]?(\d{2}))")


def infer_date(name: str, fallback: Optional[dt.date] = None) -> Optional[dt.date]:
    """
    Extract the reporting date embedded in a file or object name.

    Accepts ``20240305``, ``2024-03-05`` and ``2024_03_05`` anywhere in the
    name, timestamps such as ``20240305093000`` included. Years start with
    ``20``; the first match that forms a real calendar date wins.

    Args:
        name: File or object name
        fallback: Date to return when the name carries none

    Returns:
        The embedded date, else ``fallback`` (None unless supplied)
    """
    for m in _date_regex.finditer(name or ""):
        year, month, day = (int(g) for g in m.groups())
        try:
            return dt.date(year, month, day)
        except ValueError:
            continue
    return fallback


def today_in(tz_name: str, now: Optional[dt.datetime] = None) -> dt.date:
    """Current calendar date in the given IANA timezone."""
    now = now or dt.datetime.now(dt.timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def parse_iso_date(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value}")
