# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Target selection for latest and backfill runs.

Targets are always returned in ascending date order, so an interrupted
backfill leaves a consistent prefix of dates behind and a rerun simply
continues forward.
"""

import datetime as dt
import logging
from datetime import timedelta
from typing import Iterable, List, Optional

from .dates import infer_date
from .models import Mode, SourceTarget

LOG = logging.getLogger("store_kpi.planner")


def plan(
    mode: Mode,
    available: Iterable[str],
    days: Optional[int] = None,
    today: Optional[dt.date] = None,
    fallback: Optional[dt.date] = None,
    override: Optional[dt.date] = None,
) -> List[SourceTarget]:
    """
    Select file targets to process.

    Args:
        mode: LATEST picks the last name in sort order, BACKFILL takes all
        available: Object names found in storage
        days: Optional trailing window of exactly ``days`` calendar days
            ending on ``today`` (backfill only)
        today: Current date in the provider calendar
        fallback: Date for names without one; None discards such names
        override: Explicit date. In LATEST mode it replaces the inferred date,
            in BACKFILL mode it keeps only targets inferred to that date

    Returns:
        Targets ordered by (date, name); undated LATEST targets keep
        ``report_date=None`` so the caller can report them as skipped
    """
    names = sorted(set(available))
    if not names:
        return []

    if mode is Mode.LATEST:
        latest = names[-1]
        report_date = override or infer_date(latest, fallback)
        return [SourceTarget(latest, report_date)]

    targets = []
    for name in names:
        report_date = infer_date(name, fallback)
        if report_date is None:
            LOG.warning("Cannot determine report date of %s; not part of the backfill", name)
            continue
        targets.append(SourceTarget(name, report_date))

    if override is not None:
        targets = [t for t in targets if t.report_date == override]
    if days is not None:
        if today is None:
            raise ValueError("today is required to apply a days window")
        if days < 1:
            raise ValueError(f"days must be at least 1, got {days}")
        cutoff = today - timedelta(days=days - 1)
        targets = [t for t in targets if cutoff <= t.report_date <= today]

    targets.sort(key=lambda t: (t.report_date, t.ref))
    return targets


def plan_report_dates(
    mode: Mode,
    days: Optional[int],
    today: dt.date,
    override: Optional[dt.date] = None,
) -> List[SourceTarget]:
    """
    Select report dates for providers that are queried by exact date.

    Reports for the current provider day are not final, so LATEST means
    yesterday and BACKFILL means the ``days`` days before today.
    """
    if override is not None:
        dates = [override]
    elif mode is Mode.BACKFILL:
        dates = [today - timedelta(days=i) for i in range(1, max(1, days or 1) + 1)]
    else:
        dates = [today - timedelta(days=1)]

    return [SourceTarget(d.isoformat(), d) for d in sorted(dates)]
