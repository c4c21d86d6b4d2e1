# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Per-file unit aggregation.

Folds parsed report records into per-(app, country group) totals and
flattens them into canonical rows. The accumulator shape is chosen once per
file: a country column means JP/OVERSEAS buckets, no country column means a
single ALL bucket.
"""

import datetime as dt
import logging
from typing import Dict, List

from .apps import AppDirectory
from .columns import ColumnBinding
from .models import CanonicalMetricRow, CountryGroup, ReportLayout, Store
from .parser import RecordTable

LOG = logging.getLogger("store_kpi.aggregator")

HOME_COUNTRY = "JP"


def parse_units(value) -> int:
    """
    Parse a unit count cell, stripping thousands separators.

    Non-numeric, empty and negative values become 0 so that one bad cell does
    not abort the file.
    """
    if value is None:
        return 0
    text = str(value).replace(",", "").strip()
    if not text:
        return 0
    try:
        units = int(text)
    except ValueError:
        try:
            units = int(float(text))
        except (ValueError, OverflowError):
            LOG.debug("Could not parse unit count: %r", value)
            return 0
    return max(units, 0)


def country_group(country: str) -> CountryGroup:
    if (country or "").strip().upper() == HOME_COUNTRY:
        return CountryGroup.JP
    return CountryGroup.OVERSEAS


class AggregationAccumulator:
    """Running totals for one source file."""

    def __init__(self, split_by_country: bool):
        self.split_by_country = split_by_country
        self.totals: Dict[str, Dict[CountryGroup, int]] = {}
        self.names: Dict[str, str] = {}

    def _buckets(self) -> Dict[CountryGroup, int]:
        if self.split_by_country:
            return {CountryGroup.JP: 0, CountryGroup.OVERSEAS: 0}
        return {CountryGroup.ALL: 0}

    def add(self, app_id: str, app_name: str, units: int, country: str = ""):
        if app_id not in self.totals:
            self.totals[app_id] = self._buckets()
            self.names[app_id] = app_name
        bucket = country_group(country) if self.split_by_country else CountryGroup.ALL
        self.totals[app_id][bucket] += units

    def __len__(self):
        return len(self.totals)

    def to_rows(
        self,
        report_date: dt.date,
        store: Store,
        source: str,
        ingested_at: dt.datetime,
    ) -> List[CanonicalMetricRow]:
        """
        Flatten into canonical rows.

        Country-split accumulators always give both JP and OVERSEAS rows per app,
        so a zero is recorded explicitly rather than omitted.
        """
        rows = []
        for app_id in sorted(self.totals):
            for group, downloads in self.totals[app_id].items():
                rows.append(
                    CanonicalMetricRow(
                        date=report_date,
                        store=store,
                        app_id=app_id,
                        app_name=self.names[app_id],
                        country_group=group,
                        downloads=downloads,
                        source=source,
                        ingested_at=ingested_at,
                    )
                )
        return rows


def aggregate(
    table: RecordTable,
    layout: ReportLayout,
    directory: AppDirectory,
    source: str = "",
) -> AggregationAccumulator:
    """
    Aggregate one parsed report.

    Args:
        table: Parsed records of a single file or report
        layout: Column aliases for the provider
        directory: Monitored apps; records for other apps are dropped
        source: Target name for log and error messages

    Returns:
        Filled AggregationAccumulator

    Raises:
        SchemaError: If the identifier or count column cannot be found
    """
    source = source or table.name
    binding = ColumnBinding.bind(table.header, layout, source)
    acc = AggregationAccumulator(binding.split_by_country)

    LOG.debug(
        "Columns for %s: id=%r count=%r country=%r",
        source,
        binding.identifier,
        binding.count,
        binding.country,
    )

    records = 0
    unmonitored = set()
    for record in table:
        records += 1
        provider_id = record[binding.identifier]
        if not provider_id:
            continue
        resolved = directory.resolve(layout.store, provider_id)
        if resolved is None:
            unmonitored.add(provider_id)
            continue
        app_id, app_name = resolved
        country = record[binding.country] if binding.country else ""
        acc.add(app_id, app_name, parse_units(record[binding.count]), country)

    LOG.debug(
        "Aggregated %d records from %s: %d monitored apps, %d unmonitored identifiers",
        records,
        source,
        len(acc),
        len(unmonitored),
    )
    return acc
