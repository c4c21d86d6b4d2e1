# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Ingestion orchestration.

One run plans its targets, then for each target: fetch -> parse -> resolve
columns -> aggregate -> reconcile. Targets are independent: a failure is
logged, counted and skipped, and earlier merges stay applied.
"""

import datetime as dt
import io
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import BinaryIO, Callable, List, Optional, Tuple

from google.cloud import bigquery

from .aggregator import aggregate
from .apps import AppDirectory
from .auth import make_token
from .config import Settings
from .dates import APPLE_TIMEZONE, PLAY_TIMEZONE, today_in
from .errors import TARGET_ERRORS, SchemaError
from .models import (
    APP_STORE_SALES,
    GOOGLE_PLAY_INSTALLS,
    Mode,
    ReportLayout,
    SourceTarget,
    Store,
)
from .parser import parse_records
from .planner import plan, plan_report_dates
from .sink import ReconciliationSink
from .sources import BlobSource, SalesReportSource, google_credentials, storage_client

LOG = logging.getLogger("store_kpi.pipeline")

Opener = Callable[[SourceTarget], Tuple[BinaryIO, Optional[bool]]]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class RunSummary:
    targets: int = 0
    processed: int = 0
    skipped: int = 0
    empty: int = 0
    rows: int = 0
    failed: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "targets": self.targets,
            "processed": self.processed,
            "skipped": self.skipped,
            "empty": self.empty,
            "rows": self.rows,
        }


class IngestionPipeline:
    """Processes source targets one at a time, oldest first."""

    def __init__(
        self,
        opener: Opener,
        layout: ReportLayout,
        directory: AppDirectory,
        sink: ReconciliationSink,
        clock: Callable[[], dt.datetime] = _utcnow,
    ):
        self.opener = opener
        self.layout = layout
        self.directory = directory
        self.sink = sink
        self.clock = clock

    def process(self, target: SourceTarget) -> int:
        """
        Ingest a single target.

        Returns:
            Number of rows merged; 0 when no monitored app appears in the report

        Raises:
            FetchError, FormatError, SchemaError, ReconcileError
        """
        stream, compressed = self.opener(target)
        table = parse_records(stream, self.layout.delimiter, compressed, name=target.ref)
        acc = aggregate(table, self.layout, self.directory, target.ref)
        rows = acc.to_rows(target.report_date, self.layout.store, self.layout.source, self.clock())
        if not rows:
            return 0
        return self.sink.reconcile(target.report_date, self.layout.source, rows)

    def run(self, targets: List[SourceTarget]) -> RunSummary:
        summary = RunSummary(targets=len(targets))
        if not targets:
            LOG.info("No targets to process for %s", self.layout.source)
            return summary

        for target in targets:
            if target.report_date is None:
                LOG.warning("Skipping %s: report date could not be determined", target.ref)
                summary.skipped += 1
                summary.failed.append(target.ref)
                continue

            LOG.info("Processing: %s (date=%s)", target.ref, target.report_date)
            try:
                merged = self.process(target)
            except SchemaError as e:
                LOG.error("Skipping %s: %s (headers: %s)", target.ref, e, e.headers)
                summary.skipped += 1
                summary.failed.append(target.ref)
                continue
            except TARGET_ERRORS as e:
                LOG.error("Skipping %s: %s", target.ref, e)
                summary.skipped += 1
                summary.failed.append(target.ref)
                continue

            if merged == 0:
                LOG.info("No matching apps rows in %s. Skipped.", target.ref)
                summary.empty += 1
            else:
                summary.processed += 1
                summary.rows += merged

        LOG.info("All done (%s): %s", self.layout.source, summary.as_dict())
        return summary


# ------------ Wiring ------------
def bigquery_client(settings: Settings) -> bigquery.Client:
    return bigquery.Client(
        project=settings.bq_project,
        credentials=google_credentials(settings),
        location=settings.bq_location,
    )


def make_sink(settings: Settings, client: Optional[bigquery.Client] = None) -> ReconciliationSink:
    client = client or bigquery_client(settings)
    return ReconciliationSink(client, settings.table_id, settings.bq_location)


def build_android_run(
    settings: Settings,
    directory: AppDirectory,
    sink: ReconciliationSink,
    mode: Mode,
    days: Optional[int] = None,
    override: Optional[dt.date] = None,
    source: Optional[BlobSource] = None,
    today: Optional[dt.date] = None,
) -> Tuple[IngestionPipeline, List[SourceTarget]]:
    """Plan Play Console export files and wire a pipeline for them."""
    settings.require(Store.ANDROID)
    source = source or BlobSource(storage_client(settings), settings.gcs_bucket, settings.gcs_prefix)
    today = today or today_in(PLAY_TIMEZONE)
    fallback = today if settings.date_fallback.allows(mode) else None

    targets = plan(
        mode,
        source.list_objects(),
        days=days,
        today=today,
        fallback=fallback,
        override=override,
    )
    LOG.info("Mode=%s targets=%d", mode.value, len(targets))

    def opener(target: SourceTarget):
        return source.open_read_stream(target.ref), source.is_compressed(target.ref)

    return IngestionPipeline(opener, GOOGLE_PLAY_INSTALLS, directory, sink), targets


def build_ios_run(
    settings: Settings,
    directory: AppDirectory,
    sink: ReconciliationSink,
    mode: Mode,
    days: Optional[int] = None,
    override: Optional[dt.date] = None,
    source: Optional[SalesReportSource] = None,
    today: Optional[dt.date] = None,
) -> Tuple[IngestionPipeline, List[SourceTarget]]:
    """Plan sales report dates and wire a pipeline for them."""
    settings.require(Store.IOS)
    if source is None:
        token_factory = partial(
            make_token, settings.asc_issuer_id, settings.asc_key_id, settings.asc_private_key
        )
        # Fail the run early on unusable credentials
        token_factory()
        source = SalesReportSource(token_factory, settings.asc_vendor_number)
    today = today or today_in(APPLE_TIMEZONE)

    targets = plan_report_dates(mode, days, today, override=override)
    LOG.info("Mode=%s targets=%d", mode.value, len(targets))

    def opener(target: SourceTarget):
        # Payload is usually gzip but not always; let the parser sniff it
        return io.BytesIO(source.fetch(target.report_date)), None

    return IngestionPipeline(opener, APP_STORE_SALES, directory, sink), targets
