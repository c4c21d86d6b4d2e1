# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Idempotent reconciliation of canonical rows into BigQuery.

Each call issues one MERGE keyed on (date, store, app_id, country_group):
matched rows are overwritten, unmatched rows are inserted, and rows absent
from the batch are left alone. Running the same batch twice only refreshes
``ingested_at``.
"""

import datetime as dt
import logging
from typing import List, Sequence

from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

from .errors import ReconcileError
from .models import CanonicalMetricRow

LOG = logging.getLogger("store_kpi.sink")

MERGE_SQL = """
MERGE {table} T
USING (
  SELECT
    @date AS date,
    r.store,
    r.app_id,
    r.app_name,
    r.country_group,
    r.downloads,
    @source AS source,
    @ingested_at AS ingested_at
  FROM UNNEST(@rows) AS r
) S
ON
  T.date = S.date
  AND T.store = S.store
  AND T.app_id = S.app_id
  AND T.country_group = S.country_group
WHEN MATCHED THEN
  UPDATE SET
    T.app_name = S.app_name,
    T.downloads = S.downloads,
    T.source = S.source,
    T.ingested_at = S.ingested_at
WHEN NOT MATCHED THEN
  INSERT (date, store, app_id, app_name, country_group, downloads, source, ingested_at)
  VALUES (S.date, S.store, S.app_id, S.app_name, S.country_group, S.downloads, S.source, S.ingested_at)
"""

TABLE_SCHEMA = [
    bigquery.SchemaField("date", "DATE", mode="REQUIRED"),
    bigquery.SchemaField("store", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("app_id", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("app_name", "STRING"),
    bigquery.SchemaField("country_group", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("downloads", "INT64"),
    bigquery.SchemaField("source", "STRING"),
    bigquery.SchemaField("ingested_at", "TIMESTAMP"),
]


def _row_parameter(row: CanonicalMetricRow) -> bigquery.StructQueryParameter:
    return bigquery.StructQueryParameter(
        None,
        bigquery.ScalarQueryParameter("store", "STRING", row.store.value),
        bigquery.ScalarQueryParameter("app_id", "STRING", row.app_id),
        bigquery.ScalarQueryParameter("app_name", "STRING", row.app_name),
        bigquery.ScalarQueryParameter("country_group", "STRING", row.country_group.value),
        bigquery.ScalarQueryParameter("downloads", "INT64", row.downloads),
    )


class ReconciliationSink:
    """Merge-upsert writer for the daily downloads table."""

    def __init__(self, client: bigquery.Client, table_id: str, location: str = "US"):
        self.client = client
        self.table_id = table_id
        self.location = location

    @property
    def table_ref(self) -> str:
        return f"`{self.table_id}`"

    def _check_batch(self, report_date: dt.date, rows: Sequence[CanonicalMetricRow]):
        keys = set()
        for row in rows:
            if row.date != report_date:
                raise ValueError(f"Row {row.key} does not belong to {report_date}")
            if row.key in keys:
                raise ValueError(f"Duplicate key in batch: {row.key}")
            keys.add(row.key)

    def build_job_config(
        self, report_date: dt.date, source: str, rows: Sequence[CanonicalMetricRow]
    ) -> bigquery.QueryJobConfig:
        ingested_at = max(row.ingested_at for row in rows)
        return bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("date", "DATE", report_date),
                bigquery.ScalarQueryParameter("source", "STRING", source),
                bigquery.ScalarQueryParameter("ingested_at", "TIMESTAMP", ingested_at),
                bigquery.ArrayQueryParameter(
                    "rows", "STRUCT", [_row_parameter(row) for row in rows]
                ),
            ]
        )

    def reconcile(
        self, report_date: dt.date, source: str, rows: List[CanonicalMetricRow]
    ) -> int:
        """
        Merge one batch of rows for a single reporting date.

        Args:
            report_date: Date every row belongs to
            source: Provenance tag written to the ``source`` column
            rows: Canonical rows, unique by key

        Returns:
            Number of rows merged (0 for an empty batch, which is a no-op)

        Raises:
            ReconcileError: If the MERGE job fails
        """
        if not rows:
            LOG.debug("Nothing to merge for %s (%s)", report_date, source)
            return 0
        self._check_batch(report_date, rows)

        sql = MERGE_SQL.format(table=self.table_ref)
        job_config = self.build_job_config(report_date, source, rows)
        try:
            job = self.client.query(sql, job_config=job_config, location=self.location)
            job.result()
        except GoogleAPIError as e:
            raise ReconcileError(
                f"MERGE into {self.table_id} failed for {report_date} ({source}): {e}"
            ) from e

        LOG.info("MERGE done: date=%s source=%s rows=%d", report_date, source, len(rows))
        return len(rows)

    def ensure_table(self):
        """Create the daily table if it does not exist yet."""
        table = bigquery.Table(self.table_id, schema=TABLE_SCHEMA)
        table.time_partitioning = bigquery.TimePartitioning(
            type_=bigquery.TimePartitioningType.DAY, field="date"
        )
        table.clustering_fields = ["store", "app_id"]
        try:
            self.client.create_table(table, exists_ok=True)
        except GoogleAPIError as e:
            raise ReconcileError(f"Cannot create table {self.table_id}: {e}") from e
        LOG.info("Table %s is ready", self.table_id)
