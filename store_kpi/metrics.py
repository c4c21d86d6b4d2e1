# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""Run summary metrics pushed to a Prometheus Pushgateway."""

import logging
import time

from prometheus_client import CollectorRegistry, Gauge, push_to_gateway

LOG = logging.getLogger("store_kpi.metrics")

JOB_NAME = "store_kpi_loader"


class RunMetrics:
    """Gauges describing one loader run, kept in a private registry."""

    def __init__(self):
        self.registry = CollectorRegistry()
        self.processed = Gauge(
            "store_kpi_targets_processed",
            "Targets parsed and reconciled in the last run",
            ["store"],
            registry=self.registry,
        )
        self.skipped = Gauge(
            "store_kpi_targets_skipped",
            "Targets skipped because of fetch, format, schema or merge errors",
            ["store"],
            registry=self.registry,
        )
        self.rows = Gauge(
            "store_kpi_rows_merged",
            "Canonical rows merged into the daily table in the last run",
            ["store"],
            registry=self.registry,
        )
        self.last_success = Gauge(
            "store_kpi_last_success_timestamp_seconds",
            "Unix time of the last run that finished without skipped targets",
            ["store"],
            registry=self.registry,
        )

    def record(self, store: str, summary):
        self.processed.labels(store=store).set(summary.processed)
        self.skipped.labels(store=store).set(summary.skipped)
        self.rows.labels(store=store).set(summary.rows)
        if summary.skipped == 0:
            self.last_success.labels(store=store).set(time.time())

    def push(self, gateway: str, store: str):
        """Push to the gateway; failures are logged, never raised."""
        try:
            push_to_gateway(
                gateway, job=JOB_NAME, registry=self.registry, grouping_key={"store": store}
            )
            LOG.debug("Pushed run metrics to %s", gateway)
        except OSError as e:
            LOG.warning("Failed to push metrics to %s: %s", gateway, e)
