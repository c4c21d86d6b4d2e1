#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Store KPI loader

Loads daily install/download counts from Google Play Console exports (GCS) or
App Store Connect sales reports into the BigQuery daily downloads table.

CLI options:
  --store        {android,ios}     Required. Which provider to ingest.
  --mode         {latest,backfill} Optional. Default: latest.
  --days         <N>               Optional. Backfill window in days.
  --date         <YYYY-MM-DD>      Optional. Explicit reporting date.
  --apps-config  <PATH>            Optional. Apps JSON (default: STORE_KPI_APPS_CONFIG or config/apps.json).
  --create-table                   Optional. Create the daily table if it does not exist.
  --debug                          Optional. Enable debug logging.

Exit codes:
  0  run finished (including runs with zero targets or skipped targets)
  1  unexpected error
  2  configuration or authentication error
"""

import argparse
import logging
import sys
from typing import List, Optional

from google.auth.exceptions import GoogleAuthError

from .apps import load_apps_file
from .config import load_settings
from .dates import parse_iso_date
from .errors import AuthError, ConfigError, StoreKpiError
from .metrics import RunMetrics
from .models import Mode, Store
from .pipeline import build_android_run, build_ios_run, make_sink

LOG = logging.getLogger("store_kpi")


def configure_logging(level: str):
    """Attach a dedicated handler to the application logger only."""
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        LOG.addHandler(handler)
    for handler in LOG.handlers:
        handler.setLevel(level)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def _date(value: str):
    try:
        return parse_iso_date(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="store-kpi",
        description="Load daily app store downloads into the BigQuery KPI table.",
    )
    ap.add_argument(
        "--store",
        required=True,
        choices=[s.value for s in Store],
        help="Provider to ingest: android (Play Console exports) or ios (sales reports)",
    )
    ap.add_argument(
        "--mode",
        default=Mode.LATEST.value,
        choices=[m.value for m in Mode],
        help="latest: most recent file/day only; backfill: every available file/day",
    )
    ap.add_argument(
        "--days",
        type=_positive_int,
        default=None,
        help="Backfill window in days (ios default: 1, android default: all files)",
    )
    ap.add_argument(
        "--date",
        type=_date,
        default=None,
        help="Explicit reporting date (YYYY-MM-DD)",
    )
    ap.add_argument("--apps-config", default=None, help="Path to the apps JSON configuration")
    ap.add_argument(
        "--create-table",
        action="store_true",
        help="Create the daily table (partitioned by date) if it does not exist",
    )
    ap.add_argument("--debug", action="store_true", help="Enable debug logging")
    return ap


def run(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    store = Store(args.store)
    mode = Mode(args.mode)

    configure_logging("DEBUG" if args.debug else "INFO")
    settings = load_settings()
    if not args.debug:
        configure_logging(settings.log_level)
    LOG.info("Store KPI loader starting: store=%s mode=%s", store.value, mode.value)

    directory = load_apps_file(args.apps_config or settings.apps_config)
    sink = make_sink(settings)
    if args.create_table:
        sink.ensure_table()

    build = build_android_run if store is Store.ANDROID else build_ios_run
    pipeline, targets = build(
        settings, directory, sink, mode, days=args.days, override=args.date
    )
    summary = pipeline.run(targets)

    if settings.pushgateway:
        metrics = RunMetrics()
        metrics.record(store.value, summary)
        metrics.push(settings.pushgateway, store.value)

    if summary.failed:
        LOG.warning("Skipped targets: %s", ", ".join(summary.failed))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    try:
        return run(argv)
    except (ConfigError, AuthError, GoogleAuthError) as e:
        LOG.error("%s: %s", type(e).__name__, e)
        return 2
    except StoreKpiError as e:
        LOG.error("Run aborted: %s", e)
        return 1
    except KeyboardInterrupt:
        LOG.info("Interrupted by user (Ctrl+C)")
        return 130
    except Exception as e:
        LOG.exception("Unexpected error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
