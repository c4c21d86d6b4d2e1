# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""Tests for the command line entry point and its exit codes."""

import datetime as dt
import os
import unittest
from unittest.mock import MagicMock, patch

from store_kpi import cli
from store_kpi.config import Settings
from store_kpi.errors import AuthError, ReconcileError
from store_kpi.models import Mode
from store_kpi.pipeline import RunSummary


def _settings(**kwargs):
    return Settings(bq_project="proj", bq_dataset="kpi", bq_table="daily", **kwargs)


class TestMain(unittest.TestCase):
    def setUp(self):
        self.settings = _settings()
        self.pipeline = MagicMock()
        self.pipeline.run.return_value = RunSummary(targets=1, processed=1, rows=2)

        patches = {
            "load_settings": patch("store_kpi.cli.load_settings", return_value=self.settings),
            "load_apps_file": patch("store_kpi.cli.load_apps_file"),
            "make_sink": patch("store_kpi.cli.make_sink"),
            "build_android_run": patch(
                "store_kpi.cli.build_android_run", return_value=(self.pipeline, ["t"])
            ),
            "build_ios_run": patch("store_kpi.cli.build_ios_run", return_value=(self.pipeline, ["t"])),
        }
        self.mocks = {}
        for name, p in patches.items():
            self.mocks[name] = p.start()
            self.addCleanup(p.stop)

    def test_android_latest(self):
        code = cli.main(["--store", "android"])

        self.assertEqual(code, 0)
        build = self.mocks["build_android_run"]
        args, kwargs = build.call_args
        self.assertEqual(args[3], Mode.LATEST)
        self.assertEqual(kwargs, {"days": None, "override": None})
        self.mocks["load_apps_file"].assert_called_once_with(self.settings.apps_config)
        self.pipeline.run.assert_called_once_with(["t"])
        self.mocks["build_ios_run"].assert_not_called()

    def test_ios_backfill_with_date(self):
        code = cli.main(
            ["--store", "ios", "--mode", "backfill", "--days", "7", "--date", "2024-03-05", "--apps-config", "apps.json"]
        )

        self.assertEqual(code, 0)
        _, kwargs = self.mocks["build_ios_run"].call_args
        self.assertEqual(kwargs, {"days": 7, "override": dt.date(2024, 3, 5)})
        self.mocks["load_apps_file"].assert_called_once_with("apps.json")

    def test_skipped_targets_still_exit_zero(self):
        self.pipeline.run.return_value = RunSummary(targets=2, processed=1, skipped=1, failed=["x.csv"])

        self.assertEqual(cli.main(["--store", "android"]), 0)

    def test_create_table(self):
        cli.main(["--store", "android", "--create-table"])

        self.mocks["make_sink"].return_value.ensure_table.assert_called_once_with()

    def test_table_creation_failure_exits_one(self):
        self.mocks["make_sink"].return_value.ensure_table.side_effect = ReconcileError("denied")

        self.assertEqual(cli.main(["--store", "android", "--create-table"]), 1)

    def test_auth_error_exits_two(self):
        self.mocks["build_ios_run"].side_effect = AuthError("bad key")

        self.assertEqual(cli.main(["--store", "ios"]), 2)

    def test_unexpected_error_exits_one(self):
        self.pipeline.run.side_effect = RuntimeError("boom")

        self.assertEqual(cli.main(["--store", "android"]), 1)

    @patch("store_kpi.cli.RunMetrics")
    def test_metrics_pushed_when_gateway_configured(self, mock_metrics):
        self.mocks["load_settings"].return_value = _settings(pushgateway="pushgateway:9091")

        cli.main(["--store", "android"])

        metrics = mock_metrics.return_value
        metrics.record.assert_called_once_with("android", self.pipeline.run.return_value)
        metrics.push.assert_called_once_with("pushgateway:9091", "android")

    @patch("store_kpi.cli.RunMetrics")
    def test_no_metrics_without_gateway(self, mock_metrics):
        cli.main(["--store", "android"])

        mock_metrics.assert_not_called()


class TestMissingConfiguration(unittest.TestCase):
    @patch.dict(os.environ, {}, clear=True)
    def test_missing_env_exits_two(self):
        self.assertEqual(cli.main(["--store", "android"]), 2)


class TestArguments(unittest.TestCase):
    def test_store_required(self):
        with self.assertRaises(SystemExit):
            cli.build_parser().parse_args([])

    def test_days_must_be_positive(self):
        with self.assertRaises(SystemExit):
            cli.build_parser().parse_args(["--store", "ios", "--days", "0"])

    def test_date_must_be_iso(self):
        with self.assertRaises(SystemExit):
            cli.build_parser().parse_args(["--store", "ios", "--date", "05/03/2024"])

    def test_defaults(self):
        args = cli.build_parser().parse_args(["--store", "android"])

        self.assertEqual(args.mode, "latest")
        self.assertIsNone(args.days)
        self.assertIsNone(args.date)
        self.assertFalse(args.create_table)


if __name__ == "__main__":
    unittest.main()
