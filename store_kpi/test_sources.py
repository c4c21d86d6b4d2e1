# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""Tests for the GCS and App Store Connect report sources."""

import datetime as dt
import unittest
from unittest.mock import MagicMock, Mock, patch

import requests
from google.api_core.exceptions import Forbidden, NotFound

from store_kpi.config import Settings
from store_kpi.errors import AuthError, ConfigError, FetchError
from store_kpi.sources import API_BASE, BlobSource, SalesReportSource, google_credentials

REPORT_DATE = dt.date(2024, 3, 5)


def _blob(name):
    blob = Mock()
    blob.name = name
    return blob


def _response(status_code, content=b"", text=""):
    response = Mock()
    response.status_code = status_code
    response.content = content
    response.text = text
    return response


class TestGoogleCredentials(unittest.TestCase):
    def _settings(self, **kwargs):
        return Settings(bq_project="p", bq_dataset="d", bq_table="t", **kwargs)

    def test_application_default_credentials(self):
        self.assertIsNone(google_credentials(self._settings()))

    @patch("store_kpi.sources.service_account.Credentials.from_service_account_info")
    def test_inline_key(self, mock_from_info):
        info = {"type": "service_account"}

        creds = google_credentials(self._settings(google_credentials_info=info))

        self.assertIs(creds, mock_from_info.return_value)
        mock_from_info.assert_called_once()
        self.assertEqual(mock_from_info.call_args[0][0], info)

    @patch("store_kpi.sources.service_account.Credentials.from_service_account_file")
    def test_key_file_preferred(self, mock_from_file):
        creds = google_credentials(
            self._settings(google_credentials_file="/keys/sa.json", google_credentials_info={"a": 1})
        )

        self.assertIs(creds, mock_from_file.return_value)

    @patch("store_kpi.sources.service_account.Credentials.from_service_account_info")
    def test_invalid_key(self, mock_from_info):
        mock_from_info.side_effect = ValueError("missing fields")

        with self.assertRaises(ConfigError):
            google_credentials(self._settings(google_credentials_info={"type": "x"}))


class TestBlobSource(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.source = BlobSource(self.client, "pubsite_prod_rev_123", "stats/installs/")

    def test_lists_report_objects_only(self):
        self.client.list_blobs.return_value = [
            _blob("stats/installs/installs_com.a_20240305_country.csv"),
            _blob("stats/installs/installs_com.a_20240306_overview.CSV.gz"),
            _blob("stats/installs/"),
            _blob("stats/installs/notes.txt"),
        ]

        names = self.source.list_objects()

        self.client.list_blobs.assert_called_once_with("pubsite_prod_rev_123", prefix="stats/installs/")
        self.assertEqual(
            names,
            [
                "stats/installs/installs_com.a_20240305_country.csv",
                "stats/installs/installs_com.a_20240306_overview.CSV.gz",
            ],
        )

    def test_listing_failure(self):
        self.client.list_blobs.side_effect = Forbidden("no access")

        with self.assertRaises(FetchError):
            self.source.list_objects()

    def test_open_read_stream(self):
        blob = self.client.bucket.return_value.blob.return_value
        blob.download_as_bytes.return_value = b"a,b\n1,2\n"

        stream = self.source.open_read_stream("stats/installs/x.csv")

        self.client.bucket.assert_called_with("pubsite_prod_rev_123")
        self.client.bucket.return_value.blob.assert_called_with("stats/installs/x.csv")
        self.assertEqual(stream.read(), b"a,b\n1,2\n")

    def test_download_failure(self):
        blob = self.client.bucket.return_value.blob.return_value
        blob.download_as_bytes.side_effect = NotFound("gone")

        with self.assertRaises(FetchError):
            self.source.open_read_stream("stats/installs/x.csv")

    def test_is_compressed(self):
        self.assertTrue(BlobSource.is_compressed("a.csv.gz"))
        self.assertTrue(BlobSource.is_compressed("a.GZ"))
        self.assertFalse(BlobSource.is_compressed("a.csv"))


@patch("store_kpi.sources.time.sleep")
@patch("store_kpi.sources.requests.get")
class TestSalesReportSource(unittest.TestCase):
    def setUp(self):
        self.token_factory = Mock(return_value="token-1")
        self.source = SalesReportSource(self.token_factory, "85012345", retries=3, timeout=30)

    def test_fetch(self, mock_get, mock_sleep):
        mock_get.return_value = _response(200, content=b"\x1f\x8bpayload")

        payload = self.source.fetch(REPORT_DATE)

        self.assertEqual(payload, b"\x1f\x8bpayload")
        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], f"{API_BASE}/v1/salesReports")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer token-1")
        self.assertEqual(kwargs["timeout"], 30)
        self.assertEqual(
            kwargs["params"],
            {
                "filter[frequency]": "DAILY",
                "filter[reportType]": "SALES",
                "filter[reportSubType]": "SUMMARY",
                "filter[vendorNumber]": "85012345",
                "filter[reportDate]": "2024-03-05",
            },
        )
        mock_sleep.assert_not_called()

    def test_rate_limit_retried(self, mock_get, mock_sleep):
        mock_get.side_effect = [_response(429, text="slow down"), _response(200, content=b"data")]

        self.assertEqual(self.source.fetch(REPORT_DATE), b"data")
        self.assertEqual(mock_get.call_count, 2)
        mock_sleep.assert_called_once_with(1)
        # A fresh token is minted for every attempt
        self.assertEqual(self.token_factory.call_count, 2)

    def test_server_errors_exhaust_retries(self, mock_get, mock_sleep):
        mock_get.return_value = _response(503, text="unavailable")

        with self.assertRaises(FetchError) as ctx:
            self.source.fetch(REPORT_DATE)

        self.assertEqual(mock_get.call_count, 3)
        self.assertIn("503", str(ctx.exception))
        # No wait after the final attempt
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [1, 2])

    def test_client_error_not_retried(self, mock_get, mock_sleep):
        mock_get.return_value = _response(404, text="report not available yet")

        with self.assertRaises(FetchError):
            self.source.fetch(REPORT_DATE)

        self.assertEqual(mock_get.call_count, 1)
        mock_sleep.assert_not_called()

    def test_unauthorized_is_auth_error(self, mock_get, mock_sleep):
        mock_get.return_value = _response(401, text="NOT_AUTHORIZED")

        with self.assertRaises(AuthError):
            self.source.fetch(REPORT_DATE)

    def test_network_errors_retried(self, mock_get, mock_sleep):
        mock_get.side_effect = requests.ConnectionError("reset")

        with self.assertRaises(FetchError):
            self.source.fetch(REPORT_DATE)

        self.assertEqual(mock_get.call_count, 3)
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [1, 2])


if __name__ == "__main__":
    unittest.main()
