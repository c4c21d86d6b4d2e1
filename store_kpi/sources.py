# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Report sources: Play Console exports in Google Cloud Storage and App Store
Connect daily sales reports.
"""

import datetime as dt
import io
import logging
import time
from typing import Callable, List, Optional

import requests
from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage  # pip install google-cloud-storage
from google.oauth2 import service_account

from .config import Settings
from .errors import AuthError, ConfigError, FetchError

LOG = logging.getLogger("store_kpi.sources")

GCP_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
REPORT_EXTENSIONS = (".csv", ".csv.gz", ".gz", ".tsv")

API_BASE = "https://api.appstoreconnect.apple.com"


# ------------ Google Cloud ------------
def google_credentials(settings: Settings):
    """
    Load service account credentials from a key file or inline JSON.

    Returns:
        Credentials object, or None to use Application Default Credentials
    """
    try:
        if settings.google_credentials_file:
            return service_account.Credentials.from_service_account_file(
                settings.google_credentials_file, scopes=GCP_SCOPES
            )
        if settings.google_credentials_info:
            return service_account.Credentials.from_service_account_info(
                settings.google_credentials_info, scopes=GCP_SCOPES
            )
    except (OSError, ValueError) as e:
        raise ConfigError(f"Invalid Google service account credentials: {e}") from e
    return None


def storage_client(settings: Settings) -> storage.Client:
    return storage.Client(
        credentials=google_credentials(settings), project=settings.bq_project
    )


class BlobSource:
    """Lists and downloads report objects under a bucket prefix."""

    def __init__(self, client: storage.Client, bucket: str, prefix: str):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix

    def list_objects(self) -> List[str]:
        try:
            names = [blob.name for blob in self.client.list_blobs(self.bucket, prefix=self.prefix)]
        except GoogleAPIError as e:
            raise FetchError(f"Cannot list gs://{self.bucket}/{self.prefix}: {e}") from e

        reports = [n for n in names if n.lower().endswith(REPORT_EXTENSIONS)]
        LOG.info(
            "Found %d report objects (%d total) under gs://%s/%s",
            len(reports),
            len(names),
            self.bucket,
            self.prefix,
        )
        return reports

    def open_read_stream(self, name: str) -> io.BytesIO:
        try:
            data = self.client.bucket(self.bucket).blob(name).download_as_bytes()
        except GoogleAPIError as e:
            raise FetchError(f"Cannot download gs://{self.bucket}/{name}: {e}") from e
        LOG.debug("Downloaded gs://%s/%s (%d bytes)", self.bucket, name, len(data))
        return io.BytesIO(data)

    @staticmethod
    def is_compressed(name: str) -> bool:
        return name.lower().endswith(".gz")


# ------------ App Store Connect ------------
class SalesReportSource:
    """Fetches daily SALES/SUMMARY reports for one vendor."""

    def __init__(
        self,
        token_factory: Callable[[], str],
        vendor_number: str,
        retries: int = 3,
        timeout: int = 120,
    ):
        self.token_factory = token_factory
        self.vendor_number = vendor_number
        self.retries = retries
        self.timeout = timeout

    def _params(self, report_date: dt.date) -> dict:
        return {
            "filter[frequency]": "DAILY",
            "filter[reportType]": "SALES",
            "filter[reportSubType]": "SUMMARY",
            "filter[vendorNumber]": self.vendor_number,
            "filter[reportDate]": report_date.isoformat(),
        }

    def fetch(self, report_date: dt.date) -> bytes:
        """Download the sales report payload (usually gzip) for one day.

        Rate limiting (429) and server errors are retried with exponential
        backoff. A fresh token is generated for each attempt.

        Raises:
            FetchError: For non-200 responses or network failures
        """
        url = f"{API_BASE}/v1/salesReports"
        last_error: Optional[str] = None

        for attempt in range(self.retries):
            last_attempt = attempt == self.retries - 1
            headers = {
                "Authorization": f"Bearer {self.token_factory()}",
                "Accept": "application/a-gzip, application/octet-stream",
            }
            try:
                response = requests.get(
                    url, headers=headers, params=self._params(report_date), timeout=self.timeout
                )
            except requests.RequestException as e:
                last_error = str(e)
                LOG.warning(
                    "salesReports request failed for %s (attempt %d/%d): %s",
                    report_date,
                    attempt + 1,
                    self.retries,
                    e,
                )
                if not last_attempt:
                    time.sleep(2**attempt)
                continue

            if response.status_code == 200:
                LOG.debug("Fetched sales report %s (%d bytes)", report_date, len(response.content))
                return response.content

            body = response.text[:500]
            if response.status_code == 401:
                raise AuthError(f"App Store Connect rejected the token: {body}")
            last_error = f"{response.status_code} {body}"
            if (response.status_code == 429 or response.status_code >= 500) and not last_attempt:
                wait_time = 2**attempt
                LOG.warning(
                    "salesReports returned %s for %s, waiting %s seconds",
                    response.status_code,
                    report_date,
                    wait_time,
                )
                time.sleep(wait_time)
                continue
            break

        raise FetchError(f"salesReports failed for {report_date}: {last_error}")
