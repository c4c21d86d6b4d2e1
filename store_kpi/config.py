# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Configuration from environment variables.

Settings are read once at process start into a ``Settings`` object that is
passed explicitly to the pipeline.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .errors import ConfigError
from .models import DateFallback, Store

ENV_PREFIX = "STORE_KPI_"
DEFAULT_APPS_CONFIG = "config/apps.json"


@dataclass(frozen=True)
class Settings:
    bq_project: str
    bq_dataset: str
    bq_table: str
    bq_location: str = "US"
    google_credentials_file: Optional[str] = None
    google_credentials_info: Optional[Dict] = None
    gcs_bucket: Optional[str] = None
    gcs_prefix: Optional[str] = None
    asc_issuer_id: Optional[str] = None
    asc_key_id: Optional[str] = None
    asc_private_key: Optional[str] = None
    asc_vendor_number: Optional[str] = None
    apps_config: str = DEFAULT_APPS_CONFIG
    date_fallback: DateFallback = DateFallback.LATEST
    pushgateway: Optional[str] = None
    log_level: str = "INFO"

    @property
    def table_id(self) -> str:
        return f"{self.bq_project}.{self.bq_dataset}.{self.bq_table}"

    def require(self, store: Store):
        """Check the provider settings needed to ingest ``store`` reports."""
        if store is Store.ANDROID:
            needed = {"GCS_BUCKET": self.gcs_bucket, "GCS_PREFIX": self.gcs_prefix}
        else:
            needed = {
                "ASC_ISSUER_ID": self.asc_issuer_id,
                "ASC_KEY_ID": self.asc_key_id,
                "ASC_PRIVATE_KEY": self.asc_private_key,
                "ASC_VENDOR_NUMBER": self.asc_vendor_number,
            }
        _check_missing(needed)


def _check_missing(values: Mapping[str, Optional[str]]):
    missing: List[str] = [ENV_PREFIX + name for name, value in values.items() if not value]
    if missing:
        raise ConfigError(f"Missing env: {' / '.join(missing)}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from ``STORE_KPI_*`` variables.

    Raises:
        ConfigError: If required variables are missing or values are invalid
    """
    env = os.environ if environ is None else environ

    def get(name: str, default: Optional[str] = None) -> Optional[str]:
        value = env.get(ENV_PREFIX + name)
        if value is None or not value.strip():
            return default
        return value.strip()

    _check_missing(
        {
            "BQ_PROJECT": get("BQ_PROJECT"),
            "BQ_DATASET": get("BQ_DATASET"),
            "BQ_TABLE_DAILY": get("BQ_TABLE_DAILY"),
        }
    )

    credentials_info = None
    sa_key = get("GCP_SA_KEY")
    if sa_key:
        try:
            credentials_info = json.loads(sa_key)
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}GCP_SA_KEY is not valid JSON")
        if not isinstance(credentials_info, dict):
            raise ConfigError(f"{ENV_PREFIX}GCP_SA_KEY must be a JSON object")

    fallback = get("DATE_FALLBACK", DateFallback.LATEST.value).lower()
    try:
        date_fallback = DateFallback(fallback)
    except ValueError:
        choices = ", ".join(p.value for p in DateFallback)
        raise ConfigError(f"{ENV_PREFIX}DATE_FALLBACK must be one of: {choices}")

    log_level = get("LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"{ENV_PREFIX}LOG_LEVEL is not a logging level: {log_level}")

    return Settings(
        bq_project=get("BQ_PROJECT"),
        bq_dataset=get("BQ_DATASET"),
        bq_table=get("BQ_TABLE_DAILY"),
        bq_location=get("BQ_LOCATION", "US"),
        google_credentials_file=get("GOOGLE_APPLICATION_CREDENTIALS"),
        google_credentials_info=credentials_info,
        gcs_bucket=get("GCS_BUCKET"),
        gcs_prefix=get("GCS_PREFIX"),
        asc_issuer_id=get("ASC_ISSUER_ID"),
        asc_key_id=get("ASC_KEY_ID"),
        # PEM text (possibly with literal \n escapes) or a path to the .p8 file
        asc_private_key=env.get(ENV_PREFIX + "ASC_PRIVATE_KEY") or None,
        asc_vendor_number=get("ASC_VENDOR_NUMBER"),
        apps_config=get("APPS_CONFIG", DEFAULT_APPS_CONFIG),
        date_fallback=date_fallback,
        pushgateway=get("PUSHGATEWAY"),
        log_level=log_level,
    )
