# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Typed records exchanged between the loader components.

Rows and configuration entries are validated when they are built so the rest
of the pipeline can trust their shape.
"""

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class Store(str, Enum):
    IOS = "ios"
    ANDROID = "android"


class CountryGroup(str, Enum):
    JP = "JP"
    OVERSEAS = "OVERSEAS"
    ALL = "ALL"


class Mode(str, Enum):
    LATEST = "latest"
    BACKFILL = "backfill"


class DateFallback(str, Enum):
    """When a file without a date in its name may be filed under today."""

    NEVER = "never"
    LATEST = "latest"
    ALWAYS = "always"

    def allows(self, mode: Mode) -> bool:
        if self is DateFallback.ALWAYS:
            return True
        return self is DateFallback.LATEST and mode is Mode.LATEST


@dataclass(frozen=True)
class ApplicationEntry:
    app_name: str
    android_app_id: Optional[str] = None
    ios_bundle_id: Optional[str] = None
    ios_sku: Optional[str] = None


@dataclass(frozen=True)
class CanonicalMetricRow:
    date: dt.date
    store: Store
    app_id: str
    app_name: str
    country_group: CountryGroup
    downloads: int
    source: str
    ingested_at: dt.datetime

    def __post_init__(self):
        if self.downloads < 0:
            raise ValueError(f"downloads must be non-negative, got {self.downloads}")
        if not self.app_id:
            raise ValueError("app_id must not be empty")

    @property
    def key(self) -> Tuple[dt.date, Store, str, CountryGroup]:
        return (self.date, self.store, self.app_id, self.country_group)


@dataclass(frozen=True)
class SourceTarget:
    """One unit of work: an object name or report date, plus its reporting date."""

    ref: str
    report_date: Optional[dt.date] = None


@dataclass(frozen=True)
class ReportLayout:
    """Column aliases and parsing options for one provider's report format."""

    store: Store
    source: str
    delimiter: str
    id_aliases: Tuple[str, ...]
    count_aliases: Tuple[str, ...]
    country_aliases: Tuple[str, ...] = field(default=())


GOOGLE_PLAY_INSTALLS = ReportLayout(
    store=Store.ANDROID,
    source="google_play",
    delimiter=",",
    id_aliases=("package_name", "package name", "package"),
    count_aliases=(
        "daily_device_installs",
        "daily device installs",
        "installs",
        "daily_installs",
        "daily installs",
        "device_installs",
        "device installs",
    ),
    country_aliases=("country", "country code"),
)

APP_STORE_SALES = ReportLayout(
    store=Store.IOS,
    source="appstore_salesreports",
    delimiter="\t",
    id_aliases=("SKU",),
    count_aliases=("App Units", "Units", "ユニット"),
    country_aliases=("Country Code", "Country", "国家コード"),
)
