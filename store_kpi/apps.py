# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Monitored application directory.

Maps provider identifiers to the canonical app identity. Google Play reports
key rows by package name. Apple sales reports key rows by SKU, so iOS lookups
go SKU -> bundle id -> app name.
"""

import json
import logging
from typing import Dict, List, Optional, Tuple

from .errors import ConfigError
from .models import ApplicationEntry, Store

LOG = logging.getLogger("store_kpi.apps")

_ENTRY_FIELDS = ("app_name", "android_app_id", "ios_bundle_id", "ios_sku")


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_entry(raw) -> ApplicationEntry:
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid app entry (expected an object): {raw!r}")
    app_name = _clean(raw.get("app_name"))
    if not app_name:
        raise ConfigError(f"Invalid app entry (missing app_name): {json.dumps(raw, ensure_ascii=False)}")
    return ApplicationEntry(**{key: _clean(raw.get(key)) for key in _ENTRY_FIELDS})


class AppDirectory:
    """Read-only lookups built once per run from the configured entries."""

    def __init__(self, entries: List[ApplicationEntry]):
        self.entries = list(entries)
        self._android: Dict[str, str] = {}
        self._ios: Dict[str, str] = {}
        self._sku_to_bundle: Dict[str, str] = {}

        for entry in self.entries:
            if entry.android_app_id:
                self._android[entry.android_app_id] = entry.app_name
            if entry.ios_bundle_id:
                self._ios[entry.ios_bundle_id] = entry.app_name
                if entry.ios_sku:
                    self._sku_to_bundle[entry.ios_sku] = entry.ios_bundle_id
            elif entry.ios_sku:
                LOG.warning(
                    "App %s has ios_sku but no ios_bundle_id; its sales rows will be ignored",
                    entry.app_name,
                )
            if not (entry.android_app_id or entry.ios_bundle_id):
                LOG.warning("App %s has no store identifiers configured", entry.app_name)

    @classmethod
    def load(cls, entries) -> "AppDirectory":
        """
        Build the directory from raw configuration entries.

        Raises:
            ConfigError: If ``entries`` is not a list or an entry is malformed
        """
        if not isinstance(entries, list):
            raise ConfigError("apps configuration must be a list of app entries")
        return cls([_parse_entry(raw) for raw in entries])

    def lookup_name(self, store: Store, app_id: str) -> Optional[str]:
        table = self._android if store is Store.ANDROID else self._ios
        return table.get(app_id)

    def resolve_bundle(self, sku: str) -> Optional[str]:
        return self._sku_to_bundle.get(sku)

    def resolve(self, store: Store, provider_id: str) -> Optional[Tuple[str, str]]:
        """Map a report identifier to (app_id, app_name), or None if unmonitored."""
        provider_id = (provider_id or "").strip()
        if not provider_id:
            return None
        app_id = provider_id
        if store is Store.IOS:
            app_id = self.resolve_bundle(provider_id)
            if not app_id:
                return None
        app_name = self.lookup_name(store, app_id)
        if app_name is None:
            return None
        return app_id, app_name

    def __len__(self):
        return len(self.entries)


def load_apps_file(path: str) -> AppDirectory:
    """Load the app directory from a JSON file holding a list of entries."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Apps configuration not found: {path}")
    except (OSError, ValueError) as e:
        raise ConfigError(f"Apps configuration {path} is not valid JSON: {e}")

    directory = AppDirectory.load(raw)
    LOG.info("Loaded %d monitored apps from %s", len(directory), path)
    return directory
