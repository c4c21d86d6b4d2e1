# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""Exceptions raised by the store KPI loader."""

from typing import List, Optional


class StoreKpiError(Exception):
    """Base class for all loader errors."""


class ConfigError(StoreKpiError):
    """Static configuration is missing or malformed. Fatal for the run."""


class AuthError(StoreKpiError):
    """Provider credentials could not be turned into a bearer token."""


class FormatError(StoreKpiError):
    """A source file has no parseable header."""


class SchemaError(StoreKpiError):
    """A required semantic column is missing from a source file."""

    def __init__(self, message: str, source: str = "", headers: Optional[List[str]] = None):
        super().__init__(message)
        self.source = source
        self.headers = list(headers or [])


class FetchError(StoreKpiError):
    """Reading a source target from storage or a provider API failed."""


class ReconcileError(StoreKpiError):
    """The warehouse merge for one target failed."""


# Errors that skip a single target instead of aborting the run
TARGET_ERRORS = (FetchError, FormatError, SchemaError, ReconcileError)
