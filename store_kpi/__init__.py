# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""Daily app store downloads loader for the BigQuery KPI table."""

__version__ = "1.0.0"
