# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""Header column detection across report vintages."""

from typing import NamedTuple, Optional, Sequence

from .errors import SchemaError
from .models import ReportLayout


def _normalize(label) -> str:
    return str(label).strip().lower()


def resolve(header: Sequence[str], aliases: Sequence[str]) -> Optional[int]:
    """
    Find the column index for the first alias present in the header.

    Aliases are tried in priority order, so newer provider column names can be
    listed before legacy ones. Matching ignores case and surrounding whitespace.

    Returns:
        Column index, or None if no alias matches
    """
    normalized = [_normalize(h) for h in header]
    for alias in aliases:
        wanted = _normalize(alias)
        if wanted in normalized:
            return normalized.index(wanted)
    return None


def resolve_required(
    header: Sequence[str], aliases: Sequence[str], field: str, source: str
) -> int:
    index = resolve(header, aliases)
    if index is None:
        raise SchemaError(
            f"Column for {field} not found in {source}. "
            f"Expected one of {list(aliases)}; found headers: {', '.join(list(header)[:20])}",
            source=source,
            headers=list(header),
        )
    return index


class ColumnBinding(NamedTuple):
    """Header labels bound to the semantic fields of a report."""

    identifier: str
    count: str
    country: Optional[str]

    @property
    def split_by_country(self) -> bool:
        return self.country is not None

    @classmethod
    def bind(cls, header: Sequence[str], layout: ReportLayout, source: str) -> "ColumnBinding":
        id_index = resolve_required(header, layout.id_aliases, "app identifier", source)
        count_index = resolve_required(header, layout.count_aliases, "unit count", source)
        country_index = resolve(header, layout.country_aliases)
        return cls(
            identifier=header[id_index],
            count=header[count_index],
            country=header[country_index] if country_index is not None else None,
        )
