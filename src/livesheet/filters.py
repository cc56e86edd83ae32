"""Cell range filters.

Callers may pass a filter as an A1 string, a GridRange mapping, or a list of
either. Everything is normalized here into one of two explicit filter types
before being sent anywhere.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from livesheet.exceptions import ReadOnlyAccessError, SheetMismatchError
from livesheet.utils import split_sheet_prefix

if TYPE_CHECKING:
    from livesheet.worksheet import Worksheet


@dataclass(frozen=True)
class A1RangeFilter:
    """A textual A1 range, optionally prefixed with a sheet name."""

    a1_range: str

    def to_data_filter(self) -> dict[str, Any]:
        return {"a1Range": self.a1_range}


@dataclass(frozen=True)
class GridRangeFilter:
    """A rectangular bounds object (GridRange)."""

    grid_range: Mapping[str, Any]

    def to_data_filter(self) -> dict[str, Any]:
        return {"gridRange": dict(self.grid_range)}


CellFilter = A1RangeFilter | GridRangeFilter
FilterInput = str | Mapping[str, Any] | A1RangeFilter | GridRangeFilter


def to_filter(value: FilterInput) -> CellFilter:
    """Convert a single caller supplied filter into a typed filter."""
    if isinstance(value, (A1RangeFilter, GridRangeFilter)):
        return value
    if isinstance(value, str):
        return A1RangeFilter(value)
    if isinstance(value, Mapping):
        return GridRangeFilter(dict(value))
    raise TypeError(
        "Each filter must be an A1 range string or a GridRange mapping, "
        f"got {type(value).__name__}"
    )


def normalize_filters(
    filters: FilterInput | Sequence[FilterInput] | None,
) -> list[CellFilter]:
    """Normalize nothing, one filter or a list of filters into a list."""
    if filters is None:
        return []
    if isinstance(filters, (str, Mapping, A1RangeFilter, GridRangeFilter)):
        return [to_filter(filters)]
    return [to_filter(f) for f in filters]


def scope_filter_to_sheet(cell_filter: CellFilter, sheet: Worksheet) -> CellFilter:
    """Pin a filter to ``sheet``.

    A1 ranges get the quoted sheet name prefixed; a range naming another
    sheet is rejected.
    GridRanges get the sheet id injected; a conflicting id is rejected.
    """
    if isinstance(cell_filter, A1RangeFilter):
        title, rest = split_sheet_prefix(cell_filter.a1_range)
        if title is not None and title != sheet.title:
            raise SheetMismatchError(
                f'Range "{cell_filter.a1_range}" does not belong to sheet "{sheet.title}"'
            )
        if not rest:
            return A1RangeFilter(sheet.a1_sheet_name)
        return A1RangeFilter(f"{sheet.a1_sheet_name}!{rest}")

    sheet_id = cell_filter.grid_range.get("sheetId")
    if sheet_id is not None and sheet_id != sheet.sheet_id:
        raise SheetMismatchError(
            "Leave sheet ID blank or set to matching ID of this sheet"
        )
    return GridRangeFilter({**cell_filter.grid_range, "sheetId": sheet.sheet_id})


def to_a1_ranges(filters: Sequence[CellFilter]) -> list[str]:
    """Extract plain A1 ranges for the read-only values endpoint.

    Raises:
        ReadOnlyAccessError: If any filter is a GridRange
    """
    ranges: list[str] = []
    for cell_filter in filters:
        if isinstance(cell_filter, GridRangeFilter):
            raise ReadOnlyAccessError(
                "Only A1 ranges are supported when fetching cells with "
                "read-only access (using only an API key)"
            )
        ranges.append(cell_filter.a1_range)
    return ranges
