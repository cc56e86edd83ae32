"""A single sheet (tab) of a spreadsheet and its local cell/row cache.

Cells are cached sparsely by zero-based ``(row_index, column_index)`` and
rows by their 1-based row number. Every cached object is updated in place
when fresh data arrives or when rows and columns move, so references held by
callers keep pointing at the same logical position.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from loguru import logger

from livesheet.cell import Cell
from livesheet.exceptions import (
    BlankHeaderError,
    CellNotLoadedError,
    CellOutOfBoundsError,
    EmptyBatchError,
    HeaderTooWideError,
    InvalidRangeError,
    NotLoadedError,
    SheetMismatchError,
)
from livesheet.filters import (
    A1RangeFilter,
    FilterInput,
    normalize_filters,
    scope_filter_to_sheet,
)
from livesheet.row import Row
from livesheet.utils import (
    a1_range_to_grid_range,
    a1_to_cell,
    check_for_duplicate_headers,
    column_to_letter,
    get_field_mask,
    moved_index,
    quote_sheet_title,
    split_sheet_prefix,
)

if TYPE_CHECKING:
    from livesheet.spreadsheet import Spreadsheet
    from livesheet.transport import Transport
    from livesheet.types import Dimension, DimensionRange

RangeInput = str | Mapping[str, Any]
RowValues = Sequence[Any] | Mapping[str, Any]

_APPENDED_ROW_RE = re.compile(r"![A-Z]+(\d+)")


class Worksheet:
    """One sheet of a spreadsheet.

    Instances are created by ``Spreadsheet`` while reconciling server
    responses; do not construct them directly.
    """

    def __init__(
        self,
        spreadsheet: Spreadsheet,
        properties: Mapping[str, Any],
        data: Sequence[Mapping[str, Any]] | None = None,
    ) -> None:
        self._spreadsheet = spreadsheet
        self._raw_properties: dict[str, Any] | None = None
        self._cells: dict[tuple[int, int], Cell] = {}
        self._row_metadata: dict[int, dict[str, Any]] = {}
        self._column_metadata: dict[int, dict[str, Any]] = {}
        self._row_cache: dict[int, Row] = {}
        self._header_row_index = 1
        self._header_values: list[str] | None = None
        self._update_raw_data(properties, data)

    def __repr__(self) -> str:
        title = self._raw_properties.get("title") if self._raw_properties else None
        return f"<Worksheet {title!r}>"

    @property
    def _transport(self) -> Transport:
        return self._spreadsheet._transport

    @property
    def _spreadsheet_id(self) -> str:
        return self._spreadsheet.spreadsheet_id

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _update_raw_data(
        self,
        properties: Mapping[str, Any],
        data: Sequence[Mapping[str, Any]] | None = None,
    ) -> None:
        """Replace the properties and merge any grid data into the cache.

        Without ``data`` the cached cells are left as they are.
        """
        self._raw_properties = copy.deepcopy(dict(properties))
        if data:
            self._fill_cell_data(data)

    def _fill_cell_data(self, data_ranges: Sequence[Mapping[str, Any]]) -> None:
        for grid_data in data_ranges:
            start_row = grid_data.get("startRow", 0)
            start_column = grid_data.get("startColumn", 0)
            row_metadata = grid_data.get("rowMetadata", [])
            column_metadata = grid_data.get("columnMetadata", [])
            row_data = grid_data.get("rowData", [])

            for i in range(len(row_metadata)):
                row_index = start_row + i
                values = row_data[i].get("values", []) if i < len(row_data) else []
                for j in range(len(column_metadata)):
                    column_index = start_column + j
                    cell_data = values[j] if j < len(values) else None
                    cell = self._cells.get((row_index, column_index))
                    if cell is None:
                        self._cells[(row_index, column_index)] = Cell(
                            self, row_index, column_index, cell_data
                        )
                    else:
                        cell._update_raw_data(cell_data)

            for i, meta in enumerate(row_metadata):
                self._row_metadata[start_row + i] = dict(meta)
            for j, meta in enumerate(column_metadata):
                self._column_metadata[start_column + j] = dict(meta)

    def reset_local_cache(self, data_only: bool = False) -> None:
        """Forget cached cells, rows and headers (and properties, unless ``data_only``)."""
        if not data_only:
            self._raw_properties = None
        self._header_values = None
        self._cells = {}
        self._row_metadata = {}
        self._column_metadata = {}
        self._row_cache = {}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def _get_prop(self, key: str) -> Any:
        if self._raw_properties is None:
            raise NotLoadedError(
                "You must call `spreadsheet.load_info()` before accessing this property"
            )
        return self._raw_properties.get(key)

    @property
    def sheet_id(self) -> int:
        return self._get_prop("sheetId")

    @property
    def title(self) -> str:
        return self._get_prop("title")

    @property
    def index(self) -> int:
        return self._get_prop("index")

    @property
    def sheet_type(self) -> str:
        return self._get_prop("sheetType")

    @property
    def grid_properties(self) -> Mapping[str, Any]:
        return MappingProxyType(copy.deepcopy(self._get_prop("gridProperties") or {}))

    @property
    def hidden(self) -> bool:
        return bool(self._get_prop("hidden"))

    @property
    def tab_color(self) -> Mapping[str, Any] | None:
        color = self._get_prop("tabColor")
        return MappingProxyType(dict(color)) if color else None

    @property
    def right_to_left(self) -> bool:
        return bool(self._get_prop("rightToLeft"))

    @property
    def row_count(self) -> int:
        return (self._get_prop("gridProperties") or {}).get("rowCount", 0)

    @property
    def column_count(self) -> int:
        return (self._get_prop("gridProperties") or {}).get("columnCount", 0)

    @property
    def a1_sheet_name(self) -> str:
        """The quoted title used to prefix A1 ranges, e.g. ``'My Sheet'``."""
        return quote_sheet_title(self.title)

    @property
    def last_column_letter(self) -> str:
        return column_to_letter(self.column_count) if self.column_count else ""

    @property
    def header_values(self) -> list[str]:
        """Header row values, once loaded by ``load_header_row`` or ``get_rows``."""
        if self._header_values is None:
            raise NotLoadedError(
                "Header values are not yet loaded - call `load_header_row()` first"
            )
        return list(self._header_values)

    @property
    def header_row_index(self) -> int:
        """1-based row number of the header row."""
        return self._header_row_index

    @property
    def cell_stats(self) -> dict[str, int]:
        """Counts of non-empty and loaded cells against the grid size."""
        cells = list(self._cells.values())
        return {
            "non_empty": sum(1 for cell in cells if cell.formatted_value),
            "loaded": len(cells),
            "total": self.row_count * self.column_count,
        }

    def get_row_properties(self, row_index: int) -> Mapping[str, Any] | None:
        """Loaded DimensionProperties of a zero-based row, if any."""
        meta = self._row_metadata.get(row_index)
        return MappingProxyType(meta) if meta is not None else None

    def get_column_properties(self, column_index: int) -> Mapping[str, Any] | None:
        """Loaded DimensionProperties of a zero-based column, if any."""
        meta = self._column_metadata.get(column_index)
        return MappingProxyType(meta) if meta is not None else None

    # ------------------------------------------------------------------
    # Cells
    # ------------------------------------------------------------------

    async def load_cells(
        self, filters: FilterInput | Sequence[FilterInput] | None = None
    ) -> None:
        """Load cells of this sheet into the cache.

        Args:
            filters: A1 ranges (without sheet name) or GridRanges, alone or in
                a list. Defaults to the whole sheet.
        """
        if filters is None:
            scoped = [A1RangeFilter(self.a1_sheet_name)]
        else:
            scoped = [
                scope_filter_to_sheet(f, self) for f in normalize_filters(filters)
            ]
        await self._spreadsheet.load_cells(scoped)

    def get_cell(self, row_index: int, column_index: int) -> Cell:
        """Cached cell at zero-based coordinates.

        Raises:
            CellOutOfBoundsError: If the coordinate is outside the grid
            CellNotLoadedError: If the cell was never loaded
        """
        if row_index < 0 or column_index < 0:
            raise CellOutOfBoundsError("Min coordinate is 0, 0")
        if row_index >= self.row_count or column_index >= self.column_count:
            raise CellOutOfBoundsError(
                f"Out of bounds, sheet is {self.row_count} by {self.column_count}"
            )
        cell = self._cells.get((row_index, column_index))
        if cell is None:
            raise CellNotLoadedError(row_index, column_index)
        return cell

    def get_cell_by_a1(self, a1_address: str) -> Cell:
        row_index, column_index = a1_to_cell(a1_address)
        return self.get_cell(row_index, column_index)

    async def save_updated_cells(self) -> None:
        """Save every cached cell with unsaved changes in one batch."""
        dirty = [cell for cell in self._cells.values() if cell._is_dirty]
        if dirty:
            await self.save_cells(dirty)

    async def save_cells(self, cells: Sequence[Cell]) -> None:
        """Save the given cells in a single batchUpdate.

        Each cell becomes its own updateCells request so that only the fields
        it changed are overwritten.

        Raises:
            EmptyBatchError: If none of the cells has anything to save
        """
        requests: list[dict[str, Any]] = []
        response_ranges: list[str] = []
        for cell in cells:
            if cell._sheet is not self:
                raise SheetMismatchError(
                    f"Cell {cell.a1_address} belongs to another sheet"
                )
            request = cell._get_update_request()
            if request is None:
                continue
            requests.append(request)
            response_ranges.append(f"{self.a1_sheet_name}!{cell.a1_address}")
        if not requests:
            raise EmptyBatchError("At least one cell must have something to update")
        logger.debug("Saving {} cells on sheet {}", len(requests), self.title)
        await self._spreadsheet._make_batch_update_request(requests, response_ranges)

    async def get_cells_in_range(
        self,
        a1_range: str,
        *,
        value_render_option: str | None = None,
        major_dimension: str | None = None,
        date_time_render_option: str | None = None,
    ) -> list[list[Any]]:
        """Read values of a range without touching the cell cache."""
        params = _value_params(
            value_render_option, major_dimension, date_time_render_option
        )
        response = await self._transport.get_values(
            self._spreadsheet_id,
            f"{self.a1_sheet_name}!{a1_range}",
            params=params or None,
        )
        return response.get("values", [])

    async def batch_get_cells_in_range(
        self,
        a1_ranges: Sequence[str],
        *,
        value_render_option: str | None = None,
        major_dimension: str | None = None,
        date_time_render_option: str | None = None,
    ) -> list[list[list[Any]]]:
        """Read values of several ranges in one call."""
        params = _value_params(
            value_render_option, major_dimension, date_time_render_option
        )
        response = await self._transport.batch_get_values(
            self._spreadsheet_id,
            [f"{self.a1_sheet_name}!{a1_range}" for a1_range in a1_ranges],
            params=params or None,
        )
        return [value_range.get("values", []) for value_range in response.get("valueRanges", [])]

    # ------------------------------------------------------------------
    # Header row
    # ------------------------------------------------------------------

    async def _ensure_header_row_loaded(self) -> None:
        if self._header_values is None:
            await self.load_header_row()

    async def load_header_row(self, header_row_index: int | None = None) -> None:
        """Read and validate the header row.

        Args:
            header_row_index: 1-based row number, defaults to the current one
        """
        row_index = header_row_index or self._header_row_index
        rows = await self.get_cells_in_range(
            f"A{row_index}:{self.last_column_letter}{row_index}"
        )
        self._process_header_row(rows)
        self._header_row_index = row_index

    def _process_header_row(self, rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            raise BlankHeaderError(
                "No values in the header row - fill the first row with header "
                "values before trying to interact with rows"
            )
        headers = [str(value).strip() for value in rows[0]]
        if not any(headers):
            raise BlankHeaderError(
                "All your header cells are blank - fill the first row with "
                "header values before trying to interact with rows"
            )
        check_for_duplicate_headers(headers)
        self._header_values = headers

    async def set_header_row(
        self, header_values: Sequence[str], header_row_index: int | None = None
    ) -> None:
        """Write the header row, blanking any columns past the given values."""
        if len(header_values) > self.column_count:
            raise HeaderTooWideError(len(header_values), self.column_count)
        trimmed = ["" if value is None else str(value).strip() for value in header_values]
        if not any(trimmed):
            raise BlankHeaderError("All your header cells are blank")
        check_for_duplicate_headers(trimmed)

        row_index = header_row_index or self._header_row_index
        padded = trimmed + [""] * (self.column_count - len(trimmed))
        response = await self._transport.update_values(
            self._spreadsheet_id,
            f"{self.a1_sheet_name}!{row_index}:{row_index}",
            [padded],
            value_input_option="USER_ENTERED",
            include_values_in_response=True,
        )
        self._header_row_index = row_index
        updated = response.get("updatedData", {}).get("values") or [[]]
        self._header_values = list(updated[0])

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def add_rows(
        self,
        rows: Sequence[RowValues],
        *,
        raw: bool = False,
        insert: bool = False,
    ) -> list[Row]:
        """Append rows after the last row of the table.

        Args:
            rows: Lists of values in column order, or header -> value mappings
            raw: Store values literally instead of parsing them as user input
            insert: Insert new rows instead of overwriting empty rows below

        Returns:
            The new rows
        """
        if ":" in self.title:
            raise InvalidRangeError(
                'Please remove the ":" from your sheet title. The append '
                "endpoint fails on sheet titles containing a colon."
            )
        if not rows:
            return []
        await self._ensure_header_row_loaded()
        headers = self.header_values

        values: list[list[Any]] = []
        for row in rows:
            if isinstance(row, Mapping):
                values.append([_cell_input(row.get(h)) if h else "" for h in headers])
            else:
                values.append([_cell_input(v) for v in row])

        response = await self._transport.append_values(
            self._spreadsheet_id,
            f"{self.a1_sheet_name}!A{self._header_row_index}",
            values,
            value_input_option="RAW" if raw else "USER_ENTERED",
            insert_data_option="INSERT_ROWS" if insert else "OVERWRITE",
            include_values_in_response=True,
        )
        updates = response["updates"]
        match = _APPENDED_ROW_RE.search(updates["updatedRange"])
        if match is None:
            raise InvalidRangeError(
                f"Unexpected appended range: {updates['updatedRange']}"
            )
        row_number = int(match.group(1))

        grid_properties = self._raw_properties["gridProperties"]  # type: ignore[index]
        if insert:
            grid_properties["rowCount"] += len(rows)
        elif row_number + len(rows) > self.row_count:
            grid_properties["rowCount"] = row_number + len(rows) - 1

        written = updates.get("updatedData", {}).get("values", [])
        return [
            self._cache_row(row_number + i, written[i] if i < len(written) else [])
            for i in range(len(rows))
        ]

    async def add_row(
        self, row: RowValues, *, raw: bool = False, insert: bool = False
    ) -> Row:
        """Append a single row. See ``add_rows``."""
        rows = await self.add_rows([row], raw=raw, insert=insert)
        return rows[0]

    async def get_rows(self, *, offset: int = 0, limit: int | None = None) -> list[Row]:
        """Fetch rows below the header row.

        Args:
            offset: Rows to skip after the header row
            limit: Maximum rows to return, defaults to the rest of the sheet
        """
        first_row = 1 + self._header_row_index + offset
        if limit is None:
            limit = self.row_count - 1
        last_row = min(first_row + limit - 1, self.row_count)

        if limit <= 0 or first_row > self.row_count:
            await self._ensure_header_row_loaded()
            return []

        if self._header_values is not None:
            last_column = column_to_letter(len(self._header_values))
            raw_rows = await self.get_cells_in_range(
                f"A{first_row}:{last_column}{last_row}"
            )
        else:
            header_range = (
                f"A{self._header_row_index}:"
                f"{self.last_column_letter}{self._header_row_index}"
            )
            header_rows, raw_rows = await self.batch_get_cells_in_range(
                [header_range, f"A{first_row}:{self.last_column_letter}{last_row}"]
            )
            self._process_header_row(header_rows)
            width = len(self._header_values or [])
            raw_rows = [row[:width] for row in raw_rows]

        return [self._cache_row(first_row + i, values) for i, values in enumerate(raw_rows)]

    def _cache_row(self, row_number: int, values: Sequence[Any]) -> Row:
        row = self._row_cache.get(row_number)
        if row is not None and not row.deleted:
            row._update_raw_data(values)
            return row
        row = Row(self, row_number, values)
        self._row_cache[row_number] = row
        return row

    async def clear_rows(self, *, start: int | None = None, end: int | None = None) -> None:
        """Clear values of rows ``start`` to ``end`` (1-based, inclusive).

        Defaults to every row below the header row. Formatting is kept.
        """
        start_row = start or self._header_row_index + 1
        end_row = end or self.row_count
        await self._transport.clear_values(
            self._spreadsheet_id, f"{self.a1_sheet_name}!{start_row}:{end_row}"
        )
        for row_number, row in self._row_cache.items():
            if start_row <= row_number <= end_row:
                row._clear_row_data()

    # ------------------------------------------------------------------
    # Sheet properties
    # ------------------------------------------------------------------

    async def _make_single_update_request(
        self, request_type: str, request_params: Mapping[str, Any]
    ) -> Any:
        return await self._spreadsheet._make_single_update_request(
            request_type, request_params
        )

    async def update_properties(self, properties: Mapping[str, Any]) -> None:
        """Update sheet properties, touching only the given fields."""
        await self._make_single_update_request(
            "updateSheetProperties",
            {
                "properties": {"sheetId": self.sheet_id, **properties},
                "fields": get_field_mask(properties),
            },
        )

    async def update_grid_properties(self, grid_properties: Mapping[str, Any]) -> None:
        await self.update_properties({"gridProperties": dict(grid_properties)})

    async def resize(self, grid_properties: Mapping[str, Any]) -> None:
        """Set ``rowCount`` and/or ``columnCount``. Shrinking discards data."""
        await self.update_grid_properties(grid_properties)

    async def update_dimension_properties(
        self,
        dimension: Dimension,
        properties: Mapping[str, Any],
        bounds: Mapping[str, int] | None = None,
    ) -> None:
        """Update row or column properties such as ``pixelSize``.

        Args:
            dimension: ROWS or COLUMNS
            properties: Partial DimensionProperties
            bounds: ``startIndex``/``endIndex``, defaults to the whole sheet
        """
        await self._make_single_update_request(
            "updateDimensionProperties",
            {
                "range": self._dimension_range(dimension, bounds),
                "properties": dict(properties),
                "fields": get_field_mask(properties),
            },
        )
        metadata = self._row_metadata if dimension == "ROWS" else self._column_metadata
        start = (bounds or {}).get("startIndex", 0)
        end = (bounds or {}).get("endIndex")
        for index, meta in metadata.items():
            if index >= start and (end is None or index < end):
                meta.update(copy.deepcopy(dict(properties)))

    # ------------------------------------------------------------------
    # Structural changes
    # ------------------------------------------------------------------

    async def insert_dimension(
        self,
        dimension: Dimension,
        range_indexes: Mapping[str, int],
        inherit_from_before: bool | None = None,
    ) -> None:
        """Insert empty rows or columns at ``[startIndex, endIndex)``.

        ``inherit_from_before`` defaults to True unless inserting at the start.
        """
        start, end = _validate_dimension_range(dimension, range_indexes)
        if inherit_from_before is None:
            inherit_from_before = start > 0
        if inherit_from_before and start == 0:
            raise InvalidRangeError(
                "Cannot set inherit_from_before to True if inserting in first row/column"
            )
        await self._make_single_update_request(
            "insertDimension",
            {
                "range": self._dimension_range(dimension, range_indexes),
                "inheritFromBefore": inherit_from_before,
            },
        )
        count = end - start
        self._shift_cache(dimension, lambda i: i + count if i >= start else i)

    async def delete_dimension(
        self, dimension: Dimension, range_indexes: Mapping[str, int]
    ) -> None:
        """Delete rows or columns ``[startIndex, endIndex)``."""
        start, end = _validate_dimension_range(dimension, range_indexes)
        await self._make_single_update_request(
            "deleteDimension",
            {"range": self._dimension_range(dimension, range_indexes)},
        )
        self._shift_cache(dimension, _deleted_span_mapper(start, end))

    async def delete_rows(self, start_index: int, end_index: int) -> None:
        """Delete zero-based rows ``[start_index, end_index)``."""
        await self.delete_dimension(
            "ROWS", {"startIndex": start_index, "endIndex": end_index}
        )

    async def delete_columns(self, start_index: int, end_index: int) -> None:
        """Delete zero-based columns ``[start_index, end_index)``."""
        await self.delete_dimension(
            "COLUMNS", {"startIndex": start_index, "endIndex": end_index}
        )

    async def insert_range(self, range: RangeInput, shift_dimension: Dimension) -> None:
        """Insert empty cells over ``range``, pushing existing cells along ``shift_dimension``."""
        grid_range = self._add_sheet_id_to_range(range)
        await self._make_single_update_request(
            "insertRange", {"range": grid_range, "shiftDimension": shift_dimension}
        )
        start, end, span = _shift_bounds(grid_range, shift_dimension)
        count = end - start
        self._shift_cache(
            shift_dimension, lambda i: i + count if i >= start else i, span
        )

    async def delete_range(self, range: RangeInput, shift_dimension: Dimension) -> None:
        """Delete the cells in ``range``, pulling later cells in along ``shift_dimension``."""
        grid_range = self._add_sheet_id_to_range(range)
        await self._make_single_update_request(
            "deleteRange", {"range": grid_range, "shiftDimension": shift_dimension}
        )
        start, end, span = _shift_bounds(grid_range, shift_dimension)
        self._shift_cache(shift_dimension, _deleted_span_mapper(start, end), span)

    async def move_dimension(
        self,
        dimension: Dimension,
        range_indexes: Mapping[str, int],
        destination_index: int,
    ) -> None:
        """Move rows or columns ``[startIndex, endIndex)`` to ``destination_index``.

        The destination is given in coordinates before the move.
        """
        start, end = _validate_dimension_range(dimension, range_indexes)
        await self._make_single_update_request(
            "moveDimension",
            {
                "source": self._dimension_range(dimension, range_indexes),
                "destinationIndex": destination_index,
            },
        )
        self._shift_cache(
            dimension, lambda i: moved_index(i, start, end, destination_index)
        )

    async def append_dimension(self, dimension: Dimension, length: int) -> None:
        """Add ``length`` empty rows or columns at the end of the sheet."""
        await self._make_single_update_request(
            "appendDimension",
            {"sheetId": self.sheet_id, "dimension": dimension, "length": length},
        )

    def _shift_cache(
        self,
        dimension: Dimension,
        mapper: Callable[[int], int | None],
        span: tuple[int, int] | None = None,
    ) -> None:
        """Move cached objects after a structural change.

        ``mapper`` takes a zero-based index along ``dimension`` and returns
        its new index, or None if it was deleted. With ``span`` only cells
        whose cross-axis index falls in ``[span[0], span[1])`` move, and rows,
        metadata and the header row stay put.
        """
        along_rows = dimension == "ROWS"
        shifted: dict[tuple[int, int], Cell] = {}
        moved = deleted = 0
        for (row_index, column_index), cell in self._cells.items():
            along, across = (
                (row_index, column_index) if along_rows else (column_index, row_index)
            )
            new_along: int | None = along
            if span is None or span[0] <= across < span[1]:
                new_along = mapper(along)
            if new_along is None:
                cell._mark_deleted()
                deleted += 1
                continue
            if new_along != along:
                moved += 1
            key = (new_along, column_index) if along_rows else (row_index, new_along)
            cell._update_position(*key)
            shifted[key] = cell
        self._cells = shifted

        if span is None:
            self._shift_metadata(dimension, mapper)
            if along_rows:
                self._shift_rows(mapper)

        logger.debug(
            "Shifted cache of sheet {} along {}: {} cells moved, {} deleted",
            self.title,
            dimension,
            moved,
            deleted,
        )

    def _shift_metadata(
        self, dimension: Dimension, mapper: Callable[[int], int | None]
    ) -> None:
        metadata = self._row_metadata if dimension == "ROWS" else self._column_metadata
        remapped: dict[int, dict[str, Any]] = {}
        for index, meta in metadata.items():
            new_index = mapper(index)
            if new_index is not None:
                remapped[new_index] = meta
        if dimension == "ROWS":
            self._row_metadata = remapped
        else:
            self._column_metadata = remapped

    def _shift_rows(self, mapper: Callable[[int], int | None]) -> None:
        # row numbers are 1-based, the mapper works on zero-based indexes
        remapped: dict[int, Row] = {}
        for row_number, row in self._row_cache.items():
            new_index = mapper(row_number - 1)
            if new_index is None:
                row._mark_deleted()
                continue
            row._update_row_number(new_index + 1)
            remapped[new_index + 1] = row
        self._row_cache = remapped

        new_header_index = mapper(self._header_row_index - 1)
        if new_header_index is None:
            self._header_values = None
        else:
            self._header_row_index = new_header_index + 1

    # ------------------------------------------------------------------
    # Whole-sheet operations
    # ------------------------------------------------------------------

    async def duplicate(
        self,
        *,
        title: str | None = None,
        index: int | None = None,
        sheet_id: int | None = None,
    ) -> Worksheet:
        """Duplicate this sheet within the spreadsheet and return the copy."""
        params: dict[str, Any] = {"sourceSheetId": self.sheet_id}
        if index is not None:
            params["insertSheetIndex"] = index
        if sheet_id is not None:
            params["newSheetId"] = sheet_id
        if title:
            params["newSheetName"] = title
        reply = await self._make_single_update_request("duplicateSheet", params)
        return self._spreadsheet.sheets_by_id[reply["properties"]["sheetId"]]

    async def copy_to_spreadsheet(self, destination_spreadsheet_id: str) -> dict[str, Any]:
        """Copy this sheet into another spreadsheet.

        Returns:
            SheetProperties of the new sheet in the destination
        """
        return await self._transport.copy_sheet_to(
            self._spreadsheet_id, self.sheet_id, destination_spreadsheet_id
        )

    async def clear(self, a1_range: str | None = None) -> None:
        """Clear values of the whole sheet or of ``a1_range``, dropping cached data."""
        target = f"{self.a1_sheet_name}!{a1_range}" if a1_range else self.a1_sheet_name
        await self._transport.clear_values(self._spreadsheet_id, target)
        self.reset_local_cache(data_only=True)

    async def delete(self) -> None:
        """Delete this sheet from the spreadsheet."""
        await self._spreadsheet.delete_sheet(self.sheet_id)

    async def download_as_csv(self) -> bytes:
        return await self._spreadsheet._download_as("csv", self.sheet_id)

    async def download_as_tsv(self) -> bytes:
        return await self._spreadsheet._download_as("tsv", self.sheet_id)

    async def download_as_pdf(self) -> bytes:
        return await self._spreadsheet._download_as("pdf", self.sheet_id)

    # ------------------------------------------------------------------
    # Request builders
    #
    # Thin wrappers around batchUpdate requests that don't touch the cache.
    # See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/request
    # ------------------------------------------------------------------

    def _add_sheet_id_to_range(self, range: RangeInput) -> dict[str, Any]:
        """Turn an A1 range or a GridRange into a GridRange on this sheet.

        Raises:
            SheetMismatchError: If the range names another sheet
        """
        if isinstance(range, str):
            title, rest = split_sheet_prefix(range)
            if title is not None and title != self.title:
                raise SheetMismatchError(
                    f'Range "{range}" does not belong to sheet "{self.title}"'
                )
            return {"sheetId": self.sheet_id, **a1_range_to_grid_range(rest)}
        sheet_id = range.get("sheetId")
        if sheet_id is not None and sheet_id != self.sheet_id:
            raise SheetMismatchError(
                "Leave sheet ID blank or set to matching ID of this sheet"
            )
        return {**range, "sheetId": self.sheet_id}

    def _dimension_range(
        self, dimension: Dimension, bounds: Mapping[str, int] | None = None
    ) -> DimensionRange:
        result: DimensionRange = {"sheetId": self.sheet_id, "dimension": dimension}
        if bounds and "startIndex" in bounds:
            result["startIndex"] = bounds["startIndex"]
        if bounds and "endIndex" in bounds:
            result["endIndex"] = bounds["endIndex"]
        return result

    def _with_sheet_range(self, obj: Mapping[str, Any], key: str = "range") -> dict[str, Any]:
        result = dict(obj)
        if key in result:
            result[key] = self._add_sheet_id_to_range(result[key])
        return result

    async def merge_cells(self, range: RangeInput, merge_type: str = "MERGE_ALL") -> None:
        await self._make_single_update_request(
            "mergeCells",
            {"mergeType": merge_type, "range": self._add_sheet_id_to_range(range)},
        )

    async def unmerge_cells(self, range: RangeInput) -> None:
        await self._make_single_update_request(
            "unmergeCells", {"range": self._add_sheet_id_to_range(range)}
        )

    async def update_borders(self, range: RangeInput, **borders: Mapping[str, Any]) -> None:
        """Set borders of a range.

        Keyword arguments are Border objects keyed by side: ``top``,
        ``bottom``, ``left``, ``right``, ``innerHorizontal``, ``innerVertical``.
        """
        await self._make_single_update_request(
            "updateBorders", {"range": self._add_sheet_id_to_range(range), **borders}
        )

    async def repeat_cell(
        self, range: RangeInput, cell: Mapping[str, Any], fields: str
    ) -> None:
        """Write the same CellData to every cell of the range."""
        await self._make_single_update_request(
            "repeatCell",
            {
                "range": self._add_sheet_id_to_range(range),
                "cell": dict(cell),
                "fields": fields,
            },
        )

    async def append_cells(
        self, rows: Sequence[Mapping[str, Any]], fields: str
    ) -> None:
        """Append RowData after the last row with data."""
        await self._make_single_update_request(
            "appendCells",
            {"sheetId": self.sheet_id, "rows": list(rows), "fields": fields},
        )

    async def auto_fill(
        self, range: RangeInput, *, use_alternate_series: bool = False
    ) -> None:
        await self._make_single_update_request(
            "autoFill",
            {
                "range": self._add_sheet_id_to_range(range),
                "useAlternateSeries": use_alternate_series,
            },
        )

    async def cut_paste(
        self,
        source: RangeInput,
        destination: Mapping[str, int],
        paste_type: str = "PASTE_NORMAL",
    ) -> None:
        """Move cells to ``destination`` (a GridCoordinate on this sheet)."""
        await self._make_single_update_request(
            "cutPaste",
            {
                "source": self._add_sheet_id_to_range(source),
                "destination": self._add_sheet_id_to_range(destination),
                "pasteType": paste_type,
            },
        )

    async def copy_paste(
        self,
        source: RangeInput,
        destination: RangeInput,
        paste_type: str = "PASTE_NORMAL",
        paste_orientation: str = "NORMAL",
    ) -> None:
        await self._make_single_update_request(
            "copyPaste",
            {
                "source": self._add_sheet_id_to_range(source),
                "destination": self._add_sheet_id_to_range(destination),
                "pasteType": paste_type,
                "pasteOrientation": paste_orientation,
            },
        )

    async def paste_data(
        self,
        coordinate: Mapping[str, int],
        data: str,
        *,
        delimiter: str | None = None,
        html: bool = False,
        paste_type: str = "PASTE_NORMAL",
    ) -> None:
        """Paste delimited text or HTML at a GridCoordinate."""
        params: dict[str, Any] = {
            "coordinate": self._add_sheet_id_to_range(coordinate),
            "data": data,
            "type": paste_type,
        }
        if html:
            params["html"] = True
        else:
            params["delimiter"] = delimiter if delimiter is not None else ","
        await self._make_single_update_request("pasteData", params)

    async def text_to_columns(
        self,
        source: RangeInput,
        delimiter_type: str = "DETECT",
        delimiter: str | None = None,
    ) -> None:
        params: dict[str, Any] = {
            "source": self._add_sheet_id_to_range(source),
            "delimiterType": delimiter_type,
        }
        if delimiter is not None:
            params["delimiter"] = delimiter
        await self._make_single_update_request("textToColumns", params)

    async def find_replace(
        self,
        find: str,
        replacement: str,
        *,
        range: RangeInput | None = None,
        match_case: bool = False,
        match_entire_cell: bool = False,
        search_by_regex: bool = False,
        include_formulas: bool = False,
    ) -> dict[str, Any] | None:
        """Find and replace within this sheet, or within ``range``.

        Returns:
            FindReplaceResponse with occurrence counts
        """
        params: dict[str, Any] = {
            "find": find,
            "replacement": replacement,
            "matchCase": match_case,
            "matchEntireCell": match_entire_cell,
            "searchByRegex": search_by_regex,
            "includeFormulas": include_formulas,
        }
        if range is not None:
            params["range"] = self._add_sheet_id_to_range(range)
        else:
            params["sheetId"] = self.sheet_id
        return await self._make_single_update_request("findReplace", params)

    async def sort_range(
        self, range: RangeInput, sort_specs: Sequence[Mapping[str, Any]]
    ) -> None:
        await self._make_single_update_request(
            "sortRange",
            {"range": self._add_sheet_id_to_range(range), "sortSpecs": list(sort_specs)},
        )

    async def set_data_validation(
        self, range: RangeInput, rule: Mapping[str, Any] | None
    ) -> None:
        """Set a data validation rule on a range. ``None`` removes validation."""
        params: dict[str, Any] = {"range": self._add_sheet_id_to_range(range)}
        if rule is not None:
            params["rule"] = dict(rule)
        await self._make_single_update_request("setDataValidation", params)

    async def set_basic_filter(self, basic_filter: Mapping[str, Any]) -> None:
        await self._make_single_update_request(
            "setBasicFilter", {"filter": self._with_sheet_range(basic_filter)}
        )

    async def clear_basic_filter(self) -> None:
        await self._make_single_update_request(
            "clearBasicFilter", {"sheetId": self.sheet_id}
        )

    async def add_filter_view(self, filter_view: Mapping[str, Any]) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "addFilterView", {"filter": self._with_sheet_range(filter_view)}
        )

    async def update_filter_view(self, filter_view: Mapping[str, Any], fields: str) -> None:
        await self._make_single_update_request(
            "updateFilterView",
            {"filter": self._with_sheet_range(filter_view), "fields": fields},
        )

    async def delete_filter_view(self, filter_id: int) -> None:
        await self._make_single_update_request("deleteFilterView", {"filterId": filter_id})

    async def duplicate_filter_view(self, filter_id: int) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "duplicateFilterView", {"filterId": filter_id}
        )

    async def add_conditional_format_rule(
        self, rule: Mapping[str, Any], index: int = 0
    ) -> None:
        rule = dict(rule)
        rule["ranges"] = [self._add_sheet_id_to_range(r) for r in rule.get("ranges", [])]
        await self._make_single_update_request(
            "addConditionalFormatRule", {"rule": rule, "index": index}
        )

    async def update_conditional_format_rule(
        self,
        index: int,
        *,
        rule: Mapping[str, Any] | None = None,
        new_index: int | None = None,
    ) -> dict[str, Any] | None:
        """Replace the rule at ``index`` or move it to ``new_index``."""
        params: dict[str, Any] = {"index": index, "sheetId": self.sheet_id}
        if rule is not None:
            rule = dict(rule)
            rule["ranges"] = [
                self._add_sheet_id_to_range(r) for r in rule.get("ranges", [])
            ]
            params["rule"] = rule
        if new_index is not None:
            params["newIndex"] = new_index
        return await self._make_single_update_request(
            "updateConditionalFormatRule", params
        )

    async def delete_conditional_format_rule(self, index: int) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "deleteConditionalFormatRule", {"index": index, "sheetId": self.sheet_id}
        )

    async def add_protected_range(
        self, protected_range: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "addProtectedRange",
            {"protectedRange": self._with_sheet_range(protected_range)},
        )

    async def update_protected_range(
        self, protected_range: Mapping[str, Any], fields: str
    ) -> None:
        await self._make_single_update_request(
            "updateProtectedRange",
            {"protectedRange": self._with_sheet_range(protected_range), "fields": fields},
        )

    async def delete_protected_range(self, protected_range_id: int) -> None:
        await self._make_single_update_request(
            "deleteProtectedRange", {"protectedRangeId": protected_range_id}
        )

    async def add_banding(self, banded_range: Mapping[str, Any]) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "addBanding", {"bandedRange": self._with_sheet_range(banded_range)}
        )

    async def update_banding(self, banded_range: Mapping[str, Any], fields: str) -> None:
        await self._make_single_update_request(
            "updateBanding",
            {"bandedRange": self._with_sheet_range(banded_range), "fields": fields},
        )

    async def delete_banding(self, banded_range_id: int) -> None:
        await self._make_single_update_request(
            "deleteBanding", {"bandedRangeId": banded_range_id}
        )

    async def add_named_range(
        self, name: str, range: RangeInput, named_range_id: str | None = None
    ) -> dict[str, Any] | None:
        """Name a range of this sheet."""
        return await self._spreadsheet.add_named_range(
            name, self._add_sheet_id_to_range(range), named_range_id
        )

    async def update_named_range(self, named_range: Mapping[str, Any], fields: str) -> None:
        await self._make_single_update_request(
            "updateNamedRange",
            {"namedRange": self._with_sheet_range(named_range), "fields": fields},
        )

    async def delete_named_range(self, named_range_id: str) -> None:
        await self._spreadsheet.delete_named_range(named_range_id)

    async def auto_resize_dimensions(
        self, dimension: Dimension, bounds: Mapping[str, int] | None = None
    ) -> None:
        """Fit row heights or column widths to their contents."""
        await self._make_single_update_request(
            "autoResizeDimensions",
            {"dimensions": self._dimension_range(dimension, bounds)},
        )

    async def trim_whitespace(self, range: RangeInput) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "trimWhitespace", {"range": self._add_sheet_id_to_range(range)}
        )

    async def delete_duplicates(
        self,
        range: RangeInput,
        comparison_columns: Sequence[Mapping[str, int]] | None = None,
    ) -> dict[str, Any] | None:
        """Remove rows with duplicate values in ``comparison_columns``."""
        params: dict[str, Any] = {"range": self._add_sheet_id_to_range(range)}
        if comparison_columns:
            params["comparisonColumns"] = [
                self._dimension_range("COLUMNS", column) for column in comparison_columns
            ]
        return await self._make_single_update_request("deleteDuplicates", params)

    async def randomize_range(self, range: RangeInput) -> None:
        await self._make_single_update_request(
            "randomizeRange", {"range": self._add_sheet_id_to_range(range)}
        )

    async def add_dimension_group(
        self, dimension: Dimension, range_indexes: Mapping[str, int]
    ) -> dict[str, Any] | None:
        _validate_dimension_range(dimension, range_indexes)
        return await self._make_single_update_request(
            "addDimensionGroup", {"range": self._dimension_range(dimension, range_indexes)}
        )

    async def update_dimension_group(
        self, dimension_group: Mapping[str, Any], fields: str
    ) -> None:
        group = dict(dimension_group)
        if "range" in group:
            group["range"] = self._dimension_range(
                group["range"].get("dimension", "ROWS"), group["range"]
            )
        await self._make_single_update_request(
            "updateDimensionGroup", {"dimensionGroup": group, "fields": fields}
        )

    async def delete_dimension_group(
        self, dimension: Dimension, range_indexes: Mapping[str, int]
    ) -> dict[str, Any] | None:
        _validate_dimension_range(dimension, range_indexes)
        return await self._make_single_update_request(
            "deleteDimensionGroup",
            {"range": self._dimension_range(dimension, range_indexes)},
        )

    async def create_developer_metadata(
        self, developer_metadata: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        """Attach developer metadata to this sheet unless a location is given."""
        metadata = dict(developer_metadata)
        metadata.setdefault("location", {"sheetId": self.sheet_id})
        return await self._make_single_update_request(
            "createDeveloperMetadata", {"developerMetadata": metadata}
        )

    async def update_developer_metadata(
        self,
        data_filters: Sequence[Mapping[str, Any]],
        developer_metadata: Mapping[str, Any],
        fields: str,
    ) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "updateDeveloperMetadata",
            {
                "dataFilters": list(data_filters),
                "developerMetadata": dict(developer_metadata),
                "fields": fields,
            },
        )

    async def delete_developer_metadata(
        self, data_filter: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "deleteDeveloperMetadata", {"dataFilter": dict(data_filter)}
        )

    async def delete_embedded_object(self, object_id: int) -> None:
        await self._make_single_update_request(
            "deleteEmbeddedObject", {"objectId": object_id}
        )

    async def update_embedded_object_position(
        self, object_id: int, new_position: Mapping[str, Any], fields: str
    ) -> dict[str, Any] | None:
        return await self._make_single_update_request(
            "updateEmbeddedObjectPosition",
            {"objectId": object_id, "newPosition": dict(new_position), "fields": fields},
        )

    async def add_chart(self, chart: Mapping[str, Any]) -> dict[str, Any] | None:
        return await self._make_single_update_request("addChart", {"chart": dict(chart)})

    async def update_chart_spec(self, chart_id: int, spec: Mapping[str, Any]) -> None:
        await self._make_single_update_request(
            "updateChartSpec", {"chartId": chart_id, "spec": dict(spec)}
        )

    async def add_slicer(self, slicer: Mapping[str, Any]) -> dict[str, Any] | None:
        return await self._make_single_update_request("addSlicer", {"slicer": dict(slicer)})

    async def update_slicer_spec(
        self, slicer_id: int, spec: Mapping[str, Any], fields: str
    ) -> None:
        await self._make_single_update_request(
            "updateSlicerSpec", {"slicerId": slicer_id, "spec": dict(spec), "fields": fields}
        )


def _value_params(
    value_render_option: str | None,
    major_dimension: str | None,
    date_time_render_option: str | None,
) -> dict[str, str]:
    params = {
        "valueRenderOption": value_render_option,
        "majorDimension": major_dimension,
        "dateTimeRenderOption": date_time_render_option,
    }
    return {k: v for k, v in params.items() if v is not None}


def _cell_input(value: Any) -> Any:
    # null means "skip this cell" to the values API
    return "" if value is None else value


def _validate_dimension_range(
    dimension: str, range_indexes: Mapping[str, int]
) -> tuple[int, int]:
    if dimension not in ("ROWS", "COLUMNS"):
        raise InvalidRangeError("You need to specify a dimension, ROWS or COLUMNS")
    if not isinstance(range_indexes, Mapping):
        raise InvalidRangeError(
            "range must be a mapping containing startIndex and endIndex"
        )
    start = range_indexes.get("startIndex")
    end = range_indexes.get("endIndex")
    if not isinstance(start, int) or isinstance(start, bool) or start < 0:
        raise InvalidRangeError("range startIndex must be an integer >= 0")
    if not isinstance(end, int) or isinstance(end, bool) or end < 0:
        raise InvalidRangeError("range endIndex must be an integer >= 0")
    if end <= start:
        raise InvalidRangeError("range endIndex must be greater than startIndex")
    return start, end


def _deleted_span_mapper(start: int, end: int) -> Callable[[int], int | None]:
    count = end - start

    def mapper(index: int) -> int | None:
        if index < start:
            return index
        if index < end:
            return None
        return index - count

    return mapper


def _shift_bounds(
    grid_range: Mapping[str, Any], shift_dimension: str
) -> tuple[int, int, tuple[int, int] | None]:
    """Shifted span and cross-axis span of an insertRange/deleteRange.

    The cross-axis span is None when the range covers whole rows or columns.
    """
    if shift_dimension == "ROWS":
        along, across = ("startRowIndex", "endRowIndex"), (
            "startColumnIndex",
            "endColumnIndex",
        )
    else:
        along, across = ("startColumnIndex", "endColumnIndex"), (
            "startRowIndex",
            "endRowIndex",
        )
    if along[0] not in grid_range or along[1] not in grid_range:
        raise InvalidRangeError(
            f"Range must have {along[0]} and {along[1]} to shift {shift_dimension}"
        )
    span: tuple[int, int] | None = None
    if across[0] in grid_range or across[1] in grid_range:
        span = (grid_range.get(across[0], 0), grid_range.get(across[1], 2**31))
    return grid_range[along[0]], grid_range[along[1]], span
