"""In-memory mock of the Sheets and Drive APIs.

This module simulates the subset of the Google Sheets API that livesheet
uses, keeping real state so that the client's cache reconciliation can be
exercised end to end without network access:
- Spreadsheet snapshots with grid data (spreadsheets.get, getByDataFilter)
- The values endpoints (get, batchGet, update, append, clear)
- The structural batchUpdate requests the client issues
- Drive permissions and file deletion

Formulas are stored but never evaluated. Request kinds without a handler
are acknowledged with an empty reply. Every call is recorded in ``calls``.
"""

from __future__ import annotations

import copy
import csv
import io
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from livesheet.exceptions import InvalidRangeError
from livesheet.transport import APIError, NotFoundError, Transport
from livesheet.utils import (
    a1_range_to_grid_range,
    grid_range_to_a1,
    moved_index,
    quote_sheet_title,
    split_sheet_prefix,
)

DEFAULT_ROW_COUNT = 1000
DEFAULT_COLUMN_COUNT = 26
DEFAULT_ROW_PIXEL_SIZE = 21
DEFAULT_COLUMN_PIXEL_SIZE = 100

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_VALUE_FIELDS = ("userEnteredValue", "effectiveValue", "formattedValue")

# (row_index, column_index) -> CellData
CellMap = dict[tuple[int, int], dict[str, Any]]


@dataclass
class MockSheet:
    """A single sheet held by the mock."""

    properties: dict[str, Any]
    cells: CellMap = field(default_factory=dict)
    row_metadata: dict[int, dict[str, Any]] = field(default_factory=dict)
    column_metadata: dict[int, dict[str, Any]] = field(default_factory=dict)

    @property
    def sheet_id(self) -> int:
        return int(self.properties["sheetId"])

    @property
    def title(self) -> str:
        return str(self.properties["title"])

    @property
    def row_count(self) -> int:
        return int(self.properties["gridProperties"]["rowCount"])

    @property
    def column_count(self) -> int:
        return int(self.properties["gridProperties"]["columnCount"])


@dataclass
class MockSpreadsheet:
    """A spreadsheet document held by the mock."""

    spreadsheet_id: str
    properties: dict[str, Any]
    sheets: list[MockSheet] = field(default_factory=list)
    named_ranges: list[dict[str, Any]] = field(default_factory=list)
    permissions: list[dict[str, Any]] = field(default_factory=list)

    @property
    def url(self) -> str:
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}/edit"


class MockSheetsTransport(Transport):
    """Transport backed by in-memory spreadsheets.

    Usage:
        transport = MockSheetsTransport()
        transport.add_spreadsheet("doc-1", sheets={"People": [["name"], ["Ann"]]})
        doc = Spreadsheet("doc-1", AccessTokenAuth("t"), transport=transport)
    """

    def __init__(self) -> None:
        self.spreadsheets: dict[str, MockSpreadsheet] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self._id_counter = 0

    # ========================================================================
    # Seeding and inspection helpers
    # ========================================================================

    def add_spreadsheet(
        self,
        spreadsheet_id: str,
        *,
        title: str = "Untitled spreadsheet",
        sheets: dict[str, list[list[Any]]] | None = None,
        row_count: int = DEFAULT_ROW_COUNT,
        column_count: int = DEFAULT_COLUMN_COUNT,
    ) -> MockSpreadsheet:
        """Create a spreadsheet seeded with values.

        Args:
            spreadsheet_id: Identifier of the new spreadsheet
            title: Document title
            sheets: Sheet title -> rows of values, entered as USER_ENTERED
            row_count: Grid rows of every seeded sheet
            column_count: Grid columns of every seeded sheet
        """
        spreadsheet = MockSpreadsheet(
            spreadsheet_id=spreadsheet_id,
            properties=_default_spreadsheet_properties(title),
        )
        for sheet_title, rows in (sheets or {"Sheet1": []}).items():
            sheet = self._new_sheet(
                spreadsheet,
                {
                    "title": sheet_title,
                    "gridProperties": {
                        "rowCount": row_count,
                        "columnCount": column_count,
                    },
                },
            )
            for r, row in enumerate(rows):
                for c, value in enumerate(row):
                    _write_cell_value(sheet, r, c, value, "USER_ENTERED")
        self.spreadsheets[spreadsheet_id] = spreadsheet
        return spreadsheet

    def sheet_values(self, spreadsheet_id: str, title: str) -> list[list[str]]:
        """Formatted values of a sheet, trailing blanks trimmed."""
        sheet = self._sheet_by_title(self._spreadsheet(spreadsheet_id), title)
        grid = {
            "startRowIndex": 0,
            "endRowIndex": sheet.row_count,
            "startColumnIndex": 0,
            "endColumnIndex": sheet.column_count,
        }
        return _read_values(sheet, grid, "FORMATTED_VALUE")

    def cell_data(
        self, spreadsheet_id: str, title: str, row_index: int, column_index: int
    ) -> dict[str, Any]:
        """Raw CellData stored at a coordinate (empty dict when blank)."""
        sheet = self._sheet_by_title(self._spreadsheet(spreadsheet_id), title)
        return copy.deepcopy(sheet.cells.get((row_index, column_index), {}))

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    # ========================================================================
    # Transport interface
    # ========================================================================

    async def get_spreadsheet(
        self,
        spreadsheet_id: str,
        *,
        include_grid_data: bool = False,
        ranges: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        self._record(
            "get_spreadsheet",
            spreadsheet_id=spreadsheet_id,
            include_grid_data=include_grid_data,
            ranges=list(ranges or []),
        )
        spreadsheet = self._spreadsheet(spreadsheet_id)
        if ranges:
            grids = [self._resolve_a1(spreadsheet, r) for r in ranges]
            return self._snapshot(spreadsheet, grids, include_grid_data)
        return self._snapshot(spreadsheet, None, include_grid_data)

    async def get_by_data_filter(
        self,
        spreadsheet_id: str,
        data_filters: list[dict[str, Any]],
        *,
        include_grid_data: bool = True,
    ) -> dict[str, Any]:
        self._record(
            "get_by_data_filter",
            spreadsheet_id=spreadsheet_id,
            data_filters=copy.deepcopy(data_filters),
        )
        spreadsheet = self._spreadsheet(spreadsheet_id)
        grids: list[tuple[MockSheet, dict[str, int]]] = []
        for data_filter in data_filters:
            if "a1Range" in data_filter:
                grids.append(self._resolve_a1(spreadsheet, data_filter["a1Range"]))
            elif "gridRange" in data_filter:
                grids.append(self._resolve_grid(spreadsheet, data_filter["gridRange"]))
            else:
                raise APIError(f"Unsupported data filter: {data_filter}", 400)
        return self._snapshot(spreadsheet, grids, include_grid_data)

    async def batch_update(
        self,
        spreadsheet_id: str,
        requests: list[dict[str, Any]],
        *,
        include_spreadsheet_in_response: bool = True,
        response_ranges: Sequence[str] | None = None,
        response_include_grid_data: bool = False,
    ) -> dict[str, Any]:
        """Apply requests atomically: either all succeed or none do."""
        self._record(
            "batch_update",
            spreadsheet_id=spreadsheet_id,
            requests=copy.deepcopy(requests),
            response_ranges=list(response_ranges or []),
        )
        spreadsheet = self._spreadsheet(spreadsheet_id)
        if not requests:
            raise APIError("Must specify at least one request.", 400)

        backup = copy.deepcopy(spreadsheet)
        try:
            replies = [self._process_request(spreadsheet, r) for r in requests]
        except Exception:
            self.spreadsheets[spreadsheet_id] = backup
            raise

        response: dict[str, Any] = {
            "spreadsheetId": spreadsheet_id,
            "replies": replies,
        }
        if include_spreadsheet_in_response:
            grids = None
            if response_ranges:
                grids = [self._resolve_a1(spreadsheet, r) for r in response_ranges]
            response["updatedSpreadsheet"] = self._snapshot(
                spreadsheet,
                grids,
                response_include_grid_data,
                only_matching_sheets=False,
            )
        return response

    async def get_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._record(
            "get_values", spreadsheet_id=spreadsheet_id, a1_range=a1_range
        )
        spreadsheet = self._spreadsheet(spreadsheet_id)
        render = (params or {}).get("valueRenderOption", "FORMATTED_VALUE")
        sheet, grid = self._resolve_a1(spreadsheet, a1_range)
        return _value_range(sheet, grid, _read_values(sheet, grid, render))

    async def batch_get_values(
        self,
        spreadsheet_id: str,
        ranges: Sequence[str],
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._record(
            "batch_get_values", spreadsheet_id=spreadsheet_id, ranges=list(ranges)
        )
        spreadsheet = self._spreadsheet(spreadsheet_id)
        render = (params or {}).get("valueRenderOption", "FORMATTED_VALUE")
        value_ranges = []
        for a1_range in ranges:
            sheet, grid = self._resolve_a1(spreadsheet, a1_range)
            value_ranges.append(
                _value_range(sheet, grid, _read_values(sheet, grid, render))
            )
        return {"spreadsheetId": spreadsheet_id, "valueRanges": value_ranges}

    async def update_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
        include_values_in_response: bool = True,
    ) -> dict[str, Any]:
        self._record(
            "update_values",
            spreadsheet_id=spreadsheet_id,
            a1_range=a1_range,
            values=copy.deepcopy(values),
            value_input_option=value_input_option,
        )
        spreadsheet = self._spreadsheet(spreadsheet_id)
        sheet, grid = self._resolve_a1(spreadsheet, a1_range)
        start_row = grid["startRowIndex"]
        start_col = grid["startColumnIndex"]
        width = max((len(row) for row in values), default=0)
        if (
            start_row + len(values) > sheet.row_count
            or start_col + width > sheet.column_count
        ):
            raise APIError(
                f"Range ({a1_range}) exceeds grid limits. Max rows: "
                f"{sheet.row_count}, max columns: {sheet.column_count}",
                400,
            )

        for r, row in enumerate(values):
            for c, value in enumerate(row):
                _write_cell_value(
                    sheet, start_row + r, start_col + c, value, value_input_option
                )

        written = {
            "startRowIndex": start_row,
            "endRowIndex": start_row + len(values),
            "startColumnIndex": start_col,
            "endColumnIndex": start_col + width,
        }
        response: dict[str, Any] = {
            "spreadsheetId": spreadsheet_id,
            "updatedRange": _qualified_range(sheet, written),
            "updatedRows": len(values),
            "updatedColumns": width,
            "updatedCells": sum(len(row) for row in values),
        }
        if include_values_in_response:
            response["updatedData"] = _value_range(
                sheet, written, _read_values(sheet, written, "FORMATTED_VALUE")
            )
        return response

    async def append_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
        insert_data_option: str = "OVERWRITE",
        include_values_in_response: bool = True,
    ) -> dict[str, Any]:
        """Append after the last non-empty row at or below the range start."""
        self._record(
            "append_values",
            spreadsheet_id=spreadsheet_id,
            a1_range=a1_range,
            values=copy.deepcopy(values),
            value_input_option=value_input_option,
            insert_data_option=insert_data_option,
        )
        spreadsheet = self._spreadsheet(spreadsheet_id)
        sheet, grid = self._resolve_a1(spreadsheet, a1_range)
        start_row = grid["startRowIndex"]
        start_col = grid["startColumnIndex"]
        width = max((len(row) for row in values), default=0)

        table_rows = [
            r
            for (r, _), cell in sheet.cells.items()
            if r >= start_row and _has_value(cell)
        ]
        append_at = max(table_rows) + 1 if table_rows else start_row

        if insert_data_option == "INSERT_ROWS":
            _shift_cells(sheet, "ROWS", lambda i: i + len(values) if i >= append_at else i)
            sheet.properties["gridProperties"]["rowCount"] += len(values)
        elif append_at + len(values) > sheet.row_count:
            sheet.properties["gridProperties"]["rowCount"] = append_at + len(values)
        if start_col + width > sheet.column_count:
            sheet.properties["gridProperties"]["columnCount"] = start_col + width

        for r, row in enumerate(values):
            for c, value in enumerate(row):
                _write_cell_value(
                    sheet, append_at + r, start_col + c, value, value_input_option
                )

        written = {
            "startRowIndex": append_at,
            "endRowIndex": append_at + len(values),
            "startColumnIndex": start_col,
            "endColumnIndex": start_col + width,
        }
        updates: dict[str, Any] = {
            "spreadsheetId": spreadsheet_id,
            "updatedRange": _qualified_range(sheet, written),
            "updatedRows": len(values),
            "updatedColumns": width,
            "updatedCells": sum(len(row) for row in values),
        }
        if include_values_in_response:
            updates["updatedData"] = _value_range(
                sheet, written, _read_values(sheet, written, "FORMATTED_VALUE")
            )
        return {
            "spreadsheetId": spreadsheet_id,
            "tableRange": _qualified_range(sheet, grid),
            "updates": updates,
        }

    async def clear_values(self, spreadsheet_id: str, a1_range: str) -> dict[str, Any]:
        self._record("clear_values", spreadsheet_id=spreadsheet_id, a1_range=a1_range)
        spreadsheet = self._spreadsheet(spreadsheet_id)
        sheet, grid = self._resolve_a1(spreadsheet, a1_range)
        for (r, c), cell in list(sheet.cells.items()):
            if _in_grid(grid, r, c):
                for key in _VALUE_FIELDS:
                    cell.pop(key, None)
                if not cell:
                    del sheet.cells[(r, c)]
        return {
            "spreadsheetId": spreadsheet_id,
            "clearedRange": _qualified_range(sheet, grid),
        }

    async def copy_sheet_to(
        self,
        spreadsheet_id: str,
        sheet_id: int,
        destination_spreadsheet_id: str,
    ) -> dict[str, Any]:
        self._record(
            "copy_sheet_to",
            spreadsheet_id=spreadsheet_id,
            sheet_id=sheet_id,
            destination_spreadsheet_id=destination_spreadsheet_id,
        )
        source = self._sheet_by_id(self._spreadsheet(spreadsheet_id), sheet_id)
        destination = self._spreadsheet(destination_spreadsheet_id)
        copied = self._new_sheet(
            destination,
            {
                "title": self._unique_title(destination, f"Copy of {source.title}"),
                "gridProperties": copy.deepcopy(source.properties["gridProperties"]),
            },
        )
        copied.cells = copy.deepcopy(source.cells)
        copied.row_metadata = copy.deepcopy(source.row_metadata)
        copied.column_metadata = copy.deepcopy(source.column_metadata)
        return copy.deepcopy(copied.properties)

    async def create_spreadsheet(self, body: dict[str, Any]) -> dict[str, Any]:
        self._record("create_spreadsheet", body=copy.deepcopy(body))
        self._id_counter += 1
        spreadsheet_id = f"mock-spreadsheet-{self._id_counter}"
        properties = _default_spreadsheet_properties("Untitled spreadsheet")
        properties.update(copy.deepcopy(body.get("properties") or {}))
        spreadsheet = MockSpreadsheet(spreadsheet_id=spreadsheet_id, properties=properties)
        for sheet in body.get("sheets") or [{"properties": {"title": "Sheet1"}}]:
            self._new_sheet(spreadsheet, copy.deepcopy(sheet.get("properties", {})))
        self.spreadsheets[spreadsheet_id] = spreadsheet
        return self._snapshot(spreadsheet, None, False)

    async def export(self, export_url: str, params: dict[str, Any]) -> bytes:
        """Export a single sheet as CSV or TSV."""
        self._record("export", export_url=export_url, params=dict(params))
        spreadsheet = self._spreadsheet(str(params.get("id")))
        file_format = params.get("format")
        if file_format not in ("csv", "tsv"):
            raise APIError(f"Mock export does not support format {file_format!r}", 400)
        sheet = self._sheet_by_id(spreadsheet, int(params.get("gid", 0)))
        buffer = io.StringIO()
        writer = csv.writer(
            buffer,
            delimiter="," if file_format == "csv" else "\t",
            lineterminator="\r\n",
        )
        writer.writerows(self.sheet_values(spreadsheet.spreadsheet_id, sheet.title))
        return buffer.getvalue().encode("utf-8")

    async def list_permissions(self, file_id: str, *, fields: str) -> dict[str, Any]:
        self._record("list_permissions", file_id=file_id, fields=fields)
        spreadsheet = self._spreadsheet(file_id)
        return {"permissions": copy.deepcopy(spreadsheet.permissions)}

    async def create_permission(
        self,
        file_id: str,
        body: dict[str, Any],
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._record(
            "create_permission",
            file_id=file_id,
            body=dict(body),
            params=dict(params or {}),
        )
        spreadsheet = self._spreadsheet(file_id)
        self._id_counter += 1
        permission = {
            "id": f"permission-{self._id_counter}",
            "kind": "drive#permission",
            **body,
        }
        spreadsheet.permissions.append(permission)
        return copy.deepcopy(permission)

    async def delete_permission(self, file_id: str, permission_id: str) -> None:
        self._record("delete_permission", file_id=file_id, permission_id=permission_id)
        spreadsheet = self._spreadsheet(file_id)
        remaining = [p for p in spreadsheet.permissions if p["id"] != permission_id]
        if len(remaining) == len(spreadsheet.permissions):
            raise NotFoundError(f"Permission not found: {permission_id}.")
        spreadsheet.permissions = remaining

    async def delete_file(self, file_id: str) -> None:
        self._record("delete_file", file_id=file_id)
        self._spreadsheet(file_id)
        del self.spreadsheets[file_id]

    async def close(self) -> None:
        self.closed = True

    # ========================================================================
    # Lookup helpers
    # ========================================================================

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))

    def _spreadsheet(self, spreadsheet_id: str) -> MockSpreadsheet:
        try:
            return self.spreadsheets[spreadsheet_id]
        except KeyError:
            raise NotFoundError(
                f"Requested entity was not found: {spreadsheet_id}"
            ) from None

    def _sheet_by_id(self, spreadsheet: MockSpreadsheet, sheet_id: Any) -> MockSheet:
        for sheet in spreadsheet.sheets:
            if sheet.sheet_id == sheet_id:
                return sheet
        raise APIError(f"No grid with id: {sheet_id}", 400)

    def _sheet_by_title(self, spreadsheet: MockSpreadsheet, title: str) -> MockSheet:
        for sheet in spreadsheet.sheets:
            if sheet.title == title:
                return sheet
        raise APIError(f"Unable to parse range: {title}", 400)

    def _resolve_a1(
        self, spreadsheet: MockSpreadsheet, a1_range: str
    ) -> tuple[MockSheet, dict[str, int]]:
        """Resolve an A1 range to a sheet and a bounded, clipped GridRange."""
        title, rest = split_sheet_prefix(a1_range)
        if title is None:
            titles = {s.title: s for s in spreadsheet.sheets}
            if rest in titles:
                sheet, rest = titles[rest], ""
            else:
                sheet = spreadsheet.sheets[0]
        else:
            sheet = self._sheet_by_title(spreadsheet, title)
        try:
            grid = a1_range_to_grid_range(rest)
        except (InvalidRangeError, ValueError):
            raise APIError(f"Unable to parse range: {a1_range}", 400) from None
        return sheet, self._bound_grid(sheet, grid, a1_range)

    def _resolve_grid(
        self, spreadsheet: MockSpreadsheet, grid_range: dict[str, Any]
    ) -> tuple[MockSheet, dict[str, int]]:
        sheet = self._sheet_by_id(spreadsheet, grid_range.get("sheetId", 0))
        grid = {k: v for k, v in grid_range.items() if k != "sheetId"}
        return sheet, self._bound_grid(sheet, grid, str(grid_range))

    def _bound_grid(
        self, sheet: MockSheet, grid: dict[str, Any], label: str
    ) -> dict[str, int]:
        start_row = grid.get("startRowIndex", 0)
        start_col = grid.get("startColumnIndex", 0)
        if start_row >= sheet.row_count or start_col >= sheet.column_count:
            raise APIError(
                f"Range ({label}) exceeds grid limits. Max rows: "
                f"{sheet.row_count}, max columns: {sheet.column_count}",
                400,
            )
        return {
            "startRowIndex": start_row,
            "endRowIndex": min(grid.get("endRowIndex", sheet.row_count), sheet.row_count),
            "startColumnIndex": start_col,
            "endColumnIndex": min(
                grid.get("endColumnIndex", sheet.column_count), sheet.column_count
            ),
        }

    def _unique_title(self, spreadsheet: MockSpreadsheet, base: str) -> str:
        titles = {s.title for s in spreadsheet.sheets}
        if base not in titles:
            return base
        n = 2
        while f"{base} {n}" in titles:
            n += 1
        return f"{base} {n}"

    def _new_sheet(
        self,
        spreadsheet: MockSpreadsheet,
        properties: dict[str, Any],
        index: int | None = None,
    ) -> MockSheet:
        """Create a sheet from partial properties and place it at ``index``."""
        existing_ids = {s.sheet_id for s in spreadsheet.sheets}
        sheet_id = properties.get("sheetId")
        if sheet_id is None:
            sheet_id = 0 if not existing_ids else max(existing_ids) + 1
        elif sheet_id in existing_ids:
            raise APIError(
                f"Invalid requests[0].addSheet: A sheet with id {sheet_id} already exists.",
                400,
            )
        title = properties.get("title") or self._unique_title(
            spreadsheet, f"Sheet{len(spreadsheet.sheets) + 1}"
        )
        if any(s.title == title for s in spreadsheet.sheets):
            raise APIError(
                f'A sheet with the name "{title}" already exists. '
                "Please enter another name.",
                400,
            )
        grid_properties = {
            "rowCount": DEFAULT_ROW_COUNT,
            "columnCount": DEFAULT_COLUMN_COUNT,
            **properties.get("gridProperties", {}),
        }
        merged = {
            **properties,
            "sheetId": sheet_id,
            "title": title,
            "sheetType": properties.get("sheetType", "GRID"),
            "gridProperties": grid_properties,
        }
        sheet = MockSheet(properties=merged)
        position = properties.get("index", index)
        if position is None or position > len(spreadsheet.sheets):
            position = len(spreadsheet.sheets)
        spreadsheet.sheets.insert(position, sheet)
        _reindex_sheets(spreadsheet)
        return sheet

    # ========================================================================
    # Snapshots
    # ========================================================================

    def _snapshot(
        self,
        spreadsheet: MockSpreadsheet,
        grids: list[tuple[MockSheet, dict[str, int]]] | None,
        include_grid_data: bool,
        *,
        only_matching_sheets: bool = True,
    ) -> dict[str, Any]:
        """Build a Spreadsheet resource.

        With ``grids``, grid data covers only those ranges and, unless
        ``only_matching_sheets`` is False, only the sheets they touch are
        returned.
        """
        sheets: list[dict[str, Any]] = []
        for sheet in spreadsheet.sheets:
            sheet_grids = None
            if grids is not None:
                sheet_grids = [g for s, g in grids if s is sheet]
                if not sheet_grids and only_matching_sheets:
                    continue
            payload: dict[str, Any] = {"properties": copy.deepcopy(sheet.properties)}
            if include_grid_data:
                if sheet_grids is None:
                    sheet_grids = [
                        {
                            "startRowIndex": 0,
                            "endRowIndex": sheet.row_count,
                            "startColumnIndex": 0,
                            "endColumnIndex": sheet.column_count,
                        }
                    ]
                payload["data"] = [_grid_data(sheet, g) for g in sheet_grids]
            sheets.append(payload)

        result: dict[str, Any] = {
            "spreadsheetId": spreadsheet.spreadsheet_id,
            "properties": copy.deepcopy(spreadsheet.properties),
            "sheets": sheets,
            "spreadsheetUrl": spreadsheet.url,
        }
        if spreadsheet.named_ranges:
            result["namedRanges"] = copy.deepcopy(spreadsheet.named_ranges)
        return result

    # ========================================================================
    # batchUpdate request handlers
    # ========================================================================

    def _process_request(
        self, spreadsheet: MockSpreadsheet, request: dict[str, Any]
    ) -> dict[str, Any]:
        if len(request) != 1:
            raise APIError(
                f"Request must have exactly one operation, got: {list(request)}", 400
            )
        request_type, request_data = next(iter(request.items()))

        handler_map = {
            "updateSpreadsheetProperties": self._handle_update_spreadsheet_properties,
            "addSheet": self._handle_add_sheet,
            "deleteSheet": self._handle_delete_sheet,
            "duplicateSheet": self._handle_duplicate_sheet,
            "updateSheetProperties": self._handle_update_sheet_properties,
            "updateCells": self._handle_update_cells,
            "repeatCell": self._handle_repeat_cell,
            "insertDimension": self._handle_insert_dimension,
            "deleteDimension": self._handle_delete_dimension,
            "moveDimension": self._handle_move_dimension,
            "appendDimension": self._handle_append_dimension,
            "insertRange": self._handle_insert_range,
            "deleteRange": self._handle_delete_range,
            "updateDimensionProperties": self._handle_update_dimension_properties,
            "addNamedRange": self._handle_add_named_range,
            "deleteNamedRange": self._handle_delete_named_range,
        }
        handler = handler_map.get(request_type)
        if handler is None:
            return {}
        reply = handler(spreadsheet, request_data)
        return {request_type: reply} if reply is not None else {}

    def _handle_update_spreadsheet_properties(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        _apply_fields(spreadsheet.properties, data.get("properties", {}), data["fields"])

    def _handle_add_sheet(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> dict[str, Any]:
        sheet = self._new_sheet(spreadsheet, copy.deepcopy(data.get("properties", {})))
        return {"properties": copy.deepcopy(sheet.properties)}

    def _handle_delete_sheet(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        sheet = self._sheet_by_id(spreadsheet, data["sheetId"])
        if len(spreadsheet.sheets) == 1:
            raise APIError(
                "You can't remove all the sheets in a document.", 400
            )
        spreadsheet.sheets.remove(sheet)
        _reindex_sheets(spreadsheet)

    def _handle_duplicate_sheet(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> dict[str, Any]:
        source = self._sheet_by_id(spreadsheet, data["sourceSheetId"])
        properties = copy.deepcopy(source.properties)
        properties.pop("index", None)
        properties["sheetId"] = data.get("newSheetId")
        properties["title"] = data.get("newSheetName") or self._unique_title(
            spreadsheet, f"Copy of {source.title}"
        )
        new_sheet = self._new_sheet(
            spreadsheet, properties, index=data.get("insertSheetIndex")
        )
        new_sheet.cells = copy.deepcopy(source.cells)
        new_sheet.row_metadata = copy.deepcopy(source.row_metadata)
        new_sheet.column_metadata = copy.deepcopy(source.column_metadata)
        return {"properties": copy.deepcopy(new_sheet.properties)}

    def _handle_update_sheet_properties(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        properties = data.get("properties", {})
        sheet = self._sheet_by_id(spreadsheet, properties.get("sheetId"))
        title = properties.get("title")
        if title and any(s.title == title and s is not sheet for s in spreadsheet.sheets):
            raise APIError(
                f'A sheet with the name "{title}" already exists. '
                "Please enter another name.",
                400,
            )
        _apply_fields(sheet.properties, properties, data["fields"])
        sheet.properties["sheetId"] = sheet.sheet_id

        if "index" in properties:
            spreadsheet.sheets.remove(sheet)
            position = min(properties["index"], len(spreadsheet.sheets))
            spreadsheet.sheets.insert(position, sheet)
            _reindex_sheets(spreadsheet)

        # shrinking the grid drops cells that no longer fit
        for key in list(sheet.cells):
            if key[0] >= sheet.row_count or key[1] >= sheet.column_count:
                del sheet.cells[key]

    def _handle_update_cells(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        fields = data["fields"]
        if "start" in data:
            start = data["start"]
            sheet = self._sheet_by_id(spreadsheet, start.get("sheetId", 0))
            start_row = start.get("rowIndex", 0)
            start_col = start.get("columnIndex", 0)
            for r, row in enumerate(data.get("rows", [])):
                for c, cell in enumerate(row.get("values", [])):
                    self._update_cell(sheet, start_row + r, start_col + c, cell, fields)
            return

        sheet, grid = self._resolve_grid(spreadsheet, data["range"])
        rows = data.get("rows", [])
        for r in range(grid["startRowIndex"], grid["endRowIndex"]):
            row_offset = r - grid["startRowIndex"]
            row_values = (
                rows[row_offset].get("values", []) if row_offset < len(rows) else []
            )
            for c in range(grid["startColumnIndex"], grid["endColumnIndex"]):
                offset = c - grid["startColumnIndex"]
                cell = row_values[offset] if offset < len(row_values) else {}
                self._update_cell(sheet, r, c, cell, fields)

    def _handle_repeat_cell(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        sheet, grid = self._resolve_grid(spreadsheet, data["range"])
        for r in range(grid["startRowIndex"], grid["endRowIndex"]):
            for c in range(grid["startColumnIndex"], grid["endColumnIndex"]):
                self._update_cell(sheet, r, c, data.get("cell", {}), data["fields"])

    def _update_cell(
        self,
        sheet: MockSheet,
        row_index: int,
        column_index: int,
        source: dict[str, Any],
        fields: str,
    ) -> None:
        if row_index >= sheet.row_count or column_index >= sheet.column_count:
            raise APIError(
                f"Range exceeds grid limits. Max rows: {sheet.row_count}, "
                f"max columns: {sheet.column_count}",
                400,
            )
        cell = sheet.cells.setdefault((row_index, column_index), {})
        _apply_fields(cell, copy.deepcopy(source), fields)
        _refresh_cell(cell)
        if not cell:
            del sheet.cells[(row_index, column_index)]

    def _handle_insert_dimension(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        dimension_range = data["range"]
        sheet = self._sheet_by_id(spreadsheet, dimension_range["sheetId"])
        dimension = dimension_range["dimension"]
        start, end = dimension_range["startIndex"], dimension_range["endIndex"]
        count = end - start
        size_key = _size_key(dimension)
        if start > sheet.properties["gridProperties"][size_key]:
            raise APIError(f"Invalid insertDimension index {start}", 400)
        _shift_cells(sheet, dimension, lambda i: i + count if i >= start else i)
        sheet.properties["gridProperties"][size_key] += count

    def _handle_delete_dimension(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        dimension_range = data["range"]
        sheet = self._sheet_by_id(spreadsheet, dimension_range["sheetId"])
        dimension = dimension_range["dimension"]
        size_key = _size_key(dimension)
        start = dimension_range.get("startIndex", 0)
        end = dimension_range.get("endIndex", sheet.properties["gridProperties"][size_key])
        count = end - start
        if count >= sheet.properties["gridProperties"][size_key]:
            raise APIError(
                "You can't delete all the rows or columns on the sheet.", 400
            )

        def mapper(i: int) -> int | None:
            if i < start:
                return i
            if i < end:
                return None
            return i - count

        _shift_cells(sheet, dimension, mapper)
        sheet.properties["gridProperties"][size_key] -= count

    def _handle_move_dimension(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        source = data["source"]
        sheet = self._sheet_by_id(spreadsheet, source["sheetId"])
        start, end = source["startIndex"], source["endIndex"]
        destination = data["destinationIndex"]
        _shift_cells(
            sheet, source["dimension"], lambda i: moved_index(i, start, end, destination)
        )

    def _handle_append_dimension(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        sheet = self._sheet_by_id(spreadsheet, data["sheetId"])
        sheet.properties["gridProperties"][_size_key(data["dimension"])] += data["length"]

    def _handle_insert_range(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        sheet, grid = self._resolve_grid(spreadsheet, data["range"])
        self._shift_range(sheet, grid, data["shiftDimension"], inserting=True)

    def _handle_delete_range(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        sheet, grid = self._resolve_grid(spreadsheet, data["range"])
        self._shift_range(sheet, grid, data["shiftDimension"], inserting=False)

    def _shift_range(
        self,
        sheet: MockSheet,
        grid: dict[str, int],
        shift_dimension: str,
        *,
        inserting: bool,
    ) -> None:
        """Shift cells sharing the range's span along ``shift_dimension``.

        Inserting grows the grid so no data falls off the end. Deleting keeps
        the grid size and leaves blank cells at the end.
        """
        if shift_dimension == "ROWS":
            along, across = 0, 1
            start, end = grid["startRowIndex"], grid["endRowIndex"]
            span = (grid["startColumnIndex"], grid["endColumnIndex"])
        else:
            along, across = 1, 0
            start, end = grid["startColumnIndex"], grid["endColumnIndex"]
            span = (grid["startRowIndex"], grid["endRowIndex"])
        count = end - start

        moved: CellMap = {}
        for key, cell in sheet.cells.items():
            if not span[0] <= key[across] < span[1] or key[along] < start:
                moved[key] = cell
                continue
            if inserting:
                new_along = key[along] + count
            elif key[along] < end:
                continue
            else:
                new_along = key[along] - count
            new_key = (new_along, key[1]) if along == 0 else (key[0], new_along)
            moved[new_key] = cell
        sheet.cells = moved
        if inserting:
            sheet.properties["gridProperties"][_size_key(shift_dimension)] += count

    def _handle_update_dimension_properties(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        dimension_range = data["range"]
        sheet = self._sheet_by_id(spreadsheet, dimension_range["sheetId"])
        dimension = dimension_range["dimension"]
        metadata = sheet.row_metadata if dimension == "ROWS" else sheet.column_metadata
        size = sheet.properties["gridProperties"][_size_key(dimension)]
        start = dimension_range.get("startIndex", 0)
        end = dimension_range.get("endIndex", size)
        for i in range(start, min(end, size)):
            _apply_fields(
                metadata.setdefault(i, {}), data.get("properties", {}), data["fields"]
            )

    def _handle_add_named_range(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> dict[str, Any]:
        named_range = copy.deepcopy(data["namedRange"])
        if any(n["name"] == named_range["name"] for n in spreadsheet.named_ranges):
            raise APIError(
                f"Named range with name {named_range['name']} already exists.", 400
            )
        if not named_range.get("namedRangeId"):
            self._id_counter += 1
            named_range["namedRangeId"] = f"named-range-{self._id_counter}"
        spreadsheet.named_ranges.append(named_range)
        return {"namedRange": copy.deepcopy(named_range)}

    def _handle_delete_named_range(
        self, spreadsheet: MockSpreadsheet, data: dict[str, Any]
    ) -> None:
        remaining = [
            n
            for n in spreadsheet.named_ranges
            if n["namedRangeId"] != data["namedRangeId"]
        ]
        if len(remaining) == len(spreadsheet.named_ranges):
            raise APIError(f"No named range with id {data['namedRangeId']}", 400)
        spreadsheet.named_ranges = remaining


# ============================================================================
# Cell values
# ============================================================================


def _default_spreadsheet_properties(title: str) -> dict[str, Any]:
    return {
        "title": title,
        "locale": "en_US",
        "autoRecalc": "ON_CHANGE",
        "timeZone": "Etc/GMT",
    }


def _reindex_sheets(spreadsheet: MockSpreadsheet) -> None:
    for index, sheet in enumerate(spreadsheet.sheets):
        sheet.properties["index"] = index


def _size_key(dimension: str) -> str:
    return "rowCount" if dimension == "ROWS" else "columnCount"


def _parse_entered_value(value: Any, value_input_option: str) -> dict[str, Any] | None:
    """Convert a value from the values API into an ExtendedValue."""
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, (int, float)):
        return {"numberValue": value}
    text = str(value)
    if text == "":
        return None
    if value_input_option == "RAW":
        return {"stringValue": text}
    if text.startswith("="):
        return {"formulaValue": text}
    if text.upper() in ("TRUE", "FALSE"):
        return {"boolValue": text.upper() == "TRUE"}
    if _NUMBER_RE.match(text.strip()):
        number = float(text)
        return {"numberValue": int(number) if number.is_integer() else number}
    return {"stringValue": text}


def _format_value(kind: str, value: Any) -> str:
    if kind == "boolValue":
        return "TRUE" if value else "FALSE"
    if kind == "numberValue":
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    if kind == "errorValue":
        return "#ERROR!"
    return str(value)


def _refresh_cell(cell: dict[str, Any]) -> None:
    """Recompute effective and formatted values from the entered value."""
    cell.pop("effectiveValue", None)
    cell.pop("formattedValue", None)
    entered = cell.get("userEnteredValue")
    if not entered or entered == {"stringValue": ""}:
        cell.pop("userEnteredValue", None)
    else:
        kind, value = next(iter(entered.items()))
        if kind != "formulaValue":
            cell["effectiveValue"] = {kind: value}
            cell["formattedValue"] = _format_value(kind, value)
    if cell.get("userEnteredFormat"):
        cell["effectiveFormat"] = copy.deepcopy(cell["userEnteredFormat"])
    else:
        cell.pop("userEnteredFormat", None)
        cell.pop("effectiveFormat", None)
    if cell.get("note") == "":
        del cell["note"]


def _write_cell_value(
    sheet: MockSheet,
    row_index: int,
    column_index: int,
    value: Any,
    value_input_option: str,
) -> None:
    # null means "leave this cell alone" in the values API
    if value is None:
        return
    cell = sheet.cells.setdefault((row_index, column_index), {})
    entered = _parse_entered_value(value, value_input_option)
    if entered is None:
        cell.pop("userEnteredValue", None)
    else:
        cell["userEnteredValue"] = entered
    _refresh_cell(cell)
    if not cell:
        del sheet.cells[(row_index, column_index)]


def _has_value(cell: dict[str, Any]) -> bool:
    return "userEnteredValue" in cell


def _in_grid(grid: dict[str, int], row_index: int, column_index: int) -> bool:
    return (
        grid["startRowIndex"] <= row_index < grid["endRowIndex"]
        and grid["startColumnIndex"] <= column_index < grid["endColumnIndex"]
    )


def _render_cell(cell: dict[str, Any], render: str) -> Any:
    if render == "FORMULA":
        entered = cell.get("userEnteredValue", {})
        if "formulaValue" in entered:
            return entered["formulaValue"]
        render = "UNFORMATTED_VALUE"
    if render == "UNFORMATTED_VALUE":
        effective = cell.get("effectiveValue")
        if effective:
            return next(iter(effective.values()))
        return ""
    return cell.get("formattedValue", "")


def _read_values(sheet: MockSheet, grid: dict[str, int], render: str) -> list[list[Any]]:
    """Read a block of values with trailing empty cells and rows trimmed."""
    rows: list[list[Any]] = []
    for r in range(grid["startRowIndex"], grid["endRowIndex"]):
        row: list[Any] = []
        for c in range(grid["startColumnIndex"], grid["endColumnIndex"]):
            cell = sheet.cells.get((r, c))
            row.append(_render_cell(cell, render) if cell else "")
        while row and row[-1] == "":
            row.pop()
        rows.append(row)
    while rows and not rows[-1]:
        rows.pop()
    return rows


def _qualified_range(sheet: MockSheet, grid: dict[str, int]) -> str:
    return f"{quote_sheet_title(sheet.title)}!{grid_range_to_a1(grid)}"


def _value_range(
    sheet: MockSheet, grid: dict[str, int], values: list[list[Any]]
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "range": _qualified_range(sheet, grid),
        "majorDimension": "ROWS",
    }
    if values:
        result["values"] = values
    return result


def _grid_data(sheet: MockSheet, grid: dict[str, int]) -> dict[str, Any]:
    """Build a GridData payload for one range of a sheet."""
    row_data: list[dict[str, Any]] = []
    for r in range(grid["startRowIndex"], grid["endRowIndex"]):
        values = [
            copy.deepcopy(sheet.cells.get((r, c), {}))
            for c in range(grid["startColumnIndex"], grid["endColumnIndex"])
        ]
        while values and not values[-1]:
            values.pop()
        row_data.append({"values": values} if values else {})
    while row_data and not row_data[-1]:
        row_data.pop()

    data: dict[str, Any] = {
        "rowMetadata": [
            {"pixelSize": DEFAULT_ROW_PIXEL_SIZE, **sheet.row_metadata.get(r, {})}
            for r in range(grid["startRowIndex"], grid["endRowIndex"])
        ],
        "columnMetadata": [
            {"pixelSize": DEFAULT_COLUMN_PIXEL_SIZE, **sheet.column_metadata.get(c, {})}
            for c in range(grid["startColumnIndex"], grid["endColumnIndex"])
        ],
    }
    if row_data:
        data["rowData"] = row_data
    if grid["startRowIndex"]:
        data["startRow"] = grid["startRowIndex"]
    if grid["startColumnIndex"]:
        data["startColumn"] = grid["startColumnIndex"]
    return data


def _shift_cells(
    sheet: MockSheet, dimension: str, mapper: Callable[[int], int | None]
) -> None:
    """Remap cell and metadata indexes along a dimension.

    ``mapper`` returns the new index, or None when the index is removed.
    """
    axis = 0 if dimension == "ROWS" else 1
    moved: CellMap = {}
    for key, cell in sheet.cells.items():
        new_index = mapper(key[axis])
        if new_index is None:
            continue
        moved[(new_index, key[1]) if axis == 0 else (key[0], new_index)] = cell
    sheet.cells = moved

    metadata = sheet.row_metadata if axis == 0 else sheet.column_metadata
    remapped = {}
    for index, props in metadata.items():
        new_index = mapper(index)
        if new_index is not None:
            remapped[new_index] = props
    if axis == 0:
        sheet.row_metadata = remapped
    else:
        sheet.column_metadata = remapped


def _apply_fields(target: dict[str, Any], source: dict[str, Any], fields: str) -> None:
    """Copy the masked fields from ``source`` into ``target``.

    A path missing from ``source`` is removed from ``target``, which is how
    field masks clear values. ``*`` replaces everything.
    """
    if fields.strip() == "*":
        target.clear()
        target.update(copy.deepcopy(source))
        return
    for path in (p.strip() for p in fields.split(",")):
        if not path:
            continue
        keys = path.split(".")
        src: Any = source
        for key in keys:
            src = src.get(key) if isinstance(src, dict) else None
        dst = target
        for key in keys[:-1]:
            dst = dst.setdefault(key, {})
        if src is None:
            dst.pop(keys[-1], None)
        else:
            dst[keys[-1]] = copy.deepcopy(src)
