"""Tests for worksheets: cell cache, header row, rows and structural changes."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from livesheet.cell import Cell
from livesheet.exceptions import (
    BlankHeaderError,
    CellNotLoadedError,
    CellOutOfBoundsError,
    DuplicateHeaderError,
    EmptyBatchError,
    HeaderTooWideError,
    InvalidRangeError,
    NotLoadedError,
    SheetMismatchError,
)
from livesheet.mock_transport import MockSheetsTransport
from livesheet.spreadsheet import Spreadsheet
from livesheet.transport import APIError
from livesheet.worksheet import Worksheet


class TestWorksheetProperties:
    """Tests for sheet properties read from the server."""

    def test_basic_properties(self, people: Worksheet) -> None:
        assert people.sheet_id == 0
        assert people.title == "People"
        assert people.index == 0
        assert people.sheet_type == "GRID"
        assert people.row_count == 20
        assert people.column_count == 5
        assert people.hidden is False
        assert people.a1_sheet_name == "'People'"
        assert people.last_column_letter == "E"

    def test_grid_properties_are_read_only(self, people: Worksheet) -> None:
        grid = people.grid_properties
        with pytest.raises(TypeError):
            grid["rowCount"] = 1  # type: ignore[index]
        assert people.row_count == 20

    def test_headers_not_loaded(self, people: Worksheet) -> None:
        with pytest.raises(NotLoadedError):
            _ = people.header_values
        assert people.header_row_index == 1

    @pytest.mark.asyncio
    async def test_cell_stats(self, people: Worksheet) -> None:
        await people.load_cells()
        assert people.cell_stats == {"non_empty": 6, "loaded": 100, "total": 100}


class TestCellCache:
    """Tests for loading and looking up cached cells."""

    @pytest.mark.asyncio
    async def test_partial_load(self, people: Worksheet) -> None:
        await people.load_cells("A1:B2")
        assert people.get_cell(1, 0).value == "Alice"
        assert people.get_cell_by_a1("B1").value == "age"
        with pytest.raises(CellNotLoadedError):
            people.get_cell(2, 0)

    @pytest.mark.asyncio
    async def test_partial_load_uses_data_filter(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells(["A1:B2", {"startRowIndex": 5, "endRowIndex": 6}])
        name, kwargs = transport.calls[-1]
        assert name == "get_by_data_filter"
        assert kwargs["data_filters"] == [
            {"a1Range": "'People'!A1:B2"},
            {"gridRange": {"startRowIndex": 5, "endRowIndex": 6, "sheetId": 0}},
        ]
        assert people.get_cell(5, 4).value is None

    def test_bounds(self, people: Worksheet) -> None:
        with pytest.raises(CellOutOfBoundsError, match="Min coordinate is 0, 0"):
            people.get_cell(-1, 0)
        with pytest.raises(CellOutOfBoundsError, match="sheet is 20 by 5"):
            people.get_cell(20, 0)
        with pytest.raises(IndexError):
            people.get_cell(0, 5)

    @pytest.mark.asyncio
    async def test_reload_updates_cells_in_place(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        cell = people.get_cell(1, 0)
        await transport.update_values("doc-1", "'People'!A2", [["Alicia"]])
        await people.load_cells()
        assert people.get_cell(1, 0) is cell
        assert cell.value == "Alicia"

    @pytest.mark.asyncio
    async def test_get_cells_in_range(self, people: Worksheet) -> None:
        assert await people.get_cells_in_range("A1:B2") == [
            ["name", "age"],
            ["Alice", "30"],
        ]
        unformatted = await people.get_cells_in_range(
            "B2:B3", value_render_option="UNFORMATTED_VALUE"
        )
        assert unformatted == [[30], [25]]
        assert await people.get_cells_in_range("D10:E12") == []

    @pytest.mark.asyncio
    async def test_batch_get_cells_in_range(self, people: Worksheet) -> None:
        result = await people.batch_get_cells_in_range(["A1", "B3", "E20"])
        assert result == [[["name"]], [["25"]], []]


class TestSaveCells:
    """Tests for saving cached cells in batches."""

    @pytest.mark.asyncio
    async def test_save_updated_cells_is_one_batch(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        people.get_cell(1, 0).value = "Alicia"
        people.get_cell(2, 1).value = 26
        transport.calls.clear()

        await people.save_updated_cells()

        assert transport.call_names == ["batch_update"]
        kwargs = transport.calls[0][1]
        assert len(kwargs["requests"]) == 2
        assert kwargs["response_ranges"] == ["'People'!A2", "'People'!B3"]
        assert people.get_cell(1, 0).value == "Alicia"
        assert people.get_cell(2, 1).value == 26
        assert transport.sheet_values("doc-1", "People") == [
            ["name", "age"],
            ["Alicia", "30"],
            ["Bob", "26"],
        ]

    @pytest.mark.asyncio
    async def test_nothing_to_save(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        transport.calls.clear()
        await people.save_updated_cells()
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_empty_batch(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        transport.calls.clear()
        with pytest.raises(EmptyBatchError):
            await people.save_cells([])
        with pytest.raises(EmptyBatchError):
            await people.save_cells([people.get_cell(0, 0)])
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_cell_from_another_sheet(
        self, doc: Spreadsheet, people: Worksheet
    ) -> None:
        other = doc.sheets_by_title["Empty"]
        await other.load_cells("A1")
        cell = other.get_cell(0, 0)
        cell.value = "x"
        with pytest.raises(SheetMismatchError):
            await people.save_cells([cell])

    @pytest.mark.asyncio
    async def test_failed_save_keeps_drafts(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        alice = people.get_cell(1, 0)
        alice.value = "Alicia"
        outside = Cell(people, 50, 0)
        outside.value = "lost"

        with pytest.raises(APIError):
            await people.save_cells([alice, outside])

        assert alice._is_dirty is True
        assert outside._is_dirty is True
        assert transport.sheet_values("doc-1", "People")[1] == ["Alice", "30"]
        alice.discard_unsaved_changes()
        assert alice.value == "Alice"


class TestHeaderRow:
    """Tests for loading and setting the header row."""

    @pytest.mark.asyncio
    async def test_load_header_row(self, people: Worksheet) -> None:
        await people.load_header_row()
        assert people.header_values == ["name", "age"]

    @pytest.mark.asyncio
    async def test_blank_header_row(self, doc: Spreadsheet) -> None:
        empty = doc.sheets_by_title["Empty"]
        with pytest.raises(BlankHeaderError, match="No values in the header row"):
            await empty.load_header_row()
        with pytest.raises(BlankHeaderError):
            await empty.get_rows()

    @pytest.mark.asyncio
    async def test_duplicate_header_on_load(
        self, make_doc: Callable[..., Spreadsheet]
    ) -> None:
        doc = make_doc({"Dupes": [["id", "id"]]})
        await doc.load_info()
        with pytest.raises(DuplicateHeaderError):
            await doc.sheets_by_title["Dupes"].load_header_row()

    @pytest.mark.asyncio
    async def test_set_header_row(
        self, doc: Spreadsheet, transport: MockSheetsTransport
    ) -> None:
        empty = doc.sheets_by_title["Empty"]
        await empty.set_header_row(["id", " title "])
        assert empty.header_values == ["id", "title"]
        assert transport.sheet_values("doc-1", "Empty") == [["id", "title"]]
        name, kwargs = transport.calls[-1]
        assert name == "update_values"
        assert kwargs["a1_range"] == "'Empty'!1:1"
        assert kwargs["values"] == [["id", "title", "", "", ""]]

    @pytest.mark.asyncio
    async def test_set_header_row_replaces_wider_row(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.set_header_row(["full name"])
        assert people.header_values == ["full name"]
        assert transport.sheet_values("doc-1", "People")[0] == ["full name"]

    @pytest.mark.asyncio
    async def test_invalid_header_rows(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        transport.calls.clear()
        with pytest.raises(HeaderTooWideError):
            await people.set_header_row(["a", "b", "c", "d", "e", "f"])
        with pytest.raises(DuplicateHeaderError):
            await people.set_header_row(["a", "a"])
        with pytest.raises(BlankHeaderError):
            await people.set_header_row(["", "  "])
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_custom_header_row_index(
        self, make_doc: Callable[..., Spreadsheet]
    ) -> None:
        doc = make_doc({"Report": [["Q3 report"], [], ["key", "value"], ["a", "1"]]})
        await doc.load_info()
        sheet = doc.sheets_by_title["Report"]
        await sheet.load_header_row(3)
        assert sheet.header_row_index == 3
        rows = await sheet.get_rows()
        assert [(row.row_number, row.to_dict()) for row in rows] == [
            (4, {"key": "a", "value": "1"})
        ]


class TestGetRows:
    """Tests for fetching rows below the header row."""

    @pytest.mark.asyncio
    async def test_first_fetch_reads_headers_in_same_call(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        transport.calls.clear()
        rows = await people.get_rows()
        assert [row.to_dict() for row in rows] == [
            {"name": "Alice", "age": "30"},
            {"name": "Bob", "age": "25"},
        ]
        assert transport.call_names == ["batch_get_values"]

        transport.calls.clear()
        await people.get_rows()
        assert transport.call_names == ["get_values"]
        assert transport.calls[0][1]["a1_range"] == "'People'!A2:B20"

    @pytest.mark.asyncio
    async def test_offset_and_limit(self, people: Worksheet) -> None:
        rows = await people.get_rows(offset=1, limit=1)
        assert [row.get("name") for row in rows] == ["Bob"]
        assert rows[0].row_number == 3
        assert await people.get_rows(limit=0) == []
        assert await people.get_rows(offset=10) == []
        assert await people.get_rows(offset=50) == []

    @pytest.mark.asyncio
    async def test_values_past_headers_are_dropped(
        self, make_doc: Callable[..., Spreadsheet]
    ) -> None:
        doc = make_doc({"Notes": [["note"], ["hello", "stray"]]})
        await doc.load_info()
        (row,) = await doc.sheets_by_title["Notes"].get_rows()
        assert row.to_dict() == {"note": "hello"}

    @pytest.mark.asyncio
    async def test_end_to_end_edit(self, people: Worksheet) -> None:
        rows = await people.get_rows()
        assert rows[1].get("name") == "Bob"
        assert rows[1].get("age") == "25"
        rows[0].set("age", "31")
        await rows[0].save()
        refetched = await people.get_rows()
        assert refetched[0].get("age") == "31"


class TestAddRows:
    """Tests for appending rows."""

    @pytest.mark.asyncio
    async def test_add_rows(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        added = await people.add_rows(
            [["Carol", 41], {"name": "Dan", "age": 52}, {"name": "Eve"}]
        )
        assert [row.row_number for row in added] == [4, 5, 6]
        assert [row.to_dict() for row in added] == [
            {"name": "Carol", "age": "41"},
            {"name": "Dan", "age": "52"},
            {"name": "Eve", "age": None},
        ]
        name, kwargs = transport.calls[-1]
        assert name == "append_values"
        assert kwargs["a1_range"] == "'People'!A1"
        assert kwargs["values"][2] == ["Eve", ""]
        assert people.row_count == 20

        rows = await people.get_rows()
        assert rows[2] is added[0]

    @pytest.mark.asyncio
    async def test_add_row(self, people: Worksheet) -> None:
        row = await people.add_row({"name": "Zoe", "age": "19"})
        assert row.row_number == 4
        assert row.get("age") == "19"

    @pytest.mark.asyncio
    async def test_add_rows_grows_grid(
        self, make_doc: Callable[..., Spreadsheet]
    ) -> None:
        doc = make_doc({"Full": [["n"], ["1"], ["2"]]}, row_count=3)
        await doc.load_info()
        sheet = doc.sheets_by_title["Full"]
        (row,) = await sheet.add_rows([["3"]])
        assert row.row_number == 4
        assert sheet.row_count == 4

    @pytest.mark.asyncio
    async def test_insert_rows(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.add_rows([["Carol", "41"]], insert=True)
        assert people.row_count == 21
        assert transport.calls[-1][1]["insert_data_option"] == "INSERT_ROWS"

    @pytest.mark.asyncio
    async def test_raw_rows(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.add_rows([["=1+1", "7"]], raw=True)
        assert transport.calls[-1][1]["value_input_option"] == "RAW"
        stored = transport.cell_data("doc-1", "People", 3, 0)
        assert stored["userEnteredValue"] == {"stringValue": "=1+1"}

    @pytest.mark.asyncio
    async def test_empty_list(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        transport.calls.clear()
        assert await people.add_rows([]) == []
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_colon_in_title(self, make_doc: Callable[..., Spreadsheet]) -> None:
        doc = make_doc({"Q1: sales": [["a"]]})
        await doc.load_info()
        with pytest.raises(InvalidRangeError, match="remove the"):
            await doc.sheets_by_title["Q1: sales"].add_rows([["1"]])

    @pytest.mark.asyncio
    async def test_clear_rows(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        rows = await people.get_rows()
        await people.clear_rows()
        assert transport.sheet_values("doc-1", "People") == [["name", "age"]]
        assert rows[0].get("name") == ""
        assert transport.calls[-1][1]["a1_range"] == "'People'!2:20"


class TestStructuralChanges:
    """Tests for keeping cached objects on their data after rows/columns move."""

    @pytest.mark.asyncio
    async def test_insert_rows_shifts_cells(self, people: Worksheet) -> None:
        await people.load_cells()
        alice = people.get_cell(1, 0)
        header = people.get_cell(0, 0)

        await people.insert_dimension("ROWS", {"startIndex": 1, "endIndex": 3})

        assert people.row_count == 22
        assert alice.row_index == 3
        assert people.get_cell(3, 0) is alice
        assert people.get_cell(0, 0) is header
        with pytest.raises(CellNotLoadedError):
            people.get_cell(1, 0)

    @pytest.mark.asyncio
    async def test_insert_rows_shifts_rows(self, people: Worksheet) -> None:
        rows = await people.get_rows()
        await people.insert_dimension("ROWS", {"startIndex": 1, "endIndex": 2})
        assert [row.row_number for row in rows] == [3, 4]
        assert people.header_row_index == 1
        refetched = await people.get_rows()
        assert refetched[1] is rows[0]

    @pytest.mark.asyncio
    async def test_insert_dimension_validation(self, people: Worksheet) -> None:
        with pytest.raises(InvalidRangeError, match="inherit_from_before"):
            await people.insert_dimension(
                "ROWS", {"startIndex": 0, "endIndex": 1}, inherit_from_before=True
            )
        with pytest.raises(InvalidRangeError, match="ROWS or COLUMNS"):
            await people.insert_dimension(
                "CELLS", {"startIndex": 1, "endIndex": 2}  # type: ignore[arg-type]
            )
        with pytest.raises(InvalidRangeError, match="greater than startIndex"):
            await people.insert_dimension("ROWS", {"startIndex": 2, "endIndex": 2})
        with pytest.raises(InvalidRangeError, match="startIndex"):
            await people.insert_dimension("ROWS", {"endIndex": 2})

    @pytest.mark.asyncio
    async def test_insert_at_start_defaults_to_no_inherit(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.insert_dimension("COLUMNS", {"startIndex": 0, "endIndex": 1})
        request = transport.calls[-1][1]["requests"][0]["insertDimension"]
        assert request["inheritFromBefore"] is False
        assert people.column_count == 6

    @pytest.mark.asyncio
    async def test_delete_columns(self, people: Worksheet) -> None:
        await people.load_cells()
        name_cell = people.get_cell(1, 0)
        age_cell = people.get_cell(1, 1)

        await people.delete_columns(0, 1)

        assert name_cell.deleted is True
        assert age_cell.column_index == 0
        assert people.get_cell(1, 0) is age_cell
        assert people.column_count == 4

    @pytest.mark.asyncio
    async def test_deleting_header_row_clears_headers(self, people: Worksheet) -> None:
        rows = await people.get_rows()
        await people.delete_rows(0, 1)
        with pytest.raises(NotLoadedError):
            _ = people.header_values
        assert [row.row_number for row in rows] == [1, 2]

    @pytest.mark.asyncio
    async def test_move_rows(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        alice = people.get_cell(1, 0)
        bob = people.get_cell(2, 0)

        await people.move_dimension("ROWS", {"startIndex": 1, "endIndex": 2}, 3)

        assert people.get_cell(2, 0) is alice
        assert people.get_cell(1, 0) is bob
        assert transport.sheet_values("doc-1", "People")[1:] == [
            ["Bob", "25"],
            ["Alice", "30"],
        ]

    @pytest.mark.asyncio
    async def test_partial_insert_range_moves_only_cells(
        self, people: Worksheet
    ) -> None:
        await people.load_cells()
        rows = await people.get_rows()
        alice = people.get_cell(1, 0)
        age = people.get_cell(1, 1)

        await people.insert_range("A2:A3", "ROWS")

        assert alice.row_index == 3
        assert age.row_index == 1
        assert [row.row_number for row in rows] == [2, 3]

    @pytest.mark.asyncio
    async def test_partial_delete_range(self, people: Worksheet) -> None:
        await people.load_cells()
        alice = people.get_cell(1, 0)
        bob = people.get_cell(2, 0)

        await people.delete_range(
            {
                "startRowIndex": 1,
                "endRowIndex": 2,
                "startColumnIndex": 0,
                "endColumnIndex": 1,
            },
            "ROWS",
        )

        assert alice.deleted is True
        assert people.get_cell(1, 0) is bob

    @pytest.mark.asyncio
    async def test_append_dimension(self, people: Worksheet) -> None:
        await people.append_dimension("ROWS", 5)
        assert people.row_count == 25


class TestSheetUpdates:
    """Tests for property updates and batchUpdate wrappers."""

    @pytest.mark.asyncio
    async def test_update_properties(
        self, doc: Spreadsheet, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.update_properties(
            {"title": "Staff", "gridProperties": {"frozenRowCount": 1}}
        )
        assert people.title == "Staff"
        assert people.grid_properties["frozenRowCount"] == 1
        assert people.row_count == 20
        assert doc.sheets_by_title["Staff"] is people
        request = transport.calls[-1][1]["requests"][0]["updateSheetProperties"]
        assert set(request["fields"].split(",")) == {
            "title",
            "gridProperties.frozenRowCount",
        }

    @pytest.mark.asyncio
    async def test_resize(self, people: Worksheet) -> None:
        await people.resize({"rowCount": 10, "columnCount": 3})
        assert people.row_count == 10
        assert people.column_count == 3

    @pytest.mark.asyncio
    async def test_update_dimension_properties(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        await people.update_dimension_properties(
            "ROWS", {"pixelSize": 40}, {"startIndex": 0, "endIndex": 2}
        )
        assert people.get_row_properties(0)["pixelSize"] == 40  # type: ignore[index]
        assert people.get_row_properties(5)["pixelSize"] == 21  # type: ignore[index]
        request = transport.calls[-1][1]["requests"][0]["updateDimensionProperties"]
        assert request == {
            "range": {"sheetId": 0, "dimension": "ROWS", "startIndex": 0, "endIndex": 2},
            "properties": {"pixelSize": 40},
            "fields": "pixelSize",
        }

    @pytest.mark.asyncio
    async def test_merge_cells_request(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.merge_cells("A1:B1")
        assert transport.calls[-1][1]["requests"] == [
            {
                "mergeCells": {
                    "mergeType": "MERGE_ALL",
                    "range": {
                        "sheetId": 0,
                        "startRowIndex": 0,
                        "endRowIndex": 1,
                        "startColumnIndex": 0,
                        "endColumnIndex": 2,
                    },
                }
            }
        ]

    @pytest.mark.asyncio
    async def test_range_on_another_sheet(self, people: Worksheet) -> None:
        with pytest.raises(SheetMismatchError):
            await people.merge_cells("'Empty'!A1:B2")
        with pytest.raises(SheetMismatchError, match="Leave sheet ID blank"):
            await people.unmerge_cells({"sheetId": 99, "startRowIndex": 0})

    @pytest.mark.asyncio
    async def test_prefixed_range_on_same_sheet(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.unmerge_cells("'People'!A1:B1")
        request = transport.calls[-1][1]["requests"][0]["unmergeCells"]
        assert request["range"]["sheetId"] == 0


class TestWholeSheet:
    """Tests for duplicating, clearing, deleting and exporting a sheet."""

    @pytest.mark.asyncio
    async def test_duplicate(
        self, doc: Spreadsheet, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        backup = await people.duplicate(title="People backup")
        assert backup.title == "People backup"
        assert backup is not people
        assert doc.sheets_by_id[backup.sheet_id] is backup
        assert transport.sheet_values("doc-1", "People backup")[1] == ["Alice", "30"]

    @pytest.mark.asyncio
    async def test_copy_to_spreadsheet(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        transport.add_spreadsheet("doc-2", sheets={"Sheet1": []})
        properties = await people.copy_to_spreadsheet("doc-2")
        assert properties["title"] == "Copy of People"
        assert transport.sheet_values("doc-2", "Copy of People")[2] == ["Bob", "25"]

    @pytest.mark.asyncio
    async def test_clear(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.load_cells()
        await people.load_header_row()
        await people.clear()
        assert transport.sheet_values("doc-1", "People") == []
        with pytest.raises(CellNotLoadedError):
            people.get_cell(0, 0)
        with pytest.raises(NotLoadedError):
            _ = people.header_values
        assert people.title == "People"

    @pytest.mark.asyncio
    async def test_clear_range(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        await people.clear("B1:B3")
        assert transport.sheet_values("doc-1", "People") == [["name"], ["Alice"], ["Bob"]]

    @pytest.mark.asyncio
    async def test_delete(self, doc: Spreadsheet, people: Worksheet) -> None:
        await people.delete()
        assert 0 not in doc.sheets_by_id
        assert list(doc.sheets_by_title) == ["Empty"]

    @pytest.mark.asyncio
    async def test_download_as_csv(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        data = await people.download_as_csv()
        assert data == b"name,age\r\nAlice,30\r\nBob,25\r\n"
        name, kwargs = transport.calls[-1]
        assert name == "export"
        assert kwargs["export_url"] == "https://docs.google.com/spreadsheets/d/doc-1/export"
        assert kwargs["params"] == {"id": "doc-1", "format": "csv", "gid": 0}

    @pytest.mark.asyncio
    async def test_download_as_tsv(self, people: Worksheet) -> None:
        data = await people.download_as_tsv()
        assert data.splitlines()[1] == b"Alice\t30"
