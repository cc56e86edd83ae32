"""Tests for header-keyed rows."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from livesheet.exceptions import DeletedEntityError, UnknownHeaderError
from livesheet.mock_transport import MockSheetsTransport
from livesheet.spreadsheet import Spreadsheet
from livesheet.worksheet import Worksheet


class TestRowAccess:
    """Tests for reading and changing row fields locally."""

    @pytest.mark.asyncio
    async def test_get_by_header(self, people: Worksheet) -> None:
        rows = await people.get_rows()
        assert [row.row_number for row in rows] == [2, 3]
        assert rows[0].get("name") == "Alice"
        assert rows[0].get("age") == "30"
        assert rows[0].a1_range == "'People'!A2:B2"

    @pytest.mark.asyncio
    async def test_unknown_key(self, people: Worksheet) -> None:
        row = (await people.get_rows())[0]
        assert row.get("email") is None
        with pytest.raises(UnknownHeaderError):
            row.set("email", "alice@example.com")

    @pytest.mark.asyncio
    async def test_assign_is_all_or_nothing(self, people: Worksheet) -> None:
        row = (await people.get_rows())[0]
        with pytest.raises(UnknownHeaderError):
            row.assign({"name": "Alicia", "email": "x"})
        assert row.get("name") == "Alice"
        row.assign({"name": "Alicia", "age": "31"})
        assert row.to_dict() == {"name": "Alicia", "age": "31"}

    @pytest.mark.asyncio
    async def test_trimmed_trailing_cells(
        self, make_doc: Callable[..., Spreadsheet]
    ) -> None:
        doc = make_doc({"Tasks": [["task", "owner", "due"], ["Write docs"]]})
        await doc.load_info()
        sheet = doc.sheets_by_title["Tasks"]
        (row,) = await sheet.get_rows()
        assert row.to_dict() == {"task": "Write docs", "owner": None, "due": None}
        row.set("due", "Friday")
        assert row.get("owner") == ""
        assert row.get("due") == "Friday"

    @pytest.mark.asyncio
    async def test_blank_headers_are_skipped(
        self, make_doc: Callable[..., Spreadsheet]
    ) -> None:
        doc = make_doc({"Wide": [["a", "", "c"], ["1", "2", "3"]]})
        await doc.load_info()
        sheet = doc.sheets_by_title["Wide"]
        (row,) = await sheet.get_rows()
        assert row.to_dict() == {"a": "1", "c": "3"}

    @pytest.mark.asyncio
    async def test_rows_follow_new_headers(self, people: Worksheet) -> None:
        row = (await people.get_rows())[0]
        await people.set_header_row(["name", "years"])
        assert row.get("years") == "30"
        assert row.get("age") is None


class TestRowSave:
    """Tests for writing rows back."""

    @pytest.mark.asyncio
    async def test_save_and_refetch(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        rows = await people.get_rows()
        bob = rows[1]
        assert bob.get("age") == "25"
        bob.set("age", 26)
        await bob.save()
        # the server's formatted value comes back
        assert bob.get("age") == "26"
        assert transport.sheet_values("doc-1", "People")[2] == ["Bob", "26"]

        refetched = await people.get_rows()
        assert refetched[1] is bob
        assert bob.get("age") == "26"

    @pytest.mark.asyncio
    async def test_save_uses_single_range_write(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        row = (await people.get_rows())[0]
        row.set("name", "Alicia")
        await row.save()
        name, kwargs = transport.calls[-1]
        assert name == "update_values"
        assert kwargs["a1_range"] == "'People'!A2:B2"
        assert kwargs["values"] == [["Alicia", "30"]]
        assert kwargs["value_input_option"] == "USER_ENTERED"

    @pytest.mark.asyncio
    async def test_user_entered_parses_formulas(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        row = (await people.get_rows())[0]
        row.set("name", "=1+1")
        await row.save()
        stored = transport.cell_data("doc-1", "People", 1, 0)
        assert stored["userEnteredValue"] == {"formulaValue": "=1+1"}

    @pytest.mark.asyncio
    async def test_raw_keeps_text(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        row = (await people.get_rows())[0]
        row.set("name", "=1+1")
        await row.save(raw=True)
        stored = transport.cell_data("doc-1", "People", 1, 0)
        assert stored["userEnteredValue"] == {"stringValue": "=1+1"}
        assert row.get("name") == "=1+1"

    @pytest.mark.asyncio
    async def test_none_clears_cell(
        self, people: Worksheet, transport: MockSheetsTransport
    ) -> None:
        row = (await people.get_rows())[0]
        row.set("age", None)
        await row.save()
        assert transport.calls[-1][1]["values"] == [["Alice", ""]]
        assert transport.cell_data("doc-1", "People", 1, 1) == {}
        assert row.get("age") is None


class TestRowDelete:
    """Tests for deleting rows and shifting the rest."""

    @pytest.mark.asyncio
    async def test_later_rows_shift_up(
        self, make_doc: Callable[..., Spreadsheet]
    ) -> None:
        doc = make_doc(
            {"Log": [["entry"], ["r2"], ["r3"], ["r4"], ["r5"], ["r6"]]}
        )
        await doc.load_info()
        sheet = doc.sheets_by_title["Log"]
        rows = await sheet.get_rows()
        assert [row.row_number for row in rows] == [2, 3, 4, 5, 6]

        await rows[1].delete()

        assert rows[1].deleted is True
        assert [row.row_number for row in rows[2:]] == [3, 4, 5]
        assert rows[0].row_number == 2
        assert sheet.header_row_index == 1

        refetched = await sheet.get_rows()
        assert [row.get("entry") for row in refetched] == ["r2", "r4", "r5", "r6"]
        assert refetched[1] is rows[2]

    @pytest.mark.asyncio
    async def test_deleted_row_rejects_changes(self, people: Worksheet) -> None:
        row = (await people.get_rows())[0]
        await row.delete()
        with pytest.raises(DeletedEntityError, match="call get_rows again"):
            row.set("name", "x")
        with pytest.raises(DeletedEntityError):
            await row.save()
        with pytest.raises(DeletedEntityError):
            await row.delete()
