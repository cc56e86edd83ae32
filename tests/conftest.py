"""Shared test fixtures for livesheet.

Tests run against MockSheetsTransport, which keeps real in-memory state,
so every save can be checked by reading the mock back.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio

from livesheet.auth import AccessTokenAuth
from livesheet.mock_transport import MockSheetsTransport
from livesheet.spreadsheet import Spreadsheet
from livesheet.worksheet import Worksheet

DOC_ID = "doc-1"

PEOPLE_ROWS: list[list[Any]] = [
    ["name", "age"],
    ["Alice", "30"],
    ["Bob", "25"],
]


@pytest.fixture
def transport() -> MockSheetsTransport:
    """A mock holding one document with a small "People" table."""
    transport = MockSheetsTransport()
    transport.add_spreadsheet(
        DOC_ID,
        title="Team roster",
        sheets={"People": [list(row) for row in PEOPLE_ROWS], "Empty": []},
        row_count=20,
        column_count=5,
    )
    return transport


@pytest_asyncio.fixture
async def doc(transport: MockSheetsTransport) -> Spreadsheet:
    """A spreadsheet with its info loaded."""
    doc = Spreadsheet(DOC_ID, AccessTokenAuth("test-token"), transport=transport)
    await doc.load_info()
    return doc


@pytest.fixture
def people(doc: Spreadsheet) -> Worksheet:
    return doc.sheets_by_title["People"]


@pytest.fixture
def make_doc() -> Callable[..., Spreadsheet]:
    """Build a spreadsheet over a fresh mock seeded with the given sheets.

    The returned spreadsheet is not loaded yet.
    """

    def factory(
        sheets: dict[str, list[list[Any]]],
        *,
        row_count: int = 20,
        column_count: int = 5,
        auth: Any = None,
    ) -> Spreadsheet:
        transport = MockSheetsTransport()
        transport.add_spreadsheet(
            DOC_ID, sheets=sheets, row_count=row_count, column_count=column_count
        )
        return Spreadsheet(
            DOC_ID, auth or AccessTokenAuth("test-token"), transport=transport
        )

    return factory

