"""A row of a worksheet table, keyed by the sheet's header row."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from livesheet.exceptions import DeletedEntityError, UnknownHeaderError
from livesheet.utils import column_to_letter

if TYPE_CHECKING:
    from livesheet.worksheet import Worksheet


class Row:
    """One data row below the header row.

    Field access goes through the worksheet's current header list on every
    call, so reloading headers is reflected by rows that already exist.
    """

    def __init__(
        self, worksheet: Worksheet, row_number: int, raw_data: Sequence[Any]
    ) -> None:
        self._worksheet = worksheet
        self._row_number = row_number
        self._raw_data: list[Any] = list(raw_data)
        self._deleted = False

    def __repr__(self) -> str:
        return f"<Row {self._row_number} sheet_id={self._worksheet.sheet_id}>"

    @property
    def row_number(self) -> int:
        """1-based row number, as shown in the Sheets UI."""
        return self._row_number

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def a1_range(self) -> str:
        """The A1 range covering this row's header columns."""
        last_column = column_to_letter(max(len(self._worksheet.header_values), 1))
        return (
            f"{self._worksheet.a1_sheet_name}!"
            f"A{self._row_number}:{last_column}{self._row_number}"
        )

    def get(self, key: str) -> Any:
        """Value under header ``key``, or None for unknown keys and empty tail cells."""
        index = self._header_index(key)
        if index is None or index >= len(self._raw_data):
            return None
        return self._raw_data[index]

    def set(self, key: str, value: Any) -> None:
        """Set the value under header ``key``. Call ``save()`` to persist.

        Raises:
            UnknownHeaderError: If ``key`` is not a header of the sheet
            DeletedEntityError: If the row was deleted
        """
        self._ensure_not_deleted()
        index = self._header_index(key)
        if index is None:
            raise UnknownHeaderError(key)
        if index >= len(self._raw_data):
            self._raw_data.extend([""] * (index + 1 - len(self._raw_data)))
        self._raw_data[index] = value

    def assign(self, values: Mapping[str, Any]) -> None:
        """Set several fields at once. Nothing is changed if any key is unknown."""
        self._ensure_not_deleted()
        for key in values:
            if self._header_index(key) is None:
                raise UnknownHeaderError(key)
        for key, value in values.items():
            self.set(key, value)

    def to_dict(self) -> dict[str, Any]:
        """Header -> value mapping. Blank headers are left out."""
        return {
            header: self.get(header)
            for header in self._worksheet.header_values
            if header
        }

    async def save(self, *, raw: bool = False) -> None:
        """Write the whole row back to the sheet.

        Args:
            raw: Store values literally instead of parsing them as if typed
                into the UI (``"$5"`` stays a string, ``"=A1"`` is not a formula)
        """
        self._ensure_not_deleted()
        values = ["" if value is None else value for value in self._raw_data]
        response = await self._worksheet._transport.update_values(
            self._worksheet._spreadsheet_id,
            self.a1_range,
            [values],
            value_input_option="RAW" if raw else "USER_ENTERED",
            include_values_in_response=True,
        )
        updated = response.get("updatedData", {}).get("values") or [[]]
        self._raw_data = list(updated[0])

    async def delete(self) -> None:
        """Delete this row from the sheet, shifting the rows below it up."""
        self._ensure_not_deleted()
        await self._worksheet.delete_range(
            {"startRowIndex": self._row_number - 1, "endRowIndex": self._row_number},
            "ROWS",
        )
        self._deleted = True

    def _header_index(self, key: str) -> int | None:
        if not key:
            return None
        headers = self._worksheet.header_values
        try:
            return headers.index(key)
        except ValueError:
            return None

    def _ensure_not_deleted(self) -> None:
        if self._deleted:
            raise DeletedEntityError(
                "This row has been deleted - call get_rows again before making updates."
            )

    def _update_row_number(self, row_number: int) -> None:
        self._row_number = row_number

    def _update_raw_data(self, raw_data: Sequence[Any]) -> None:
        self._raw_data = list(raw_data)

    def _clear_row_data(self) -> None:
        self._raw_data = [""] * len(self._raw_data)

    def _mark_deleted(self) -> None:
        self._deleted = True
