"""A single cached spreadsheet cell.

A cell keeps the last CellData the server sent plus a draft of local edits.
The two never mix: reading a field that has a pending edit raises, and the
draft is only folded into server state by the response of a successful save.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from livesheet.exceptions import (
    DeletedEntityError,
    InvalidCellValueError,
    UnsavedChangesError,
)
from livesheet.utils import column_to_letter

if TYPE_CHECKING:
    from livesheet.worksheet import Worksheet

CellValue = int | float | bool | str | None


@dataclass(frozen=True)
class CellErrorValue:
    """An error held in a cell, usually from a broken formula.

    This is a value, not an exception. Types are listed at
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/other#ErrorType
    """

    type: str
    message: str

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> CellErrorValue:
        return cls(type=raw.get("type", "ERROR"), message=raw.get("message", ""))


class _Unset:
    def __repr__(self) -> str:
        return "<unset>"


_UNSET: Any = _Unset()


@dataclass
class _CellDraft:
    """Pending local edits. ``note=None`` means the note is unchanged."""

    value: Any = _UNSET
    value_type: str | None = None
    note: str | None = None
    user_entered_format: dict[str, Any] = field(default_factory=dict)
    clear_format: bool = False


def _is_finite_number(value: int | float) -> bool:
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large for a float
        return False


def _freeze(value: Any) -> Any:
    """Read-only view of nested API data."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _format_property(key: str) -> property:
    def getter(self: Cell) -> Any:
        return self._get_format_param(key)

    def setter(self: Cell, value: Any) -> None:
        self._set_format_param(key, value)

    return property(getter, setter, doc=f"The cell's user-entered ``{key}``.")


class Cell:
    """One cell of a worksheet, addressed by zero-based indexes."""

    def __init__(
        self,
        sheet: Worksheet,
        row_index: int,
        column_index: int,
        raw_data: Mapping[str, Any] | None = None,
    ) -> None:
        self._sheet = sheet
        self._row_index = row_index
        self._column_index = column_index
        self._deleted = False
        self._raw_data: dict[str, Any] = {}
        self._draft = _CellDraft()
        self._error: CellErrorValue | None = None
        self._update_raw_data(raw_data)

    def __repr__(self) -> str:
        return f"<Cell {self.a1_address} sheet_id={self._sheet.sheet_id}>"

    # ------------------------------------------------------------------
    # Location
    # ------------------------------------------------------------------

    @property
    def row_index(self) -> int:
        return self._row_index

    @property
    def column_index(self) -> int:
        return self._column_index

    @property
    def a1_row(self) -> int:
        return self._row_index + 1

    @property
    def a1_column(self) -> str:
        return column_to_letter(self._column_index + 1)

    @property
    def a1_address(self) -> str:
        return f"{self.a1_column}{self.a1_row}"

    @property
    def deleted(self) -> bool:
        """True once the row or column holding this cell was deleted."""
        return self._deleted

    # ------------------------------------------------------------------
    # Value, formula and note
    # ------------------------------------------------------------------

    @property
    def value(self) -> CellValue | CellErrorValue:
        """The effective (computed) value last reported by the server.

        Raises:
            UnsavedChangesError: If a new value was set and not yet saved
        """
        if self._draft.value is not _UNSET:
            raise UnsavedChangesError(
                "Value has been changed - save or discard the change to read it"
            )
        if self._error is not None:
            return self._error
        effective = self._raw_data.get("effectiveValue")
        if not effective:
            return None
        return next(iter(effective.values()))

    @value.setter
    def value(self, new_value: CellValue) -> None:
        self._ensure_not_deleted()
        if isinstance(new_value, CellErrorValue):
            raise InvalidCellValueError("You can't manually set a value to an error")

        if isinstance(new_value, bool):
            value_type = "boolValue"
        elif isinstance(new_value, str):
            value_type = "formulaValue" if new_value.startswith("=") else "stringValue"
        elif isinstance(new_value, (int, float)) and _is_finite_number(new_value):
            value_type = "numberValue"
        elif new_value is None:
            value_type = "stringValue"
            new_value = ""
        else:
            raise InvalidCellValueError(
                "Set value to boolean, string, or number, "
                f"got {type(new_value).__name__} {new_value!r}"
            )
        self._draft.value_type = value_type
        self._draft.value = new_value

    @property
    def value_type(self) -> str | None:
        """Key of the effective value: numberValue, stringValue, boolValue or errorValue."""
        if self._error is not None:
            return "errorValue"
        effective = self._raw_data.get("effectiveValue")
        if not effective:
            return None
        return next(iter(effective))

    @property
    def formatted_value(self) -> str | None:
        """The value as displayed to users."""
        return self._raw_data.get("formattedValue") or None

    @property
    def formula(self) -> str | None:
        return self._raw_data.get("userEnteredValue", {}).get("formulaValue")

    @formula.setter
    def formula(self, new_formula: str) -> None:
        if not new_formula:
            raise InvalidCellValueError("To clear a formula, set `cell.value = None`")
        if not isinstance(new_formula, str) or not new_formula.startswith("="):
            raise InvalidCellValueError('formula must begin with "="')
        self.value = new_formula

    @property
    def error_value(self) -> CellErrorValue | None:
        """Error held in the cell, for example from a bad formula."""
        return self._error

    @property
    def number_value(self) -> int | float | None:
        if self.value_type != "numberValue":
            return None
        return self.value  # type: ignore[return-value]

    @number_value.setter
    def number_value(self, new_value: int | float | None) -> None:
        self.value = new_value

    @property
    def bool_value(self) -> bool | None:
        if self.value_type != "boolValue":
            return None
        return self.value  # type: ignore[return-value]

    @bool_value.setter
    def bool_value(self, new_value: bool | None) -> None:
        self.value = new_value

    @property
    def string_value(self) -> str | None:
        if self.value_type != "stringValue":
            return None
        return self.value  # type: ignore[return-value]

    @string_value.setter
    def string_value(self, new_value: str | None) -> None:
        if isinstance(new_value, str) and new_value.startswith("="):
            raise InvalidCellValueError("Use cell.formula to set formula values")
        self.value = new_value

    @property
    def hyperlink(self) -> str | None:
        """Hyperlink in the cell. Set it through a HYPERLINK formula."""
        if self._draft.value is not _UNSET:
            raise UnsavedChangesError("Save cell to be able to read hyperlink")
        return self._raw_data.get("hyperlink")

    @property
    def note(self) -> str:
        if self._draft.note is not None:
            return self._draft.note
        return self._raw_data.get("note") or ""

    @note.setter
    def note(self, new_note: str | None) -> None:
        self._ensure_not_deleted()
        if new_note is None or new_note is False:
            new_note = ""
        if not isinstance(new_note, str):
            raise InvalidCellValueError("Note must be a string")
        if new_note == self._raw_data.get("note"):
            self._draft.note = None
        else:
            self._draft.note = new_note

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    @property
    def user_entered_format(self) -> Mapping[str, Any] | None:
        raw = self._raw_data.get("userEnteredFormat")
        return _freeze(raw) if raw is not None else None

    @property
    def effective_format(self) -> Mapping[str, Any] | None:
        raw = self._raw_data.get("effectiveFormat")
        return _freeze(raw) if raw is not None else None

    def _get_format_param(self, key: str) -> Any:
        if key in self._draft.user_entered_format:
            raise UnsavedChangesError(
                "User format is unsaved - save the cell to be able to read it again"
            )
        value = self._raw_data.get("userEnteredFormat", {}).get(key)
        return _freeze(value)

    def _set_format_param(self, key: str, new_value: Any) -> None:
        self._ensure_not_deleted()
        current = self._raw_data.get("userEnteredFormat", {}).get(key)
        if new_value == current:
            self._draft.user_entered_format.pop(key, None)
        else:
            self._draft.user_entered_format[key] = copy.deepcopy(new_value)
            self._draft.clear_format = False

    number_format = _format_property("numberFormat")
    background_color = _format_property("backgroundColor")
    background_color_style = _format_property("backgroundColorStyle")
    borders = _format_property("borders")
    padding = _format_property("padding")
    horizontal_alignment = _format_property("horizontalAlignment")
    vertical_alignment = _format_property("verticalAlignment")
    wrap_strategy = _format_property("wrapStrategy")
    text_direction = _format_property("textDirection")
    text_format = _format_property("textFormat")
    hyperlink_display_type = _format_property("hyperlinkDisplayType")
    text_rotation = _format_property("textRotation")

    def clear_all_formatting(self) -> None:
        """Reset the cell's format on next save, dropping pending format edits."""
        self._ensure_not_deleted()
        self._draft.clear_format = True
        self._draft.user_entered_format = {}

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    @property
    def _is_dirty(self) -> bool:
        # an empty-string note, 0 or False are real changes
        draft = self._draft
        return (
            draft.note is not None
            or bool(draft.user_entered_format)
            or draft.clear_format
            or draft.value is not _UNSET
        )

    def discard_unsaved_changes(self) -> None:
        """Drop every pending edit without touching the server."""
        self._draft = _CellDraft()

    async def save(self) -> None:
        """Save this cell alone.

        Prefer ``sheet.save_updated_cells()`` when changing many cells.
        """
        await self._sheet.save_cells([self])

    def _get_update_request(self) -> dict[str, Any] | None:
        """Build an updateCells request for this cell, or None if clean."""
        self._ensure_not_deleted()
        draft = self._draft
        is_value_updated = draft.value is not _UNSET
        is_note_updated = draft.note is not None
        is_format_updated = bool(draft.user_entered_format)
        is_format_cleared = draft.clear_format

        if not (is_value_updated or is_note_updated or is_format_updated or is_format_cleared):
            return None

        # the whole format object must be sent or untouched fields are cleared
        cell_format = {
            **copy.deepcopy(self._raw_data.get("userEnteredFormat", {})),
            **copy.deepcopy(draft.user_entered_format),
        }
        # backgroundColorStyle wins over backgroundColor when both are present
        if draft.user_entered_format.get("backgroundColor"):
            cell_format.pop("backgroundColorStyle", None)
        elif draft.user_entered_format.get("backgroundColorStyle"):
            cell_format.pop("backgroundColor", None)

        cell_data: dict[str, Any] = {}
        fields: list[str] = []
        if is_value_updated:
            cell_data["userEnteredValue"] = {draft.value_type: draft.value}
            fields.append("userEnteredValue")
        if is_note_updated:
            cell_data["note"] = draft.note
            fields.append("note")
        if is_format_updated:
            cell_data["userEnteredFormat"] = cell_format
        if is_format_cleared:
            cell_data["userEnteredFormat"] = {}
        if is_format_updated or is_format_cleared:
            fields.append("userEnteredFormat")

        return {
            "updateCells": {
                "rows": [{"values": [cell_data]}],
                "fields": ",".join(fields),
                "start": {
                    "sheetId": self._sheet.sheet_id,
                    "rowIndex": self._row_index,
                    "columnIndex": self._column_index,
                },
            }
        }

    # ------------------------------------------------------------------
    # Cache maintenance, called by the worksheet
    # ------------------------------------------------------------------

    def _update_raw_data(self, raw_data: Mapping[str, Any] | None) -> None:
        """Replace server state with fresh CellData and drop the draft."""
        self._raw_data = copy.deepcopy(dict(raw_data)) if raw_data else {}
        self._draft = _CellDraft()
        error = self._raw_data.get("effectiveValue", {}).get("errorValue")
        self._error = CellErrorValue.from_raw(error) if error is not None else None

    def _update_position(self, row_index: int, column_index: int) -> None:
        self._row_index = row_index
        self._column_index = column_index

    def _mark_deleted(self) -> None:
        self._deleted = True

    def _ensure_not_deleted(self) -> None:
        if self._deleted:
            raise DeletedEntityError(
                f"Cell {self.a1_address} was deleted - load the cells again"
            )
