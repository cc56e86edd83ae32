"""
Utility functions for livesheet.

Provides A1 coordinate conversion, field masks and header validation.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Mapping
from typing import Any

from livesheet.exceptions import DuplicateHeaderError, InvalidRangeError

_CELL_RE = re.compile(r"^\$?([A-Za-z]*)\$?(\d*)$")


def column_to_letter(column: int) -> str:
    """Convert a 1-based column number to A1 notation letter(s).

    Bijective base-26, there is no zero digit.

    Examples:
        1 -> A, 26 -> Z, 27 -> AA, 52 -> AZ, 702 -> ZZ, 703 -> AAA
    """
    if column < 1:
        raise ValueError(f"Column number must be >= 1, got {column}")
    letter = ""
    col = column
    while col > 0:
        remainder = (col - 1) % 26
        letter = chr(ord("A") + remainder) + letter
        col = (col - remainder - 1) // 26
    return letter


def letter_to_column(letter: str) -> int:
    """Convert A1 notation letter(s) to a 1-based column number.

    Examples:
        A -> 1, Z -> 26, AA -> 27, AAA -> 703
    """
    if not letter or not letter.isalpha() or not letter.isascii():
        raise ValueError(f"Invalid column letters: {letter!r}")
    column = 0
    for char in letter.upper():
        column = column * 26 + (ord(char) - ord("A") + 1)
    return column


def cell_to_a1(row_index: int, column_index: int) -> str:
    """Convert zero-based row and column indices to A1 notation.

    Examples:
        (0, 0) -> A1, (9, 2) -> C10
    """
    return f"{column_to_letter(column_index + 1)}{row_index + 1}"


def a1_to_cell(a1: str) -> tuple[int, int]:
    """Convert an A1 cell address to zero-based (row_index, column_index).

    Examples:
        A1 -> (0, 0), C10 -> (9, 2)
    """
    match = re.match(r"^\$?([A-Za-z]+)\$?(\d+)$", a1)
    if not match:
        raise InvalidRangeError(f'Cell address "{a1}" not valid')
    col_letter, row_str = match.groups()
    row_number = int(row_str)
    if row_number < 1:
        raise InvalidRangeError(f'Cell address "{a1}" not valid')
    return row_number - 1, letter_to_column(col_letter) - 1


def quote_sheet_title(title: str) -> str:
    """Wrap a sheet title in single quotes for use in A1 ranges."""
    escaped = title.replace("'", "''")
    return f"'{escaped}'"


def split_sheet_prefix(a1_range: str) -> tuple[str | None, str]:
    """Split ``'My Sheet'!A1:B2`` into ``("My Sheet", "A1:B2")``.

    A range with no ``!`` is returned with a ``None`` title. A bare quoted
    title (``'My Sheet'``) is treated as a whole-sheet reference.
    """
    if a1_range.startswith("'"):
        i = 1
        chars: list[str] = []
        while i < len(a1_range):
            char = a1_range[i]
            if char == "'":
                if i + 1 < len(a1_range) and a1_range[i + 1] == "'":
                    chars.append("'")
                    i += 2
                    continue
                break
            chars.append(char)
            i += 1
        rest = a1_range[i + 1 :]
        if rest.startswith("!"):
            rest = rest[1:]
        return "".join(chars), rest
    if "!" in a1_range:
        title, rest = a1_range.split("!", 1)
        return title, rest
    return None, a1_range


def a1_range_to_grid_range(a1_range: str) -> dict[str, int]:
    """Convert an A1 range (without sheet prefix) to GridRange indexes.

    Unbounded sides are left out of the result, so ``A:B`` has no row
    indexes and ``2:4`` has no column indexes. An empty string is the
    whole sheet.
    """
    if not a1_range:
        return {}
    parts = a1_range.split(":")
    if len(parts) > 2:
        raise InvalidRangeError(f'Range "{a1_range}" not valid')

    parsed: list[tuple[int | None, int | None]] = []
    for part in parts:
        match = _CELL_RE.match(part)
        if not match or not (match.group(1) or match.group(2)):
            raise InvalidRangeError(f'Range "{a1_range}" not valid')
        letters, digits = match.groups()
        col = letter_to_column(letters) - 1 if letters else None
        row = int(digits) - 1 if digits else None
        parsed.append((row, col))

    start_row, start_col = parsed[0]
    end_row, end_col = parsed[-1]

    result: dict[str, int] = {}
    if start_row is not None:
        result["startRowIndex"] = start_row
    if end_row is not None:
        result["endRowIndex"] = end_row + 1
    if start_col is not None:
        result["startColumnIndex"] = start_col
    if end_col is not None:
        result["endColumnIndex"] = end_col + 1
    return result


def grid_range_to_a1(grid_range: Mapping[str, Any]) -> str:
    """Convert GridRange indexes to A1 notation (without sheet prefix).

    Examples:
        rows 0-10, cols 0-5 -> A1:E10
        cols 0-1 only       -> A:A
        rows 0-1 only       -> 1:1
    """
    start_row = grid_range.get("startRowIndex")
    end_row = grid_range.get("endRowIndex")
    start_col = grid_range.get("startColumnIndex")
    end_col = grid_range.get("endColumnIndex")

    if start_row is None and end_row is None:
        if start_col is None:
            return ""
        last = end_col if end_col is not None else start_col + 1
        return f"{column_to_letter(start_col + 1)}:{column_to_letter(last)}"

    if start_col is None and end_col is None:
        first = (start_row or 0) + 1
        last = end_row if end_row is not None else first
        return f"{first}:{last}"

    start = cell_to_a1(start_row or 0, start_col or 0)
    if end_row is None or end_col is None:
        return start
    end = cell_to_a1(end_row - 1, end_col - 1)
    if start == end:
        return start
    return f"{start}:{end}"


def get_field_mask(obj: Mapping[str, Any]) -> str:
    """Build the comma separated field mask for a partial properties object.

    ``gridProperties`` is expanded into its child paths, which come first.

    Examples:
        {"hidden": False, "gridProperties": {"rowCount": 5}}
            -> "gridProperties.rowCount,hidden"
    """
    from_grid: list[str] = []
    grid_properties = obj.get("gridProperties")
    if grid_properties:
        from_grid = [f"gridProperties.{key}" for key in grid_properties]
    from_root = [key for key in obj if key != "gridProperties"]
    return ",".join(from_grid + from_root)


def check_for_duplicate_headers(headers: list[str]) -> None:
    """Raise if any non-empty header appears more than once.

    Blank headers may repeat, they mark columns outside the row schema.
    """
    counts = Counter(headers)
    for header, count in counts.items():
        if not header:
            continue
        if count > 1:
            raise DuplicateHeaderError(
                f'Duplicate header detected: "{header}". '
                "Please make sure all non-empty headers are unique"
            )


def moved_index(index: int, start: int, end: int, destination: int) -> int:
    """New position of ``index`` after moving the span ``[start, end)``.

    ``destination`` is expressed in the coordinates before the move, as in
    the MoveDimensionRequest. A destination inside the span is a no-op.
    """
    count = end - start
    if start < destination <= end:
        return index
    if start <= index < end:
        target = destination if destination <= start else destination - count
        return target + (index - start)
    if destination <= index < start:
        return index + count
    if end <= index < destination:
        return index - count
    return index
