"""
Google Sheets API types used by livesheet.

A hand-picked subset of the Sheets API v4 objects that the worksheet builds
for dimension requests. These TypedDict classes provide static type checking
for request payloads without runtime overhead.
"""

from __future__ import annotations

from typing import Literal, TypedDict

Dimension = Literal["ROWS", "COLUMNS"]


class DimensionRange(TypedDict, total=False):
    """A range along a single dimension on a sheet.

    Indexes are zero-based and half open; leaving them out means the whole
    dimension.
    """

    sheetId: int
    dimension: Dimension
    startIndex: int
    endIndex: int
