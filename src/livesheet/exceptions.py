"""Custom exceptions for livesheet.

These are local precondition and capability errors. They are raised before
any request is sent, and the local cache is left untouched when they occur.
Errors coming back from the remote API are defined in livesheet.transport.
"""

from __future__ import annotations


class LivesheetError(Exception):
    """Base exception for livesheet errors."""

    pass


class NotLoadedError(LivesheetError):
    """Raised when document or sheet info is read before it was loaded."""

    pass


class CellNotLoadedError(LivesheetError):
    """Raised when a cell coordinate has never been loaded into the cache."""

    def __init__(self, row_index: int, column_index: int) -> None:
        self.row_index = row_index
        self.column_index = column_index
        super().__init__(
            f"Cell ({row_index}, {column_index}) has not been loaded yet. "
            "Call `sheet.load_cells()` with a range covering it first."
        )


class CellOutOfBoundsError(LivesheetError, IndexError):
    """Raised when a cell coordinate falls outside the sheet grid."""

    pass


class DeletedEntityError(LivesheetError):
    """Raised when a deleted row or cell is mutated or saved."""

    pass


class UnsavedChangesError(LivesheetError):
    """Raised when reading a cell field that has an unsaved local change."""

    pass


class InvalidCellValueError(LivesheetError, TypeError):
    """Raised when a cell value, formula or note has an unsupported type."""

    pass


class HeaderError(LivesheetError):
    """Base exception for header row validation errors."""

    pass


class DuplicateHeaderError(HeaderError):
    """Raised when two non-empty headers are identical."""

    pass


class BlankHeaderError(HeaderError):
    """Raised when every header cell is blank."""

    pass


class HeaderTooWideError(HeaderError):
    """Raised when more headers are given than the sheet has columns."""

    def __init__(self, header_count: int, column_count: int) -> None:
        self.header_count = header_count
        self.column_count = column_count
        super().__init__(
            f"Sheet is not large enough to fit {header_count} columns "
            f"(it has {column_count}). Resize the sheet first."
        )


class UnknownHeaderError(LivesheetError, KeyError):
    """Raised when a row field is set using a key that is not a header."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f'Unknown header "{self.key}" - it is not in the sheet\'s header row'


class EmptyBatchError(LivesheetError):
    """Raised when a cell save would send no changes."""

    pass


class SheetMismatchError(LivesheetError):
    """Raised when a range or filter names a different sheet."""

    pass


class ReadOnlyAccessError(LivesheetError):
    """Raised when an operation needs more than API-key access."""

    pass


class InvalidAuthError(LivesheetError):
    """Raised when the credential object matches no supported shape."""

    pass


class InvalidRangeError(LivesheetError, ValueError):
    """Raised when an A1 address or a dimension range is malformed."""

    pass


class ExportError(LivesheetError):
    """Raised when an export is requested with an invalid configuration."""

    pass
