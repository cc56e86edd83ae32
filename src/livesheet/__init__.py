"""livesheet - an async Google Sheets client with a local cell and row cache.

Documents, sheets, cells and rows are plain Python objects. Edits are kept
locally until saved, and every server response is merged back into the
cached objects in place.
"""

__version__ = "0.1.0"

from loguru import logger

from livesheet.auth import AccessTokenAuth, ApiKeyAuth, AuthMode, get_auth_mode
from livesheet.cell import Cell, CellErrorValue
from livesheet.drive_types import Permission, PermissionRole, PermissionType
from livesheet.exceptions import (
    BlankHeaderError,
    CellNotLoadedError,
    CellOutOfBoundsError,
    DeletedEntityError,
    DuplicateHeaderError,
    EmptyBatchError,
    ExportError,
    HeaderError,
    HeaderTooWideError,
    InvalidAuthError,
    InvalidCellValueError,
    InvalidRangeError,
    LivesheetError,
    NotLoadedError,
    ReadOnlyAccessError,
    SheetMismatchError,
    UnknownHeaderError,
    UnsavedChangesError,
)
from livesheet.filters import A1RangeFilter, GridRangeFilter
from livesheet.row import Row
from livesheet.spreadsheet import Spreadsheet
from livesheet.transport import (
    APIError,
    AuthenticationError,
    GoogleSheetsTransport,
    NotFoundError,
    Transport,
    TransportError,
)
from livesheet.utils import column_to_letter, letter_to_column
from livesheet.worksheet import Worksheet

# silent until the application calls configure_logging()
logger.disable("livesheet")

__all__ = [
    "A1RangeFilter",
    "APIError",
    "AccessTokenAuth",
    "ApiKeyAuth",
    "AuthMode",
    "AuthenticationError",
    "BlankHeaderError",
    "Cell",
    "CellErrorValue",
    "CellNotLoadedError",
    "CellOutOfBoundsError",
    "DeletedEntityError",
    "DuplicateHeaderError",
    "EmptyBatchError",
    "ExportError",
    "GoogleSheetsTransport",
    "GridRangeFilter",
    "HeaderError",
    "HeaderTooWideError",
    "InvalidAuthError",
    "InvalidCellValueError",
    "InvalidRangeError",
    "LivesheetError",
    "NotFoundError",
    "NotLoadedError",
    "Permission",
    "PermissionRole",
    "PermissionType",
    "ReadOnlyAccessError",
    "Row",
    "SheetMismatchError",
    "Spreadsheet",
    "Transport",
    "TransportError",
    "UnknownHeaderError",
    "UnsavedChangesError",
    "Worksheet",
    "__version__",
    "column_to_letter",
    "get_auth_mode",
    "letter_to_column",
]
