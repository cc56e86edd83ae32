"""The spreadsheet document: the entry point of livesheet.

Every mutating call goes through batchUpdate with the updated spreadsheet
included in the response, and that response is reconciled into the local
cache. Nothing is applied locally before the server accepts it.

Usage:
    async with Spreadsheet(spreadsheet_id, AccessTokenAuth(token)) as doc:
        await doc.load_info()
        sheet = doc.sheets_by_index[0]
        rows = await sheet.get_rows()
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from types import MappingProxyType, TracebackType
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

from livesheet.auth import Auth, AuthMode, get_auth_mode
from livesheet.drive_types import PERMISSION_FIELDS, Permission, PermissionType
from livesheet.exceptions import (
    ExportError,
    InvalidRangeError,
    NotLoadedError,
    ReadOnlyAccessError,
)
from livesheet.filters import FilterInput, normalize_filters, to_a1_ranges
from livesheet.transport import GoogleSheetsTransport, Transport
from livesheet.utils import a1_range_to_grid_range, get_field_mask, split_sheet_prefix
from livesheet.worksheet import Worksheet

if TYPE_CHECKING:
    from livesheet.config import Settings

ExportFileType = Literal["html", "zip", "xlsx", "ods", "csv", "tsv", "pdf"]

# formats that export one sheet and need its id
SINGLE_SHEET_EXPORTS = frozenset({"csv", "tsv", "pdf"})
DOCUMENT_EXPORTS = frozenset({"html", "zip", "xlsx", "ods"})


class Spreadsheet:
    """A Google Sheets document and its cached sheets.

    Args:
        spreadsheet_id: Document id, as found in the document URL
        auth: Credentials, see livesheet.auth
        transport: Transport to use, defaults to GoogleSheetsTransport
        settings: Settings for the default transport
    """

    def __init__(
        self,
        spreadsheet_id: str,
        auth: Auth,
        *,
        transport: Transport | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.auth = auth
        self.auth_mode: AuthMode = get_auth_mode(auth)
        self._owns_transport = transport is None
        self._transport: Transport = transport or GoogleSheetsTransport(
            auth, settings=settings
        )
        self._raw_properties: dict[str, Any] | None = None
        self._spreadsheet_url: str | None = None
        self._sheets: dict[int, Worksheet] = {}

    def __repr__(self) -> str:
        return f"<Spreadsheet {self.spreadsheet_id}>"

    async def __aenter__(self) -> Spreadsheet:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport if this spreadsheet created it."""
        if self._owns_transport:
            await self._transport.close()

    @classmethod
    async def create_new(
        cls,
        auth: Auth,
        properties: Mapping[str, Any] | None = None,
        *,
        transport: Transport | None = None,
        settings: Settings | None = None,
    ) -> Spreadsheet:
        """Create a new spreadsheet document.

        Raises:
            ReadOnlyAccessError: If ``auth`` is an API key
        """
        if get_auth_mode(auth) is AuthMode.API_KEY:
            raise ReadOnlyAccessError(
                "Cannot use an API key to create a new spreadsheet - it only "
                "gives read access to public documents"
            )
        owns_transport = transport is None
        transport = transport or GoogleSheetsTransport(auth, settings=settings)
        body: dict[str, Any] = {}
        if properties:
            body["properties"] = dict(properties)
        response = await transport.create_spreadsheet(body)

        spreadsheet = cls(response["spreadsheetId"], auth, transport=transport)
        spreadsheet._owns_transport = owns_transport
        spreadsheet._reconcile(response)
        logger.debug("Created spreadsheet {}", spreadsheet.spreadsheet_id)
        return spreadsheet

    # ------------------------------------------------------------------
    # Requests and reconciliation
    # ------------------------------------------------------------------

    async def _make_single_update_request(
        self, request_type: str, request_params: Mapping[str, Any]
    ) -> Any:
        """Send one batchUpdate request and return its own reply.

        Returns:
            The reply for ``request_type``, or None if the request has none
        """
        response = await self._transport.batch_update(
            self.spreadsheet_id,
            [{request_type: dict(request_params)}],
            include_spreadsheet_in_response=True,
        )
        self._reconcile(response["updatedSpreadsheet"])
        replies = response.get("replies") or [{}]
        return replies[0].get(request_type)

    async def _make_batch_update_request(
        self,
        requests: list[dict[str, Any]],
        response_ranges: Sequence[str] | Literal["*"] | None = None,
    ) -> None:
        """Send several batchUpdate requests at once.

        Args:
            requests: Request objects
            response_ranges: Ranges whose grid data should come back and be
                merged into the cache, or ``"*"`` for all grid data
        """
        ranges = None if response_ranges == "*" else response_ranges
        response = await self._transport.batch_update(
            self.spreadsheet_id,
            requests,
            include_spreadsheet_in_response=True,
            response_ranges=ranges,
            response_include_grid_data=bool(response_ranges),
        )
        self._reconcile(response["updatedSpreadsheet"])

    def _reconcile(self, payload: Mapping[str, Any]) -> None:
        if "properties" in payload:
            self._raw_properties = copy.deepcopy(dict(payload["properties"]))
        if payload.get("spreadsheetUrl"):
            self._spreadsheet_url = payload["spreadsheetUrl"]
        for sheet_payload in payload.get("sheets", []):
            self._update_or_create_sheet(sheet_payload)

    def _update_or_create_sheet(self, sheet_payload: Mapping[str, Any]) -> Worksheet:
        properties = sheet_payload["properties"]
        data = sheet_payload.get("data")
        sheet_id = properties["sheetId"]
        sheet = self._sheets.get(sheet_id)
        if sheet is None:
            logger.debug("Caching new sheet {} ({})", sheet_id, properties.get("title"))
            sheet = Worksheet(self, properties, data)
            self._sheets[sheet_id] = sheet
        else:
            sheet._update_raw_data(properties, data)
        return sheet

    # ------------------------------------------------------------------
    # Info
    # ------------------------------------------------------------------

    async def load_info(self, include_cells: bool = False) -> None:
        """Load document properties and the list of sheets.

        Sheets already cached are updated in place. Sheets deleted elsewhere
        stay cached until ``reset_local_cache()``.
        """
        response = await self._transport.get_spreadsheet(
            self.spreadsheet_id, include_grid_data=include_cells
        )
        self._reconcile(response)
        logger.debug(
            "Loaded info for spreadsheet {} ({} sheets)",
            self.spreadsheet_id,
            len(response.get("sheets", [])),
        )

    def reset_local_cache(self) -> None:
        """Forget all cached properties, sheets and cells."""
        self._raw_properties = None
        self._spreadsheet_url = None
        self._sheets = {}

    def _ensure_info_loaded(self) -> None:
        if self._raw_properties is None:
            raise NotLoadedError(
                "You must call `load_info()` before accessing this property"
            )

    def _get_prop(self, key: str) -> Any:
        self._ensure_info_loaded()
        return self._raw_properties.get(key)  # type: ignore[union-attr]

    @property
    def title(self) -> str:
        return self._get_prop("title")

    @property
    def locale(self) -> str:
        return self._get_prop("locale")

    @property
    def time_zone(self) -> str:
        return self._get_prop("timeZone")

    @property
    def auto_recalc(self) -> str:
        return self._get_prop("autoRecalc")

    @property
    def default_format(self) -> Mapping[str, Any] | None:
        value = self._get_prop("defaultFormat")
        return MappingProxyType(copy.deepcopy(value)) if value else None

    @property
    def spreadsheet_theme(self) -> Mapping[str, Any] | None:
        value = self._get_prop("spreadsheetTheme")
        return MappingProxyType(copy.deepcopy(value)) if value else None

    @property
    def iterative_calculation_settings(self) -> Mapping[str, Any] | None:
        value = self._get_prop("iterativeCalculationSettings")
        return MappingProxyType(copy.deepcopy(value)) if value else None

    @property
    def spreadsheet_url(self) -> str | None:
        self._ensure_info_loaded()
        return self._spreadsheet_url

    @property
    def sheet_count(self) -> int:
        self._ensure_info_loaded()
        return len(self._sheets)

    @property
    def sheets_by_id(self) -> dict[int, Worksheet]:
        self._ensure_info_loaded()
        return dict(self._sheets)

    @property
    def sheets_by_index(self) -> list[Worksheet]:
        """Sheets in tab order."""
        self._ensure_info_loaded()
        return sorted(self._sheets.values(), key=lambda sheet: sheet.index)

    @property
    def sheets_by_title(self) -> dict[str, Worksheet]:
        self._ensure_info_loaded()
        return {sheet.title: sheet for sheet in self._sheets.values()}

    async def update_properties(self, properties: Mapping[str, Any]) -> None:
        """Update document properties such as ``title`` or ``locale``."""
        await self._make_single_update_request(
            "updateSpreadsheetProperties",
            {"properties": dict(properties), "fields": get_field_mask(properties)},
        )

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    async def add_sheet(
        self,
        properties: Mapping[str, Any] | None = None,
        *,
        header_values: Sequence[str] | None = None,
        header_row_index: int | None = None,
    ) -> Worksheet:
        """Add a sheet and optionally write its header row.

        Args:
            properties: Partial SheetProperties (title, gridProperties, ...)
            header_values: Header row to set on the new sheet
            header_row_index: 1-based row number of the header row

        Returns:
            The new worksheet
        """
        reply = await self._make_single_update_request(
            "addSheet", {"properties": dict(properties or {})}
        )
        sheet = self._sheets[reply["properties"]["sheetId"]]
        if header_values:
            await sheet.set_header_row(header_values, header_row_index)
        return sheet

    async def delete_sheet(self, sheet_id: int) -> None:
        await self._make_single_update_request("deleteSheet", {"sheetId": sheet_id})
        self._sheets.pop(sheet_id, None)

    async def add_named_range(
        self,
        name: str,
        range: str | Mapping[str, Any],
        named_range_id: str | None = None,
    ) -> dict[str, Any] | None:
        """Create a named range.

        Args:
            name: Name of the range
            range: GridRange, or A1 range such as ``'Sheet1'!A1:B2``
            named_range_id: Optional id, generated by the server if omitted

        Returns:
            AddNamedRangeResponse
        """
        grid_range = self._to_grid_range(range) if isinstance(range, str) else dict(range)
        named_range: dict[str, Any] = {"name": name, "range": grid_range}
        if named_range_id:
            named_range["namedRangeId"] = named_range_id
        return await self._make_single_update_request(
            "addNamedRange", {"namedRange": named_range}
        )

    async def delete_named_range(self, named_range_id: str) -> None:
        await self._make_single_update_request(
            "deleteNamedRange", {"namedRangeId": named_range_id}
        )

    def _to_grid_range(self, a1_range: str) -> dict[str, Any]:
        title, rest = split_sheet_prefix(a1_range)
        if title is None:
            sheet = self.sheets_by_index[0]
        else:
            sheet = self.sheets_by_title.get(title)  # type: ignore[assignment]
            if sheet is None:
                raise InvalidRangeError(f'No sheet named "{title}"')
        return {"sheetId": sheet.sheet_id, **a1_range_to_grid_range(rest)}

    # ------------------------------------------------------------------
    # Cells
    # ------------------------------------------------------------------

    async def load_cells(
        self, filters: FilterInput | Sequence[FilterInput] | None = None
    ) -> None:
        """Load cells matching the filters into their sheets' caches.

        Filters are A1 ranges (with sheet name) or GridRanges with a
        ``sheetId``. Without filters every cell of every sheet is loaded.
        API-key access only supports A1 ranges.
        """
        cell_filters = normalize_filters(filters)
        if not cell_filters:
            response = await self._transport.get_spreadsheet(
                self.spreadsheet_id, include_grid_data=True
            )
        elif self.auth_mode is AuthMode.API_KEY:
            response = await self._transport.get_spreadsheet(
                self.spreadsheet_id,
                include_grid_data=True,
                ranges=to_a1_ranges(cell_filters),
            )
        else:
            response = await self._transport.get_by_data_filter(
                self.spreadsheet_id,
                [cell_filter.to_data_filter() for cell_filter in cell_filters],
                include_grid_data=True,
            )
        self._reconcile(response)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def _download_as(
        self, file_type: ExportFileType, worksheet_id: int | None = None
    ) -> bytes:
        if file_type in SINGLE_SHEET_EXPORTS:
            if worksheet_id is None:
                raise ExportError(f"Must specify a worksheet id when exporting as {file_type}")
        elif file_type in DOCUMENT_EXPORTS:
            if worksheet_id is not None:
                raise ExportError(f"Cannot specify a worksheet id when exporting as {file_type}")
        else:
            raise ExportError(f"Unsupported export file type - {file_type}")

        # the UI calls it "html" but the endpoint wants "zip"
        if file_type == "html":
            file_type = "zip"

        if self._raw_properties is None or not self._spreadsheet_url:
            raise NotLoadedError("You must call `load_info()` before downloading")
        export_url = self._spreadsheet_url.replace("/edit", "/export")
        params: dict[str, Any] = {"id": self.spreadsheet_id, "format": file_type}
        if worksheet_id is not None:
            params["gid"] = worksheet_id
        return await self._transport.export(export_url, params)

    async def download_as_zipped_html(self) -> bytes:
        """Export every sheet as HTML, zipped."""
        return await self._download_as("html")

    async def download_as_xlsx(self) -> bytes:
        return await self._download_as("xlsx")

    async def download_as_ods(self) -> bytes:
        return await self._download_as("ods")

    # ------------------------------------------------------------------
    # Drive: deletion and sharing
    # ------------------------------------------------------------------

    async def delete(self) -> None:
        """Delete the whole document."""
        await self._transport.delete_file(self.spreadsheet_id)

    async def list_permissions(self) -> list[Permission]:
        response = await self._transport.list_permissions(
            self.spreadsheet_id, fields=PERMISSION_FIELDS
        )
        return [Permission.model_validate(p) for p in response.get("permissions", [])]

    async def set_public_access_level(self, role: str | Literal[False]) -> None:
        """Share the document with anyone who has the link, or stop sharing it.

        Args:
            role: Role granted to anyone with the link (``reader``,
                ``commenter``, ``writer``), or False to remove public access
        """
        permissions = await self.list_permissions()
        public = next(
            (p for p in permissions if p.type == PermissionType.ANYONE), None
        )
        if role is False:
            if public is None or public.id is None:
                return
            await self._transport.delete_permission(self.spreadsheet_id, public.id)
            return
        await self._transport.create_permission(
            self.spreadsheet_id,
            {"role": role or "reader", "type": PermissionType.ANYONE.value},
        )

    async def share(
        self,
        email_address_or_domain: str,
        *,
        role: str = "writer",
        is_group: bool = False,
        email_message: str | Literal[False] | None = None,
    ) -> Permission:
        """Share the document with a user, group or domain.

        Args:
            email_address_or_domain: An email address, or a domain without ``@``
            role: Role to grant; ``owner`` transfers ownership
            is_group: Treat the email address as a group
            email_message: Custom notification text, or False to not notify
        """
        body: dict[str, Any] = {"role": role}
        if "@" in email_address_or_domain:
            body["type"] = (
                PermissionType.GROUP.value if is_group else PermissionType.USER.value
            )
            body["emailAddress"] = email_address_or_domain
        else:
            body["type"] = PermissionType.DOMAIN.value
            body["domain"] = email_address_or_domain

        params: dict[str, Any] = {}
        if email_message is False:
            params["sendNotificationEmail"] = "false"
        elif isinstance(email_message, str):
            params["emailMessage"] = email_message
        if role == "owner":
            params["transferOwnership"] = "true"

        response = await self._transport.create_permission(
            self.spreadsheet_id, body, params=params or None
        )
        return Permission.model_validate(response)
