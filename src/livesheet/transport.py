"""Transport layer for talking to the Sheets and Drive APIs.

Defines the Transport interface and its production implementation:
- GoogleSheetsTransport: Production transport using the Google Sheets API v4
  and the Drive API v3 (permissions, file deletion)

An in-memory implementation for tests lives in livesheet.mock_transport.
"""

from __future__ import annotations

import ssl
import urllib.parse
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import certifi
import httpx
from loguru import logger

from livesheet.auth import Auth, AuthMode, get_auth_mode, get_request_auth_config
from livesheet.config import Settings, get_settings

PRIVATE_SHEET_MESSAGE = (
    "Sheet is private. Use authentication or make public. An API key only "
    "grants read access to documents shared publicly."
)


class TransportError(Exception):
    """Base exception for transport errors."""


class AuthenticationError(TransportError):
    """Raised when authentication fails (401/403)."""


class NotFoundError(TransportError):
    """Raised when the spreadsheet or file is not found (404)."""


class APIError(TransportError):
    """Raised when the API returns an error."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class Transport(ABC):
    """Abstract base class for the remote spreadsheet API.

    Every method maps to one remote call and returns the decoded JSON body
    unchanged. Implementations must not retry or cache anything.
    """

    @abstractmethod
    async def get_spreadsheet(
        self,
        spreadsheet_id: str,
        *,
        include_grid_data: bool = False,
        ranges: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """Fetch spreadsheet properties and sheets.

        Args:
            spreadsheet_id: The spreadsheet identifier
            include_grid_data: Include cell data for each sheet
            ranges: A1 ranges limiting the returned grid data

        Returns:
            Spreadsheet resource
        """
        ...

    @abstractmethod
    async def get_by_data_filter(
        self,
        spreadsheet_id: str,
        data_filters: list[dict[str, Any]],
        *,
        include_grid_data: bool = True,
    ) -> dict[str, Any]:
        """Fetch the parts of a spreadsheet matching the data filters."""
        ...

    @abstractmethod
    async def batch_update(
        self,
        spreadsheet_id: str,
        requests: list[dict[str, Any]],
        *,
        include_spreadsheet_in_response: bool = True,
        response_ranges: Sequence[str] | None = None,
        response_include_grid_data: bool = False,
    ) -> dict[str, Any]:
        """Apply batchUpdate requests.

        Returns:
            Response with ``replies`` and, if requested, ``updatedSpreadsheet``
        """
        ...

    @abstractmethod
    async def get_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Read a single ValueRange."""
        ...

    @abstractmethod
    async def batch_get_values(
        self,
        spreadsheet_id: str,
        ranges: Sequence[str],
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Read several ValueRanges in one call."""
        ...

    @abstractmethod
    async def update_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
        include_values_in_response: bool = True,
    ) -> dict[str, Any]:
        """Write a block of values to a range.

        Returns:
            UpdateValuesResponse, with ``updatedData`` when requested
        """
        ...

    @abstractmethod
    async def append_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
        insert_data_option: str = "OVERWRITE",
        include_values_in_response: bool = True,
    ) -> dict[str, Any]:
        """Append rows after the table found in ``a1_range``.

        Returns:
            AppendValuesResponse, ``updates.updatedRange`` holds the written range
        """
        ...

    @abstractmethod
    async def clear_values(self, spreadsheet_id: str, a1_range: str) -> dict[str, Any]:
        """Clear values (not formatting) in a range."""
        ...

    @abstractmethod
    async def copy_sheet_to(
        self,
        spreadsheet_id: str,
        sheet_id: int,
        destination_spreadsheet_id: str,
    ) -> dict[str, Any]:
        """Copy a sheet into another spreadsheet.

        Returns:
            Properties of the newly created sheet
        """
        ...

    @abstractmethod
    async def create_spreadsheet(self, body: dict[str, Any]) -> dict[str, Any]:
        """Create a new spreadsheet and return its resource."""
        ...

    @abstractmethod
    async def export(self, export_url: str, params: dict[str, Any]) -> bytes:
        """Download an export of the spreadsheet."""
        ...

    @abstractmethod
    async def list_permissions(self, file_id: str, *, fields: str) -> dict[str, Any]:
        """List Drive permissions on a file."""
        ...

    @abstractmethod
    async def create_permission(
        self,
        file_id: str,
        body: dict[str, Any],
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a Drive permission on a file."""
        ...

    @abstractmethod
    async def delete_permission(self, file_id: str, permission_id: str) -> None:
        """Remove a Drive permission from a file."""
        ...

    @abstractmethod
    async def delete_file(self, file_id: str) -> None:
        """Delete a file through the Drive API."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...


class GoogleSheetsTransport(Transport):
    """Production transport for the Google Sheets API.

    Handles authentication, SSL, and HTTP communication. Credentials are
    resolved on every request, so header providers may refresh tokens.
    """

    def __init__(
        self,
        auth: Auth,
        *,
        settings: Settings | None = None,
        timeout: int | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            auth: Credentials, see livesheet.auth
            settings: Settings providing API endpoints and default timeout
            timeout: Request timeout in seconds, overrides settings
        """
        settings = settings or get_settings()
        self._auth = auth
        self._sheets_api_base = settings.sheets_api_base
        self._drive_api_base = settings.drive_api_base
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.timeout,
            verify=ssl_context,
            headers={"Accept": "application/json"},
        )

    def _sheets_url(self, spreadsheet_id: str, path: str = "") -> str:
        return f"{self._sheets_api_base}/{spreadsheet_id}{path}"

    def _values_url(self, spreadsheet_id: str, a1_range: str, suffix: str = "") -> str:
        encoded = urllib.parse.quote(a1_range, safe="")
        return self._sheets_url(spreadsheet_id, f"/values/{encoded}{suffix}")

    async def get_spreadsheet(
        self,
        spreadsheet_id: str,
        *,
        include_grid_data: bool = False,
        ranges: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """Fetch spreadsheet properties and sheets."""
        params: dict[str, Any] = {}
        if include_grid_data:
            params["includeGridData"] = "true"
        if ranges:
            params["ranges"] = list(ranges)
        return await self._request("GET", self._sheets_url(spreadsheet_id), params=params)

    async def get_by_data_filter(
        self,
        spreadsheet_id: str,
        data_filters: list[dict[str, Any]],
        *,
        include_grid_data: bool = True,
    ) -> dict[str, Any]:
        """Fetch cells through the getByDataFilter endpoint."""
        body = {"includeGridData": include_grid_data, "dataFilters": data_filters}
        url = self._sheets_url(spreadsheet_id, ":getByDataFilter")
        return await self._request("POST", url, json=body)

    async def batch_update(
        self,
        spreadsheet_id: str,
        requests: list[dict[str, Any]],
        *,
        include_spreadsheet_in_response: bool = True,
        response_ranges: Sequence[str] | None = None,
        response_include_grid_data: bool = False,
    ) -> dict[str, Any]:
        """Apply batchUpdate requests to the Sheets API."""
        body: dict[str, Any] = {
            "requests": requests,
            "includeSpreadsheetInResponse": include_spreadsheet_in_response,
        }
        if response_include_grid_data:
            body["responseIncludeGridData"] = True
        if response_ranges:
            body["responseRanges"] = list(response_ranges)
        url = self._sheets_url(spreadsheet_id, ":batchUpdate")
        return await self._request("POST", url, json=body)

    async def get_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Read a single range of values."""
        url = self._values_url(spreadsheet_id, a1_range)
        return await self._request("GET", url, params=params)

    async def batch_get_values(
        self,
        spreadsheet_id: str,
        ranges: Sequence[str],
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Read several ranges of values."""
        query: dict[str, Any] = {**(params or {}), "ranges": list(ranges)}
        url = self._sheets_url(spreadsheet_id, "/values:batchGet")
        return await self._request("GET", url, params=query)

    async def update_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
        include_values_in_response: bool = True,
    ) -> dict[str, Any]:
        """Write values to a range."""
        params = {
            "valueInputOption": value_input_option,
            "includeValuesInResponse": _bool_param(include_values_in_response),
        }
        body = {"range": a1_range, "majorDimension": "ROWS", "values": values}
        url = self._values_url(spreadsheet_id, a1_range)
        return await self._request("PUT", url, params=params, json=body)

    async def append_values(
        self,
        spreadsheet_id: str,
        a1_range: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
        insert_data_option: str = "OVERWRITE",
        include_values_in_response: bool = True,
    ) -> dict[str, Any]:
        """Append rows of values after a table."""
        params = {
            "valueInputOption": value_input_option,
            "insertDataOption": insert_data_option,
            "includeValuesInResponse": _bool_param(include_values_in_response),
        }
        url = self._values_url(spreadsheet_id, a1_range, ":append")
        return await self._request("POST", url, params=params, json={"values": values})

    async def clear_values(self, spreadsheet_id: str, a1_range: str) -> dict[str, Any]:
        """Clear values in a range."""
        url = self._values_url(spreadsheet_id, a1_range, ":clear")
        return await self._request("POST", url, json={})

    async def copy_sheet_to(
        self,
        spreadsheet_id: str,
        sheet_id: int,
        destination_spreadsheet_id: str,
    ) -> dict[str, Any]:
        """Copy a sheet into another spreadsheet."""
        url = self._sheets_url(spreadsheet_id, f"/sheets/{sheet_id}:copyTo")
        body = {"destinationSpreadsheetId": destination_spreadsheet_id}
        return await self._request("POST", url, json=body)

    async def create_spreadsheet(self, body: dict[str, Any]) -> dict[str, Any]:
        """Create a new spreadsheet."""
        return await self._request("POST", self._sheets_api_base, json=body)

    async def export(self, export_url: str, params: dict[str, Any]) -> bytes:
        """Download an export of the spreadsheet as raw bytes."""
        response = await self._send("GET", export_url, params=params)
        return response.content

    async def list_permissions(self, file_id: str, *, fields: str) -> dict[str, Any]:
        """List Drive permissions on a file."""
        url = f"{self._drive_api_base}/{file_id}/permissions"
        return await self._request("GET", url, params={"fields": fields})

    async def create_permission(
        self,
        file_id: str,
        body: dict[str, Any],
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a Drive permission on a file."""
        url = f"{self._drive_api_base}/{file_id}/permissions"
        return await self._request("POST", url, params=params, json=body)

    async def delete_permission(self, file_id: str, permission_id: str) -> None:
        """Remove a Drive permission from a file."""
        url = f"{self._drive_api_base}/{file_id}/permissions/{permission_id}"
        await self._request("DELETE", url)

    async def delete_file(self, file_id: str) -> None:
        """Delete a file through the Drive API."""
        await self._request("DELETE", f"{self._drive_api_base}/{file_id}")

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request and decode the JSON body."""
        response = await self._send(method, url, params=params, json=json)
        if not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an authenticated request."""
        headers, auth_params = await get_request_auth_config(self._auth)
        query = {**(params or {}), **auth_params}
        logger.debug("{} {}", method, url)
        try:
            response = await self._client.request(
                method, url, params=query, json=json, headers=headers
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e)
            raise  # unreachable, but makes type checker happy
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

    def _handle_http_error(self, e: httpx.HTTPStatusError) -> None:
        """Handle HTTP errors and raise appropriate exceptions."""
        status = e.response.status_code
        message = _google_error_message(e.response)
        logger.debug("Request failed with status {}: {}", status, message)

        if status == 401:
            raise AuthenticationError(
                message or "Invalid or expired access token"
            ) from e
        if status == 403:
            if get_auth_mode(self._auth) is AuthMode.API_KEY:
                raise AuthenticationError(PRIVATE_SHEET_MESSAGE) from e
            raise AuthenticationError(
                message or "Access denied. Check your scopes and permissions."
            ) from e
        if status == 404:
            raise NotFoundError(
                message
                or "Spreadsheet not found. Check the ID and sharing permissions."
            ) from e
        body = e.response.text
        raise APIError(
            message or f"API error ({status}): {body}", status_code=status
        ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def _google_error_message(response: httpx.Response) -> str | None:
    """Format the ``{"error": {...}}`` body Google APIs return, if present."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("error"), dict):
        return None
    error = data["error"]
    return f"Google API error - [{error.get('code')}] {error.get('message')}"


def _bool_param(value: bool) -> str:
    return "true" if value else "false"
