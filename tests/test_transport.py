"""Tests for GoogleSheetsTransport, using httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from livesheet.auth import AccessTokenAuth, ApiKeyAuth, Auth
from livesheet.config import Settings
from livesheet.transport import (
    PRIVATE_SHEET_MESSAGE,
    APIError,
    AuthenticationError,
    GoogleSheetsTransport,
    NotFoundError,
    TransportError,
)

Handler = Callable[[httpx.Request], httpx.Response]

SETTINGS = Settings(
    sheets_api_base="https://sheets.test/v4/spreadsheets/",
    drive_api_base="https://drive.test/drive/v3/files",
    timeout=5,
)


async def make_transport(
    handler: Handler, auth: Auth | None = None
) -> GoogleSheetsTransport:
    transport = GoogleSheetsTransport(auth or AccessTokenAuth("tok"), settings=SETTINGS)
    await transport._client.aclose()
    transport._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return transport


def google_error(status: int, message: str) -> httpx.Response:
    return httpx.Response(
        status, json={"error": {"code": status, "message": message, "status": "X"}}
    )


class TestRequests:
    """Tests for URLs, params and bodies sent to the API."""

    @pytest.mark.asyncio
    async def test_get_spreadsheet(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"spreadsheetId": "doc-1"})

        transport = await make_transport(handler)
        result = await transport.get_spreadsheet(
            "doc-1", include_grid_data=True, ranges=["A1", "'S'!B2"]
        )
        await transport.close()

        assert result == {"spreadsheetId": "doc-1"}
        request = seen[0]
        assert request.method == "GET"
        assert str(request.url).startswith("https://sheets.test/v4/spreadsheets/doc-1?")
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.url.params["includeGridData"] == "true"
        assert request.url.params.get_list("ranges") == ["A1", "'S'!B2"]

    @pytest.mark.asyncio
    async def test_api_key_is_a_query_param(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        transport = await make_transport(handler, ApiKeyAuth("my-key"))
        await transport.get_spreadsheet("doc-1")
        await transport.close()

        assert seen[0].url.params["key"] == "my-key"
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_batch_update_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"replies": [{}]})

        transport = await make_transport(handler)
        await transport.batch_update(
            "doc-1",
            [{"deleteSheet": {"sheetId": 3}}],
            response_ranges=["'S'!A1"],
            response_include_grid_data=True,
        )
        await transport.close()

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v4/spreadsheets/doc-1:batchUpdate"
        assert json.loads(request.content) == {
            "requests": [{"deleteSheet": {"sheetId": 3}}],
            "includeSpreadsheetInResponse": True,
            "responseIncludeGridData": True,
            "responseRanges": ["'S'!A1"],
        }

    @pytest.mark.asyncio
    async def test_update_values(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"updatedRange": "'People'!A2:B2"})

        transport = await make_transport(handler)
        await transport.update_values(
            "doc-1", "'People'!A2:B2", [["Ann", 3]], value_input_option="RAW"
        )
        await transport.close()

        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/v4/spreadsheets/doc-1/values/'People'!A2:B2"
        assert request.url.params["valueInputOption"] == "RAW"
        assert request.url.params["includeValuesInResponse"] == "true"
        assert json.loads(request.content)["values"] == [["Ann", 3]]

    @pytest.mark.asyncio
    async def test_append_values(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"updates": {}})

        transport = await make_transport(handler)
        await transport.append_values(
            "doc-1", "'People'!A1", [["x"]], insert_data_option="INSERT_ROWS"
        )
        await transport.close()

        request = seen[0]
        assert request.url.path == "/v4/spreadsheets/doc-1/values/'People'!A1:append"
        assert request.url.params["insertDataOption"] == "INSERT_ROWS"

    @pytest.mark.asyncio
    async def test_batch_get_values(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"valueRanges": []})

        transport = await make_transport(handler)
        await transport.batch_get_values(
            "doc-1", ["A1:B1", "A2:B9"], params={"valueRenderOption": "FORMULA"}
        )
        await transport.close()

        params = seen[0].url.params
        assert seen[0].url.path == "/v4/spreadsheets/doc-1/values:batchGet"
        assert params.get_list("ranges") == ["A1:B1", "A2:B9"]
        assert params["valueRenderOption"] == "FORMULA"

    @pytest.mark.asyncio
    async def test_drive_endpoints(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.method == "DELETE":
                return httpx.Response(204)
            return httpx.Response(200, json={"id": "p1", "role": "reader"})

        transport = await make_transport(handler)
        created = await transport.create_permission(
            "doc-1",
            {"role": "reader", "type": "anyone"},
            params={"sendNotificationEmail": "false"},
        )
        deleted = await transport.delete_permission("doc-1", "p1")
        await transport.close()

        assert created == {"id": "p1", "role": "reader"}
        assert deleted is None
        assert seen[0].url.path == "/drive/v3/files/doc-1/permissions"
        assert seen[0].url.params["sendNotificationEmail"] == "false"
        assert seen[1].url.path == "/drive/v3/files/doc-1/permissions/p1"

    @pytest.mark.asyncio
    async def test_export_returns_bytes(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["format"] == "csv"
            assert request.url.params["gid"] == "0"
            return httpx.Response(200, content=b"a,b\r\n")

        transport = await make_transport(handler)
        data = await transport.export(
            "https://docs.google.com/spreadsheets/d/doc-1/export",
            {"id": "doc-1", "format": "csv", "gid": 0},
        )
        await transport.close()
        assert data == b"a,b\r\n"

    @pytest.mark.asyncio
    async def test_header_provider_is_called_per_request(self) -> None:
        tokens = iter(["first", "second"])
        seen: list[str] = []

        async def headers() -> dict[str, str]:
            return {"Authorization": f"Bearer {next(tokens)}"}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={})

        transport = await make_transport(handler, headers)
        await transport.get_spreadsheet("doc-1")
        await transport.get_spreadsheet("doc-1")
        await transport.close()
        assert seen == ["Bearer first", "Bearer second"]


class TestErrors:
    """Tests for mapping HTTP failures to transport errors."""

    @pytest.mark.asyncio
    async def test_unauthorized(self) -> None:
        transport = await make_transport(lambda r: httpx.Response(401))
        with pytest.raises(AuthenticationError, match="Invalid or expired"):
            await transport.get_spreadsheet("doc-1")
        await transport.close()

    @pytest.mark.asyncio
    async def test_forbidden_with_token(self) -> None:
        transport = await make_transport(
            lambda r: google_error(403, "The caller does not have permission")
        )
        with pytest.raises(AuthenticationError) as exc_info:
            await transport.get_spreadsheet("doc-1")
        await transport.close()
        assert str(exc_info.value) == (
            "Google API error - [403] The caller does not have permission"
        )

    @pytest.mark.asyncio
    async def test_forbidden_with_api_key(self) -> None:
        transport = await make_transport(
            lambda r: google_error(403, "denied"), ApiKeyAuth("k")
        )
        with pytest.raises(AuthenticationError) as exc_info:
            await transport.get_spreadsheet("doc-1")
        await transport.close()
        assert str(exc_info.value) == PRIVATE_SHEET_MESSAGE

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        transport = await make_transport(lambda r: httpx.Response(404))
        with pytest.raises(NotFoundError, match="Spreadsheet not found"):
            await transport.get_spreadsheet("doc-1")
        await transport.close()

    @pytest.mark.asyncio
    async def test_bad_request(self) -> None:
        transport = await make_transport(
            lambda r: google_error(400, "Invalid requests[0].deleteSheet")
        )
        with pytest.raises(APIError) as exc_info:
            await transport.batch_update("doc-1", [{"deleteSheet": {"sheetId": 9}}])
        await transport.close()
        assert exc_info.value.status_code == 400
        assert "Invalid requests[0].deleteSheet" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error_without_json(self) -> None:
        transport = await make_transport(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(APIError, match=r"API error \(500\): boom"):
            await transport.get_values("doc-1", "A1")
        await transport.close()

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = await make_transport(handler)
        with pytest.raises(TransportError, match="Network error"):
            await transport.get_spreadsheet("doc-1")
        await transport.close()
