"""CLI entry point for livesheet.

Usage:
    python -m livesheet info <spreadsheet_id_or_url>
    python -m livesheet rows <spreadsheet_id_or_url> <sheet_title> [--offset N] [--limit N]
    python -m livesheet cells <spreadsheet_id_or_url> <a1_range>

Credentials come from --token / --api-key or the LIVESHEET_ACCESS_TOKEN /
LIVESHEET_API_KEY environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
from collections.abc import Sequence

from livesheet.auth import AccessTokenAuth, ApiKeyAuth, Auth
from livesheet.config import Settings, get_settings
from livesheet.exceptions import LivesheetError
from livesheet.logging import configure_logging
from livesheet.spreadsheet import Spreadsheet
from livesheet.transport import GoogleSheetsTransport, Transport, TransportError
from livesheet.utils import split_sheet_prefix


def parse_spreadsheet_id(id_or_url: str) -> str:
    """Extract spreadsheet ID from a URL or return as-is if already an ID."""
    # https://docs.google.com/spreadsheets/d/SPREADSHEET_ID/edit...
    url_pattern = r"docs\.google\.com/spreadsheets/d/([a-zA-Z0-9_-]+)"
    match = re.search(url_pattern, id_or_url)
    if match:
        return match.group(1)
    return id_or_url


def resolve_auth(args: argparse.Namespace, settings: Settings) -> Auth:
    """Pick credentials from the command line, falling back to settings."""
    token = args.token or settings.access_token
    if token:
        return AccessTokenAuth(token)
    api_key = args.api_key or settings.api_key
    if api_key:
        return ApiKeyAuth(api_key)
    raise LivesheetError(
        "No credentials - pass --token or --api-key, or set "
        "LIVESHEET_ACCESS_TOKEN / LIVESHEET_API_KEY"
    )


def create_transport(auth: Auth, settings: Settings) -> Transport:
    return GoogleSheetsTransport(auth, settings=settings)


async def cmd_info(doc: Spreadsheet, args: argparse.Namespace) -> int:
    """Print the document title and its sheets."""
    await doc.load_info()
    print(f"{doc.title} ({doc.spreadsheet_id})")
    for sheet in doc.sheets_by_index:
        print(
            f"  [{sheet.index}] {sheet.title} (id {sheet.sheet_id}, "
            f"{sheet.row_count}x{sheet.column_count})"
        )
    return 0


async def cmd_rows(doc: Spreadsheet, args: argparse.Namespace) -> int:
    """Print rows of a sheet as JSON objects, one per line."""
    await doc.load_info()
    sheet = doc.sheets_by_title.get(args.sheet)
    if sheet is None:
        print(f"Error: No sheet named {args.sheet!r}", file=sys.stderr)
        return 1
    rows = await sheet.get_rows(offset=args.offset, limit=args.limit)
    for row in rows:
        print(json.dumps(row.to_dict(), ensure_ascii=False))
    return 0


async def cmd_cells(doc: Spreadsheet, args: argparse.Namespace) -> int:
    """Print formatted values of a range, tab separated."""
    await doc.load_info()
    sheet = doc.sheets_by_index[0]
    title, a1_range = split_sheet_prefix(args.range)
    if title is not None:
        sheet = doc.sheets_by_title.get(title)  # type: ignore[assignment]
        if sheet is None:
            print(f"Error: No sheet named {title!r}", file=sys.stderr)
            return 1
    for row in await sheet.get_cells_in_range(a1_range):
        print("\t".join(str(value) for value in row))
    return 0


async def run(args: argparse.Namespace, settings: Settings) -> int:
    try:
        auth = resolve_auth(args, settings)
    except LivesheetError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    transport = create_transport(auth, settings)
    doc = Spreadsheet(parse_spreadsheet_id(args.spreadsheet), auth, transport=transport)
    try:
        result: int = await args.func(doc, args)
        return result
    except (LivesheetError, TransportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await transport.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="livesheet",
        description="Read Google Sheets documents from the command line",
    )
    parser.add_argument("--token", default=None, help="OAuth2 access token")
    parser.add_argument("--api-key", default=None, help="API key (public documents)")
    parser.add_argument(
        "--json-logs", action="store_true", help="Write logs as JSON lines"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    info_parser = subparsers.add_parser("info", help="Show document info and sheets")
    info_parser.add_argument("spreadsheet", help="Spreadsheet ID or full URL")
    info_parser.set_defaults(func=cmd_info)

    rows_parser = subparsers.add_parser("rows", help="Print rows as JSON objects")
    rows_parser.add_argument("spreadsheet", help="Spreadsheet ID or full URL")
    rows_parser.add_argument("sheet", help="Sheet title")
    rows_parser.add_argument("--offset", type=int, default=0, help="Rows to skip")
    rows_parser.add_argument(
        "--limit", type=int, default=None, help="Maximum number of rows"
    )
    rows_parser.set_defaults(func=cmd_rows)

    cells_parser = subparsers.add_parser("cells", help="Print values of a range")
    cells_parser.add_argument("spreadsheet", help="Spreadsheet ID or full URL")
    cells_parser.add_argument("range", help="A1 range, optionally with sheet name")
    cells_parser.set_defaults(func=cmd_cells)

    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(
        json_output=args.json_logs or settings.log_json, log_level=settings.log_level
    )
    result: int = asyncio.run(run(args, settings))
    return result


if __name__ == "__main__":
    sys.exit(main())
