#!/usr/bin/env python3
"""Upload a weekly sale sheet to the import API.

Flow:
1. Optionally check which products are missing from the catalog
2. Upload the sheet in chunks (one upload id, retried per chunk)
3. Print the import summary

Usage:
    cd services/api
    python -m scripts.upload_sales_csv sales.csv --week-of 2026-10-12
    python -m scripts.upload_sales_csv sales.csv --week-of 2026-10-12 --check-missing
    SALECOMPASS_API_URL=https://api.example.com python -m scripts.upload_sales_csv sales.csv
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

from salecompass.client import SalesImportClient, UploadFailedError

load_dotenv()


def _parse_week(value: str) -> datetime:
    try:
        week = datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r} (expected YYYY-MM-DD)") from e
    if week.tzinfo is None:
        week = week.replace(tzinfo=timezone.utc)
    return week


async def run(args: argparse.Namespace) -> int:
    path = Path(args.path)
    content = path.read_text(encoding="utf-8-sig")

    async with SalesImportClient(args.api_url, chunk_size=args.chunk_size) as client:
        try:
            if args.check_missing:
                missing = await client.check_missing_products(content, filename=path.name)
                print(json.dumps(missing, indent=2))
                if missing.get("missingProducts") and not args.force:
                    print(
                        f"\n{len(missing['missingProducts'])} product(s) missing from the catalog; "
                        "add them first or pass --force to import anyway."
                    )
                    return 2

            result = await client.upload_csv(content, filename=path.name, week_of=args.week_of)
        except UploadFailedError as e:
            print(f"Upload failed: {e}", file=sys.stderr)
            if e.body is not None:
                print(json.dumps(e.body, indent=2), file=sys.stderr)
            return 1

    if result.get("status") == "already-imported":
        print(f"Upload was already imported (import {result.get('importId')}); nothing new stored")
        return 0

    summary = result.get("summary", {})
    print(f"Import {result.get('importId')}: {result.get('processedItems')} sale(s) stored")
    print(
        f"  rows={summary.get('totalRows')} failed={summary.get('failedRows')} "
        f"storeNotFound={summary.get('storeNotFound')} missingProducts={summary.get('missingProducts')}"
    )
    if args.verbose:
        print(json.dumps(result, indent=2))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Upload a weekly sale sheet (CSV)")
    parser.add_argument("path", help="CSV file to upload")
    parser.add_argument(
        "--week-of",
        type=_parse_week,
        default=datetime.now(timezone.utc),
        help="Week the sales apply to (YYYY-MM-DD, default: today)",
    )
    parser.add_argument("--api-url", default=None, help="API base URL (default: SALECOMPASS_API_URL)")
    parser.add_argument("--chunk-size", type=int, default=None, help="Characters per chunk")
    parser.add_argument("--check-missing", action="store_true", help="Check for missing products first")
    parser.add_argument("--force", action="store_true", help="Import even when products are missing")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print the full response")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
