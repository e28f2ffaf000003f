#!/usr/bin/env python3
"""
Parse a bank statement export and print the per-method totals as JSON.

Only inbound rows dated at or after --after are counted (every row when
it is omitted).  Cash is totalled but never itemized.  The exit status is
1 when the file could not be parsed (the JSON still carries the error).

Usage:
    python3 scripts/parse_statement.py FILE [--after <ISO datetime>] [options]

Examples:
    # Totals since the previous shift closed
    python3 scripts/parse_statement.py statement.xlsx --after 2024-03-01T15:00

    # CSV export, pretty-printed, with a custom config
    python3 scripts/parse_statement.py export.csv --after 2024-03-01 --indent 2 \\
        --config site.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Total the inbound card and transfer payments of a statement export.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "file",
        type=Path,
        metavar="FILE",
        help="Statement export (XLSX or CSV).",
    )
    parser.add_argument(
        "--after",
        type=datetime.fromisoformat,
        default=datetime.min,
        help="Cutoff; rows dated before it are skipped (ISO 8601).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file overriding the packaged defaults.",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=None,
        help="Pretty-print the JSON with this indent.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Emit structured logs on stderr.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from cashbox_config import get_active_config
    from cashbox_ingestion.services.statement_parser import StatementParser
    from cashbox_kernel.logging_config import configure_logging

    if args.verbose:
        configure_logging(level=logging.DEBUG)

    if not args.file.is_file():
        print(f"Error: file not found: {args.file}", file=sys.stderr)
        return 2

    config = get_active_config(args.config)
    parser = StatementParser(
        max_single_amount=config.max_single_amount,
        header_scan_rows=config.header_scan_rows,
        header_scan_columns=config.header_scan_columns,
    )
    result = parser.parse(args.file.read_bytes(), args.after, filename=args.file.name)

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=args.indent))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
