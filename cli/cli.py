"""
CLI registry and dispatcher for buyer CRM commands.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from crm.core.config import settings
from crm.core.exceptions import BaseAPIException
from crm.core.logging import configure_structlog
from crm.db.session import create_tables, dispose_engine, session_scope
from crm.schemas.buyer import BuyerFilter
from crm.schemas.csv_import import ImportOutcome
from crm.services.buyer_import import import_buyers
from crm.services.buyers import list_all_buyers
from crm.services.csv_export import export_filename, generate_csv_content
from crm.services.csv_import import parse_csv_text


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stderr.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


# Status lines go to stderr so exported CSV on stdout stays clean.
def print_success(message: str):
    """Print success message with [✓] symbol."""
    print(f"{GREEN}[✓]{RESET} {message}", file=sys.stderr)


def print_error(message: str):
    """Print error message with [✗] symbol."""
    print(f"{RED}[✗]{RESET} {message}", file=sys.stderr)


def print_warning(message: str):
    """Print warning message with [!] symbol."""
    print(f"{YELLOW}[!]{RESET} {message}", file=sys.stderr)


def print_info(message: str):
    """Print info message with [i] symbol."""
    print(f"{BLUE}[i]{RESET} {message}", file=sys.stderr)


def read_csv_file(path: str) -> str:
    return Path(path).read_text(encoding="utf-8-sig")


def print_outcome(outcome: ImportOutcome) -> None:
    print_info(f"Data rows: {outcome.total_data_rows}")
    print_info(f"Valid rows: {len(outcome.valid_rows)}")
    for error in outcome.errors:
        field = f" [{error.field}]" if error.field else ""
        print_error(f"Row {error.row}{field}: {error.message}")


# Command functions
async def cmd_validate(args: argparse.Namespace) -> int:
    """Command: Validate a CSV file without writing anything."""
    outcome = parse_csv_text(read_csv_file(args.file))

    if args.json:
        print(json.dumps({
            "totalRows": outcome.total_data_rows,
            "validRows": len(outcome.valid_rows),
            "errors": [error.model_dump(by_alias=True) for error in outcome.errors],
        }, indent=2))
    else:
        print_outcome(outcome)

    if outcome.errors:
        print_warning(f"{len(outcome.errors)} validation errors")
        return 1
    print_success("All rows valid")
    return 0


async def cmd_import(args: argparse.Namespace) -> int:
    """Command: Import the valid rows of a CSV file."""
    outcome = parse_csv_text(read_csv_file(args.file))
    print_outcome(outcome)

    if settings.database_auto_create:
        await create_tables()

    try:
        async with session_scope() as session:
            report = await import_buyers(session, outcome, args.owner)
    finally:
        await dispose_engine()

    for failure in report.import_errors:
        print_error(f"Row {failure.row}: {failure.message}")
    print_success(f"Imported {len(report.imported)} of {len(outcome.valid_rows)} valid rows")
    return 0 if not report.import_errors else 1


async def cmd_export(args: argparse.Namespace) -> int:
    """Command: Export buyers matching the filters as CSV."""
    filters = BuyerFilter.model_validate({
        "search": args.search,
        "city": args.city,
        "propertyType": args.property_type,
        "status": args.status,
        "timeline": args.timeline,
    })

    try:
        async with session_scope() as session:
            buyers = await list_all_buyers(session, filters, settings.csv_export_max_rows)
    finally:
        await dispose_engine()

    content = generate_csv_content(buyer.as_row() for buyer in buyers)
    if args.output == "-":
        sys.stdout.write(content + "\n")
    else:
        Path(args.output).write_text(content, encoding="utf-8")
        print_success(f"Exported {len(buyers)} buyers to {args.output}")
    return 0


# Command registry
COMMANDS: Dict[str, Callable] = {
    'validate': cmd_validate,
    'import': cmd_import,
    'export': cmd_export,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog='buyer-crm',
        description='Buyer CRM command line tools',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # validate
    validate_parser = subparsers.add_parser('validate', help='Validate a CSV file')
    validate_parser.add_argument('file', help='Path to CSV file')
    validate_parser.add_argument('--json', action='store_true', help='Print the result as JSON')

    # import
    import_parser = subparsers.add_parser('import', help='Import buyers from a CSV file')
    import_parser.add_argument('file', help='Path to CSV file')
    import_parser.add_argument('--owner', required=True, help='Owner user id for imported buyers')

    # export
    export_parser = subparsers.add_parser('export', help='Export buyers to CSV')
    export_parser.add_argument('--output', default=export_filename(), help='Output path, "-" for stdout')
    export_parser.add_argument('--search', help='Match name, email or phone')
    export_parser.add_argument('--city')
    export_parser.add_argument('--property-type', dest='property_type')
    export_parser.add_argument('--status')
    export_parser.add_argument('--timeline')

    return parser


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    configure_structlog(stream=sys.stderr)

    try:
        return asyncio.run(command_func(parsed_args))
    except KeyboardInterrupt:
        print_error("Interrupted by user")
        return 130
    except OSError as e:
        print_error(f"Cannot read or write file: {e}")
        return 1
    except UnicodeDecodeError:
        print_error("File must be UTF-8 encoded text")
        return 1
    except PydanticValidationError as e:
        print_error(f"Invalid filters: {e.error_count()} errors")
        return 1
    except BaseAPIException as e:
        print_error(e.message)
        return 1


if __name__ == '__main__':
    sys.exit(main())
