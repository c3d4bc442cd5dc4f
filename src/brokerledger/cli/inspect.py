"""Inspect subcommand - Show how a delimited export will be decoded."""

from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..tabular import inspect_text

_DELIMITER_NAMES = {",": "comma", ";": "semicolon", "\t": "tab"}


def register_subcommand(subparsers):
    """Register the inspect subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "inspect",
        help="Show the layout of an export file",
        description="Show the delimiter, header row and first lines of a delimited export without importing it.",
    )
    parser.add_argument("filename", help="Path to the delimited text file")
    parser.set_defaults(func=run)


def run(args):
    """Print the TableProfile of a file.

    Args:
        args: Parsed argparse namespace with a filename attribute.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()
    try:
        text = Path(args.filename).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Error: cannot read {args.filename}: {e}[/red]")
        return 1

    profile = inspect_text(text)
    if profile.total_lines == 0:
        console.print(f"[yellow]{args.filename} contains no data lines.[/yellow]")
        return 0

    console.print(f"\n[bold]{args.filename}[/bold]")
    console.print(
        f"[dim]Lines: {profile.total_lines} | "
        f"Delimiter: {_DELIMITER_NAMES.get(profile.delimiter, repr(profile.delimiter))} | "
        f"Header row: {profile.header_row + 1}[/dim]\n"
    )

    rows_table = Table(title="First Rows")
    rows_table.add_column("Row", style="cyan", justify="right")
    rows_table.add_column("Fields", justify="right")
    rows_table.add_column("Values", justify="left")
    for number, fields in ((1, profile.first_row), (2, profile.second_row)):
        if not fields:
            continue
        marker = " (header)" if number - 1 == profile.header_row else ""
        rows_table.add_row(f"{number}{marker}", str(len(fields)), " | ".join(fields))
    console.print(rows_table)

    console.print("\n[bold]Sample lines[/bold]")
    for line in profile.sample_lines:
        console.print(line, markup=False, highlight=False)

    return 0
