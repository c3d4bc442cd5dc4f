"""Export subcommand - Save the report to Excel or JSON."""

from pathlib import Path

from rich.console import Console

from ..export import save_report_to_excel, save_report_to_json
from .report import add_input_arguments, load_from_args

_WRITERS = {
    ".xlsx": save_report_to_excel,
    ".json": save_report_to_json,
}


def register_subcommand(subparsers):
    """Register the export subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "export",
        help="Save the portfolio report to a file",
        description="Build the portfolio report and save it as an Excel workbook (.xlsx) or JSON (.json).",
    )
    add_input_arguments(parser)
    parser.add_argument(
        "--output",
        "-o",
        required=True,
        help="Output file; the format follows the extension (.xlsx or .json)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Build the report and write it to ``args.output``.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()
    output = Path(args.output)
    writer = _WRITERS.get(output.suffix.lower())
    if writer is None:
        console.print(f"[red]Error: Unsupported output format '{output.suffix}'. Use .xlsx or .json.[/red]")
        return 1

    loaded = load_from_args(args, console)
    if loaded is None:
        return 1
    report, _, _ = loaded

    try:
        writer(report, output)
    except OSError as e:
        console.print(f"[red]Error: cannot write {output}: {e}[/red]")
        return 1

    console.print(f"[green]Saved report to {output}[/green]")
    return 0
