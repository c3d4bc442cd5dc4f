#!/usr/bin/env python3
"""Main entry point for the brokerledger CLI."""

import argparse
import sys


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with every subcommand registered."""
    parser = argparse.ArgumentParser(
        prog="brokerledger",
        description="brokerledger - Reconstruct portfolio history from brokerage exports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  brokerledger report tx.csv symbols.csv quotes.csv              Display the portfolio report
  brokerledger report tx.csv symbols.csv quotes.csv --debug      Show skipped rows and debug logs
  brokerledger inspect tx.csv                                    Show how a file will be decoded
  brokerledger export tx.csv symbols.csv quotes.csv -o out.xlsx  Save the report to Excel
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    # Import subcommand modules and register them
    from .report import register_subcommand as register_report
    from .inspect import register_subcommand as register_inspect
    from .export import register_subcommand as register_export
    from .version import register_subcommand as register_version

    register_report(subparsers)
    register_inspect(subparsers)
    register_export(subparsers)
    register_version(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Args:
        argv: Arguments to parse. Defaults to ``sys.argv[1:]``.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command specified, show help
    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
