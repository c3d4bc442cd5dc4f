#!/usr/bin/env python3
"""Report subcommand - Display the reconstructed portfolio."""

from datetime import date
from decimal import Decimal, InvalidOperation

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..analytics import (
    TimeRange,
    allocation_by_sector,
    calculate_max_drawdown,
    calculate_volatility,
    calculate_win_rate,
    filter_snapshots,
    rank_performers,
    summarize_portfolio,
)
from ..config import LedgerSettings, configure_logging
from ..errors import LedgerInputError
from ..pipeline import LedgerReport, load_ledger
from ..positions import ClosedBucket, bucket_closed_positions, summarize_closed


def format_money(value: Decimal | float | None, precision: int = 2) -> str:
    """Format an amount with thousands separators, or "N/A" for None."""
    if value is None:
        return "N/A"
    return f"{float(value):,.{precision}f}"


def format_signed_pct(value: Decimal | float | None, precision: int = 2) -> str:
    """Format a percentage that is already scaled to 100, colored by sign."""
    if value is None:
        return "N/A"
    value = float(value)
    if value >= 0:
        return f"[green]+{value:.{precision}f}%[/green]"
    return f"[red]{value:.{precision}f}%[/red]"


def add_input_arguments(parser):
    """Add the arguments shared by every command that builds a ledger."""
    parser.add_argument("transactions", help="Path to the transactions export")
    parser.add_argument("symbols", help="Path to the symbols reference export")
    parser.add_argument("quotes", help="Path to the quotes export")
    parser.add_argument(
        "--benchmark",
        default=None,
        help="Benchmark return in percent (default: BROKERLEDGER_BENCHMARK_RETURN, if set)",
    )
    parser.add_argument(
        "--as-of",
        default=None,
        help="Treat this date (YYYY-MM-DD) as today for year-to-date figures",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show debug logs and the rows skipped in each input",
    )


def load_from_args(args, console: Console) -> tuple[LedgerReport, LedgerSettings, Decimal | None] | None:
    """Read settings and build the ledger for a parsed command line.

    Errors are printed to ``console``.

    Returns:
        Tuple of (report, settings, benchmark), or None on error.
    """
    try:
        settings = LedgerSettings.from_env()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None
    configure_logging(settings, debug=args.debug)

    benchmark = settings.benchmark_return
    if args.benchmark is not None:
        try:
            benchmark = Decimal(args.benchmark)
        except InvalidOperation:
            console.print(f"[red]Error: Invalid benchmark '{args.benchmark}'. Expected a number.[/red]")
            return None

    today = None
    if args.as_of:
        try:
            today = date.fromisoformat(args.as_of)
        except ValueError:
            console.print(f"[red]Error: Invalid date '{args.as_of}'. Expected YYYY-MM-DD.[/red]")
            return None

    try:
        report = load_ledger(
            args.transactions,
            args.symbols,
            args.quotes,
            benchmark=benchmark,
            today=today,
            ytd_status=settings.ytd_status,
        )
    except LedgerInputError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None

    return report, settings, benchmark


def register_subcommand(subparsers):
    """Register the report subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "report",
        help="Display the portfolio report",
        description="Display holdings, closed positions, cash accounts, allocation and performance from brokerage exports.",
    )
    add_input_arguments(parser)
    parser.add_argument(
        "--range",
        default=TimeRange.ALL.value,
        choices=[r.value for r in TimeRange],
        help="Window of snapshots used for drawdown and volatility (default: all)",
    )
    parser.set_defaults(func=run)


def print_diagnostics(console: Console, report: LedgerReport):
    """Print per-input statistics and every skipped row."""
    table = Table(title="Input Diagnostics")
    table.add_column("Input", style="cyan")
    table.add_column("Source")
    table.add_column("Rows", justify="right")
    table.add_column("Accepted", style="green", justify="right")
    table.add_column("Skipped", style="yellow", justify="right")
    table.add_column("Degraded", justify="right")
    for kind, diag in report.diagnostics.items():
        table.add_row(
            kind.value,
            diag.source,
            str(diag.data_rows),
            str(diag.accepted),
            str(diag.skipped_count),
            str(diag.degraded),
        )
    console.print(table)

    for kind, diag in report.diagnostics.items():
        for skipped in diag.skipped:
            console.print(f"[dim]{kind.value} line {skipped.row_number}: {skipped.reason}[/dim]")
    console.print()


def run(args):
    """Display the portfolio report.

    Args:
        args: Parsed argparse namespace with transactions, symbols, quotes,
            benchmark, as_of, debug and range attributes.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()
    loaded = load_from_args(args, console)
    if loaded is None:
        return 1
    report, settings, benchmark = loaded

    if args.debug:
        print_diagnostics(console, report)

    summary = summarize_portfolio(report, benchmark_return=benchmark, ytd_status=settings.ytd_status)
    as_of = report.as_of or date.today()

    console.print(f"\n[bold]Portfolio Report[/bold] - as of {as_of.isoformat()}\n")

    # ==================== Open Holdings ====================
    holdings_table = Table(title="Open Positions")
    holdings_table.add_column("Symbol", style="cyan", justify="left")
    holdings_table.add_column("Name", justify="left")
    holdings_table.add_column("Sector", justify="left")
    holdings_table.add_column("Quantity", style="magenta", justify="right")
    holdings_table.add_column("Avg Cost → Price", justify="right")
    holdings_table.add_column("Cost", style="yellow", justify="right")
    holdings_table.add_column("Market Value", style="green", justify="right")
    holdings_table.add_column("Unrealized", justify="right")
    holdings_table.add_column("Return %", justify="right")

    for holding in report.current_holdings:
        holdings_table.add_row(
            holding.symbol,
            holding.name,
            holding.sector,
            f"{holding.quantity:,.0f}",
            f"[yellow]{format_money(holding.average_cost)}[/yellow] → [green]{format_money(holding.current_price)}[/green]",
            format_money(holding.cost),
            format_money(holding.market_value),
            format_money(holding.unrealized_return),
            format_signed_pct(holding.return_pct),
        )
    console.print(holdings_table)

    # ==================== Closed Positions ====================
    buckets = bucket_closed_positions(report.closed_positions, as_of)
    closed_table = Table(title="Closed Positions")
    closed_table.add_column("Bucket", style="cyan")
    closed_table.add_column("Symbol", justify="left")
    closed_table.add_column("Closed", justify="left")
    closed_table.add_column("Cost", style="yellow", justify="right")
    closed_table.add_column("Proceeds", justify="right")
    closed_table.add_column("Realized", justify="right")
    closed_table.add_column("Return %", justify="right")

    for bucket in ClosedBucket:
        positions = buckets[bucket]
        for position in positions:
            closed_table.add_row(
                bucket.value,
                position.symbol,
                position.close_date.isoformat(),
                format_money(position.total_cost),
                format_money(position.total_proceeds),
                format_money(position.realized_return),
                format_signed_pct(position.return_pct),
            )
        if positions:
            totals = summarize_closed(positions)
            closed_table.add_row(
                f"[bold]{bucket.value} total[/bold]",
                str(totals.count),
                "",
                format_money(totals.total_cost),
                format_money(totals.total_proceeds),
                format_money(totals.total_realized),
                format_signed_pct(totals.return_pct),
                end_section=True,
            )
    console.print(closed_table)

    # ==================== Cash Accounts ====================
    cash_table = Table(title="Cash Accounts")
    cash_table.add_column("Account", style="cyan", justify="left")
    cash_table.add_column("Balance", style="yellow", justify="right")
    for account in report.cash_accounts:
        cash_table.add_row(account.account_name, format_money(account.balance))
    cash_table.add_row("[bold]Total[/bold]", f"[bold]{format_money(report.total_cash)}[/bold]")
    console.print(cash_table)

    # ==================== Allocation ====================
    allocation_table = Table(title="Allocation by Sector")
    allocation_table.add_column("Sector", style="cyan", justify="left")
    allocation_table.add_column("Value", justify="right")
    allocation_table.add_column("Weight", justify="right")
    for slice_ in allocation_by_sector(report.current_holdings, report.total_cash):
        allocation_table.add_row(slice_.name, format_money(slice_.value), f"{float(slice_.weight_pct):.1f}%")
    console.print(allocation_table)

    # ==================== Performance ====================
    win_rate = calculate_win_rate(report.closed_positions)
    window = filter_snapshots(report.snapshots, args.range, as_of)
    try:
        max_drawdown, peak_date, trough_date = calculate_max_drawdown(window)
        drawdown_str = f"{max_drawdown * 100:.2f}%"
        if trough_date is not None:
            drawdown_str += f" ({peak_date} → {trough_date})"
    except ValueError:
        drawdown_str = "N/A"
    try:
        _, annual_volatility = calculate_volatility(window)
        volatility_str = f"{annual_volatility * 100:.2f}%"
    except ValueError:
        volatility_str = "N/A"

    perf_table = Table(title=f"Performance Metrics ({args.range})")
    perf_table.add_column("Metric", style="cyan")
    perf_table.add_column("Value", justify="right")
    perf_table.add_row("Win Rate (closed)", f"{win_rate.win_rate:.1%} of {win_rate.total_positions}")
    perf_table.add_row("Average Win", format_money(win_rate.average_win))
    perf_table.add_row("Average Loss", format_money(win_rate.average_loss))
    perf_table.add_row("Max Drawdown", drawdown_str)
    perf_table.add_row("Annualized Volatility", volatility_str)
    console.print(perf_table)

    top, bottom = rank_performers(report.current_holdings, report.closed_positions)
    if top:
        performers_table = Table(title="Top and Bottom Performers")
        performers_table.add_column("Rank", justify="right")
        performers_table.add_column("Top", style="green")
        performers_table.add_column("Return", justify="right")
        performers_table.add_column("Bottom", style="red")
        performers_table.add_column("Return", justify="right")
        for rank, (best, worst) in enumerate(zip(top, bottom), start=1):
            performers_table.add_row(
                str(rank),
                f"{best.symbol} ({best.status})",
                format_money(best.return_value),
                f"{worst.symbol} ({worst.status})",
                format_money(worst.return_value),
            )
        console.print(performers_table)

    # ==================== Summary Panel ====================
    summary_lines = [
        f"Total Value: {format_money(summary.total_value)}",
        f"Cash: {format_money(summary.cash_value)} | Equity: {format_money(summary.equity_value)}",
        f"Realized: {format_money(summary.realized_return)} | Unrealized: {format_money(summary.unrealized_return)}",
        f"Total Return: {format_signed_pct(summary.total_return_pct)}",
        f"YTD Clear Return: {format_money(summary.ytd_clear_return)} ({format_signed_pct(summary.ytd_clear_return_pct)})",
        f"Cash Accounts Total: {format_money(summary.total_cash)}",
    ]
    if summary.benchmark_return is not None:
        summary_lines.append(
            f"Benchmark: {format_signed_pct(summary.benchmark_return)} | Alpha: {format_signed_pct(summary.alpha)}"
        )
    console.print(Panel("\n".join(summary_lines), title="Summary"))

    return 0
