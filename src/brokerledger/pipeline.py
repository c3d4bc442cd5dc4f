"""End-to-end ledger construction from the three brokerage exports.

``load_ledger`` reads the files, ``build_ledger`` decodes and normalizes the
text and ``compute_ledger`` runs the engine on normalized records. Each layer
can be called on its own.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path

from .errors import InputKind, LedgerInputError, SkippedRow
from .ledger import Benchmark, mark_to_market, replay_transactions
from .models import (
    ZERO,
    CashAccountBalance,
    ClosedPosition,
    DailySnapshot,
    Holding,
    Quote,
    SecurityReference,
    Transaction,
)
from .normalize import (
    NormalizeResult,
    normalize_quotes,
    normalize_securities,
    normalize_transactions,
)
from .positions import (
    YTD_STATUS,
    cash_accounts,
    closed_positions,
    current_holdings,
    total_cash,
    ytd_realized_return,
)
from .tabular import DecodedTable, decode_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputDiagnostics:
    """What happened to one input file during decoding and normalization."""

    kind: InputKind
    source: str
    delimiter: str
    header_row: int
    data_rows: int
    accepted: int
    skipped: tuple[SkippedRow, ...] = ()
    degraded: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


@dataclass
class LedgerReport:
    """Everything computed from one set of exports.

    Attributes:
        snapshots: Daily snapshots in ascending date order, marked to market.
        current_holdings: Open positions, largest market value first.
        closed_positions: Positions in the order they closed.
        cash_accounts: Cash account balances in first-seen order.
        total_cash: Sum of all cash account balances.
        ytd_realized_return: Realized return of positions closed this year.
        as_of: The date used as "today" for year-to-date logic.
        diagnostics: Per-input statistics, keyed by input kind.
    """

    snapshots: list[DailySnapshot]
    current_holdings: list[Holding]
    closed_positions: list[ClosedPosition]
    cash_accounts: list[CashAccountBalance]
    total_cash: Decimal = ZERO
    ytd_realized_return: Decimal = ZERO
    as_of: date | None = None
    diagnostics: dict[InputKind, InputDiagnostics] = field(default_factory=dict)

    @property
    def latest_snapshot(self) -> DailySnapshot | None:
        """Return the most recent snapshot, or None for an empty ledger."""
        return self.snapshots[-1] if self.snapshots else None


def compute_ledger(
    transactions: Sequence[Transaction],
    quotes: Sequence[Quote],
    securities: Sequence[SecurityReference],
    benchmark: Benchmark = None,
    today: date | None = None,
    ytd_status: str = YTD_STATUS,
) -> LedgerReport:
    """
    Run the ledger engine and every aggregator on normalized records.

    Args:
        transactions: Normalized transactions, in any order.
        quotes: Valid quotes.
        securities: Symbol reference data.
        benchmark: Constant or per-date benchmark attached to snapshots.
        today: Date used for year-to-date logic. Defaults to the current date.
        ytd_status: Status literal that marks a closed position as year-to-date.

    Returns:
        A LedgerReport without diagnostics.
    """
    today = today or date.today()

    replay = replay_transactions(transactions)
    snapshots = mark_to_market(replay, quotes, benchmark)
    holdings = current_holdings(transactions, quotes, securities)
    closed = closed_positions(transactions)
    accounts = cash_accounts(transactions)

    return LedgerReport(
        snapshots=snapshots,
        current_holdings=holdings,
        closed_positions=closed,
        cash_accounts=accounts,
        total_cash=total_cash(accounts),
        ytd_realized_return=ytd_realized_return(closed, today, ytd_status),
        as_of=today,
    )


def _decode(kind: InputKind, text: str, source: str) -> DecodedTable:
    table = decode_table(text, source=source)
    if not table.has_header:
        raise LedgerInputError(kind, "no header row found", source)
    if table.is_empty:
        raise LedgerInputError(kind, "no data lines found", source)
    return table


def _diagnostics(kind: InputKind, table: DecodedTable, result: NormalizeResult) -> InputDiagnostics:
    return InputDiagnostics(
        kind=kind,
        source=table.source,
        delimiter=table.delimiter,
        header_row=table.header_row,
        data_rows=result.total_rows,
        accepted=len(result.items),
        skipped=tuple(result.skipped),
        degraded=result.degraded_rows,
    )


def build_ledger(
    transactions_text: str,
    symbols_text: str,
    quotes_text: str,
    benchmark: Benchmark = None,
    today: date | None = None,
    ytd_status: str = YTD_STATUS,
    transactions_source: str = "transactions",
    symbols_source: str = "symbols",
    quotes_source: str = "quotes",
) -> LedgerReport:
    """
    Decode, normalize and compute a ledger from the raw text of the three exports.

    Args:
        transactions_text: Contents of the transactions export.
        symbols_text: Contents of the symbols reference export.
        quotes_text: Contents of the quotes export.
        benchmark: Constant or per-date benchmark attached to snapshots.
        today: Date used for year-to-date logic and for quotes with an
            unreadable date. Defaults to the current date.
        ytd_status: Status literal that marks a closed position as year-to-date.
        transactions_source: Name of the transactions input, used in errors.
        symbols_source: Name of the symbols input, used in errors.
        quotes_source: Name of the quotes input, used in errors.

    Returns:
        A LedgerReport including per-input diagnostics.

    Raises:
        LedgerInputError: If an input has no header or no data lines, or if
            no transaction row could be used.
    """
    today = today or date.today()

    tx_table = _decode(InputKind.TRANSACTIONS, transactions_text, transactions_source)
    sym_table = _decode(InputKind.SYMBOLS, symbols_text, symbols_source)
    quote_table = _decode(InputKind.QUOTES, quotes_text, quotes_source)

    transactions = normalize_transactions(tx_table)
    if not transactions.items:
        raise LedgerInputError(
            InputKind.TRANSACTIONS,
            f"none of {transactions.total_rows} rows could be used",
            transactions_source,
        )

    securities = normalize_securities(sym_table)
    if not securities.items:
        logger.warning("No usable rows in symbols input %s", symbols_source)

    quotes = normalize_quotes(quote_table, today=lambda: today)
    if not quotes.items:
        logger.warning("No usable rows in quotes input %s", quotes_source)

    report = compute_ledger(
        transactions.items,
        quotes.items,
        securities.items,
        benchmark=benchmark,
        today=today,
        ytd_status=ytd_status,
    )
    report.diagnostics = {
        InputKind.TRANSACTIONS: _diagnostics(InputKind.TRANSACTIONS, tx_table, transactions),
        InputKind.SYMBOLS: _diagnostics(InputKind.SYMBOLS, sym_table, securities),
        InputKind.QUOTES: _diagnostics(InputKind.QUOTES, quote_table, quotes),
    }
    return report


def read_input(kind: InputKind, path: str | Path) -> str:
    """
    Read one export as UTF-8 text.

    Raises:
        LedgerInputError: If the file is missing, unreadable or not UTF-8.
    """
    path = Path(path)
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise LedgerInputError(kind, "file not found", str(path))
    except UnicodeDecodeError:
        raise LedgerInputError(kind, "file is not valid UTF-8 text", str(path))
    except OSError as e:
        raise LedgerInputError(kind, f"cannot read file: {e}", str(path))


def load_ledger(
    transactions_path: str | Path,
    symbols_path: str | Path,
    quotes_path: str | Path,
    benchmark: Benchmark = None,
    today: date | None = None,
    ytd_status: str = YTD_STATUS,
) -> LedgerReport:
    """
    Read the three exports from disk and build the ledger.

    Files are read one after the other (transactions, symbols, quotes) so a
    failure names the input that caused it.

    Args:
        transactions_path: Path to the transactions export.
        symbols_path: Path to the symbols reference export.
        quotes_path: Path to the quotes export.
        benchmark: Constant or per-date benchmark attached to snapshots.
        today: Date used for year-to-date logic. Defaults to the current date.
        ytd_status: Status literal that marks a closed position as year-to-date.

    Returns:
        A LedgerReport including per-input diagnostics.

    Raises:
        LedgerInputError: If a file cannot be read or holds no usable data.
    """
    transactions_text = read_input(InputKind.TRANSACTIONS, transactions_path)
    symbols_text = read_input(InputKind.SYMBOLS, symbols_path)
    quotes_text = read_input(InputKind.QUOTES, quotes_path)

    logger.info("Loaded inputs %s, %s, %s", transactions_path, symbols_path, quotes_path)
    return build_ledger(
        transactions_text,
        symbols_text,
        quotes_text,
        benchmark=benchmark,
        today=today,
        ytd_status=ytd_status,
        transactions_source=Path(transactions_path).name,
        symbols_source=Path(symbols_path).name,
        quotes_source=Path(quotes_path).name,
    )
