"""Field normalizers turning decoded records into typed ledger records.

Each normalizer resolves its columns by alias, coerces every field to its
type and drops rows it cannot use, recording why. Rows are never zero-filled
into the ledger: a transaction without a usable date is skipped, not
defaulted to today.
"""

import logging
import re
import warnings
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Generic, TypeVar

from .dates import parse_date
from .errors import SkippedRow
from .models import (
    POSITION_KINDS,
    ZERO,
    Quote,
    SecurityReference,
    Transaction,
    TransactionKind,
)
from .tabular import DecodedTable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Rows with fewer raw fields than this (or than the header, if shorter) are skipped.
MIN_ROW_FIELDS = 3

# Aliases per field, in priority order.
TRANSACTION_COLUMNS: dict[str, tuple[str, ...]] = {
    "date": ("date",),
    "symbol": ("symbol",),
    "kind": ("type",),
    "quantity": ("qty",),
    "price": ("net price", "price"),
    "value": ("totalamnt", "value", "amount"),
    "account": ("account",),
    "status": ("status",),
    "realized": ("realized3", "realized"),
    "cash_impact": ("cash impact",),
    "qty_balance": ("qty balance",),
    "cost_balance": ("cost balance",),
}

SECURITY_COLUMNS: dict[str, tuple[str, ...]] = {
    "symbol": ("Symbol",),
    "name": ("Sh_name_eng",),
    "sector": ("Sector",),
    "group": ("Symbol Group",),
    "cash_account": ("CashAcc",),
}

QUOTE_COLUMNS: dict[str, tuple[str, ...]] = {
    "date": ("Date",),
    "close": ("Close",),
    "symbol": ("Symbol",),
    "change": ("Change",),
    "qty_held": ("Qty Held",),
}

# Checked in order; the first pattern found in the raw label decides the kind.
KIND_PATTERNS: tuple[tuple[re.Pattern[str], TransactionKind], ...] = (
    (re.compile(r"cupon", re.IGNORECASE), TransactionKind.DIVIDEND),
    (re.compile(r"shares in", re.IGNORECASE), TransactionKind.BUY),
    (re.compile(r"div collection", re.IGNORECASE), TransactionKind.WITHDRAWAL),
    (re.compile(r"deposit", re.IGNORECASE), TransactionKind.DEPOSIT),
    (re.compile(r"buy", re.IGNORECASE), TransactionKind.BUY),
    (re.compile(r"sell", re.IGNORECASE), TransactionKind.SELL),
)

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_NUMERIC_PREFIX = re.compile(r"-?(\d+\.?\d*|\.\d+)")


@dataclass
class NormalizeResult(Generic[T]):
    """Records accepted by a normalizer together with the rows it dropped."""

    items: list[T] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)
    total_rows: int = 0
    degraded_rows: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def skip(self, row_number: int, reason: str) -> None:
        self.skipped.append(SkippedRow(row_number=row_number, reason=reason))
        logger.debug("Skipping row %d: %s", row_number, reason)


def resolve_column(header: list[str], aliases: tuple[str, ...]) -> str | None:
    """
    Find the column for a field by case-insensitive alias matching.

    Aliases are tried in priority order. For each alias an exact match wins,
    otherwise the first column containing the alias is used.

    Args:
        header: Column names as decoded.
        aliases: Accepted aliases, highest priority first.

    Returns:
        The matching column name, or None if no alias matches.
    """
    lowered = [(name, name.lower()) for name in header]
    for alias in aliases:
        alias = alias.lower()
        for name, low in lowered:
            if low == alias:
                return name
        for name, low in lowered:
            if alias in low:
                return name
    return None


def resolve_columns(header: list[str], columns: dict[str, tuple[str, ...]]) -> dict[str, str]:
    """Resolve every field in ``columns``; unresolved fields are left out."""
    resolved: dict[str, str] = {}
    for name, aliases in columns.items():
        column = resolve_column(header, aliases)
        if column is not None:
            resolved[name] = column
    return resolved


def parse_numeric(text: str | None) -> Decimal:
    """
    Parse a loosely formatted number.

    Every character other than digits, ``.`` and ``-`` is removed (currency
    symbols, thousands separators, spaces) and the leading numeric prefix of
    what remains is parsed.

    Args:
        text: Raw field value.

    Returns:
        The parsed value, or zero for empty or non-numeric input.
    """
    if not text:
        return ZERO
    match = _NUMERIC_PREFIX.match(_NON_NUMERIC.sub("", text))
    if match is None:
        return ZERO
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return ZERO


def canonicalize_kind(raw_kind: str) -> TransactionKind:
    """
    Map a free-text transaction label to a TransactionKind.

    ``KIND_PATTERNS`` is checked first. A label matching none of them is
    accepted when it names a kind outright (e.g. "Withdrawal"), otherwise it
    is Other.
    """
    for pattern, kind in KIND_PATTERNS:
        if pattern.search(raw_kind):
            return kind
    label = raw_kind.strip().lower()
    for kind in TransactionKind:
        if kind.value.lower() == label:
            return kind
    return TransactionKind.OTHER


def _rows(table: DecodedTable):
    threshold = min(MIN_ROW_FIELDS, len(table.header))
    for record, line_number, field_count in zip(table.records, table.line_numbers, table.field_counts):
        yield record, line_number, field_count >= threshold


def normalize_transactions(table: DecodedTable) -> NormalizeResult[Transaction]:
    """
    Convert decoded transaction records into Transactions.

    Rows are skipped when they have too few columns, when the date cannot be
    parsed by any supported format, or when a buy/sell has no symbol.

    Args:
        table: The decoded transactions file.

    Returns:
        NormalizeResult with transactions in file order and the skipped rows.
    """
    result: NormalizeResult[Transaction] = NormalizeResult()
    columns = resolve_columns(table.header, TRANSACTION_COLUMNS)
    logger.debug("Transaction columns for %s: %s", table.source or "input", columns)

    def text(record: dict[str, str], name: str) -> str:
        column = columns.get(name)
        return record.get(column, "") if column else ""

    def optional_number(record: dict[str, str], name: str) -> Decimal | None:
        if name not in columns:
            return None
        return parse_numeric(text(record, name))

    for record, line_number, complete in _rows(table):
        result.total_rows += 1
        if not complete:
            result.skip(line_number, "insufficient columns")
            continue

        raw_date = text(record, "date")
        txn_date = parse_date(raw_date)
        if txn_date is None:
            result.skip(line_number, f"unparseable date {raw_date!r}")
            continue

        raw_kind = text(record, "kind")
        kind = canonicalize_kind(raw_kind)
        symbol = text(record, "symbol")
        if kind in POSITION_KINDS and not symbol:
            result.skip(line_number, f"{kind.value} without a symbol")
            continue

        quantity = abs(parse_numeric(text(record, "quantity")))
        price = abs(parse_numeric(text(record, "price")))
        value = parse_numeric(text(record, "value"))

        if value == 0 and quantity > 0 and price > 0:
            value = quantity * price
        if kind == TransactionKind.WITHDRAWAL and value > 0:
            value = -value

        result.items.append(Transaction(
            date=txn_date,
            symbol=symbol,
            kind=kind,
            raw_kind=raw_kind,
            quantity=quantity,
            price=price,
            value=value,
            account=text(record, "account"),
            status=text(record, "status"),
            realized_gain=optional_number(record, "realized"),
            cash_impact=optional_number(record, "cash_impact"),
            qty_balance=optional_number(record, "qty_balance"),
            cost_balance=optional_number(record, "cost_balance"),
            row_number=line_number,
        ))

    logger.info(
        "Parsed %d transactions from %s (%d skipped)",
        len(result.items), table.source or "input", result.skipped_count,
    )
    return result


def normalize_securities(table: DecodedTable) -> NormalizeResult[SecurityReference]:
    """
    Convert decoded symbol records into SecurityReference entries.

    Args:
        table: The decoded symbols file.

    Returns:
        NormalizeResult with one entry per row that has a symbol.
    """
    result: NormalizeResult[SecurityReference] = NormalizeResult()
    columns = resolve_columns(table.header, SECURITY_COLUMNS)

    for record, line_number, complete in _rows(table):
        result.total_rows += 1
        if not complete:
            result.skip(line_number, "insufficient columns")
            continue

        values = {name: record.get(column, "").strip() for name, column in columns.items()}
        symbol = values.get("symbol", "")
        if not symbol:
            result.skip(line_number, "missing symbol")
            continue

        result.items.append(SecurityReference(
            symbol=symbol,
            name=values.get("name") or symbol,
            sector=values.get("sector") or "Unknown",
            group=values.get("group") or "Stock",
            cash_account=values.get("cash_account", ""),
        ))

    logger.info(
        "Parsed %d symbols from %s (%d skipped)",
        len(result.items), table.source or "input", result.skipped_count,
    )
    return result


def normalize_quotes(
    table: DecodedTable,
    today: Callable[[], date] = date.today,
) -> NormalizeResult[Quote]:
    """
    Convert decoded quote records into Quotes.

    Quotes are supplementary, so invalid rows (no symbol, close not above
    zero) are dropped quietly. A quote whose date cannot be parsed is kept,
    stamped with ``today()`` and flagged as degraded; one warning is emitted
    per file when that happens.

    Args:
        table: The decoded quotes file.
        today: Supplies the fallback date for unparseable quote dates.

    Returns:
        NormalizeResult with valid quotes in file order.
    """
    result: NormalizeResult[Quote] = NormalizeResult()
    columns = resolve_columns(table.header, QUOTE_COLUMNS)

    def text(record: dict[str, str], name: str) -> str:
        column = columns.get(name)
        return record.get(column, "").strip() if column else ""

    for record, line_number, complete in _rows(table):
        result.total_rows += 1
        if not complete:
            result.skip(line_number, "insufficient columns")
            continue

        symbol = text(record, "symbol")
        if not symbol:
            result.skip(line_number, "missing symbol")
            continue

        close = parse_numeric(text(record, "close"))
        if close <= 0:
            result.skip(line_number, f"non-positive close for {symbol}")
            continue

        quote_date = parse_date(text(record, "date"))
        degraded = quote_date is None
        if quote_date is None:
            quote_date = today()
            result.degraded_rows += 1

        result.items.append(Quote(
            date=quote_date,
            symbol=symbol,
            close=close,
            change_pct=parse_numeric(text(record, "change")),
            qty_held=parse_numeric(text(record, "qty_held")),
            degraded=degraded,
        ))

    if result.degraded_rows:
        warnings.warn(
            f"{result.degraded_rows} quotes in '{table.source or 'input'}' had no readable date. "
            f"Assuming the current date for these quotes.",
            UserWarning
        )

    logger.info(
        "Parsed %d quotes from %s (%d skipped)",
        len(result.items), table.source or "input", result.skipped_count,
    )
    return result


def security_index(securities: list[SecurityReference]) -> dict[str, SecurityReference]:
    """Key securities by symbol. Later rows replace earlier ones."""
    return {security.symbol: security for security in securities}
