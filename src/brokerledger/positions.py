"""Position and cash aggregators.

Each aggregator rebuilds its own state from the transaction list, so they can
be called in any order and never see each other's intermediate results.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from .ledger import buy_holding, sell_holding, sort_transactions
from .models import (
    ZERO,
    CashAccountBalance,
    ClosedPosition,
    Holding,
    HoldingState,
    Quote,
    SecurityReference,
    Transaction,
    TransactionKind,
)
from .normalize import security_index

logger = logging.getLogger(__name__)

YTD_STATUS = "YTD Clear"
PYD_STATUS = "PYD Clear"
RE_STATUS = "Cleared-RE"


class ClosedBucket(Enum):
    """Reporting buckets for closed positions."""

    YTD = YTD_STATUS
    PYD = PYD_STATUS
    RE = RE_STATUS


@dataclass(frozen=True)
class ClosedSummary:
    """Totals over a group of closed positions."""

    count: int
    total_cost: Decimal
    total_proceeds: Decimal
    total_realized: Decimal
    return_pct: Decimal


def _return_pct(gain: Decimal, cost: Decimal) -> Decimal:
    if cost == 0:
        return ZERO
    return gain / cost * 100


def latest_quotes(quotes: Iterable[Quote]) -> dict[str, Quote]:
    """Return the most recent quote per symbol. On equal dates the first one seen is kept."""
    latest: dict[str, Quote] = {}
    for quote in quotes:
        seen = latest.get(quote.symbol)
        if seen is None or quote.date > seen.date:
            latest[quote.symbol] = quote
    return latest


def open_holdings(transactions: Iterable[Transaction]) -> dict[str, HoldingState]:
    """Fold buys and sells into the open quantity and cost per symbol."""
    holdings: dict[str, HoldingState] = {}
    for txn in sort_transactions(transactions):
        if txn.kind == TransactionKind.BUY:
            holdings[txn.symbol] = buy_holding(holdings.get(txn.symbol), txn)
        elif txn.kind == TransactionKind.SELL:
            current = holdings.get(txn.symbol)
            if current is None or current.quantity <= 0:
                continue
            updated = sell_holding(current, txn)
            if updated.quantity > 0:
                holdings[txn.symbol] = updated
            else:
                del holdings[txn.symbol]
    return holdings


def current_holdings(
    transactions: Iterable[Transaction],
    quotes: Iterable[Quote],
    securities: Iterable[SecurityReference],
) -> list[Holding]:
    """
    Build the list of open positions valued at their latest quote.

    Args:
        transactions: Normalized transactions.
        quotes: Valid quotes. A symbol without a quote is priced at zero.
        securities: Reference data. Unknown symbols get default name, sector and group.

    Returns:
        Holdings with a positive quantity, sorted by market value, largest first.
    """
    prices = latest_quotes(quotes)
    references = security_index(list(securities))

    holdings: list[Holding] = []
    for symbol, state in open_holdings(transactions).items():
        if state.quantity <= 0:
            continue
        reference = references.get(symbol)
        quote = prices.get(symbol)
        price = quote.close if quote else ZERO
        market_value = state.quantity * price
        unrealized = market_value - state.cost_basis

        holdings.append(Holding(
            symbol=symbol,
            name=reference.name if reference else symbol,
            sector=reference.sector if reference else "Unknown",
            group=reference.group if reference else "Stock",
            quantity=state.quantity,
            cost=state.cost_basis,
            average_cost=state.average_cost,
            current_price=price,
            market_value=market_value,
            unrealized_return=unrealized,
            return_pct=_return_pct(unrealized, state.cost_basis),
        ))

    holdings.sort(key=lambda h: h.market_value, reverse=True)
    return holdings


@dataclass
class _OpenLot:
    quantity: Decimal = ZERO
    cost: Decimal = ZERO
    status: str = ""
    sells: list[Transaction] = field(default_factory=list)


def closed_positions(transactions: Iterable[Transaction]) -> list[ClosedPosition]:
    """
    Find positions that were sold out, in the order they closed.

    A sell for a symbol with no open position is ignored. Once a position
    closes its history is dropped, so a later buy of the same symbol starts
    a new position. A closed position carries the status of the buy that
    opened it.

    Args:
        transactions: Normalized transactions.

    Returns:
        One ClosedPosition per close.
    """
    lots: dict[str, _OpenLot] = {}
    closed: list[ClosedPosition] = []

    for txn in sort_transactions(transactions):
        if txn.kind == TransactionKind.BUY:
            lot = lots.setdefault(txn.symbol, _OpenLot(status=txn.status))
            lot.quantity += txn.quantity
            lot.cost += txn.value
            continue

        if txn.kind != TransactionKind.SELL or txn.symbol not in lots:
            continue

        lot = lots[txn.symbol]
        lot.quantity -= txn.quantity
        lot.sells.append(txn)
        if lot.quantity > 0:
            continue

        proceeds = sum((sell.value for sell in lot.sells), ZERO)
        realized = txn.realized_gain if txn.realized_gain else proceeds - lot.cost
        closed.append(ClosedPosition(
            symbol=txn.symbol,
            total_cost=lot.cost,
            total_proceeds=proceeds,
            realized_return=realized,
            return_pct=_return_pct(realized, lot.cost),
            close_date=txn.date,
            status=lot.status,
        ))
        del lots[txn.symbol]

    logger.debug("Found %d closed positions", len(closed))
    return closed


# Cash effect per unit of transaction value.
_CASH_SIGN = {
    TransactionKind.BUY: -1,
    TransactionKind.SELL: 1,
    TransactionKind.DIVIDEND: 1,
    TransactionKind.DEPOSIT: 1,
    TransactionKind.WITHDRAWAL: 1,
}


def cash_accounts(transactions: Iterable[Transaction]) -> list[CashAccountBalance]:
    """
    Compute the running balance of each cash account.

    Transactions without an account are left out. Accounts appear in the
    order they are first seen.
    """
    balances: dict[str, Decimal] = {}
    for txn in sort_transactions(transactions):
        if not txn.account:
            continue
        balance = balances.setdefault(txn.account, ZERO)
        sign = _CASH_SIGN.get(txn.kind)
        if sign is not None:
            balances[txn.account] = balance + sign * txn.value
    return [CashAccountBalance(account_name=name, balance=value) for name, value in balances.items()]


def total_cash(accounts: Iterable[CashAccountBalance]) -> Decimal:
    """Sum the balances of all cash accounts."""
    return sum((account.balance for account in accounts), ZERO)


def is_ytd(position: ClosedPosition, today: date, ytd_status: str = YTD_STATUS) -> bool:
    """True when a position closed this calendar year or carries the YTD status."""
    return position.status == ytd_status or position.close_date.year == today.year


def ytd_realized_return(
    positions: Iterable[ClosedPosition],
    today: date,
    ytd_status: str = YTD_STATUS,
) -> Decimal:
    """Sum the realized return of positions closed in the current year."""
    return sum(
        (p.realized_return for p in positions if is_ytd(p, today, ytd_status)),
        ZERO,
    )


def classify_closed_position(position: ClosedPosition, today: date) -> ClosedBucket:
    """
    Assign a closed position to a reporting bucket.

    An explicit status literal wins. Otherwise the close year decides: this
    year (or later) is YTD, last year is PYD and anything older is RE.
    """
    for bucket in ClosedBucket:
        if position.status == bucket.value:
            return bucket

    year = position.close_date.year
    if year >= today.year:
        return ClosedBucket.YTD
    if year == today.year - 1:
        return ClosedBucket.PYD
    return ClosedBucket.RE


def bucket_closed_positions(
    positions: Iterable[ClosedPosition],
    today: date,
) -> dict[ClosedBucket, list[ClosedPosition]]:
    """Group closed positions by bucket. Every bucket is present, possibly empty."""
    buckets: dict[ClosedBucket, list[ClosedPosition]] = {bucket: [] for bucket in ClosedBucket}
    for position in positions:
        buckets[classify_closed_position(position, today)].append(position)
    return buckets


def summarize_closed(positions: Iterable[ClosedPosition]) -> ClosedSummary:
    """Total cost, proceeds and realized return over closed positions."""
    positions = list(positions)
    cost = sum((p.total_cost for p in positions), ZERO)
    realized = sum((p.realized_return for p in positions), ZERO)
    return ClosedSummary(
        count=len(positions),
        total_cost=cost,
        total_proceeds=sum((p.total_proceeds for p in positions), ZERO),
        total_realized=realized,
        return_pct=_return_pct(realized, cost),
    )
