"""Ledger replay and mark-to-market.

The replay is a fold over the date-sorted transaction stream with an explicit
``LedgerState`` accumulator. Each step returns a new state; holdings maps are
copied, never shared, so every snapshot owns its own view of the portfolio.
"""

import logging
from bisect import bisect_right
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Union

from .models import (
    ZERO,
    DailySnapshot,
    HoldingState,
    Quote,
    Transaction,
    TransactionKind,
)

logger = logging.getLogger(__name__)

Benchmark = Union[Decimal, Mapping[date, Decimal], None]


@dataclass(frozen=True)
class LedgerState:
    """Running totals carried from one transaction to the next.

    Attributes:
        cash: Cumulative cash balance.
        cumulative_realized: Realized return from sells and dividends so far.
        holdings: Open positions by symbol. Positions are removed when sold out.
        initial_investment: Value of the first buy, or None before any buy.
    """

    cash: Decimal = ZERO
    cumulative_realized: Decimal = ZERO
    holdings: dict[str, HoldingState] = field(default_factory=dict)
    initial_investment: Decimal | None = None


@dataclass(frozen=True)
class LedgerReplay:
    """Result of replaying a transaction stream."""

    snapshots: list[DailySnapshot]
    final_state: LedgerState

    @property
    def initial_investment(self) -> Decimal:
        """Return the total-return denominator (zero when nothing was bought)."""
        return self.final_state.initial_investment or ZERO


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Sort ascending by date, keeping input order for same-day transactions."""
    return sorted(transactions, key=lambda t: t.date)


def buy_holding(holding: HoldingState | None, txn: Transaction) -> HoldingState:
    """Add a buy to a holding."""
    holding = holding or HoldingState()
    return HoldingState(
        quantity=holding.quantity + txn.quantity,
        cost_basis=holding.cost_basis + txn.value,
    )


def sell_holding(holding: HoldingState | None, txn: Transaction) -> HoldingState:
    """
    Remove a sell from a holding.

    Quantity is floored at zero and the cost basis is scaled down to the
    remaining quantity, or zeroed when nothing remains.
    """
    holding = holding or HoldingState()
    remaining = max(holding.quantity - txn.quantity, ZERO)
    if remaining > 0:
        cost = holding.cost_basis * remaining / holding.quantity
    else:
        cost = ZERO
    return HoldingState(quantity=remaining, cost_basis=cost)


def realized_on_sell(holding: HoldingState | None, txn: Transaction) -> Decimal:
    """
    Return the realized return booked by a sell.

    A non-zero broker-supplied gain is used as-is. Otherwise the sell value is
    compared with the proportional share of the cost basis; nothing is booked
    when the symbol is not held.
    """
    if txn.realized_gain:
        return txn.realized_gain
    if holding is None or holding.quantity <= 0:
        return ZERO
    cost_basis = holding.cost_basis * txn.quantity / holding.quantity
    return txn.value - cost_basis


def apply_transaction(state: LedgerState, txn: Transaction) -> LedgerState:
    """
    Apply one transaction to the ledger state.

    Args:
        state: State before the transaction.
        txn: The transaction to apply.

    Returns:
        A new LedgerState. ``state`` is left untouched.
    """
    if txn.kind == TransactionKind.BUY:
        holdings = dict(state.holdings)
        holdings[txn.symbol] = buy_holding(holdings.get(txn.symbol), txn)
        initial = state.initial_investment
        if initial is None:
            initial = txn.value
        return replace(
            state,
            cash=state.cash - txn.value,
            holdings=holdings,
            initial_investment=initial,
        )

    if txn.kind == TransactionKind.SELL:
        holdings = dict(state.holdings)
        current = holdings.get(txn.symbol)
        realized = realized_on_sell(current, txn)
        updated = sell_holding(current, txn)
        if updated.quantity > 0:
            holdings[txn.symbol] = updated
        else:
            holdings.pop(txn.symbol, None)
        return replace(
            state,
            cash=state.cash + txn.value,
            cumulative_realized=state.cumulative_realized + realized,
            holdings=holdings,
        )

    if txn.kind == TransactionKind.DIVIDEND:
        return replace(
            state,
            cash=state.cash + txn.value,
            cumulative_realized=state.cumulative_realized + txn.value,
        )

    if txn.kind in (TransactionKind.DEPOSIT, TransactionKind.WITHDRAWAL):
        return replace(state, cash=state.cash + txn.value)

    logger.debug("No ledger effect for %r (%s)", txn.raw_kind, txn.kind.value)
    return state


def _snapshot(day: date, state: LedgerState) -> DailySnapshot:
    return DailySnapshot(
        date=day,
        cash_balance=state.cash,
        cumulative_realized_return=state.cumulative_realized,
        holdings=dict(state.holdings),
        total_value=state.cash,
    )


def replay_transactions(transactions: Iterable[Transaction]) -> LedgerReplay:
    """
    Replay transactions into one snapshot per calendar date.

    When several transactions share a date, the snapshot reflects the state
    after the last of them.

    Args:
        transactions: Normalized transactions in any order.

    Returns:
        LedgerReplay with snapshots in ascending date order and the final state.
    """
    state = LedgerState()
    snapshots: list[DailySnapshot] = []

    for txn in sort_transactions(transactions):
        state = apply_transaction(state, txn)
        assert all(h.quantity >= 0 for h in state.holdings.values()), \
            f"negative holding quantity after {txn!r}"

        snapshot = _snapshot(txn.date, state)
        if snapshots and snapshots[-1].date == txn.date:
            snapshots[-1] = snapshot
        else:
            assert not snapshots or snapshots[-1].date < txn.date, \
                f"transactions out of order at {txn.date}"
            snapshots.append(snapshot)

    logger.info("Replayed ledger into %d daily snapshots", len(snapshots))
    return LedgerReplay(snapshots=snapshots, final_state=state)


def _benchmark_for(benchmark: Benchmark, day: date) -> Decimal:
    if benchmark is None:
        return ZERO
    if isinstance(benchmark, Mapping):
        return benchmark.get(day, ZERO)
    return benchmark


def mark_to_market(
    replay: LedgerReplay,
    quotes: Iterable[Quote],
    benchmark: Benchmark = None,
) -> list[DailySnapshot]:
    """
    Value snapshots at market prices.

    Each quote is applied to the latest snapshot dated on or before the quote
    date. Quotes for symbols the snapshot does not hold contribute nothing,
    and several quotes landing on one snapshot add up.

    Args:
        replay: Output of ``replay_transactions``.
        quotes: Closing prices. Quotes with a close of zero or less are ignored.
        benchmark: A constant benchmark value, a per-date mapping, or None.
            It is attached to every snapshot, never computed.

    Returns:
        New snapshots in ascending date order with equity, unrealized return,
        total value and total return filled in.
    """
    snapshots = replay.snapshots
    dates = [s.date for s in snapshots]
    initial = replay.initial_investment

    equity: dict[int, Decimal] = defaultdict(Decimal)
    unrealized: dict[int, Decimal] = defaultdict(Decimal)
    touched: set[int] = set()

    for quote in quotes:
        if quote.close <= 0:
            continue
        index = bisect_right(dates, quote.date) - 1
        if index < 0:
            continue
        touched.add(index)
        holding = snapshots[index].holdings.get(quote.symbol)
        if holding is None or holding.quantity <= 0:
            continue
        market_value = holding.quantity * quote.close
        equity[index] += market_value
        unrealized[index] += market_value - holding.cost_basis

    marked: list[DailySnapshot] = []
    for index, snapshot in enumerate(snapshots):
        benchmark_value = _benchmark_for(benchmark, snapshot.date)
        if index not in touched:
            marked.append(replace(snapshot, benchmark_value=benchmark_value))
            continue

        total_return_pct = snapshot.total_return_pct
        if initial > 0:
            total_return_pct = (snapshot.cumulative_realized_return + unrealized[index]) / initial * 100
        marked.append(replace(
            snapshot,
            equity_value=equity[index],
            unrealized_return=unrealized[index],
            total_value=snapshot.cash_balance + equity[index],
            total_return_pct=total_return_pct,
            benchmark_value=benchmark_value,
        ))

    logger.info("Marked %d of %d snapshots to market", len(touched), len(snapshots))
    return marked
