"""Portfolio analytics built on a LedgerReport: summary figures, allocation,
monthly series, time-range windows, performer rankings and risk metrics."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Tuple

import numpy as np
import pandas as pd

from .models import ZERO, CashAccountBalance, ClosedPosition, DailySnapshot, Holding
from .pipeline import LedgerReport
from .positions import YTD_STATUS, is_ytd, summarize_closed


@dataclass(frozen=True)
class PortfolioSummary:
    """Headline figures for a portfolio, taken from its latest snapshot."""
    total_value: Decimal
    cash_value: Decimal
    equity_value: Decimal
    realized_return: Decimal
    unrealized_return: Decimal
    total_return_pct: Decimal
    ytd_clear_return: Decimal
    ytd_clear_return_pct: Decimal
    total_cash: Decimal
    benchmark_return: Decimal | None = None
    alpha: Decimal | None = None


@dataclass(frozen=True)
class AllocationSlice:
    """One slice of an allocation breakdown."""
    name: str
    value: Decimal
    weight_pct: Decimal


@dataclass(frozen=True)
class Performer:
    """An open or closed position ranked by its return."""
    symbol: str
    status: str
    return_value: Decimal
    return_pct: Decimal
    value: Decimal


@dataclass(frozen=True)
class WinRateResult:
    """Result of a win rate calculation."""
    win_rate: float
    total_positions: int
    winning_positions: int
    losing_positions: int
    breakeven_positions: int
    total_gain_loss: Decimal
    average_win: Decimal | None
    average_loss: Decimal | None
    win_loss_ratio: float | None


def summarize_portfolio(
    report: LedgerReport,
    benchmark_return: Decimal | None = None,
    ytd_status: str = YTD_STATUS,
) -> PortfolioSummary:
    """
    Summarize a ledger report.

    Args:
        report: The computed ledger.
        benchmark_return: Benchmark return in percent. Alpha is only
            computed when this is given.
        ytd_status: Status literal that marks a closed position as year-to-date.

    Returns:
        PortfolioSummary. Snapshot figures are zero for an empty ledger.
    """
    latest = report.latest_snapshot
    today = report.as_of or date.today()

    ytd = summarize_closed(p for p in report.closed_positions if is_ytd(p, today, ytd_status))
    total_return_pct = latest.total_return_pct if latest else ZERO

    return PortfolioSummary(
        total_value=latest.total_value if latest else ZERO,
        cash_value=latest.cash_balance if latest else ZERO,
        equity_value=latest.equity_value if latest else ZERO,
        realized_return=latest.cumulative_realized_return if latest else ZERO,
        unrealized_return=latest.unrealized_return if latest else ZERO,
        total_return_pct=total_return_pct,
        ytd_clear_return=ytd.total_realized,
        ytd_clear_return_pct=ytd.return_pct,
        total_cash=report.total_cash,
        benchmark_return=benchmark_return,
        alpha=total_return_pct - benchmark_return if benchmark_return is not None else None,
    )


def _slices(items: list[tuple[str, Decimal]]) -> list[AllocationSlice]:
    total = sum((value for _, value in items), ZERO)
    return [
        AllocationSlice(
            name=name,
            value=value,
            weight_pct=value / total * 100 if total > 0 else ZERO,
        )
        for name, value in items
    ]


def allocation_by_holding(
    holdings: Iterable[Holding],
    accounts: Iterable[CashAccountBalance],
) -> list[AllocationSlice]:
    """Allocation across open holdings and every cash account with a positive balance."""
    items = [(h.symbol, h.market_value) for h in holdings]
    items += [(a.account_name, a.balance) for a in accounts if a.balance > 0]
    return _slices(items)


def allocation_by_sector(holdings: Iterable[Holding], total_cash: Decimal) -> list[AllocationSlice]:
    """
    Allocation by sector, largest first, with positive cash as a final "Cash" slice.

    Args:
        holdings: Open holdings.
        total_cash: Sum of cash account balances.

    Returns:
        One AllocationSlice per sector.
    """
    by_sector: dict[str, Decimal] = {}
    for holding in holdings:
        by_sector[holding.sector] = by_sector.get(holding.sector, ZERO) + holding.market_value

    items = sorted(by_sector.items(), key=lambda item: item[1], reverse=True)
    if total_cash > 0:
        items.append(("Cash", total_cash))
    return _slices(items)


def monthly_series(snapshots: Sequence[DailySnapshot]) -> pd.DataFrame:
    """
    Reduce daily snapshots to the last snapshot of each calendar month.

    Returns:
        DataFrame with columns month (``YYYY-MM``), date, total_value,
        equity_value and cash_balance, ordered by month.
    """
    columns = ["month", "date", "total_value", "equity_value", "cash_balance"]
    if not snapshots:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame({
        "date": pd.to_datetime([s.date for s in snapshots]),
        "total_value": [float(s.total_value) for s in snapshots],
        "equity_value": [float(s.equity_value) for s in snapshots],
        "cash_balance": [float(s.cash_balance) for s in snapshots],
    })
    df["month"] = df["date"].dt.strftime("%Y-%m")
    df = df.sort_values("date", kind="stable").drop_duplicates("month", keep="last")
    return df[columns].reset_index(drop=True)


class TimeRange(Enum):
    """Windows over the snapshot series, measured back from today."""
    ALL = "all"
    ITD = "itd"
    ONE_YEAR = "1y"
    YTD = "ytd"
    SIX_MONTHS = "6m"
    QUARTER = "quarter"
    MONTH = "month"
    WEEK = "week"
    LAST_DAY = "1d"


_RANGE_OFFSETS = {
    TimeRange.ONE_YEAR: pd.DateOffset(years=1),
    TimeRange.SIX_MONTHS: pd.DateOffset(months=6),
    TimeRange.QUARTER: pd.DateOffset(months=3),
    TimeRange.MONTH: pd.DateOffset(months=1),
    TimeRange.WEEK: pd.DateOffset(days=7),
}


def filter_snapshots(
    snapshots: Sequence[DailySnapshot],
    time_range: TimeRange | str = TimeRange.ALL,
    today: date | None = None,
) -> list[DailySnapshot]:
    """
    Keep the snapshots that fall inside a time range.

    Args:
        snapshots: Snapshots in ascending date order.
        time_range: A TimeRange or its value (e.g. ``"ytd"``). ``all`` and
            ``itd`` keep everything, ``1d`` keeps only the latest snapshot.
        today: End of the window. Defaults to the current date.

    Returns:
        Snapshots dated on or after the start of the window, in input order.

    Raises:
        ValueError: If ``time_range`` is not a known range.
    """
    time_range = TimeRange(time_range)
    today = today or date.today()

    if time_range == TimeRange.LAST_DAY:
        return list(snapshots[-1:])
    if time_range == TimeRange.YTD:
        start = date(today.year, 1, 1)
    elif time_range in _RANGE_OFFSETS:
        start = (pd.Timestamp(today) - _RANGE_OFFSETS[time_range]).date()
    else:
        return list(snapshots)

    return [s for s in snapshots if s.date >= start]


def rank_performers(
    holdings: Iterable[Holding],
    closed: Iterable[ClosedPosition],
    n: int = 5,
) -> Tuple[list[Performer], list[Performer]]:
    """
    Rank open and closed positions by return value.

    Open positions are ranked on unrealized return, closed positions on
    realized return.

    Args:
        holdings: Open holdings.
        closed: Closed positions.
        n: Number of positions in each list.

    Returns:
        Tuple of (top performers, bottom performers).
    """
    performers = [
        Performer(h.symbol, "Active", h.unrealized_return, h.return_pct, h.market_value)
        for h in holdings
    ]
    performers += [
        Performer(p.symbol, "Closed", p.realized_return, p.return_pct, p.total_cost)
        for p in closed
    ]

    top = sorted(performers, key=lambda p: p.return_value, reverse=True)[:n]
    bottom = sorted(performers, key=lambda p: p.return_value)[:n]
    return top, bottom


def calculate_max_drawdown(
    snapshots: Sequence[DailySnapshot]
) -> Tuple[float, date | None, date | None]:
    """
    Calculate the maximum drawdown of snapshot total values.

    Maximum drawdown measures the largest peak-to-trough decline in portfolio
    value, expressed as a fraction of the peak value.

    Args:
        snapshots: Snapshots in ascending date order.

    Returns:
        Tuple of (max_drawdown, peak_date, trough_date).
        max_drawdown is zero or negative (e.g., -0.20 = 20% drawdown).
        trough_date is None when the value never fell below a peak.

    Raises:
        ValueError: If fewer than two observations.
    """
    if len(snapshots) < 2:
        raise ValueError("Need at least two portfolio value observations.")

    max_drawdown = 0.0
    peak_value = float(snapshots[0].total_value)
    peak_date: date | None = snapshots[0].date
    trough_date: date | None = None
    current_peak_date = snapshots[0].date

    for snapshot in snapshots:
        value = float(snapshot.total_value)
        if value > peak_value:
            peak_value = value
            current_peak_date = snapshot.date

        if peak_value > 0:
            drawdown = (value - peak_value) / peak_value
            if drawdown < max_drawdown:
                max_drawdown = drawdown
                peak_date = current_peak_date
                trough_date = snapshot.date

    return max_drawdown, peak_date, trough_date


def calculate_daily_returns(snapshots: Sequence[DailySnapshot]) -> list[float]:
    """Period-over-period returns of snapshot total values, skipping zero bases."""
    returns: list[float] = []
    for previous, current in zip(snapshots, snapshots[1:]):
        base = float(previous.total_value)
        if base == 0:
            continue
        returns.append((float(current.total_value) - base) / base)
    return returns


def calculate_volatility(
    snapshots: Sequence[DailySnapshot],
    periods_in_year: int = 365
) -> Tuple[float, float]:
    """
    Calculate daily and annualized volatility of snapshot total values.

    Args:
        snapshots: Snapshots in ascending date order.
        periods_in_year: Periods in a year (365 for daily, 252 for trading days).

    Returns:
        Tuple of (daily_volatility, annual_volatility).

    Raises:
        ValueError: If fewer than two return observations.
    """
    returns = calculate_daily_returns(snapshots)
    if len(returns) < 2:
        raise ValueError("Need at least two return observations.")

    returns_array = np.array(returns, dtype=float)
    daily_volatility = float(returns_array.std(ddof=1))
    annual_volatility = daily_volatility * float(np.sqrt(periods_in_year))

    return daily_volatility, annual_volatility


def calculate_win_rate(closed: Iterable[ClosedPosition]) -> WinRateResult:
    """
    Calculate win rate over closed positions.

    A winning position is one with a positive realized return.
    """
    gains = [p.realized_return for p in closed]

    if not gains:
        return WinRateResult(
            win_rate=0.0,
            total_positions=0,
            winning_positions=0,
            losing_positions=0,
            breakeven_positions=0,
            total_gain_loss=ZERO,
            average_win=None,
            average_loss=None,
            win_loss_ratio=None
        )

    winning = [g for g in gains if g > 0]
    losing = [g for g in gains if g < 0]
    breakeven = [g for g in gains if g == 0]

    average_win = sum(winning, ZERO) / len(winning) if winning else None
    average_loss = sum(losing, ZERO) / len(losing) if losing else None

    win_loss_ratio = (
        float(abs(average_win / average_loss))
        if average_win is not None and average_loss is not None
        else None
    )

    return WinRateResult(
        win_rate=len(winning) / len(gains),
        total_positions=len(gains),
        winning_positions=len(winning),
        losing_positions=len(losing),
        breakeven_positions=len(breakeven),
        total_gain_loss=sum(gains, ZERO),
        average_win=average_win,
        average_loss=average_loss,
        win_loss_ratio=win_loss_ratio
    )
