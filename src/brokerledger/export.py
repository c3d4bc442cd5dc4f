"""Tabular and file exports of a LedgerReport."""

import json
import logging
from pathlib import Path

import pandas as pd
from openpyxl import Workbook

from .models import DailySnapshot, Holding
from .pipeline import LedgerReport

logger = logging.getLogger(__name__)

SNAPSHOT_COLUMNS = [
    "date", "cash_balance", "cumulative_realized_return", "equity_value",
    "unrealized_return", "total_value", "total_return_pct", "benchmark_value",
]
HOLDING_COLUMNS = [
    "symbol", "name", "sector", "group", "quantity", "cost", "average_cost",
    "current_price", "market_value", "unrealized_return", "return_pct",
]
CLOSED_COLUMNS = [
    "symbol", "total_cost", "total_proceeds", "realized_return", "return_pct",
    "close_date", "status",
]
CASH_COLUMNS = ["account_name", "balance"]


def snapshots_to_frame(snapshots: list[DailySnapshot]) -> pd.DataFrame:
    """One row per snapshot, indexed by date, with float columns."""
    rows = [
        {
            "date": pd.Timestamp(s.date),
            "cash_balance": float(s.cash_balance),
            "cumulative_realized_return": float(s.cumulative_realized_return),
            "equity_value": float(s.equity_value),
            "unrealized_return": float(s.unrealized_return),
            "total_value": float(s.total_value),
            "total_return_pct": float(s.total_return_pct),
            "benchmark_value": float(s.benchmark_value),
        }
        for s in snapshots
    ]
    return pd.DataFrame(rows, columns=SNAPSHOT_COLUMNS).set_index("date")


def holdings_to_frame(holdings: list[Holding]) -> pd.DataFrame:
    """One row per open holding, in the order given."""
    rows = [
        {
            "symbol": h.symbol,
            "name": h.name,
            "sector": h.sector,
            "group": h.group,
            "quantity": float(h.quantity),
            "cost": float(h.cost),
            "average_cost": float(h.average_cost),
            "current_price": float(h.current_price),
            "market_value": float(h.market_value),
            "unrealized_return": float(h.unrealized_return),
            "return_pct": float(h.return_pct),
        }
        for h in holdings
    ]
    return pd.DataFrame(rows, columns=HOLDING_COLUMNS)


def _report_tables(report: LedgerReport) -> dict[str, tuple[list[str], list[list]]]:
    snapshots = [
        [
            s.date.isoformat(), float(s.cash_balance), float(s.cumulative_realized_return),
            float(s.equity_value), float(s.unrealized_return), float(s.total_value),
            float(s.total_return_pct), float(s.benchmark_value),
        ]
        for s in report.snapshots
    ]
    holdings = [
        [
            h.symbol, h.name, h.sector, h.group, float(h.quantity), float(h.cost),
            float(h.average_cost), float(h.current_price), float(h.market_value),
            float(h.unrealized_return), float(h.return_pct),
        ]
        for h in report.current_holdings
    ]
    closed = [
        [
            p.symbol, float(p.total_cost), float(p.total_proceeds), float(p.realized_return),
            float(p.return_pct), p.close_date.isoformat(), p.status,
        ]
        for p in report.closed_positions
    ]
    cash = [[a.account_name, float(a.balance)] for a in report.cash_accounts]

    return {
        "Snapshots": (SNAPSHOT_COLUMNS, snapshots),
        "Holdings": (HOLDING_COLUMNS, holdings),
        "Closed Positions": (CLOSED_COLUMNS, closed),
        "Cash Accounts": (CASH_COLUMNS, cash),
    }


def save_report_to_excel(report: LedgerReport, file_path: str | Path) -> None:
    """
    Save a ledger report to an Excel workbook.

    Args:
        report: The computed ledger.
        file_path: Path to the ``.xlsx`` file to write.

    The workbook has one sheet per table: Snapshots, Holdings,
    Closed Positions and Cash Accounts. Row 1 of each sheet holds the
    column names.
    """
    wb = Workbook()
    default = wb.active
    assert default is not None
    wb.remove(default)

    for title, (headers, rows) in _report_tables(report).items():
        ws = wb.create_sheet(title=title)
        for col, header in enumerate(headers, start=1):
            ws.cell(row=1, column=col, value=header)
        for row, values in enumerate(rows, start=2):
            for col, value in enumerate(values, start=1):
                ws.cell(row=row, column=col, value=value)

    wb.save(file_path)
    logger.info("Saved report to %s", file_path)


def save_report_to_json(report: LedgerReport, file_path: str | Path) -> None:
    """
    Save a ledger report to a JSON file.

    Args:
        report: The computed ledger.
        file_path: Path to the JSON file to write.

    The file holds an object with one list of records per table
    (``snapshots``, ``holdings``, ``closed_positions``, ``cash_accounts``)
    plus ``total_cash`` and ``ytd_realized_return``.
    """
    data: dict = {}
    for title, (headers, rows) in _report_tables(report).items():
        key = title.lower().replace(" ", "_")
        data[key] = [dict(zip(headers, values)) for values in rows]
    data["total_cash"] = float(report.total_cash)
    data["ytd_realized_return"] = float(report.ytd_realized_return)

    with open(file_path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info("Saved report to %s", file_path)
