"""Tests for holdings, closed positions, cash accounts and closed-position buckets."""

from datetime import date
from decimal import Decimal

from brokerledger.models import ClosedPosition, Quote, SecurityReference, Transaction, TransactionKind
from brokerledger.positions import (
    ClosedBucket,
    bucket_closed_positions,
    cash_accounts,
    classify_closed_position,
    closed_positions,
    current_holdings,
    latest_quotes,
    summarize_closed,
    total_cash,
    ytd_realized_return,
)


def _txn(kind, day, symbol="", qty="0", value="0", **kwargs):
    return Transaction(
        date=day,
        symbol=symbol,
        kind=kind,
        quantity=Decimal(qty),
        value=Decimal(value),
        **kwargs,
    )


def _buy(day, symbol, qty, value, **kwargs):
    return _txn(TransactionKind.BUY, day, symbol, qty, value, **kwargs)


def _sell(day, symbol, qty, value, **kwargs):
    return _txn(TransactionKind.SELL, day, symbol, qty, value, **kwargs)


def _closed(symbol, close_date, status="", cost="100", realized="10"):
    return ClosedPosition(
        symbol=symbol,
        total_cost=Decimal(cost),
        total_proceeds=Decimal(cost) + Decimal(realized),
        realized_return=Decimal(realized),
        return_pct=Decimal(realized) / Decimal(cost) * 100,
        close_date=close_date,
        status=status,
    )


class TestCurrentHoldings:
    """Tests for current_holdings."""

    def test_single_buy_with_quote(self):
        """Verify a bought position is valued at its latest quote."""
        holdings = current_holdings(
            [_buy(date(2024, 1, 1), "AAPL", "10", "1000")],
            [Quote(date(2024, 1, 2), "AAPL", Decimal("110"))],
            [SecurityReference("AAPL", "Apple Inc.", "Technology", "Stock")],
        )

        assert len(holdings) == 1
        h = holdings[0]
        assert h.symbol == "AAPL"
        assert h.name == "Apple Inc."
        assert h.sector == "Technology"
        assert h.quantity == Decimal("10")
        assert h.average_cost == Decimal("100")
        assert h.current_price == Decimal("110")
        assert h.market_value == Decimal("1100")
        assert h.unrealized_return == Decimal("100")
        assert h.return_pct == Decimal("10")

    def test_reference_fallbacks_and_missing_quote(self):
        """Verify unknown symbols get default reference data and a zero price."""
        h = current_holdings([_buy(date(2024, 1, 1), "XYZ", "5", "50")], [], [])[0]

        assert h.name == "XYZ"
        assert h.sector == "Unknown"
        assert h.group == "Stock"
        assert h.current_price == 0
        assert h.market_value == 0
        assert h.unrealized_return == Decimal("-50")
        assert h.return_pct == Decimal("-100")

    def test_closed_positions_excluded_and_sorted(self):
        """Verify sold-out positions are dropped and the rest sorted by value."""
        holdings = current_holdings(
            [
                _buy(date(2024, 1, 1), "AAPL", "10", "1000"),
                _buy(date(2024, 1, 1), "MSFT", "2", "400"),
                _buy(date(2024, 1, 1), "TSLA", "1", "100"),
                _sell(date(2024, 1, 2), "TSLA", "1", "120"),
            ],
            [
                Quote(date(2024, 1, 3), "AAPL", Decimal("10")),
                Quote(date(2024, 1, 3), "MSFT", Decimal("300")),
            ],
            [],
        )

        assert [h.symbol for h in holdings] == ["MSFT", "AAPL"]

    def test_partial_sell_scales_cost(self):
        """Verify a partial sell leaves proportional cost."""
        h = current_holdings(
            [
                _buy(date(2024, 1, 1), "AAPL", "10", "1000"),
                _sell(date(2024, 1, 2), "AAPL", "4", "600"),
            ],
            [],
            [],
        )[0]

        assert h.quantity == Decimal("6")
        assert h.cost == Decimal("600")
        assert h.average_cost == Decimal("100")

    def test_zero_cost_return_pct(self):
        """Verify return percentage is zero when cost is zero."""
        h = current_holdings(
            [_buy(date(2024, 1, 1), "GIFT", "3", "0")],
            [Quote(date(2024, 1, 1), "GIFT", Decimal("5"))],
            [],
        )[0]

        assert h.return_pct == 0


class TestLatestQuotes:
    """Tests for latest_quotes."""

    def test_latest_date_wins_and_first_wins_ties(self):
        """Verify the most recent quote is kept and ties keep the first seen."""
        latest = latest_quotes([
            Quote(date(2024, 1, 1), "AAPL", Decimal("100")),
            Quote(date(2024, 1, 3), "AAPL", Decimal("103")),
            Quote(date(2024, 1, 3), "AAPL", Decimal("999")),
            Quote(date(2024, 1, 2), "AAPL", Decimal("102")),
        ])

        assert latest["AAPL"].close == Decimal("103")


class TestClosedPositions:
    """Tests for closed_positions."""

    def test_buy_then_sell(self):
        """Verify a full round trip produces one closed position."""
        closed = closed_positions([
            _buy(date(2024, 1, 1), "AAPL", "10", "1000"),
            _sell(date(2024, 1, 2), "AAPL", "10", "1200"),
        ])

        assert len(closed) == 1
        p = closed[0]
        assert p.symbol == "AAPL"
        assert p.total_cost == Decimal("1000")
        assert p.total_proceeds == Decimal("1200")
        assert p.realized_return == Decimal("200")
        assert p.return_pct == Decimal("20")
        assert p.close_date == date(2024, 1, 2)

    def test_proceeds_sum_partial_sells(self):
        """Verify proceeds add up every sell of the position."""
        closed = closed_positions([
            _buy(date(2024, 1, 1), "AAPL", "10", "1000"),
            _sell(date(2024, 1, 2), "AAPL", "4", "500"),
            _sell(date(2024, 1, 3), "AAPL", "6", "650"),
        ])

        assert closed[0].total_proceeds == Decimal("1150")
        assert closed[0].realized_return == Decimal("150")
        assert closed[0].close_date == date(2024, 1, 3)

    def test_realized_override(self):
        """Verify the closing sell's broker realized gain is used when non-zero."""
        closed = closed_positions([
            _buy(date(2024, 1, 1), "AAPL", "10", "1000"),
            _sell(date(2024, 1, 2), "AAPL", "10", "1200", realized_gain=Decimal("180")),
        ])

        assert closed[0].realized_return == Decimal("180")
        assert closed[0].return_pct == Decimal("18")

    def test_sell_without_open_position_ignored(self):
        """Verify a sell with no prior buy produces nothing."""
        assert closed_positions([_sell(date(2024, 1, 1), "AAPL", "1", "10")]) == []

    def test_new_lineage_after_close(self):
        """Verify a buy after a close starts a fresh position."""
        closed = closed_positions([
            _buy(date(2024, 1, 1), "AAPL", "10", "1000"),
            _sell(date(2024, 1, 2), "AAPL", "10", "1200"),
            _buy(date(2024, 1, 3), "AAPL", "5", "600"),
            _sell(date(2024, 1, 4), "AAPL", "5", "500"),
        ])

        assert [p.realized_return for p in closed] == [Decimal("200"), Decimal("-100")]
        assert closed[1].total_cost == Decimal("600")

    def test_status_from_opening_buy(self):
        """Verify status comes from the opening buy, whatever the closing sell says."""
        closed = closed_positions([
            _buy(date(2024, 1, 1), "AAPL", "1", "100", status="PYD Clear"),
            _sell(date(2024, 1, 2), "AAPL", "1", "110", status="YTD Clear"),
            _buy(date(2024, 1, 1), "MSFT", "1", "100", status="Cleared-RE"),
            _sell(date(2024, 1, 2), "MSFT", "1", "110"),
            _buy(date(2024, 1, 1), "COMI", "1", "100"),
            _sell(date(2024, 1, 2), "COMI", "1", "110", status="YTD Clear"),
        ])

        assert {p.symbol: p.status for p in closed} == {"AAPL": "PYD Clear", "MSFT": "Cleared-RE", "COMI": ""}

    def test_opening_buy_status_decides_bucket(self):
        """Verify a position opened as PYD Clear stays in the PYD bucket when sold as YTD Clear."""
        today = date(2024, 12, 31)
        closed = closed_positions([
            _buy(date(2024, 1, 1), "AAPL", "1", "100", status="PYD Clear"),
            _sell(date(2024, 1, 2), "AAPL", "1", "110", status="YTD Clear"),
        ])

        assert classify_closed_position(closed[0], today) == ClosedBucket.PYD

    def test_open_positions_not_reported(self):
        """Verify partially sold positions are not closed."""
        closed = closed_positions([
            _buy(date(2024, 1, 1), "AAPL", "10", "1000"),
            _sell(date(2024, 1, 2), "AAPL", "4", "500"),
        ])

        assert closed == []


class TestCashAccounts:
    """Tests for cash_accounts and total_cash."""

    def test_deposit_and_withdrawal(self):
        """Verify a deposit and a withdrawal net out per account."""
        accounts = cash_accounts([
            _txn(TransactionKind.DEPOSIT, date(2024, 1, 1), value="5000", account="A"),
            _txn(TransactionKind.WITHDRAWAL, date(2024, 1, 2), value="-2000", account="A"),
        ])

        assert len(accounts) == 1
        assert accounts[0].account_name == "A"
        assert accounts[0].balance == Decimal("3000")

    def test_sign_rules_and_order(self):
        """Verify buys debit, other kinds credit and accounts keep first-seen order."""
        accounts = cash_accounts([
            _txn(TransactionKind.DEPOSIT, date(2024, 1, 1), value="1000", account="B"),
            _buy(date(2024, 1, 2), "AAPL", "1", "300", account="B"),
            _txn(TransactionKind.DEPOSIT, date(2024, 1, 2), value="50", account="A"),
            _sell(date(2024, 1, 3), "AAPL", "1", "320", account="B"),
            _txn(TransactionKind.DIVIDEND, date(2024, 1, 3), "AAPL", value="5", account="A"),
            _txn(TransactionKind.OTHER, date(2024, 1, 3), value="999", account="C"),
        ])

        assert [(a.account_name, a.balance) for a in accounts] == [
            ("B", Decimal("1020")),
            ("A", Decimal("55")),
            ("C", Decimal("0")),
        ]
        assert total_cash(accounts) == Decimal("1075")

    def test_empty_account_excluded(self):
        """Verify transactions without an account are not aggregated."""
        accounts = cash_accounts([
            _txn(TransactionKind.DEPOSIT, date(2024, 1, 1), value="1000"),
        ])

        assert accounts == []
        assert total_cash(accounts) == 0


class TestClosedBuckets:
    """Tests for YTD filtering and closed-position buckets."""

    TODAY = date(2025, 6, 1)

    def test_ytd_realized_return(self):
        """Verify YTD includes this year's closes and the YTD status literal."""
        positions = [
            _closed("A", date(2025, 2, 1), realized="10"),
            _closed("B", date(2023, 2, 1), status="YTD Clear", realized="5"),
            _closed("C", date(2024, 12, 31), realized="100"),
        ]

        assert ytd_realized_return(positions, self.TODAY) == Decimal("15")
        assert ytd_realized_return(positions, self.TODAY, ytd_status="Other") == Decimal("10")

    def test_classify_by_year(self):
        """Verify this year is YTD, last year is PYD and older is RE."""
        assert classify_closed_position(_closed("A", date(2025, 1, 1)), self.TODAY) == ClosedBucket.YTD
        assert classify_closed_position(_closed("A", date(2026, 1, 1)), self.TODAY) == ClosedBucket.YTD
        assert classify_closed_position(_closed("A", date(2024, 1, 1)), self.TODAY) == ClosedBucket.PYD
        assert classify_closed_position(_closed("A", date(2023, 12, 31)), self.TODAY) == ClosedBucket.RE

    def test_status_takes_precedence(self):
        """Verify an explicit status literal overrides the close year."""
        assert classify_closed_position(
            _closed("A", date(2025, 1, 1), status="Cleared-RE"), self.TODAY
        ) == ClosedBucket.RE
        assert classify_closed_position(
            _closed("A", date(2020, 1, 1), status="YTD Clear"), self.TODAY
        ) == ClosedBucket.YTD
        assert classify_closed_position(
            _closed("A", date(2020, 1, 1), status="something else"), self.TODAY
        ) == ClosedBucket.RE

    def test_buckets_partition(self):
        """Verify every position lands in exactly one bucket."""
        positions = [
            _closed("A", date(2025, 1, 1)),
            _closed("B", date(2024, 1, 1)),
            _closed("C", date(2023, 1, 1)),
            _closed("D", date(2022, 1, 1)),
        ]
        buckets = bucket_closed_positions(positions, self.TODAY)

        assert [p.symbol for p in buckets[ClosedBucket.YTD]] == ["A"]
        assert [p.symbol for p in buckets[ClosedBucket.PYD]] == ["B"]
        assert [p.symbol for p in buckets[ClosedBucket.RE]] == ["C", "D"]
        assert sum(len(v) for v in buckets.values()) == len(positions)

    def test_empty_buckets_present(self):
        """Verify every bucket key exists even with no positions."""
        assert bucket_closed_positions([], self.TODAY) == {bucket: [] for bucket in ClosedBucket}

    def test_summarize_closed(self):
        """Verify totals and the aggregate return percentage."""
        summary = summarize_closed([
            _closed("A", date(2025, 1, 1), cost="100", realized="10"),
            _closed("B", date(2025, 1, 1), cost="300", realized="-30"),
        ])

        assert summary.count == 2
        assert summary.total_cost == Decimal("400")
        assert summary.total_proceeds == Decimal("380")
        assert summary.total_realized == Decimal("-20")
        assert summary.return_pct == Decimal("-5")

        empty = summarize_closed([])
        assert empty.count == 0
        assert empty.return_pct == 0
