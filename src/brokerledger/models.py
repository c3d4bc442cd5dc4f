"""Record types shared by the decoder, the ledger engine and the aggregators."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")


class TransactionKind(Enum):
    """Canonical transaction kinds recognized by the ledger."""

    BUY = "Buy"
    SELL = "Sell"
    DIVIDEND = "Dividend"
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    OTHER = "Other"


# Kinds that move a symbol's quantity and therefore require a symbol.
POSITION_KINDS = frozenset({TransactionKind.BUY, TransactionKind.SELL})


@dataclass(frozen=True)
class Transaction:
    """A single normalized brokerage transaction.

    Attributes:
        date: Calendar date of the transaction.
        symbol: Ticker symbol. Empty for pure cash movements.
        kind: Canonical kind used by the ledger.
        raw_kind: The original label from the export, kept for audit.
        quantity: Number of shares/units (never negative).
        price: Price per share/unit (never negative).
        value: Signed currency amount. Withdrawals are always <= 0.
        account: Cash account the transaction is booked against. May be empty.
        status: Free-text classification tag, e.g. "YTD Clear".
        realized_gain: Broker-supplied realized gain override, if any.
        cash_impact: Broker-supplied cash impact column, if present.
        qty_balance: Broker-supplied running quantity, if present.
        cost_balance: Broker-supplied running cost, if present.
        row_number: 1-based line number in the source file (0 when built in code).
    """

    date: date
    symbol: str
    kind: TransactionKind
    raw_kind: str = ""
    quantity: Decimal = ZERO
    price: Decimal = ZERO
    value: Decimal = ZERO
    account: str = ""
    status: str = ""
    realized_gain: Decimal | None = None
    cash_impact: Decimal | None = None
    qty_balance: Decimal | None = None
    cost_balance: Decimal | None = None
    row_number: int = 0

    def __repr__(self):
        return f"Transaction(date={self.date}, symbol={self.symbol}, kind={self.kind.value}, quantity={self.quantity}, value={self.value})"


@dataclass(frozen=True)
class SecurityReference:
    """Reference data for a symbol: display name, sector and group."""

    symbol: str
    name: str
    sector: str = "Unknown"
    group: str = "Stock"
    cash_account: str = ""


@dataclass(frozen=True)
class Quote:
    """A closing price observation used for mark-to-market.

    ``degraded`` is True when the source date could not be parsed and the
    quote was stamped with the current date instead.
    """

    date: date
    symbol: str
    close: Decimal
    change_pct: Decimal = ZERO
    qty_held: Decimal = ZERO
    degraded: bool = False


@dataclass(frozen=True)
class HoldingState:
    """Quantity and total cost basis held for one symbol."""

    quantity: Decimal = ZERO
    cost_basis: Decimal = ZERO

    @property
    def average_cost(self) -> Decimal:
        """Return cost per unit, or zero when nothing is held."""
        if self.quantity <= 0:
            return ZERO
        return self.cost_basis / self.quantity


@dataclass(frozen=True)
class DailySnapshot:
    """The reconstructed state of the whole portfolio at the end of a day."""

    date: date
    cash_balance: Decimal
    cumulative_realized_return: Decimal
    holdings: dict[str, HoldingState] = field(default_factory=dict)
    equity_value: Decimal = ZERO
    unrealized_return: Decimal = ZERO
    total_value: Decimal = ZERO
    total_return_pct: Decimal = ZERO
    benchmark_value: Decimal = ZERO


@dataclass(frozen=True)
class Holding:
    """An open position joined with reference data and its latest price."""

    symbol: str
    name: str
    sector: str
    group: str
    quantity: Decimal
    cost: Decimal
    average_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    unrealized_return: Decimal
    return_pct: Decimal


@dataclass(frozen=True)
class ClosedPosition:
    """A position whose quantity reached zero after a sell."""

    symbol: str
    total_cost: Decimal
    total_proceeds: Decimal
    realized_return: Decimal
    return_pct: Decimal
    close_date: date
    status: str = ""


@dataclass(frozen=True)
class CashAccountBalance:
    """Signed running balance of one cash account."""

    account_name: str
    balance: Decimal
