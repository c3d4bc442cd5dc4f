"""Error types raised while ingesting brokerage exports."""

from dataclasses import dataclass
from enum import Enum


class InputKind(Enum):
    """The three source files a ledger is built from."""

    TRANSACTIONS = "transactions"
    SYMBOLS = "symbols"
    QUOTES = "quotes"


@dataclass(frozen=True)
class SkippedRow:
    """A row-level defect: the row was dropped and processing continued.

    Attributes:
        row_number: 1-based line number in the source text (blank lines included).
        reason: Human-readable description of why the row was skipped.
    """

    row_number: int
    reason: str


class LedgerInputError(Exception):
    """A file-level defect that halts ingestion for the current run.

    Args:
        kind: Which of the three inputs failed.
        message: Description of the defect.
        source: File name or other identifier of the input, if known.
    """

    def __init__(self, kind: InputKind, message: str, source: str = ""):
        self.kind = kind
        self.message = message
        self.source = source
        location = f" ({source})" if source else ""
        super().__init__(f"{kind.value} input{location}: {message}")
