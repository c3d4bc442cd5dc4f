"""Delimited-text decoding for brokerage exports.

Exports come from spreadsheets saved under different locales, so the decoder
has to work out the delimiter and the header row on its own:

- A leading byte-order mark is removed.
- Blank lines are ignored everywhere.
- The delimiter is taken from the first non-blank line: ``;`` first, then tab,
  otherwise ``,``.
- Line 0 is the header unless every field on it is empty or purely numeric
  (some exports lead with an "importance" row), in which case line 1 is used.
"""

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# Quote-aware splits yielding fewer fields than this fall back to a plain split,
# since some exports contain unbalanced quotes.
MIN_QUOTED_FIELDS = 5

_NUMERIC_FIELD = re.compile(r"^\d+$")


@dataclass
class DecodedTable:
    """Records decoded from one delimited text.

    Attributes:
        source: Name of the input (file name), used in diagnostics.
        delimiter: The resolved field delimiter.
        header: Column names in file order.
        header_row: Index of the header among the non-blank lines (0 or 1).
        records: One mapping of column name to value per data line.
        line_numbers: 1-based source line number of each record.
        field_counts: Number of raw fields found on each data line.
    """

    source: str
    delimiter: str
    header: list[str] = field(default_factory=list)
    header_row: int = 0
    records: list[dict[str, str]] = field(default_factory=list)
    line_numbers: list[int] = field(default_factory=list)
    field_counts: list[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when the text holds no data lines below the header."""
        return not self.records

    @property
    def has_header(self) -> bool:
        """True when at least one header field is non-empty."""
        return any(self.header)


@dataclass
class TableProfile:
    """A quick look at a file's layout, shown before a full import."""

    total_lines: int
    delimiter: str
    header_row: int
    first_row: list[str]
    second_row: list[str]
    sample_lines: list[str]


def strip_bom(text: str) -> str:
    """Remove a leading byte-order mark, if present."""
    if text.startswith(BOM):
        return text[1:]
    return text


def detect_delimiter(line: str) -> str:
    """Pick the delimiter used by a line.

    Semicolon and tab are preferred over comma because locales that use a
    decimal comma export with one of them.
    """
    if ";" in line:
        return ";"
    if "\t" in line:
        return "\t"
    return ","


def split_line(line: str, delimiter: str) -> list[str]:
    """Split one line on ``delimiter``, honoring double-quoted fields.

    Every ``"`` toggles the inside-quotes state and is dropped; the delimiter
    only splits outside quotes. When that yields fewer than
    ``MIN_QUOTED_FIELDS`` fields the line is split naively instead.

    Args:
        line: The raw line without its line terminator.
        delimiter: Single-character field delimiter.

    Returns:
        The fields, untrimmed.
    """
    values: list[str] = []
    current: list[str] = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            values.append("".join(current))
            current = []
        else:
            current.append(char)
    values.append("".join(current))

    if len(values) < MIN_QUOTED_FIELDS:
        return line.split(delimiter)
    return values


def _non_blank_lines(text: str) -> list[tuple[int, str]]:
    lines: list[tuple[int, str]] = []
    for number, line in enumerate(text.split("\n"), start=1):
        line = line.rstrip("\r")
        if line.strip():
            lines.append((number, line))
    return lines


def _looks_like_header(fields: list[str]) -> bool:
    return not all(f == "" or _NUMERIC_FIELD.match(f) for f in fields)


def _resolve_header_row(lines: list[tuple[int, str]], delimiter: str) -> int:
    first = [f.strip() for f in split_line(lines[0][1], delimiter)]
    if not _looks_like_header(first) and len(lines) > 1:
        return 1
    return 0


def decode_table(text: str, source: str = "") -> DecodedTable:
    """
    Decode delimited text into ordered records.

    Empty input is not an error: the returned table simply has no records and
    ``is_empty`` is True, so callers can tell empty-but-valid apart from
    malformed input.

    Args:
        text: The raw file contents.
        source: Name of the input, used in log messages and diagnostics.

    Returns:
        A DecodedTable with the resolved delimiter, header and records.
    """
    lines = _non_blank_lines(strip_bom(text))
    if not lines:
        logger.info("No data found in %s", source or "input")
        return DecodedTable(source=source, delimiter=",")

    delimiter = detect_delimiter(lines[0][1])
    header_row = _resolve_header_row(lines, delimiter)
    header = [h.strip() for h in split_line(lines[header_row][1], delimiter)]

    logger.debug(
        "Decoding %s with delimiter %r, header on row %d: %s",
        source or "input", delimiter, header_row, header,
    )

    table = DecodedTable(
        source=source,
        delimiter=delimiter,
        header=header,
        header_row=header_row,
    )

    for line_number, line in lines[header_row + 1:]:
        values = [v.strip() for v in split_line(line, delimiter)]
        record: dict[str, str] = {}
        for name, value in zip(header, values):
            # Duplicate column names resolve to the first occurrence.
            record.setdefault(name, value)
        table.records.append(record)
        table.line_numbers.append(line_number)
        table.field_counts.append(len(values))

    logger.info("Decoded %d data lines from %s", len(table.records), source or "input")
    return table


def encode_table(header: list[str], records: list[dict[str, str]], delimiter: str = ",") -> str:
    """
    Encode records as delimited text that ``decode_table`` reads back unchanged.

    Fields containing the delimiter are wrapped in double quotes. The quote
    scheme has no escape for a literal double quote, so such fields are
    rejected. Lines with fewer than ``MIN_QUOTED_FIELDS`` fields are split
    naively when decoded, so a narrower table cannot hold the delimiter in a
    field either.

    Args:
        header: Column names in output order.
        records: Mappings of column name to value. Missing keys encode as "".
        delimiter: Field delimiter to write.

    Returns:
        The encoded text, one line per record, newline-terminated.

    Raises:
        ValueError: If any field contains a double quote, or contains the
            delimiter in a table with fewer than ``MIN_QUOTED_FIELDS`` columns.
    """
    def encode_field(value: str) -> str:
        if '"' in value:
            raise ValueError(f"Cannot encode field containing a double quote: {value!r}")
        if delimiter in value:
            if len(header) < MIN_QUOTED_FIELDS:
                raise ValueError(
                    f"Cannot encode field containing {delimiter!r} in a table with "
                    f"fewer than {MIN_QUOTED_FIELDS} columns: {value!r}"
                )
            return f'"{value}"'
        return value

    rows = [delimiter.join(encode_field(h) for h in header)]
    for record in records:
        rows.append(delimiter.join(encode_field(record.get(h, "")) for h in header))
    return "\n".join(rows) + "\n"


def inspect_text(text: str) -> TableProfile:
    """
    Summarize the layout of a file without normalizing it.

    Args:
        text: The raw file contents.

    Returns:
        A TableProfile with line count, delimiter, the first two rows split
        into fields, the resolved header row and up to five sample lines.
    """
    lines = _non_blank_lines(strip_bom(text))
    if not lines:
        return TableProfile(
            total_lines=0,
            delimiter=",",
            header_row=0,
            first_row=[],
            second_row=[],
            sample_lines=[],
        )

    delimiter = detect_delimiter(lines[0][1])
    first_row = [f.strip() for f in split_line(lines[0][1], delimiter)]
    second_row = [f.strip() for f in split_line(lines[1][1], delimiter)] if len(lines) > 1 else []

    return TableProfile(
        total_lines=len(lines),
        delimiter=delimiter,
        header_row=_resolve_header_row(lines, delimiter),
        first_row=first_row,
        second_row=second_row,
        sample_lines=[line for _, line in lines[:5]],
    )
