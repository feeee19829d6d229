"""
Table parser for sheet payloads.

Turns the CSV export into rows of raw string cells. Handles:
- Fields wrapped in double quotes
- Delimiters inside quoted fields
- Doubled quotes as an escaped literal quote
- CRLF / CR line endings (normalized to LF first)
- Blank lines (dropped)
- Rows longer than the header (cut to the header width)

The first row is the header row. API payloads are already value arrays
and only need their cells stringified.
"""

from dataclasses import dataclass, field
from io import StringIO
from typing import Any, List

import pandas as pd
import structlog

from .fetcher import SheetPayload

logger = structlog.get_logger(__name__)


class ParseError(Exception):
    """The delimited text could not be parsed."""
    pass


@dataclass
class ParsedTable:
    """Header labels plus data rows of raw string cells."""
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_csv(text: str, delimiter: str = ",") -> ParsedTable:
    """
    Parse delimited text into a header row and data rows.

    Every cell is kept as the literal string from the file: no type
    inference and no NA conversion ("NA", "null" stay strings).

    Args:
        text: Raw delimited text
        delimiter: Field separator

    Returns:
        ParsedTable with trimmed header labels

    Raises:
        ParseError: If the text is empty or malformed
    """
    if text is None or not text.strip():
        raise ParseError("Cannot parse empty CSV text")

    normalized = normalize_line_endings(text)
    try:
        width = len(_read_csv(normalized, delimiter, nrows=1).columns)
        df = _read_csv(normalized, delimiter, usecols=list(range(width)))
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ParseError(f"Malformed CSV: {e}") from e

    # Short rows are padded with NaN by pandas
    lines = df.fillna("").values.tolist()
    if not lines:
        raise ParseError("CSV contains no rows")

    headers = [str(h).strip() for h in lines[0]]
    rows = [[str(cell) for cell in line] for line in lines[1:]]

    logger.debug("Parsed CSV", columns=len(headers), rows=len(rows))
    return ParsedTable(headers=headers, rows=rows)


def _read_csv(text: str, delimiter: str, **kwargs) -> pd.DataFrame:
    # With usecols set the C engine drops surplus cells instead of failing
    return pd.read_csv(
        StringIO(text),
        sep=delimiter,
        header=None,
        dtype=str,
        quotechar='"',
        doublequote=True,
        keep_default_na=False,
        na_filter=False,
        skip_blank_lines=True,
        skipinitialspace=False,
        engine="c",
        **kwargs,
    )


def table_from_values(values: List[List[Any]]) -> ParsedTable:
    """
    Build a table from API value arrays (no text parsing needed).

    Raises:
        ParseError: If there is no header row
    """
    if not values:
        raise ParseError("No header row in values")

    headers = [str(h).strip() if h is not None else "" for h in values[0]]
    rows = [
        ["" if cell is None else str(cell) for cell in row]
        for row in values[1:]
    ]
    return ParsedTable(headers=headers, rows=rows)


def parse_payload(payload: SheetPayload) -> ParsedTable:
    """Parse a fetched payload, bypassing CSV parsing for API results."""
    if payload.is_csv:
        return parse_csv(payload.csv_text)
    return table_from_values(payload.values or [])
