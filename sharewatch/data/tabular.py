"""
tabular.py

Parser for the comma-separated text BSE serves for the equity list and
ships inside the bhavcopy archive.

Rules:
- Lines are split on any run of CR/LF; blank fragments are dropped.
- The first line is the header. Columns are trimmed, lower-cased and
  spaces become underscores ("Isin No" -> "isin_no").
- Every other line is split on "," and zipped against the header by position.
  Short rows simply lack the trailing keys; extra fields are ignored.
- Values are kept as the raw text received. No numeric coercion.

Known limitation: there is no CSV quoting support. A quoted field that
contains a comma is split like any other field. BSE files do not quote.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from sharewatch.utils.errors import MalformedPayload

logger = logging.getLogger(__name__)

RawRecord = Dict[str, str]

DELIMITER = ","
_LINE_BREAKS = re.compile(r"[\r\n]+")


def normalize_column(token: str) -> str:
    return token.strip().lower().replace(" ", "_")


def split_lines(raw_text: str) -> List[str]:
    return [line for line in _LINE_BREAKS.split(raw_text or "") if line.strip()]


def parse_columns(header_line: str) -> List[str]:
    return [normalize_column(c) for c in header_line.split(DELIMITER)]


def parse_records(
    raw_text: str,
    *,
    required_column: Optional[str] = None,
    allow_empty: bool = False,
) -> List[RawRecord]:
    """
    Parse header + data lines into one dict per data line, in input order.

    Raises MalformedPayload when:
    - there is no line at all;
    - there is only a header line (unless allow_empty=True, which returns []);
    - `required_column` is given and missing from the normalized header.
    """
    lines = split_lines(raw_text)
    if not lines:
        raise MalformedPayload("invalid server response: empty tabular payload")

    columns = parse_columns(lines[0])

    if required_column is not None and required_column not in columns:
        raise MalformedPayload(
            "invalid server response: missing required column",
            details={"required": required_column, "columns": columns},
        )

    if len(lines) < 2:
        if allow_empty:
            logger.info("Tabular payload has a header but no data rows: columns=%d", len(columns))
            return []
        raise MalformedPayload(
            "invalid server response: header without data rows",
            details={"columns": columns},
        )

    records: List[RawRecord] = []
    for line in lines[1:]:
        values = line.split(DELIMITER)
        records.append(dict(zip(columns, values)))

    logger.debug("Parsed tabular payload: columns=%d rows=%d", len(columns), len(records))
    return records
