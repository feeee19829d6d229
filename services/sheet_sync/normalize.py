"""
Row normalization and soft validation.

Converts raw sheet rows into typed StudentRow objects:
- String fields are trimmed, "" when the column is absent or blank
- Numeric fields are a number when present and finite, else None
- Blank department falls back to the class value (recorded as an event)

Validation is soft. Missing register_no, name or department only
produce warnings; a missing register_no later excludes the row.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from .events import EventSink, FallbackApplied, NullEventSink, RowSkipped, RowWarning
from .parser import ParsedTable

Number = Union[int, float]

STRING_FIELDS = (
    "register_no",
    "name",
    "father_name",
    "mother_name",
    "address",
    "class",
    "year",
    "department",
    "email",
    "phone_number",
    "profile_image_url",
)

ACADEMIC_FIELDS = (
    "cia_1_mark",
    "cia_2_mark",
    "present_today",
    "leave_taken",
)

MISSING_REGISTER_NO = "register_no missing"


@dataclass
class StudentRow:
    """One normalized sheet row."""
    row_number: int
    register_no: str = ""
    name: str = ""
    father_name: str = ""
    mother_name: str = ""
    address: str = ""
    class_name: str = ""
    year: str = ""
    department: str = ""
    email: str = ""
    phone_number: str = ""
    profile_image_url: str = ""
    cia_1_mark: Optional[Number] = None
    cia_2_mark: Optional[Number] = None
    present_today: Optional[Number] = None
    leave_taken: Optional[Number] = None

    def string_value(self, field_name: str) -> str:
        """Read a string field by its store column name."""
        return getattr(self, "class_name" if field_name == "class" else field_name)


@dataclass
class FailedRow:
    row_number: int
    reason: str


@dataclass
class NormalizationResult:
    """Rows split into those that can be written and those that cannot."""
    total_rows: int = 0
    valid: List[StudentRow] = field(default_factory=list)
    failed: List[FailedRow] = field(default_factory=list)


def _cell(header_index: Dict[str, int], row: Sequence[str], key: str) -> Optional[str]:
    position = header_index.get(key)
    if position is None or position >= len(row):
        return None
    return row[position]


def read_string(header_index: Dict[str, int], row: Sequence[str], key: str) -> str:
    """Trimmed cell value, "" when the column is absent or the cell blank."""
    value = _cell(header_index, row, key)
    if value is None:
        return ""
    return str(value).strip()


def read_number(header_index: Dict[str, int], row: Sequence[str], key: str) -> Optional[Number]:
    """
    Numeric cell value, None when absent, blank, unparseable or non-finite.

    Integral values come back as int so payloads stay tidy.
    """
    raw = read_string(header_index, row, key)
    if raw == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return int(value) if value.is_integer() else value


def normalize_row(
    header_index: Dict[str, int],
    row: Sequence[str],
    row_number: int,
    events: Optional[EventSink] = None,
) -> StudentRow:
    """
    Map one raw row onto a StudentRow.

    Args:
        header_index: Canonical field -> column position
        row: Raw cells
        row_number: 1-based sheet row number (header is row 1)
        events: Sink for the department fallback event
    """
    events = events or NullEventSink()

    strings = {key: read_string(header_index, row, key) for key in STRING_FIELDS}
    numbers = {key: read_number(header_index, row, key) for key in ACADEMIC_FIELDS}

    class_name = strings.pop("class")
    if not strings["department"] and class_name:
        strings["department"] = class_name
        events.emit(FallbackApplied(
            row_number=row_number,
            register_no=strings["register_no"] or "(unknown)",
            department=class_name,
        ))

    return StudentRow(row_number=row_number, class_name=class_name, **strings, **numbers)


def validate_row(row: StudentRow) -> List[str]:
    """Soft validation: the list of warnings for a row."""
    warnings = []
    if not row.register_no:
        warnings.append(MISSING_REGISTER_NO)
    if not row.name:
        warnings.append("name missing")
    if not row.department:
        warnings.append("department missing")
    return warnings


def normalize_rows(
    header_index: Dict[str, int],
    table: ParsedTable,
    events: Optional[EventSink] = None,
) -> NormalizationResult:
    """
    Normalize and validate every data row of a table.

    Rows without register_no are routed to `failed`; every other row is
    valid, warnings or not.
    """
    events = events or NullEventSink()
    result = NormalizationResult(total_rows=len(table.rows))

    for offset, raw in enumerate(table.rows):
        row_number = offset + 2
        row = normalize_row(header_index, raw, row_number, events)

        warnings = validate_row(row)
        if warnings:
            events.emit(RowWarning(row_number=row_number, warnings=warnings))

        if not row.register_no:
            result.failed.append(FailedRow(row_number=row_number, reason=MISSING_REGISTER_NO))
            events.emit(RowSkipped(row_number=row_number, reason=MISSING_REGISTER_NO))
            continue

        result.valid.append(row)

    return result
