"""
Header resolution: raw sheet labels to canonical field names.

Labels are normalized (lower-case, "_" and "-" read as spaces, whitespace
collapsed) and looked up in HEADER_ALIASES. Unknown labels still become
usable fields: their normalized form with spaces turned into underscores.

When two labels resolve to the same field, the later column wins.
"""

import re
from typing import Dict, List

# Canonical field name -> accepted labels
COLUMN_ALIASES: Dict[str, List[str]] = {
    "register_no": ["register no", "register_no", "reg no", "registration number"],
    "name": ["name"],
    "father_name": ["father name"],
    "mother_name": ["mother name"],
    "address": ["address"],
    "class": ["class"],
    "year": ["year"],
    "department": ["department"],
    "cia_1_mark": ["cia-1 mark", "cia 1 mark", "cia1"],
    "cia_2_mark": ["cia-2 mark", "cia 2 mark", "cia2"],
    "present_today": ["present to class (today)", "present today"],
    "leave_taken": ["leave taken"],
    "email": ["email", "mail"],
    "phone_number": ["phone number", "phone", "mobile"],
}

_SEPARATORS = re.compile(r"[_\-]")
_WHITESPACE = re.compile(r"\s+")


def normalize_header(label: str) -> str:
    """
    Normalize a header label for alias lookup.

    >>> normalize_header("  REGISTER_NO ")
    'register no'
    """
    result = _SEPARATORS.sub(" ", str(label).lower())
    return _WHITESPACE.sub(" ", result).strip()


# Normalized label -> canonical field name
HEADER_ALIASES: Dict[str, str] = {
    normalize_header(alias): canonical
    for canonical, aliases in COLUMN_ALIASES.items()
    for alias in aliases
}


def resolve_header(label: str) -> str:
    """Map one raw label to its canonical field name."""
    normalized = normalize_header(label)
    return HEADER_ALIASES.get(normalized, normalized.replace(" ", "_"))


def build_header_index(headers: List[str]) -> Dict[str, int]:
    """
    Build canonical field name -> column position.

    Duplicate resolutions keep the last column.
    """
    index: Dict[str, int] = {}
    for position, label in enumerate(headers):
        index[resolve_header(label)] = position
    return index
