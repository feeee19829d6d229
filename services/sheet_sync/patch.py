"""
Partial update policy expressed as a sparse patch.

A StudentPatch has one slot per store column. A slot either holds a value
to write or UNSET, meaning "leave whatever the store has". Only set slots
reach the write payload, so repeated runs against a sparsely filled
sheet enrich stored records without erasing them.

Rules:
- register_no is always set
- profile and contact strings are set only when non-blank
- the academic group (four numbers + attendance_percentage) is all set,
  with a freshly derived percentage, when any of the four numbers is
  present; otherwise every slot of the group is UNSET
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from .attendance import derive_attendance_percentage
from .events import AcademicGroupOmitted, EventSink, NullEventSink
from .normalize import ACADEMIC_FIELDS, STRING_FIELDS, StudentRow


class _Unset:
    """Marker for a slot that must not be written."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

ACADEMIC_GROUP = ACADEMIC_FIELDS + ("attendance_percentage",)


@dataclass(frozen=True)
class StudentPatch:
    """Sparse write for one student, keyed by register_no."""
    register_no: str
    name: Any = UNSET
    father_name: Any = UNSET
    mother_name: Any = UNSET
    address: Any = UNSET
    class_: Any = UNSET
    year: Any = UNSET
    department: Any = UNSET
    email: Any = UNSET
    phone_number: Any = UNSET
    profile_image_url: Any = UNSET
    cia_1_mark: Any = UNSET
    cia_2_mark: Any = UNSET
    present_today: Any = UNSET
    leave_taken: Any = UNSET
    attendance_percentage: Any = UNSET

    @staticmethod
    def column_name(attribute: str) -> str:
        return "class" if attribute == "class_" else attribute

    def set_fields(self) -> List[str]:
        """Store column names of the slots that will be written."""
        return [
            self.column_name(f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        ]

    def is_set(self, column: str) -> bool:
        attribute = "class_" if column == "class" else column
        return getattr(self, attribute) is not UNSET

    def to_payload(self) -> Dict[str, Any]:
        """Write payload containing only the set slots."""
        return {
            self.column_name(f.name): getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


def academic_group_supplied(row: StudentRow) -> bool:
    """True when any of the four academic numbers is present."""
    return any(getattr(row, name) is not None for name in ACADEMIC_FIELDS)


def build_patch(row: StudentRow, events: Optional[EventSink] = None) -> StudentPatch:
    """
    Apply the partial update policy to a normalized row.

    Args:
        row: Normalized row with a non-blank register_no
        events: Sink for the academic-group omission event
    """
    events = events or NullEventSink()
    slots: Dict[str, Any] = {}

    for column in STRING_FIELDS:
        if column == "register_no":
            continue
        value = row.string_value(column)
        if value:
            slots["class_" if column == "class" else column] = value

    if academic_group_supplied(row):
        for column in ACADEMIC_FIELDS:
            slots[column] = getattr(row, column)
        slots["attendance_percentage"] = derive_attendance_percentage(
            row.present_today or 0,
            row.leave_taken or 0,
        )
    else:
        events.emit(AcademicGroupOmitted(register_no=row.register_no))

    return StudentPatch(register_no=row.register_no, **slots)
