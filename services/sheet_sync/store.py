"""
Destination store interface.

The engine needs four write-side operations (upsert by key, list keys,
delete keys, delete everything). The dashboard reads through the same
interface with exact-key and prefix/substring lookups.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .settings import SheetSyncSettings

IDENTITY_FIELD = "register_no"
LIKE_ESCAPE = "\\"


class PersistenceError(Exception):
    """A destination read, write or delete failed."""
    pass


class StudentStore(ABC):
    """Keyed store of student records."""

    @abstractmethod
    def upsert_batch(self, payloads: List[Dict[str, Any]], on_conflict: str = IDENTITY_FIELD) -> int:
        """
        Insert or update rows by key. Columns absent from a payload keep
        their stored value. Returns the number of rows written.
        """

    @abstractmethod
    def select_keys(self) -> List[str]:
        """Every identity key currently stored."""

    @abstractmethod
    def delete_keys(self, keys: List[str]) -> int:
        """Delete rows by key. Returns the number of keys requested."""

    @abstractmethod
    def delete_all(self) -> None:
        """Delete every row."""

    @abstractmethod
    def get_student(self, register_no: str) -> Optional[Dict[str, Any]]:
        """Exact-key lookup."""

    @abstractmethod
    def search_students(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Case-insensitive substring lookup on register_no, prefix matches first."""

    def close(self) -> None:
        return None


def group_by_columns(payloads: Iterable[Dict[str, Any]]) -> List[List[Dict[str, Any]]]:
    """
    Split payloads into groups that share exactly the same columns.

    Bulk inserts need uniform columns; grouping keeps omitted fields out
    of the statement instead of writing them as NULL. Group order follows
    first appearance.
    """
    groups: Dict[Tuple[str, ...], List[Dict[str, Any]]] = {}
    for payload in payloads:
        groups.setdefault(tuple(sorted(payload.keys())), []).append(payload)
    return list(groups.values())


def escape_like(value: str) -> str:
    """
    Escape LIKE wildcards so a search term matches literally.

    >>> escape_like("21_CS%")
    '21\\\\_CS\\\\%'
    """
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def create_store(settings: SheetSyncSettings) -> StudentStore:
    """Build the store for the configured destination."""
    if settings.database_url:
        from .sql_store import SqlStudentStore
        return SqlStudentStore.from_dsn(settings.database_url, table_name=settings.students_table)

    from .rest_store import RestStudentStore
    return RestStudentStore(
        endpoint=settings.rest_endpoint(),
        service_role_key=settings.supabase_service_role_key,
        timeout=settings.http_timeout,
    )
