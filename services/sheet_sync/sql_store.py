"""
PostgreSQL implementation of the student store.

Uses SQLAlchemy Core with INSERT ... ON CONFLICT (register_no) DO UPDATE.
Each upsert batch runs in its own transaction.
"""

import time
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import (
    Column, DateTime, Float, MetaData, Numeric, String, Table, Text,
    case, delete, select, text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from services._common.db.connector import get_engine, upsert
from services._common.log_config import log_database_operation
from .store import (
    IDENTITY_FIELD,
    LIKE_ESCAPE,
    PersistenceError,
    StudentStore,
    escape_like,
    group_by_columns,
)

logger = structlog.get_logger(__name__)


def build_students_table(name: str = "students", metadata: Optional[MetaData] = None) -> Table:
    """Table definition matching the dashboard's Student record."""
    return Table(
        name,
        metadata or MetaData(),
        Column("register_no", String, primary_key=True),
        Column("name", Text),
        Column("father_name", Text),
        Column("mother_name", Text),
        Column("address", Text),
        Column("class", Text),
        Column("year", Text),
        Column("department", Text),
        Column("cia_1_mark", Float),
        Column("cia_2_mark", Float),
        Column("present_today", Float),
        Column("leave_taken", Float),
        Column("attendance_percentage", Numeric(5, 2, asdecimal=False)),
        Column("email", Text),
        Column("phone_number", Text),
        Column("profile_image_url", Text),
        Column("last_updated", DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP")),
        Column("created_at", DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP")),
    )


class SqlStudentStore(StudentStore):
    """Student store backed by a PostgreSQL table."""

    def __init__(self, engine: Engine, table: Optional[Table] = None):
        self.engine = engine
        self.table = table if table is not None else build_students_table()

    @classmethod
    def from_dsn(cls, dsn: str, table_name: str = "students") -> "SqlStudentStore":
        if dsn.startswith("postgres://"):
            dsn = "postgresql://" + dsn[len("postgres://"):]
        if dsn.startswith("postgresql://"):
            dsn = "postgresql+psycopg://" + dsn[len("postgresql://"):]
        return cls(get_engine(dsn), build_students_table(table_name))

    def create_schema(self) -> None:
        """Create the table if it does not exist."""
        self.table.metadata.create_all(self.engine, tables=[self.table])

    def close(self) -> None:
        self.engine.dispose()

    def upsert_batch(self, payloads: List[Dict[str, Any]], on_conflict: str = IDENTITY_FIELD) -> int:
        start = time.monotonic()
        try:
            with self.engine.begin() as conn:
                for group in group_by_columns(payloads):
                    conn.execute(upsert(self.table, on_conflict, group))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Upsert failed: {e}") from e

        log_database_operation(
            logger, "UPSERT", table=self.table.name,
            duration_ms=(time.monotonic() - start) * 1000, rows_affected=len(payloads),
        )
        return len(payloads)

    def select_keys(self) -> List[str]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(self.table.c.register_no)).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Fetch existing keys failed: {e}") from e
        return [key.strip() for key in rows if key and key.strip()]

    def delete_keys(self, keys: List[str]) -> int:
        if not keys:
            return 0
        start = time.monotonic()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    delete(self.table).where(self.table.c.register_no.in_(keys))
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Delete missing students failed: {e}") from e

        log_database_operation(
            logger, "DELETE", table=self.table.name,
            duration_ms=(time.monotonic() - start) * 1000, rows_affected=result.rowcount,
        )
        return len(keys)

    def delete_all(self) -> None:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(self.table))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Delete all students failed: {e}") from e
        log_database_operation(logger, "DELETE", table=self.table.name, rows_affected=result.rowcount)

    def get_student(self, register_no: str) -> Optional[Dict[str, Any]]:
        stmt = select(self.table).where(self.table.c.register_no == register_no.strip())
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Fetch student failed: {e}") from e
        return dict(row) if row else None

    def search_students(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        needle = escape_like(query.strip())
        if not needle:
            return []
        column = self.table.c.register_no
        prefix_first = case((column.ilike(f"{needle}%", escape=LIKE_ESCAPE), 0), else_=1)
        stmt = (
            select(self.table)
            .where(column.ilike(f"%{needle}%", escape=LIKE_ESCAPE))
            .order_by(prefix_first, column)
            .limit(limit)
        )
        try:
            with self.engine.connect() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Search students failed: {e}") from e
