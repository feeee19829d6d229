"""
Tests for the PostgreSQL student store.

Statement tests compile against the PostgreSQL dialect. Integration tests
require a PostgreSQL database (DATABASE_URL) and are skipped otherwise.
"""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from services._common.db.connector import upsert
from ..sql_store import SqlStudentStore, build_students_table
from ..store import PersistenceError


def compile_pg(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestStudentsTable:
    """Tests for the table definition."""

    def test_columns(self):
        table = build_students_table()

        assert table.name == "students"
        assert [c.name for c in table.primary_key.columns] == ["register_no"]
        for column in ("class", "attendance_percentage", "profile_image_url", "last_updated"):
            assert column in table.c

    def test_custom_name(self):
        assert build_students_table("pupils").name == "pupils"


class TestUpsertStatement:
    """Tests for the generated upsert SQL."""

    def test_updates_only_payload_columns(self):
        table = build_students_table()

        sql = compile_pg(upsert(table, "register_no", [{"register_no": "S1", "name": "Alice"}]))

        assert "ON CONFLICT (register_no) DO UPDATE" in sql
        assert "name = excluded.name" in sql
        assert "email" not in sql

    def test_key_only_payload_does_nothing(self):
        table = build_students_table()

        sql = compile_pg(upsert(table, "register_no", [{"register_no": "S1"}]))

        assert "DO NOTHING" in sql


class TestSearchStatement:
    """Tests for the generated search SQL."""

    def test_wildcards_in_query_match_literally(self):
        engine = MagicMock()
        conn = engine.connect.return_value.__enter__.return_value
        store = SqlStudentStore(engine)

        store.search_students(" 21_C%S ")

        compiled = conn.execute.call_args[0][0].compile(dialect=postgresql.dialect())
        assert str(compiled).count("ESCAPE") == 2
        params = list(compiled.params.values())
        assert "21\\_C\\%S%" in params
        assert "%21\\_C\\%S%" in params

    def test_blank_query_skips_database(self):
        engine = MagicMock()
        store = SqlStudentStore(engine)

        assert store.search_students("   ") == []
        engine.connect.assert_not_called()


class TestErrorTranslation:
    """Tests for SQLAlchemy errors surfacing as PersistenceError."""

    def test_upsert_failure(self):
        engine = MagicMock()
        engine.begin.side_effect = OperationalError("INSERT", {}, Exception("server closed"))
        store = SqlStudentStore(engine)

        with pytest.raises(PersistenceError, match="Upsert failed"):
            store.upsert_batch([{"register_no": "S1"}])

    def test_select_keys_failure(self):
        engine = MagicMock()
        engine.connect.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
        store = SqlStudentStore(engine)

        with pytest.raises(PersistenceError):
            store.select_keys()

    def test_search_failure(self):
        engine = MagicMock()
        engine.connect.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
        store = SqlStudentStore(engine)

        with pytest.raises(PersistenceError, match="Search students failed"):
            store.search_students("21")

    def test_delete_nothing(self):
        engine = MagicMock()
        store = SqlStudentStore(engine)

        assert store.delete_keys([]) == 0
        engine.begin.assert_not_called()


@pytest.mark.db
class TestSqlStudentStoreIntegration:
    """Round trips against a real PostgreSQL database."""

    @pytest.fixture
    def store(self, database_url):
        store = SqlStudentStore.from_dsn(database_url, table_name=f"students_test_{uuid.uuid4().hex[:8]}")
        store.create_schema()
        yield store
        store.table.drop(store.engine)
        store.close()

    def test_partial_update_preserves_columns(self, store):
        store.upsert_batch([{"register_no": "S1", "name": "Alice", "email": "a@x.io"}])
        store.upsert_batch([{"register_no": "S1", "name": "Alice B"}])

        student = store.get_student("S1")

        assert student["name"] == "Alice B"
        assert student["email"] == "a@x.io"

    def test_mixed_column_sets_in_one_batch(self, store):
        store.upsert_batch([
            {"register_no": "S1", "name": "Alice"},
            {"register_no": "S2"},
        ])

        assert sorted(store.select_keys()) == ["S1", "S2"]

    def test_delete_and_search(self, store):
        store.upsert_batch([{"register_no": k} for k in ("21CS01", "A21CS", "ZZ")])

        store.delete_keys(["ZZ"])
        result = store.search_students("21cs")

        assert [r["register_no"] for r in result] == ["21CS01", "A21CS"]

        store.delete_all()
        assert store.select_keys() == []

    def test_search_underscore_is_literal(self, store):
        store.upsert_batch([{"register_no": k} for k in ("21_CS", "21XCS")])

        assert [r["register_no"] for r in store.search_students("21_")] == ["21_CS"]
