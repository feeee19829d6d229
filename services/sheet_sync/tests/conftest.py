"""
Pytest fixtures for sheet_sync tests.

Unit tests run against an in-memory StudentStore. Database tests
require DATABASE_URL and are skipped otherwise.
"""

import os
from typing import Any, Dict, List, Optional

import pytest

from services.sheet_sync.events import RecordingEventSink
from services.sheet_sync.fetcher import FetchStrategy, SheetPayload
from services.sheet_sync.settings import SheetSyncSettings, load_settings
from services.sheet_sync.store import IDENTITY_FIELD, PersistenceError, StudentStore

SERVICE_ROLE_KEY = "service-role-" + "x" * 60


class InMemoryStudentStore(StudentStore):
    """
    Dict-backed store with the same merge semantics as the real ones:
    columns missing from a payload keep their stored value.
    """

    def __init__(self, rows: Optional[Dict[str, Dict[str, Any]]] = None, fail_on_batch: Optional[int] = None):
        self.rows: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (rows or {}).items()}
        self.fail_on_batch = fail_on_batch
        self.upsert_calls: List[List[Dict[str, Any]]] = []
        self.deleted: List[List[str]] = []
        self.delete_all_calls = 0
        self.closed = False

    def upsert_batch(self, payloads, on_conflict=IDENTITY_FIELD):
        self.upsert_calls.append([dict(p) for p in payloads])
        if self.fail_on_batch is not None and len(self.upsert_calls) == self.fail_on_batch:
            raise PersistenceError("Upsert failed: simulated outage")
        for payload in payloads:
            self.rows.setdefault(payload[on_conflict], {}).update(payload)
        return len(payloads)

    def select_keys(self):
        return list(self.rows.keys())

    def delete_keys(self, keys):
        self.deleted.append(list(keys))
        for key in keys:
            self.rows.pop(key, None)
        return len(keys)

    def delete_all(self):
        self.delete_all_calls += 1
        self.rows.clear()

    def get_student(self, register_no):
        row = self.rows.get(register_no.strip())
        return dict(row) if row is not None else None

    def search_students(self, query, limit=20):
        needle = query.strip().lower()
        if not needle:
            return []
        matches = [k for k in self.rows if needle in k.lower()]
        matches.sort(key=lambda k: (not k.lower().startswith(needle), k))
        return [dict(self.rows[k]) for k in matches[:limit]]

    def close(self):
        self.closed = True


def make_settings(**overrides) -> SheetSyncSettings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "_env_file": None,
        "google_sheet_id": "sheet-123",
        "google_api_key": None,
        "google_service_account_json": None,
        "google_service_account_json_path": None,
        "supabase_url": "https://project.supabase.co",
        "supabase_service_role_key": SERVICE_ROLE_KEY,
        "database_url": None,
        "http_backoff_seconds": 0,
    }
    values.update(overrides)
    return load_settings(**values)


def values_payload(values) -> SheetPayload:
    return SheetPayload(strategy=FetchStrategy.API_KEY, values=values)


def csv_payload(text: str) -> SheetPayload:
    return SheetPayload(strategy=FetchStrategy.CSV_EXPORT, csv_text=text)


@pytest.fixture
def settings() -> SheetSyncSettings:
    return make_settings()


@pytest.fixture
def store() -> InMemoryStudentStore:
    return InMemoryStudentStore()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture(scope="module")
def database_url() -> str:
    """Skip unless a PostgreSQL integration database is available."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("requires PostgreSQL integration DB (set DATABASE_URL)")
    return url
