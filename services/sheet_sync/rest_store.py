"""
Supabase (PostgREST) implementation of the student store.

Writes go through the REST API with the service role key:
- upsert: POST ?on_conflict=register_no, Prefer: resolution=merge-duplicates
- keys:   GET ?select=register_no, paged with limit/offset
- delete: DELETE ?register_no=in.(...) or ?register_no=not.is.null
"""

import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from services._common.log_config import log_database_operation
from .store import IDENTITY_FIELD, PersistenceError, StudentStore, escape_like, group_by_columns

logger = structlog.get_logger(__name__)

KEY_PAGE_SIZE = 1000
DELETE_CHUNK_SIZE = 200


def _quote_in_value(value: str) -> str:
    """Quote a value for a PostgREST in.(...) list."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class RestStudentStore(StudentStore):
    """Student store backed by a PostgREST endpoint."""

    def __init__(
        self,
        endpoint: str,
        service_role_key: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            endpoint: Table URL, e.g. https://<project>.supabase.co/rest/v1/students
            service_role_key: Write credential
            timeout: Request timeout in seconds
            client: Preconfigured httpx client (tests)
        """
        self.endpoint = endpoint
        self.table = endpoint.rstrip("/").rsplit("/", 1)[-1]
        self._client = client or httpx.Client(
            timeout=timeout,
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, action: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, self.endpoint, **kwargs)
        except httpx.HTTPError as e:
            raise PersistenceError(f"{action} failed: {e}") from e

        if not response.is_success:
            raise PersistenceError(
                f"{action} failed: HTTP {response.status_code} {response.text[:300]}"
            )
        return response

    def upsert_batch(self, payloads: List[Dict[str, Any]], on_conflict: str = IDENTITY_FIELD) -> int:
        start = time.monotonic()
        written = 0
        for group in group_by_columns(payloads):
            self._request(
                "POST",
                "Upsert",
                params={"on_conflict": on_conflict},
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
                json=group,
            )
            written += len(group)

        log_database_operation(
            logger, "UPSERT", table=self.table,
            duration_ms=(time.monotonic() - start) * 1000, rows_affected=written,
        )
        return written

    def select_keys(self) -> List[str]:
        keys: List[str] = []
        offset = 0
        while True:
            response = self._request(
                "GET",
                "Fetch existing keys",
                params={
                    "select": IDENTITY_FIELD,
                    "order": IDENTITY_FIELD,
                    "limit": KEY_PAGE_SIZE,
                    "offset": offset,
                },
            )
            page = response.json() or []
            keys.extend(str(item.get(IDENTITY_FIELD) or "").strip() for item in page)
            if len(page) < KEY_PAGE_SIZE:
                break
            offset += KEY_PAGE_SIZE

        return [key for key in keys if key]

    def delete_keys(self, keys: List[str]) -> int:
        start = time.monotonic()
        for i in range(0, len(keys), DELETE_CHUNK_SIZE):
            chunk = keys[i:i + DELETE_CHUNK_SIZE]
            in_list = ",".join(_quote_in_value(key) for key in chunk)
            self._request(
                "DELETE",
                "Delete missing students",
                params={IDENTITY_FIELD: f"in.({in_list})"},
            )

        log_database_operation(
            logger, "DELETE", table=self.table,
            duration_ms=(time.monotonic() - start) * 1000, rows_affected=len(keys),
        )
        return len(keys)

    def delete_all(self) -> None:
        # PostgREST refuses unfiltered deletes
        self._request(
            "DELETE",
            "Delete all students",
            params={IDENTITY_FIELD: "not.is.null"},
        )
        log_database_operation(logger, "DELETE", table=self.table, scope="all")

    def get_student(self, register_no: str) -> Optional[Dict[str, Any]]:
        response = self._request(
            "GET",
            "Fetch student",
            params={"select": "*", IDENTITY_FIELD: f"eq.{register_no.strip()}", "limit": 1},
        )
        rows = response.json() or []
        return rows[0] if rows else None

    def search_students(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        # PostgREST turns every * into %, so it can not be escaped
        needle = escape_like(query.strip().replace("*", ""))
        if not needle:
            return []

        # prefix matches first, substring matches fill what is left
        rows = self._search(f"ilike.{needle}*", limit)
        if len(rows) >= limit:
            return rows[:limit]

        seen = {row.get(IDENTITY_FIELD) for row in rows}
        for row in self._search(f"ilike.*{needle}*", limit + len(rows)):
            if row.get(IDENTITY_FIELD) not in seen:
                rows.append(row)
        return rows[:limit]

    def _search(self, pattern: str, limit: int) -> List[Dict[str, Any]]:
        response = self._request(
            "GET",
            "Search students",
            params={
                "select": "*",
                IDENTITY_FIELD: pattern,
                "order": IDENTITY_FIELD,
                "limit": limit,
            },
        )
        return list(response.json() or [])
