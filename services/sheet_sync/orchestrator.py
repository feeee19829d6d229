"""
Orchestrator for the sheet -> store sync pipeline.

Coordinates the complete flow:
1. Fetch the sheet (strategy chosen from credentials)
2. Parse into header + rows (CSV path) and resolve headers
3. Normalize and validate rows, split valid/failed
4. Delete stored rows whose key is no longer in the sheet
5. Upsert valid rows as sparse patches, batch by batch
6. Summarize

This module:
- Sequences stages, no business logic of its own
- Receives the store as a dependency
- Aborts on the first stage error; no retries beyond the fetcher's
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import structlog

from services._common.client import HTTPClient
from .events import (
    EventSink,
    FetchCompleted,
    HeadersResolved,
    RunAborted,
    RunSummary,
    StructlogEventSink,
)
from .fetcher import SheetPayload, fetch_sheet
from .headers import build_header_index
from .normalize import normalize_rows
from .outcome import ErrorKind, StageOutcome, run_stage
from .parser import parse_payload
from .patch import build_patch
from .persistence import delete_missing_students, upsert_students
from .report import SyncSummary
from .settings import SheetSyncSettings
from .store import StudentStore

logger = structlog.get_logger(__name__)


class SyncState(str, Enum):
    FETCHING = "fetching"
    PARSING = "parsing"
    NORMALIZING = "normalizing"
    RECONCILING = "reconciling"
    UPSERTING = "upserting"
    SUMMARIZING = "summarizing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class SyncRunResult:
    """Terminal state of a run: a summary when done, an error when aborted."""
    state: SyncState
    summary: Optional[SyncSummary] = None
    error: Optional[Exception] = None
    error_kind: Optional[ErrorKind] = None
    failed_state: Optional[SyncState] = None
    states: List[SyncState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is SyncState.DONE

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


class SheetSyncOrchestrator:
    """Runs one sync of the configured sheet into a store."""

    def __init__(
        self,
        settings: SheetSyncSettings,
        store: StudentStore,
        client: Optional[HTTPClient] = None,
        events: Optional[EventSink] = None,
        fetcher: Optional[Callable[[SheetSyncSettings], SheetPayload]] = None,
    ):
        """
        Args:
            settings: Service settings
            store: Destination store (the only writer during the run)
            client: HTTP client for the source (built from settings if None)
            events: Event sink (structlog by default)
            fetcher: Replaces fetch_sheet, e.g. to read a local payload
        """
        self.settings = settings
        self.store = store
        self.events = events or StructlogEventSink()
        self._fetch = fetcher or (lambda s: fetch_sheet(s, client))
        self._states: List[SyncState] = []

    def _enter(self, state: SyncState) -> None:
        self._states.append(state)
        logger.debug("Sync state", state=state.value)

    def _abort(self, outcome: StageOutcome) -> SyncRunResult:
        failed_state = self._states[-1]
        self._enter(SyncState.ABORTED)
        self.events.emit(RunAborted(
            state=failed_state.value,
            error_kind=outcome.kind.value,
            error=str(outcome.error),
        ))
        return SyncRunResult(
            state=SyncState.ABORTED,
            error=outcome.error,
            error_kind=outcome.kind,
            failed_state=failed_state,
            states=list(self._states),
        )

    def run(self) -> SyncRunResult:
        """
        Execute the pipeline once.

        Returns:
            SyncRunResult in DONE (with summary) or ABORTED (with error) state
        """
        self._states = []
        start = time.monotonic()
        logger.info("Starting Google Sheet sync", sheet_id=self.settings.google_sheet_id)

        self._enter(SyncState.FETCHING)
        fetched = run_stage(self._fetch, self.settings)
        if not fetched.ok:
            return self._abort(fetched)
        payload: SheetPayload = fetched.value

        self._enter(SyncState.PARSING)
        parsed = run_stage(parse_payload, payload)
        if not parsed.ok:
            return self._abort(parsed)
        table = parsed.value
        header_index = build_header_index(table.headers)
        self.events.emit(FetchCompleted(strategy=payload.strategy.value, raw_rows=len(table.rows)))
        self.events.emit(HeadersResolved(fields=sorted(header_index)))

        self._enter(SyncState.NORMALIZING)
        normalized = normalize_rows(header_index, table, self.events)
        if normalized.total_rows == 0:
            logger.warning("No rows found in the sheet after parsing")

        self._enter(SyncState.RECONCILING)
        deletion = run_stage(
            delete_missing_students,
            self.store,
            [row.register_no for row in normalized.valid],
            self.events,
        )
        if not deletion.ok:
            return self._abort(deletion)

        self._enter(SyncState.UPSERTING)
        patches = (build_patch(row, self.events) for row in normalized.valid)
        upserted = run_stage(
            upsert_students,
            self.store,
            patches,
            self.settings.upsert_batch_size,
            self.events,
        )
        if not upserted.ok:
            return self._abort(upserted)

        self._enter(SyncState.SUMMARIZING)
        summary = SyncSummary(
            total_rows=normalized.total_rows,
            processed_rows=upserted.value,
            failed_rows=len(normalized.failed),
            deleted_rows=deletion.value.deleted_count,
            duration_ms=int((time.monotonic() - start) * 1000),
            strategy=payload.strategy.value,
            failures=normalized.failed,
        )
        self.events.emit(RunSummary(
            total_rows=summary.total_rows,
            processed_rows=summary.processed_rows,
            failed_rows=summary.failed_rows,
            deleted_rows=summary.deleted_rows,
            duration_ms=summary.duration_ms,
        ))

        self._enter(SyncState.DONE)
        return SyncRunResult(state=SyncState.DONE, summary=summary, states=list(self._states))
