"""
Sync events emitted during a run.

Pipeline stages report what they did through an EventSink instead of
writing log lines directly. The default sink renders events with
structlog; tests use the recording sink to assert on them.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Type, TypeVar

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SyncEvent:
    """Base class for all sync events."""

    name = "sync_event"
    level = "info"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FetchCompleted(SyncEvent):
    """Source rows were fetched."""
    strategy: str
    raw_rows: int

    name = "fetch_completed"


@dataclass(frozen=True)
class HeadersResolved(SyncEvent):
    """Header row mapped to canonical fields."""
    fields: List[str] = field(default_factory=list)

    name = "headers_resolved"
    level = "debug"


@dataclass(frozen=True)
class FallbackApplied(SyncEvent):
    """Department inherited the class value."""
    row_number: int
    register_no: str
    department: str

    name = "fallback_applied"


@dataclass(frozen=True)
class RowWarning(SyncEvent):
    """Soft validation problems on a row that is still processed."""
    row_number: int
    warnings: List[str] = field(default_factory=list)

    name = "row_warning"
    level = "warning"


@dataclass(frozen=True)
class RowSkipped(SyncEvent):
    """Row excluded from the upsert and from the source key set."""
    row_number: int
    reason: str

    name = "row_skipped"
    level = "warning"


@dataclass(frozen=True)
class AcademicGroupOmitted(SyncEvent):
    """Blank academic row; stored academic values are preserved."""
    register_no: str

    name = "academic_group_omitted"


@dataclass(frozen=True)
class DeletionPlanned(SyncEvent):
    """Stale keys computed against the store."""
    stored_keys: int
    source_keys: int
    stale_keys: int

    name = "deletion_planned"


@dataclass(frozen=True)
class FullMirrorDeletion(SyncEvent):
    """Source had no keys; every stored row is being deleted."""

    name = "full_mirror_deletion"
    level = "warning"


@dataclass(frozen=True)
class BatchCommitted(SyncEvent):
    """One upsert chunk was written."""
    batch_number: int
    rows: int
    total_committed: int

    name = "batch_committed"


@dataclass(frozen=True)
class RunSummary(SyncEvent):
    """Final counts of a completed run."""
    total_rows: int
    processed_rows: int
    failed_rows: int
    deleted_rows: int
    duration_ms: int

    name = "run_summary"


@dataclass(frozen=True)
class RunAborted(SyncEvent):
    """The run stopped on an unrecoverable error."""
    state: str
    error_kind: str
    error: str

    name = "run_aborted"
    level = "error"


E = TypeVar("E", bound=SyncEvent)


class EventSink:
    """Receives sync events. Subclasses decide where they go."""

    def emit(self, event: SyncEvent) -> None:
        raise NotImplementedError


class StructlogEventSink(EventSink):
    """Renders each event as one structured log entry."""

    def __init__(self, log: Optional[Any] = None):
        self._log = log or logger

    def emit(self, event: SyncEvent) -> None:
        getattr(self._log, event.level)(event.name, **event.to_dict())


class RecordingEventSink(EventSink):
    """Keeps events in memory, optionally forwarding them to another sink."""

    def __init__(self, forward_to: Optional[EventSink] = None):
        self.events: List[SyncEvent] = []
        self._forward_to = forward_to

    def emit(self, event: SyncEvent) -> None:
        self.events.append(event)
        if self._forward_to is not None:
            self._forward_to.emit(event)

    def of_type(self, event_type: Type[E]) -> List[E]:
        """Return recorded events of one type, in emission order."""
        return [e for e in self.events if isinstance(e, event_type)]


class NullEventSink(EventSink):
    """Discards events."""

    def emit(self, event: SyncEvent) -> None:
        return None
