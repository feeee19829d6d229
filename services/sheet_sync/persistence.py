"""
Write side of the sync: chunked upsert and full-mirror deletion.

Both operate on a StudentStore passed in by the caller. Neither is
transactional across calls: if an upsert batch fails after the deletion
pass has run, deleted rows stay deleted and committed batches stay
committed.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, TypeVar

import structlog

from .events import BatchCommitted, DeletionPlanned, EventSink, FullMirrorDeletion, NullEventSink
from .patch import StudentPatch
from .store import IDENTITY_FIELD, StudentStore

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 500

T = TypeVar("T")


@dataclass
class DeletionResult:
    """Outcome of the reconciliation delete pass."""
    full_mirror: bool = False
    deleted_keys: List[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_keys)


def iter_batches(items: Iterable[T], size: int = DEFAULT_BATCH_SIZE) -> Iterator[List[T]]:
    """
    Lazily yield consecutive lists of at most `size` items.

    >>> list(iter_batches([1, 2, 3], size=2))
    [[1, 2], [3]]
    """
    if size < 1:
        raise ValueError("batch size must be at least 1")

    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch


def upsert_students(
    store: StudentStore,
    patches: Iterable[StudentPatch],
    batch_size: int = DEFAULT_BATCH_SIZE,
    events: Optional[EventSink] = None,
) -> int:
    """
    Upsert patches in order, one store call per batch.

    The first failing batch aborts the remaining ones; earlier batches
    are not rolled back.

    Returns:
        Number of rows written

    Raises:
        PersistenceError: If a batch fails
    """
    events = events or NullEventSink()
    committed = 0

    for number, batch in enumerate(iter_batches(patches, batch_size), start=1):
        payloads = merge_duplicate_keys(patch.to_payload() for patch in batch)
        logger.debug("Upsert payload preview", batch_number=number, preview=payloads[:3])

        store.upsert_batch(payloads, on_conflict=IDENTITY_FIELD)

        committed += len(batch)
        events.emit(BatchCommitted(batch_number=number, rows=len(batch), total_committed=committed))

    return committed


def merge_duplicate_keys(payloads: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Collapse payloads sharing an identity key into one, in sheet order.

    The key keeps its first position; later payloads are applied on top,
    so the last row wins for every column it sets. One statement can not
    touch the same key twice.

    >>> merge_duplicate_keys([{"register_no": "S1", "name": "OLD"}, {"register_no": "S1", "name": "NEW"}])
    [{'register_no': 'S1', 'name': 'NEW'}]
    """
    merged: Dict[str, Dict[str, Any]] = {}
    for payload in payloads:
        key = payload[IDENTITY_FIELD]
        if key in merged:
            merged[key].update(payload)
        else:
            merged[key] = dict(payload)
    return list(merged.values())


def collect_source_keys(keys: Iterable[Optional[str]]) -> Set[str]:
    """Trimmed, non-blank, deduplicated identity keys."""
    return {str(key).strip() for key in keys if key is not None and str(key).strip()}


def compute_stale_keys(stored_keys: Sequence[str], source_keys: Set[str]) -> List[str]:
    """
    Keys present in the store but absent from the source.

    Keeps the store's order and drops duplicates.

    >>> compute_stale_keys(["A", "B", "C"], {"B", "C", "D"})
    ['A']
    """
    stale: List[str] = []
    seen: Set[str] = set()
    for key in stored_keys:
        key = key.strip()
        if key and key not in source_keys and key not in seen:
            stale.append(key)
            seen.add(key)
    return stale


def delete_missing_students(
    store: StudentStore,
    source_keys: Iterable[Optional[str]],
    events: Optional[EventSink] = None,
) -> DeletionResult:
    """
    Make the store's key set mirror the source.

    An empty source key set deletes every stored row.

    Raises:
        PersistenceError: If reading keys or deleting fails
    """
    events = events or NullEventSink()
    unique_keys = collect_source_keys(source_keys)

    if not unique_keys:
        events.emit(FullMirrorDeletion())
        stored = store.select_keys()
        store.delete_all()
        return DeletionResult(full_mirror=True, deleted_keys=list(stored))

    stored = store.select_keys()
    stale = compute_stale_keys(stored, unique_keys)
    events.emit(DeletionPlanned(
        stored_keys=len(stored),
        source_keys=len(unique_keys),
        stale_keys=len(stale),
    ))
    if not stale:
        return DeletionResult()

    store.delete_keys(stale)
    return DeletionResult(deleted_keys=stale)
