"""
Stage outcomes.

Each pipeline stage runs through run_stage(), which returns a StageOutcome
holding either the stage's value or the error together with its kind.
The orchestrator reads the kind to decide between continuing and aborting.
Exceptions outside the known taxonomy are not caught.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, Tuple, Type, TypeVar

from .fetcher import SourceError
from .parser import ParseError
from .settings import ConfigurationError
from .store import PersistenceError

T = TypeVar("T")


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    SOURCE = "source"
    PARSE = "parse"
    PERSISTENCE = "persistence"


ERROR_KINDS: Tuple[Tuple[Type[Exception], ErrorKind], ...] = (
    (ConfigurationError, ErrorKind.CONFIGURATION),
    (SourceError, ErrorKind.SOURCE),
    (ParseError, ErrorKind.PARSE),
    (PersistenceError, ErrorKind.PERSISTENCE),
)


def classify_error(exc: BaseException) -> Optional[ErrorKind]:
    """Kind of a known pipeline error, None for anything else."""
    for error_type, kind in ERROR_KINDS:
        if isinstance(exc, error_type):
            return kind
    return None


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Success value or tagged error of one stage."""
    value: Optional[T] = None
    error: Optional[Exception] = None
    kind: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: T) -> "StageOutcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, error: Exception) -> "StageOutcome[T]":
        return cls(error=error, kind=kind)


def run_stage(fn: Callable[..., T], *args: Any, **kwargs: Any) -> StageOutcome[T]:
    """Call a stage function and wrap its result or known error."""
    try:
        value = fn(*args, **kwargs)
    except tuple(error_type for error_type, _ in ERROR_KINDS) as e:
        return StageOutcome.failure(classify_error(e), e)
    return StageOutcome.success(value)
