"""
Run summary for sheet sync operations.

The summary exists only for the duration of a run: it is emitted as a
log event and, on request, written to a JSON file for CI logs.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from .normalize import FailedRow


@dataclass
class SyncSummary:
    """Counts of a completed run."""
    total_rows: int = 0
    processed_rows: int = 0
    failed_rows: int = 0
    deleted_rows: int = 0
    duration_ms: int = 0
    strategy: str = ""
    failures: List[FailedRow] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert summary to dictionary for JSON serialization."""
        return {
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "failed_rows": self.failed_rows,
            "deleted_rows": self.deleted_rows,
            "duration_ms": self.duration_ms,
            "strategy": self.strategy,
            "failures": [
                {"row_number": f.row_number, "reason": f.reason} for f in self.failures
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def write_summary(summary: SyncSummary, path: Union[str, Path]) -> Path:
    """Write the summary as JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(summary.to_json(), encoding="utf-8")
    return path
