"""Data models for SubFix."""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class SubtitleEntry:
    """A single decoded subtitle cue. Times are in milliseconds."""
    position: int  # 1-based, stable within the whole file
    start_ms: int
    end_ms: int
    text: str

    def with_text(self, text: str) -> "SubtitleEntry":
        """Returns a copy of this entry carrying `text`; timing and position are kept."""
        return replace(self, text=text)


@dataclass(frozen=True)
class Batch:
    """
    A contiguous, order-preserving slice of subtitle entries.

    Entries are addressed by a 1-based local index (re-numbered from 1 within
    the batch); that index, not the global position, is the correlation key
    exchanged with the model.
    """
    number: int  # 1-based batch number within the run
    entries: Tuple[SubtitleEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def indexed(self) -> Iterator[Tuple[int, SubtitleEntry]]:
        """Yields (local_index, entry) pairs in local-index order."""
        return enumerate(self.entries, start=1)

    def with_entries(self, entries: Sequence[SubtitleEntry]) -> "Batch":
        if len(entries) != len(self.entries):
            raise ValueError(f"Batch {self.number} must keep {len(self.entries)} entries, got {len(entries)}")
        return Batch(number=self.number, entries=tuple(entries))


def partition_batches(entries: Sequence[SubtitleEntry], batch_size: int) -> List[Batch]:
    """
    Splits entries into sequential, non-overlapping batches of `batch_size`.

    The last batch holds the remainder. An empty input yields no batches.

    Raises:
        ValueError: If batch_size is smaller than 1.
    """
    if batch_size < 1:
        raise ValueError(f"Batch size must be at least 1, got {batch_size}")
    return [
        Batch(number=i // batch_size + 1, entries=tuple(entries[i:i + batch_size]))
        for i in range(0, len(entries), batch_size)
    ]


def count_batches(entry_count: int, batch_size: int) -> int:
    return math.ceil(entry_count / batch_size) if entry_count else 0


class CorrectionMap:
    """
    Corrected texts keyed by local index for one batch.

    Keys are validated to lie in 1..batch_size; assigning a key twice
    overwrites the earlier text (last occurrence wins).
    """

    def __init__(self, batch_size: int):
        if batch_size < 0:
            raise ValueError(f"Batch size cannot be negative: {batch_size}")
        self.batch_size = batch_size
        self._texts: Dict[int, str] = {}

    def accepts(self, local_index: int) -> bool:
        return 1 <= local_index <= self.batch_size

    def set(self, local_index: int, text: str) -> None:
        if not self.accepts(local_index):
            raise KeyError(f"Local index {local_index} outside 1..{self.batch_size}")
        self._texts[local_index] = text

    def get(self, local_index: int) -> Optional[str]:
        return self._texts.get(local_index)

    def __contains__(self, local_index: object) -> bool:
        return local_index in self._texts

    def __len__(self) -> int:
        return len(self._texts)

    def items(self):
        return sorted(self._texts.items())


class EventKind(Enum):
    FILE_LOADED = "file_loaded"
    BATCH_STARTED = "batch_started"
    RETRY = "retry"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineEvent:
    """An operator-facing lifecycle event emitted by the correction pipeline."""
    kind: EventKind
    message: str
    progress: int
    timestamp: datetime = field(default_factory=datetime.now)

    def format_line(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"


class RunStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchPhase(Enum):
    BUILDING = "building"
    INVOKING = "invoking"
    RECONCILING = "reconciling"


@dataclass
class RunState:
    """Mutable record of one correction run, owned by the orchestrator."""
    status: RunStatus = RunStatus.IDLE
    phase: Optional[BatchPhase] = None
    total_entries: int = 0
    total_batches: int = 0
    completed_batches: int = 0
    current_batch: int = 0
    progress: int = 0
    processed: List[SubtitleEntry] = field(default_factory=list)
    log: List[str] = field(default_factory=list)
    output: Optional[str] = None  # encoded artifact, set only on completion
    error: Optional[str] = None
