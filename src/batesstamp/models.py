# src/batesstamp/models.py
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .bates import BatesNumber


@dataclass
class EndorseTask:
    """Represents a single file to be stamped."""
    source: Path
    destination: Path
    starting_bates: BatesNumber


@dataclass
class TaskResult:
    """Outcome of one successfully stamped file."""
    source: str
    destination: str
    page_count: int


@dataclass
class TaskFailure:
    source: str
    error: BaseException


@dataclass
class BatchReport:
    """Aggregated output of one sync or async run over a file set."""
    mode: str
    results: List[TaskResult] = field(default_factory=list)
    failures: List[TaskFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def total_pages(self) -> int:
        return sum(r.page_count for r in self.results)

    @property
    def ok(self) -> bool:
        return not self.failures
