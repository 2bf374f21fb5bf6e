# src/batesstamp/__init__.py
"""Bates numbering for multi-page images, with a pool of forked workers."""

from .bates import BatesNumber
from .config import EndorserConfig, RunConfig
from .annotator import Endorser
from .discovery import FileExplorer
from .dispatcher import Dispatcher
from .exceptions import (
    BatesStampError,
    InvalidSequenceValue,
    ChannelTransportError,
    ProcessSpawnError,
    ChildCrashed,
    AnnotationError,
)
from .models import EndorseTask, TaskResult, TaskFailure, BatchReport
from .pool import EndorsingPool
from .worker import endorse_isolated

__version__ = "0.1.0"

__all__ = [
    "BatesNumber",
    "EndorserConfig",
    "RunConfig",
    "Endorser",
    "FileExplorer",
    "Dispatcher",
    "BatesStampError",
    "InvalidSequenceValue",
    "ChannelTransportError",
    "ProcessSpawnError",
    "ChildCrashed",
    "AnnotationError",
    "EndorseTask",
    "TaskResult",
    "TaskFailure",
    "BatchReport",
    "EndorsingPool",
    "endorse_isolated",
]
