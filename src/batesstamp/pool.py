# src/batesstamp/pool.py
from __future__ import annotations

import functools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from .config import EndorserConfig
from .models import EndorseTask, TaskResult
from .worker import endorse_isolated

logger = logging.getLogger("batesstamp")

Runner = Callable[[EndorseTask], TaskResult]


class EndorsingPool:
    """
    Bounded pool of blocking workers in front of the isolated endorser.

    submit() never blocks. Tasks wait in FIFO order until one of `capacity`
    slots is free; each admitted task forks its own process and holds the slot
    until that process answered and was joined. The pool owns no long-lived
    worker processes.
    """

    def __init__(
        self,
        capacity: int = 2,
        endorser_config: Optional[EndorserConfig] = None,
        *,
        receive_timeout: Optional[float] = None,
        poll_interval: float = 0.2,
        log_queue: Optional[Any] = None,
        runner: Optional[Runner] = None,
    ):
        if capacity < 1:
            raise ValueError(f"Pool capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._runner: Runner = runner or functools.partial(
            endorse_isolated,
            endorser_config=endorser_config or EndorserConfig(),
            timeout=receive_timeout,
            poll_interval=poll_interval,
            log_queue=log_queue,
        )
        self._gate = threading.BoundedSemaphore(capacity)
        self._executor = ThreadPoolExecutor(max_workers=capacity, thread_name_prefix="endorsing-pool")
        self._lock = threading.Lock()
        self._active = 0
        self._peak_active = 0
        self._closed = False

    def __enter__(self) -> "EndorsingPool":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True)

    @property
    def active(self) -> int:
        """Tasks currently holding a slot."""
        with self._lock:
            return self._active

    @property
    def peak_active(self) -> int:
        with self._lock:
            return self._peak_active

    def submit(self, task: EndorseTask) -> "Future[TaskResult]":
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot submit to a pool that has been shut down")
            return self._executor.submit(self._run, task)

    def shutdown(self, wait: bool = True):
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def _run(self, task: EndorseTask) -> TaskResult:
        with self._gate:
            with self._lock:
                self._active += 1
                self._peak_active = max(self._peak_active, self._active)
            try:
                logger.debug("Dispatching %s (%d/%d slots busy)", task.source, self.active, self.capacity)
                return self._runner(task)
            finally:
                with self._lock:
                    self._active -= 1
