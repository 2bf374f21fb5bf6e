# src/batesstamp/worker.py
"""
Isolated, process-per-task endorsing.

Every task gets its own forked child so that Pillow state is never shared
between concurrent tasks. Parent and child talk over a Channel: exactly one
request (source, destination) down, one response (page count or failure
tag) back.
"""
from __future__ import annotations

import logging
import multiprocessing as mp
import os
import threading
from pathlib import Path
from typing import Any, Optional

from .annotator import Endorser
from .bates import BatesNumber
from .config import EndorserConfig
from .exceptions import AnnotationError, ChannelTransportError, ProcessSpawnError
from .ipc import Channel
from .logger import configure_worker_logging
from .models import EndorseTask, TaskResult

logger = logging.getLogger("batesstamp")

# Seconds a child gets to exit on its own after answering
JOIN_GRACE = 5.0

# Held while a channel's child end is open in this process. A fork from another
# thread during that window would leak a copy of the child end into an unrelated worker.
_SPAWN_LOCK = threading.Lock()

_FORK = mp.get_context("fork")


def _child_main(
    channel: Channel,
    starting_bates: BatesNumber,
    endorser_config: EndorserConfig,
    log_queue: Optional[Any],
    request_timeout: Optional[float],
):
    """Entry point of the forked worker. Runs one task and exits."""
    channel.as_child()
    if log_queue is not None:
        configure_worker_logging(log_queue)

    try:
        try:
            source, destination = channel.receive_request(timeout=request_timeout)
        except ChannelTransportError:
            logger.exception("Worker pid %s received no usable request", os.getpid())
            raise SystemExit(1)

        logger.debug("Worker pid %s endorsing %s from %s", os.getpid(), source, starting_bates)
        try:
            pages = Endorser(endorser_config).endorse(source, destination, starting_bates)
        except Exception as e:
            logger.error("Endorsing failed for %s, %s", source, e)
            channel.send_failure(e)
        else:
            channel.send_response(pages)
    finally:
        channel.close()


def _spawn(task: EndorseTask, endorser_config: EndorserConfig, log_queue, timeout) -> tuple:
    with _SPAWN_LOCK:
        channel = Channel()
        proc = _FORK.Process(
            target=_child_main,
            args=(channel, task.starting_bates, endorser_config, log_queue, timeout),
            name=f"endorse-{Path(task.source).name}",
            daemon=True,
        )
        try:
            proc.start()
        except OSError as e:
            channel.close()
            raise ProcessSpawnError(f"Cannot fork a worker for {task.source}, {e}") from e
        channel.as_parent()
    return channel, proc


def _reap(proc, terminate: bool):
    if terminate and proc.is_alive():
        logger.warning("Terminating worker pid %s", proc.pid)
        proc.terminate()
    proc.join(JOIN_GRACE)
    if proc.is_alive():
        logger.warning("Worker pid %s did not exit, killing it", proc.pid)
        proc.kill()
        proc.join()
    proc.close()


def endorse_isolated(
    task: EndorseTask,
    endorser_config: Optional[EndorserConfig] = None,
    *,
    timeout: Optional[float] = None,
    poll_interval: float = 0.2,
    log_queue: Optional[Any] = None,
) -> TaskResult:
    """
    Endorse one file in a freshly forked process and wait for its answer.

    Raises:
        ChannelTransportError: socket pair, send or receive failed, or `timeout` elapsed.
        ProcessSpawnError: the fork failed.
        ChildCrashed: the child exited without answering.
        AnnotationError: the child reported that stamping failed.
    """
    endorser_config = endorser_config or EndorserConfig()
    source, destination = str(task.source), str(task.destination)

    channel, proc = _spawn(task, endorser_config, log_queue, timeout)
    logger.debug("Worker pid %s started for %s", proc.pid, source)

    answered = False
    with channel:
        try:
            channel.send_request(source, destination)
            pages = channel.receive_response(
                timeout=timeout,
                poll_interval=poll_interval,
                is_alive=proc.is_alive,
            )
            answered = True
        except AnnotationError:
            answered = True
            raise
        finally:
            _reap(proc, terminate=not answered)

    return TaskResult(source=source, destination=destination, page_count=pages)
