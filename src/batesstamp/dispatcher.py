# src/batesstamp/dispatcher.py
from __future__ import annotations

import json
import logging
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Iterable, List, Tuple, Union

from tqdm import tqdm

from .annotator import Endorser, count_pages
from .config import RunConfig
from .discovery import FileExplorer
from .exceptions import AnnotationError
from .models import BatchReport, EndorseTask, TaskFailure, TaskResult
from .pool import EndorsingPool

logger = logging.getLogger("batesstamp")


class Dispatcher:
    """
    Drives a file set through either the synchronous path (one Endorser in
    this process) or the asynchronous path (an EndorsingPool of forked
    workers). Both paths take the same planned tasks and write the same files.
    """

    def __init__(self, config: RunConfig):
        self.config = config

    # -----------------------------
    # Logging helpers
    # -----------------------------
    def _log_error(self, source_path: str, reason: str):
        if not self.config.error_log_path:
            return
        try:
            self.config.error_log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config.error_log_path, "a", encoding="utf-8", errors="backslashreplace") as f:
                log_entry = {
                    "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
                    "source_path": source_path,
                    "error_reason": reason,
                }
                f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")
        except OSError:
            logger.exception("Failed to write error log")

    def _record_failure(self, report: BatchReport, task: EndorseTask, error: BaseException):
        reason = f"{type(error).__name__}: {error}"
        logger.error("Failed to endorse %s, %s", task.source, reason)
        self._log_error(str(task.source), reason)
        report.failures.append(TaskFailure(source=str(task.source), error=error))

    def _record_result(self, report: BatchReport, result: TaskResult):
        logger.progress("Endorsed %s (%d pages)", result.source, result.page_count)
        report.results.append(result)

    # -----------------------------
    # Planning
    # -----------------------------
    def discover(self) -> List[Path]:
        explorer = FileExplorer(self.config.input_dir, self.config.pattern, show_progress=self.config.show_progress)
        return explorer.explore(lambda path: path)

    def destination_for(self, source: Path) -> Path:
        """Mirror the source's place under input_dir inside output_dir."""
        try:
            relative = source.relative_to(self.config.input_dir)
        except ValueError:
            relative = Path(source.name)
        return self.config.output_dir / relative

    def plan(self, files: Iterable[Union[str, Path]]) -> List[EndorseTask]:
        """
        Build one task per file.

        With "per-file" numbering every file starts from the configured number.
        With "continuous" numbering pages are counted up front so each file
        starts right after the previous file's last page.
        """
        bates = self.config.starting_bates()
        tasks: List[EndorseTask] = []
        for source in files:
            source = Path(source)
            tasks.append(EndorseTask(source=source, destination=self.destination_for(source), starting_bates=bates))
            if self.config.numbering == "continuous":
                try:
                    bates = bates.advance(count_pages(source))
                except AnnotationError as e:
                    if self.config.stop_on_error:
                        raise
                    logger.warning("Cannot count pages of %s, numbering continues unchanged, %s", source, e)
        return tasks

    @staticmethod
    def _prepare_destination(task: EndorseTask):
        try:
            task.destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AnnotationError(f"Cannot create output directory for {task.destination}, {e}") from e

    # -----------------------------
    # Synchronous path
    # -----------------------------
    def run_sync(self, tasks: List[EndorseTask]) -> BatchReport:
        """
        Endorse every task in order in this process. With stop_on_error the
        first failure is re-raised; otherwise it is recorded and the batch goes on.
        """
        start = time.perf_counter()
        report = BatchReport(mode="sync")
        endorser = Endorser(self.config.endorser)

        for task in tqdm(tasks, desc="Endorsing (sync)", disable=not self.config.show_progress):
            try:
                self._prepare_destination(task)
                pages = endorser.endorse(task.source, task.destination, task.starting_bates)
            except AnnotationError as e:
                self._record_failure(report, task, e)
                if self.config.stop_on_error:
                    raise
                continue
            self._record_result(
                report, TaskResult(source=str(task.source), destination=str(task.destination), page_count=pages)
            )

        report.elapsed_seconds = time.perf_counter() - start
        return report

    # -----------------------------
    # Asynchronous path
    # -----------------------------
    def submit_async(self, tasks: List[EndorseTask], pool: EndorsingPool) -> List[Tuple[EndorseTask, Future]]:
        submitted: List[Tuple[EndorseTask, Future]] = []
        for task in tasks:
            try:
                self._prepare_destination(task)
            except AnnotationError as e:
                future: Future = Future()
                future.set_exception(e)
            else:
                future = pool.submit(task)
            submitted.append((task, future))
        logger.info("Submitted %d tasks to a pool of %d", len(submitted), pool.capacity)
        return submitted

    def collect(self, submitted: List[Tuple[EndorseTask, Future]], mode: str = "async") -> BatchReport:
        """Block on every future. A failed task never affects its siblings."""
        report = BatchReport(mode=mode)
        for task, future in tqdm(submitted, desc="Collecting results", disable=not self.config.show_progress):
            try:
                result = future.result()
            except Exception as e:
                self._record_failure(report, task, e)
                continue
            self._record_result(report, result)
        return report

    def run_async(self, tasks: List[EndorseTask]) -> BatchReport:
        start = time.perf_counter()
        with EndorsingPool(
            capacity=self.config.num_workers,
            endorser_config=self.config.endorser,
            receive_timeout=self.config.receive_timeout,
            poll_interval=self.config.poll_interval,
            log_queue=self.config.log_queue,
        ) as pool:
            report = self.collect(self.submit_async(tasks, pool))
        report.elapsed_seconds = time.perf_counter() - start
        return report
