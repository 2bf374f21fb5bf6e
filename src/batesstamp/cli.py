# src/batesstamp/cli.py
from __future__ import annotations

import argparse
import logging
import multiprocessing as mp
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .annotator import GRAVITIES
from .config import NUMBERING_MODES, RunConfig
from .dispatcher import Dispatcher
from .exceptions import BatesStampError
from .logger import configure_worker_logging, restore_logging, setup_logging
from .models import BatchReport

__all__ = ["run_pipeline", "main"]

logger = logging.getLogger("batesstamp")

MODES = {"both": ("async", "sync"), "async": ("async",), "sync": ("sync",)}


def run_pipeline(config: RunConfig, modes: Sequence[str] = ("async", "sync")) -> List[BatchReport]:
    """
    Discover the input files once, then run each requested path over them.
    """
    config.output_dir.mkdir(parents=True, exist_ok=True)

    logger.info("Starting batesstamp")
    logger.info("Input directory, %s", config.input_dir)
    logger.info("Output directory, %s", config.output_dir)
    logger.info(
        "Workers, %s | Pattern, %s | Numbering, %s | First number, %s",
        config.num_workers,
        config.pattern,
        config.numbering,
        config.starting_bates(),
    )

    dispatcher = Dispatcher(config)
    files = dispatcher.discover()
    if not files:
        logger.info("No files matching %s under %s", config.pattern, config.input_dir)
        return []

    tasks = dispatcher.plan(files)
    logger.info("Planned %d files", len(tasks))

    reports: List[BatchReport] = []
    for mode in modes:
        if mode == "async":
            report = dispatcher.run_async(tasks)
        else:
            report = dispatcher.run_sync(tasks)
        logger.info(
            "%s run finished, %d pages, %d failures, %.3fs",
            mode, report.total_pages, len(report.failures), report.elapsed_seconds,
        )
        reports.append(report)
    return reports


def format_reports(reports: List[BatchReport]) -> str:
    lines = [f"{'mode':<8}{'seconds':>12}{'files':>8}{'pages':>8}{'failed':>8}"]
    for r in reports:
        lines.append(
            f"{r.mode:<8}{r.elapsed_seconds:>12.3f}{len(r.results):>8}{r.total_pages:>8}{len(r.failures):>8}"
        )
    return "\n".join(lines)


# -------------------------------
# CLI parsing
# -------------------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="batesstamp",
        description="Stamp a label and Bates numbers on every page of multi-page images, "
                    "timing the forked worker pool against a plain sequential run.",
    )

    # Core I/O & selection
    p.add_argument("input_dir", type=Path, help="Directory searched recursively for input images")
    p.add_argument("output_dir", type=Path, help="Directory the stamped images are written to")
    p.add_argument("--pattern", default="*.tif", help="Glob pattern of input files (default: *.tif)")
    p.add_argument(
        "--mode", choices=sorted(MODES), default="both",
        help="Which path to run; 'both' runs async then sync over the same files",
    )

    # Runtime knobs
    p.add_argument("-w", "--workers", type=int, help="Number of concurrently forked workers (default: 2)")
    p.add_argument("--timeout", type=float, help="Seconds to wait for a single worker before giving up")
    p.add_argument(
        "--continue-on-error", dest="stop_on_error", action="store_false",
        help="Keep going after a failed file in the sync path",
    )
    p.add_argument("--no-progress", dest="show_progress", action="store_false", help="Hide progress bars")

    # Numbering
    num_group = p.add_argument_group("Bates numbering")
    num_group.add_argument("--prefix", default="TEST_", help="Bates number prefix (default: TEST_)")
    num_group.add_argument("--padding", type=int, default=8, help="Zero padding width (default: 8)")
    num_group.add_argument("--start", dest="start_number", type=int, default=1, help="First number (default: 1)")
    num_group.add_argument(
        "--numbering", choices=NUMBERING_MODES, default="per-file",
        help="Restart numbering for every file, or continue it across files",
    )

    # Stamp appearance
    look_group = p.add_argument_group("Stamp appearance")
    look_group.add_argument("--label", default="CONFIDENTIAL", help="Label stamped on every page")
    look_group.add_argument("--font-family", default="helvetica", help="TrueType font family")
    look_group.add_argument("--pointsize", type=int, default=10, help="Font size in points")
    look_group.add_argument("--font-weight", choices=["normal", "bold"], default="bold")
    look_group.add_argument("--label-position", choices=sorted(GRAVITIES), default="south_west")
    look_group.add_argument("--bates-position", choices=sorted(GRAVITIES), default="south_east")
    look_group.add_argument(
        "--split-pages", action="store_true",
        help="Write one file per page (<name>_<n>.<ext>) instead of one multi-page file",
    )

    # Logging
    log_group = p.add_argument_group("Logging")
    log_group.add_argument("--error-log-path", type=Path, help="Append failed files to this JSONL file")
    log_group.add_argument("--log-file", type=Path, help="Log file (default: <output_dir>/batesstamp.log)")
    log_group.add_argument("-v", "--verbose", action="store_true", help="Show debug output")

    return p


# -------------------------------
# Entry points
# -------------------------------

def _config_from_args(args: argparse.Namespace, log_queue) -> RunConfig:
    cfg_dict = {
        "input_dir": args.input_dir,
        "output_dir": args.output_dir,
        "error_log_path": args.error_log_path,
        "pattern": args.pattern,
        "num_workers": args.workers,
        "prefix": args.prefix,
        "padding": args.padding,
        "start_number": args.start_number,
        "numbering": args.numbering,
        "receive_timeout": args.timeout,
        "stop_on_error": args.stop_on_error,
        "show_progress": args.show_progress,
        "log_queue": log_queue,
        "endorser": {
            "label": args.label,
            "font_family": args.font_family,
            "pointsize": args.pointsize,
            "font_weight": args.font_weight,
            "label_position": args.label_position,
            "bates_position": args.bates_position,
            "page_writer": "single" if args.split_pages else "multi",
        },
    }
    cfg_dict = {k: v for k, v in cfg_dict.items() if v is not None}
    return RunConfig.from_dict(cfg_dict)


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    ctx = mp.get_context("spawn")
    manager = ctx.Manager()
    log_queue = manager.Queue(-1)

    log_file = args.log_file or Path(args.output_dir) / "batesstamp.log"
    listener = setup_logging(
        log_queue,
        level=logging.DEBUG if args.verbose else logging.INFO,
        file_path=log_file,
        file_level=logging.DEBUG,
    )
    listener.start()
    configure_worker_logging(log_queue)

    try:
        try:
            config = _config_from_args(args, log_queue)
        except (ValueError, TypeError) as e:
            parser.error(str(e))

        try:
            reports = run_pipeline(config, MODES[args.mode])
        except BatesStampError as e:
            logger.error("Run aborted, %s", e)
            return 1

        if reports:
            print(format_reports(reports))
        return 0 if all(r.ok for r in reports) else 1
    finally:
        restore_logging()
        listener.stop()
        manager.shutdown()


if __name__ == "__main__":
    sys.exit(main())
