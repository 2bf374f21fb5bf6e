# src/batesstamp/discovery.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator, List, TypeVar, Union

from tqdm import tqdm

logger = logging.getLogger("batesstamp")

T = TypeVar("T")


class FileExplorer:
    """Finds files matching a glob pattern anywhere under a directory."""

    def __init__(self, root: Union[str, Path], pattern: str = "*.tif", show_progress: bool = False):
        self.root = Path(root)
        self.pattern = pattern
        self.show_progress = show_progress

    def iter_files(self) -> Iterator[Path]:
        """Yield matching files in a stable (sorted) order."""
        if not self.root.is_dir():
            logger.error("Input directory does not exist, %s", self.root)
            return

        candidates = sorted(self.root.rglob(self.pattern))
        logger.info("Scanning %d candidate paths under %s", len(candidates), self.root)
        for path in tqdm(candidates, desc="Discovering files", disable=not self.show_progress):
            if path.is_file():
                yield path

    def explore(self, callback: Callable[[Path], T]) -> List[T]:
        """Call `callback` for every matching file and collect what it returns."""
        return [callback(path) for path in self.iter_files()]
