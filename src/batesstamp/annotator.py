# src/batesstamp/annotator.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, ImageSequence

from .bates import BatesNumber
from .config import EndorserConfig
from .exceptions import AnnotationError

logger = logging.getLogger("batesstamp")

PathLike = Union[str, Path]

# Compass gravity -> (horizontal, vertical) anchor
GRAVITIES: Dict[str, Tuple[str, str]] = {
    "north_west": ("west", "north"),
    "north": ("center", "north"),
    "north_east": ("east", "north"),
    "west": ("west", "center"),
    "center": ("center", "center"),
    "east": ("east", "center"),
    "south_west": ("west", "south"),
    "south": ("center", "south"),
    "south_east": ("east", "south"),
}

DRAWABLE_MODES = ("1", "L", "RGB", "RGBA")


# --- Step 1, page writers ---
class BasePageWriter(ABC):
    """
    Interface for writing a list of stamped pages to disk.
    """

    @abstractmethod
    def write(self, pages: List[Image.Image], destination: Path) -> List[Path]:
        """Writes the pages and returns the files that were created."""
        raise NotImplementedError

    @staticmethod
    def _save_params(page: Image.Image) -> dict:
        dpi = page.info.get("dpi")
        return {"dpi": dpi} if dpi else {}


class MultiPageWriter(BasePageWriter):
    """Writes all pages into a single multi-page file."""

    def write(self, pages: List[Image.Image], destination: Path) -> List[Path]:
        first, rest = pages[0], pages[1:]
        if not rest:
            first.save(destination, **self._save_params(first))
            return [destination]

        fmt = Image.registered_extensions().get(destination.suffix.lower())
        if fmt not in Image.SAVE_ALL:
            raise AnnotationError(
                f"Format of {destination.name} cannot hold {len(pages)} pages, use the single page writer"
            )
        first.save(destination, save_all=True, append_images=rest, **self._save_params(first))
        return [destination]


class SinglePageWriter(BasePageWriter):
    """Writes one file per page, inserting _<n> before the extension."""

    def write(self, pages: List[Image.Image], destination: Path) -> List[Path]:
        written: List[Path] = []
        for number, page in enumerate(pages, start=1):
            target = destination.with_name(f"{destination.stem}_{number}{destination.suffix}")
            page.save(target, **self._save_params(page))
            written.append(target)
        return written


def get_page_writer(name: str = "multi") -> BasePageWriter:
    """
    Create a page writer by name.
    """
    key = (name or "").lower()
    if key == "multi":
        return MultiPageWriter()
    if key == "single":
        return SinglePageWriter()
    raise ValueError(f"Unknown page writer, '{name}'. Supported writers, ['multi', 'single']")


# --- Step 2, fonts ---
def load_font(family: str, size: int, weight: str = "normal") -> Tuple[ImageFont.ImageFont, int]:
    """
    Resolve a TrueType font for the family and weight.
    Returns the font and the stroke width needed to fake bold when only the
    built-in font is available.
    """
    bold = weight == "bold"
    base = family.strip()
    candidates = []
    if bold:
        candidates += [f"{base}-Bold.ttf", f"{base}bd.ttf", f"{base}-Bold"]
    candidates += [f"{base}.ttf", base]

    for name in candidates:
        try:
            return ImageFont.truetype(name, size), 0
        except (OSError, ImportError):
            continue

    logger.debug("Font %s not found, using the default font at %dpx", family, size)
    return ImageFont.load_default(size=size), (1 if bold else 0)


def count_pages(source: PathLike) -> int:
    """Number of frames (pages) in an image file."""
    try:
        with Image.open(source) as img:
            return getattr(img, "n_frames", 1)
    except Exception as e:
        raise AnnotationError(f"Cannot read {source}, {e}", kind=type(e).__name__) from e


# --- Step 3, the endorser ---
class Endorser:
    """
    Stamps a fixed label and a running Bates number on every page of an image.

    Each Endorser is meant for one process; the isolated worker builds a
    fresh one per task.
    """

    def __init__(self, config: EndorserConfig | None = None):
        self.config = config or EndorserConfig()
        self.writer = get_page_writer(self.config.page_writer)
        for position in (self.config.label_position, self.config.bates_position):
            if position not in GRAVITIES:
                raise ValueError(f"Unknown position, '{position}'. Supported positions, {sorted(GRAVITIES)}")
        self._fonts: Dict[int, Tuple[ImageFont.ImageFont, int]] = {}

    def endorse(self, source: PathLike, destination: PathLike, starting_bates: BatesNumber) -> int:
        """
        Stamp every page of `source` and write the result to `destination`.
        Returns the number of pages written.
        """
        source, destination = Path(source), Path(destination)
        bates = starting_bates
        pages: List[Image.Image] = []

        try:
            with Image.open(source) as img:
                for frame in ImageSequence.Iterator(img):
                    page = frame.copy()
                    if page.mode not in DRAWABLE_MODES:
                        page = page.convert("RGB")
                    self._stamp(page, bates)
                    logger.debug("Endorsed %s page %d (%s)", source.name, len(pages) + 1, bates)
                    pages.append(page)
                    bates = bates.next()
        except AnnotationError:
            raise
        except Exception as e:
            # Pillow raises more than OSError, e.g. DecompressionBombError
            raise AnnotationError(f"Cannot read {source}, {e}", kind=type(e).__name__) from e

        try:
            self.writer.write(pages, destination)
        except AnnotationError:
            raise
        except Exception as e:
            raise AnnotationError(f"Cannot write {destination}, {e}", kind=type(e).__name__) from e

        return len(pages)

    # -----------------------------
    # Drawing helpers
    # -----------------------------
    def _font_for(self, page: Image.Image) -> Tuple[ImageFont.ImageFont, int]:
        # Point size is relative to 72 dpi, scale it to the page density
        dpi = page.info.get("dpi") or (72, 72)
        size = max(1, round(self.config.pointsize * float(dpi[1]) / 72))
        if size not in self._fonts:
            self._fonts[size] = load_font(self.config.font_family, size, self.config.font_weight)
        return self._fonts[size]

    def _stamp(self, page: Image.Image, bates: BatesNumber):
        draw = ImageDraw.Draw(page)
        font, stroke = self._font_for(page)
        self._draw(draw, page.size, self.config.label, self.config.label_position, font, stroke)
        self._draw(draw, page.size, bates.format(), self.config.bates_position, font, stroke)

    def _draw(self, draw: ImageDraw.ImageDraw, size: Tuple[int, int], text: str, position: str, font, stroke: int):
        if not text:
            return
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font, stroke_width=stroke)
        width, height = right - left, bottom - top
        page_w, page_h = size
        margin = self.config.margin
        horizontal, vertical = GRAVITIES[position]

        x = {"west": margin, "center": (page_w - width) // 2, "east": page_w - width - margin}[horizontal]
        y = {"north": margin, "center": (page_h - height) // 2, "south": page_h - height - margin}[vertical]

        draw.text((x - left, y - top), text, font=font, fill="black", stroke_width=stroke)
