"""Shared fixtures: small multi-page TIFFs generated with Pillow."""

from pathlib import Path

import pytest
from PIL import Image


def make_tiff(path: Path, pages: int = 3, size=(300, 400), dpi=(72, 72), mode: str = "L") -> Path:
    """Write a blank (white) multi-page TIFF."""
    path.parent.mkdir(parents=True, exist_ok=True)
    frames = [Image.new(mode, size, color=255) for _ in range(pages)]
    frames[0].save(path, save_all=True, append_images=frames[1:], dpi=dpi)
    return path


@pytest.fixture
def tiff_factory(tmp_path):
    def _make(name: str, pages: int = 3, **kwargs) -> Path:
        return make_tiff(tmp_path / "in" / name, pages=pages, **kwargs)
    return _make


@pytest.fixture
def image_dir(tmp_path):
    """Input directory with three matching TIFFs (one nested) and one non-matching file."""
    root = tmp_path / "in"
    make_tiff(root / "a.tif", pages=1)
    make_tiff(root / "b.tif", pages=2)
    make_tiff(root / "nested" / "c.tif", pages=3)
    (root / "notes.txt").write_text("not an image", encoding="utf-8")
    return root
