"""
Shared test fixtures for the plate geometry engine.
"""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from platecraft.contracts import PlateParams, PlateShape
from platecraft.errors import GlyphError
from platecraft.glyphs import GlyphLibrary
from platecraft.lru import LRUCache
from platecraft.plates import PlateEngine


class BlockGlyphProvider:
    """Deterministic glyphs: each character is a block, 'O' gets a counter."""

    def __init__(self):
        self.calls = []

    def contours(self, text, size, font=None):
        self.calls.append((text, size, font))
        contours = []
        for i, ch in enumerate(text):
            if ch.isspace():
                continue
            x0 = i * size * 0.8
            x1 = x0 + size * 0.6
            contours.append([(x0, 0.0), (x1, 0.0), (x1, size), (x0, size)])
            if ch in "Oo0":
                m = size * 0.15
                contours.append([(x0 + m, m), (x0 + m, size - m), (x1 - m, size - m), (x1 - m, m)])
        return contours


class FailingGlyphProvider:
    def contours(self, text, size, font=None):
        raise GlyphError("font not loaded")


@pytest.fixture
def glyph_provider():
    return BlockGlyphProvider()


@pytest.fixture
def glyphs(glyph_provider):
    return GlyphLibrary(glyph_provider, LRUCache(100))


@pytest.fixture
def engine(glyphs):
    return PlateEngine(glyphs=glyphs)


@pytest.fixture
def rectangle_params():
    """80x50 rectangle, 2 mm thick, centred at the origin."""
    return PlateParams(shape=PlateShape.RECTANGLE, width=80.0, height=50.0, thickness=2.0)


@pytest.fixture
def single_cell_image():
    """2x2 gray image where only the top-left pixel is dark."""
    return np.array([[0, 255], [255, 255]], dtype=np.uint8)
