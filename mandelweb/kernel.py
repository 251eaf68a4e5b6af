# kernel.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from mandelweb.config import RenderConfig

ESCAPE_RADIUS = 2.0

PixelColor = Tuple[int, ...]

GRAY_BLACK: PixelColor = (0,)
RGBA_BLACK: PixelColor = (0, 0, 0, 255)


@dataclass(frozen=True)
class EscapeResult:
    final_value: complex
    escape_iteration: int


@dataclass(frozen=True)
class RowResult:
    row_index: int
    pixels: np.ndarray


def map_pixel(x: int, y: int, config: RenderConfig) -> complex:
    return complex(
        (x - config.width // 2) * config.pixel_step,
        (y - config.height // 2) * config.pixel_step,
    )

def evaluate(c: complex, max_iterations: int) -> EscapeResult:
    """
    Iterate v <- v*v + c from v = 0 for at most max_iterations steps.
    Returns the value at the first step i (0-indexed) where |v| > 2. A point that
    never escapes reports escape_iteration 0, the same as one escaping at step 0.
    """
    v = 0j
    for i in range(max_iterations):
        v = v * v + c
        if abs(v) > ESCAPE_RADIUS:
            return EscapeResult(v, i)
    return EscapeResult(v, 0)

def _to_byte(value: float) -> int:
    # Truncate then keep the low 8 bits, the same wraparound as an unchecked uint8 cast.
    return int(value) & 0xFF

def colorize(result: EscapeResult, colorful: bool) -> PixelColor:
    n = result.escape_iteration
    if n == 0:
        return RGBA_BLACK if colorful else GRAY_BLACK
    if colorful:
        mag = abs(result.final_value)
        return (_to_byte(100 * mag), _to_byte(50 * mag), _to_byte(80 * n), 255)
    return (_to_byte(255 - 15 * n),)

def to_rgba(pixel: PixelColor) -> PixelColor:
    if len(pixel) == 1:
        g = pixel[0]
        return (g, g, g, 255)
    return pixel

def color_at(x: int, y: int, config: RenderConfig) -> PixelColor:
    return colorize(evaluate(map_pixel(x, y, config), config.max_iterations), config.colorful)

def render_row(config: RenderConfig, y: int) -> RowResult:
    row = np.zeros((max(config.width, 0), 4), dtype=np.uint8)
    for x in range(config.width):
        row[x] = to_rgba(color_at(x, y, config))
    row.setflags(write=False)
    return RowResult(y, row)
