from __future__ import annotations

import time
from typing import Optional, Protocol, Tuple

import numpy as np

from mandelweb.config import RenderConfig
from mandelweb.kernel import PixelColor, color_at, to_rgba
from mandelweb.util.logging_setup import get_logger


class ImageSource(Protocol):
    """Pull-based image: dimensions plus a per-pixel query, with no commitment to storage."""

    @property
    def size(self) -> Tuple[int, int]: ...

    def color_at(self, x: int, y: int) -> PixelColor: ...


class MandelbrotView:
    """Computes each pixel on demand from the render config. Nothing is cached."""

    def __init__(self, config: RenderConfig):
        self.config = config

    @property
    def size(self) -> Tuple[int, int]:
        return max(self.config.width, 0), max(self.config.height, 0)

    def color_at(self, x: int, y: int) -> PixelColor:
        return color_at(x, y, self.config)

    def __repr__(self) -> str:
        return f"<MandelbrotView {self.config!r}>"


class RasterView:
    """Exposes a materialised RGBA raster through the same interface as MandelbrotView."""

    def __init__(self, raster: np.ndarray):
        if raster.ndim != 3 or raster.shape[2] != 4:
            raise ValueError(f"Expected a (height, width, 4) raster, got shape {raster.shape}")
        self.raster = raster

    @property
    def size(self) -> Tuple[int, int]:
        height, width = self.raster.shape[:2]
        return width, height

    def color_at(self, x: int, y: int) -> PixelColor:
        return tuple(int(v) for v in self.raster[y, x])


def new_raster(width: int, height: int) -> np.ndarray:
    return np.zeros((max(height, 0), max(width, 0), 4), dtype=np.uint8)

def materialize(view: ImageSource, *, render_id: Optional[str] = None) -> np.ndarray:
    logger = get_logger("sequential")
    width, height = view.size
    start = time.time()
    logger.debug("[Render %s] Sequential render start size=%sx%s", render_id, width, height)

    buf = new_raster(width, height)
    for y in range(height):
        for x in range(width):
            buf[y, x] = to_rgba(view.color_at(x, y))

    logger.debug("[Render %s] Sequential render done in %.3fs", render_id, time.time() - start)
    return buf
