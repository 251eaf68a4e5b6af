from __future__ import annotations

import io
import os
from typing import Union

import numpy as np
from PIL import Image

from mandelweb.kernel import to_rgba
from mandelweb.renderers.lazy import ImageSource
from mandelweb.util.logging_setup import get_logger

Source = Union[ImageSource, np.ndarray]

def _pull_image(view: ImageSource) -> Image.Image:
    width, height = view.size
    img = Image.new("RGBA", (width, height))
    img.putdata([to_rgba(view.color_at(x, y)) for y in range(height) for x in range(width)])
    return img

def to_image(source: Source) -> Image.Image:
    if isinstance(source, np.ndarray):
        if source.ndim != 3 or source.shape[2] != 4:
            raise ValueError(f"Expected a (height, width, 4) raster, got shape {source.shape}")
        height, width = source.shape[:2]
        img = Image.fromarray(np.ascontiguousarray(source, dtype=np.uint8)) if width and height else None
    else:
        width, height = source.size
        img = _pull_image(source) if width and height else None
    if img is None:
        raise ValueError(f"Cannot encode an empty {width}x{height} image.")
    # Fully opaque images are written without an alpha channel.
    if img.getextrema()[3] == (255, 255):
        img = img.convert("RGB")
    return img

def encode_png(source: Source) -> bytes:
    out = io.BytesIO()
    to_image(source).save(out, format="PNG", optimize=True)
    return out.getvalue()

def save_png(source: Source, path: str) -> str:
    logger = get_logger("encoding")
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    data = encode_png(source)
    with open(path, "wb") as f:
        f.write(data)
    logger.info("PNG written: %s (%s bytes)", path, len(data))
    return path
