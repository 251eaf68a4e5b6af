from __future__ import annotations

import json
import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from mandelweb.exceptions import InvalidConfig
from mandelweb.util.logging_setup import get_logger

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN, _INT64_MAX = -(2 ** 63), 2 ** 63 - 1
_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}

EXECUTORS = ("thread", "process")

DEFAULT_PARAMS: Dict[str, Any] = {
    "zoom": 150,
    "width": 600,
    "height": 600,
    "itertimes": 200,
    "colorful": False,
}

DEFAULT_SETTINGS: Dict[str, Any] = {
    "host": "0.0.0.0",
    "port": 7777,
    "executor": "thread",
    "max_workers": None,
    "render_timeout": None,
    "max_pixels": 64_000_000,
    "defaults": dict(DEFAULT_PARAMS),
}


@dataclass(frozen=True)
class RenderConfig:
    """Everything one render needs. Shared read-only by every worker of that render."""

    pixel_step: float
    width: int
    height: int
    max_iterations: int
    colorful: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.pixel_step, (int, float)) or not math.isfinite(self.pixel_step) or self.pixel_step <= 0:
            raise InvalidConfig(f"pixel_step must be a finite number > 0, got {self.pixel_step!r}")
        if self.max_iterations <= 0:
            raise InvalidConfig(f"max_iterations must be > 0, got {self.max_iterations!r}")

    @classmethod
    def from_zoom(cls, zoom: float, width: int, height: int, max_iterations: int, colorful: bool = False) -> "RenderConfig":
        if zoom <= 0:
            raise InvalidConfig(f"zoom must be > 0, got {zoom!r}")
        return cls(
            pixel_step=1.0 / float(zoom),
            width=int(width),
            height=int(height),
            max_iterations=int(max_iterations),
            colorful=bool(colorful),
        )

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _is_int(value: Optional[str]) -> bool:
    # Whole-string match only, limited to the signed 64-bit range.
    if value is None or _INT_RE.fullmatch(value) is None:
        return False
    if len(value.lstrip("+-").lstrip("0")) > 19:
        return False
    return _INT64_MIN <= int(value) <= _INT64_MAX

def parse_int(value: Optional[str], default: int) -> int:
    return int(value) if _is_int(value) else default

def parse_bool(value: Optional[str], default: bool) -> bool:
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    return default

def config_from_params(
    params: Mapping[str, str],
    defaults: Optional[Mapping[str, Any]] = None,
    *,
    max_pixels: Optional[int] = None,
) -> RenderConfig:
    """Build a RenderConfig from untrusted request values.

    Values that are missing or fail to parse fall back to ``defaults``; values that
    parse but cannot describe a render (zoom <= 0, itertimes <= 0, more than
    ``max_pixels`` pixels) raise InvalidConfig.
    """
    logger = get_logger("config")
    merged = dict(DEFAULT_PARAMS)
    if defaults:
        merged.update(defaults)

    values: Dict[str, Any] = {}
    for key in ("zoom", "width", "height", "itertimes"):
        raw = params.get(key)
        values[key] = parse_int(raw, int(merged[key]))
        if raw not in (None, "") and not _is_int(raw):
            logger.debug("Malformed %s=%r, using default %s", key, raw, merged[key])

    raw = params.get("colorful")
    values["colorful"] = parse_bool(raw, bool(merged["colorful"]))
    if raw not in (None, "") and raw not in _TRUE_STRINGS and raw not in _FALSE_STRINGS:
        logger.debug("Malformed colorful=%r, using default %s", raw, merged["colorful"])

    if max_pixels is not None and values["width"] > 0 and values["height"] > 0:
        if values["width"] * values["height"] > max_pixels:
            raise InvalidConfig(
                f"{values['width']}x{values['height']} exceeds the limit of {max_pixels} pixels"
            )

    return RenderConfig.from_zoom(
        zoom=values["zoom"],
        width=values["width"],
        height=values["height"],
        max_iterations=values["itertimes"],
        colorful=values["colorful"],
    )


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    if config_path:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
        if not isinstance(cfg, dict):
            raise ValueError("Config JSON must be an object.")
        return cfg
    return json.loads(json.dumps(DEFAULT_SETTINGS))

def normalise_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(DEFAULT_SETTINGS)
    out.update(cfg)

    out["host"] = str(out["host"])
    out["port"] = int(out["port"])
    if not 0 < out["port"] < 65536:
        raise InvalidConfig(f"port must be in 1..65535, got {out['port']}")

    out["executor"] = str(out["executor"])
    if out["executor"] not in EXECUTORS:
        raise InvalidConfig(f"executor must be one of: {', '.join(EXECUTORS)}")

    if out["max_workers"] is not None:
        out["max_workers"] = int(out["max_workers"])
        if out["max_workers"] <= 0:
            raise InvalidConfig("max_workers must be > 0 or null.")

    if out["render_timeout"] is not None:
        out["render_timeout"] = float(out["render_timeout"])
        if out["render_timeout"] <= 0:
            raise InvalidConfig("render_timeout must be > 0 or null.")

    if out["max_pixels"] is not None:
        out["max_pixels"] = int(out["max_pixels"])
        if out["max_pixels"] <= 0:
            raise InvalidConfig("max_pixels must be > 0 or null.")

    defaults = cfg.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise InvalidConfig("defaults must be an object.")
    unknown = set(defaults) - set(DEFAULT_PARAMS)
    if unknown:
        raise InvalidConfig(f"Unknown default parameters: {', '.join(sorted(unknown))}")
    merged = dict(DEFAULT_PARAMS)
    merged.update(defaults)
    for key in ("zoom", "width", "height", "itertimes"):
        merged[key] = int(merged[key])
    merged["colorful"] = bool(merged["colorful"])
    out["defaults"] = merged
    return out
