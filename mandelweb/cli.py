from __future__ import annotations

import argparse
import logging
import time
from typing import Optional

from mandelweb.config import RenderConfig, load_config, normalise_config
from mandelweb.encoding.png import save_png
from mandelweb.exceptions import MandelwebError
from mandelweb.renderers.concurrent import render_concurrent
from mandelweb.renderers.lazy import MandelbrotView, materialize
from mandelweb.server import serve
from mandelweb.util.logging_setup import configure_root_logging, get_logger, worker_log_relay
from mandelweb.util.manifest import build_manifest, write_manifest

STRATEGIES = ("lazy", "sequential", "concurrent")

def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mandelweb", description="Mandelbrot renderer served over HTTP, with an offline render command.")
    p.add_argument("--config", type=str, default=None, help="Path to settings JSON. If omitted, built-in defaults are used.")
    p.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG","INFO","WARNING","ERROR"], help="Log level.")
    p.add_argument("--log-file", type=str, default="mandelweb.log", help="Log file path (rotating). Set empty to disable file logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Serve /mandel0, /mandel1 and /mandel2 over HTTP.")
    s.add_argument("--host", type=str, default=None, help="Override host from settings.")
    s.add_argument("--port", type=int, default=None, help="Override port from settings.")
    s.add_argument("--executor", type=str, default=None, choices=["thread", "process"], help="Override executor for /mandel2.")

    r = sub.add_parser("render", help="Render a single PNG to disk.")
    r.add_argument("--output", type=str, required=True, help="Output PNG path. A <output>.json run manifest is written beside it.")
    r.add_argument("--strategy", type=str, default="concurrent", choices=STRATEGIES, help="Rendering strategy.")
    r.add_argument("--zoom", type=int, default=None, help="Pixels per complex-plane unit (defaults to settings).")
    r.add_argument("--width", type=int, default=None, help="Image width in pixels (defaults to settings).")
    r.add_argument("--height", type=int, default=None, help="Image height in pixels (defaults to settings).")
    r.add_argument("--itertimes", type=int, default=None, help="Iteration bound (defaults to settings).")
    r.add_argument("--colorful", action="store_true", default=None, help="Render in color instead of grayscale.")

    return p

def _render(args: argparse.Namespace, cfg: dict, log_queue, log_level: int) -> int:
    logger = get_logger()
    defaults = cfg["defaults"]

    def pick(name: str):
        value = getattr(args, name)
        return defaults[name] if value is None else value

    config = RenderConfig.from_zoom(
        zoom=pick("zoom"),
        width=pick("width"),
        height=pick("height"),
        max_iterations=pick("itertimes"),
        colorful=pick("colorful"),
    )
    if config.is_empty:
        raise MandelwebError(f"Nothing to render for a {config.width}x{config.height} image.")

    start = time.time()
    if args.strategy == "lazy":
        source = MandelbrotView(config)
    elif args.strategy == "sequential":
        source = materialize(MandelbrotView(config), render_id="cli")
    else:
        source = render_concurrent(
            config,
            executor=cfg["executor"],
            max_workers=cfg["max_workers"],
            timeout=cfg["render_timeout"],
            render_id="cli",
            log_queue=log_queue,
            log_level=log_level,
        )
    save_png(source, args.output)
    elapsed = time.time() - start

    manifest = build_manifest(config=config.as_dict(), strategy=args.strategy, elapsed_seconds=elapsed, output=args.output)
    write_manifest(args.output + ".json", manifest)
    logger.info("Run manifest written: %s.json", args.output)
    return 0

def main(argv: Optional[list] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    log_file = args.log_file if args.log_file and args.log_file.strip() else None
    root_logger = configure_root_logging(level=log_level, console=True, log_file=log_file)
    logger = get_logger()

    try:
        cfg = load_config(args.config)
        if args.cmd == "serve":
            for key in ("host", "port", "executor"):
                if getattr(args, key) is not None:
                    cfg[key] = getattr(args, key)
        cfg = normalise_config(cfg)

        with worker_log_relay(cfg["executor"], root_logger) as relay:
            log_queue = relay.queue if relay else None
            if args.cmd == "serve":
                serve(cfg, log_queue=log_queue)
                return 0
            if args.cmd == "render":
                return _render(args, cfg, log_queue, log_level)

        raise RuntimeError("Unknown command.")
    except (MandelwebError, OSError, ValueError) as e:
        logger.error("%s failed: %s", args.cmd, e)
        return 1
