from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from flask import Flask, Response, request

from mandelweb.config import RenderConfig, config_from_params, normalise_config
from mandelweb.encoding.png import encode_png
from mandelweb.exceptions import InvalidConfig, RenderError, RenderTimeout
from mandelweb.renderers.concurrent import render_concurrent
from mandelweb.renderers.lazy import MandelbrotView, materialize
from mandelweb.util.logging_setup import get_logger

def _png_response(data: bytes) -> Response:
    return Response(data, status=200, mimetype="image/png")

def _text_response(message: str, status: int) -> Response:
    return Response(message + "\n", status=status, mimetype="text/plain")

def create_app(settings: Optional[Dict[str, Any]] = None, *, log_queue=None) -> Flask:
    settings = normalise_config(settings or {})
    logger = get_logger("server")

    app = Flask(__name__)
    app.config["MANDELWEB"] = settings

    def _request_config() -> RenderConfig:
        return config_from_params(request.values, settings["defaults"], max_pixels=settings["max_pixels"])

    def _serve(strategy: str, render) -> Response:
        render_id = uuid.uuid4().hex[:8]
        config = _request_config()
        logger.info("[Render %s] %s %s --> %s", render_id, request.path, strategy, config)
        if config.is_empty:
            return Response(status=204)
        start = time.time()
        data = render(config, render_id)
        logger.info("[Render %s] %s bytes in %.3fs", render_id, len(data), time.time() - start)
        return _png_response(data)

    @app.route("/mandel0", methods=["GET", "POST"])
    def mandel_lazy():
        return _serve("lazy", lambda config, render_id: encode_png(MandelbrotView(config)))

    @app.route("/mandel1", methods=["GET", "POST"])
    def mandel_sequential():
        return _serve(
            "sequential",
            lambda config, render_id: encode_png(materialize(MandelbrotView(config), render_id=render_id)),
        )

    @app.route("/mandel2", methods=["GET", "POST"])
    def mandel_concurrent():
        def render(config, render_id):
            raster = render_concurrent(
                config,
                executor=settings["executor"],
                max_workers=settings["max_workers"],
                timeout=settings["render_timeout"],
                render_id=render_id,
                log_queue=log_queue,
                log_level=get_logger().getEffectiveLevel(),
            )
            return encode_png(raster)

        return _serve("concurrent", render)

    @app.errorhandler(InvalidConfig)
    def handle_invalid_config(e):
        logger.warning("Rejected render request %s: %s", request.full_path, e)
        return _text_response(f"Invalid render parameters: {e}", 400)

    @app.errorhandler(RenderTimeout)
    def handle_render_timeout(e):
        logger.error("Render timed out for %s: %s", request.full_path, e)
        return _text_response("Render timed out.", 503)

    @app.errorhandler(RenderError)
    def handle_render_error(e):
        logger.error("Render failed for %s: %s", request.full_path, e)
        return _text_response("Render failed.", 500)

    return app

def serve(settings: Dict[str, Any], *, log_queue=None) -> None:
    app = create_app(settings, log_queue=log_queue)
    cfg = app.config["MANDELWEB"]
    get_logger("server").info("Serving on http://%s:%s (executor=%s)", cfg["host"], cfg["port"], cfg["executor"])
    app.run(host=cfg["host"], port=cfg["port"], threaded=True)
