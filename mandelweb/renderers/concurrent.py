from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from functools import partial
from typing import Callable, Optional, Set, Tuple

import numpy as np

from mandelweb.config import EXECUTORS, RenderConfig
from mandelweb.exceptions import RenderError, RenderTimeout
from mandelweb.kernel import RowResult, render_row
from mandelweb.renderers.lazy import new_raster
from mandelweb.util.logging_setup import get_logger, route_worker_logs

_G = {}

def _init_worker(config, render_id, log_queue, log_level):
    _G["config"] = config
    _G["render_id"] = render_id
    route_worker_logs(log_queue, log_level)

def _render_row(config: RenderConfig, y: int, render_id: Optional[str] = None) -> RowResult:
    row = render_row(config, y)
    if y % 50 == 0:
        get_logger("concurrent").debug("[Render %s] Rendered row %s/%s", render_id, y, config.height)
    return row

def _render_row_in_worker(y: int) -> RowResult:
    return _render_row(_G["config"], y, _G["render_id"])

def _make_executor(
    kind: str,
    config: RenderConfig,
    *,
    max_workers: Optional[int],
    render_id: Optional[str],
    log_queue,
    log_level: int,
) -> Tuple[Executor, Callable[[int], RowResult]]:
    if kind == "thread":
        # One thread per row unless the caller caps the pool.
        pool = ThreadPoolExecutor(max_workers=max_workers or config.height, thread_name_prefix="row")
        return pool, partial(_render_row, config, render_id=render_id)
    if kind == "process":
        pool = ProcessPoolExecutor(
            max_workers=max_workers,
            initializer=_init_worker,
            initargs=(config, render_id, log_queue, log_level),
        )
        return pool, _render_row_in_worker
    raise ValueError(f"executor must be one of: {', '.join(EXECUTORS)}")

def _collect(buf: np.ndarray, row: RowResult, received: Set[int], height: int) -> None:
    y = row.row_index
    if not 0 <= y < height:
        raise RenderError(f"Row index {y} outside [0, {height})")
    if y in received:
        raise RenderError(f"Row {y} delivered twice")
    if row.pixels.shape != buf[y].shape:
        raise RenderError(f"Row {y} has shape {row.pixels.shape}, expected {buf[y].shape}")
    buf[y] = row.pixels
    received.add(y)

def render_concurrent(
    config: RenderConfig,
    *,
    executor: str = "thread",
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    render_id: Optional[str] = None,
    log_queue=None,
    log_level: int = logging.INFO,
) -> np.ndarray:
    """Fan out one task per row and reassemble the rows by index as they complete.

    Rows arrive in completion order, so the raster is only returned once exactly
    ``config.height`` distinct rows have been written. With ``timeout`` set, a render
    still missing rows when it expires raises RenderTimeout instead of blocking.
    """
    logger = get_logger("concurrent")
    buf = new_raster(config.width, config.height)
    if config.is_empty:
        logger.debug("[Render %s] Empty geometry %sx%s, nothing to do", render_id, config.width, config.height)
        return buf

    pool, task = _make_executor(
        executor, config, max_workers=max_workers, render_id=render_id, log_queue=log_queue, log_level=log_level
    )
    start = time.time()
    logger.info("[Render %s] Concurrent render start size=%sx%s iter=%s executor=%s",
                render_id, config.width, config.height, config.max_iterations, executor)

    received: Set[int] = set()
    failed = False
    try:
        futures = {pool.submit(task, y): y for y in range(config.height)}
        try:
            for future in as_completed(futures, timeout=timeout):
                try:
                    row = future.result()
                except Exception as e:
                    raise RenderError(f"Worker for row {futures[future]} failed: {e}") from e
                _collect(buf, row, received, config.height)
        except FuturesTimeoutError as e:
            missing = config.height - len(received)
            raise RenderTimeout(f"{missing} of {config.height} rows outstanding after {timeout}s") from e

        if len(received) != config.height:
            raise RenderError(f"Received {len(received)} of {config.height} rows")
    except BaseException:
        failed = True
        logger.exception("[Render %s] Concurrent render failed after %s/%s rows", render_id, len(received), config.height)
        raise
    finally:
        pool.shutdown(wait=not failed, cancel_futures=failed)

    logger.info("[Render %s] Concurrent render done in %.3fs", render_id, time.time() - start)
    return buf
