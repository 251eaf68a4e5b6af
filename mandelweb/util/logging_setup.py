import contextlib
import logging
import logging.handlers
import multiprocessing as mp
from typing import ContextManager, Optional

_LOGGER_NAME = "mandelweb"

def get_logger(suffix: Optional[str] = None) -> logging.Logger:
    name = f"{_LOGGER_NAME}.{suffix}" if suffix else _LOGGER_NAME
    return logging.getLogger(name)

def _build_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s.%(msecs)03dZ %(processName)s %(threadName)s %(levelname)s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

def configure_root_logging(
    *,
    level: int = logging.INFO,
    console: bool = True,
    log_file: Optional[str] = "mandelweb.log",
    rotate_bytes: int = 5 * 1024 * 1024,
    rotate_count: int = 5,
) -> logging.Logger:
    logger = get_logger()
    logger.setLevel(level)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    fmt = _build_formatter()
    if console:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(fmt)
        logger.addHandler(ch)
    if log_file:
        fh = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=rotate_bytes, backupCount=rotate_count, encoding="utf-8"
        )
        fh.setLevel(level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger

class WorkerLogRelay:
    """Carries records from pool worker processes back to the handlers of ``target``.

    Only process pools need one; threads share the parent's handlers directly.
    """

    def __init__(self, target: logging.Logger):
        self.queue: mp.Queue = mp.Queue(-1)
        self._listener = logging.handlers.QueueListener(self.queue, *target.handlers, respect_handler_level=True)

    def __enter__(self) -> "WorkerLogRelay":
        self._listener.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self._listener.stop()
        self.queue.close()
        self.queue.join_thread()

def worker_log_relay(executor: str, target: logging.Logger) -> ContextManager[Optional[WorkerLogRelay]]:
    if executor != "process":
        return contextlib.nullcontext()
    return WorkerLogRelay(target)

def route_worker_logs(queue: Optional[mp.Queue], level: int) -> None:
    """Pool initializer hook: send this process's mandelweb records through ``queue``."""
    if queue is None:
        return
    logger = get_logger()
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers[:] = [logging.handlers.QueueHandler(queue)]
