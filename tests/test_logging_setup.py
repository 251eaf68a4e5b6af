import logging
import logging.handlers
import os
import queue
import tempfile
import unittest

from mandelweb.util.logging_setup import (
    WorkerLogRelay,
    configure_root_logging,
    get_logger,
    route_worker_logs,
    worker_log_relay,
)


class TestLoggingSetup(unittest.TestCase):
    def tearDown(self):
        logger = get_logger()
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_get_logger_names(self):
        """Test that module loggers are children of the package logger."""
        self.assertEqual(get_logger().name, "mandelweb")
        self.assertEqual(get_logger("concurrent").name, "mandelweb.concurrent")

    def test_file_logging(self):
        """Test that records from child loggers reach the rotating log file."""
        with tempfile.TemporaryDirectory() as temporary_directory:
            path = os.path.join(temporary_directory, "mandelweb.log")
            logger = configure_root_logging(level=logging.DEBUG, console=False, log_file=path)
            self.assertIsInstance(logger.handlers[0], logging.handlers.RotatingFileHandler)

            get_logger("concurrent").debug("Rendered row %s/%s", 50, 200)
            logger.handlers[0].flush()

            with open(path) as f:
                contents = f.read()
            self.assertIn("DEBUG mandelweb.concurrent - Rendered row 50/200", contents)

    def test_reconfiguring_replaces_handlers(self):
        """Test that configuring twice does not duplicate handlers."""
        configure_root_logging(console=True, log_file=None)
        logger = configure_root_logging(console=True, log_file=None)
        self.assertEqual(len(logger.handlers), 1)

    def test_worker_logging_goes_through_queue(self):
        """Test that worker processes hand their records to the shared queue."""
        records = queue.Queue()
        route_worker_logs(records, logging.INFO)
        get_logger("concurrent").info("row done")
        get_logger("concurrent").debug("filtered out")

        record = records.get_nowait()
        self.assertEqual(record.getMessage(), "row done")
        self.assertTrue(records.empty())

    def test_routing_without_queue_leaves_logging_alone(self):
        """Test that pool workers without a log queue keep their inherited handlers."""
        logger = configure_root_logging(console=True, log_file=None)
        handlers = list(logger.handlers)
        route_worker_logs(None, logging.DEBUG)
        self.assertEqual(logger.handlers, handlers)

    def test_relay_only_created_for_process_pools(self):
        """Test that thread pools get no relay and process pools get a running one."""
        logger = configure_root_logging(console=False, log_file=None)
        with worker_log_relay("thread", logger) as relay:
            self.assertIsNone(relay)

        with worker_log_relay("process", logger) as relay:
            self.assertIsInstance(relay, WorkerLogRelay)
            self.assertIsNotNone(relay.queue)

    def test_relay_forwards_records_to_target_handlers(self):
        """Test that records put on the relay queue reach the target logger's log file."""
        with tempfile.TemporaryDirectory() as temporary_directory:
            path = os.path.join(temporary_directory, "mandelweb.log")
            logger = configure_root_logging(level=logging.INFO, console=False, log_file=path)

            with worker_log_relay("process", logger) as relay:
                record = logging.LogRecord("mandelweb.concurrent", logging.INFO, __file__, 1, "row %s done", (7,), None)
                relay.queue.put(record)

            logger.handlers[0].flush()
            with open(path) as f:
                self.assertIn("INFO mandelweb.concurrent - row 7 done", f.read())
