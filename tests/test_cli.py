import io
import json
import logging
import os
import tempfile
import unittest
from unittest.mock import patch

import numpy as np
from PIL import Image

from mandelweb.cli import build_arg_parser, main
from mandelweb.util.logging_setup import get_logger

RENDER_ARGS = ["--zoom", "4", "--width", "9", "--height", "6", "--itertimes", "25"]


class TestCLI(unittest.TestCase):
    def tearDown(self):
        logger = get_logger()
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_render_writes_png_and_manifest(self):
        """Test that each strategy writes the same PNG plus a run manifest."""
        with tempfile.TemporaryDirectory() as temporary_directory:
            images = []
            for strategy in ("lazy", "sequential", "concurrent"):
                with self.subTest(strategy=strategy):
                    output = os.path.join(temporary_directory, f"{strategy}.png")
                    exit_code = main(["--log-file", "", "render", "--output", output, "--strategy", strategy, *RENDER_ARGS])
                    self.assertEqual(exit_code, 0)

                    with open(output, "rb") as f:
                        img = Image.open(io.BytesIO(f.read()))
                        img.load()
                    self.assertEqual(img.size, (9, 6))
                    images.append(np.asarray(img))

                    with open(output + ".json") as f:
                        manifest = json.load(f)
                    self.assertEqual(manifest["strategy"], strategy)
                    self.assertEqual(manifest["config"]["width"], 9)
                    self.assertEqual(manifest["config"]["pixel_step"], 0.25)
                    self.assertIn("numpy", manifest["packages"])

            np.testing.assert_array_equal(images[0], images[1])
            np.testing.assert_array_equal(images[0], images[2])

    def test_render_uses_settings_defaults(self):
        """Test that unspecified render options come from the settings file."""
        with tempfile.TemporaryDirectory() as temporary_directory:
            config_path = os.path.join(temporary_directory, "settings.json")
            with open(config_path, "w") as f:
                json.dump({"defaults": {"width": 7, "height": 5, "itertimes": 20}}, f)

            output = os.path.join(temporary_directory, "out.png")
            exit_code = main(["--config", config_path, "--log-file", "", "render", "--output", output])
            self.assertEqual(exit_code, 0)

            with open(output + ".json") as f:
                manifest = json.load(f)
            self.assertEqual(manifest["config"]["width"], 7)
            self.assertEqual(manifest["config"]["height"], 5)
            self.assertEqual(manifest["config"]["max_iterations"], 20)
            self.assertFalse(manifest["config"]["colorful"])

    def test_invalid_render_parameters_fail(self):
        """Test that an unusable zoom or empty image exits with an error code."""
        with tempfile.TemporaryDirectory() as temporary_directory:
            output = os.path.join(temporary_directory, "out.png")
            for args in (["--zoom", "0"], ["--width", "0"]):
                with self.subTest(args=args):
                    self.assertEqual(main(["--log-file", "", "render", "--output", output, *args]), 1)
            self.assertFalse(os.path.exists(output))

    def test_invalid_settings_fail(self):
        """Test that invalid settings exit with an error code."""
        with tempfile.TemporaryDirectory() as temporary_directory:
            config_path = os.path.join(temporary_directory, "settings.json")
            with open(config_path, "w") as f:
                json.dump({"executor": "gpu"}, f)

            output = os.path.join(temporary_directory, "out.png")
            self.assertEqual(main(["--config", config_path, "--log-file", "", "render", "--output", output]), 1)

    def test_serve_applies_overrides(self):
        """Test that command line overrides are applied to the server settings."""
        with patch("mandelweb.cli.serve") as mock_serve:
            exit_code = main(["--log-file", "", "serve", "--host", "127.0.0.1", "--port", "8081", "--executor", "process"])

        self.assertEqual(exit_code, 0)
        settings = mock_serve.call_args.args[0]
        self.assertEqual(settings["host"], "127.0.0.1")
        self.assertEqual(settings["port"], 8081)
        self.assertEqual(settings["executor"], "process")
        self.assertIsNotNone(mock_serve.call_args.kwargs["log_queue"])

    def test_thread_executor_has_no_log_queue(self):
        """Test that no worker log queue is created when rows render on threads."""
        with patch("mandelweb.cli.serve") as mock_serve:
            exit_code = main(["--log-file", "", "serve", "--executor", "thread"])

        self.assertEqual(exit_code, 0)
        self.assertIsNone(mock_serve.call_args.kwargs["log_queue"])

    def test_command_is_required(self):
        """Test that a subcommand must be given."""
        with self.assertRaises(SystemExit):
            build_arg_parser().parse_args([])
