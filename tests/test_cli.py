"""
Tests for command-line parsing and configuration checks in main.py.
"""

from __future__ import annotations

import pytest

import main


class TestCli:

    def test_defaults(self):
        args = main.parse_args([])
        assert args.frame_skip == 1
        assert args.algorithm == "green_channel"

    @pytest.mark.parametrize("value", ["0", "-2"])
    def test_frame_skip_must_be_positive(self, value):
        with pytest.raises(SystemExit):
            main.parse_args(["--frame-skip", value])

    def test_run_rejects_zero_frame_skip(self):
        args = main.parse_args(["--headless"])
        args.frame_skip = 0
        assert main.run(args) == 1
