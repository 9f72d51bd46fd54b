"""Unit tests for the terminal input loops."""

import pytest
from unittest.mock import patch

from micprocess.ui.keyboard_input import LineInputHandler


@pytest.mark.unit
class TestLineInputHandler:

    def test_keys_forwarded_until_quit(self):
        keys = []

        def callback(key):
            keys.append(key)
            return key != "q"

        handler = LineInputHandler(callback)
        with patch("builtins.input", side_effect=["1", "", "2 please", "q", "1"]):
            handler.start()
            assert handler.wait(timeout=2.0)

        assert keys == ["1", "2", "q"]
        assert handler.running is False

    def test_eof_ends_loop(self):
        handler = LineInputHandler(lambda key: True)
        with patch("builtins.input", side_effect=EOFError):
            handler.start()
            assert handler.wait(timeout=2.0)
