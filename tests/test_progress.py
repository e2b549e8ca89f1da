"""Tests for appvm.progress module."""

from __future__ import annotations

import io
import time

from appvm.progress import ProgressBar


class TestProgressBar:
    def test_draws_until_stopped(self):
        stream = io.StringIO()
        bar = ProgressBar(length=10, interval=0.001, stream=stream)
        bar.start()
        deadline = time.time() + 5
        while "+" not in stream.getvalue() and time.time() < deadline:
            time.sleep(0.01)
        bar.stop()
        assert not bar.running
        assert "+" in stream.getvalue()
        assert stream.getvalue().endswith("\r")

    def test_context_manager_stops_on_error(self):
        stream = io.StringIO()
        bar = ProgressBar(length=10, interval=0.001, stream=stream)
        try:
            with bar:
                raise RuntimeError("build failed")
        except RuntimeError:
            pass
        assert not bar.running

    def test_stop_without_start(self):
        bar = ProgressBar(stream=io.StringIO())
        bar.stop()
        assert not bar.running
