"""Decorative progress indicator shown while a build blocks the foreground."""

from __future__ import annotations

import sys
import threading
from typing import Optional, TextIO


class ProgressBar:
    """Redraw a bar on a background thread until stopped.

    The bar owns nothing but its output stream, so it needs no coordination
    with the work it decorates beyond the stop event.
    """

    def __init__(self, length: int = 70, interval: float = 0.05, stream: Optional[TextIO] = None) -> None:
        self.length = length
        self.interval = interval
        self.stream = stream or sys.stdout
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="appvm-progress", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
            self.stream.write("\r" + " " * (self.length + 1) + "\r")
            self.stream.flush()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.is_set():
            self.stream.write("\r" + " " * (self.length - 1) + "]\r[")
            self.stream.flush()
            for _ in range(self.length - 1):
                if self._stop.wait(self.interval):
                    return
                self.stream.write("+")
                self.stream.flush()

    def __enter__(self) -> "ProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
