"""Fan-out of tailed pod log lines to the configured output streams."""

from __future__ import annotations

import logging
import threading
from typing import TextIO

logger = logging.getLogger(__name__)


class LogSink:
    """Writes every line to all registered streams.

    A stream that fails to accept a write is dropped so one broken output
    cannot stop the others from receiving the log.
    """

    def __init__(self, *streams: TextIO) -> None:
        self._streams: list[TextIO] = list(streams)
        self._owned: list[TextIO] = []
        self._lock = threading.Lock()
        self.lines_written = 0

    def register(self, stream: TextIO) -> None:
        with self._lock:
            if stream not in self._streams:
                self._streams.append(stream)

    def unregister(self, stream: TextIO) -> None:
        with self._lock:
            if stream in self._streams:
                self._streams.remove(stream)

    def open_file(self, path: str) -> TextIO:
        """Append the log to ``path`` too; the file is closed by :meth:`close`."""
        handle = open(path, "a", encoding="utf-8")
        with self._lock:
            self._owned.append(handle)
        self.register(handle)
        logger.info("copying pod logs to %s", path)
        return handle

    @property
    def streams(self) -> list[TextIO]:
        with self._lock:
            return list(self._streams)

    def write_line(self, line: str) -> None:
        text = line if line.endswith("\n") else f"{line}\n"
        for stream in self.streams:
            try:
                stream.write(text)
                stream.flush()
            except (OSError, ValueError) as exc:
                logger.warning("dropping log output %s after write failure: %s", getattr(stream, "name", stream), exc)
                self.unregister(stream)
        with self._lock:
            self.lines_written += 1

    def close(self) -> None:
        with self._lock:
            owned, self._owned = self._owned, []
        for handle in owned:
            self.unregister(handle)
            handle.close()
