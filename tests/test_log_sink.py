from __future__ import annotations

import io
import logging

from kube_verify.utils.log_sink import LogSink


class BrokenStream(io.StringIO):
    def write(self, text):
        raise OSError("broken pipe")


def test_lines_reach_every_stream() -> None:
    first = io.StringIO()
    second = io.StringIO()
    sink = LogSink(first)
    sink.register(second)
    sink.register(second)

    sink.write_line("hello")
    sink.write_line("world\n")

    assert first.getvalue() == "hello\nworld\n"
    assert second.getvalue() == "hello\nworld\n"
    assert sink.lines_written == 2


def test_broken_stream_is_dropped(caplog) -> None:
    healthy = io.StringIO()
    broken = BrokenStream()
    sink = LogSink(broken, healthy)

    with caplog.at_level(logging.WARNING, logger="kube_verify.utils.log_sink"):
        sink.write_line("one")
        sink.write_line("two")

    assert healthy.getvalue() == "one\ntwo\n"
    assert sink.streams == [healthy]
    assert caplog.text.count("dropping log output") == 1


def test_open_file_appends_and_close_only_closes_owned(tmp_path) -> None:
    path = tmp_path / "pod.log"
    path.write_text("previous\n", encoding="utf-8")
    out = io.StringIO()
    sink = LogSink(out)

    handle = sink.open_file(str(path))
    sink.write_line("tailed")
    sink.close()

    assert handle.closed
    assert not out.closed
    assert sink.streams == [out]
    assert path.read_text(encoding="utf-8") == "previous\ntailed\n"


def test_unregister_stops_delivery() -> None:
    out = io.StringIO()
    sink = LogSink(out)

    sink.unregister(out)
    sink.write_line("lost")

    assert out.getvalue() == ""
