from __future__ import annotations

import pytest

from kube_verify.errors import ResultMarkerFailedError
from kube_verify.parsers.result_parser import find_result, format_result, parse_result_line


@pytest.mark.parametrize(
    ("line", "ok", "message"),
    [
        ("POD RESULT: OK", True, ""),
        ("POD RESULT: OK\r\n", True, ""),
        ("POD RESULT: FAILED: disk full", False, "disk full"),
        ("POD RESULT: something unexpected", False, "something unexpected"),
    ],
)
def test_parse_result_line(line, ok, message) -> None:
    result = parse_result_line(line)

    assert result is not None
    assert result.ok is ok
    assert result.message == message


@pytest.mark.parametrize("line", ["", "starting job", "  POD RESULT: OK", "pod result: ok"])
def test_non_result_lines_are_ignored(line) -> None:
    assert parse_result_line(line) is None


def test_last_result_line_wins() -> None:
    log = "\n".join(
        [
            "POD RESULT: FAILED: first attempt",
            "retrying",
            "POD RESULT: OK",
            "cleaning up",
        ]
    )

    result = find_result(log)

    assert result is not None
    assert result.ok


def test_missing_result_line() -> None:
    assert find_result("no marker here\nat all\n") is None
    assert find_result("") is None


def test_format_result() -> None:
    assert format_result() == "POD RESULT: OK"
    assert format_result(ResultMarkerFailedError("disk full")) == "POD RESULT: FAILED: disk full"
