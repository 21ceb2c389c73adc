"""Parser for the result line a verification pod writes at the end of its log."""

from __future__ import annotations

from typing import Optional

from ..models import PodResult

# Example: POD RESULT: OK
# Example: POD RESULT: FAILED: disk full
RESULT_PREFIX = "POD RESULT: "
RESULT_OK = "OK"
RESULT_FAILED_PREFIX = "FAILED: "


def parse_result_line(line: str) -> Optional[PodResult]:
    """Parse a single log line.

    Returns:
        PodResult or None if the line is not a result line

    Examples:
        "POD RESULT: OK" -> PodResult(ok=True)
        "POD RESULT: FAILED: disk full" -> PodResult(ok=False, message="disk full")
    """
    line = line.rstrip("\r\n")
    if not line.startswith(RESULT_PREFIX):
        return None
    remainder = line[len(RESULT_PREFIX) :]
    if remainder == RESULT_OK:
        return PodResult(ok=True)
    if remainder.startswith(RESULT_FAILED_PREFIX):
        remainder = remainder[len(RESULT_FAILED_PREFIX) :]
    return PodResult(ok=False, message=remainder)


def find_result(log: str) -> Optional[PodResult]:
    """Return the result of the last result line in the log, if any."""
    for line in reversed(log.splitlines()):
        result = parse_result_line(line)
        if result is not None:
            return result
    return None


def format_result(error: Optional[BaseException] = None) -> str:
    if error is None:
        return f"{RESULT_PREFIX}{RESULT_OK}"
    return f"{RESULT_PREFIX}{RESULT_FAILED_PREFIX}{error}"
