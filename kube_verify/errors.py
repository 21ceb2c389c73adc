"""Failures raised by the verification commands."""

from __future__ import annotations

from collections.abc import Iterable


class VerifyError(RuntimeError):
    """Base class for every verification failure."""


class MissingOptionError(VerifyError):
    def __init__(self, option: str) -> None:
        super().__init__(f"missing option: --{option}")
        self.option = option


class ResourceNotFoundError(VerifyError):
    """An exact get-by-name found nothing."""

    def __init__(self, kind: str, name: str, namespace: str, detail: str | None = None) -> None:
        message = f"{kind} {name} not found in namespace {namespace}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.kind = kind
        self.name = name
        self.namespace = namespace


class VerifyTimeoutError(VerifyError):
    def __init__(self, duration: float, detail: str | None = None) -> None:
        message = f"timed out after waiting for duration {format_duration(duration)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.duration = duration


class InvalidContainerError(VerifyError):
    def __init__(self, container: str, pod_name: str, available: Iterable[str]) -> None:
        self.available = sorted(available)
        super().__init__(
            f"invalid container name {container} for pod {pod_name}. Available names: {', '.join(self.available)}"
        )
        self.container = container
        self.pod_name = pod_name


class JobFailedError(VerifyError):
    def __init__(self, job_name: str) -> None:
        super().__init__(f"job {job_name} failed")
        self.job_name = job_name


class ResultMarkerMissingError(VerifyError):
    """The pod log has no result marker line."""


class ResultMarkerFailedError(VerifyError):
    """The result marker line reported a failure."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def format_duration(seconds: float) -> str:
    """Render seconds the way durations are given on the command line, e.g. ``1h0m0s``."""
    if seconds <= 0:
        return "0s"
    if seconds < 1:
        return f"{int(round(seconds * 1000))}ms"
    whole = int(seconds)
    fraction = seconds - whole
    hours, rest = divmod(whole, 3600)
    minutes, secs = divmod(rest, 60)
    secs_text = f"{secs + fraction:g}s"
    if hours:
        return f"{hours}h{minutes}m{secs_text}"
    if minutes:
        return f"{minutes}m{secs_text}"
    return secs_text
