"""Checks that every pod of an installation is ready or has completed."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from typing import Optional, TextIO

from ..config import PIPELINE_RUN_LABEL, VERIFY_POD_LOG_FILE
from ..errors import VerifyError, VerifyTimeoutError, format_duration
from ..kubernetes.client import KubernetesClient
from ..kubernetes.pods import is_pod_completed, is_pod_ready, list_pods, read_pod_log
from ..models import PodPhase, PodRecord

logger = logging.getLogger(__name__)


class PodsNotReadyError(VerifyError):
    """Some pods are neither ready nor completed."""

    def __init__(self, not_ready: dict[str, list[str]]) -> None:
        lines = [f"{phase}: {', '.join(names)}" for phase, names in not_ready.items()]
        super().__init__("the following pods are not ready:\n" + "\n".join(lines))
        self.not_ready = not_ready


def render_status_table(pods: list[PodRecord]) -> str:
    rows = [("POD", "STATUS")] + [(pod.name, pod.phase.value) for pod in pods]
    width = max(len(name) for name, _ in rows)
    return "".join(f"{name.ljust(width)}  {status}\n" for name, status in rows)


class InstallVerifier:
    def __init__(
        self,
        *,
        kube: KubernetesClient,
        namespace: str,
        selector: Optional[str] = None,
        include_build: bool = False,
        wait: float = 120.0,
        poll_period: float = 10.0,
        verbose: bool = False,
        log_path: str = VERIFY_POD_LOG_FILE,
        out: Optional[TextIO] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._kube = kube
        self._namespace = namespace
        self._custom_selector = selector
        self._include_build = include_build
        self._wait = wait
        self._poll_period = poll_period
        self._verbose = verbose
        self._log_path = log_path
        self._out = out or sys.stdout
        self._clock = clock
        self._sleep = sleep

    @property
    def selector(self) -> Optional[str]:
        if self._custom_selector:
            return self._custom_selector
        if self._include_build:
            return None
        return f"!{PIPELINE_RUN_LABEL}"

    async def run(self) -> int:
        logger.info("checking pod statuses in namespace %s", self._namespace)
        end = self._clock() + self._wait
        logged_wait = False
        while True:
            pods = await list_pods(self._kube, self._namespace, self.selector)
            try:
                await self.check(pods)
            except PodsNotReadyError as exc:
                self._render(pods)
                if self._wait <= 0:
                    raise
                if self._clock() > end:
                    raise VerifyTimeoutError(self._wait, str(exc)) from exc
                if not logged_wait:
                    logged_wait = True
                    logger.info("waiting up to %s for pods to be ready", format_duration(self._wait))
                await self._sleep(self._poll_period)
                continue
            self._render(pods)
            return 0

    def _render(self, pods: list[PodRecord]) -> None:
        self._out.write(render_status_table(pods))
        self._out.flush()

    async def check(self, pods: list[PodRecord]) -> None:
        if self._verbose:
            await self.write_failed_logs(pods)

        not_ready: dict[str, list[str]] = {}
        for pod in pods:
            if not is_pod_completed(pod) and not is_pod_ready(pod):
                not_ready.setdefault(pod.phase.value, []).append(pod.name)
        if not_ready:
            raise PodsNotReadyError(not_ready)

    async def write_failed_logs(self, pods: list[PodRecord]) -> None:
        failed = [pod for pod in pods if pod.phase == PodPhase.FAILED]
        logger.info("creating %s", self._log_path)
        with open(self._log_path, "w", encoding="utf-8") as handle:
            for pod in failed:
                text = await read_pod_log(self._kube, self._namespace, pod.name)
                handle.write(f"Logs for pod {pod.name}:\n")
                handle.write(text)
