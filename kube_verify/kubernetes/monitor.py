"""Polling a Job until it finishes or one of its pods is running."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from ..errors import JobFailedError, VerifyTimeoutError
from ..models import JobRecord, PodPhase, PodRecord
from ..services.state_tracker import StateTracker
from .client import KubernetesClient
from .jobs import get_job, is_job_finished, is_job_succeeded
from .pods import get_ready_pod_for_selector, is_pod_completed, is_pod_ready, pod_status

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    complete: bool = False
    job: Optional[JobRecord] = None
    pod: Optional[PodRecord] = None

    @property
    def succeeded(self) -> bool:
        return self.complete and self.job is not None and is_job_succeeded(self.job)

    @property
    def failed(self) -> bool:
        return self.complete and not self.succeeded


class JobPodMonitor:
    """Bounded poll combining "has the Job finished?" and "is a pod running?".

    The deadline is fixed by :meth:`start` and checked only after each tick has
    been evaluated, so a tick that sees the Job finish is never reported as a
    timeout.
    """

    def __init__(
        self,
        *,
        kube: KubernetesClient,
        namespace: str,
        selector: str,
        job_name: str,
        duration: float,
        poll_period: float,
        tracker: Optional[StateTracker] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._kube = kube
        self._namespace = namespace
        self._selector = selector
        self._job_name = job_name
        self._duration = duration
        self._poll_period = poll_period
        self._tracker = tracker or StateTracker()
        self._clock = clock
        self._sleep = sleep
        self._deadline: Optional[float] = None

    @property
    def job_name(self) -> str:
        return self._job_name

    @job_name.setter
    def job_name(self, value: str) -> None:
        self._job_name = value

    @property
    def duration(self) -> float:
        return self._duration

    def start(self) -> float:
        self._deadline = self._clock() + self._duration
        return self._deadline

    @property
    def deadline_exceeded(self) -> bool:
        if self._deadline is None:
            self.start()
        return self._clock() > self._deadline

    async def tick(self) -> PollResult:
        job = await get_job(self._kube, self._namespace, self._job_name)
        if is_job_finished(job):
            if is_job_succeeded(job):
                logger.info("job %s has Succeeded", job.name)
            else:
                logger.info("job %s has Failed", job.name)
            return PollResult(complete=True, job=job)
        logger.debug("job %s is not completed yet", job.name)

        pod = await get_ready_pod_for_selector(self._kube, self._namespace, self._selector)
        if pod is None:
            return PollResult(job=job)

        status = pod_status(pod)
        if not is_pod_completed(pod) and not pod.deleting and self._tracker.observe(pod.name, status):
            logger.info("pod %s has status %s", pod.name, status)
        if pod.phase == PodPhase.RUNNING or is_pod_ready(pod):
            return PollResult(job=job, pod=pod)
        return PollResult(job=job)

    async def wait(self) -> PollResult:
        """Tick until the Job finishes, a pod is running or the deadline passes."""
        if self._deadline is None:
            self.start()
        while True:
            result = await self.tick()
            if result.complete:
                if result.failed:
                    raise JobFailedError(self._job_name)
                return result
            if result.pod is not None:
                return result
            if self.deadline_exceeded:
                raise VerifyTimeoutError(self._duration)
            await self._sleep(self._poll_period)
