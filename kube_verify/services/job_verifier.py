"""Verifies that a Job succeeds, tailing the log of its pods as it runs."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Optional, TextIO

from kubernetes.client import ApiException

from ..errors import (
    MissingOptionError,
    ResourceNotFoundError,
    ResultMarkerFailedError,
    ResultMarkerMissingError,
    VerifyError,
    VerifyTimeoutError,
)
from ..kubernetes import jobs as k8s_jobs
from ..kubernetes import pods as k8s_pods
from ..kubernetes.client import KubernetesClient
from ..kubernetes.monitor import JobPodMonitor
from ..models import JobRecord, JobVerifyOptions, PodRecord, PodResult
from ..parsers.result_parser import RESULT_PREFIX, find_result, format_result
from ..utils.log_sink import LogSink
from .state_tracker import StateTracker

logger = logging.getLogger(__name__)


class JobVerifier:
    """Waits for a Job to finish, following the logs of each pod it starts.

    A finished pod does not mean the Job has finished (it may start another
    pod), so after every tail the pod is re-checked and the Job polled again.
    """

    def __init__(
        self,
        *,
        kube: KubernetesClient,
        options: JobVerifyOptions,
        out: Optional[TextIO] = None,
        sink: Optional[LogSink] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monitor: Optional[JobPodMonitor] = None,
    ) -> None:
        self._kube = kube
        self._options = options
        self._out = out or sys.stdout
        self._sink = sink or LogSink(self._out)
        self._sleep = sleep
        self._tracker = StateTracker()
        self._monitor = monitor
        self.tailed_pods: list[str] = []

    @property
    def namespace(self) -> str:
        return self._options.namespace

    @property
    def selector(self) -> str:
        if self._options.selector:
            return self._options.selector
        return k8s_jobs.job_name_selector(self._options.name or "")

    @property
    def monitor(self) -> JobPodMonitor:
        if self._monitor is None:
            self._monitor = JobPodMonitor(
                kube=self._kube,
                namespace=self.namespace,
                selector=self.selector,
                job_name=self._options.name or "",
                duration=self._options.duration,
                poll_period=self._options.poll_period,
                tracker=self._tracker,
                sleep=self._sleep,
            )
        return self._monitor

    def validate(self) -> None:
        if not self._options.selector and not self._options.name:
            raise MissingOptionError("selector")

    async def run(self) -> int:
        """Verify the job and return the process exit code.

        In log-fail mode failures are reported on the result line instead of
        being raised, and the exit code is always 0.
        """
        if self._options.log_file:
            self._sink.open_file(self._options.log_file)
        try:
            await self.verify()
        except (VerifyError, ApiException) as exc:
            if not self._options.log_fail:
                raise
            logger.error("job verification failed: %s", exc)
            self._write_result(exc)
            return 0
        finally:
            self._sink.close()
        if self._options.log_fail:
            self._write_result(None)
        return 0

    def _write_result(self, error: Optional[BaseException]) -> None:
        self._out.write(format_result(error) + "\n")
        self._out.flush()

    async def verify(self) -> None:
        self.validate()
        self.monitor.start()

        job = await self.pick_job()
        self.monitor.job_name = job.name
        await self.view_active_job_log(job)

        if self._options.verify_result:
            await self.verify_pod_result()

    async def pick_job(self) -> JobRecord:
        if self._options.name:
            return await self.wait_for_named_job(self._options.name)

        jobs = await k8s_jobs.get_sorted_jobs(self._kube, self.namespace, self.selector)
        if not jobs:
            raise VerifyError(f"no jobs to view in namespace {self.namespace} with selector {self.selector}")
        for index, job in enumerate(jobs):
            logger.debug("%s: %s", job.name, k8s_jobs.job_display_name(job, len(jobs) - index))
        job = jobs[0]
        logger.info("verifying job %s %s", job.name, k8s_jobs.job_display_name(job, len(jobs)))
        return job

    async def wait_for_named_job(self, name: str) -> JobRecord:
        logged_wait = False
        while True:
            job = await k8s_jobs.find_job(self._kube, self.namespace, name)
            if job is not None:
                return job
            if self.monitor.deadline_exceeded:
                raise ResourceNotFoundError(
                    "job", name, self.namespace, str(VerifyTimeoutError(self.monitor.duration))
                )
            if not logged_wait:
                logged_wait = True
                logger.info("waiting for job %s in namespace %s", name, self.namespace)
            await self._sleep(self._options.poll_period)

    async def view_active_job_log(self, job: JobRecord) -> None:
        while True:
            result = await self.monitor.wait()
            if result.complete:
                return
            pod = result.pod
            if pod is None:
                raise VerifyError(f"No pod found for namespace {self.namespace} with selector {self.selector}")

            if self.monitor.deadline_exceeded:
                raise VerifyTimeoutError(self.monitor.duration)

            container = self.resolve_container(pod)
            if pod.name not in self.tailed_pods:
                self.tailed_pods.append(pod.name)

            if not self._options.no_tail:
                logger.info("tailing job %s pod %s", job.name, pod.name)
                await self.tail(pod.name, container)

            pod = await self.recheck_pod(pod.name)
            if not k8s_pods.is_pod_completed(pod):
                # tail returned (or was skipped) while the pod still runs
                await self._sleep(self._options.poll_period)

    def resolve_container(self, pod: PodRecord) -> str:
        container = self._options.container
        if not container:
            if not pod.containers:
                raise VerifyError(f"pod {pod.name} has no containers")
            container = pod.containers[0]
        k8s_pods.verify_container_name(pod, container)
        return container

    async def tail(self, pod_name: str, container: str) -> None:
        def _tail() -> None:
            for line in k8s_pods.iter_pod_log(self._kube, self.namespace, pod_name, container):
                self._sink.write_line(line)

        try:
            await asyncio.to_thread(_tail)
        except Exception as exc:
            # the pod is re-checked next, so a broken stream only costs log output
            logger.warning("failed to tail log: %s", exc)

    async def recheck_pod(self, pod_name: str) -> PodRecord:
        pod = await k8s_pods.get_pod(self._kube, self.namespace, pod_name)
        if k8s_pods.is_pod_completed(pod):
            if k8s_pods.is_pod_succeeded(pod):
                logger.info("job pod %s has Succeeded", pod_name)
            else:
                logger.info("job pod %s has %s", pod_name, pod.phase.value)
        elif pod.deleting:
            logger.info("job pod %s is Terminating", pod_name)
        return pod

    async def verify_pod_result(self) -> PodResult:
        pod = await k8s_pods.get_latest_pod(self._kube, self.namespace, self.selector)
        if pod is None:
            raise ResultMarkerMissingError(
                f"no pod found in namespace {self.namespace} with selector {self.selector} to read the result from"
            )
        container = self._options.container or (pod.containers[0] if pod.containers else None)
        log = await k8s_pods.read_pod_log(self._kube, self.namespace, pod.name, container)
        result = find_result(log)
        if result is None:
            raise ResultMarkerMissingError(f"no line starting with '{RESULT_PREFIX.strip()}' in the log of pod {pod.name}")
        if not result.ok:
            raise ResultMarkerFailedError(result.message)
        logger.info("pod %s reported result OK", pod.name)
        return result
