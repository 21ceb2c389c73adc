"""Queries and state helpers for Kubernetes Jobs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from kubernetes.client import ApiException

from ..errors import ResourceNotFoundError, format_duration
from ..models import JobRecord, JobState
from .client import KubernetesClient

logger = logging.getLogger(__name__)


def job_name_selector(name: str) -> str:
    """Label selector matching the pods (and jobs) created for the named job."""
    return f"job-name={name}"


def is_job_finished(job: JobRecord) -> bool:
    return job.complete_condition or job.failed_condition


def is_job_succeeded(job: JobRecord) -> bool:
    return job.complete_condition


def job_state(job: JobRecord) -> JobState:
    # Counters can be non-zero while a job is still retrying, so only the
    # conditions decide whether it has finished
    if is_job_succeeded(job):
        return JobState.SUCCEEDED
    if is_job_finished(job):
        return JobState.FAILED
    if job.active > 0:
        return JobState.RUNNING
    return JobState.PENDING


def _job_sort_key(job: JobRecord) -> datetime:
    if job.creation_timestamp:
        return job.creation_timestamp
    return datetime.min.replace(tzinfo=timezone.utc)


def job_display_name(job: JobRecord, number: int, now: Optional[datetime] = None) -> str:
    """Describe a job as ``#<number> started <age> <state>``."""
    now = now or datetime.now(timezone.utc)
    age = 0.0
    if job.creation_timestamp:
        age = round(max((now - job.creation_timestamp).total_seconds(), 0.0) / 60) * 60
    return f"#{number} started {format_duration(age)} {job_state(job).value}"


async def list_jobs(
    kube: KubernetesClient,
    namespace: str,
    selector: Optional[str] = None,
    field_selector: Optional[str] = None,
) -> list[JobRecord]:
    def _list():
        kwargs = {"namespace": namespace}
        if selector:
            kwargs["label_selector"] = selector
        if field_selector:
            kwargs["field_selector"] = field_selector
        return kube.batch.list_namespaced_job(**kwargs)

    try:
        jobs = await asyncio.to_thread(_list)
    except ApiException as exc:
        if exc.status == 404:
            return []
        raise
    return [JobRecord.from_k8s(job) for job in (jobs.items if jobs else [])]


async def get_sorted_jobs(kube: KubernetesClient, namespace: str, selector: Optional[str] = None) -> list[JobRecord]:
    """List the jobs for the selector, newest first."""
    jobs = await list_jobs(kube, namespace, selector)
    return sorted(jobs, key=_job_sort_key, reverse=True)


async def find_job(kube: KubernetesClient, namespace: str, name: str) -> Optional[JobRecord]:
    """Return the named job or None if it does not exist (yet)."""

    def _read():
        return kube.batch.read_namespaced_job(name=name, namespace=namespace)

    try:
        job = await asyncio.to_thread(_read)
    except ApiException as exc:
        if exc.status == 404:
            return None
        raise
    return JobRecord.from_k8s(job)


async def get_job(kube: KubernetesClient, namespace: str, name: str) -> JobRecord:
    job = await find_job(kube, namespace, name)
    if job is None:
        raise ResourceNotFoundError("job", name, namespace)
    return job
