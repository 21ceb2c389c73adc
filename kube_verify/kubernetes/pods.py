"""Pod queries, log access and pod state predicates."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Optional

from kubernetes import watch
from kubernetes.client import ApiException

from ..errors import InvalidContainerError, ResourceNotFoundError
from ..models import PodPhase, PodRecord
from .client import KubernetesClient

logger = logging.getLogger(__name__)


def _pod_sort_key(pod: PodRecord) -> datetime:
    if pod.creation_timestamp:
        return pod.creation_timestamp
    return datetime.min.replace(tzinfo=timezone.utc)


def is_pod_completed(pod: PodRecord) -> bool:
    return pod.phase in {PodPhase.SUCCEEDED, PodPhase.FAILED}


def is_pod_succeeded(pod: PodRecord) -> bool:
    return pod.phase == PodPhase.SUCCEEDED


def is_pod_ready(pod: PodRecord) -> bool:
    """Running, not terminating and with a True Ready condition."""
    return pod.phase == PodPhase.RUNNING and not pod.deleting and pod.ready


def pod_status(pod: PodRecord) -> str:
    """Short human readable status used for status change logging."""
    if pod.deleting:
        return "Terminating"
    if is_pod_ready(pod):
        return "Ready"
    if pod.waiting_reason and not is_pod_completed(pod):
        return pod.waiting_reason
    return pod.phase.value


def verify_container_name(pod: PodRecord, name: str) -> None:
    if name in pod.containers:
        return
    raise InvalidContainerError(name, pod.name, pod.containers)


async def list_pods(kube: KubernetesClient, namespace: str, selector: Optional[str] = None) -> list[PodRecord]:
    def _list():
        kwargs = {"namespace": namespace}
        if selector:
            kwargs["label_selector"] = selector
        return kube.core.list_namespaced_pod(**kwargs)

    try:
        pods = await asyncio.to_thread(_list)
    except ApiException as exc:
        if exc.status == 404:
            return []
        raise
    return [PodRecord.from_k8s(pod) for pod in (pods.items if pods else [])]


async def get_pod(kube: KubernetesClient, namespace: str, name: str) -> PodRecord:
    def _read():
        return kube.core.read_namespaced_pod(name=name, namespace=namespace)

    try:
        pod = await asyncio.to_thread(_read)
    except ApiException as exc:
        if exc.status == 404:
            raise ResourceNotFoundError("pod", name, namespace) from exc
        raise
    return PodRecord.from_k8s(pod)


async def delete_pod(kube: KubernetesClient, namespace: str, name: str) -> None:
    def _delete() -> None:
        kube.core.delete_namespaced_pod(name=name, namespace=namespace)

    await asyncio.to_thread(_delete)


async def get_latest_pod(kube: KubernetesClient, namespace: str, selector: str) -> Optional[PodRecord]:
    """Return the most recently created pod matching the selector."""
    pods = await list_pods(kube, namespace, selector)
    if not pods:
        return None
    return max(pods, key=_pod_sort_key)


async def get_ready_pod_for_selector(kube: KubernetesClient, namespace: str, selector: str) -> Optional[PodRecord]:
    """Return the newest running or ready pod for the selector.

    Falls back to the newest pod of any phase so callers can still report its
    status while it starts up.
    """
    pods = await list_pods(kube, namespace, selector)
    if not pods:
        return None
    running = [pod for pod in pods if not pod.deleting and (pod.phase == PodPhase.RUNNING or pod.ready)]
    return max(running or pods, key=_pod_sort_key)


async def read_pod_log(kube: KubernetesClient, namespace: str, pod_name: str, container: Optional[str] = None) -> str:
    def _logs() -> str:
        kwargs = {"name": pod_name, "namespace": namespace}
        if container:
            kwargs["container"] = container
        return kube.core.read_namespaced_pod_log(**kwargs)

    try:
        return await asyncio.to_thread(_logs) or ""
    except ApiException as exc:
        if exc.status == 404:
            raise ResourceNotFoundError("pod", pod_name, namespace, "no log available") from exc
        raise


def iter_pod_log(kube: KubernetesClient, namespace: str, pod_name: str, container: str) -> Iterator[str]:
    """Follow the log of a container, yielding lines until the container exits.

    Blocking; run it off the event loop.
    """
    w = watch.Watch()
    try:
        yield from w.stream(
            kube.core.read_namespaced_pod_log,
            name=pod_name,
            namespace=namespace,
            container=container,
            follow=True,
        )
    finally:
        w.stop()
