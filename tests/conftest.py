import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client import (
    CoreV1Event,
    V1Container,
    V1ContainerState,
    V1ContainerStateWaiting,
    V1ContainerStatus,
    V1Job,
    V1JobCondition,
    V1JobList,
    V1JobStatus,
    V1ListMeta,
    V1ObjectMeta,
    V1ObjectReference,
    V1Pod,
    V1PodCondition,
    V1PodList,
    V1PodSpec,
    V1PodStatus,
)

# Ensure the package is importable without installing the project
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from kube_verify.config import get_settings  # noqa: E402
from kube_verify.kubernetes import client as client_module  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_caches():
    """Drop cached settings and API clients so tests cannot leak into each other."""
    get_settings.cache_clear()
    client_module._CLIENT_CACHE.clear()
    yield
    get_settings.cache_clear()
    client_module._CLIENT_CACHE.clear()


@pytest.fixture
def kube():
    """Stand-in for KubernetesClient with mocked API groups."""
    return SimpleNamespace(core=MagicMock(), batch=MagicMock(), in_cluster=False)


def build_pod(
    name,
    phase="Running",
    *,
    ready=False,
    deleting=False,
    containers=("main",),
    waiting_reason=None,
    age_minutes=0,
    namespace="test-ns",
):
    conditions = [V1PodCondition(type="Ready", status="True" if ready else "False")]
    container_statuses = None
    if waiting_reason:
        container_statuses = [
            V1ContainerStatus(
                name=containers[0],
                image="example/image:latest",
                image_id="",
                ready=False,
                restart_count=0,
                state=V1ContainerState(waiting=V1ContainerStateWaiting(reason=waiting_reason)),
            )
        ]
    return V1Pod(
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            creation_timestamp=BASE_TIME + timedelta(minutes=age_minutes),
            deletion_timestamp=BASE_TIME if deleting else None,
            resource_version="1",
        ),
        spec=V1PodSpec(containers=[V1Container(name=container) for container in containers]),
        status=V1PodStatus(phase=phase, conditions=conditions, container_statuses=container_statuses),
    )


def build_job(name, *, complete=False, failed=False, active=0, age_minutes=0, namespace="test-ns"):
    conditions = []
    if complete:
        conditions.append(V1JobCondition(type="Complete", status="True"))
    if failed:
        conditions.append(V1JobCondition(type="Failed", status="True", reason="BackoffLimitExceeded"))
    return V1Job(
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={"job-name": name},
            creation_timestamp=BASE_TIME + timedelta(minutes=age_minutes),
        ),
        status=V1JobStatus(
            active=active or None,
            succeeded=1 if complete else None,
            failed=1 if failed else None,
            conditions=conditions or None,
        ),
    )


def build_event(name, message, *, kind="Pod", namespace="test-ns"):
    return CoreV1Event(
        metadata=V1ObjectMeta(name=f"{name}.event", namespace=namespace, resource_version="5"),
        involved_object=V1ObjectReference(kind=kind, name=name, namespace=namespace),
        reason="Failed",
        message=message,
    )


def pod_list(*pods, resource_version="10"):
    return V1PodList(items=list(pods), metadata=V1ListMeta(resource_version=resource_version))


def job_list(*jobs):
    return V1JobList(items=list(jobs), metadata=V1ListMeta(resource_version="10"))


@pytest.fixture
def make_pod():
    return build_pod


@pytest.fixture
def make_job():
    return build_job


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def make_pod_list():
    return pod_list


@pytest.fixture
def make_job_list():
    return job_list
