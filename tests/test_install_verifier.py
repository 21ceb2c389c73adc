"""Tests for the installation readiness check."""

from __future__ import annotations

import io
import logging

import pytest

from kube_verify.errors import VerifyTimeoutError
from kube_verify.services.install_verifier import InstallVerifier, PodsNotReadyError, render_status_table
from kube_verify.models import PodPhase, PodRecord


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _verifier(kube, clock=None, out=None, **kwargs):
    clock = clock or FakeClock()
    return InstallVerifier(
        kube=kube,
        namespace="test-ns",
        out=out or io.StringIO(),
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_ready_installation_passes(kube, make_pod, make_pod_list) -> None:
    kube.core.list_namespaced_pod.return_value = make_pod_list(
        make_pod("controller", "Running", ready=True),
        make_pod("migrate", "Succeeded"),
    )
    out = io.StringIO()

    assert await _verifier(kube, out=out).run() == 0

    lines = out.getvalue().splitlines()
    assert lines[0].split() == ["POD", "STATUS"]
    assert lines[1].split() == ["controller", "Running"]
    assert lines[2].split() == ["migrate", "Succeeded"]
    kube.core.list_namespaced_pod.assert_called_once_with(
        namespace="test-ns", label_selector="!tekton.dev/pipelineRun"
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("options", "expected"),
    [
        ({}, {"label_selector": "!tekton.dev/pipelineRun"}),
        ({"include_build": True}, {}),
        ({"selector": "app=web", "include_build": True}, {"label_selector": "app=web"}),
    ],
)
async def test_pod_selection(kube, make_pod_list, options, expected) -> None:
    kube.core.list_namespaced_pod.return_value = make_pod_list()

    await _verifier(kube, **options).run()

    kube.core.list_namespaced_pod.assert_called_once_with(namespace="test-ns", **expected)


@pytest.mark.asyncio
async def test_zero_wait_fails_immediately_grouped_by_phase(kube, make_pod, make_pod_list) -> None:
    kube.core.list_namespaced_pod.return_value = make_pod_list(
        make_pod("web-1", "Pending"),
        make_pod("web-2", "Running"),
        make_pod("web-3", "Pending"),
        make_pod("db-0", "Running", ready=True),
    )
    clock = FakeClock()

    with pytest.raises(PodsNotReadyError) as exc_info:
        await _verifier(kube, clock=clock, wait=0).run()

    assert str(exc_info.value) == "the following pods are not ready:\nPending: web-1, web-3\nRunning: web-2"
    assert exc_info.value.not_ready == {"Pending": ["web-1", "web-3"], "Running": ["web-2"]}
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_waits_until_pods_are_ready(kube, make_pod, make_pod_list, caplog) -> None:
    kube.core.list_namespaced_pod.side_effect = [
        make_pod_list(make_pod("web-1", "Pending")),
        make_pod_list(make_pod("web-1", "Running")),
        make_pod_list(make_pod("web-1", "Running", ready=True)),
    ]
    clock = FakeClock()

    with caplog.at_level(logging.INFO, logger="kube_verify.services.install_verifier"):
        assert await _verifier(kube, clock=clock, wait=120, poll_period=10).run() == 0

    assert clock.sleeps == [10, 10]
    assert caplog.text.count("waiting up to 2m0s for pods to be ready") == 1


@pytest.mark.asyncio
async def test_times_out(kube, make_pod, make_pod_list) -> None:
    kube.core.list_namespaced_pod.return_value = make_pod_list(make_pod("web-1", "Pending"))

    with pytest.raises(VerifyTimeoutError) as exc_info:
        await _verifier(kube, wait=30, poll_period=10).run()

    assert str(exc_info.value).startswith("timed out after waiting for duration 30s: the following pods are not ready")


@pytest.mark.asyncio
async def test_verbose_writes_failed_pod_logs(kube, make_pod, make_pod_list, tmp_path) -> None:
    kube.core.list_namespaced_pod.return_value = make_pod_list(
        make_pod("broken", "Failed"),
        make_pod("web-1", "Running", ready=True),
    )
    kube.core.read_namespaced_pod_log.return_value = "panic: boom\n"
    log_path = tmp_path / "verify-pod.log"

    assert await _verifier(kube, verbose=True, log_path=str(log_path)).run() == 0

    assert log_path.read_text(encoding="utf-8") == "Logs for pod broken:\npanic: boom\n"
    kube.core.read_namespaced_pod_log.assert_called_once_with(name="broken", namespace="test-ns")


def test_render_status_table_aligns_columns() -> None:
    table = render_status_table(
        [PodRecord(name="a-much-longer-name", phase=PodPhase.RUNNING), PodRecord(name="b", phase=PodPhase.FAILED)]
    )

    lines = table.splitlines()
    assert lines[0].index("STATUS") == lines[1].index("Running") == lines[2].index("Failed")
