from __future__ import annotations

import argparse
import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from kubernetes.client import ApiException
from kubernetes.config import ConfigException

from . import __version__
from .config import Settings, get_settings
from .errors import VerifyError
from .kubernetes.client import KubernetesClient, current_namespace, get_kubernetes_client
from .models import JobVerifyOptions
from .services.install_verifier import InstallVerifier
from .services.job_verifier import JobVerifier
from .services.pod_watcher import PodReadinessWatcher

logger = logging.getLogger("kube_verify")

_DURATION_UNITS = {
    "ms": Decimal("0.001"),
    "s": Decimal(1),
    "m": Decimal(60),
    "h": Decimal(3600),
}


def parse_duration(value: str) -> float:
    """Parse ``250ms``, ``1.5s``, ``10m``, ``1h`` or bare seconds into seconds."""
    raw = value
    text = value.strip().lower()
    if not text:
        raise argparse.ArgumentTypeError(f"invalid duration: '{raw}' (use e.g. 1.5s, 10m or 1h)")

    unit = "s"
    number = text
    for suffix in ("ms", "s", "m", "h"):
        if text.endswith(suffix):
            unit = suffix
            number = text[: -len(suffix)]
            break

    try:
        parsed = Decimal(number)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid duration: '{raw}' (use e.g. 1.5s, 10m or 1h)") from exc
    if not parsed.is_finite() or parsed < 0:
        raise argparse.ArgumentTypeError(f"invalid duration: '{raw}' (use e.g. 1.5s, 10m or 1h)")
    return float(parsed * _DURATION_UNITS[unit])


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid count: '{value}'") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"count must be at least 1: '{value}'")
    return number


def _client(settings: Settings) -> KubernetesClient:
    return get_kubernetes_client(settings)


def _namespace(args: argparse.Namespace, settings: Settings, kube: KubernetesClient) -> str:
    return args.namespace or current_namespace(settings, kube)


async def cmd_pods(args: argparse.Namespace, settings: Settings) -> int:
    kube = _client(settings)
    watcher = PodReadinessWatcher(
        kube=kube,
        namespace=_namespace(args, settings, kube),
        target_count=args.count or settings.pod_count,
        selector=args.selector,
        timeout=args.timeout,
        watch_timeout_seconds=settings.watch_timeout_seconds,
    )
    return await watcher.run()


async def cmd_job(args: argparse.Namespace, settings: Settings) -> int:
    kube = _client(settings)
    options = JobVerifyOptions(
        namespace=_namespace(args, settings, kube),
        selector=args.selector,
        name=args.name,
        container=args.container,
        duration=settings.job_duration_seconds if args.duration is None else args.duration,
        poll_period=args.poll or settings.job_poll_seconds,
        no_tail=args.no_tail,
        verify_result=args.verify_result,
        log_fail=args.log_fail,
        log_file=args.log_file,
    )
    return await JobVerifier(kube=kube, options=options).run()


async def cmd_install(args: argparse.Namespace, settings: Settings) -> int:
    kube = _client(settings)
    verifier = InstallVerifier(
        kube=kube,
        namespace=_namespace(args, settings, kube),
        selector=args.selector,
        include_build=args.include_build,
        wait=settings.install_wait_seconds if args.wait is None else args.wait,
        poll_period=args.poll or settings.install_poll_seconds,
        verbose=args.verbose,
    )
    return await verifier.run()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kube-verify", description="Verify the state of a Kubernetes cluster")
    parser.add_argument("--version", action="version", version=f"kube-verify {__version__}")
    parser.add_argument("--log-level", default=None, help="Logging level (default from KUBE_VERIFY_LOG_LEVEL)")

    sub = parser.add_subparsers(dest="command", required=True)

    pods = sub.add_parser("pods", help="Wait until enough pods are ready, deleting pods that cannot pull their image")
    pods.add_argument("-n", "--namespace", help="Namespace to watch; defaults to the current namespace")
    pods.add_argument("-s", "--selector", help="Label selector for the pods to watch")
    pods.add_argument("-c", "--count", type=_positive_int, default=None, help="Number of ready pods to wait for")
    pods.add_argument("--timeout", type=parse_duration, default=None, help="Give up after this long (default: never)")
    pods.set_defaults(func=cmd_pods)

    job = sub.add_parser("job", help="Tail the logs of a Job's pods and verify that it succeeds")
    job.add_argument("-n", "--namespace", help="Namespace of the job; defaults to the current namespace")
    job.add_argument("-l", "--selector", help="Label selector to find the job")
    job.add_argument("--name", help="Name of the job; waits for it to be created")
    job.add_argument("-c", "--container", help="Container to tail; defaults to the first container of the pod")
    job.add_argument("-d", "--duration", type=parse_duration, default=None, help="Maximum time to wait (default 60m)")
    job.add_argument("--poll", type=parse_duration, default=None, help="Time between polls (default 1s)")
    job.add_argument("--no-tail", action="store_true", help="Do not tail the pod logs")
    job.add_argument(
        "--verify-result",
        action="store_true",
        help="Require a 'POD RESULT: OK' line in the log of the last pod",
    )
    job.add_argument(
        "--log-fail",
        action="store_true",
        help="Report failures on a 'POD RESULT:' line and exit 0",
    )
    job.add_argument("--log-file", help="Also append the tailed logs to this file")
    job.set_defaults(func=cmd_job)

    install = sub.add_parser("install", help="Verify every pod of the installation is ready or completed")
    install.add_argument("-n", "--namespace", help="Namespace to check; defaults to the current namespace")
    install.add_argument("-l", "--selector", help="Custom label selector for the pods")
    install.add_argument("--include-build", action="store_true", help="Include pipeline build pods")
    install.add_argument(
        "-w",
        "--pod-wait-time",
        dest="wait",
        type=parse_duration,
        default=None,
        help="How long to wait for the pods to be ready (default 2m)",
    )
    install.add_argument("-p", "--poll", type=parse_duration, default=None, help="Time between polls (default 10s)")
    install.add_argument("--verbose", action="store_true", help="Write the logs of failed pods to verify-pod.log")
    install.set_defaults(func=cmd_install)

    return parser


def configure_logging(level: str, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, getattr(args, "verbose", False))

    try:
        return asyncio.run(args.func(args, settings))
    except (VerifyError, ApiException, ConfigException) as exc:
        logger.error("error: %s", exc)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
