"""Watches pods and events until enough pods are ready, deleting pods that can never start."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Union

from kubernetes.client import ApiException

from ..errors import VerifyTimeoutError
from ..kubernetes.client import KubernetesClient
from ..kubernetes.pods import delete_pod, pod_status
from ..kubernetes.watch import Subscription, event_subscription, pod_subscription
from ..models import EventNotification, EventRecord, Notification, PodNotification, WatchEventType
from .policies import failure_policy, readiness_policy
from .state_tracker import StateTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _StreamFailure:
    kind: str
    error: BaseException


_STOP = object()

_QueueItem = Union[Notification, _StreamFailure, object]


class PodReadinessWatcher:
    """Dispatches pod and event notifications from two watch subscriptions.

    Each subscription streams on its own daemon thread and hands notifications
    to a single dispatcher on the event loop, so the state tracker only ever
    sees them in stream order.
    """

    def __init__(
        self,
        *,
        kube: KubernetesClient,
        namespace: str,
        target_count: int,
        selector: Optional[str] = None,
        tracker: Optional[StateTracker] = None,
        timeout: Optional[float] = None,
        watch_timeout_seconds: int = 300,
        pods: Optional[Subscription] = None,
        events: Optional[Subscription] = None,
    ) -> None:
        self._kube = kube
        self._namespace = namespace
        self._target = target_count
        self._tracker = tracker or StateTracker(target=target_count)
        self._timeout = timeout
        self._pods = pods or pod_subscription(
            kube, namespace, label_selector=selector, timeout_seconds=watch_timeout_seconds
        )
        self._events = events or event_subscription(kube, namespace, timeout_seconds=watch_timeout_seconds)
        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._threads: list[threading.Thread] = []
        self._closing = threading.Event()
        self._stop = asyncio.Event()
        self._synced = asyncio.Event()
        self._done = asyncio.Event()

    @property
    def tracker(self) -> StateTracker:
        return self._tracker

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def start(self) -> asyncio.Event:
        """Sync both subscriptions, then start streaming. Returns the ready signal."""
        self._loop = asyncio.get_running_loop()
        syncing = asyncio.gather(self._sync(self._events), self._sync(self._pods))
        stopping = asyncio.ensure_future(self._stop.wait())
        await asyncio.wait({syncing, stopping}, return_when=asyncio.FIRST_COMPLETED)
        stopping.cancel()
        if self._stop.is_set():
            syncing.cancel()
            return self._synced

        for subscription in (self._events, self._pods):
            thread = threading.Thread(
                target=self._pump,
                args=(subscription,),
                name=f"watch-{subscription.kind}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        self._synced.set()
        logger.info("watching pods in namespace %s until %d are ready", self._namespace, self._target)
        return self._synced

    async def _sync(self, subscription: Subscription) -> None:
        try:
            notifications = await asyncio.to_thread(subscription.sync)
        except Exception as exc:
            # never fatal: the stream still runs, only without an initial snapshot
            logger.error("timed out waiting for %s caches to sync: %s", subscription.kind, exc)
            return
        for notification in notifications:
            self._queue.put_nowait(notification)

    def _post(self, item: _QueueItem) -> bool:
        if self._closing.is_set() or self._loop is None:
            return False
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # event loop already closed
            return False
        return True

    def _pump(self, subscription: Subscription) -> None:
        try:
            for notification in subscription.stream():
                if not self._post(notification):
                    return
        except Exception as exc:
            self._post(_StreamFailure(subscription.kind, exc))

    async def dispatch(self) -> None:
        """Handle queued notifications until the target is reached or the watch stops."""
        while not self._done.is_set():
            item = await self._queue.get()
            if item is _STOP:
                return
            if isinstance(item, _StreamFailure):
                logger.error("%s watch failed: %s", item.kind, item.error)
                raise item.error
            await self.handle(item)

    async def handle(self, notification: Notification) -> None:
        if isinstance(notification, PodNotification):
            self.on_pod(notification)
        elif isinstance(notification, EventNotification):
            if notification.type != WatchEventType.DELETED:
                await self.on_event(notification.event)
        else:
            raise TypeError(f"unsupported watch notification {notification!r}")

    def on_pod(self, notification: PodNotification) -> bool:
        """Update the ready set; True only for the notification that reaches the target."""
        pod = notification.pod
        if notification.type == WatchEventType.DELETED:
            self._tracker.forget(pod.name)
            logger.debug("deleted Pod %s", pod.name)
            return False

        count = self._tracker.set_ready(pod.name, readiness_policy(pod))
        status = pod_status(pod)
        if self._tracker.observe(pod.name, status):
            logger.info("pod %s has status %s", pod.name, status)

        if self._done.is_set() or count < self._target:
            return False
        logger.info("has %d ready pods now", count)
        self._done.set()
        return True

    async def on_event(self, event: EventRecord) -> None:
        if not failure_policy(event):
            return

        namespace = event.namespace or self._namespace
        logger.info("found pod %s with message %s", event.name, event.message)
        try:
            await delete_pod(self._kube, namespace, event.name)
        except ApiException as exc:
            logger.error("failed to delete Pod %s in namespace %s : %s", event.name, namespace, exc)
            return
        logger.info("deleted pod %s in namespace %s", event.name, namespace)

    async def _run(self) -> None:
        await self.start()
        await self.dispatch()

    async def run(self) -> int:
        """Watch until the ready target is reached; returns the process exit code."""
        try:
            if self._timeout is None:
                await self._run()
            else:
                try:
                    await asyncio.wait_for(self._run(), self._timeout)
                except asyncio.TimeoutError:
                    raise VerifyTimeoutError(
                        self._timeout, f"{self._tracker.ready_count} of {self._target} pods ready"
                    ) from None
        finally:
            self.stop()
        return 0 if self._done.is_set() else 1

    def stop(self) -> None:
        """Close the watch; safe to call more than once."""
        if self._closing.is_set():
            return
        self._closing.set()
        self._stop.set()
        self._pods.stop()
        self._events.stop()
        self._queue.put_nowait(_STOP)
        self._tracker.clear()
