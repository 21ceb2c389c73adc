"""List-then-watch subscriptions over namespaced Kubernetes resources."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any, Optional

from kubernetes import watch
from kubernetes.client import ApiException

from ..models import EventNotification, EventRecord, Notification, PodNotification, PodRecord, WatchEventType
from .client import KubernetesClient

logger = logging.getLogger(__name__)

# Status returned when the resource version we watch from has been compacted away
GONE = 410


def pod_notification(event_type: WatchEventType, obj: Any) -> PodNotification:
    return PodNotification(type=event_type, pod=PodRecord.from_k8s(obj))


def event_notification(event_type: WatchEventType, obj: Any) -> EventNotification:
    return EventNotification(type=event_type, event=EventRecord.from_k8s(obj))


class Subscription:
    """Initial snapshot plus a reconnecting stream of typed notifications.

    ``sync`` lists the resource and remembers the resource version; ``stream``
    watches from there, reconnecting when the server closes the watch and
    listing again when the version has expired. Both calls block.
    """

    def __init__(
        self,
        *,
        kind: str,
        list_func: Callable[..., Any],
        namespace: str,
        to_notification: Callable[[WatchEventType, Any], Notification],
        label_selector: Optional[str] = None,
        timeout_seconds: int = 300,
        watch_factory: Callable[[], watch.Watch] = watch.Watch,
    ) -> None:
        self.kind = kind
        self._list_func = list_func
        self._namespace = namespace
        self._to_notification = to_notification
        self._label_selector = label_selector
        self._timeout_seconds = timeout_seconds
        self._watch_factory = watch_factory
        self._resource_version: Optional[str] = None
        self._stopped = threading.Event()
        self._watch: Optional[watch.Watch] = None
        # last object delivered per namespace/name, used to detect deletions missed across a relist
        self._known: dict[str, Any] = {}
        self.synced = False

    @property
    def resource_version(self) -> Optional[str]:
        return self._resource_version

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def _list_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"namespace": self._namespace}
        if self._label_selector:
            kwargs["label_selector"] = self._label_selector
        return kwargs

    @staticmethod
    def _key(obj: Any) -> str:
        metadata = getattr(obj, "metadata", None)
        return f"{getattr(metadata, 'namespace', None) or ''}/{getattr(metadata, 'name', None) or ''}"

    def _remember(self, event_type: WatchEventType, obj: Any) -> None:
        if event_type == WatchEventType.DELETED:
            self._known.pop(self._key(obj), None)
        else:
            self._known[self._key(obj)] = obj

    def sync(self) -> list[Notification]:
        """List the resource and return the snapshot as notifications.

        Objects delivered earlier but absent from the new snapshot are
        reported as DELETED ahead of the snapshot's ADDED notifications.
        """
        result = self._list_func(**self._list_kwargs())
        metadata = getattr(result, "metadata", None)
        self._resource_version = getattr(metadata, "resource_version", None)
        self.synced = True
        items = getattr(result, "items", None) or []
        logger.debug("synced %d %s(s) at resource version %s", len(items), self.kind, self._resource_version)

        current = {self._key(item): item for item in items}
        gone = [obj for key, obj in self._known.items() if key not in current]
        if gone:
            logger.info("%d %s(s) removed while the watch was down", len(gone), self.kind)
        self._known = current
        notifications = [self._to_notification(WatchEventType.DELETED, obj) for obj in gone]
        notifications.extend(self._to_notification(WatchEventType.ADDED, item) for item in items)
        return notifications

    def stream(self) -> Iterator[Notification]:
        while not self._stopped.is_set():
            w = self._watch_factory()
            self._watch = w
            kwargs = self._list_kwargs()
            kwargs["timeout_seconds"] = self._timeout_seconds
            if self._resource_version:
                kwargs["resource_version"] = self._resource_version
            try:
                for event in w.stream(self._list_func, **kwargs):
                    if self._stopped.is_set():
                        return
                    obj = event.get("object")
                    resource_version = getattr(getattr(obj, "metadata", None), "resource_version", None)
                    if resource_version:
                        self._resource_version = resource_version
                    try:
                        event_type = WatchEventType(event.get("type"))
                    except ValueError:
                        logger.debug("ignoring %s watch event of type %s", self.kind, event.get("type"))
                        continue
                    self._remember(event_type, obj)
                    yield self._to_notification(event_type, obj)
            except ApiException as exc:
                if exc.status != GONE:
                    raise
                logger.info("%s watch expired at resource version %s, resyncing", self.kind, self._resource_version)
                yield from self.sync()
            finally:
                w.stop()
            if not self._stopped.is_set():
                logger.debug("%s watch closed by the server, reconnecting", self.kind)

    def stop(self) -> None:
        self._stopped.set()
        if self._watch is not None:
            self._watch.stop()


def pod_subscription(
    kube: KubernetesClient,
    namespace: str,
    *,
    label_selector: Optional[str] = None,
    timeout_seconds: int = 300,
) -> Subscription:
    return Subscription(
        kind="pod",
        list_func=kube.core.list_namespaced_pod,
        namespace=namespace,
        to_notification=pod_notification,
        label_selector=label_selector,
        timeout_seconds=timeout_seconds,
    )


def event_subscription(kube: KubernetesClient, namespace: str, *, timeout_seconds: int = 300) -> Subscription:
    return Subscription(
        kind="event",
        list_func=kube.core.list_namespaced_event,
        namespace=namespace,
        to_notification=event_notification,
        timeout_seconds=timeout_seconds,
    )
