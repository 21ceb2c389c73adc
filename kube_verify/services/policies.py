"""Decisions taken on observed pods and events. No I/O happens here."""

from __future__ import annotations

import logging

from ..kubernetes.pods import is_pod_completed, is_pod_ready
from ..models import EventRecord, PodRecord

logger = logging.getLogger(__name__)

# Event messages for pods whose image can never be pulled
ERR_IMAGE_PULL_MESSAGE = "Error: ErrImagePull"
ERR_IMAGE_PULL_BACK_OFF_MESSAGE = "Error: ImagePullBackOff"

UNRECOVERABLE_MESSAGES = frozenset({ERR_IMAGE_PULL_MESSAGE, ERR_IMAGE_PULL_BACK_OFF_MESSAGE})


def readiness_policy(pod: PodRecord) -> bool:
    """True if the pod counts towards the ready target."""
    return is_pod_completed(pod) or is_pod_ready(pod)


def failure_policy(event: EventRecord) -> bool:
    """True if the pod the event refers to can never start and should be deleted."""
    if event.kind != "Pod":
        return False
    if event.message not in UNRECOVERABLE_MESSAGES:
        logger.debug("ignoring pod message %s", event.message)
        return False
    return True
