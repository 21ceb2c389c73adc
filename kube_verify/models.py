"""Pydantic models shared across the verification commands."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class PodPhase(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PodPhase":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class JobState(str, Enum):
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    RUNNING = "Running"
    PENDING = "Pending"


class WatchEventType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


def _condition_true(conditions: Optional[list[Any]], condition_type: str) -> bool:
    for condition in conditions or []:
        if getattr(condition, "type", None) == condition_type and getattr(condition, "status", None) == "True":
            return True
    return False


class PodRecord(BaseModel):
    name: str
    namespace: str = ""
    phase: PodPhase = PodPhase.UNKNOWN
    ready: bool = Field(False, description="Ready condition is True")
    deleting: bool = Field(False, description="A deletion timestamp has been set")
    containers: List[str] = Field(default_factory=list, description="Container names in spec order")
    waiting_reason: Optional[str] = Field(None, description="Reason of the first waiting container")
    creation_timestamp: Optional[datetime] = None

    @classmethod
    def from_k8s(cls, pod: Any) -> "PodRecord":
        metadata = getattr(pod, "metadata", None)
        spec = getattr(pod, "spec", None)
        status = getattr(pod, "status", None)

        waiting_reason = None
        statuses = list(getattr(status, "init_container_statuses", None) or [])
        statuses.extend(getattr(status, "container_statuses", None) or [])
        for container_status in statuses:
            state = getattr(container_status, "state", None)
            waiting = getattr(state, "waiting", None)
            if waiting is not None and getattr(waiting, "reason", None):
                waiting_reason = waiting.reason
                break

        return cls(
            name=getattr(metadata, "name", None) or "",
            namespace=getattr(metadata, "namespace", None) or "",
            phase=PodPhase.parse(getattr(status, "phase", None)),
            ready=_condition_true(getattr(status, "conditions", None), "Ready"),
            deleting=getattr(metadata, "deletion_timestamp", None) is not None,
            containers=[c.name for c in (getattr(spec, "containers", None) or [])],
            waiting_reason=waiting_reason,
            creation_timestamp=getattr(metadata, "creation_timestamp", None),
        )


class JobRecord(BaseModel):
    name: str
    namespace: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    active: int = 0
    succeeded: int = 0
    failed: int = 0
    complete_condition: bool = Field(False, description="Complete condition is True")
    failed_condition: bool = Field(False, description="Failed condition is True")
    creation_timestamp: Optional[datetime] = None

    @classmethod
    def from_k8s(cls, job: Any) -> "JobRecord":
        metadata = getattr(job, "metadata", None)
        status = getattr(job, "status", None)
        conditions = getattr(status, "conditions", None)
        return cls(
            name=getattr(metadata, "name", None) or "",
            namespace=getattr(metadata, "namespace", None) or "",
            labels=dict(getattr(metadata, "labels", None) or {}),
            active=getattr(status, "active", None) or 0,
            succeeded=getattr(status, "succeeded", None) or 0,
            failed=getattr(status, "failed", None) or 0,
            complete_condition=_condition_true(conditions, "Complete"),
            failed_condition=_condition_true(conditions, "Failed"),
            creation_timestamp=getattr(metadata, "creation_timestamp", None),
        )


class EventRecord(BaseModel):
    kind: str = ""
    name: str = ""
    namespace: str = ""
    reason: Optional[str] = None
    message: str = ""

    @classmethod
    def from_k8s(cls, event: Any) -> "EventRecord":
        involved = getattr(event, "involved_object", None)
        return cls(
            kind=getattr(involved, "kind", None) or "",
            name=getattr(involved, "name", None) or "",
            namespace=getattr(involved, "namespace", None) or "",
            reason=getattr(event, "reason", None),
            message=getattr(event, "message", None) or "",
        )


@dataclass(frozen=True)
class PodNotification:
    type: WatchEventType
    pod: PodRecord


@dataclass(frozen=True)
class EventNotification:
    type: WatchEventType
    event: EventRecord


Notification = Union[PodNotification, EventNotification]


class PodResult(BaseModel):
    """Outcome reported by a pod through its ``POD RESULT:`` log line."""

    ok: bool
    message: str = ""


class JobVerifyOptions(BaseModel):
    namespace: str
    selector: Optional[str] = Field(None, description="Label selector of the job and its pods")
    name: Optional[str] = Field(None, description="Exact job name; implies selector job-name=<name>")
    container: Optional[str] = Field(None, description="Container to tail; defaults to the first one")
    duration: float = Field(3600.0, ge=0, description="Seconds to wait for the job to finish")
    poll_period: float = Field(1.0, gt=0)
    no_tail: bool = False
    verify_result: bool = False
    log_fail: bool = False
    log_file: Optional[str] = None
