"""Object model shared by the batch resources: metadata, references and Jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar


@dataclass(frozen=True, order=True)
class NamespacedName:
    """The namespace and name that identify an object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class OwnerReference:
    """A pointer from an object to the object that owns it."""

    api_version: str
    kind: str
    name: str
    uid: str = ""
    controller: bool | None = None
    block_owner_deletion: bool | None = None


@dataclass(frozen=True)
class ObjectReference:
    """A reference to another object, as recorded in a status."""

    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""
    api_version: str = ""
    resource_version: str = ""


@dataclass
class ObjectMeta:
    """Metadata every stored object carries."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)
    creation_timestamp: datetime | None = None

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    def controller_of(self) -> OwnerReference | None:
        """Return the owner reference marked as controller, if any."""
        return next((ref for ref in self.owner_references if ref.controller), None)


class JobConditionType(StrEnum):
    COMPLETE = "Complete"
    FAILED = "Failed"
    SUSPENDED = "Suspended"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class JobCondition:
    type: JobConditionType
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None


@dataclass
class JobSpec:
    """What a Job runs; the pod template is kept as a plain mapping."""

    template: dict[str, Any] = field(default_factory=dict)
    parallelism: int | None = None
    completions: int | None = None
    backoff_limit: int | None = None
    active_deadline_seconds: int | None = None


@dataclass
class JobStatus:
    conditions: list[JobCondition] = field(default_factory=list)
    active: int = 0
    succeeded: int = 0
    failed: int = 0
    start_time: datetime | None = None
    completion_time: datetime | None = None


@dataclass
class Job:
    """A batch Job."""

    API_VERSION: ClassVar[str] = "batch/v1"
    KIND: ClassVar[str] = "Job"

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: JobSpec = field(default_factory=JobSpec)
    status: JobStatus = field(default_factory=JobStatus)

    def reference(self) -> ObjectReference:
        """Build a reference pointing at this Job."""
        return ObjectReference(
            kind=self.KIND,
            namespace=self.metadata.namespace,
            name=self.metadata.name,
            uid=self.metadata.uid,
            api_version=self.API_VERSION,
            resource_version=self.metadata.resource_version,
        )


@dataclass
class JobTemplateSpec:
    """The template from which Jobs are stamped out."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: JobSpec = field(default_factory=JobSpec)


def new_controller_ref(meta: ObjectMeta, api_version: str, kind: str) -> OwnerReference:
    """Create an owner reference that marks the described object as controller."""
    return OwnerReference(
        api_version=api_version,
        kind=kind,
        name=meta.name,
        uid=meta.uid,
        controller=True,
        block_owner_deletion=True,
    )