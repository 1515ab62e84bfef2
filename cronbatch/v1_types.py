"""The v1 CronJob resource, which is also the conversion hub."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import ClassVar, Iterator

from cronbatch.objects import JobTemplateSpec, ObjectMeta, ObjectReference

GROUP = "batch.tutorial.kubebuilder.io"
VERSION = "v1"
GROUP_VERSION = f"{GROUP}/{VERSION}"


class ConcurrencyPolicy(StrEnum):
    """How concurrent runs of a CronJob are treated."""

    ALLOW = "Allow"
    FORBID = "Forbid"
    REPLACE = "Replace"


@dataclass
class CronJobSpec:
    """Desired state of a CronJob; ``None`` marks an unset optional field."""

    schedule: str = ""
    job_template: JobTemplateSpec = field(default_factory=JobTemplateSpec)
    starting_deadline_seconds: int | None = None
    concurrency_policy: ConcurrencyPolicy | None = None
    suspend: bool | None = None
    successful_jobs_history_limit: int | None = None
    failed_jobs_history_limit: int | None = None

    def __post_init__(self) -> None:
        if self.concurrency_policy is not None:
            self.concurrency_policy = ConcurrencyPolicy(self.concurrency_policy)
        for name in (
            "starting_deadline_seconds",
            "successful_jobs_history_limit",
            "failed_jobs_history_limit",
        ):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")


@dataclass
class CronJobStatus:
    """Observed state of a CronJob."""

    active: list[ObjectReference] = field(default_factory=list)
    last_schedule_time: datetime | None = None


@dataclass
class CronJob:
    """A CronJob in the storage version."""

    API_VERSION: ClassVar[str] = GROUP_VERSION
    KIND: ClassVar[str] = "CronJob"
    HUB: ClassVar[bool] = True

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: CronJobSpec = field(default_factory=CronJobSpec)
    status: CronJobStatus = field(default_factory=CronJobStatus)


@dataclass
class CronJobList:
    """A list of CronJobs."""

    API_VERSION: ClassVar[str] = GROUP_VERSION
    KIND: ClassVar[str] = "CronJobList"

    items: list[CronJob] = field(default_factory=list)

    def __iter__(self) -> Iterator[CronJob]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)