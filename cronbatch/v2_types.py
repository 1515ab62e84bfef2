"""The v2 CronJob resource, whose schedule is split into separate cron fields."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import ClassVar, Iterator

from cronbatch import v1_types as v1
from cronbatch.objects import JobTemplateSpec, ObjectMeta, ObjectReference

GROUP = v1.GROUP
VERSION = "v2"
GROUP_VERSION = f"{GROUP}/{VERSION}"

_log = logging.getLogger(__name__)

_WILDCARD = "*"


class ConversionError(ValueError):
    """Raised when an object cannot be converted between versions."""


class ConcurrencyPolicy(StrEnum):
    """How concurrent runs of a CronJob are treated."""

    ALLOW = "Allow"
    FORBID = "Forbid"
    REPLACE = "Replace"


@dataclass
class CronSchedule:
    """A cron schedule with one optional specifier per field; ``None`` means every value."""

    minute: str | None = None
    hour: str | None = None
    day_of_month: str | None = None
    month: str | None = None
    day_of_week: str | None = None

    def _parts(self) -> tuple[str | None, ...]:
        return (self.minute, self.hour, self.day_of_month, self.month, self.day_of_week)

    def to_expression(self) -> str:
        """Join the fields into a five-field cron expression, using ``*`` for unset ones."""
        return " ".join(_WILDCARD if part is None else part for part in self._parts())

    @classmethod
    def from_expression(cls, expression: str) -> CronSchedule:
        """Split a five-field cron expression; ``*`` fields become unset."""
        parts = expression.split(" ")
        if len(parts) != 5:
            raise ConversionError("invalid schedule: not a standard 5-field schedule")
        return cls(*(None if part == _WILDCARD else part for part in parts))


@dataclass
class CronJobSpec:
    """Desired state of a v2 CronJob; ``None`` marks an unset optional field."""

    schedule: CronSchedule = field(default_factory=CronSchedule)
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
    """A CronJob in the v2 version, converted to and from the v1 hub."""

    API_VERSION: ClassVar[str] = GROUP_VERSION
    KIND: ClassVar[str] = "CronJob"

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: CronJobSpec = field(default_factory=CronJobSpec)
    status: CronJobStatus = field(default_factory=CronJobStatus)

    def convert_to(self, dst: v1.CronJob) -> None:
        """Fill the hub object ``dst`` with the contents of this object."""
        _log.info(
            "ConvertTo: Converting CronJob from Spoke version v2 to Hub version v1;"
            "source: %s/%s, target: %s/%s",
            self.metadata.namespace,
            self.metadata.name,
            dst.metadata.namespace,
            dst.metadata.name,
        )
        dst.spec.schedule = self.spec.schedule.to_expression()

        dst.metadata = copy.deepcopy(self.metadata)

        spec = self.spec
        dst.spec.starting_deadline_seconds = spec.starting_deadline_seconds
        dst.spec.concurrency_policy = (
            None if spec.concurrency_policy is None else v1.ConcurrencyPolicy(spec.concurrency_policy.value)
        )
        dst.spec.suspend = spec.suspend
        dst.spec.job_template = copy.deepcopy(spec.job_template)
        dst.spec.successful_jobs_history_limit = spec.successful_jobs_history_limit
        dst.spec.failed_jobs_history_limit = spec.failed_jobs_history_limit

        dst.status.active = list(self.status.active)
        dst.status.last_schedule_time = self.status.last_schedule_time

    def convert_from(self, src: v1.CronJob) -> None:
        """Fill this object with the contents of the hub object ``src``."""
        _log.info(
            "ConvertFrom: Converting CronJob from Hub version v1 to Spoke version v2;"
            "source: %s/%s, target: %s/%s",
            src.metadata.namespace,
            src.metadata.name,
            self.metadata.namespace,
            self.metadata.name,
        )
        self.spec.schedule = CronSchedule.from_expression(src.spec.schedule)

        self.metadata = copy.deepcopy(src.metadata)

        spec = src.spec
        self.spec.starting_deadline_seconds = spec.starting_deadline_seconds
        self.spec.concurrency_policy = (
            None if spec.concurrency_policy is None else ConcurrencyPolicy(spec.concurrency_policy.value)
        )
        self.spec.suspend = spec.suspend
        self.spec.job_template = copy.deepcopy(spec.job_template)
        self.spec.successful_jobs_history_limit = spec.successful_jobs_history_limit
        self.spec.failed_jobs_history_limit = spec.failed_jobs_history_limit

        self.status.active = list(src.status.active)
        self.status.last_schedule_time = src.status.last_schedule_time


@dataclass
class CronJobList:
    """A list of v2 CronJobs."""

    API_VERSION: ClassVar[str] = GROUP_VERSION
    KIND: ClassVar[str] = "CronJobList"

    items: list[CronJob] = field(default_factory=list)

    def __iter__(self) -> Iterator[CronJob]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)