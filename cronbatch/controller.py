"""Reconciliation of CronJobs: tracks their Jobs, prunes history and starts scheduled runs."""

from __future__ import annotations

import copy
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from cronbatch import v1_types as v1
from cronbatch.client import NotFoundError, ObjectStore
from cronbatch.objects import (
    ConditionStatus,
    Job,
    JobConditionType,
    NamespacedName,
    ObjectMeta,
    new_controller_ref,
)
from cronbatch.schedule import ScheduleError, parse_standard

_log = logging.getLogger(__name__)

SCHEDULED_TIME_ANNOTATION = "batch.tutorial.kubebuilder.io/scheduled-at"
MAX_MISSED_STARTS = 100

_RFC3339 = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class Clock(Protocol):
    """Something that knows the current time."""

    def now(self) -> datetime: ...


class RealClock:
    """A clock reading the system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Result:
    """The outcome of one reconciliation; ``requeue_after`` asks for another pass later."""

    requeue_after: timedelta | None = None


class ScheduleComputationError(ValueError):
    """Raised when the next run of a CronJob cannot be worked out."""


def _format_rfc3339(moment: datetime) -> str:
    moment = moment.replace(microsecond=0)
    offset = moment.utcoffset()
    if offset is None or offset == timedelta(0):
        return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return moment.isoformat(timespec="seconds")


def _parse_rfc3339(text: str) -> datetime:
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise ValueError(f'cannot parse "{text}" as RFC 3339 time')
    date, clock, fraction, zone = match.groups()
    iso = f"{date}T{clock}"
    if fraction:
        iso += "." + fraction[:6].ljust(6, "0")
    iso += "+00:00" if zone in ("Z", "z") else zone
    return datetime.fromisoformat(iso)


def is_job_finished(job: Job) -> tuple[bool, JobConditionType | None]:
    """Tell whether ``job`` has a true Complete or Failed condition, and which."""
    for condition in job.status.conditions:
        if (
            condition.type in (JobConditionType.COMPLETE, JobConditionType.FAILED)
            and condition.status == ConditionStatus.TRUE
        ):
            return True, condition.type
    return False, None


def scheduled_time_for_job(job: Job) -> datetime | None:
    """Read the scheduled-at annotation of ``job``; None if it is absent."""
    raw = job.metadata.annotations.get(SCHEDULED_TIME_ANNOTATION, "")
    if not raw:
        return None
    return _parse_rfc3339(raw)


def get_next_schedule(cronjob: v1.CronJob, now: datetime) -> tuple[datetime | None, datetime | None]:
    """Return the latest missed run (or None) and the next run after ``now``."""
    schedule_text = cronjob.spec.schedule
    try:
        schedule = parse_standard(schedule_text)
    except ScheduleError as err:
        raise ScheduleComputationError(f'Unparseable schedule "{schedule_text}": {err}') from err

    if cronjob.status.last_schedule_time is not None:
        earliest = cronjob.status.last_schedule_time
    elif cronjob.metadata.creation_timestamp is not None:
        earliest = cronjob.metadata.creation_timestamp
    else:
        earliest = _ZERO_TIME

    deadline_seconds = cronjob.spec.starting_deadline_seconds
    if deadline_seconds is not None:
        scheduling_deadline = now - timedelta(seconds=deadline_seconds)
        if scheduling_deadline > earliest:
            earliest = scheduling_deadline

    if earliest > now:
        return None, schedule.next(now)

    last_missed: datetime | None = None
    starts = 0
    moment = schedule.next(earliest)
    while moment is not None and moment <= now:
        last_missed = moment
        starts += 1
        if starts > MAX_MISSED_STARTS:
            raise ScheduleComputationError(
                "Too many missed start times (> 100). "
                "Set or decrease .spec.startingDeadlineSeconds or check clock skew."
            )
        moment = schedule.next(moment)
    return last_missed, schedule.next(now)


def construct_job_for_cronjob(cronjob: v1.CronJob, scheduled_time: datetime) -> Job:
    """Stamp out a Job from the CronJob's template for the given run time."""
    name = f"{cronjob.metadata.name}-{math.floor(scheduled_time.timestamp())}"
    template = cronjob.spec.job_template
    annotations = dict(template.metadata.annotations)
    annotations[SCHEDULED_TIME_ANNOTATION] = _format_rfc3339(scheduled_time)
    metadata = ObjectMeta(
        name=name,
        namespace=cronjob.metadata.namespace,
        labels=dict(template.metadata.labels),
        annotations=annotations,
        owner_references=[new_controller_ref(cronjob.metadata, v1.GROUP_VERSION, v1.CronJob.KIND)],
    )
    return Job(metadata=metadata, spec=copy.deepcopy(template.spec))


def _by_start_time(job: Job) -> tuple[bool, datetime]:
    start = job.status.start_time
    return (start is not None, start if start is not None else _ZERO_TIME)


class CronJobReconciler:
    """Drives the stored state of CronJobs and their Jobs towards their specs."""

    def __init__(self, store: ObjectStore, clock: Clock | None = None) -> None:
        self.store = store
        self.clock: Clock = clock if clock is not None else RealClock()

    def _prune(self, jobs: list[Job], limit: int, kind: str, ignore_missing: bool) -> None:
        ordered = sorted(jobs, key=_by_start_time)
        for job in ordered[: max(len(ordered) - limit, 0)]:
            try:
                self.store.delete_job(job)
            except NotFoundError as err:
                if not ignore_missing:
                    _log.error("unable to delete old %s job %s: %s", kind, job.metadata.key, err)
                    continue
            _log.info("deleted old %s job %s", kind, job.metadata.key)

    def reconcile(self, request: NamespacedName) -> Result:
        """Bring the CronJob named by ``request`` up to date and say when to look again."""
        try:
            cronjob = self.store.get_cronjob(request)
        except NotFoundError as err:
            _log.error("unable to fetch CronJob: %s", err)
            return Result()

        child_jobs = self.store.list_jobs(request.namespace, owner_name=request.name)

        active_jobs: list[Job] = []
        successful_jobs: list[Job] = []
        failed_jobs: list[Job] = []
        most_recent: datetime | None = None

        for job in child_jobs:
            _, finished_type = is_job_finished(job)
            if finished_type is None:
                active_jobs.append(job)
            elif finished_type == JobConditionType.FAILED:
                failed_jobs.append(job)
            elif finished_type == JobConditionType.COMPLETE:
                successful_jobs.append(job)

            try:
                scheduled = scheduled_time_for_job(job)
            except ValueError as err:
                _log.error("unable to parse schedule time for child job %s: %s", job.metadata.key, err)
                continue
            if scheduled is not None and (most_recent is None or most_recent < scheduled):
                most_recent = scheduled

        cronjob.status.last_schedule_time = most_recent
        cronjob.status.active = [job.reference() for job in active_jobs]

        _log.debug(
            "job count: active jobs=%d successful jobs=%d failed jobs=%d",
            len(active_jobs),
            len(successful_jobs),
            len(failed_jobs),
        )

        self.store.update_cronjob_status(cronjob)

        if cronjob.spec.failed_jobs_history_limit is not None:
            self._prune(failed_jobs, cronjob.spec.failed_jobs_history_limit, "failed", True)
        if cronjob.spec.successful_jobs_history_limit is not None:
            self._prune(successful_jobs, cronjob.spec.successful_jobs_history_limit, "successful", False)

        if cronjob.spec.suspend:
            _log.debug("cronjob suspended, skipping")
            return Result()

        now = self.clock.now()
        try:
            missed_run, next_run = get_next_schedule(cronjob, now)
        except ScheduleComputationError as err:
            _log.error("unable to figure out CronJob schedule: %s", err)
            return Result()

        scheduled_result = Result(requeue_after=None if next_run is None else next_run - now)

        if missed_run is None:
            _log.debug("no upcoming scheduled times, sleeping until next (next run %s)", next_run)
            return scheduled_result

        deadline_seconds = cronjob.spec.starting_deadline_seconds
        if deadline_seconds is not None and missed_run + timedelta(seconds=deadline_seconds) < now:
            _log.debug("missed starting deadline for last run %s, sleeping till next", missed_run)
            return scheduled_result

        policy = cronjob.spec.concurrency_policy
        if policy == v1.ConcurrencyPolicy.FORBID and active_jobs:
            _log.debug("concurrency policy blocks concurrent runs, skipping (num active %d)", len(active_jobs))
            return scheduled_result

        if policy == v1.ConcurrencyPolicy.REPLACE:
            for job in active_jobs:
                try:
                    self.store.delete_job(job)
                except NotFoundError:
                    pass

        job = construct_job_for_cronjob(cronjob, missed_run)
        self.store.create_job(job)
        _log.debug("created Job %s for CronJob run %s", job.metadata.key, missed_run)
        return scheduled_result